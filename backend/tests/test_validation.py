"""
Payload validation and invoice allocation tests.
"""

import pytest
from sqlalchemy import Boolean, Integer, String, Text

from posledger.models import Customer, Product
from posledger.routes.customers import CUSTOMER_POLICY
from posledger.routes.products import PRODUCT_CREATE_POLICY
from posledger.services.document_service import (
    DocumentSequenceError,
    format_invoice_number,
    next_sequence_number,
)
from posledger.services.errors import StorageFailure
from posledger.validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from datetime import datetime


POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "cost_cents", "barcode", "is_active"},
    required_on_create={"name", "price_cents", "cost_cents"},
)


class TestCoerceInt:

    @pytest.mark.parametrize("raw,expected", [(5, 5), ("12", 12), (" -3 ", -3)])
    def test_accepts(self, raw, expected):
        assert coerce_int("qty", raw) == expected

    @pytest.mark.parametrize("raw", ["12.5", 1.0, "1e3", "", True, None, "ten"])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            coerce_int("qty", raw)

    def test_error_body_carries_code(self):
        with pytest.raises(ValidationError) as exc_info:
            coerce_int("qty", "12.5")

        assert exc_info.value.to_dict() == {
            "error": "qty must be an integer (no decimals)",
            "code": "validation_error",
            "details": {},
        }


class TestValidatePayload:

    def test_create_requires_fields(self):
        with pytest.raises(ValidationError, match="Missing required fields: cost_cents, price_cents"):
            validate_payload(model=Product, payload={"name": "X"}, policy=POLICY, partial=False)

    def test_rejects_fields_outside_policy(self):
        with pytest.raises(ValidationError, match="Field not allowed: stock"):
            validate_payload(model=Product, payload={"stock": 3}, policy=POLICY, partial=True)

    def test_normalizes_values(self):
        patch = validate_payload(
            model=Product,
            payload={"name": "  Lamp ", "price_cents": "4500", "cost_cents": 10, "is_active": "false"},
            policy=POLICY,
            partial=False,
        )
        assert patch == {"name": "Lamp", "price_cents": 4500, "cost_cents": 10, "is_active": False}

    @pytest.mark.parametrize(
        "model,policy",
        [(Product, PRODUCT_CREATE_POLICY), (Customer, CUSTOMER_POLICY)],
    )
    def test_writable_columns_have_coercible_types(self, model, policy):
        columns = {c.key: c for c in model.__table__.columns}
        for field in policy.writable_fields:
            assert isinstance(columns[field].type, (Integer, Boolean, String, Text)), field

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload={"name": "   "}, policy=POLICY, partial=True)

    def test_null_required_column_rejected(self):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload={"price_cents": None}, policy=POLICY, partial=True)

    def test_product_rules(self):
        with pytest.raises(ValidationError):
            enforce_rules_product({"price_cents": -1})
        with pytest.raises(ValidationError):
            enforce_rules_product({"cost_cents": 1_000_000_000})

        patch = {"barcode": ""}
        enforce_rules_product(patch)
        assert patch["barcode"] is None


class TestInvoiceNumbers:

    def test_format(self):
        at = datetime(2026, 1, 1, 0, 0, 0)
        assert format_invoice_number(42, at) == "INV-1767225600000-42"

    def test_sequence_is_monotonic_per_type(self, db_session):
        first = next_sequence_number(db_session, document_type="SALE")
        second = next_sequence_number(db_session, document_type="SALE")
        other = next_sequence_number(db_session, document_type="CREDIT")
        db_session.commit()

        assert (first, second, other) == (1, 2, 1)

    def test_missing_document_type_is_storage_failure(self, db_session):
        with pytest.raises(StorageFailure) as exc_info:
            next_sequence_number(db_session, document_type="")

        assert isinstance(exc_info.value, DocumentSequenceError)
        assert exc_info.value.to_dict()["code"] == "storage_failure"
