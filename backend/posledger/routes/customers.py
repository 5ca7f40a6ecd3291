# Overview: Flask API routes for the customer directory; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Customer
from ..services import customers_service
from ..services.errors import NotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
)
from ..decorators import require_auth

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "loyalty_points", "is_active"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    return customers_service.list_customers(
        include_inactive=include_inactive,
        search=request.args.get("q") or None,
    )


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    try:
        return customers_service.get_customer(customer_id).to_dict()
    except NotFoundError as e:
        return e.to_dict(), 404


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    return customers_service.create_customer(patch=patch), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    try:
        return customers_service.update_customer(customer_id=customer_id, patch=patch), 200
    except NotFoundError as e:
        return e.to_dict(), 404
