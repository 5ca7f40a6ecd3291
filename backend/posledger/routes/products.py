# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/posledger/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require an identified operator.
- Read operations are open to cashiers
- Write operations and stock adjustments require the admin role
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import Product
from ..services import products_service
from ..services.errors import LedgerError, NotFoundError, ProductNotFound, StorageFailure
from ..services.transaction_service import TransactionEngine
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_admin

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price_cents", "cost_cents", "stock",
        "category", "barcode", "image", "is_active",
    },
    required_on_create={"name", "price_cents", "cost_cents"},
)

# Stock is owned by the transaction engine; use POST /<id>/stock instead
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_CREATE_POLICY.writable_fields - {"stock"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _truthy(value: str | None) -> bool:
    return (value or "").lower() in {"1", "true", "yes"}


@products_bp.get("")
@require_auth
def list_products():
    """
    List catalog products.

    Query params:
    - include_inactive: bool (optional) - include soft-deleted products
    - category: str (optional)
    - q: str (optional) - name substring or exact barcode
    """
    return products_service.list_products(
        include_inactive=_truthy(request.args.get("include_inactive")),
        category=request.args.get("category") or None,
        search=request.args.get("q") or None,
    )


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict()
    except NotFoundError as e:
        return e.to_dict(), 404


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """Create a product. ``stock`` sets the opening stock."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    try:
        created = products_service.create_product(patch=patch, user=g.current_user)
    except ConflictError as e:
        return e.to_dict(), 409
    except ValidationError as e:
        return e.to_dict(), 400

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return e.to_dict(), 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return e.to_dict(), 409

    if not updated:
        return ProductNotFound(product_id).to_dict(), 404

    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    """Soft delete (is_active=False)."""
    if not products_service.delete_product(product_id=product_id):
        return ProductNotFound(product_id).to_dict(), 404
    return {"ok": True, "message": "Product deleted successfully"}, 200


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_admin
def adjust_stock_route(product_id: int):
    """
    Restock or correct stock.

    Request body:
    {
        "quantity_delta": 10,
        "note": "Delivery"  (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        delta = coerce_int("quantity_delta", payload.get("quantity_delta"))
        engine = TransactionEngine.from_config(db.session, current_app.config)
        product = engine.adjust_stock(product_id, delta, user=g.current_user, note=payload.get("note"))
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return e.to_dict(), 404
    except StorageFailure:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500
    except LedgerError as e:
        return e.to_dict(), 400

    return product.to_dict(), 200


@products_bp.get("/<int:product_id>/movements")
@require_auth
def list_movements_route(product_id: int):
    limit = min(request.args.get("limit", 100, type=int), 500)
    try:
        return products_service.list_movements(product_id, limit=limit)
    except NotFoundError as e:
        return e.to_dict(), 404
