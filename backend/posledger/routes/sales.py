# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/posledger/routes/sales.py
"""Sales API routes: ledger listing, sale creation and refund."""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.sales import SALE_STATUSES
from ..services.errors import LedgerError, NotFoundError, SaleNotFound, StorageFailure
from ..services.repositories import SaleStore
from ..services.transaction_service import SaleItem, TransactionEngine
from ..validation import ValidationError, coerce_int
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_items(raw) -> list[SaleItem]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, entry in enumerate(raw, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if entry.get("product_id") is None or entry.get("quantity") is None:
            raise ValidationError(f"items[{index}] requires product_id and quantity")
        price = entry.get("price_cents")
        items.append(SaleItem(
            product_id=coerce_int(f"items[{index}].product_id", entry["product_id"]),
            quantity=coerce_int(f"items[{index}].quantity", entry["quantity"]),
            price_cents=coerce_int(f"items[{index}].price_cents", price) if price is not None else None,
            discount_cents=coerce_int(f"items[{index}].discount_cents", entry.get("discount_cents") or 0),
        ))
    return items


def _ledger_error(e: LedgerError, action: str):
    if isinstance(e, NotFoundError):
        return jsonify(e.to_dict()), 404
    if isinstance(e, StorageFailure):
        current_app.logger.exception("Failed to %s", action)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(e.to_dict()), 400


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - status: completed | refunded (optional)
    - page: int (default 1)
    - per_page: int (default 20, max 100)
    """
    status = request.args.get("status")
    if status and status not in SALE_STATUSES:
        error = ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        return jsonify(error.to_dict()), 400

    per_page = min(max(request.args.get("per_page", 20, type=int), 1), 100)
    page = max(request.args.get("page", 1, type=int), 1)

    sales, total = SaleStore(db.session).page(status=status, page=page, per_page=per_page)
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    return jsonify({
        "items": [sale.to_dict(include_lines=False) for sale in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = SaleStore(db.session).get(sale_id)
    if not sale:
        return jsonify(SaleNotFound(sale_id).to_dict()), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a completed sale and decrement stock.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "price_cents": 2999, "discount_cents": 0}],
        "customer_id": 5,  (optional)
        "discount_cents": 500,  (optional, default: 0)
        "payment_method": "cash"  (cash | card | transfer, default: cash)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        items = _parse_items(data.get("items"))
        customer_id = data.get("customer_id")
        if customer_id is not None:
            customer_id = coerce_int("customer_id", customer_id)
        discount_cents = coerce_int("discount_cents", data.get("discount_cents") or 0)

        engine = TransactionEngine.from_config(db.session, current_app.config)
        sale = engine.create_sale(
            items,
            cashier=g.current_user,
            customer_id=customer_id,
            discount_cents=discount_cents,
            payment_method=data.get("payment_method") or "cash",
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except LedgerError as e:
        return _ledger_error(e, "create sale")
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
def refund_sale_route(sale_id: int):
    """Refund a completed sale and restore its stock."""
    try:
        engine = TransactionEngine.from_config(db.session, current_app.config)
        sale = engine.refund_sale(sale_id, user=g.current_user)
    except LedgerError as e:
        return _ledger_error(e, "refund sale")
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Sale refunded successfully", "sale": sale.to_dict()}), 200
