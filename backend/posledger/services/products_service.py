# backend/posledger/services/products_service.py
"""
Product catalog service.

Catalog CRUD goes straight to the product store. The one exception is
stock: opening stock and later changes are routed through the transaction
engine so every change lands in the stock movement log.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import ConflictError
from .errors import ProductNotFound
from .repositories import ProductStore
from .transaction_service import TransactionEngine

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "price_cents", "cost_cents",
    "category", "barcode", "image", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_barcode_free(store: ProductStore, barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    existing = store.find_by_barcode(barcode)
    if existing is not None and existing.id != product_id:
        raise ConflictError(f"Barcode {barcode} already assigned to product {existing.id}")


def list_products(
    *,
    include_inactive: bool = False,
    category: str | None = None,
    search: str | None = None,
    session=None,
) -> dict:
    """Catalog listing; soft-deleted products are hidden unless asked for."""
    store = ProductStore(session or db.session)
    products = store.list(include_inactive=include_inactive, category=category, search=search)
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def get_product(product_id: int, *, session=None) -> Product:
    product = ProductStore(session or db.session).get(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def create_product(*, patch: dict, user=None, session=None, engine: TransactionEngine | None = None) -> dict:
    """
    Create product using a validated patch dict.

    ``stock`` in the patch becomes the opening stock (INITIAL movement).
    """
    session = session or db.session
    engine = engine or TransactionEngine(session)
    store = engine.products

    _ensure_barcode_free(store, patch.get("barcode"))

    p = Product(price_cents=patch.get("price_cents"), cost_cents=patch.get("cost_cents"))
    apply_product_patch(p, patch)
    try:
        engine.stock_new_product(p, patch.get("stock") or 0, user_id=user.id if user is not None else None)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Product violates a uniqueness constraint")
    except Exception:
        session.rollback()
        raise

    return p.to_dict()


def update_product(*, product_id: int, patch: dict, session=None) -> dict | None:
    """Update catalog fields. Stock is not writable here; see adjust_stock."""
    session = session or db.session
    store = ProductStore(session)
    p = store.get(product_id)
    if p is None:
        return None

    _ensure_barcode_free(store, patch.get("barcode"), product_id=product_id)

    apply_product_patch(p, patch)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Product violates a uniqueness constraint")
    return p.to_dict()


def delete_product(*, product_id: int, session=None) -> bool:
    """Soft delete: historical sales keep resolving the product."""
    session = session or db.session
    p = ProductStore(session).get(product_id)
    if p is None:
        return False
    p.is_active = False
    session.commit()
    return True


def list_movements(product_id: int, *, limit: int = 100, session=None) -> dict:
    store = ProductStore(session or db.session)
    if store.get(product_id) is None:
        raise ProductNotFound(product_id)
    movements = store.movements(product_id, limit=limit)
    return {
        "product_id": product_id,
        "items": [m.to_dict() for m in movements],
        "count": len(movements),
    }
