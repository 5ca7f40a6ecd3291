from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable catalog item and its stock counter.

    STOCK: ``stock`` is a stored counter, never negative (CHECK constraint).
    It is written only by the transaction engine (sale, refund, adjustment);
    every write appends a StockMovement row in the same DB transaction.

    SOFT DELETE: ``is_active=False`` hides the product from catalog listings.
    The row is kept so historical sales still resolve it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("cost_cents >= 0", name="ck_products_cost_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(128), nullable=True, index=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    image = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "category": self.category,
            "barcode": self.barcode,
            "image": self.image,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit of stock changes.

    IMMUTABLE: Records are never updated or deleted, including when ledger
    retention purges the sale they reference (``sale_id`` may then dangle;
    ``invoice_number`` keeps it traceable).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # INITIAL, SALE, REFUND, ADJUST

    # Positive for refunds/restocks, negative for sales
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, nullable=True, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "stock_after": self.stock_after,
            "sale_id": self.sale_id,
            "invoice_number": self.invoice_number,
            "user_id": self.user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
