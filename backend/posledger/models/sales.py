from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_REFUNDED = "refunded"
SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED)

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_TRANSFER = "transfer"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_TRANSFER)


class Sale(db.Model):
    """
    Sale ledger entry.

    LIFECYCLE: created as ``completed`` together with its stock decrements;
    the only mutation afterwards is the single ``completed -> refunded``
    transition. Deleted only by ledger retention.

    REFERENCES: ``customer_id`` and ``cashier_id`` are plain identifiers with
    names denormalized at write time, so history survives deletes upstream.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        # Ledger time axis scans (insights, retention)
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "INV-1760860800000-42")
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)

    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    refunded_at = db.Column(db.DateTime, nullable=True)
    refunded_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        order_by="SaleLine.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refunded_by_user_id": self.refunded_by_user_id,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    Individual line items on a sale.

    Price, cost and product name are snapshots taken at sale time and are
    never recomputed from the live catalog.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


class DocumentSequence(db.Model):
    """
    Per-document-type counter used to allocate invoice numbers.

    Incremented with a single UPDATE inside the caller's transaction, so two
    concurrent sales can never read the same value.
    """
    __tablename__ = "document_sequences"

    document_type = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
