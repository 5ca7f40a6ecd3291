from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data for tracking purchases and loyalty.

    Sales keep ``customer_id`` as a plain identifier plus a denormalized name,
    so removing a customer never breaks historical sales.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized aggregate (updated when sales complete or are refunded)
    total_purchases_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "loyalty_points": self.loyalty_points,
            "total_purchases_cents": self.total_purchases_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
