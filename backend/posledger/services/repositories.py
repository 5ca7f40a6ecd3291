# Overview: Explicit store objects over a SQLAlchemy session; services receive these instead of using globals.

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from ..models import Customer, Product, Sale, SaleLine, StockMovement, User
from posledger.time_utils import utcnow
from .concurrency import lock_for_update


class ProductStore:
    def __init__(self, session):
        self.session = session

    def get(self, product_id: int) -> Product | None:
        return self.session.get(Product, product_id)

    def lock_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """
        Load and row-lock products, ascending by id.

        A fixed lock order keeps two sales over the same products from
        deadlocking each other.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        query = (
            self.session.query(Product)
            .filter(Product.id.in_(ids))
            .order_by(Product.id.asc())
        )
        return {p.id: p for p in lock_for_update(query).all()}

    def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.session.query(Product).filter(Product.id.in_(ids)).all()
        return {p.id: p for p in rows}

    def list(
        self,
        *,
        include_inactive: bool = False,
        category: str | None = None,
        search: str | None = None,
    ) -> list[Product]:
        query = self.session.query(Product)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        if category:
            query = query.filter(Product.category == category)
        if search:
            like = f"%{search}%"
            query = query.filter((Product.name.ilike(like)) | (Product.barcode == search))
        return query.order_by(Product.name.asc(), Product.id.asc()).all()

    def find_by_barcode(self, barcode: str) -> Product | None:
        return self.session.query(Product).filter_by(barcode=barcode).first()

    def add(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def record_movement(
        self,
        product: Product,
        *,
        movement_type: str,
        quantity_delta: int,
        sale: Sale | None = None,
        user_id: int | None = None,
        note: str | None = None,
        occurred_at: datetime | None = None,
    ) -> StockMovement:
        movement = StockMovement(
            product_id=product.id,
            movement_type=movement_type,
            quantity_delta=quantity_delta,
            stock_after=product.stock,
            sale_id=sale.id if sale is not None else None,
            invoice_number=sale.invoice_number if sale is not None else None,
            user_id=user_id,
            note=note,
            occurred_at=occurred_at or utcnow(),
        )
        self.session.add(movement)
        return movement

    def movements(self, product_id: int, limit: int = 100) -> list[StockMovement]:
        return (
            self.session.query(StockMovement)
            .filter_by(product_id=product_id)
            .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )


class SaleStore:
    def __init__(self, session):
        self.session = session

    def get(self, sale_id: int, *, lock: bool = False) -> Sale | None:
        query = self.session.query(Sale).filter_by(id=sale_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def add(self, sale: Sale) -> Sale:
        self.session.add(sale)
        self.session.flush()
        return sale

    def page(self, *, status: str | None = None, page: int = 1, per_page: int = 20) -> tuple[list[Sale], int]:
        query = self.session.query(Sale)
        if status:
            query = query.filter(Sale.status == status)
        total = query.count()
        rows = (
            query.order_by(Sale.created_at.desc(), Sale.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return rows, total

    def in_window(self, *, status: str, start: datetime, end: datetime) -> list[Sale]:
        """Sales with ``start <= created_at <= end``, newest first."""
        return (
            self.session.query(Sale)
            .filter(
                Sale.status == status,
                Sale.created_at >= start,
                Sale.created_at <= end,
            )
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .all()
        )

    def delete_since(self, *, status: str, cutoff: datetime) -> int:
        """Bulk delete sales (and their lines) created at or after ``cutoff``."""
        sale_ids = self.session.query(Sale.id).filter(
            Sale.status == status,
            Sale.created_at >= cutoff,
        )
        self.session.query(SaleLine).filter(
            SaleLine.sale_id.in_(sale_ids.scalar_subquery())
        ).delete(synchronize_session=False)
        deleted = self.session.query(Sale).filter(
            Sale.status == status,
            Sale.created_at >= cutoff,
        ).delete(synchronize_session=False)
        return deleted


class CustomerStore:
    def __init__(self, session):
        self.session = session

    def get(self, customer_id: int, *, lock: bool = False) -> Customer | None:
        query = self.session.query(Customer).filter_by(id=customer_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def list(self, *, include_inactive: bool = False, search: str | None = None) -> list[Customer]:
        query = self.session.query(Customer)
        if not include_inactive:
            query = query.filter(Customer.is_active.is_(True))
        if search:
            like = f"%{search}%"
            query = query.filter(
                (Customer.name.ilike(like)) | (Customer.email.ilike(like)) | (Customer.phone.ilike(like))
            )
        return query.order_by(Customer.name.asc(), Customer.id.asc()).all()

    def add(self, customer: Customer) -> Customer:
        self.session.add(customer)
        self.session.flush()
        return customer


class UserStore:
    def __init__(self, session):
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> User | None:
        return self.session.query(User).filter_by(email=email).first()
