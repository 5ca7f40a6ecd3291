"""
Transaction Engine - sale creation, refund and stock adjustment.

POS Ledger Stock Invariants (authoritative)

- Product.stock is never negative. The availability check and the decrement
  happen inside one write transaction with the product rows locked
  (SELECT ... FOR UPDATE, or BEGIN IMMEDIATE on SQLite), ascending by id.
- A sale and all of its stock decrements commit together or not at all.
  Business errors roll the session back before propagating.
- Product.version_id is an optimistic lock: a concurrent write that slipped
  past the row lock surfaces as StaleDataError and the whole unit of work is
  retried from scratch.
- Every stock change appends a StockMovement in the same transaction.
- Sale status moves completed -> refunded exactly once.
- Line prices, costs and names are snapshots; they are never recomputed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from ..models import Product, Sale, SaleLine
from ..models.sales import (
    PAYMENT_CASH,
    PAYMENT_METHODS,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_REFUNDED,
)
from ..validation import ValidationError, MAX_PRICE_CENTS
from posledger.time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .document_service import next_invoice_number
from .errors import (
    AlreadyRefunded,
    CustomerNotFound,
    InsufficientStock,
    ProductNotFound,
    SaleNotFound,
    StorageFailure,
)
from .repositories import CustomerStore, ProductStore, SaleStore

logger = logging.getLogger(__name__)

MOVEMENT_INITIAL = "INITIAL"
MOVEMENT_SALE = "SALE"
MOVEMENT_REFUND = "REFUND"
MOVEMENT_ADJUST = "ADJUST"


@dataclass(frozen=True)
class SaleItem:
    """One requested line. ``price_cents=None`` means use the catalog price."""

    product_id: int
    quantity: int
    price_cents: int | None = None
    discount_cents: int = 0


@dataclass(frozen=True)
class LedgerSettings:
    refund_skip_missing_products: bool = True
    require_active_products: bool = False
    retry_attempts: int = 3

    @classmethod
    def from_config(cls, config: Mapping) -> "LedgerSettings":
        return cls(
            refund_skip_missing_products=bool(config.get("REFUND_SKIP_MISSING_PRODUCTS", True)),
            require_active_products=bool(config.get("REQUIRE_ACTIVE_PRODUCTS_FOR_SALE", False)),
            retry_attempts=int(config.get("DB_RETRY_ATTEMPTS", 3)),
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_cents(name: str, value) -> None:
    if not _is_int(value):
        raise ValidationError(f"{name} must be an integer amount in cents")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")


def _check_items(items: Iterable[SaleItem]) -> list[SaleItem]:
    items = list(items or [])
    if not items:
        raise ValidationError("Sale must contain at least one item")
    for index, item in enumerate(items, start=1):
        if not _is_int(item.product_id):
            raise ValidationError(f"items[{index}].product_id must be an integer")
        if not _is_int(item.quantity) or item.quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be a positive integer")
        if item.price_cents is not None:
            _check_cents(f"items[{index}].price_cents", item.price_cents)
        _check_cents(f"items[{index}].discount_cents", item.discount_cents)
    return items


class TransactionEngine:
    """
    Commits sales and refunds against the product stock counters.

    Stores and settings are injected; routes build one per request from
    ``db.session`` and the app config via :meth:`from_config`.
    """

    def __init__(
        self,
        session,
        *,
        products: ProductStore | None = None,
        sales: SaleStore | None = None,
        customers: CustomerStore | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.session = session
        self.products = products or ProductStore(session)
        self.sales = sales or SaleStore(session)
        self.customers = customers or CustomerStore(session)
        self.settings = settings or LedgerSettings()

    @classmethod
    def from_config(cls, session, config: Mapping) -> "TransactionEngine":
        return cls(session, settings=LedgerSettings.from_config(config))

    def _run(self, op):
        try:
            return run_with_retry(op, session=self.session, attempts=self.settings.retry_attempts)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFailure() from exc
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def _check_availability(self, items: list[SaleItem], products: dict[int, Product]) -> None:
        requested: dict[int, int] = {}
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise ProductNotFound(item.product_id)
            if self.settings.require_active_products and not product.is_active:
                raise ProductNotFound(item.product_id, reason="inactive")
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        for product_id, qty in requested.items():
            product = products[product_id]
            if qty > product.stock:
                raise InsufficientStock(product.id, product.name, requested=qty, available=product.stock)

    def create_sale(
        self,
        items: Iterable[SaleItem],
        *,
        cashier,
        customer_id: int | None = None,
        discount_cents: int = 0,
        payment_method: str = PAYMENT_CASH,
    ) -> Sale:
        """
        Record a completed sale and decrement stock for every line.

        ``total = subtotal - discount``; it is not floored at zero.
        Raises ProductNotFound, CustomerNotFound, InsufficientStock or
        ValidationError with nothing persisted.
        """
        items = _check_items(items)
        _check_cents("discount_cents", discount_cents)
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        if cashier is None:
            raise ValidationError("cashier is required")
        if customer_id is not None and not _is_int(customer_id):
            raise ValidationError("customer_id must be an integer")

        cashier_id = cashier.id
        cashier_name = cashier.name

        def _op() -> Sale:
            begin_write(self.session)
            products = self.products.lock_many(item.product_id for item in items)
            self._check_availability(items, products)

            customer = None
            if customer_id is not None:
                customer = self.customers.get(customer_id, lock=True)
                if customer is None:
                    raise CustomerNotFound(customer_id)

            now = utcnow()
            sale = Sale(
                invoice_number=next_invoice_number(self.session, now),
                customer_id=customer.id if customer else None,
                customer_name=customer.name if customer else None,
                discount_cents=discount_cents,
                tax_cents=0,
                payment_method=payment_method,
                cashier_id=cashier_id,
                cashier_name=cashier_name,
                status=SALE_STATUS_COMPLETED,
                created_at=now,
            )

            subtotal = 0
            for line_number, item in enumerate(items, start=1):
                product = products[item.product_id]
                unit_price = item.price_cents if item.price_cents is not None else product.price_cents
                line_total = unit_price * item.quantity
                subtotal += line_total
                sale.lines.append(SaleLine(
                    line_number=line_number,
                    product_id=product.id,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price_cents=unit_price,
                    discount_cents=item.discount_cents,
                    unit_cost_cents=product.cost_cents,
                    line_total_cents=line_total,
                ))

            sale.subtotal_cents = subtotal
            sale.total_cents = subtotal - discount_cents + sale.tax_cents
            self.sales.add(sale)

            for item in items:
                product = products[item.product_id]
                product.stock -= item.quantity
                self.products.record_movement(
                    product,
                    movement_type=MOVEMENT_SALE,
                    quantity_delta=-item.quantity,
                    sale=sale,
                    user_id=cashier_id,
                    occurred_at=now,
                )

            if customer is not None:
                customer.total_purchases_cents += sale.total_cents

            self.session.commit()
            logger.info("Sale %s committed (%d lines, total %d)", sale.invoice_number, len(items), sale.total_cents)
            return sale

        return self._run(_op)

    def refund_sale(self, sale_id: int, *, user=None) -> Sale:
        """
        Refund a completed sale: restore stock for every line, flip status.

        A second refund raises AlreadyRefunded and changes nothing. Lines whose
        product row no longer exists are skipped (logged) unless
        ``refund_skip_missing_products`` is off, in which case the refund fails
        with ProductNotFound.
        """
        user_id = user.id if user is not None else None

        def _op() -> Sale:
            begin_write(self.session)
            sale = self.sales.get(sale_id, lock=True)
            if sale is None:
                raise SaleNotFound(sale_id)
            if sale.status != SALE_STATUS_COMPLETED:
                raise AlreadyRefunded(sale.id, sale.invoice_number)

            products = self.products.lock_many(line.product_id for line in sale.lines)
            now = utcnow()

            for line in sale.lines:
                product = products.get(line.product_id)
                if product is None:
                    if not self.settings.refund_skip_missing_products:
                        raise ProductNotFound(line.product_id, reason="cannot restore stock")
                    logger.warning(
                        "Refund %s: product %s no longer exists, stock not restored",
                        sale.invoice_number,
                        line.product_id,
                    )
                    continue
                product.stock += line.quantity
                self.products.record_movement(
                    product,
                    movement_type=MOVEMENT_REFUND,
                    quantity_delta=line.quantity,
                    sale=sale,
                    user_id=user_id,
                    occurred_at=now,
                )

            sale.status = SALE_STATUS_REFUNDED
            sale.refunded_at = now
            sale.refunded_by_user_id = user_id

            if sale.customer_id is not None:
                customer = self.customers.get(sale.customer_id, lock=True)
                if customer is not None:
                    customer.total_purchases_cents -= sale.total_cents

            self.session.commit()
            logger.info("Sale %s refunded", sale.invoice_number)
            return sale

        return self._run(_op)

    # ------------------------------------------------------------------
    # Stock adjustments
    # ------------------------------------------------------------------

    def adjust_stock(self, product_id: int, quantity_delta: int, *, user=None, note: str | None = None) -> Product:
        """Restock (positive delta) or correct (negative delta) a product."""
        if not _is_int(quantity_delta) or quantity_delta == 0:
            raise ValidationError("quantity_delta must be a non-zero integer")
        user_id = user.id if user is not None else None

        def _op() -> Product:
            begin_write(self.session)
            product = self.products.lock_many([product_id]).get(product_id)
            if product is None:
                raise ProductNotFound(product_id)
            if product.stock + quantity_delta < 0:
                raise InsufficientStock(
                    product.id, product.name, requested=-quantity_delta, available=product.stock
                )
            product.stock += quantity_delta
            self.products.record_movement(
                product,
                movement_type=MOVEMENT_ADJUST,
                quantity_delta=quantity_delta,
                user_id=user_id,
                note=note,
            )
            self.session.commit()
            return product

        return self._run(_op)

    def stock_new_product(self, product: Product, quantity: int, *, user_id: int | None = None) -> Product:
        """
        Set the opening stock of a product being created.

        Runs inside the caller's transaction and does not commit.
        """
        if not _is_int(quantity) or quantity < 0:
            raise ValidationError("stock must be a non-negative integer")
        product.stock = quantity
        self.products.add(product)
        if quantity:
            self.products.record_movement(
                product,
                movement_type=MOVEMENT_INITIAL,
                quantity_delta=quantity,
                user_id=user_id,
                note="Opening stock",
            )
        return product
