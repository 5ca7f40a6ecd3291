# Overview: Error kinds raised by the ledger services; routes map them to HTTP statuses.

from __future__ import annotations


class LedgerError(Exception):
    """Base for ledger business errors. ``details`` is safe to return to callers."""
    code = "ledger_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(LedgerError):
    code = "not_found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id, reason: str | None = None):
        message = f"Product {product_id} not found"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details={"product_id": product_id})
        self.product_id = product_id


class SaleNotFound(NotFoundError):
    code = "sale_not_found"

    def __init__(self, sale_id):
        super().__init__(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        self.sale_id = sale_id


class CustomerNotFound(NotFoundError):
    code = "customer_not_found"

    def __init__(self, customer_id):
        super().__init__(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        self.customer_id = customer_id


class InsufficientStock(LedgerError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available


class AlreadyRefunded(LedgerError):
    code = "already_refunded"

    def __init__(self, sale_id: int, invoice_number: str | None = None):
        super().__init__(
            "Sale already refunded",
            details={"sale_id": sale_id, "invoice_number": invoice_number},
        )
        self.sale_id = sale_id


class RangeExceeded(LedgerError):
    code = "range_exceeded"

    def __init__(self, days: int, max_days: int):
        super().__init__(
            f"Cannot delete more than {max_days} days of data",
            details={"days": days, "max_days": max_days},
        )
        self.days = days
        self.max_days = max_days


class StorageFailure(LedgerError):
    """Persistence unavailable or inconsistent after retries. Details stay opaque."""
    code = "storage_failure"

    def __init__(self, message: str = "Storage failure"):
        super().__init__(message)
