"""
Ledger retention tests (bounded purge of recent completed sales).
"""

from datetime import datetime, timedelta

import pytest

from conftest import add_sale, make_product
from posledger.models import Product, Sale, SaleLine, StockMovement
from posledger.services.errors import RangeExceeded
from posledger.services.retention_service import LedgerRetention
from posledger.services.transaction_service import SaleItem
from posledger.validation import ValidationError


NOW = datetime(2026, 3, 15, 12, 0)


def retention(session, **kwargs):
    return LedgerRetention(session, clock=lambda: NOW, **kwargs)


def test_rejects_more_than_thirty_days(db_session):
    with pytest.raises(RangeExceeded) as exc_info:
        retention(db_session).purge_recent_sales(31)

    assert str(exc_info.value) == "Cannot delete more than 30 days of data"


@pytest.mark.parametrize("days", [0, -3, "7", 2.5, True])
def test_rejects_invalid_days(db_session, days):
    with pytest.raises(ValidationError):
        retention(db_session).purge_recent_sales(days)


def test_deletes_only_completed_sales_inside_window(db_session):
    product = make_product(db_session, name="Mug")
    recent = add_sale(db_session, created_at=NOW - timedelta(days=29), lines=[(product, 1, 100, 10)])
    old = add_sale(db_session, created_at=NOW - timedelta(days=31), lines=[(product, 1, 100, 10)])
    refunded = add_sale(db_session, created_at=NOW - timedelta(days=1), lines=[(product, 1, 100, 10)],
                        status="refunded")
    recent_id, old_id, refunded_id = recent.id, old.id, refunded.id

    deleted = retention(db_session).purge_recent_sales(30)

    db_session.expire_all()
    assert deleted == 1
    assert db_session.get(Sale, recent_id) is None
    assert db_session.get(Sale, old_id) is not None
    assert db_session.get(Sale, refunded_id) is not None
    assert db_session.query(SaleLine).filter_by(sale_id=recent_id).count() == 0
    assert db_session.query(SaleLine).filter_by(sale_id=old_id).count() == 1


def test_default_is_one_day(db_session):
    product = make_product(db_session, name="Mug")
    add_sale(db_session, created_at=NOW - timedelta(hours=2), lines=[(product, 1, 100, 10)])
    add_sale(db_session, created_at=NOW - timedelta(days=2), lines=[(product, 1, 100, 10)])

    assert retention(db_session).purge_recent_sales() == 1
    assert db_session.query(Sale).count() == 1


def test_purge_does_not_restore_stock_or_touch_movements(engine, cashier, products, db_session):
    laptop, _ = products
    engine.create_sale([SaleItem(laptop.id, 2)], cashier=cashier)
    movements_before = db_session.query(StockMovement).count()

    # Real clock: the sale was just written
    deleted = LedgerRetention(db_session).purge_recent_sales(1)

    db_session.expire_all()
    assert deleted == 1
    assert db_session.get(Product, laptop.id).stock == 3
    assert db_session.query(StockMovement).count() == movements_before


def test_max_days_is_configurable(db_session):
    with pytest.raises(RangeExceeded):
        retention(db_session, max_days=7).purge_recent_sales(8)
    assert retention(db_session, max_days=7).purge_recent_sales(7) == 0


@pytest.mark.parametrize("configured", [31, 365])
def test_configured_limit_cannot_widen_past_thirty_days(db_session, configured):
    product = make_product(db_session, name="Mug")
    old = add_sale(db_session, created_at=NOW - timedelta(days=40), lines=[(product, 1, 100, 10)])

    service = LedgerRetention.from_config(db_session, {"RETENTION_MAX_DAYS": configured})
    service.clock = lambda: NOW

    assert service.max_days == 30
    with pytest.raises(RangeExceeded) as exc_info:
        service.purge_recent_sales(31)
    assert exc_info.value.max_days == 30
    with pytest.raises(RangeExceeded):
        service.purge_recent_sales(45)
    assert db_session.get(Sale, old.id) is not None
