"""
Insights aggregation tests.

Sales are written with explicit created_at values so every window and hourly
bucket is deterministic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import add_sale, make_product
from posledger.services.insights_service import (
    COST_BASIS_SNAPSHOT,
    InsightsAggregator,
    ReportError,
    period_window,
    subtract_months,
)
from posledger.time_utils import get_zone


NOW = datetime(2026, 3, 15, 14, 30)


def aggregator(session, **kwargs):
    return InsightsAggregator(session, clock=lambda: NOW, **kwargs)


class TestSummary:

    def test_empty_ledger(self, db_session):
        report = aggregator(db_session).compute("daily")

        assert report["summary"] == {
            "total_sales": 0,
            "total_revenue_cents": 0,
            "total_cost_cents": 0,
            "total_profit_cents": 0,
            "profit_margin": 0.0,
            "average_order_value_cents": 0,
        }
        assert report["top_products"] == []
        assert report["recent_sales"] == []
        assert len(report["hourly_sales"]) == 24

    def test_margin_example(self, db_session):
        # Two units at 15.00 with cost 8.00: revenue 30.00, cost 16.00
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW - timedelta(hours=1), lines=[(product, 2, 1500, 800)])

        summary = aggregator(db_session).compute("daily")["summary"]

        assert summary["total_sales"] == 1
        assert summary["total_revenue_cents"] == 3000
        assert summary["total_cost_cents"] == 1600
        assert summary["total_profit_cents"] == 1400
        assert summary["profit_margin"] == 46.67
        assert summary["average_order_value_cents"] == 3000

    def test_two_sales_with_refund_excluded(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=100, cost_cents=0)
        add_sale(db_session, created_at=NOW, lines=[(product, 1, 10000, 6000)])
        add_sale(db_session, created_at=NOW, lines=[(product, 1, 5000, 2000)])
        add_sale(db_session, created_at=NOW, lines=[(product, 1, 3000, 1000)], status="refunded")

        summary = aggregator(db_session, cost_basis=COST_BASIS_SNAPSHOT).compute("daily")["summary"]

        assert summary["total_sales"] == 2
        assert summary["total_revenue_cents"] == 15000
        assert summary["total_cost_cents"] == 8000
        assert summary["total_profit_cents"] == 7000
        assert summary["profit_margin"] == 46.67
        assert summary["average_order_value_cents"] == 7500

    def test_refunded_sales_excluded(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW - timedelta(hours=1), lines=[(product, 1, 1500, 800)])
        add_sale(db_session, created_at=NOW - timedelta(hours=1), lines=[(product, 5, 1500, 800)],
                 status="refunded")

        summary = aggregator(db_session).compute("daily")["summary"]

        assert summary["total_sales"] == 1
        assert summary["total_revenue_cents"] == 1500

    def test_revenue_uses_sale_total_after_discount(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW, lines=[(product, 2, 1500, 800)], discount_cents=500)

        summary = aggregator(db_session).compute("daily")["summary"]

        assert summary["total_revenue_cents"] == 2500
        assert summary["total_profit_cents"] == 2500 - 1600

    def test_average_order_value_rounds_half_up(self, db_session):
        product = make_product(db_session, name="Pen", price_cents=1, cost_cents=0)
        add_sale(db_session, created_at=NOW, lines=[(product, 1, 100, 0)])
        add_sale(db_session, created_at=NOW, lines=[(product, 1, 101, 0)])

        summary = aggregator(db_session).compute("daily")["summary"]

        # 201 / 2 = 100.5
        assert summary["average_order_value_cents"] == 101


class TestCostBasis:

    def test_current_cost_reflects_catalog_changes(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW, lines=[(product, 2, 1500, 800)])
        product.cost_cents = 1000
        db_session.commit()

        assert aggregator(db_session).compute("daily")["summary"]["total_cost_cents"] == 2000

    def test_snapshot_cost_ignores_catalog_changes(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW, lines=[(product, 2, 1500, 800)])
        product.cost_cents = 1000
        db_session.commit()

        report = aggregator(db_session, cost_basis=COST_BASIS_SNAPSHOT).compute("daily")
        assert report["summary"]["total_cost_cents"] == 1600

    def test_current_cost_falls_back_to_snapshot_for_deleted_product(self, db_session):
        product = make_product(db_session, name="Mug", price_cents=1500, cost_cents=800)
        add_sale(db_session, created_at=NOW, lines=[(product, 2, 1500, 800)])
        db_session.delete(product)
        db_session.commit()

        assert aggregator(db_session).compute("daily")["summary"]["total_cost_cents"] == 1600

    def test_unknown_cost_basis(self, db_session):
        with pytest.raises(ReportError):
            aggregator(db_session, cost_basis="average")


class TestBreakdowns:

    def test_top_products_by_quantity_limited_to_five(self, db_session):
        catalog = [make_product(db_session, name=f"P{i}", stock=50) for i in range(7)]
        for i, product in enumerate(catalog):
            add_sale(db_session, created_at=NOW, lines=[(product, i + 1, 100, 10)])

        top = aggregator(db_session).compute("daily")["top_products"]

        assert [entry["name"] for entry in top] == ["P6", "P5", "P4", "P3", "P2"]
        assert top[0] == {"product_id": catalog[6].id, "name": "P6", "quantity": 7, "revenue_cents": 700}

    def test_hourly_buckets_use_local_hour(self, db_session):
        product = make_product(db_session, name="Mug")
        add_sale(db_session, created_at=datetime(2026, 3, 15, 9, 5), lines=[(product, 1, 1000, 400)])
        add_sale(db_session, created_at=datetime(2026, 3, 15, 9, 55), lines=[(product, 1, 500, 400)])
        add_sale(db_session, created_at=datetime(2026, 3, 15, 13, 0), lines=[(product, 1, 700, 400)])

        hourly = aggregator(db_session).compute("daily")["hourly_sales"]

        assert hourly[9] == {"hour": 9, "sales": 2, "revenue_cents": 1500}
        assert hourly[13] == {"hour": 13, "sales": 1, "revenue_cents": 700}
        assert sum(bucket["sales"] for bucket in hourly) == 3

    def test_hourly_only_for_daily(self, db_session):
        assert aggregator(db_session).compute("weekly")["hourly_sales"] is None
        assert aggregator(db_session).compute("monthly")["hourly_sales"] is None

    def test_recent_sales_newest_first_limited_to_ten(self, db_session):
        product = make_product(db_session, name="Mug")
        for minute in range(12):
            add_sale(db_session, created_at=NOW - timedelta(minutes=minute), lines=[(product, 1, 100, 10)])

        recent = aggregator(db_session).compute("daily")["recent_sales"]

        assert len(recent) == 10
        stamps = [sale["created_at"] for sale in recent]
        assert stamps == sorted(stamps, reverse=True)
        assert "lines" in recent[0]


class TestWindows:

    def test_weekly_window_includes_last_seven_days(self, db_session):
        product = make_product(db_session, name="Mug")
        add_sale(db_session, created_at=NOW - timedelta(days=6), lines=[(product, 1, 100, 10)])
        add_sale(db_session, created_at=NOW - timedelta(days=8), lines=[(product, 1, 100, 10)])

        assert aggregator(db_session).compute("weekly")["summary"]["total_sales"] == 1
        assert aggregator(db_session).compute("daily")["summary"]["total_sales"] == 0

    def test_monthly_window(self, db_session):
        product = make_product(db_session, name="Mug")
        add_sale(db_session, created_at=datetime(2026, 2, 16), lines=[(product, 1, 100, 10)])
        add_sale(db_session, created_at=datetime(2026, 2, 14), lines=[(product, 1, 100, 10)])

        report = aggregator(db_session).compute("monthly")

        assert report["summary"]["total_sales"] == 1
        assert report["date_range"]["start"] == "2026-02-15T14:30:00Z"

    def test_unknown_period_falls_back_to_daily_window(self, db_session):
        report = aggregator(db_session).compute("yearly")

        assert report["date_range"] == {"start": "2026-03-15T00:00:00Z", "end": "2026-03-15T23:59:59Z"}

    def test_daily_window_in_configured_zone(self, db_session):
        # 03:00 UTC on the 15th is still the 14th in New York
        product = make_product(db_session, name="Mug")
        add_sale(db_session, created_at=datetime(2026, 3, 15, 3, 0), lines=[(product, 1, 100, 10)])

        report = aggregator(db_session, zone=get_zone("America/New_York")).compute("daily")

        assert report["summary"]["total_sales"] == 0
        assert report["date_range"]["start"] == "2026-03-15T04:00:00Z"

    def test_subtract_months_clamps_day(self):
        assert subtract_months(datetime(2026, 3, 31, 10, 0), 1) == datetime(2026, 2, 28, 10, 0)
        assert subtract_months(datetime(2026, 1, 15), 1) == datetime(2025, 12, 15)

    def test_period_window_daily_bounds(self):
        now = datetime(2026, 3, 15, 14, 30, tzinfo=timezone.utc)
        start, end = period_window("daily", now)
        assert start == datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 15, 23, 59, 59, 999999, tzinfo=timezone.utc)
