# Overview: Time-windowed sales insights computed from the sale ledger (read-only).

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Mapping

from ..models import Sale
from ..models.sales import SALE_STATUS_COMPLETED
from posledger.time_utils import get_zone, to_utc_naive, to_utc_z, utc_to_local, utcnow
from .repositories import ProductStore, SaleStore


PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"
PERIODS = (PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY)

COST_BASIS_CURRENT = "current"
COST_BASIS_SNAPSHOT = "snapshot"

TOP_PRODUCTS_LIMIT = 5
RECENT_SALES_LIMIT = 10


class ReportError(Exception):
    """Raised when report generation is misconfigured."""
    pass


def subtract_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month length."""
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def period_window(period: str, now_local: datetime) -> tuple[datetime, datetime]:
    """
    Window for a period, in the zone of ``now_local``.

    - daily: start of today .. end of today
    - weekly: now - 7 days .. now
    - monthly: now - 1 calendar month .. now
    Unknown periods fall back to daily.
    """
    if period == PERIOD_WEEKLY:
        return now_local - timedelta(days=7), now_local
    if period == PERIOD_MONTHLY:
        return subtract_months(now_local, 1), now_local
    start = now_local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = now_local.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


class InsightsAggregator:
    """
    Revenue, cost of goods, profit, top sellers and hourly distribution over
    completed sales. Refunded sales contribute nothing.

    cost_basis:
    - "current": product's cost at report time (falls back to the line's
      snapshot cost when the product row is gone)
    - "snapshot": cost captured on the sale line at sale time
    """

    def __init__(
        self,
        session,
        *,
        sales: SaleStore | None = None,
        products: ProductStore | None = None,
        zone: tzinfo | None = None,
        cost_basis: str = COST_BASIS_CURRENT,
        clock: Callable[[], datetime] = utcnow,
    ):
        if cost_basis not in (COST_BASIS_CURRENT, COST_BASIS_SNAPSHOT):
            raise ReportError(f"Unknown cost basis: {cost_basis}")
        self.sales = sales or SaleStore(session)
        self.products = products or ProductStore(session)
        self.zone = zone or get_zone("UTC")
        self.cost_basis = cost_basis
        self.clock = clock

    @classmethod
    def from_config(cls, session, config: Mapping) -> "InsightsAggregator":
        return cls(
            session,
            zone=get_zone(config.get("LEDGER_TIMEZONE", "UTC")),
            cost_basis=config.get("INSIGHTS_COST_BASIS", COST_BASIS_CURRENT),
        )

    def _unit_costs(self, sales: list[Sale]) -> Callable:
        if self.cost_basis == COST_BASIS_SNAPSHOT:
            return lambda line: line.unit_cost_cents or 0

        product_ids = {line.product_id for sale in sales for line in sale.lines}
        products = self.products.get_many(product_ids)

        def _current(line) -> int:
            product = products.get(line.product_id)
            if product is not None:
                return product.cost_cents
            return line.unit_cost_cents or 0

        return _current

    def compute(self, period: str = PERIOD_DAILY, *, now: datetime | None = None) -> dict:
        """
        Build the insights report for ``period``.

        ``now`` is UTC-naive (defaults to the clock); window bounds are taken
        in the configured zone and compared against the UTC ledger axis.
        """
        now_local = utc_to_local(now or self.clock(), self.zone)
        start_local, end_local = period_window(period, now_local)
        start, end = to_utc_naive(start_local), to_utc_naive(end_local)

        sales = self.sales.in_window(status=SALE_STATUS_COMPLETED, start=start, end=end)
        unit_cost = self._unit_costs(sales)

        total_sales = len(sales)
        total_revenue = 0
        total_cost = 0
        product_sales: dict[int, dict] = {}
        hourly = [{"hour": h, "sales": 0, "revenue_cents": 0} for h in range(24)]

        for sale in sales:
            total_revenue += sale.total_cents
            bucket = hourly[utc_to_local(sale.created_at, self.zone).hour]
            bucket["sales"] += 1
            bucket["revenue_cents"] += sale.total_cents

            for line in sale.lines:
                total_cost += unit_cost(line) * line.quantity
                entry = product_sales.get(line.product_id)
                if entry is None:
                    entry = product_sales[line.product_id] = {
                        "product_id": line.product_id,
                        "name": line.product_name,
                        "quantity": 0,
                        "revenue_cents": 0,
                    }
                entry["quantity"] += line.quantity
                entry["revenue_cents"] += line.unit_price_cents * line.quantity

        total_profit = total_revenue - total_cost
        profit_margin = (total_profit / total_revenue * 100.0) if total_revenue > 0 else 0.0
        average_order_value = (
            (total_revenue + total_sales // 2) // total_sales if total_sales else 0
        )

        # sorted() is stable: ties keep first-seen order
        top_products = sorted(product_sales.values(), key=lambda e: e["quantity"], reverse=True)

        return {
            "period": period,
            "date_range": {"start": to_utc_z(start), "end": to_utc_z(end)},
            "summary": {
                "total_sales": total_sales,
                "total_revenue_cents": total_revenue,
                "total_cost_cents": total_cost,
                "total_profit_cents": total_profit,
                "profit_margin": round(profit_margin, 2),
                "average_order_value_cents": average_order_value,
            },
            "top_products": top_products[:TOP_PRODUCTS_LIMIT],
            "hourly_sales": hourly if period == PERIOD_DAILY else None,
            "recent_sales": [sale.to_dict() for sale in sales[:RECENT_SALES_LIMIT]],
        }
