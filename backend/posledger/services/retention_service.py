# Overview: Bounded deletion of recent completed sales (privileged maintenance).

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from ..models.sales import SALE_STATUS_COMPLETED
from ..validation import ValidationError
from posledger.time_utils import utcnow
from .errors import RangeExceeded, StorageFailure
from .repositories import SaleStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_DAYS = 30


class LedgerRetention:
    """
    Deletes completed sales created within the last ``days`` days.

    Not a business reversal: stock is not restored, refunded sales and the
    stock movement log are left alone. The ``max_days`` bound protects
    against wiping the whole ledger by accident.
    """

    def __init__(
        self,
        session,
        *,
        sales: SaleStore | None = None,
        max_days: int = DEFAULT_MAX_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.sales = sales or SaleStore(session)
        # Never wider than the hard ceiling, whatever the config asks for
        self.max_days = min(max_days, DEFAULT_MAX_DAYS)
        self.clock = clock

    @classmethod
    def from_config(cls, session, config: Mapping) -> "LedgerRetention":
        return cls(session, max_days=int(config.get("RETENTION_MAX_DAYS", DEFAULT_MAX_DAYS)))

    def purge_recent_sales(self, days: int = 1) -> int:
        """Delete completed sales with created_at >= now - days. Returns the count."""
        if not isinstance(days, int) or isinstance(days, bool):
            raise ValidationError("days must be an integer")
        if days > self.max_days:
            raise RangeExceeded(days, self.max_days)
        if days < 1:
            raise ValidationError("days must be >= 1")

        cutoff = self.clock() - timedelta(days=days)
        try:
            deleted = self.sales.delete_since(status=SALE_STATUS_COMPLETED, cutoff=cutoff)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFailure() from exc

        logger.info("Purged %d completed sales created since %s", deleted, cutoff.isoformat())
        return deleted
