# Overview: Transaction and locking helpers shared by the ledger services.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .errors import StorageFailure

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Rows already in the identity map are refreshed from the locked read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update().populate_existing()


def begin_write(session) -> None:
    """
    Open the unit of work as a write transaction.

    SQLite only has database-level write locks, so the transaction is started
    with BEGIN IMMEDIATE: the availability check and the stock decrement run
    while no other writer can interleave. Other dialects rely on row locks.
    """
    if session.get_bind().dialect.name == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the failure
    surfaces as StorageFailure.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise StorageFailure() from exc
            logger.warning("Retrying after concurrency failure (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    raise StorageFailure("No attempts made")
