# Overview: Row locking and stale-write retry for single-order transitions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for order transitions.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id_col
    check on Order is what rejects the losing writer.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a transition with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (another writer changed the order first). The retried call re-reads the
    order, so a transition whose source state is gone fails with
    InvalidTransitionError instead of being applied out of order.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
