# Overview: Retry helpers for writes that can lose a race with another operator session.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation, retrying on concurrency-related failures.

    Retries on OperationalError (SQLite "database is locked", deadlocks) and
    StaleDataError (version_id_col mismatch). The session is rolled back
    before each retry, so func must re-read whatever it needs.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def rowcount_of(result) -> int:
    """Rows matched by an UPDATE; conditional updates use 0 to signal a miss."""
    return int(result.rowcount or 0)
