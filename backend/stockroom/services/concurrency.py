# Overview: Row locking and retry helpers shared by every stock-level write.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the optimistic
    Product.version_id check is what catches a concurrent writer.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("LOCK_RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB unit of work, retrying the whole of it on concurrency failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic version conflict). The session is rolled back
    before each retry so func() always starts from committed state. Any other
    error rolls back whatever func() had flushed and propagates unchanged.
    """
    if attempts is None:
        attempts = _default_attempts()

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning(
                    "Retrying after concurrency conflict (attempt %s/%s): %s",
                    attempt + 1,
                    attempts,
                    exc.__class__.__name__,
                )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
