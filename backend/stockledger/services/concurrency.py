# Overview: Service-layer operations for concurrency; unit-of-work retry and row locking.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db


# Failures that mean "someone else touched the same rows"; the whole unit
# of work is rolled back and run again.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, ConcurrencyConflictError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; version_id columns catch the
    conflict there instead (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work, rolling back on any failure.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and ConcurrencyConflictError raised by
    services. When retries are exhausted the caller receives
    ConcurrencyConflictError. Every other exception rolls back the session
    and propagates unchanged, so no partial write survives.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Unit of work failed after %d attempts: %s", attempts, exc
                )
                if isinstance(exc, ConcurrencyConflictError):
                    raise
                raise ConcurrencyConflictError(
                    "Concurrent update conflict; retry the request",
                    attempts=attempts,
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
