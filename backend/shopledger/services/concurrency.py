# Overview: Row locking and conflict retry for read-modify-write operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import PersistenceError

# Errors that mean "someone else wrote first", not "the request is wrong"
CONFLICT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch conflicting writers on SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The whole operation is re-run so it
    re-reads fresh quantities instead of re-applying stale ones.
    """
    if attempts is None:
        attempts = current_app.config.get("SHOPLEDGER_RETRY_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            return func()
        except CONFLICT_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    f"Operation failed after {attempts} attempts: {exc}"
                ) from exc
            current_app.logger.warning(
                "Write conflict (attempt %s/%s), retrying: %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    raise PersistenceError("Operation was not attempted")
