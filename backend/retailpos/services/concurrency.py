# Overview: Service-layer helpers for locking, transactions and retry.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LockTimeoutError
from ..extensions import db

logger = logging.getLogger(__name__)

_LOCK_FAILURE_MARKERS = (
    "database is locked",
    "lock timeout",
    "lock_timeout",
    "could not obtain lock",
    "deadlock",
    "could not serialize",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the current transaction in write mode with a bounded lock wait.

    - SQLite: BEGIN IMMEDIATE, so the writer lock is held from the first read
      and competing writers wait (up to the driver timeout) instead of
      interleaving between our read and our write.
    - PostgreSQL: SET LOCAL lock_timeout so FOR UPDATE gives up after
      LOCK_TIMEOUT_SECONDS rather than blocking indefinitely.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        dbapi_connection = db.session.connection().connection.dbapi_connection
        if not dbapi_connection.in_transaction:
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config["LOCK_TIMEOUT_SECONDS"] * 1000)
        db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def _is_lock_failure(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_FAILURE_MARKERS)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back on every
    failure, so an aborted attempt never leaves partial writes behind.
    When the last attempt still fails on a lock, LockTimeoutError is raised
    so callers can tell the client to retry.
    """
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if _is_lock_failure(exc):
                    logger.warning("Giving up after %d attempts: %s", attempts, exc)
                    raise LockTimeoutError() from exc
                raise
            logger.info("Retrying transaction (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
