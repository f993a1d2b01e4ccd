"""Read-only data-access boundary.

Every query issued by the options, summary and chart services goes through
:func:`run_read`, which bounds it with a timeout, maps driver failures onto
the store error taxonomy and retries the transient ones.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import (
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from backend.app.core.resilience import RetryConfig, retry_with_backoff

T = TypeVar("T")

logger = logging.getLogger(__name__)

# SQLSTATE raised by PostgreSQL when statement_timeout cancels a query
_QUERY_CANCELED = "57014"
_TIMEOUT_MARKERS = (
    "statement timeout",
    "canceling statement",
    "timed out",
    "timeout expired",
    "interrupted",
)
# SQLite VM instructions between deadline checks
_SQLITE_PROGRESS_STEPS = 10_000


def classify_error(error: Exception) -> StoreError | None:
    """Map a SQLAlchemy error to a store error, or ``None`` if it is not transient."""
    if isinstance(error, sa_exc.TimeoutError):
        return StoreTimeoutError("Timed out waiting for a database connection")

    if isinstance(error, sa_exc.DBAPIError):
        orig = error.orig
        sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        message = str(orig).lower() if orig is not None else str(error).lower()
        if sqlstate == _QUERY_CANCELED or any(m in message for m in _TIMEOUT_MARKERS):
            return StoreTimeoutError("Database query timed out")
        if error.connection_invalidated or isinstance(
            error, (sa_exc.OperationalError, sa_exc.InterfaceError)
        ):
            return StoreUnavailableError("Database is unavailable")

    return None


@contextmanager
def _statement_deadline(db: Session, timeout: float) -> Iterator[None]:
    """Bound the statements run inside the block by ``timeout`` seconds."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        # SET LOCAL lasts until the end of the current transaction
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))
        yield
        return
    if dialect != "sqlite":
        yield
        return

    # SQLite has no statement timeout; a progress handler returning non-zero
    # aborts the running statement with OperationalError("interrupted")
    raw = db.connection().connection.dbapi_connection
    deadline = time.monotonic() + timeout
    raw.set_progress_handler(
        lambda: 1 if time.monotonic() > deadline else 0, _SQLITE_PROGRESS_STEPS
    )
    try:
        yield
    finally:
        raw.set_progress_handler(None, 0)


def run_read(
    db: Session,
    fn: Callable[[Session], T],
    *,
    timeout: float | None = None,
    retry: RetryConfig | None = None,
) -> T:
    """Run ``fn(db)`` under a statement timeout, retrying transient failures.

    Non-transient errors propagate untouched; transient ones surface as
    ``StoreTimeoutError`` or ``StoreUnavailableError`` after the last attempt.
    """
    effective_timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
    config = retry or RetryConfig.from_settings()

    def attempt() -> T:
        try:
            with _statement_deadline(db, effective_timeout):
                return fn(db)
        except sa_exc.SQLAlchemyError as e:
            mapped = classify_error(e)
            if mapped is None:
                raise
            raise mapped from e

    def rollback(error: StoreError) -> None:
        db.rollback()

    return retry_with_backoff(attempt, config, on_retry=rollback)
