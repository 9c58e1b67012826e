# Overview: Retry and row-locking helpers shared by the write paths (snapshots, audit marks).

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


T = TypeVar("T")

# Lock timeouts and optimistic-version conflicts are worth another attempt
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Row-level lock for read-modify-write on inventory rows.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; Postgres/MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
) -> T:
    """
    Run a unit of DB work, rolling back and retrying on transient conflicts.

    func must be safe to re-run from scratch: everything it staged in the
    session is discarded by the rollback before the next attempt.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning(
                    "Retrying after %s (attempt %d of %d)",
                    type(exc).__name__,
                    attempt + 1,
                    attempts,
                )
            time.sleep(backoff_base * (2 ** attempt))
    raise RuntimeError("run_with_retry called with attempts < 1")
