# Overview: Transaction helpers for the write paths that must not interleave.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


class RetryableConflict(Exception):
    """Raised inside an operation to request a clean retry."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_serialized() -> None:
    """
    Open the current session transaction with writer isolation.

    SQLite: BEGIN IMMEDIATE takes the database write lock up front, so a
    concurrent writer waits instead of reading stale rows.
    Other backends: the connection runs at SERIALIZABLE.

    Both only take effect at the start of a transaction, so a read
    transaction already open on the session (the bearer-token user lookup,
    for one) is committed first. Callers must not hold pending writes.
    """
    if db.session().in_transaction():
        db.session.commit()

    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    else:
        db.session.connection(execution_options={"isolation_level": "SERIALIZABLE"})


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, serialization failures),
    StaleDataError (optimistic locking conflicts) and anything else listed
    in retry_on. The session is rolled back before each retry.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %d/%d): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_or_conflict(conflict_error) -> None:
    """Commit, translating a unique-constraint race into conflict_error."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict_error
