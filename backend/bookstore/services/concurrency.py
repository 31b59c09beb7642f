# Overview: Transaction boundaries, row locking and caller-side retry for transient store failures.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; acquire_write_lock() covers it there.
    """
    return query.with_for_update()


def acquire_write_lock() -> None:
    """
    On SQLite, start the transaction with BEGIN IMMEDIATE so the database
    write lock is held from the first read. This serializes check-then-write
    sequences (stock, voucher limits) across connections. No-op elsewhere,
    and when a transaction is already open on the connection.
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func, *, commit: bool = True):
    """
    Run func as one unit of work.

    commit=True: own the transaction (take the write lock, commit on success,
    roll back on any exception and re-raise).
    commit=False: the caller owns the transaction; func just joins it.
    """
    if not commit:
        return func()
    try:
        acquire_write_lock()
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
