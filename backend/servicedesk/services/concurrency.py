# Overview: Transaction helpers shared by every mutating ledger operation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import DuplicateConstraintError, InternalLedgerError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the unit of work as a write transaction bounded by a timeout.

    SQLite: BEGIN IMMEDIATE serializes writers for the whole operation.
    PostgreSQL: statement_timeout aborts a stuck transaction, which the
    retry helper surfaces as a retryable internal error.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        raw = db.session.connection().connection.dbapi_connection
        if not raw.in_transaction:
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("LEDGER_TX_TIMEOUT_SECONDS", 5)) * 1000
        db.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a unit of work, rolling back on any failure.

    Retries on OperationalError (deadlocks, locks, timeouts) and StaleDataError
    (optimistic locking conflicts). Business errors roll back and propagate
    on the first attempt. Exhausted retries raise InternalLedgerError.
    """
    if attempts is None:
        attempts = int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error("Ledger write failed after %s attempts: %s", attempts, exc)
                raise InternalLedgerError(
                    "The ledger store is busy; no changes were applied",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Ledger write conflict (attempt %s/%s), retrying: %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateConstraintError(
                "The change conflicts with an existing record",
                details={"constraint": str(exc.orig)},
            ) from exc
        except Exception:
            db.session.rollback()
            raise


def in_write_transaction(func):
    """Run func inside begin_write_transaction / commit, with retries."""
    def _op():
        begin_write_transaction()
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op)
