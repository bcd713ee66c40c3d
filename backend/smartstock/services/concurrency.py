# Overview: Transaction scope, row locking, retry and store-error translation.

"""
Store primitives shared by every write path.

- transaction(): scoped unit of work. Commits on clean exit, rolls back on
  any other exit path (exception, client abort, deadline).
- lock_for_update(): exclusive row lock for read-modify-write.
- translate_integrity_error(): IntegrityError -> UniqueViolation /
  ForeignKeyViolation / CheckViolation carrying the constraint name.
- run_with_retry(): re-run a whole unit of work on Transient failures.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager

from flask import current_app, g, has_app_context, has_request_context
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    CheckViolation,
    ForeignKeyViolation,
    StoreViolation,
    Transient,
    UniqueViolation,
)
from ..extensions import db

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
_PG_UNIQUE = "23505"
_PG_FOREIGN_KEY = "23503"
_PG_CHECK = "23514"
_PG_NOT_NULL = "23502"

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<name>.+)$")
_SQLITE_CHECK = re.compile(r"(?:CHECK|NOT NULL) constraint failed: (?P<name>.+)$")


def install_sqlite_pragmas(engine: Engine) -> None:
    """Turn on foreign key enforcement for every new SQLite connection."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; it serializes writers with a
    database-level lock instead, which surfaces as OperationalError ->
    Transient under contention.
    """
    return query.with_for_update()


def translate_integrity_error(exc: IntegrityError) -> StoreViolation:
    orig = getattr(exc, "orig", None)

    # psycopg / psycopg2 expose SQLSTATE and the constraint name
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        diag = getattr(orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None)
        if sqlstate == _PG_UNIQUE:
            return UniqueViolation(constraint)
        if sqlstate == _PG_FOREIGN_KEY:
            return ForeignKeyViolation(constraint)
        if sqlstate in (_PG_CHECK, _PG_NOT_NULL):
            return CheckViolation(constraint)

    text = str(orig if orig is not None else exc).strip()
    match = _SQLITE_UNIQUE.search(text)
    if match:
        return UniqueViolation(match.group("name"))
    if "FOREIGN KEY constraint failed" in text:
        return ForeignKeyViolation(None)
    match = _SQLITE_CHECK.search(text)
    if match:
        return CheckViolation(match.group("name"))
    return CheckViolation(None, text)


def request_deadline() -> float | None:
    if has_request_context():
        return g.get("deadline")
    return None


def check_deadline() -> None:
    """Raise Transient once the current request has run past its deadline."""
    deadline = request_deadline()
    if deadline is not None and time.monotonic() > deadline:
        raise Transient("Request deadline exceeded")


@contextmanager
def transaction():
    """
    Scoped unit of work on the Flask-SQLAlchemy session.

    Yields the session. Any exception rolls everything back, so no partial
    document, movement or alert is ever committed.
    """
    session = db.session
    try:
        yield session
        check_deadline()
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise translate_integrity_error(exc) from exc
    except (OperationalError, StaleDataError) as exc:
        session.rollback()
        raise Transient("Database temporarily unavailable") from exc
    except BaseException:
        session.rollback()
        raise


def flush() -> None:
    """Flush pending writes, translating constraint failures."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise translate_integrity_error(exc) from exc
    except OperationalError as exc:
        raise Transient("Database temporarily unavailable") from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a unit of work with retry on Transient failures.

    ``func`` must open its own transaction() so a retry starts clean.
    """
    for attempt in range(attempts):
        try:
            return func()
        except Transient:
            if attempt >= attempts - 1:
                raise
            check_deadline()
            if has_app_context():
                current_app.logger.warning("Transient store failure, retrying (attempt %d)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
