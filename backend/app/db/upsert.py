# backend/app/db/upsert.py
"""
Dialect-aware INSERT .. ON CONFLICT helpers.

PostgreSQL (production) and SQLite (local/tests) both support
ON CONFLICT DO UPDATE and RETURNING, but SQLAlchemy exposes them through
dialect-specific insert() constructs.
"""
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.errors import ConflictError, DomainError, InvalidDataError

UNIQUE_VIOLATION = "23505"
NOT_NULL_VIOLATION = "23502"


def upsert_insert(session: AsyncSession, model):
    """Return the ON CONFLICT-capable insert() for the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upserts are not supported on {dialect}")


def classify_integrity_error(exc: IntegrityError) -> Optional[DomainError]:
    """
    Map a constraint violation onto the domain taxonomy.

    Unique violations become ConflictError, NOT NULL violations become
    InvalidDataError. Anything else returns None and should be re-raised.
    """
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig if orig is not None else exc).lower()

    if sqlstate == UNIQUE_VIOLATION or "unique constraint" in message or "duplicate key" in message:
        return ConflictError("Record already exists", details={"reason": message})

    if (
        sqlstate == NOT_NULL_VIOLATION
        or "not null constraint" in message
        or "not-null constraint" in message
    ):
        return InvalidDataError("Invalid data: a required field is missing", details={"reason": message})

    return None
