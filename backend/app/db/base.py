# backend/app/db/base.py
"""
SQLAlchemy declarative base plus re-exports of the session helpers,
so models and endpoints only ever import from db.base.
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


from backend.app.db.session import (  # noqa: E402
    engine,
    AsyncSessionLocal,
    get_db,
    transaction,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionLocal",
    "get_db",
    "transaction",
]
