"""
Durable store subsystem.

Provides the async SQLAlchemy engine, session management and the ORM base
used by the mirror models.
"""

from src.core.database.base import Base, IdMixin, TimestampMixin, utcnow
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utcnow",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
