"""
Core infrastructure layer for the DachsTaler engine.

Subsystems
----------
- config: static environment configuration and immutable game catalogs
- logging: structured logging, logger factory, LogContext
- storage: key-value store contract (Redis, in-memory)
- database: durable SQL mirror engine and sessions
- event: async event bus
- exceptions: infrastructure exception hierarchy

Design Decisions
----------------
- Import from the submodule that owns a primitive
  (`from src.core.storage import InMemoryStore`). This package only re-exports
  the leaf exception types so importing `src.core` never pulls in an engine,
  a connection pool or a logging listener.
"""

from src.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    EngineError,
    EngineInfrastructureException,
    ErrorSeverity,
    StorageUnavailableError,
)

__all__ = [
    "ConfigurationError",
    "DatabaseError",
    "EngineError",
    "EngineInfrastructureException",
    "ErrorSeverity",
    "StorageUnavailableError",
]
