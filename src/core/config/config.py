"""
Static configuration management for the DachsTaler engine.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles process-level settings that are fixed at startup: storage endpoints,
logging behaviour, and where the game catalogs are read from.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Collect every fallback to a default as a startup warning

Non-Responsibilities
--------------------
- Game rules and catalogs (handled by game_config.load_game_config)
- Runtime configuration changes (except safe reload)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()
- Invalid values fall back to the documented default and are recorded
  as startup warnings instead of raising

Environment Variables
---------------------
- ENVIRONMENT: development | testing | staging | production
- DEBUG, LOG_LEVEL, LOG_JSON, LOG_TO_FILE
- DATABASE_URL, DATABASE_ECHO, DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW
- DURABLE_MIRROR_ENABLED
- REDIS_URL, REDIS_SOCKET_TIMEOUT, REDIS_MAX_CONNECTIONS
- STORAGE_BACKEND: redis | memory
- GAME_CONFIG_DIR: directory of YAML catalogs (defaults to packaged files)
- ADMIN_USERS: comma separated usernames
- ACHIEVEMENT_REWARDS_ENABLED: overrides the catalog flag when set
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

from dotenv import load_dotenv

from src.core.exceptions import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# Enums and Constants
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            # Structured logger is not initialized yet during bootstrap
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


class StorageBackend(Enum):
    """Primary key-value store implementations."""

    REDIS = "redis"
    MEMORY = "memory"


_TRUE = frozenset({"true", "yes", "1", "on"})
_FALSE = frozenset({"false", "no", "0", "off"})


class Config:
    """
    Centralized static configuration for the DachsTaler engine.

    Usage
    -----
    >>> Config.STORAGE_BACKEND
    'redis'
    >>> Config.is_production()
    False
    """

    _validated: bool = False
    _warnings: Dict[str, str] = {}

    # =========================================================================
    # Environment
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_TO_FILE: bool = True

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"

    # =========================================================================
    # Durable Store (SQL mirror)
    # =========================================================================

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/dachstaler.db"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DURABLE_MIRROR_ENABLED: bool = True

    # =========================================================================
    # Primary Store
    # =========================================================================

    STORAGE_BACKEND: str = StorageBackend.REDIS.value
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: int = 5

    # =========================================================================
    # Game Configuration
    # =========================================================================

    GAME_CONFIG_DIR: str = ""
    ADMIN_USERS: FrozenSet[str] = frozenset()
    ACHIEVEMENT_REWARDS_ENABLED: Optional[bool] = None

    # =========================================================================
    # Parsing Helpers
    # =========================================================================

    @classmethod
    def _warn(cls, key: str, message: str) -> None:
        cls._warnings[key] = message

    @classmethod
    def _int(cls, key: str, default: int, min_val: int, max_val: int) -> int:
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            cls._warn(key, f"{key}='{raw}' is not an integer, using {default}")
            return default
        if not min_val <= value <= max_val:
            cls._warn(key, f"{key}={value} outside [{min_val}, {max_val}], using {default}")
            return default
        return value

    @classmethod
    def _optional_bool(cls, key: str) -> Optional[bool]:
        """Parse a tri-state flag: unset means 'defer to the catalog'."""
        raw = os.getenv(key)
        if raw is None:
            return None
        normalized = raw.strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
        cls._warn(key, f"{key}='{raw}' is not a boolean, ignoring")
        return None

    @classmethod
    def _bool(cls, key: str, default: bool) -> bool:
        value = cls._optional_bool(key)
        return default if value is None else value

    @classmethod
    def _str(cls, key: str, default: str) -> str:
        return os.getenv(key, default)

    @classmethod
    def _name_set(cls, key: str) -> FrozenSet[str]:
        return frozenset(
            name.strip().lower() for name in cls._str(key, "").split(",") if name.strip()
        )

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """Read every setting from the environment. Invalid values fall back."""
        cls._warnings = {}

        cls.ENVIRONMENT = Environment.from_string(cls._str("ENVIRONMENT", "development")).value
        cls.DEBUG = cls._bool("DEBUG", False)
        cls.LOG_LEVEL = cls._str("LOG_LEVEL", "INFO").upper()
        cls.LOG_JSON = cls._optional_bool("LOG_JSON")
        cls.LOG_TO_FILE = cls._bool("LOG_TO_FILE", cls.ENVIRONMENT != "testing")

        cls.DATABASE_URL = cls._str("DATABASE_URL", "sqlite+aiosqlite:///./data/dachstaler.db")
        cls.DATABASE_ECHO = cls._bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_SIZE = cls._int("DATABASE_POOL_SIZE", 5, 1, 200)
        cls.DATABASE_MAX_OVERFLOW = cls._int("DATABASE_MAX_OVERFLOW", 10, 0, 200)
        cls.DURABLE_MIRROR_ENABLED = cls._bool("DURABLE_MIRROR_ENABLED", True)

        backend = cls._str("STORAGE_BACKEND", StorageBackend.REDIS.value).lower()
        if backend not in {b.value for b in StorageBackend}:
            cls._warn("STORAGE_BACKEND", f"STORAGE_BACKEND='{backend}' is not supported, using redis")
            backend = StorageBackend.REDIS.value
        cls.STORAGE_BACKEND = backend
        cls.REDIS_URL = cls._str("REDIS_URL", "redis://localhost:6379/0")
        cls.REDIS_MAX_CONNECTIONS = cls._int("REDIS_MAX_CONNECTIONS", 50, 1, 500)
        cls.REDIS_SOCKET_TIMEOUT = cls._int("REDIS_SOCKET_TIMEOUT", 5, 1, 60)

        cls.GAME_CONFIG_DIR = cls._str("GAME_CONFIG_DIR", "")
        cls.ADMIN_USERS = cls._name_set("ADMIN_USERS")
        cls.ACHIEVEMENT_REWARDS_ENABLED = cls._optional_bool("ACHIEVEMENT_REWARDS_ENABLED")

    @classmethod
    def validate(cls) -> None:
        """
        Load once and check the settings that must hold before serving.

        Raises
        ------
        ConfigurationError:
            In production, if the database URL is empty or the memory
            backend is selected.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        if cls.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            cls._warn("LOG_LEVEL", f"LOG_LEVEL='{cls.LOG_LEVEL}' is not a level, using INFO")
            cls.LOG_LEVEL = "INFO"

        problems = []
        if not cls.DATABASE_URL:
            problems.append(ConfigurationError("DATABASE_URL", "must not be empty"))
        if cls.is_production() and cls.STORAGE_BACKEND == StorageBackend.MEMORY.value:
            problems.append(
                ConfigurationError("STORAGE_BACKEND", "memory backend is not allowed in production")
            )
        if problems and cls.is_production():
            raise problems[0]
        for problem in problems:
            cls._warn(problem.config_key, problem.message)

        if cls._warnings:
            logger.warning(f"Configuration warnings: {cls._warnings}")
        cls._validated = True

    @classmethod
    def reload(cls) -> None:
        """Re-read the environment, bypassing the one-shot validation guard."""
        cls._validated = False
        cls.validate()

    @classmethod
    def warnings(cls) -> Dict[str, str]:
        return dict(cls._warnings)

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == "production"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == "testing"

    @classmethod
    def summary(cls) -> Dict[str, Any]:
        """Non-sensitive settings for the startup log."""
        return {
            "environment": cls.ENVIRONMENT,
            "storage_backend": cls.STORAGE_BACKEND,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "durable_mirror_enabled": cls.DURABLE_MIRROR_ENABLED,
            "game_config_dir": cls.GAME_CONFIG_DIR or "<packaged defaults>",
            "admin_count": len(cls.ADMIN_USERS),
        }


Config.validate()
