"""
Configuration subsystem.

- **config.py**: static configuration from environment variables (.env support)
- **game_config.py**: immutable game catalogs loaded from YAML

Only the static layer is re-exported here; logging imports this package, so
game catalogs (which log while loading) are imported from their own module:

>>> from src.core.config.game_config import load_game_config
"""

from src.core.config.config import Config, Environment, StorageBackend

__all__ = [
    "Config",
    "Environment",
    "StorageBackend",
]
