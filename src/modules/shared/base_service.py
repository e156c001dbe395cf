"""
Base Service Foundation

Domain services (slots, shop, duel, achievements, leaderboard, player)
implement game rules, hand every balance change to the Economy Ledger and
publish domain events. This base gives them the shared plumbing:

- read-only `GameConfig`
- event emission
- operation and error logs with a uniform `extra` layout

Services never own a storage connection; the store is injected.

Usage
-----
    class ShopService(BaseService):
        def __init__(self, store, ledger, game_config, event_bus):
            super().__init__(game_config, event_bus, get_logger(__name__))
            self._store = store
            self._ledger = ledger
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus


class BaseService:
    def __init__(self, game_config: GameConfig, event_bus: EventBus, logger: Logger) -> None:
        self._config = game_config
        self._events = event_bus
        self.log = logger

    @property
    def game_config(self) -> GameConfig:
        return self._config

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Publish a domain event; listener failures are isolated by the bus."""
        await self._events.publish(event_type, data)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(operation, extra={"operation": operation, **context})

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_type": type(error).__name__, **context},
            exc_info=True,
        )
