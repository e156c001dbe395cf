"""
EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple engine services from observers. The ledger publishes
`ledger.mirror_failed`, the duel coordinator publishes `duel.*`, and so on;
operators, reconciliation jobs and tests subscribe without the publisher
knowing about them.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to the tiered concurrency model:
  * CRITICAL / HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation (one failing listener never blocks others or the publisher)

Design Decisions
----------------
- Instance-based so tests get a fresh bus per case.
- Wildcards use fnmatch patterns ("duel.*", "*").
- Infrastructure only: no game rules live here.
"""

from __future__ import annotations

import asyncio
import inspect
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional

from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Tiered async event bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("duel.resolved", on_duel, priority=ListenerPriority.HIGH)
    >>> await bus.publish("duel.resolved", {"winner": "dachsfan"})
    """

    def __init__(self, *, listener_timeout_seconds: float = 5.0) -> None:
        self._listeners: Dict[str, List[EventListener]] = {}
        self._timeout = listener_timeout_seconds
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._published: Dict[str, int] = {}
        self._errors = 0

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        if len(sig.parameters) != 1:
            name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(sig.parameters)} parameters for '{name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
    ) -> str:
        """Subscribe a callback to an event name or wildcard pattern."""
        self._validate_callback_signature(callback)
        listener = EventListener.from_callback(event_name, callback, priority, identifier)
        self._listeners.setdefault(event_name, []).append(listener)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        listeners = self._listeners.get(event_name, [])
        remaining = [lst for lst in listeners if lst.identifier != identifier]
        self._listeners[event_name] = remaining
        return len(remaining) != len(listeners)

    def clear(self) -> None:
        self._listeners.clear()

    def _matching(self, event_name: str) -> List[EventListener]:
        matched = [
            listener
            for pattern, listeners in self._listeners.items()
            if pattern == event_name or fnmatchcase(event_name, pattern)
            for listener in listeners
        ]
        return sorted(matched, key=lambda lst: (lst.priority.value, lst.sequence))

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners. LOW listeners run
        in the background and are not included.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1
        listeners = self._matching(event_name)

        logger.debug(
            "EventBus: publishing event",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )
        if not listeners:
            return []

        results: List[Any] = []

        for listener in listeners:
            if listener.priority in (ListenerPriority.CRITICAL, ListenerPriority.HIGH):
                results.append(
                    await self._run_listener(listener, event_name, data, self._timeout)
                )

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *(self._run_listener(lst, event_name, data, None) for lst in normal)
                )
            )

        for listener in listeners:
            if listener.priority is ListenerPriority.LOW:
                task = asyncio.get_running_loop().create_task(
                    self._run_listener(listener, event_name, data, None),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                if timeout:
                    result = await asyncio.wait_for(result, timeout=timeout)
                else:
                    result = await result
            return result
        except Exception as exc:
            self._errors += 1
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority tasks (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "events_published": dict(self._published),
            "listener_errors": self._errors,
            "listener_count": sum(len(v) for v in self._listeners.values()),
            "background_tasks": len(self._background_tasks),
        }
