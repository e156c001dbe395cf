"""
Core event types for the EventBus.

Priority Levels
---------------
- CRITICAL (0): sequential, awaited, timeout-protected.
- HIGH (10): sequential, awaited, timeout-protected.
- NORMAL (50): concurrent, awaited.
- LOW (100): fire-and-forget background tasks.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Awaitable[Any]],
    Callable[[EventPayload], Any],
]

_listener_counter = itertools.count(1)


class ListenerPriority(Enum):
    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(slots=True)
class EventListener:
    event_name: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    sequence: int

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
    ) -> "EventListener":
        name = getattr(callback, "__qualname__", None) or repr(callback)
        sequence = next(_listener_counter)
        return cls(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier or f"{name}#{sequence}",
            sequence=sequence,
        )
