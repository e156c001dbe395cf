"""
Event system public API.

Import from here rather than from submodules:

>>> from src.core.event import EventBus, ListenerPriority
"""

from src.core.event.bus import EventBus
from src.core.event.types import CallbackType, EventListener, EventPayload, ListenerPriority

__all__ = [
    "EventBus",
    "EventListener",
    "EventPayload",
    "CallbackType",
    "ListenerPriority",
]
