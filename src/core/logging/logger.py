"""
DachsTaler Logging Subsystem

Purpose
-------
One logging stack shared by every engine component:

- JSON records for aggregation, readable text for local runs.
- Player and action context carried through ContextVars, so a spin, a
  purchase or a duel resolution can be followed across the ledger, the
  store and the mirror by one correlation id.
- Emitting tasks never touch a handler directly: records go through a
  bounded QueueHandler and a QueueListener thread does the I/O.
- Optional daily rotating JSON file (LOG_TO_FILE, off in tests).

Usage
-----
>>> logger = get_logger(__name__)
>>> async with LogContext(player="dachsfan", action="spin"):
...     logger.info("Spin resolved", extra={"points": 5})

Dependencies
------------
- src.core.config.config.Config
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config

_action_context: ContextVar[Dict[str, Any]] = ContextVar("action_context", default={})

CONTEXT_FIELDS = ("player", "action", "correlation_id")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-34s | %(player)s/%(action)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "dachstaler.json.log"
QUEUE_MAX_SIZE = 10_000

_INITIALIZED_FLAG = "_dachstaler_logging_initialized"

_listener: Optional[QueueListener] = None
_dropped_records = 0


def _level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ActionContextFilter(logging.Filter):
    """Copy the current action context onto the record before it is queued."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _action_context.get({})
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, context.get(name, "-"))
        return True


class JSONFormatter(logging.Formatter):
    RESERVED = frozenset(
        logging.LogRecord("", 0, "", 0, "", None, None).__dict__
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        document: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, "-")
            if value != "-":
                document[name] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RESERVED and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            document["extra"] = extra
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        return json.dumps(document, ensure_ascii=False, default=str)


class DroppingQueueHandler(QueueHandler):
    """Never block the event loop: a full queue drops the record."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        global _dropped_records
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _dropped_records += 1
            sys.stderr.write("DachsTaler log queue full; record dropped.\n")


# ============================================================================
# Setup / Shutdown
# ============================================================================


def _handlers() -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        JSONFormatter() if _use_json() else logging.Formatter(TEXT_FORMAT, DATE_FORMAT)
    )
    handlers: List[logging.Handler] = [console]

    if Config.LOG_TO_FILE:
        logs_dir = Path(Config.LOGS_DIR).resolve()
        logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(logs_dir / LOG_FILE_NAME),
            when="midnight",
            backupCount=7,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        handlers.append(daily)

    for handler in handlers:
        handler.setLevel(_level())
    return handlers


def setup_logging() -> None:
    """Install the queue-backed root handler. Idempotent."""
    global _listener

    root = logging.getLogger()
    if getattr(root, _INITIALIZED_FLAG, False):
        return

    root.setLevel(_level())
    root.handlers.clear()

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _listener = QueueListener(log_queue, *_handlers(), respect_handler_level=True)
    _listener.start()

    queue_handler = DroppingQueueHandler(log_queue)
    # Context lives on the emitting task, not on the listener thread.
    queue_handler.addFilter(ActionContextFilter())
    root.addHandler(queue_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    setattr(root, _INITIALIZED_FLAG, True)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "level": logging.getLevelName(_level()),
            "json": _use_json(),
            "file": bool(Config.LOG_TO_FILE),
        },
    )


def shutdown_logging() -> None:
    """Flush the queue and detach every handler."""
    global _listener

    root = logging.getLogger()
    if not getattr(root, _INITIALIZED_FLAG, False):
        return

    if _dropped_records:
        sys.stderr.write(f"DachsTaler logging dropped {_dropped_records} records.\n")
    if _listener is not None:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    for handler in list(root.handlers):
        root.removeHandler(handler)
    setattr(root, _INITIALIZED_FLAG, False)


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind a player and an action to every record logged inside the block.

    Nested contexts keep the outer correlation id so one chat command reads
    as one trace.
    """

    def __init__(
        self,
        player: Optional[str] = None,
        action: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        outer = _action_context.get({})
        self.context: Dict[str, Any] = {
            "player": player or outer.get("player", "-"),
            "action": action or outer.get("action", "-"),
            "correlation_id": correlation_id
            or outer.get("correlation_id")
            or uuid.uuid4().hex[:8],
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    @property
    def correlation_id(self) -> str:
        return self.context["correlation_id"]

    def __enter__(self) -> "LogContext":
        self._token = _action_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _action_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_action_context.get({}))


setup_logging()
