"""
Pytest Configuration and Fixtures for the DachsTaler engine tests
=================================================================

Purpose
-------
Centralized fixtures for the test suite: a frozen clock, a seeded random
source, the in-memory primary store, the validated game configuration and a
fully wired `GameEngine`, plus real infrastructure for integration tests.

Responsibilities
----------------
- Test environment configuration (memory backend, no log files)
- Deterministic time and randomness
- Service wiring identical to production (`GameEngine`)
- Player factories (accepted disclaimer, chosen balance)
- SQLite (aiosqlite) durable mirror and a Redis testcontainer

Architecture Notes
------------------
- Unit tests run on `InMemoryStore` (fast, isolated, no network)
- Integration tests use aiosqlite in memory and testcontainers for Redis;
  the Redis fixture skips when Docker is not available
- Fixtures are function scoped unless they start a container
"""

from __future__ import annotations

import os
import random
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Generator, List

import pytest
import pytest_asyncio

from src.core.config.config import Config
from src.core.config.game_config import GameConfig, load_game_config
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.core.storage.memory_store import InMemoryStore
from src.engine import GameEngine
from src.modules.buffs.models import buff_to_document
from src.modules.economy.mirror import DurableMirror
from src.modules.shared import keys

logger = get_logger(__name__)

# 2026-10-14 12:00:30 UTC: a Wednesday, away from midnight and from the
# hour's lucky second (12), so no spin hits the hourly jackpot by accident.
FROZEN_NOW = datetime(2026, 10, 14, 12, 0, 30, tzinfo=timezone.utc).timestamp()
SEED = 4242


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure the test environment before any engine object is built."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["STORAGE_BACKEND"] = "memory"
    os.environ["LOG_TO_FILE"] = "false"
    os.environ["DURABLE_MIRROR_ENABLED"] = "false"
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
    os.environ.pop("ACHIEVEMENT_REWARDS_ENABLED", None)
    os.environ.pop("GAME_CONFIG_DIR", None)
    os.environ.pop("ADMIN_USERS", None)
    Config.reload()


# ============================================================================
# TIME & RANDOMNESS
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, now: float = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(SEED)


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def game_config() -> GameConfig:
    return load_game_config(overrides={"admins": ["dachsadmin"]})


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store(clock: FrozenClock) -> InMemoryStore:
    return InMemoryStore(clock)


@pytest.fixture
def record_events(event_bus: EventBus) -> Callable[[str], List[dict]]:
    """Subscribe to an event pattern and collect its payloads in order."""

    def _record(pattern: str) -> List[dict]:
        seen: List[dict] = []
        event_bus.subscribe(pattern, lambda payload: seen.append(payload))
        return seen

    return _record


@pytest_asyncio.fixture
async def engine(
    store: InMemoryStore,
    game_config: GameConfig,
    event_bus: EventBus,
    rng: random.Random,
    clock: FrozenClock,
) -> AsyncGenerator[GameEngine, None]:
    engine = GameEngine(store, game_config, event_bus, rng=rng, clock=clock)
    yield engine
    await engine.close()


# ============================================================================
# PLAYER FACTORIES
# ============================================================================


@pytest.fixture
def make_player(engine: GameEngine, store: InMemoryStore) -> Callable:
    """Accept the disclaimer for a name and optionally force its balance."""

    async def _make(username: str, balance: int | None = None) -> str:
        await engine.accept_disclaimer(username)
        if balance is not None:
            await store.put(keys.balance_key(username), balance)
        return keys.normalize(username)

    return _make


@pytest.fixture
def give_buffs(store: InMemoryStore) -> Callable:
    """Store a buff set for a player, replacing the existing one."""

    async def _give(username: str, *buffs) -> None:
        await store.put(
            keys.buffs_key(username), {buff.key: buff_to_document(buff) for buff in buffs}
        )

    return _give


# ============================================================================
# DURABLE MIRROR (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """
    In-memory SQLite durable store with the mirror schema.

    Scope: function (fresh schema per test)
    """
    await DatabaseService.initialize("sqlite+aiosqlite:///:memory:")
    await DatabaseService.create_schema()
    yield
    await DatabaseService.shutdown()


@pytest.fixture
def mirror(database: None) -> DurableMirror:
    return DurableMirror()


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def redis_container() -> Generator:
    """
    Start a Redis testcontainer.

    Scope: session (container persists across all tests)
    Skips when Docker is not reachable.
    """
    try:
        from testcontainers.redis import RedisContainer

        container = RedisContainer(image="redis:7-alpine")
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for Redis testcontainer: {exc}")

    logger.info(
        "Redis testcontainer started",
        extra={
            "host": container.get_container_host_ip(),
            "port": container.get_exposed_port(6379),
        },
    )
    yield container

    logger.info("Stopping Redis testcontainer")
    container.stop()


@pytest.fixture
def redis_url(redis_container) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"
