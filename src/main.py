"""
DachsTaler Engine - Operator CLI
================================

Bootstrap
---------
- Config validation and logging
- Primary store and (optional) durable mirror
- Game configuration
- One action or a health check, then graceful shutdown

Usage
-----
    python -m src.main health
    python -m src.main disclaimer dachsfan
    python -m src.main spin dachsfan 20
    python -m src.main buy dachsfan 14
    python -m src.main duel create dachsfan dachsfreund 200
    python -m src.main leaderboard
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from enum import Enum
from typing import Any, List, Optional

from src.core.logging.logger import get_logger, setup_logging, shutdown_logging
from src.core.exceptions import EngineInfrastructureException
from src.engine import GameEngine
from src.modules.shared.exceptions import GameDomainException

logger = get_logger(__name__)


# ============================================================================
# Argument Parsing
# ============================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dachstaler", description="DachsTaler engine operator CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Ping the primary store and the durable mirror")
    sub.add_parser("leaderboard", help="Show the leaderboard snapshot")

    for name, help_text in (
        ("disclaimer", "Accept the disclaimer for a player"),
        ("balance", "Show a player's balance"),
        ("profile", "Show a player's account and statistics"),
        ("buffs", "List a player's active buffs"),
        ("achievements", "List a player's achievements"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("username")

    spin = sub.add_parser("spin", help="Play one spin")
    spin.add_argument("username")
    spin.add_argument("amount", nargs="?")

    buy = sub.add_parser("buy", help="Buy a shop item")
    buy.add_argument("username")
    buy.add_argument("item_id")

    duel = sub.add_parser("duel", help="Duel actions")
    duel_sub = duel.add_subparsers(dest="duel_command", required=True)
    create = duel_sub.add_parser("create")
    create.add_argument("challenger")
    create.add_argument("target")
    create.add_argument("amount")
    for name in ("accept", "decline", "cancel"):
        duel_sub.add_parser(name).add_argument("username")

    return parser


# ============================================================================
# Output
# ============================================================================

def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _render(result: Any) -> str:
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        result = dataclasses.asdict(result)
    elif isinstance(result, list):
        result = [dataclasses.asdict(r) if dataclasses.is_dataclass(r) else r for r in result]
    return json.dumps(result, default=_jsonable, ensure_ascii=False, indent=2)


# ============================================================================
# Dispatch
# ============================================================================

async def _dispatch(engine: GameEngine, args: argparse.Namespace) -> Any:
    command = args.command
    if command == "health":
        return await engine.health_check()
    if command == "leaderboard":
        return await engine.leaderboard()
    if command == "disclaimer":
        return await engine.accept_disclaimer(args.username)
    if command == "balance":
        return {"username": args.username, "balance": await engine.balance(args.username)}
    if command == "profile":
        return await engine.profile(args.username)
    if command == "buffs":
        return await engine.active_buffs(args.username)
    if command == "achievements":
        return await engine.achievements(args.username)
    if command == "spin":
        return await engine.spin(args.username, args.amount)
    if command == "buy":
        return await engine.purchase(args.username, args.item_id)

    duel_command = args.duel_command
    if duel_command == "create":
        return await engine.duel_create(args.challenger, args.target, args.amount)
    if duel_command == "accept":
        return await engine.duel_accept(args.username)
    if duel_command == "decline":
        return await engine.duel_decline(args.username)
    return await engine.duel_cancel(args.username)


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main(argv: Optional[List[str]] = None) -> int:
    """
    Lifecycle:
        1. Parse arguments and configure logging
        2. Initialize infrastructure (store, mirror, game config)
        3. Run the requested action
        4. Shut down gracefully
    """
    args = _build_parser().parse_args(argv)
    setup_logging()
    engine: Optional[GameEngine] = None

    try:
        # Step 1: Infrastructure
        engine = await GameEngine.create()
        logger.info("Engine ready", extra={"command": args.command})

        # Step 2: Action
        result = await _dispatch(engine, args)
        print(_render(result))
        return 0

    except GameDomainException as exc:
        print(_render(exc.to_dict()), file=sys.stderr)
        return 2

    except EngineInfrastructureException as exc:
        logger.critical(f"Infrastructure failure: {exc}", exc_info=True)
        return 1

    finally:
        if engine is not None:
            try:
                await engine.close()
            except EngineInfrastructureException as exc:
                logger.error(f"Engine shutdown error: {exc}", exc_info=True)
        shutdown_logging()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Stopped via keyboard interrupt.")
        sys.exit(130)
