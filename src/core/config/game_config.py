"""
GameConfig - immutable, validated game catalogs.

Purpose
-------
Load every tunable game rule (symbol weights, payout tables, streak and combo
constants, buff catalog, duel rules, shop and achievement catalogs, admin set)
once at process start, validate it, and hand it to the engine as a frozen
object graph.

Responsibilities
----------------
- Deep-merge the packaged YAML defaults with an optional override directory
- Convert the merged document into frozen dataclasses
  (tuples / MappingProxyType instead of lists / dicts)
- Reject broken catalogs with ConfigurationError naming the offending key
- Offer dotted-path lookup (`get("spin.base_cost")`) for services

Design Notes
------------
- Nothing here is mutable after load: services receive the object by
  injection, tests build their own variant via `overrides`.
- YAML discovery and merge rules follow the config manager convention:
  files are merged in sorted order, nested dicts merge, scalars replace.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, MutableMapping, Optional, Tuple

import yaml

from src.core.config.config import Config
from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULTS_DIR = Path(__file__).resolve().parent / "defaults"


# ============================================================================
# Catalog value objects
# ============================================================================


class BuffKind(Enum):
    TIMED = "timed"
    USES = "uses"
    STACK = "stack"
    ONE_SHOT = "one_shot"


class ItemType(Enum):
    TIMED = "timed"
    BOOST = "boost"
    INSURANCE = "insurance"
    WINMULTI = "winmulti"
    BUNDLE = "bundle"
    PEEK = "peek"
    INSTANT = "instant"
    PRESTIGE = "prestige"
    UNLOCK = "unlock"


@dataclass(frozen=True)
class SymbolConfig:
    weights: Mapping[str, int]
    jackpot_symbol: str
    jackpot_one_in: int
    free_spin_symbol: str
    grid_size: int

    @property
    def jackpot_chance(self) -> float:
        return 1 / self.jackpot_one_in

    @property
    def total_weight(self) -> int:
        return sum(self.weights.values())


@dataclass(frozen=True)
class PayoutConfig:
    triple: Mapping[str, int]
    pair: Mapping[str, int]
    jackpot_single: int
    jackpot_pair: int
    jackpot_triple: int
    free_spins_pair: int
    free_spins_triple: int
    default_triple: int
    default_pair: int


@dataclass(frozen=True)
class SpinConfig:
    base_cost: int
    cooldown_seconds: int
    bet_multipliers: Mapping[int, int]
    unlock_keys: Mapping[int, str]
    free_amount_unlock: str
    max_fixed_amount: int
    happy_hour_threshold: int
    insurance_refund_rate: float
    hourly_jackpot_amount: int
    hourly_jackpot_divisor: int
    hourly_jackpot_claim_ttl_seconds: int
    high_bet_threshold: int
    low_balance_warning: int
    play_day_ttl_seconds: int


@dataclass(frozen=True)
class StreakConfig:
    increment: float
    ceiling: float
    cap_steps: int
    combo_bonuses: Mapping[int, int]
    hot_streak_threshold: int
    hot_streak_bonus: int
    comeback_threshold: int
    comeback_bonus: int
    ttl_seconds: int
    loss_warning_threshold: int


@dataclass(frozen=True)
class BuffDefinition:
    key: str
    kind: BuffKind
    duration_seconds: Optional[int] = None
    uses: Optional[int] = None
    stack_cap: Optional[int] = None
    durable: bool = False
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


@dataclass(frozen=True)
class BuffCatalog:
    definitions: Mapping[str, BuffDefinition]
    reroll_chance: float
    boost_chance: float
    guaranteed_pair_symbols: Tuple[str, ...]
    wild_values: Mapping[str, int]

    def __getitem__(self, key: str) -> BuffDefinition:
        return self.definitions[key]


@dataclass(frozen=True)
class DuelConfig:
    min_stake: int
    response_window_seconds: int
    cooldown_seconds: int
    streak_ttl_seconds: int
    tiebreak: Mapping[str, int]


@dataclass(frozen=True)
class EconomyConfig:
    starting_balance: int
    max_balance: int
    bank_start: int
    receipt_ttl_seconds: int


@dataclass(frozen=True)
class ShopItem:
    id: int
    name: str
    price: int
    type: ItemType
    symbol: Optional[str] = None
    buff_key: Optional[str] = None
    unlock_key: Optional[str] = None
    requires: Optional[str] = None
    rank: Optional[str] = None
    requires_rank: Optional[str] = None
    action: Optional[str] = None
    weekly_limit: Optional[int] = None
    limit_key: Optional[str] = None


@dataclass(frozen=True)
class WheelConfig:
    jackpot_threshold: float
    jackpot_chance: float
    jackpot_prize: int
    dachs_prize: int
    diamond_threshold: float
    diamond_prize: int
    gold_threshold: float
    gold_prize: int
    star_threshold: float
    star_prize: int


@dataclass(frozen=True)
class ShopConfig:
    items: Mapping[int, ShopItem]
    prestige_ranks: Tuple[str, ...]
    insurance_pack_size: int
    bundle_spins: int
    bundle_multiplier: int
    chaos_range: Tuple[int, int]
    chaos_big_threshold: int
    reverse_chaos_range: Tuple[int, int]
    diamond_mine_range: Tuple[int, int]
    mystery_box_pool: Tuple[int, ...]
    wheel: WheelConfig

    @property
    def max_item_id(self) -> int:
        return max(self.items)


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    category: str
    reward: int
    hidden: bool = False
    requirement: Optional[int] = None
    stat: Optional[str] = None

    @property
    def is_progressive(self) -> bool:
        return self.requirement is not None and self.stat is not None


@dataclass(frozen=True)
class AchievementConfig:
    rewards_enabled: bool
    lucky_balance: int
    triple_keys: Mapping[str, str]
    fruit_keys: Tuple[str, ...]
    catalog: Mapping[str, AchievementDefinition]

    def by_stat(self, stat: str) -> Tuple[AchievementDefinition, ...]:
        return tuple(a for a in self.catalog.values() if a.stat == stat)


@dataclass(frozen=True)
class LeaderboardConfig:
    cache_ttl_seconds: int
    scan_limit: int
    display_limit: int


@dataclass(frozen=True)
class GameConfig:
    symbols: SymbolConfig
    payouts: PayoutConfig
    spin: SpinConfig
    streak: StreakConfig
    buffs: BuffCatalog
    duel: DuelConfig
    economy: EconomyConfig
    shop: ShopConfig
    achievements: AchievementConfig
    leaderboard: LeaderboardConfig
    admins: FrozenSet[str]
    raw: Mapping[str, Any] = field(repr=False, default_factory=lambda: MappingProxyType({}))

    def get(self, key: str, default: Any = None) -> Any:
        """Dotted-path lookup into the merged document (`"spin.base_cost"`)."""
        node: Any = self.raw
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return node

    def is_admin(self, username: str) -> bool:
        return username.lower() in self.admins


# ============================================================================
# Loading
# ============================================================================


def _deep_merge(target: MutableMapping[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), MutableMapping):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _load_yaml_dir(directory: Path, target: Dict[str, Any]) -> int:
    if not directory.exists():
        raise ConfigurationError("GAME_CONFIG_DIR", f"directory not found: {directory}")

    loaded = 0
    for yaml_file in sorted(list(directory.rglob("*.yaml")) + list(directory.rglob("*.yml"))):
        try:
            with yaml_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(yaml_file.name), f"invalid YAML: {exc}") from exc

        if isinstance(data, dict):
            _deep_merge(target, data)
            loaded += 1
            logger.debug("Loaded game config file", extra={"file": str(yaml_file)})
        elif data is not None:
            logger.warning(
                "Ignoring non-dict YAML root object",
                extra={"file": str(yaml_file), "root_type": type(data).__name__},
            )
    return loaded


def _freeze(mapping: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping))


def _freeze_deep(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze_deep(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze_deep(v) for v in value)
    return value


def _section(doc: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = doc.get(name)
    if not isinstance(section, Mapping):
        raise ConfigurationError(name, "section is missing or not a mapping")
    return section


def _require(section: Mapping[str, Any], path: str, key: str) -> Any:
    if key not in section:
        raise ConfigurationError(f"{path}.{key}", "required key is missing")
    return section[key]


def _int_map(raw: Any, path: str, *, positive: bool = True) -> Mapping[Any, int]:
    if not isinstance(raw, Mapping) or not raw:
        raise ConfigurationError(path, "must be a non-empty mapping")
    result: Dict[Any, int] = {}
    for key, value in raw.items():
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigurationError(f"{path}.{key}", f"expected integer, got {value!r}")
        if positive and value <= 0:
            raise ConfigurationError(f"{path}.{key}", "must be positive")
        result[key] = value
    return _freeze(result)


def _range(raw: Any, path: str) -> Tuple[int, int]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2 or raw[0] > raw[1]:
        raise ConfigurationError(path, f"expected [min, max], got {raw!r}")
    return int(raw[0]), int(raw[1])


def _build_symbols(doc: Mapping[str, Any]) -> SymbolConfig:
    s = _section(doc, "symbols")
    symbols = SymbolConfig(
        weights=_int_map(_require(s, "symbols", "weights"), "symbols.weights"),
        jackpot_symbol=str(_require(s, "symbols", "jackpot_symbol")),
        jackpot_one_in=int(_require(s, "symbols", "jackpot_one_in")),
        free_spin_symbol=str(_require(s, "symbols", "free_spin_symbol")),
        grid_size=int(s.get("grid_size", 3)),
    )
    if symbols.jackpot_one_in <= 1:
        raise ConfigurationError("symbols.jackpot_one_in", "must be greater than 1")
    if symbols.jackpot_symbol in symbols.weights:
        raise ConfigurationError(
            "symbols.weights", "jackpot symbol must not be part of the weighted table"
        )
    if symbols.free_spin_symbol not in symbols.weights:
        raise ConfigurationError("symbols.free_spin_symbol", "not in the weight table")
    if symbols.grid_size != 3:
        raise ConfigurationError("symbols.grid_size", "only 3-symbol grids are supported")
    return symbols


def _build_payouts(doc: Mapping[str, Any], symbols: SymbolConfig) -> PayoutConfig:
    p = _section(doc, "payouts")
    jackpot = _require(p, "payouts", "jackpot")
    free_spins = _require(p, "payouts", "free_spins")
    payouts = PayoutConfig(
        triple=_int_map(_require(p, "payouts", "triple"), "payouts.triple"),
        pair=_int_map(_require(p, "payouts", "pair"), "payouts.pair"),
        jackpot_single=int(jackpot["single"]),
        jackpot_pair=int(jackpot["pair"]),
        jackpot_triple=int(jackpot["triple"]),
        free_spins_pair=int(free_spins["pair"]),
        free_spins_triple=int(free_spins["triple"]),
        default_triple=int(p.get("default_triple", 50)),
        default_pair=int(p.get("default_pair", 5)),
    )
    for table_name, table in (("triple", payouts.triple), ("pair", payouts.pair)):
        for symbol in table:
            if symbol not in symbols.weights:
                raise ConfigurationError(
                    f"payouts.{table_name}.{symbol}", "symbol is not in the weight table"
                )
    for symbol, triple_value in payouts.triple.items():
        if symbol in payouts.pair and payouts.pair[symbol] >= triple_value:
            raise ConfigurationError(
                f"payouts.pair.{symbol}", "pair payout must be lower than the triple payout"
            )
    if not payouts.jackpot_single < payouts.jackpot_pair < payouts.jackpot_triple:
        raise ConfigurationError("payouts.jackpot", "tiers must strictly increase")
    return payouts


def _build_spin(doc: Mapping[str, Any]) -> SpinConfig:
    s = _section(doc, "spin")
    spin = SpinConfig(
        base_cost=int(_require(s, "spin", "base_cost")),
        cooldown_seconds=int(s.get("cooldown_seconds", 30)),
        bet_multipliers=_int_map(_require(s, "spin", "bet_multipliers"), "spin.bet_multipliers"),
        unlock_keys=_freeze({int(k): str(v) for k, v in _require(s, "spin", "unlock_keys").items()}),
        free_amount_unlock=str(s.get("free_amount_unlock", "slots_all")),
        max_fixed_amount=int(s.get("max_fixed_amount", 100)),
        happy_hour_threshold=int(s.get("happy_hour_threshold", 1000)),
        insurance_refund_rate=float(s.get("insurance_refund_rate", 0.5)),
        hourly_jackpot_amount=int(s.get("hourly_jackpot_amount", 100)),
        hourly_jackpot_divisor=int(s.get("hourly_jackpot_divisor", 60)),
        hourly_jackpot_claim_ttl_seconds=int(s.get("hourly_jackpot_claim_ttl_seconds", 3600)),
        high_bet_threshold=int(s.get("high_bet_threshold", 50)),
        low_balance_warning=int(s.get("low_balance_warning", 100)),
        play_day_ttl_seconds=int(s.get("play_day_ttl_seconds", 172800)),
    )
    if spin.base_cost not in spin.bet_multipliers:
        raise ConfigurationError("spin.bet_multipliers", "must contain the base cost")
    for amount in spin.unlock_keys:
        if amount not in spin.bet_multipliers:
            raise ConfigurationError(f"spin.unlock_keys.{amount}", "amount has no bet multiplier")
    if not 0 <= spin.insurance_refund_rate <= 1:
        raise ConfigurationError("spin.insurance_refund_rate", "must be within [0, 1]")
    return spin


def _build_streak(doc: Mapping[str, Any]) -> StreakConfig:
    s = _section(doc, "streak")
    streak = StreakConfig(
        increment=float(_require(s, "streak", "increment")),
        ceiling=float(_require(s, "streak", "ceiling")),
        cap_steps=int(_require(s, "streak", "cap_steps")),
        combo_bonuses=_freeze({int(k): int(v) for k, v in _require(s, "streak", "combo_bonuses").items()}),
        hot_streak_threshold=int(s.get("hot_streak_threshold", 5)),
        hot_streak_bonus=int(s.get("hot_streak_bonus", 500)),
        comeback_threshold=int(s.get("comeback_threshold", 5)),
        comeback_bonus=int(s.get("comeback_bonus", 150)),
        ttl_seconds=int(s.get("ttl_seconds", 604800)),
        loss_warning_threshold=int(s.get("loss_warning_threshold", 10)),
    )
    if streak.ceiling < 1.0 or streak.increment <= 0:
        raise ConfigurationError("streak", "ceiling must be >= 1.0 and increment positive")
    return streak


def _build_buffs(doc: Mapping[str, Any]) -> BuffCatalog:
    b = _section(doc, "buffs")
    raw_catalog = _require(b, "buffs", "catalog")
    definitions: Dict[str, BuffDefinition] = {}
    for key, entry in raw_catalog.items():
        path = f"buffs.catalog.{key}"
        try:
            kind = BuffKind(entry.get("kind"))
        except ValueError as exc:
            raise ConfigurationError(f"{path}.kind", f"unknown kind {entry.get('kind')!r}") from exc

        definition = BuffDefinition(
            key=key,
            kind=kind,
            duration_seconds=entry.get("duration_seconds"),
            uses=entry.get("uses"),
            stack_cap=entry.get("stack_cap"),
            durable=bool(entry.get("durable", False)),
            params=_freeze_deep(entry.get("params") or {}),
        )
        if kind in (BuffKind.TIMED, BuffKind.STACK) and not definition.duration_seconds:
            raise ConfigurationError(f"{path}.duration_seconds", "required for timed buffs")
        if kind is BuffKind.USES and not definition.uses:
            raise ConfigurationError(f"{path}.uses", "required for uses-limited buffs")
        if kind is BuffKind.STACK and not definition.stack_cap:
            raise ConfigurationError(f"{path}.stack_cap", "required for stack-limited buffs")
        definitions[key] = definition

    return BuffCatalog(
        definitions=_freeze(definitions),
        reroll_chance=float(b.get("reroll_chance", 0.66)),
        boost_chance=float(b.get("boost_chance", 0.33)),
        guaranteed_pair_symbols=tuple(b.get("guaranteed_pair_symbols") or ()),
        wild_values=_int_map(_require(b, "buffs", "wild_values"), "buffs.wild_values"),
    )


def _build_duel(doc: Mapping[str, Any]) -> DuelConfig:
    d = _section(doc, "duel")
    return DuelConfig(
        min_stake=int(_require(d, "duel", "min_stake")),
        response_window_seconds=int(_require(d, "duel", "response_window_seconds")),
        cooldown_seconds=int(d.get("cooldown_seconds", 30)),
        streak_ttl_seconds=int(d.get("streak_ttl_seconds", 2592000)),
        tiebreak=_int_map(_require(d, "duel", "tiebreak"), "duel.tiebreak"),
    )


def _build_economy(doc: Mapping[str, Any]) -> EconomyConfig:
    e = _section(doc, "economy")
    economy = EconomyConfig(
        starting_balance=int(_require(e, "economy", "starting_balance")),
        max_balance=int(_require(e, "economy", "max_balance")),
        bank_start=int(e.get("bank_start", 0)),
        receipt_ttl_seconds=int(e.get("receipt_ttl_seconds", 86400)),
    )
    if not 0 <= economy.starting_balance <= economy.max_balance:
        raise ConfigurationError("economy.starting_balance", "must be within [0, max_balance]")
    return economy


def _build_shop(doc: Mapping[str, Any], buffs: BuffCatalog) -> ShopConfig:
    s = _section(doc, "shop")
    items: Dict[int, ShopItem] = {}
    for raw_id, entry in _require(s, "shop", "items").items():
        item_id = int(raw_id)
        path = f"shop.items.{item_id}"
        try:
            item_type = ItemType(entry.get("type"))
        except ValueError as exc:
            raise ConfigurationError(f"{path}.type", f"unknown type {entry.get('type')!r}") from exc

        item = ShopItem(
            id=item_id,
            name=str(entry["name"]),
            price=int(entry["price"]),
            type=item_type,
            symbol=entry.get("symbol"),
            buff_key=entry.get("buff_key"),
            unlock_key=entry.get("unlock_key"),
            requires=entry.get("requires"),
            rank=entry.get("rank"),
            requires_rank=entry.get("requires_rank"),
            action=entry.get("action"),
            weekly_limit=entry.get("weekly_limit"),
            limit_key=entry.get("limit_key"),
        )
        if item.price <= 0:
            raise ConfigurationError(f"{path}.price", "must be positive")
        if item_type is ItemType.TIMED and item.buff_key not in buffs.definitions:
            raise ConfigurationError(f"{path}.buff_key", f"unknown buff {item.buff_key!r}")
        if item_type is ItemType.UNLOCK and not item.unlock_key:
            raise ConfigurationError(f"{path}.unlock_key", "required for unlock items")
        if item_type is ItemType.INSTANT and not item.action:
            raise ConfigurationError(f"{path}.action", "required for instant items")
        if item.weekly_limit is not None and not item.limit_key:
            raise ConfigurationError(f"{path}.limit_key", "required with weekly_limit")
        items[item_id] = item

    if sorted(items) != list(range(1, len(items) + 1)):
        raise ConfigurationError("shop.items", "item ids must be contiguous starting at 1")

    unlock_keys = {i.unlock_key for i in items.values() if i.unlock_key}
    for item in items.values():
        if item.requires and item.requires not in unlock_keys:
            raise ConfigurationError(f"shop.items.{item.id}.requires", f"unknown unlock {item.requires!r}")

    pool = tuple(int(i) for i in _require(s, "shop", "mystery_box_pool"))
    for item_id in pool:
        if item_id not in items or items[item_id].type in (
            ItemType.INSTANT, ItemType.UNLOCK, ItemType.PRESTIGE, ItemType.BUNDLE, ItemType.PEEK
        ):
            raise ConfigurationError("shop.mystery_box_pool", f"item {item_id} cannot be granted")

    wheel = _require(s, "shop", "wheel")
    return ShopConfig(
        items=_freeze(items),
        prestige_ranks=tuple(_require(s, "shop", "prestige_ranks")),
        insurance_pack_size=int(s.get("insurance_pack_size", 5)),
        bundle_spins=int(s.get("bundle_spins", 10)),
        bundle_multiplier=int(s.get("bundle_multiplier", 1)),
        chaos_range=_range(s.get("chaos_range"), "shop.chaos_range"),
        chaos_big_threshold=int(s.get("chaos_big_threshold", 1000)),
        reverse_chaos_range=_range(s.get("reverse_chaos_range"), "shop.reverse_chaos_range"),
        diamond_mine_range=_range(s.get("diamond_mine_range"), "shop.diamond_mine_range"),
        mystery_box_pool=pool,
        wheel=WheelConfig(**{k: wheel[k] for k in WheelConfig.__dataclass_fields__}),
    )


KNOWN_STATS = frozenset(
    {
        "totalSpins", "wins", "losses", "maxLossStreak", "biggestWin", "totalWon",
        "totalLost", "shopPurchases", "duelsPlayed", "duelsWon", "duelsLost",
        "maxDuelStreak", "totalDuelWinnings", "playDays", "chaosSpins",
        "reverseChaosSpins", "wheelSpins", "mysteryBoxes", "insuranceTriggers",
        "wildCardsUsed", "freeSpinsUsed", "totalDachsSeen", "hourlyJackpots",
        "allInSpins", "highBetSpins", "balance",
    }
)


def _build_achievements(doc: Mapping[str, Any], rewards_override: Optional[bool]) -> AchievementConfig:
    a = _section(doc, "achievements")
    catalog: Dict[str, AchievementDefinition] = {}
    for achievement_id, entry in _require(a, "achievements", "catalog").items():
        definition = AchievementDefinition(
            id=achievement_id,
            name=str(entry["name"]),
            category=str(entry.get("category", "special")),
            reward=int(entry.get("reward", 0)),
            hidden=bool(entry.get("hidden", False)),
            requirement=entry.get("requirement"),
            stat=entry.get("stat"),
        )
        if (definition.requirement is None) != (definition.stat is None):
            raise ConfigurationError(
                f"achievements.catalog.{achievement_id}",
                "requirement and stat must be declared together",
            )
        if definition.stat is not None and definition.stat not in KNOWN_STATS:
            raise ConfigurationError(
                f"achievements.catalog.{achievement_id}.stat", f"unknown stat {definition.stat!r}"
            )
        catalog[achievement_id] = definition

    rewards_enabled = bool(a.get("rewards_enabled", False))
    if rewards_override is not None:
        rewards_enabled = rewards_override

    return AchievementConfig(
        rewards_enabled=rewards_enabled,
        lucky_balance=int(a.get("lucky_balance", 777)),
        triple_keys=_freeze(a.get("triple_keys") or {}),
        fruit_keys=tuple(a.get("fruit_keys") or ()),
        catalog=_freeze(catalog),
    )


def _build_leaderboard(doc: Mapping[str, Any]) -> LeaderboardConfig:
    lb = _section(doc, "leaderboard")
    return LeaderboardConfig(
        cache_ttl_seconds=int(lb.get("cache_ttl_seconds", 300)),
        scan_limit=int(lb.get("scan_limit", 1000)),
        display_limit=int(lb.get("display_limit", 5)),
    )


def build_game_config(
    document: Mapping[str, Any],
    *,
    admins: Iterable[str] = (),
    rewards_enabled: Optional[bool] = None,
) -> GameConfig:
    """Validate a merged document and freeze it into a GameConfig."""
    symbols = _build_symbols(document)
    buffs = _build_buffs(document)
    admin_set = frozenset(
        name.strip().lower()
        for name in list(document.get("admins") or []) + list(admins)
        if name and name.strip()
    )
    return GameConfig(
        symbols=symbols,
        payouts=_build_payouts(document, symbols),
        spin=_build_spin(document),
        streak=_build_streak(document),
        buffs=buffs,
        duel=_build_duel(document),
        economy=_build_economy(document),
        shop=_build_shop(document, buffs),
        achievements=_build_achievements(document, rewards_enabled),
        leaderboard=_build_leaderboard(document),
        admins=admin_set,
        raw=_freeze_deep(document),
    )


def load_game_config(
    config_dir: Optional[str | Path] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> GameConfig:
    """
    Load packaged defaults, merge `config_dir` (or GAME_CONFIG_DIR) and
    `overrides` on top, validate, and return the frozen GameConfig.

    Raises
    ------
    ConfigurationError
        If any section is missing or violates its constraints.
    """
    document: Dict[str, Any] = {}
    loaded = _load_yaml_dir(DEFAULTS_DIR, document)

    override_dir = config_dir or Config.GAME_CONFIG_DIR
    if override_dir:
        loaded += _load_yaml_dir(Path(override_dir), document)

    if overrides:
        _deep_merge(document, overrides)

    game_config = build_game_config(
        document,
        admins=Config.ADMIN_USERS,
        rewards_enabled=Config.ACHIEVEMENT_REWARDS_ENABLED,
    )

    logger.info(
        "Game configuration loaded",
        extra={
            "yaml_file_count": loaded,
            "shop_items": len(game_config.shop.items),
            "achievements": len(game_config.achievements.catalog),
            "buffs": len(game_config.buffs.definitions),
            "rewards_enabled": game_config.achievements.rewards_enabled,
        },
    )
    return game_config
