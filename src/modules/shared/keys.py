"""
Key layout of the primary store.

Every key the engine reads or writes is built here. Usernames are
lower-cased on the way in, so ``Dachsfan`` and ``dachsfan`` share state.

    user:{name}                 balance (int)
    account:{name}              account flags and unlocks
    buffs:{name}                the player's BuffSet document
    streak:{name}               win/loss counters
    stats:{name}                cumulative statistic counters
    achievements:{name}         unlock timestamps and pending rewards
    achcount:{id}               global unlock counter (rarity)
    limits:{name}:{item_type}   weekly purchase counter
    freespins:{name}            free spins by multiplier
    duel:{challenger}           open challenge
    duelcooldown:{name}         post-duel cooldown deadline
    duelstreak:{name}           consecutive duel wins
    cooldown:{action}:{name}    per-action cooldown deadline
    receipt:{idempotency_key}   committed write intent
    reconcile:{ts}:{key}        mirror write awaiting reconciliation
    jackpot:{hour}              hourly jackpot claim
    playday:{name}:{day}        play-day marker
    leaderboard:cache           leaderboard snapshot
    bank                        aggregate economy counter
"""

from __future__ import annotations

USER_PREFIX = "user:"
ACCOUNT_PREFIX = "account:"
BUFFS_PREFIX = "buffs:"
STREAK_PREFIX = "streak:"
STATS_PREFIX = "stats:"
ACHIEVEMENTS_PREFIX = "achievements:"
ACHIEVEMENT_COUNT_PREFIX = "achcount:"
LIMITS_PREFIX = "limits:"
FREE_SPINS_PREFIX = "freespins:"
DUEL_PREFIX = "duel:"
DUEL_COOLDOWN_PREFIX = "duelcooldown:"
DUEL_STREAK_PREFIX = "duelstreak:"
COOLDOWN_PREFIX = "cooldown:"
RECEIPT_PREFIX = "receipt:"
RECONCILE_PREFIX = "reconcile:"
JACKPOT_PREFIX = "jackpot:"
PLAYDAY_PREFIX = "playday:"
LEADERBOARD_CACHE_KEY = "leaderboard:cache"
BANK_KEY = "bank"


def normalize(username: str) -> str:
    return username.strip().lower()


def balance_key(username: str) -> str:
    return f"{USER_PREFIX}{normalize(username)}"


def account_key(username: str) -> str:
    return f"{ACCOUNT_PREFIX}{normalize(username)}"


def buffs_key(username: str) -> str:
    return f"{BUFFS_PREFIX}{normalize(username)}"


def streak_key(username: str) -> str:
    return f"{STREAK_PREFIX}{normalize(username)}"


def stats_key(username: str) -> str:
    return f"{STATS_PREFIX}{normalize(username)}"


def achievements_key(username: str) -> str:
    return f"{ACHIEVEMENTS_PREFIX}{normalize(username)}"


def achievement_count_key(achievement_id: str) -> str:
    return f"{ACHIEVEMENT_COUNT_PREFIX}{achievement_id}"


def limit_key(username: str, item_type: str) -> str:
    return f"{LIMITS_PREFIX}{normalize(username)}:{item_type}"


def free_spins_key(username: str) -> str:
    return f"{FREE_SPINS_PREFIX}{normalize(username)}"


def duel_key(challenger: str) -> str:
    return f"{DUEL_PREFIX}{normalize(challenger)}"


def duel_cooldown_key(username: str) -> str:
    return f"{DUEL_COOLDOWN_PREFIX}{normalize(username)}"


def duel_streak_key(username: str) -> str:
    return f"{DUEL_STREAK_PREFIX}{normalize(username)}"


def cooldown_key(action: str, username: str) -> str:
    return f"{COOLDOWN_PREFIX}{action}:{normalize(username)}"


def receipt_key(idempotency_key: str) -> str:
    return f"{RECEIPT_PREFIX}{idempotency_key}"


def reconcile_key(timestamp_ms: int, key: str) -> str:
    return f"{RECONCILE_PREFIX}{timestamp_ms}:{key}"


def jackpot_key(hour_id: str) -> str:
    return f"{JACKPOT_PREFIX}{hour_id}"


def playday_key(username: str, day: str) -> str:
    return f"{PLAYDAY_PREFIX}{normalize(username)}:{day}"


def username_from_key(key: str, prefix: str) -> str:
    return key[len(prefix):]
