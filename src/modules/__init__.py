"""
Domain modules of the DachsTaler engine.

Each subpackage owns one component (slots, buffs, economy, duel,
achievements, shop, leaderboard, player) and exposes its service through
its own ``__init__``. Shared foundations live in ``src.modules.shared``.
"""
