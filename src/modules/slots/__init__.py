"""
Slots Module
============

Domain: the three-reel slot machine

- service: SlotService, the spin pipeline (gate, stake, roll, payout, commit)
- symbols: SymbolGenerator, weighted reels and the dachs jackpot roll
- payout: PayoutEvaluator, pure grid evaluation
- streak: StreakTracker, win/loss streak bonuses
- jackpot: hourly jackpot timing

Nothing is re-exported here: the buff resolver imports `payout` and `symbols`
while `service` imports the buff resolver, so import from the submodules.
"""
