"""
Player Service
==============

Purpose
-------
Own the account lifecycle: disclaimer acceptance (which creates the account
and pays the starting balance), self-ban, leaderboard visibility and duel
opt-out, plus the "may this name play?" gate every action passes first.

Domain
------
- Account creation exactly once, through the ledger
- Account flags
- Profile reads (balance, flags, stats) without ghost creation

Design Notes
------------
- The starting balance is committed with idempotency key
  `disclaimer:{name}`, so a retried acceptance never pays twice.
- A self-ban can only be lifted by an admin.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from src.core.logging.logger import get_logger
from src.modules.economy.ledger import EconomyLedger, WriteIntent
from src.modules.player.models import AccountRecord, PlayerProfile
from src.modules.player.repository import AccountRepository
from src.modules.shared import keys
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import AccountRequiredError, InvalidOperationError
from src.modules.shared.timeutils import Clock, system_clock

if TYPE_CHECKING:
    from src.core.config.game_config import GameConfig
    from src.core.event.bus import EventBus


class PlayerService(BaseService):
    def __init__(
        self,
        accounts: AccountRepository,
        ledger: EconomyLedger,
        game_config: GameConfig,
        event_bus: EventBus,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(game_config, event_bus, get_logger(__name__))
        self._accounts = accounts
        self._ledger = ledger
        self._clock = clock

    @property
    def accounts(self) -> AccountRepository:
        return self._accounts

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_profile(self, username: str) -> PlayerProfile:
        name = keys.normalize(username)
        account = await self._accounts.get_account(name)
        balance = await self._accounts.read_balance(name)
        stats = await self._accounts.get_stats(name)
        return PlayerProfile(
            account=account,
            balance=int(balance.require()),
            exists=account.disclaimer_accepted or balance.found,
            stats=dict(stats),
        )

    async def require_playable(self, username: str) -> AccountRecord:
        """
        Raises:
            AccountRequiredError: Disclaimer not accepted, or player self-banned
        """
        account = await self._accounts.get_account(username)
        if not account.disclaimer_accepted:
            raise AccountRequiredError(account.username, "disclaimer not accepted")
        if account.self_banned:
            raise AccountRequiredError(account.username, "self-banned")
        return account

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def accept_disclaimer(self, username: str) -> PlayerProfile:
        """
        Accept the disclaimer and create the account on first acceptance.

        Names that already hold a balance keep it; only brand-new names get
        the starting balance. Accepting twice changes nothing.
        """
        name = keys.normalize(username)
        now = self._clock()
        account = await self._accounts.get_account(name)
        if account.disclaimer_accepted:
            return await self.get_profile(name)

        # Step 1: Decide the starting credit
        balance = await self._accounts.read_balance(name)
        balance.require()
        starting = 0 if balance.found else self._config.economy.starting_balance

        # Step 2: Account document and balance in one intent
        created = replace(account, disclaimer_accepted_at=now, created_at=account.created_at or now)
        intent = WriteIntent(
            reason="disclaimer",
            idempotency_key=f"disclaimer:{name}",
            create_accounts=(name,),
        )
        intent.add_delta(name, starting)
        intent.put(keys.account_key(name), created.to_document())
        await self._ledger.commit(intent)

        self.log_operation("accept_disclaimer", username=name, starting_balance=starting)
        await self.emit_event("player.registered", {"username": name, "balance": starting})
        return await self.get_profile(name)

    async def set_self_ban(
        self, username: str, banned: bool = True, *, actor: Optional[str] = None
    ) -> AccountRecord:
        """
        Raises:
            InvalidOperationError: Lifting a ban without admin rights
        """
        account = await self._accounts.get_account(username)
        if not banned and not (actor and self._config.is_admin(actor)):
            raise InvalidOperationError("self_ban", "only an admin can lift a self-ban")
        updated = replace(account, self_banned_at=self._clock() if banned else None)
        await self._accounts.save_account(updated)
        self.log_operation("set_self_ban", username=account.username, banned=banned, actor=actor)
        return updated

    async def set_leaderboard_hidden(self, username: str, hidden: bool) -> AccountRecord:
        account = await self._accounts.get_account(username)
        updated = replace(account, leaderboard_hidden=hidden)
        await self._accounts.save_account(updated)
        self.log_operation("set_leaderboard_hidden", username=account.username, hidden=hidden)
        return updated

    async def set_avatar(self, username: str, avatar: Optional[str]) -> AccountRecord:
        """Store the profile image URL the chat platform reports for a player."""
        account = await self._accounts.get_account(username)
        updated = replace(account, avatar=avatar or None)
        await self._accounts.save_account(updated)
        self.log_operation("set_avatar", username=account.username, has_avatar=updated.avatar is not None)
        return updated

    async def set_duel_opt_out(self, username: str, opted_out: bool) -> AccountRecord:
        account = await self._accounts.get_account(username)
        updated = replace(account, duel_opt_out=opted_out)
        await self._accounts.save_account(updated)
        self.log_operation("set_duel_opt_out", username=account.username, opted_out=opted_out)
        return updated
