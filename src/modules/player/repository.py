"""
AccountRepository - storage access for player accounts.

Reads never create anything: a name nobody has written reads as balance 0
and an empty account record. "Ghost" names therefore cost nothing until
the ledger or the disclaimer flow writes for them.
"""

from __future__ import annotations

from typing import Dict, Mapping

from src.core.logging.logger import get_logger
from src.core.storage.base import KeyValueStore, StoreResult
from src.modules.player.models import AccountRecord
from src.modules.shared import keys

logger = get_logger(__name__)


class AccountRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def read_balance(self, username: str) -> StoreResult[int]:
        return await self._store.read(keys.balance_key(username), 0)

    async def get_account(self, username: str) -> AccountRecord:
        """
        Raises:
            StorageUnavailableError: If the account cannot be read
        """
        name = keys.normalize(username)
        doc = (await self._store.read(keys.account_key(name), None)).require()
        return AccountRecord.from_document(name, doc)

    async def save_account(self, account: AccountRecord) -> None:
        await self._store.put(keys.account_key(account.username), account.to_document())

    async def account_exists(self, username: str) -> bool:
        """An account exists once the disclaimer was accepted or a balance was written."""
        account = await self.get_account(username)
        if account.disclaimer_accepted:
            return True
        balance = await self.read_balance(username)
        balance.require()
        return balance.found

    async def get_stats(self, username: str) -> Mapping[str, int]:
        result = await self._store.read(keys.stats_key(username), {})
        if result.failed:
            logger.warning("Stats unavailable, reporting zeros", extra={"username": username})
        return result.value if isinstance(result.value, Mapping) else {}

    async def list_usernames(self, limit: int) -> list[str]:
        found = await self._store.list_keys(keys.USER_PREFIX, limit)
        return [keys.username_from_key(key, keys.USER_PREFIX) for key in found]

    async def load_accounts(self, usernames: list[str]) -> Dict[str, AccountRecord]:
        results = await self._store.read_many([keys.account_key(n) for n in usernames], None)
        return {
            name: AccountRecord.from_document(name, result.value)
            for name, result in zip(usernames, results)
        }
