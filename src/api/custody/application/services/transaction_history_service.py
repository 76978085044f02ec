"""Read side of the custody transaction log."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.unit_of_work import unit_of_work
from custody.domain.aggregates import KeyTransaction
from custody.domain.value_objects import KeyId, PrincipalId
from custody.ports.repositories import ITransactionLog


class TransactionHistoryService:
    """Application service exposing custody history, newest first."""

    def __init__(self, session: AsyncSession, transaction_log: ITransactionLog):
        self._session = session
        self._log = transaction_log

    async def history_for_key(
        self, key_id: KeyId, limit: int = 100
    ) -> list[KeyTransaction]:
        """Every recorded transition for a key."""
        async with unit_of_work(self._session):
            return await self._log.list_for_key(key_id, limit=limit)

    async def history_for_holder(
        self, holder_id: PrincipalId, limit: int = 100
    ) -> list[KeyTransaction]:
        """Every recorded transition a principal performed."""
        async with unit_of_work(self._session):
            return await self._log.list_for_actor(holder_id, limit=limit)

    async def recent_activity(self, limit: int = 50) -> list[KeyTransaction]:
        """The latest transitions across all keys."""
        async with unit_of_work(self._session):
            return await self._log.list_recent(limit=limit)
