"""PostgreSQL implementation of ITransactionLog.

The log shares the calling service's session, so records are appended in
the same database transaction as the state change they describe. Like the
other repositories it never commits; the service owns the boundary.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from custody.domain.aggregates import KeyTransaction
from custody.domain.value_objects import (
    AssignmentId,
    DelegationId,
    KeyId,
    PrincipalId,
    TransactionId,
    TransactionStatus,
    TransactionType,
)
from custody.infrastructure.models import KeyTransactionModel
from custody.infrastructure.observability import (
    DefaultTransactionLogProbe,
    TransactionLogProbe,
)
from custody.ports.repositories import ITransactionLog


class TransactionLogRepository(ITransactionLog):
    """Append-only transaction log stored in the key_transactions table."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TransactionLogProbe | None = None,
    ) -> None:
        """Initialize the log with a database session.

        Args:
            session: AsyncSession shared with the calling service
            probe: Optional domain probe for observability
        """
        self._session = session
        self._probe = probe or DefaultTransactionLogProbe()

    async def append(self, transaction: KeyTransaction) -> None:
        """Add a record to the current transaction."""
        self._session.add(
            KeyTransactionModel(
                id=transaction.id.value,
                type=transaction.type.value,
                key_id=transaction.key_id.value,
                actor_id=transaction.actor_id.value,
                verifier_id=_value(transaction.verifier_id),
                assignment_id=_value(transaction.assignment_id),
                delegation_id=_value(transaction.delegation_id),
                delegate_id=_value(transaction.delegate_id),
                details=transaction.details,
                status=transaction.status.value,
                error_message=transaction.error_message,
                retry_count=transaction.retry_count,
                extra=dict(transaction.metadata),
                occurred_at=transaction.occurred_at,
            )
        )
        self._probe.transaction_appended(
            transaction.id.value, transaction.type.value, transaction.key_id.value
        )

    async def update_status(self, transaction: KeyTransaction) -> None:
        """Write a completion, cancellation or failure mark."""
        stmt = (
            update(KeyTransactionModel)
            .where(KeyTransactionModel.id == transaction.id.value)
            .values(
                status=transaction.status.value,
                details=transaction.details,
                error_message=transaction.error_message,
                retry_count=transaction.retry_count,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
        self._probe.transaction_status_updated(
            transaction.id.value, transaction.status.value, transaction.retry_count
        )

    async def get_by_id(self, transaction_id: TransactionId) -> KeyTransaction | None:
        """Retrieve a record by its ID."""
        stmt = (
            select(KeyTransactionModel)
            .where(KeyTransactionModel.id == transaction_id.value)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_aggregate(model) if model else None

    async def list_for_key(self, key_id: KeyId, limit: int = 100) -> list[KeyTransaction]:
        """List a key's records, newest first."""
        stmt = (
            select(KeyTransactionModel)
            .where(KeyTransactionModel.key_id == key_id.value)
            .order_by(KeyTransactionModel.occurred_at.desc(), KeyTransactionModel.id.desc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def list_for_actor(
        self, actor_id: PrincipalId, limit: int = 100
    ) -> list[KeyTransaction]:
        """List records performed by a principal, newest first."""
        stmt = (
            select(KeyTransactionModel)
            .where(KeyTransactionModel.actor_id == actor_id.value)
            .order_by(KeyTransactionModel.occurred_at.desc(), KeyTransactionModel.id.desc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def list_recent(self, limit: int = 50) -> list[KeyTransaction]:
        """List the latest records across all keys."""
        stmt = (
            select(KeyTransactionModel)
            .order_by(KeyTransactionModel.occurred_at.desc(), KeyTransactionModel.id.desc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def list_failed_reminders(
        self, max_retries: int, limit: int | None = None
    ) -> list[KeyTransaction]:
        """List failed reminders with retries left, oldest first."""
        stmt = (
            select(KeyTransactionModel)
            .where(KeyTransactionModel.type == TransactionType.OVERDUE_REMINDER.value)
            .where(KeyTransactionModel.status == TransactionStatus.FAILED.value)
            .where(KeyTransactionModel.retry_count < max_retries)
            .order_by(KeyTransactionModel.occurred_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> list[KeyTransaction]:
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return [self._to_aggregate(model) for model in result.scalars().all()]

    def _to_aggregate(self, model: KeyTransactionModel) -> KeyTransaction:
        """Convert SQLAlchemy model to a log record."""
        return KeyTransaction(
            id=TransactionId(value=model.id),
            type=TransactionType(model.type),
            key_id=KeyId(value=model.key_id),
            actor_id=PrincipalId(value=model.actor_id),
            details=model.details,
            occurred_at=model.occurred_at,
            status=TransactionStatus(model.status),
            verifier_id=_principal(model.verifier_id),
            assignment_id=(
                AssignmentId(value=model.assignment_id) if model.assignment_id else None
            ),
            delegation_id=(
                DelegationId(value=model.delegation_id) if model.delegation_id else None
            ),
            delegate_id=_principal(model.delegate_id),
            error_message=model.error_message,
            retry_count=model.retry_count,
            metadata=dict(model.extra or {}),
        )


def _value(identifier) -> str | None:
    return identifier.value if identifier is not None else None


def _principal(value: str | None) -> PrincipalId | None:
    return PrincipalId(value=value) if value else None
