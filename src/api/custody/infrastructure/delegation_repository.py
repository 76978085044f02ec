"""PostgreSQL implementation of IDelegationRepository.

Inserts rely on the partial unique index over active grants to reject a
second active delegation between the same two principals for a key;
updates are conditional on the version the aggregate was read at.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from custody.domain.aggregates import Delegation
from custody.domain.value_objects import (
    AssignmentId,
    DelegationId,
    DelegationPermissions,
    DelegationStatus,
    KeyId,
    PrincipalId,
)
from custody.infrastructure.models import KeyDelegationModel
from custody.infrastructure.observability import (
    DefaultDelegationRepositoryProbe,
    DelegationRepositoryProbe,
)
from custody.infrastructure.transaction_translator import TransactionTranslator
from custody.ports.exceptions import ConflictError, InvalidStateError
from custody.ports.repositories import (
    DelegationDirection,
    IDelegationRepository,
    ITransactionLog,
)


class DelegationRepository(IDelegationRepository):
    """Repository for Delegation aggregate persistence to PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        transaction_log: ITransactionLog,
        probe: DelegationRepositoryProbe | None = None,
        translator: TransactionTranslator | None = None,
    ) -> None:
        """Initialize repository with database session and transaction log.

        Args:
            session: AsyncSession from FastAPI dependency injection
            transaction_log: Log receiving one record per domain event
            probe: Optional domain probe for observability
            translator: Optional event translator for testability
        """
        self._session = session
        self._log = transaction_log
        self._probe = probe or DefaultDelegationRepositoryProbe()
        self._translator = translator or TransactionTranslator()

    async def save(self, delegation: Delegation) -> None:
        """Insert or conditionally update a delegation.

        Raises:
            ConflictError: If a new grant duplicates an active one
            InvalidStateError: If the stored row changed since it was read
        """
        row = self._to_row(delegation)

        if delegation.version == 0:
            stmt = (
                insert(KeyDelegationModel)
                .values(**row, version=1)
                .on_conflict_do_nothing(
                    index_elements=[
                        KeyDelegationModel.key_id,
                        KeyDelegationModel.delegator_id,
                        KeyDelegationModel.delegate_id,
                    ],
                    index_where=text("status = 'active'"),
                )
                .returning(KeyDelegationModel.id)
            )
            result = await self._session.execute(stmt)
            if result.scalar_one_or_none() is None:
                self._probe.duplicate_active_delegation(
                    delegation.key_id.value,
                    delegation.delegator_id.value,
                    delegation.delegate_id.value,
                )
                raise ConflictError(
                    f"{delegation.delegator_id.value} already shares key "
                    f"{delegation.key_id.value} with {delegation.delegate_id.value}"
                )
            delegation.version = 1
        else:
            expected = delegation.version
            stmt = (
                update(KeyDelegationModel)
                .where(KeyDelegationModel.id == delegation.id.value)
                .where(KeyDelegationModel.version == expected)
                .values(**row, version=expected + 1)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                self._probe.stale_delegation_write(delegation.id.value, expected)
                raise InvalidStateError(
                    f"Delegation {delegation.id.value} was modified concurrently"
                )
            delegation.version = expected + 1

        for event in delegation.collect_events():
            await self._log.append(self._translator.translate(event))

        self._probe.delegation_saved(
            delegation.id.value, delegation.status.value, delegation.version
        )

    async def get_by_id(self, delegation_id: DelegationId) -> Delegation | None:
        """Retrieve a delegation by its ID."""
        stmt = select(KeyDelegationModel).where(
            KeyDelegationModel.id == delegation_id.value
        )
        models = await self._fetch(stmt)
        return models[0] if models else None

    async def find_active(
        self,
        key_id: KeyId,
        delegator_id: PrincipalId,
        delegate_id: PrincipalId,
    ) -> Delegation | None:
        """Find the grant stored as active between two principals for a key."""
        stmt = (
            select(KeyDelegationModel)
            .where(KeyDelegationModel.key_id == key_id.value)
            .where(KeyDelegationModel.delegator_id == delegator_id.value)
            .where(KeyDelegationModel.delegate_id == delegate_id.value)
            .where(KeyDelegationModel.status == DelegationStatus.ACTIVE.value)
        )
        models = await self._fetch(stmt)
        return models[0] if models else None

    async def list_active_for_assignment(
        self, assignment_id: AssignmentId
    ) -> list[Delegation]:
        """List grants stored as active for an assignment."""
        stmt = (
            select(KeyDelegationModel)
            .where(KeyDelegationModel.assignment_id == assignment_id.value)
            .where(KeyDelegationModel.status == DelegationStatus.ACTIVE.value)
            .order_by(KeyDelegationModel.shared_date)
        )
        return await self._fetch(stmt)

    async def list_for_principal(
        self,
        principal_id: PrincipalId,
        direction: DelegationDirection,
    ) -> list[Delegation]:
        """List grants a principal gave or received, newest first."""
        column = (
            KeyDelegationModel.delegator_id
            if direction == DelegationDirection.GIVEN
            else KeyDelegationModel.delegate_id
        )
        stmt = (
            select(KeyDelegationModel)
            .where(column == principal_id.value)
            .order_by(KeyDelegationModel.shared_date.desc())
        )
        return await self._fetch(stmt)

    async def list_active_past_expiry(
        self, now: datetime, limit: int | None = None
    ) -> list[Delegation]:
        """List grants stored as active whose expiry has passed."""
        stmt = (
            select(KeyDelegationModel)
            .where(KeyDelegationModel.status == DelegationStatus.ACTIVE.value)
            .where(KeyDelegationModel.expires_at < now)
            .order_by(KeyDelegationModel.expires_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> list[Delegation]:
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return [self._to_aggregate(model) for model in result.scalars().all()]

    def _to_row(self, delegation: Delegation) -> dict[str, Any]:
        """Flatten an aggregate into column values."""
        return {
            "id": delegation.id.value,
            "key_id": delegation.key_id.value,
            "assignment_id": delegation.assignment_id.value,
            "delegator_id": delegation.delegator_id.value,
            "delegate_id": delegation.delegate_id.value,
            "shared_date": delegation.shared_date,
            "expires_at": delegation.expires_at,
            "message": delegation.message,
            "status": delegation.status.value,
            "can_collect": delegation.permissions.can_collect,
            "can_return": delegation.permissions.can_return,
            "can_delegate": delegation.permissions.can_delegate,
            "access_count": delegation.access_count,
            "last_accessed": delegation.last_accessed,
            "revoked_at": delegation.revoked_at,
            "revoked_by": _value(delegation.revoked_by),
            "revocation_reason": delegation.revocation_reason,
            "cancelled_at": delegation.cancelled_at,
            "cancelled_by": _value(delegation.cancelled_by),
            "cancellation_reason": delegation.cancellation_reason,
            "parent_id": _value(delegation.parent_id),
        }

    def _to_aggregate(self, model: KeyDelegationModel) -> Delegation:
        """Convert SQLAlchemy model to domain aggregate."""
        return Delegation(
            id=DelegationId(value=model.id),
            key_id=KeyId(value=model.key_id),
            assignment_id=AssignmentId(value=model.assignment_id),
            delegator_id=PrincipalId(value=model.delegator_id),
            delegate_id=PrincipalId(value=model.delegate_id),
            shared_date=model.shared_date,
            expires_at=model.expires_at,
            message=model.message,
            status=DelegationStatus(model.status),
            permissions=DelegationPermissions(
                can_collect=model.can_collect,
                can_return=model.can_return,
                can_delegate=model.can_delegate,
            ),
            access_count=model.access_count,
            last_accessed=model.last_accessed,
            revoked_at=model.revoked_at,
            revoked_by=_principal(model.revoked_by),
            revocation_reason=model.revocation_reason,
            cancelled_at=model.cancelled_at,
            cancelled_by=_principal(model.cancelled_by),
            cancellation_reason=model.cancellation_reason,
            parent_id=DelegationId(value=model.parent_id) if model.parent_id else None,
            version=model.version,
        )


def _value(identifier) -> str | None:
    return identifier.value if identifier is not None else None


def _principal(value: str | None) -> PrincipalId | None:
    return PrincipalId(value=value) if value else None
