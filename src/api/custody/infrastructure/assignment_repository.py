"""PostgreSQL implementation of IAssignmentRepository.

New assignments are inserted with ``ON CONFLICT DO NOTHING`` against the
partial unique index on outstanding assignments, so of two concurrent
requests for one key exactly one row lands. Every later write is a
conditional update on the version the aggregate was read at.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from custody.domain.aggregates import Assignment
from custody.domain.value_objects import (
    OUTSTANDING_STATUSES,
    AccessType,
    AssignmentId,
    AssignmentStatus,
    KeyId,
    PrincipalId,
)
from custody.infrastructure.models import KeyAssignmentModel
from custody.infrastructure.models.assignment import OUTSTANDING_PREDICATE
from custody.infrastructure.observability import (
    AssignmentRepositoryProbe,
    DefaultAssignmentRepositoryProbe,
)
from custody.infrastructure.transaction_translator import TransactionTranslator
from custody.ports.exceptions import ConflictError, InvalidStateError
from custody.ports.repositories import IAssignmentRepository, ITransactionLog


class AssignmentRepository(IAssignmentRepository):
    """Repository for Assignment aggregate persistence to PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        transaction_log: ITransactionLog,
        probe: AssignmentRepositoryProbe | None = None,
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
        self._probe = probe or DefaultAssignmentRepositoryProbe()
        self._translator = translator or TransactionTranslator()

    async def save(self, assignment: Assignment) -> None:
        """Insert or conditionally update an assignment.

        Raises:
            ConflictError: If a new assignment's key already has an
                outstanding one
            InvalidStateError: If the stored row changed since it was read
        """
        row = self._to_row(assignment)

        if assignment.version == 0:
            stmt = (
                insert(KeyAssignmentModel)
                .values(**row, version=1)
                .on_conflict_do_nothing(
                    index_elements=[KeyAssignmentModel.key_id],
                    index_where=text(OUTSTANDING_PREDICATE),
                )
                .returning(KeyAssignmentModel.id)
            )
            result = await self._session.execute(stmt)
            if result.scalar_one_or_none() is None:
                self._probe.outstanding_assignment_exists(assignment.key_id.value)
                raise ConflictError(
                    f"Key {assignment.key_id.value} already has an outstanding assignment"
                )
            assignment.version = 1
        else:
            expected = assignment.version
            stmt = (
                update(KeyAssignmentModel)
                .where(KeyAssignmentModel.id == assignment.id.value)
                .where(KeyAssignmentModel.version == expected)
                .values(**row, version=expected + 1)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                self._probe.stale_assignment_write(assignment.id.value, expected)
                raise InvalidStateError(
                    f"Assignment {assignment.id.value} was modified concurrently"
                )
            assignment.version = expected + 1

        for event in assignment.collect_events():
            await self._log.append(self._translator.translate(event))

        self._probe.assignment_saved(
            assignment.id.value, assignment.status.value, assignment.version
        )

    async def get_by_id(self, assignment_id: AssignmentId) -> Assignment | None:
        """Retrieve an assignment by its ID."""
        stmt = select(KeyAssignmentModel).where(
            KeyAssignmentModel.id == assignment_id.value
        )
        models = await self._fetch(stmt)
        if not models:
            self._probe.assignment_not_found(assignment_id.value)
            return None
        return models[0]

    async def get_outstanding_for_key(self, key_id: KeyId) -> Assignment | None:
        """Retrieve the key's pending, active or overdue assignment."""
        stmt = (
            select(KeyAssignmentModel)
            .where(KeyAssignmentModel.key_id == key_id.value)
            .where(KeyAssignmentModel.status.in_(_values(OUTSTANDING_STATUSES)))
        )
        models = await self._fetch(stmt)
        return models[0] if models else None

    async def list_for_key(self, key_id: KeyId) -> list[Assignment]:
        """List every assignment of a key, newest first."""
        stmt = (
            select(KeyAssignmentModel)
            .where(KeyAssignmentModel.key_id == key_id.value)
            .order_by(KeyAssignmentModel.assigned_date.desc())
        )
        return await self._fetch(stmt)

    async def list_for_holder(
        self,
        holder_id: PrincipalId,
        statuses: Collection[AssignmentStatus] | None = None,
    ) -> list[Assignment]:
        """List a holder's assignments, newest first."""
        stmt = select(KeyAssignmentModel).where(
            KeyAssignmentModel.holder_id == holder_id.value
        )
        if statuses is not None:
            stmt = stmt.where(KeyAssignmentModel.status.in_(_values(statuses)))
        stmt = stmt.order_by(KeyAssignmentModel.assigned_date.desc())
        return await self._fetch(stmt)

    async def list_by_status(
        self,
        statuses: Collection[AssignmentStatus],
        limit: int | None = None,
    ) -> list[Assignment]:
        """List assignments in any of the given statuses, oldest due first."""
        stmt = (
            select(KeyAssignmentModel)
            .where(KeyAssignmentModel.status.in_(_values(statuses)))
            .order_by(KeyAssignmentModel.due_date)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt)

    async def list_active_past_due(
        self, now: datetime, limit: int | None = None
    ) -> list[Assignment]:
        """List active assignments whose due date has passed."""
        stmt = (
            select(KeyAssignmentModel)
            .where(KeyAssignmentModel.status == AssignmentStatus.ACTIVE.value)
            .where(KeyAssignmentModel.due_date < now)
            .order_by(KeyAssignmentModel.due_date)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> list[Assignment]:
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return [self._to_aggregate(model) for model in result.scalars().all()]

    def _to_row(self, assignment: Assignment) -> dict[str, Any]:
        """Flatten an aggregate into column values."""
        return {
            "id": assignment.id.value,
            "key_id": assignment.key_id.value,
            "holder_id": assignment.holder_id.value,
            "grantor_id": assignment.grantor_id.value,
            "assigned_date": assignment.assigned_date,
            "due_date": assignment.due_date,
            "access_type": assignment.access_type.value,
            "status": assignment.status.value,
            "request_reason": assignment.request_reason,
            "approval_required": assignment.approval_required,
            "approved_at": assignment.approved_at,
            "approved_by": _value(assignment.approved_by),
            "rejected_at": assignment.rejected_at,
            "rejected_by": _value(assignment.rejected_by),
            "rejection_reason": assignment.rejection_reason,
            "collected_at": assignment.collected_at,
            "collected_by": _value(assignment.collected_by),
            "returned_at": assignment.returned_at,
            "returned_by": _value(assignment.returned_by),
            "return_reason": assignment.return_reason,
            "actual_duration_hours": assignment.actual_duration_hours,
            "cancelled_at": assignment.cancelled_at,
            "cancelled_by": _value(assignment.cancelled_by),
            "cancellation_reason": assignment.cancellation_reason,
            "reminders_sent": assignment.reminders_sent,
            "last_reminder_sent": assignment.last_reminder_sent,
        }

    def _to_aggregate(self, model: KeyAssignmentModel) -> Assignment:
        """Convert SQLAlchemy model to domain aggregate."""
        return Assignment(
            id=AssignmentId(value=model.id),
            key_id=KeyId(value=model.key_id),
            holder_id=PrincipalId(value=model.holder_id),
            grantor_id=PrincipalId(value=model.grantor_id),
            assigned_date=model.assigned_date,
            due_date=model.due_date,
            access_type=AccessType(model.access_type),
            status=AssignmentStatus(model.status),
            request_reason=model.request_reason,
            approval_required=model.approval_required,
            approved_at=model.approved_at,
            approved_by=_principal(model.approved_by),
            rejected_at=model.rejected_at,
            rejected_by=_principal(model.rejected_by),
            rejection_reason=model.rejection_reason,
            collected_at=model.collected_at,
            collected_by=_principal(model.collected_by),
            returned_at=model.returned_at,
            returned_by=_principal(model.returned_by),
            return_reason=model.return_reason,
            actual_duration_hours=model.actual_duration_hours,
            cancelled_at=model.cancelled_at,
            cancelled_by=_principal(model.cancelled_by),
            cancellation_reason=model.cancellation_reason,
            reminders_sent=model.reminders_sent,
            last_reminder_sent=model.last_reminder_sent,
            version=model.version,
        )


def _values(statuses: Collection[AssignmentStatus]) -> list[str]:
    return [status.value for status in statuses]


def _value(principal: PrincipalId | None) -> str | None:
    return principal.value if principal is not None else None


def _principal(value: str | None) -> PrincipalId | None:
    return PrincipalId(value=value) if value else None
