"""PostgreSQL implementation of IKeyRepository.

Write operations translate the aggregate's domain events into transaction
log records within the same database transaction.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from custody.domain.aggregates import Key
from custody.domain.value_objects import KeyId, KeyStatus
from custody.infrastructure.models import KeyModel
from custody.infrastructure.observability import (
    DefaultKeyRepositoryProbe,
    KeyRepositoryProbe,
)
from custody.infrastructure.transaction_translator import TransactionTranslator
from custody.ports.repositories import IKeyRepository, ITransactionLog


class KeyRepository(IKeyRepository):
    """Repository for Key aggregate persistence to PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        transaction_log: ITransactionLog,
        probe: KeyRepositoryProbe | None = None,
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
        self._probe = probe or DefaultKeyRepositoryProbe()
        self._translator = translator or TransactionTranslator()

    async def save(self, key: Key) -> None:
        """Insert or update a key and append its transaction records."""
        stmt = select(KeyModel).where(KeyModel.id == key.id.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        if model:
            model.name = key.name
            model.lab_name = key.lab_name
            model.lab_number = key.lab_number
            model.department = key.department
            model.location = key.location
            model.description = key.description
            model.requires_approval = key.requires_approval
            model.max_assignment_duration_hours = key.max_assignment_duration_hours
            model.current_status = key.current_status.value
            model.is_active = key.is_active
            model.total_assignments = key.total_assignments
        else:
            model = KeyModel(
                id=key.id.value,
                name=key.name,
                lab_name=key.lab_name,
                lab_number=key.lab_number,
                department=key.department,
                location=key.location,
                description=key.description,
                requires_approval=key.requires_approval,
                max_assignment_duration_hours=key.max_assignment_duration_hours,
                current_status=key.current_status.value,
                is_active=key.is_active,
                total_assignments=key.total_assignments,
                created_at=key.created_at,
            )
            self._session.add(model)

        # Flush so the key row exists before records referencing it
        await self._session.flush()

        for event in key.collect_events():
            await self._log.append(self._translator.translate(event))

        self._probe.key_saved(key.id.value, key.current_status.value)

    async def get_by_id(self, key_id: KeyId, for_update: bool = False) -> Key | None:
        """Retrieve a key, optionally locking its row until commit."""
        stmt = (
            select(KeyModel)
            .where(KeyModel.id == key_id.value)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            self._probe.key_not_found(key_id.value)
            return None
        return self._to_aggregate(model)

    async def list(
        self, department: str | None = None, include_retired: bool = False
    ) -> list[Key]:
        """List keys ordered by name."""
        stmt = select(KeyModel)
        if department is not None:
            stmt = stmt.where(KeyModel.department == department)
        if not include_retired:
            stmt = stmt.where(KeyModel.is_active.is_(True))
        stmt = stmt.order_by(KeyModel.name).execution_options(populate_existing=True)

        result = await self._session.execute(stmt)
        return [self._to_aggregate(model) for model in result.scalars().all()]

    def _to_aggregate(self, model: KeyModel) -> Key:
        """Convert SQLAlchemy model to domain aggregate."""
        return Key(
            id=KeyId(value=model.id),
            name=model.name,
            lab_name=model.lab_name,
            lab_number=model.lab_number,
            department=model.department,
            location=model.location,
            created_at=model.created_at,
            description=model.description,
            requires_approval=model.requires_approval,
            max_assignment_duration_hours=model.max_assignment_duration_hours,
            current_status=KeyStatus(model.current_status),
            is_active=model.is_active,
            total_assignments=model.total_assignments,
        )
