"""Key registry application service for the custody bounded context.

Registers keys, reports their availability and applies administrative
overrides (maintenance, lost) and retirement.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.observability import (
    DefaultKeyRegistryServiceProbe,
    KeyRegistryServiceProbe,
)
from custody.application.unit_of_work import unit_of_work
from custody.application.value_objects import Clock, system_clock
from custody.domain.aggregates import Key
from custody.domain.value_objects import Availability, KeyId, KeyStatus, PrincipalId
from custody.ports.exceptions import NotFoundError
from custody.ports.repositories import IAssignmentRepository, IKeyRepository


class KeyRegistryService:
    """Application service for the key registry."""

    def __init__(
        self,
        session: AsyncSession,
        key_repository: IKeyRepository,
        assignment_repository: IAssignmentRepository,
        probe: KeyRegistryServiceProbe | None = None,
        clock: Clock = system_clock,
    ):
        """Initialize KeyRegistryService with dependencies.

        Args:
            session: Database session for transaction management
            key_repository: Repository for key persistence
            assignment_repository: Used to check for outstanding assignments
            probe: Optional domain probe for observability
            clock: Source of the current time
        """
        self._session = session
        self._keys = key_repository
        self._assignments = assignment_repository
        self._probe = probe or DefaultKeyRegistryServiceProbe()
        self._clock = clock

    async def register_key(
        self,
        name: str,
        lab_name: str,
        lab_number: str,
        department: str,
        location: str,
        description: str | None = None,
        requires_approval: bool = False,
        max_assignment_duration_hours: int = 24,
    ) -> Key:
        """Register a new key in the available state.

        Raises:
            ValidationError: If the name is empty or the duration is not positive
        """
        try:
            key = Key.create(
                name=name,
                lab_name=lab_name,
                lab_number=lab_number,
                department=department,
                location=location,
                description=description,
                requires_approval=requires_approval,
                max_assignment_duration_hours=max_assignment_duration_hours,
            )
            async with unit_of_work(self._session):
                await self._keys.save(key)
        except Exception as e:
            self._probe.key_operation_failed("register_key", None, str(e))
            raise

        self._probe.key_registered(key.id.value, key.name, key.department)
        return key

    async def get_key(self, key_id: KeyId) -> Key:
        """Retrieve a key.

        Raises:
            NotFoundError: If the key does not exist
        """
        async with unit_of_work(self._session):
            key = await self._keys.get_by_id(key_id)
        if key is None:
            raise NotFoundError(f"Key {key_id.value} not found")
        return key

    async def availability(self, key_id: KeyId) -> Availability:
        """Report whether a key is available, held, in maintenance or lost."""
        key = await self.get_key(key_id)
        return key.availability()

    async def list_keys(
        self, department: str | None = None, include_retired: bool = False
    ) -> list[Key]:
        """List keys, optionally filtered by department."""
        async with unit_of_work(self._session):
            return await self._keys.list(
                department=department, include_retired=include_retired
            )

    async def set_key_status(
        self,
        key_id: KeyId,
        status: KeyStatus,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Key:
        """Set or clear an administrative override on a key.

        Raises:
            NotFoundError: If the key does not exist
            ValidationError: If status is ASSIGNED
            ConflictError: If the key has an outstanding assignment
        """
        try:
            async with unit_of_work(self._session):
                key = await self._get_locked(key_id)
                previous = key.current_status
                outstanding = await self._assignments.get_outstanding_for_key(key_id)
                key.set_administrative_status(
                    status,
                    actor_id=actor_id,
                    has_outstanding=outstanding is not None,
                    reason=reason,
                    now=self._clock(),
                )
                await self._keys.save(key)
        except Exception as e:
            self._probe.key_operation_failed("set_key_status", key_id.value, str(e))
            raise

        self._probe.key_status_changed(
            key_id.value, previous.value, status.value, actor_id.value
        )
        return key

    async def retire_key(
        self,
        key_id: KeyId,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Key:
        """Retire a key so it accepts no new requests.

        Raises:
            NotFoundError: If the key does not exist
            InvalidStateError: If the key is already retired
            ConflictError: If the key has an outstanding assignment
        """
        try:
            async with unit_of_work(self._session):
                key = await self._get_locked(key_id)
                outstanding = await self._assignments.get_outstanding_for_key(key_id)
                key.retire(
                    actor_id=actor_id,
                    has_outstanding=outstanding is not None,
                    reason=reason,
                    now=self._clock(),
                )
                await self._keys.save(key)
        except Exception as e:
            self._probe.key_operation_failed("retire_key", key_id.value, str(e))
            raise

        self._probe.key_retired(key_id.value, actor_id.value)
        return key

    async def _get_locked(self, key_id: KeyId) -> Key:
        key = await self._keys.get_by_id(key_id, for_update=True)
        if key is None:
            raise NotFoundError(f"Key {key_id.value} not found")
        return key
