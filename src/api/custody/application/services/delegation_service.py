"""Delegation manager application service for the custody bounded context.

Lets the holder of an active assignment share handover capability with
peers for a limited time, and lets either party withdraw it.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.observability import (
    DefaultDelegationServiceProbe,
    DelegationServiceProbe,
)
from custody.application.unit_of_work import unit_of_work
from custody.application.value_objects import Clock, system_clock
from custody.domain.aggregates import Assignment, Delegation
from custody.domain.value_objects import (
    DelegationId,
    DelegationPermissions,
    KeyId,
    PrincipalId,
)
from custody.ports.exceptions import ConflictError, NotFoundError
from custody.ports.repositories import (
    DelegationDirection,
    IAssignmentRepository,
    IDelegationRepository,
    IKeyRepository,
)


class DelegationService:
    """Application service for sharing keys between holders.

    Several delegates may share the same key at once; only a repeated grant
    from the same delegator to the same delegate is refused.
    """

    def __init__(
        self,
        session: AsyncSession,
        key_repository: IKeyRepository,
        assignment_repository: IAssignmentRepository,
        delegation_repository: IDelegationRepository,
        probe: DelegationServiceProbe | None = None,
        clock: Clock = system_clock,
    ):
        """Initialize DelegationService with dependencies.

        Args:
            session: Database session for transaction management
            key_repository: Repository whose row lock serializes custody changes
            assignment_repository: Repository for assignment lookups
            delegation_repository: Repository for delegation persistence
            probe: Optional domain probe for observability
            clock: Source of the current time
        """
        self._session = session
        self._keys = key_repository
        self._assignments = assignment_repository
        self._delegations = delegation_repository
        self._probe = probe or DefaultDelegationServiceProbe()
        self._clock = clock

    async def delegate(
        self,
        key_id: KeyId,
        delegator_id: PrincipalId,
        delegate_id: PrincipalId,
        duration_hours: int,
        message: str | None = None,
        permissions: DelegationPermissions | None = None,
    ) -> Delegation:
        """Share a key with a peer.

        The delegator must hold an active (not overdue) assignment for the
        key, or hold a live grant on it that allows re-sharing.

        Raises:
            ValidationError: If the duration is not positive or the delegator
                shares with themselves
            NotFoundError: If the key does not exist
            ConflictError: If the delegator has no active hold for the key, or
                already shares it with this delegate
            PermissionDeniedError: If the delegator's own grant forbids re-sharing
        """
        try:
            Delegation.validate_request(delegator_id, delegate_id, duration_hours)
            async with unit_of_work(self._session):
                # Same row lock as handovers and cancellations, so a grant
                # cannot land on a hold that is closing concurrently.
                if await self._keys.get_by_id(key_id, for_update=True) is None:
                    raise NotFoundError(f"Key {key_id.value} not found")
                now = self._clock()
                assignment = await self._assignments.get_outstanding_for_key(key_id)
                if assignment is None:
                    raise ConflictError(f"Key {key_id.value} has no active hold to share")
                assignment.refresh(now)

                parent = None
                if assignment.holder_id != delegator_id:
                    parent = await self._find_parent_grant(assignment, delegator_id)

                existing = await self._delegations.find_active(
                    key_id, delegator_id, delegate_id
                )
                if existing is not None:
                    if not existing.refresh(now):
                        raise ConflictError(
                            f"{delegator_id.value} already shares key {key_id.value} "
                            f"with {delegate_id.value}"
                        )
                    # Lapsed but still stored as active: record the expiry first.
                    await self._delegations.save(existing)

                delegation = Delegation.create(
                    assignment,
                    delegator_id=delegator_id,
                    delegate_id=delegate_id,
                    duration_hours=duration_hours,
                    message=message,
                    permissions=permissions,
                    parent=parent,
                    now=now,
                )
                await self._delegations.save(delegation)
        except Exception as e:
            self._probe.delegation_operation_failed("delegate", None, str(e))
            raise

        self._probe.delegation_created(
            delegation.id.value,
            key_id.value,
            delegator_id.value,
            delegate_id.value,
            delegation.expires_at.isoformat(),
        )
        return delegation

    async def revoke_delegation(
        self,
        delegation_id: DelegationId,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Delegation:
        """Withdraw a grant as its delegator.

        Raises:
            NotFoundError: If the delegation does not exist
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is not the delegator
        """
        return await self._transition(
            "revoke",
            delegation_id,
            lambda delegation: delegation.revoke(
                actor_id, reason=reason, now=self._clock()
            ),
        )

    async def cancel_delegation(
        self,
        delegation_id: DelegationId,
        actor_id: PrincipalId,
        reason: str | None = None,
    ) -> Delegation:
        """Cancel a grant as either party.

        Raises:
            NotFoundError: If the delegation does not exist
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is neither party
        """
        return await self._transition(
            "cancel",
            delegation_id,
            lambda delegation: delegation.cancel(
                actor_id, reason=reason, now=self._clock()
            ),
        )

    async def extend_delegation(
        self,
        delegation_id: DelegationId,
        extra_hours: int,
        actor_id: PrincipalId,
    ) -> Delegation:
        """Push a grant's expiry back; a re-share never outlives its parent.

        Raises:
            NotFoundError: If the delegation does not exist
            ValidationError: If extra_hours is not positive
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is not the delegator
        """
        try:
            async with unit_of_work(self._session):
                delegation = await self._get_delegation(delegation_id)
                now = self._clock()
                delegation.refresh(now)

                cap = None
                if delegation.parent_id is not None:
                    parent = await self._get_delegation(delegation.parent_id)
                    cap = parent.expires_at

                delegation.extend(extra_hours, actor_id, now=now, cap=cap)
                await self._delegations.save(delegation)
        except Exception as e:
            self._probe.delegation_operation_failed(
                "extend", delegation_id.value, str(e)
            )
            raise

        self._probe.delegation_transitioned(
            delegation_id.value, "extend", delegation.status.value
        )
        return delegation

    async def get_delegation(self, delegation_id: DelegationId) -> Delegation:
        """Retrieve a delegation, reclassified against the current time.

        Raises:
            NotFoundError: If the delegation does not exist
        """
        async with unit_of_work(self._session):
            delegation = await self._get_delegation(delegation_id)
        delegation.refresh(self._clock())
        return delegation

    async def list_delegations(
        self,
        principal_id: PrincipalId,
        direction: DelegationDirection,
        active_only: bool = False,
    ) -> list[Delegation]:
        """List grants a principal gave or received, newest first."""
        async with unit_of_work(self._session):
            delegations = await self._delegations.list_for_principal(
                principal_id, direction
            )
        now = self._clock()
        for delegation in delegations:
            delegation.refresh(now)
        if active_only:
            return [d for d in delegations if d.is_active(now)]
        return delegations

    async def _transition(
        self,
        operation: str,
        delegation_id: DelegationId,
        mutate: Callable[[Delegation], None],
    ) -> Delegation:
        try:
            async with unit_of_work(self._session):
                delegation = await self._get_delegation(delegation_id)
                delegation.refresh(self._clock())
                mutate(delegation)
                await self._delegations.save(delegation)
        except Exception as e:
            self._probe.delegation_operation_failed(
                operation, delegation_id.value, str(e)
            )
            raise

        self._probe.delegation_transitioned(
            delegation_id.value, operation, delegation.status.value
        )
        return delegation

    async def _find_parent_grant(
        self, assignment: Assignment, delegator_id: PrincipalId
    ) -> Delegation:
        """Find the live grant a non-holder would re-share under.

        Raises:
            ConflictError: If the delegator holds no live grant on the assignment
        """
        now = self._clock()
        received = await self._delegations.list_for_principal(
            delegator_id, DelegationDirection.RECEIVED
        )
        for grant in received:
            if grant.assignment_id == assignment.id and grant.is_active(now):
                return grant
        raise ConflictError(
            f"{delegator_id.value} does not hold key {assignment.key_id.value}"
        )

    async def _get_delegation(self, delegation_id: DelegationId) -> Delegation:
        delegation = await self._delegations.get_by_id(delegation_id)
        if delegation is None:
            raise NotFoundError(f"Delegation {delegation_id.value} not found")
        return delegation
