"""Delegation aggregate for the custody context.

A delegation (sharing grant) lets a peer perform handovers for an active
assignment without changing who holds it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from custody.domain.events import (
    DelegationCancelled,
    DelegationCreated,
    DelegationExpired,
    DelegationExtended,
    DelegationRevoked,
)
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    DelegationId,
    DelegationPermissions,
    DelegationStatus,
    HandoverAction,
    KeyId,
    PrincipalId,
)
from custody.ports.exceptions import (
    ConflictError,
    InvalidStateError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from custody.domain.aggregates.assignment import Assignment
    from custody.domain.events import DomainEvent


@dataclass
class Delegation:
    """Delegation aggregate layered on an active assignment.

    Business rules:
    - Only the holder of an active assignment (or a delegate allowed to
      re-delegate) may share the key
    - A sub-delegation never outlives its parent and cannot be re-shared
    - An active grant past its expiry reads as expired
    - Once it leaves active the grant is never mutated again
    """

    id: DelegationId
    key_id: KeyId
    assignment_id: AssignmentId
    delegator_id: PrincipalId
    delegate_id: PrincipalId
    shared_date: datetime
    expires_at: datetime
    message: str | None = None
    status: DelegationStatus = DelegationStatus.ACTIVE
    permissions: DelegationPermissions = field(default_factory=DelegationPermissions)
    access_count: int = 0
    last_accessed: datetime | None = None
    revoked_at: datetime | None = None
    revoked_by: PrincipalId | None = None
    revocation_reason: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: PrincipalId | None = None
    cancellation_reason: str | None = None
    parent_id: DelegationId | None = None
    version: int = 0
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def create(
        cls,
        assignment: Assignment,
        delegator_id: PrincipalId,
        delegate_id: PrincipalId,
        duration_hours: int,
        message: str | None = None,
        permissions: DelegationPermissions | None = None,
        parent: Delegation | None = None,
        now: datetime | None = None,
    ) -> Delegation:
        """Factory method for sharing a key with a peer.

        Args:
            assignment: The assignment the grant is layered on
            delegator_id: The principal sharing the key
            delegate_id: The principal receiving access
            duration_hours: Length of the grant
            message: Optional note for the delegate
            permissions: Capability bits (defaults to collect + return)
            parent: The delegator's own grant when re-delegating
            now: Clock reading (defaults to the current UTC time)

        Returns:
            An active Delegation with DelegationCreated recorded

        Raises:
            ValidationError: If the duration is not positive or the delegator
                shares with themselves
            ConflictError: If the delegator has no active hold for the key
            PermissionDeniedError: If the parent grant does not allow re-sharing
        """
        cls.validate_request(delegator_id, delegate_id, duration_hours)
        if delegate_id == assignment.holder_id:
            raise ValidationError("The delegate already holds this key")

        now = now or datetime.now(UTC)
        if assignment.status != AssignmentStatus.ACTIVE:
            raise ConflictError(
                f"Key {assignment.key_id.value} has no active hold to share"
            )

        permissions = permissions or DelegationPermissions()
        expires_at = now + timedelta(hours=duration_hours)

        if parent is None:
            if assignment.holder_id != delegator_id:
                raise ConflictError(
                    f"{delegator_id.value} does not hold key {assignment.key_id.value}"
                )
        else:
            if (
                parent.assignment_id != assignment.id
                or parent.delegate_id != delegator_id
                or not parent.is_active(now)
            ):
                raise ConflictError(
                    f"{delegator_id.value} does not hold key {assignment.key_id.value}"
                )
            if not parent.permissions.can_delegate:
                raise PermissionDeniedError(
                    f"Delegation {parent.id.value} does not allow re-sharing"
                )
            expires_at = min(expires_at, parent.expires_at)
            permissions = DelegationPermissions(
                can_collect=permissions.can_collect and parent.permissions.can_collect,
                can_return=permissions.can_return and parent.permissions.can_return,
                can_delegate=False,
            )

        delegation = cls(
            id=DelegationId.generate(),
            key_id=assignment.key_id,
            assignment_id=assignment.id,
            delegator_id=delegator_id,
            delegate_id=delegate_id,
            shared_date=now,
            expires_at=expires_at,
            message=message,
            permissions=permissions,
            parent_id=parent.id if parent else None,
        )
        delegation._pending_events.append(
            DelegationCreated(
                delegation_id=delegation.id.value,
                key_id=assignment.key_id.value,
                assignment_id=assignment.id.value,
                delegator_id=delegator_id.value,
                delegate_id=delegate_id.value,
                duration_hours=duration_hours,
                expires_at=expires_at,
                message=message,
                occurred_at=now,
            )
        )
        return delegation

    @staticmethod
    def validate_request(
        delegator_id: PrincipalId, delegate_id: PrincipalId, duration_hours: int
    ) -> None:
        """Reject malformed share requests before any lookup.

        Raises:
            ValidationError: If the duration is not positive or the delegator
                shares with themselves
        """
        if duration_hours <= 0:
            raise ValidationError("Duration must be a positive number of hours")
        if delegator_id == delegate_id:
            raise ValidationError("A key cannot be shared with oneself")

    def is_active(self, now: datetime | None = None) -> bool:
        """Whether the grant is active and not past its expiry."""
        now = now or datetime.now(UTC)
        return self.status == DelegationStatus.ACTIVE and now <= self.expires_at

    def allows(self, action: HandoverAction, now: datetime | None = None) -> bool:
        """Whether the grant currently covers a handover action."""
        return self.is_active(now) and self.permissions.allows(action)

    def refresh(self, now: datetime | None = None) -> bool:
        """Reclassify an active grant as expired once its expiry passes.

        Returns:
            True if the status changed
        """
        now = now or datetime.now(UTC)
        if self.status != DelegationStatus.ACTIVE or now <= self.expires_at:
            return False

        self.status = DelegationStatus.EXPIRED
        self._pending_events.append(
            DelegationExpired(
                delegation_id=self.id.value,
                key_id=self.key_id.value,
                assignment_id=self.assignment_id.value,
                delegator_id=self.delegator_id.value,
                delegate_id=self.delegate_id.value,
                expires_at=self.expires_at,
                occurred_at=now,
            )
        )
        return True

    def revoke(
        self,
        actor_id: PrincipalId,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Withdraw the grant; only the delegator may revoke.

        Raises:
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is not the delegator
        """
        self._ensure_active()
        if actor_id != self.delegator_id:
            raise PermissionDeniedError(
                f"Only the delegator can revoke delegation {self.id.value}"
            )

        now = now or datetime.now(UTC)
        self.status = DelegationStatus.REVOKED
        self.revoked_at = now
        self.revoked_by = actor_id
        self.revocation_reason = reason
        self._pending_events.append(
            DelegationRevoked(
                delegation_id=self.id.value,
                key_id=self.key_id.value,
                assignment_id=self.assignment_id.value,
                delegator_id=self.delegator_id.value,
                delegate_id=self.delegate_id.value,
                actor_id=actor_id.value,
                reason=reason,
                occurred_at=now,
            )
        )

    def cancel(
        self,
        actor_id: PrincipalId,
        reason: str | None = None,
        now: datetime | None = None,
        cascade: bool = False,
    ) -> None:
        """Cancel the grant.

        Either party may cancel. With cascade=True the grant is closed
        because its assignment ended, so the actor need not be a party.

        Raises:
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is neither party
        """
        self._ensure_active()
        if not cascade and actor_id not in (self.delegator_id, self.delegate_id):
            raise PermissionDeniedError(
                f"Only the delegator or delegate can cancel delegation {self.id.value}"
            )

        now = now or datetime.now(UTC)
        self.status = DelegationStatus.CANCELLED
        self.cancelled_at = now
        self.cancelled_by = actor_id
        self.cancellation_reason = reason
        self._pending_events.append(
            DelegationCancelled(
                delegation_id=self.id.value,
                key_id=self.key_id.value,
                assignment_id=self.assignment_id.value,
                delegator_id=self.delegator_id.value,
                delegate_id=self.delegate_id.value,
                actor_id=actor_id.value,
                reason=reason,
                occurred_at=now,
            )
        )

    def extend(
        self,
        extra_hours: int,
        actor_id: PrincipalId,
        now: datetime | None = None,
        cap: datetime | None = None,
    ) -> None:
        """Push the expiry back by extra_hours; only the delegator may extend.

        Args:
            extra_hours: Hours to add to the expiry
            actor_id: The principal asking for the extension
            now: Clock reading (defaults to the current UTC time)
            cap: Latest allowed expiry (the parent grant's, for re-shares)

        Raises:
            ValidationError: If extra_hours is not positive
            InvalidStateError: If the grant is no longer active
            PermissionDeniedError: If the actor is not the delegator
        """
        if extra_hours <= 0:
            raise ValidationError("Extension must be a positive number of hours")
        self._ensure_active()
        if actor_id != self.delegator_id:
            raise PermissionDeniedError(
                f"Only the delegator can extend delegation {self.id.value}"
            )

        now = now or datetime.now(UTC)
        expires_at = self.expires_at + timedelta(hours=extra_hours)
        if cap is not None:
            expires_at = min(expires_at, cap)
        self.expires_at = expires_at
        self._pending_events.append(
            DelegationExtended(
                delegation_id=self.id.value,
                key_id=self.key_id.value,
                assignment_id=self.assignment_id.value,
                delegator_id=self.delegator_id.value,
                delegate_id=self.delegate_id.value,
                extra_hours=extra_hours,
                expires_at=self.expires_at,
                occurred_at=now,
            )
        )

    def record_access(self, now: datetime | None = None) -> None:
        """Track a handover performed through this grant."""
        self.access_count += 1
        self.last_accessed = now or datetime.now(UTC)

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events."""
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events

    def _ensure_active(self) -> None:
        if self.status != DelegationStatus.ACTIVE:
            raise InvalidStateError(
                f"Delegation {self.id.value} is already {self.status.value}"
            )
