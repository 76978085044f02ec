"""Key aggregate for the custody context."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from custody.domain.events import KeyRetired, KeyStatusChanged
from custody.domain.value_objects import (
    ADMINISTRATIVE_OVERRIDES,
    HELD_STATUSES,
    Availability,
    KeyId,
    KeyStatus,
    PrincipalId,
)
from custody.ports.exceptions import ConflictError, InvalidStateError, ValidationError

if TYPE_CHECKING:
    from custody.domain.aggregates.assignment import Assignment
    from custody.domain.events import DomainEvent

DEFAULT_MAX_ASSIGNMENT_HOURS = 24


@dataclass
class Key:
    """Key aggregate representing a physical lab or room key.

    Business rules:
    - current_status is derived from the assignment ledger (see
      recompute_key_status) except for the maintenance/lost overrides
    - Overrides can only be set while no assignment is outstanding
    - Keys are retired, never deleted, once they have history
    - Retired keys and keys under an override reject new requests
    """

    id: KeyId
    name: str
    lab_name: str
    lab_number: str
    department: str
    location: str
    created_at: datetime
    description: str | None = None
    requires_approval: bool = False
    max_assignment_duration_hours: int = DEFAULT_MAX_ASSIGNMENT_HOURS
    current_status: KeyStatus = KeyStatus.AVAILABLE
    is_active: bool = True
    total_assignments: int = 0
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def create(
        cls,
        name: str,
        lab_name: str,
        lab_number: str,
        department: str,
        location: str,
        description: str | None = None,
        requires_approval: bool = False,
        max_assignment_duration_hours: int = DEFAULT_MAX_ASSIGNMENT_HOURS,
    ) -> Key:
        """Factory method for registering a new key.

        Args:
            name: Display name of the key
            lab_name: Name of the lab or room the key opens
            lab_number: Room number
            department: Owning department
            location: Where the key is stored
            description: Optional free-text description
            requires_approval: Whether requests must be approved before collection
            max_assignment_duration_hours: Upper bound for a single hold

        Returns:
            A new Key aggregate in the available state

        Raises:
            ValidationError: If the name is empty or the maximum duration
                is not positive
        """
        if not name or not name.strip():
            raise ValidationError("Key name cannot be empty")
        if max_assignment_duration_hours <= 0:
            raise ValidationError("Maximum assignment duration must be positive")

        return cls(
            id=KeyId.generate(),
            name=name.strip(),
            lab_name=lab_name,
            lab_number=lab_number,
            department=department,
            location=location,
            description=description,
            requires_approval=requires_approval,
            max_assignment_duration_hours=max_assignment_duration_hours,
            created_at=datetime.now(UTC),
        )

    def availability(self) -> Availability:
        """Report the key's availability to callers."""
        if self.current_status == KeyStatus.ASSIGNED:
            return Availability.HELD
        return Availability(self.current_status.value)

    @property
    def has_override(self) -> bool:
        """Whether an administrative override is in force."""
        return self.current_status in ADMINISTRATIVE_OVERRIDES

    def ensure_accepts_requests(self) -> None:
        """Check that a new assignment may be requested for this key.

        Raises:
            InvalidStateError: If the key is retired or under an override
        """
        if not self.is_active:
            raise InvalidStateError(f"Key {self.id.value} is retired")
        if self.has_override:
            raise InvalidStateError(
                f"Key {self.id.value} is under {self.current_status.value}"
            )

    def set_administrative_status(
        self,
        status: KeyStatus,
        actor_id: PrincipalId,
        has_outstanding: bool,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Set or clear an administrative override.

        Args:
            status: MAINTENANCE or LOST to set an override, AVAILABLE to clear it
            actor_id: The administrator making the change
            has_outstanding: Whether the key has a pending/active/overdue assignment
            reason: Optional reason recorded in the transaction log
            now: Clock reading (defaults to the current UTC time)

        Raises:
            ValidationError: If status is ASSIGNED, which only the ledger may set
            ConflictError: If an assignment is outstanding
        """
        if status == KeyStatus.ASSIGNED:
            raise ValidationError("Assigned status is derived from the ledger")
        if has_outstanding:
            raise ConflictError(
                f"Key {self.id.value} has an outstanding assignment"
            )

        previous = self.current_status
        self.current_status = status
        self._pending_events.append(
            KeyStatusChanged(
                key_id=self.id.value,
                actor_id=actor_id.value,
                previous_status=previous.value,
                new_status=status.value,
                reason=reason,
                occurred_at=now or datetime.now(UTC),
            )
        )

    def retire(
        self,
        actor_id: PrincipalId,
        has_outstanding: bool,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Soft-retire the key so it accepts no new requests.

        Raises:
            InvalidStateError: If the key is already retired
            ConflictError: If an assignment is outstanding
        """
        if not self.is_active:
            raise InvalidStateError(f"Key {self.id.value} is already retired")
        if has_outstanding:
            raise ConflictError(
                f"Key {self.id.value} has an outstanding assignment"
            )

        self.is_active = False
        self._pending_events.append(
            KeyRetired(
                key_id=self.id.value,
                actor_id=actor_id.value,
                reason=reason,
                occurred_at=now or datetime.now(UTC),
            )
        )

    def record_collection(self) -> None:
        """Count a hold that has started."""
        self.total_assignments += 1

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events."""
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events


def recompute_key_status(key: Key, assignments: Iterable[Assignment]) -> KeyStatus:
    """Derive a key's stored status from its assignments.

    Administrative overrides take precedence. Otherwise a key with an
    active or overdue assignment is assigned and any other key is
    available; pending requests leave the key on the desk.

    Args:
        key: The key whose status is recomputed
        assignments: Assignments referencing the key (any status)

    Returns:
        The status the key should carry
    """
    if key.has_override:
        return key.current_status

    for assignment in assignments:
        if assignment.key_id == key.id and assignment.status in HELD_STATUSES:
            return KeyStatus.ASSIGNED
    return KeyStatus.AVAILABLE
