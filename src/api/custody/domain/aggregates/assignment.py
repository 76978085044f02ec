"""Assignment aggregate for the custody context.

An assignment is one holder-relationship instance for a key. It moves
through the ledger state machine:

    pending -> active <-> overdue -> returned
    pending | active | overdue -> cancelled

Returned and cancelled are terminal.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from custody.domain.events import (
    AssignmentApproved,
    AssignmentCancelled,
    AssignmentOverdue,
    AssignmentRejected,
    AssignmentRequested,
    DeadlineExtended,
    KeyCollected,
    KeyForceReturned,
    KeyReturned,
)
from custody.domain.value_objects import (
    HELD_STATUSES,
    OUTSTANDING_STATUSES,
    AccessType,
    AssignmentId,
    AssignmentStatus,
    HandoverAction,
    KeyId,
    PrincipalId,
)
from custody.ports.exceptions import InvalidStateError, ValidationError

if TYPE_CHECKING:
    from custody.domain.aggregates.key import Key
    from custody.domain.events import DomainEvent


@dataclass
class Assignment:
    """Assignment aggregate tracking who holds a key and until when.

    Business rules:
    - At most one assignment per key is pending, active or overdue
      (enforced by the repository with an atomic insert)
    - The due date is capped by the key's maximum assignment duration
    - Keys that require approval must be approved before collection
    - An active assignment past its due date reads as overdue
    - Terminal transitions cannot be repeated

    Event collection:
    - Every transition records exactly one domain event
    - version is the optimistic concurrency counter; 0 means not yet persisted
    """

    id: AssignmentId
    key_id: KeyId
    holder_id: PrincipalId
    grantor_id: PrincipalId
    assigned_date: datetime
    due_date: datetime
    access_type: AccessType = AccessType.TEMPORARY
    status: AssignmentStatus = AssignmentStatus.PENDING
    request_reason: str | None = None
    approval_required: bool = False
    approved_at: datetime | None = None
    approved_by: PrincipalId | None = None
    rejected_at: datetime | None = None
    rejected_by: PrincipalId | None = None
    rejection_reason: str | None = None
    collected_at: datetime | None = None
    collected_by: PrincipalId | None = None
    returned_at: datetime | None = None
    returned_by: PrincipalId | None = None
    return_reason: str | None = None
    actual_duration_hours: int | None = None
    cancelled_at: datetime | None = None
    cancelled_by: PrincipalId | None = None
    cancellation_reason: str | None = None
    reminders_sent: int = 0
    last_reminder_sent: datetime | None = None
    version: int = 0
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def request(
        cls,
        key: Key,
        holder_id: PrincipalId,
        duration_hours: int,
        reason: str | None = None,
        access_type: AccessType = AccessType.TEMPORARY,
        grantor_id: PrincipalId | None = None,
        now: datetime | None = None,
    ) -> Assignment:
        """Factory method for a new pending assignment.

        Args:
            key: The key being requested
            holder_id: The principal who will hold the key
            duration_hours: Requested length of the hold
            reason: Optional request reason
            access_type: Kind of access requested
            grantor_id: The principal creating the request (defaults to holder)
            now: Clock reading (defaults to the current UTC time)

        Returns:
            A pending Assignment with AssignmentRequested recorded

        Raises:
            ValidationError: If duration_hours is not positive
            InvalidStateError: If the key is retired or under an override
        """
        if duration_hours <= 0:
            raise ValidationError("Duration must be a positive number of hours")
        key.ensure_accepts_requests()

        now = now or datetime.now(UTC)
        hours = min(duration_hours, key.max_assignment_duration_hours)
        grantor = grantor_id or holder_id

        assignment = cls(
            id=AssignmentId.generate(),
            key_id=key.id,
            holder_id=holder_id,
            grantor_id=grantor,
            assigned_date=now,
            due_date=now + timedelta(hours=hours),
            access_type=access_type,
            request_reason=reason,
            approval_required=key.requires_approval,
        )
        assignment._pending_events.append(
            AssignmentRequested(
                assignment_id=assignment.id.value,
                key_id=key.id.value,
                holder_id=holder_id.value,
                grantor_id=grantor.value,
                access_type=access_type.value,
                due_date=assignment.due_date,
                reason=reason,
                occurred_at=now,
            )
        )
        return assignment

    @property
    def is_outstanding(self) -> bool:
        """Whether the assignment blocks new requests for its key."""
        return self.status in OUTSTANDING_STATUSES

    @property
    def is_held(self) -> bool:
        """Whether the key is physically out with the holder."""
        return self.status in HELD_STATUSES

    @property
    def awaiting_approval(self) -> bool:
        """Whether the request still needs an approver."""
        return (
            self.status == AssignmentStatus.PENDING
            and self.approval_required
            and self.approved_at is None
        )

    def refresh(self, now: datetime | None = None) -> bool:
        """Reclassify an active hold as overdue once its due date passes.

        Returns:
            True if the status changed
        """
        now = now or datetime.now(UTC)
        if self.status != AssignmentStatus.ACTIVE or now <= self.due_date:
            return False

        self.status = AssignmentStatus.OVERDUE
        self._pending_events.append(
            AssignmentOverdue(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                due_date=self.due_date,
                occurred_at=now,
            )
        )
        return True

    def ensure_ready_for(self, action: HandoverAction) -> None:
        """Check the state a handover action requires.

        Collection needs a pending (and, where required, approved) request;
        deposit needs an active or overdue hold.

        Raises:
            InvalidStateError: If the assignment is not in the required state
        """
        if action == HandoverAction.COLLECTION:
            if self.status != AssignmentStatus.PENDING:
                raise InvalidStateError(
                    f"Assignment {self.id.value} cannot be collected from "
                    f"{self.status.value}"
                )
            if self.awaiting_approval:
                raise InvalidStateError(
                    f"Assignment {self.id.value} is awaiting approval"
                )
            return

        if not self.is_held:
            raise InvalidStateError(
                f"Assignment {self.id.value} cannot be returned from "
                f"{self.status.value}"
            )

    def approve(self, approver_id: PrincipalId, now: datetime | None = None) -> None:
        """Approve a pending request for an approval-gated key.

        Raises:
            InvalidStateError: If the request is not awaiting approval
        """
        if not self.awaiting_approval:
            raise InvalidStateError(
                f"Assignment {self.id.value} is not awaiting approval"
            )

        now = now or datetime.now(UTC)
        self.approved_at = now
        self.approved_by = approver_id
        self._pending_events.append(
            AssignmentApproved(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                approver_id=approver_id.value,
                occurred_at=now,
            )
        )

    def reject(
        self,
        approver_id: PrincipalId,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Reject a pending request, closing it as cancelled.

        Raises:
            InvalidStateError: If the request is no longer pending
        """
        if self.status != AssignmentStatus.PENDING:
            raise InvalidStateError(
                f"Assignment {self.id.value} cannot be rejected from "
                f"{self.status.value}"
            )

        now = now or datetime.now(UTC)
        self.status = AssignmentStatus.CANCELLED
        self.rejected_at = now
        self.rejected_by = approver_id
        self.rejection_reason = reason
        self._pending_events.append(
            AssignmentRejected(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                approver_id=approver_id.value,
                reason=reason,
                occurred_at=now,
            )
        )

    def collect(
        self,
        verifier_id: PrincipalId,
        delegate_id: PrincipalId | None = None,
        now: datetime | None = None,
    ) -> None:
        """Mark the key as collected from the security desk.

        Args:
            verifier_id: The desk principal who consumed the proof
            delegate_id: The delegate who presented the proof, if any
            now: Clock reading (defaults to the current UTC time)

        Raises:
            InvalidStateError: If the assignment is not ready for collection
        """
        self.ensure_ready_for(HandoverAction.COLLECTION)

        now = now or datetime.now(UTC)
        self.status = AssignmentStatus.ACTIVE
        self.collected_at = now
        self.collected_by = verifier_id
        self._pending_events.append(
            KeyCollected(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                verifier_id=verifier_id.value,
                delegate_id=delegate_id.value if delegate_id else None,
                occurred_at=now,
            )
        )
        # A hold collected after its due date is overdue straight away.
        self.refresh(now)

    def deposit_return(
        self,
        verifier_id: PrincipalId,
        delegate_id: PrincipalId | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Mark the key as deposited back at the security desk.

        Raises:
            InvalidStateError: If the key is not currently held
        """
        self.ensure_ready_for(HandoverAction.DEPOSIT)

        now = now or datetime.now(UTC)
        was_overdue = self._close(verifier_id, reason, now)
        self._pending_events.append(
            KeyReturned(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                verifier_id=verifier_id.value,
                delegate_id=delegate_id.value if delegate_id else None,
                reason=reason,
                was_overdue=was_overdue,
                actual_duration_hours=self.actual_duration_hours,
                occurred_at=now,
            )
        )

    def force_return(
        self,
        actor_id: PrincipalId,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Close a hold administratively, without a handover proof.

        Raises:
            InvalidStateError: If the key is not currently held
        """
        self.ensure_ready_for(HandoverAction.DEPOSIT)

        now = now or datetime.now(UTC)
        was_overdue = self._close(actor_id, reason, now)
        self._pending_events.append(
            KeyForceReturned(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                actor_id=actor_id.value,
                reason=reason,
                was_overdue=was_overdue,
                actual_duration_hours=self.actual_duration_hours,
                occurred_at=now,
            )
        )

    def extend_deadline(self, extra_hours: int, now: datetime | None = None) -> None:
        """Push the due date back by extra_hours.

        An overdue hold reverts to active when the new due date lies in
        the future.

        Raises:
            ValidationError: If extra_hours is not positive
            InvalidStateError: If the key is not currently held
        """
        if extra_hours <= 0:
            raise ValidationError("Extension must be a positive number of hours")
        if not self.is_held:
            raise InvalidStateError(
                f"Assignment {self.id.value} cannot be extended from "
                f"{self.status.value}"
            )

        now = now or datetime.now(UTC)
        previous_due = self.due_date
        self.due_date = previous_due + timedelta(hours=extra_hours)
        if self.status == AssignmentStatus.OVERDUE and self.due_date > now:
            self.status = AssignmentStatus.ACTIVE

        self._pending_events.append(
            DeadlineExtended(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                extra_hours=extra_hours,
                previous_due_date=previous_due,
                new_due_date=self.due_date,
                occurred_at=now,
            )
        )
        # Still in the past: an active hold becomes overdue again.
        self.refresh(now)

    def cancel(
        self,
        actor_id: PrincipalId,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Cancel a pending request or revoke a hold.

        Raises:
            InvalidStateError: If the assignment is already terminal
        """
        if not self.is_outstanding:
            raise InvalidStateError(
                f"Assignment {self.id.value} is already {self.status.value}"
            )

        now = now or datetime.now(UTC)
        previous = self.status
        self.status = AssignmentStatus.CANCELLED
        self.cancelled_at = now
        self.cancelled_by = actor_id
        self.cancellation_reason = reason
        self._pending_events.append(
            AssignmentCancelled(
                assignment_id=self.id.value,
                key_id=self.key_id.value,
                holder_id=self.holder_id.value,
                actor_id=actor_id.value,
                previous_status=previous.value,
                reason=reason,
                occurred_at=now,
            )
        )

    def days_overdue(self, now: datetime | None = None) -> int:
        """Whole days past the due date, rounded down; 0 when not late."""
        now = now or datetime.now(UTC)
        if now <= self.due_date:
            return 0
        return (now - self.due_date) // timedelta(days=1)

    def record_reminder(self, now: datetime | None = None) -> None:
        """Count a delivered overdue reminder."""
        self.reminders_sent += 1
        self.last_reminder_sent = now or datetime.now(UTC)

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events."""
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events

    def _close(self, closed_by: PrincipalId, reason: str | None, now: datetime) -> bool:
        was_overdue = self.status == AssignmentStatus.OVERDUE or now > self.due_date
        self.status = AssignmentStatus.RETURNED
        self.returned_at = now
        self.returned_by = closed_by
        self.return_reason = reason
        if self.collected_at is not None:
            elapsed = now - self.collected_at
            self.actual_duration_hours = math.ceil(elapsed / timedelta(hours=1))
        return was_overdue
