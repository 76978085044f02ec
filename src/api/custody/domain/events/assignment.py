"""Assignment domain events for the custody context.

Each event corresponds to exactly one transition of the assignment state
machine and produces exactly one transaction log record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AssignmentRequested:
    """Event raised when a holder requests a key.

    Attributes:
        assignment_id: The ULID of the new assignment
        key_id: The ULID of the requested key
        holder_id: The principal who will hold the key
        grantor_id: The principal who created the request
        access_type: Kind of access requested
        due_date: When the key must be back
        reason: Optional request reason
        occurred_at: When the event occurred (UTC)
    """

    assignment_id: str
    key_id: str
    holder_id: str
    grantor_id: str
    access_type: str
    due_date: datetime
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class AssignmentApproved:
    """Event raised when a pending request for an approval-gated key is approved."""

    assignment_id: str
    key_id: str
    holder_id: str
    approver_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class AssignmentRejected:
    """Event raised when a pending request is rejected by an approver."""

    assignment_id: str
    key_id: str
    holder_id: str
    approver_id: str
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class KeyCollected:
    """Event raised when the key leaves the security desk.

    Attributes:
        assignment_id: The ULID of the assignment
        key_id: The ULID of the key
        holder_id: The assignment holder
        verifier_id: The security desk principal who consumed the proof
        delegate_id: The delegate who presented the proof, if any
        occurred_at: When the event occurred (UTC)
    """

    assignment_id: str
    key_id: str
    holder_id: str
    verifier_id: str
    delegate_id: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class KeyReturned:
    """Event raised when the key is deposited back at the security desk.

    Attributes:
        assignment_id: The ULID of the assignment
        key_id: The ULID of the key
        holder_id: The assignment holder
        verifier_id: The security desk principal who consumed the proof
        delegate_id: The delegate who presented the proof, if any
        reason: Optional return reason
        was_overdue: Whether the key came back after its due date
        actual_duration_hours: Hours between collection and return
        occurred_at: When the event occurred (UTC)
    """

    assignment_id: str
    key_id: str
    holder_id: str
    verifier_id: str
    delegate_id: Optional[str]
    reason: Optional[str]
    was_overdue: bool
    actual_duration_hours: Optional[int]
    occurred_at: datetime


@dataclass(frozen=True)
class KeyForceReturned:
    """Event raised when an administrator closes a hold without a proof."""

    assignment_id: str
    key_id: str
    holder_id: str
    actor_id: str
    reason: Optional[str]
    was_overdue: bool
    actual_duration_hours: Optional[int]
    occurred_at: datetime


@dataclass(frozen=True)
class DeadlineExtended:
    """Event raised when an assignment's due date is pushed back."""

    assignment_id: str
    key_id: str
    holder_id: str
    extra_hours: int
    previous_due_date: datetime
    new_due_date: datetime
    occurred_at: datetime


@dataclass(frozen=True)
class AssignmentCancelled:
    """Event raised when a pending or held assignment is cancelled."""

    assignment_id: str
    key_id: str
    holder_id: str
    actor_id: str
    previous_status: str
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class AssignmentOverdue:
    """Event raised when an active hold passes its due date."""

    assignment_id: str
    key_id: str
    holder_id: str
    due_date: datetime
    occurred_at: datetime
