"""Translates custody domain events into transaction log records.

Every domain event maps to exactly one KeyTransaction. Repositories call
the translator while saving an aggregate so that the record lands in the
same database transaction as the state change it describes.
"""

from __future__ import annotations

from typing import get_args

from custody.domain.aggregates import KeyTransaction
from custody.domain.events import (
    AssignmentApproved,
    AssignmentCancelled,
    AssignmentOverdue,
    AssignmentRejected,
    AssignmentRequested,
    DeadlineExtended,
    DelegationCancelled,
    DelegationCreated,
    DelegationExpired,
    DelegationExtended,
    DelegationRevoked,
    DomainEvent,
    KeyCollected,
    KeyForceReturned,
    KeyRetired,
    KeyReturned,
    KeyStatusChanged,
)
from custody.domain.value_objects import (
    AssignmentId,
    DelegationId,
    KeyId,
    PrincipalId,
    TransactionType,
)

# Derive supported events from the DomainEvent type alias
_SUPPORTED_EVENTS: frozenset[str] = frozenset(
    cls.__name__ for cls in get_args(DomainEvent)
)


def _principal(value: str | None) -> PrincipalId | None:
    return PrincipalId(value=value) if value else None


class TransactionTranslator:
    """Builds the transaction log record for each custody domain event."""

    def supported_event_types(self) -> frozenset[str]:
        """Return the event type names this translator handles."""
        return _SUPPORTED_EVENTS

    def translate(self, event: DomainEvent) -> KeyTransaction:
        """Convert a domain event to its transaction log record.

        Raises:
            ValueError: If the event type is not supported
        """
        match event:
            case KeyStatusChanged():
                return KeyTransaction.record(
                    TransactionType.STATUS_CHANGE,
                    key_id=KeyId(value=event.key_id),
                    actor_id=PrincipalId(value=event.actor_id),
                    details=(
                        f"Key status changed from {event.previous_status} "
                        f"to {event.new_status}"
                    ),
                    metadata={
                        "previous_status": event.previous_status,
                        "new_status": event.new_status,
                        "reason": event.reason,
                    },
                    occurred_at=event.occurred_at,
                )
            case KeyRetired():
                return KeyTransaction.record(
                    TransactionType.STATUS_CHANGE,
                    key_id=KeyId(value=event.key_id),
                    actor_id=PrincipalId(value=event.actor_id),
                    details="Key retired",
                    metadata={"retired": True, "reason": event.reason},
                    occurred_at=event.occurred_at,
                )
            case AssignmentRequested():
                return self._assignment_record(
                    TransactionType.REQUESTED,
                    event,
                    actor_id=event.holder_id,
                    metadata={
                        "access_type": event.access_type,
                        "grantor_id": event.grantor_id,
                        "due_date": event.due_date.isoformat(),
                        "reason": event.reason,
                    },
                )
            case AssignmentApproved():
                return self._assignment_record(
                    TransactionType.APPROVED, event, actor_id=event.approver_id
                )
            case AssignmentRejected():
                return self._assignment_record(
                    TransactionType.REJECTED,
                    event,
                    actor_id=event.approver_id,
                    metadata={"reason": event.reason},
                )
            case KeyCollected():
                return self._assignment_record(
                    TransactionType.COLLECTED,
                    event,
                    actor_id=event.holder_id,
                    verifier_id=event.verifier_id,
                    delegate_id=event.delegate_id,
                )
            case KeyReturned():
                return self._assignment_record(
                    TransactionType.RETURNED,
                    event,
                    actor_id=event.holder_id,
                    verifier_id=event.verifier_id,
                    delegate_id=event.delegate_id,
                    metadata={
                        "reason": event.reason,
                        "was_overdue": event.was_overdue,
                        "actual_duration_hours": event.actual_duration_hours,
                    },
                )
            case KeyForceReturned():
                return self._assignment_record(
                    TransactionType.FORCE_RETURNED,
                    event,
                    actor_id=event.actor_id,
                    metadata={
                        "holder_id": event.holder_id,
                        "reason": event.reason,
                        "was_overdue": event.was_overdue,
                        "actual_duration_hours": event.actual_duration_hours,
                    },
                )
            case DeadlineExtended():
                return self._assignment_record(
                    TransactionType.EXTENDED,
                    event,
                    actor_id=event.holder_id,
                    details=f"Key deadline extended by {event.extra_hours} hour(s)",
                    metadata={
                        "extra_hours": event.extra_hours,
                        "previous_due_date": event.previous_due_date.isoformat(),
                        "new_due_date": event.new_due_date.isoformat(),
                    },
                )
            case AssignmentCancelled():
                return self._assignment_record(
                    TransactionType.CANCELLED,
                    event,
                    actor_id=event.actor_id,
                    metadata={
                        "previous_status": event.previous_status,
                        "reason": event.reason,
                    },
                )
            case AssignmentOverdue():
                return self._assignment_record(
                    TransactionType.OVERDUE,
                    event,
                    actor_id=event.holder_id,
                    metadata={"due_date": event.due_date.isoformat()},
                )
            case DelegationCreated():
                return self._delegation_record(
                    TransactionType.SHARED,
                    event,
                    actor_id=event.delegator_id,
                    details=event.message,
                    metadata={
                        "duration_hours": event.duration_hours,
                        "expires_at": event.expires_at.isoformat(),
                    },
                )
            case DelegationRevoked():
                return self._delegation_record(
                    TransactionType.SHARE_REVOKED,
                    event,
                    actor_id=event.actor_id,
                    metadata={"reason": event.reason},
                )
            case DelegationCancelled():
                return self._delegation_record(
                    TransactionType.SHARE_CANCELLED,
                    event,
                    actor_id=event.actor_id,
                    metadata={"reason": event.reason},
                )
            case DelegationExpired():
                return self._delegation_record(
                    TransactionType.SHARE_EXPIRED,
                    event,
                    actor_id=event.delegator_id,
                    metadata={"expires_at": event.expires_at.isoformat()},
                )
            case DelegationExtended():
                return self._delegation_record(
                    TransactionType.SHARE_EXTENDED,
                    event,
                    actor_id=event.delegator_id,
                    metadata={
                        "extra_hours": event.extra_hours,
                        "expires_at": event.expires_at.isoformat(),
                    },
                )
            case _:
                raise ValueError(f"Unsupported event type: {type(event).__name__}")

    def _assignment_record(
        self,
        type: TransactionType,
        event: AssignmentRequested
        | AssignmentApproved
        | AssignmentRejected
        | KeyCollected
        | KeyReturned
        | KeyForceReturned
        | DeadlineExtended
        | AssignmentCancelled
        | AssignmentOverdue,
        actor_id: str,
        verifier_id: str | None = None,
        delegate_id: str | None = None,
        details: str | None = None,
        metadata: dict | None = None,
    ) -> KeyTransaction:
        return KeyTransaction.record(
            type,
            key_id=KeyId(value=event.key_id),
            actor_id=PrincipalId(value=actor_id),
            details=details,
            verifier_id=_principal(verifier_id),
            assignment_id=AssignmentId(value=event.assignment_id),
            delegate_id=_principal(delegate_id),
            metadata=metadata,
            occurred_at=event.occurred_at,
        )

    def _delegation_record(
        self,
        type: TransactionType,
        event: DelegationCreated
        | DelegationRevoked
        | DelegationCancelled
        | DelegationExpired
        | DelegationExtended,
        actor_id: str,
        details: str | None = None,
        metadata: dict | None = None,
    ) -> KeyTransaction:
        return KeyTransaction.record(
            type,
            key_id=KeyId(value=event.key_id),
            actor_id=PrincipalId(value=actor_id),
            details=details,
            assignment_id=AssignmentId(value=event.assignment_id),
            delegation_id=DelegationId(value=event.delegation_id),
            delegate_id=PrincipalId(value=event.delegate_id),
            metadata=metadata,
            occurred_at=event.occurred_at,
        )
