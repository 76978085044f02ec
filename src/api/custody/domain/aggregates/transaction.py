"""Transaction log record for the custody context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from custody.domain.value_objects import (
    AssignmentId,
    DelegationId,
    KeyId,
    PrincipalId,
    TransactionId,
    TransactionStatus,
    TransactionType,
)

DEFAULT_DETAILS: dict[TransactionType, str] = {
    TransactionType.REQUESTED: "Key access requested",
    TransactionType.APPROVED: "Key request approved",
    TransactionType.REJECTED: "Key request rejected",
    TransactionType.COLLECTED: "Key collected from security desk",
    TransactionType.RETURNED: "Key returned to security desk",
    TransactionType.EXTENDED: "Key deadline extended",
    TransactionType.CANCELLED: "Key assignment cancelled",
    TransactionType.OVERDUE: "Key assignment became overdue",
    TransactionType.OVERDUE_REMINDER: "Overdue reminder sent",
    TransactionType.FORCE_RETURNED: "Key force returned by administrator",
    TransactionType.SHARED: "Key access shared with another holder",
    TransactionType.SHARE_REVOKED: "Key sharing access revoked",
    TransactionType.SHARE_CANCELLED: "Key sharing access cancelled",
    TransactionType.SHARE_EXPIRED: "Key sharing access expired",
    TransactionType.SHARE_EXTENDED: "Key sharing access extended",
    TransactionType.STATUS_CHANGE: "Key status changed",
}


@dataclass
class KeyTransaction:
    """Immutable audit record of a custody state change.

    The only permitted mutations are marking the record completed or
    failed; a failed record keeps its error and counts its retries.
    """

    id: TransactionId
    type: TransactionType
    key_id: KeyId
    actor_id: PrincipalId
    details: str
    occurred_at: datetime
    status: TransactionStatus = TransactionStatus.COMPLETED
    verifier_id: PrincipalId | None = None
    assignment_id: AssignmentId | None = None
    delegation_id: DelegationId | None = None
    delegate_id: PrincipalId | None = None
    error_message: str | None = None
    retry_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def record(
        cls,
        type: TransactionType,
        key_id: KeyId,
        actor_id: PrincipalId,
        details: str | None = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        verifier_id: PrincipalId | None = None,
        assignment_id: AssignmentId | None = None,
        delegation_id: DelegationId | None = None,
        delegate_id: PrincipalId | None = None,
        metadata: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> KeyTransaction:
        """Create a new log record, filling in default details."""
        return cls(
            id=TransactionId.generate(),
            type=type,
            key_id=key_id,
            actor_id=actor_id,
            details=details or DEFAULT_DETAILS[type],
            status=status,
            verifier_id=verifier_id,
            assignment_id=assignment_id,
            delegation_id=delegation_id,
            delegate_id=delegate_id,
            metadata=dict(metadata or {}),
            occurred_at=occurred_at or datetime.now(UTC),
        )

    def mark_completed(self, details: str | None = None) -> None:
        """Mark the record as completed, optionally replacing the details."""
        self.status = TransactionStatus.COMPLETED
        self.error_message = None
        if details:
            self.details = details

    def mark_cancelled(self, details: str | None = None) -> None:
        """Mark a pending or failed record as abandoned."""
        self.status = TransactionStatus.CANCELLED
        if details:
            self.details = details

    def mark_failed(self, error_message: str) -> None:
        """Mark the record as failed and count the attempt."""
        self.status = TransactionStatus.FAILED
        self.error_message = error_message
        self.retry_count += 1
