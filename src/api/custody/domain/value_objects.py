"""Value objects for the custody domain.

Value objects are immutable descriptors that provide type safety and
domain semantics for identifiers and custody concepts (key status,
assignment lifecycle, delegation permissions, proof tokens).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from ulid import ULID


@dataclass(frozen=True)
class KeyId:
    """Identifier for a Key aggregate.

    Uses ULID for sortability and distribution-friendly generation.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> KeyId:
        """Generate a new KeyId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> KeyId:
        """Create KeyId from string value.

        Args:
            value: ULID string

        Returns:
            KeyId instance

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid KeyId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class AssignmentId:
    """Identifier for an Assignment aggregate.

    Uses ULID for sortability and distribution-friendly generation.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> AssignmentId:
        """Generate a new AssignmentId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> AssignmentId:
        """Create AssignmentId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid AssignmentId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class DelegationId:
    """Identifier for a Delegation aggregate."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> DelegationId:
        """Generate a new DelegationId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> DelegationId:
        """Create DelegationId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid DelegationId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class TransactionId:
    """Identifier for a transaction log record."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> TransactionId:
        """Generate a new TransactionId using ULID."""
        return cls(value=str(ULID()))


@dataclass(frozen=True)
class PrincipalId:
    """Identifier for a person acting on keys (holder, grantor, verifier).

    Principals are provisioned by the external identity provider, so the
    value is an opaque string rather than a ULID.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def from_string(cls, value: str) -> PrincipalId:
        """Create PrincipalId from an external identifier.

        Raises:
            ValueError: If value is empty or whitespace
        """
        if not isinstance(value, str) or not value.strip():
            raise ValueError("PrincipalId cannot be empty")
        return cls(value=value.strip())


class KeyStatus(StrEnum):
    """Stored status of a key.

    ASSIGNED is derived from the assignment ledger; MAINTENANCE and LOST
    are administrative overrides.
    """

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MAINTENANCE = "maintenance"
    LOST = "lost"


ADMINISTRATIVE_OVERRIDES: frozenset[KeyStatus] = frozenset(
    {KeyStatus.MAINTENANCE, KeyStatus.LOST}
)


class Availability(StrEnum):
    """Availability of a key as reported to callers."""

    AVAILABLE = "available"
    HELD = "held"
    MAINTENANCE = "maintenance"
    LOST = "lost"


class AssignmentStatus(StrEnum):
    """Lifecycle states of an assignment."""

    PENDING = "pending"
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"
    CANCELLED = "cancelled"


OUTSTANDING_STATUSES: frozenset[AssignmentStatus] = frozenset(
    {AssignmentStatus.PENDING, AssignmentStatus.ACTIVE, AssignmentStatus.OVERDUE}
)
HELD_STATUSES: frozenset[AssignmentStatus] = frozenset(
    {AssignmentStatus.ACTIVE, AssignmentStatus.OVERDUE}
)


class AccessType(StrEnum):
    """Kind of access granted by an assignment."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"
    SHARED = "shared"


class DelegationStatus(StrEnum):
    """Lifecycle states of a delegation (sharing grant)."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    CANCELLED = "cancelled"


class HandoverAction(StrEnum):
    """Physical handover performed at the security desk."""

    COLLECTION = "collection"
    DEPOSIT = "deposit"


class TransactionType(StrEnum):
    """Kinds of records written to the transaction log."""

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    COLLECTED = "collected"
    RETURNED = "returned"
    EXTENDED = "extended"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"
    OVERDUE_REMINDER = "overdue_reminder"
    FORCE_RETURNED = "force_returned"
    SHARED = "shared"
    SHARE_REVOKED = "share_revoked"
    SHARE_CANCELLED = "share_cancelled"
    SHARE_EXPIRED = "share_expired"
    SHARE_EXTENDED = "share_extended"
    STATUS_CHANGE = "status_change"


class TransactionStatus(StrEnum):
    """Completion state of a transaction log record."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EscalationTier(StrEnum):
    """Urgency of an overdue reminder."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class DelegationPermissions:
    """Capabilities a delegate receives from a sharing grant.

    Delegation is non-transitive by default: delegates may hand the key
    over at the desk but cannot share it onwards.
    """

    can_collect: bool = True
    can_return: bool = True
    can_delegate: bool = False

    def allows(self, action: HandoverAction) -> bool:
        """Check whether the grant covers a handover action."""
        if action == HandoverAction.COLLECTION:
            return self.can_collect
        return self.can_return


@dataclass(frozen=True)
class ProofToken:
    """Time-limited proof of presence encoded in a handover QR code.

    The wire form uses camelCase keys and epoch milliseconds.
    """

    assignment_id: str
    key_id: str
    holder_id: str
    action: HandoverAction
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def issue(
        cls,
        assignment_id: AssignmentId,
        key_id: KeyId,
        holder_id: PrincipalId,
        action: HandoverAction,
        window: timedelta,
        now: datetime | None = None,
    ) -> ProofToken:
        """Issue a token valid for ``window`` from ``now``."""
        issued_at = now or datetime.now(UTC)
        return cls(
            assignment_id=assignment_id.value,
            key_id=key_id.value,
            holder_id=holder_id.value,
            action=action,
            issued_at=issued_at,
            expires_at=issued_at + window,
        )

    def is_expired(self, now: datetime) -> bool:
        """A token is valid up to and including its expiry instant."""
        return now > self.expires_at

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the QR payload wire format."""
        return {
            "assignmentId": self.assignment_id,
            "keyId": self.key_id,
            "holderId": self.holder_id,
            "action": self.action.value,
            "issuedAt": to_epoch_ms(self.issued_at),
            "expiresAt": to_epoch_ms(self.expires_at),
        }


def to_epoch_ms(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)
