"""Application-layer value objects for the custody bounded context.

These are read-only results and request scopes returned by application
services, not domain entities.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from custody.domain.aggregates import Assignment, Delegation
from custody.domain.value_objects import (
    AssignmentId,
    EscalationTier,
    PrincipalId,
)

# Services read the time through an injected clock so tests can pin it.
Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class VerifiedHandover:
    """Outcome of a successful proof verification.

    Attributes:
        assignment: The assignment the proof was minted for (refreshed)
        delegation: The grant the presenter acted under, if a delegate
    """

    assignment: Assignment
    delegation: Delegation | None = None

    @property
    def delegate_id(self) -> PrincipalId | None:
        """The delegate who presented the proof, if any."""
        if self.delegation is None:
            return None
        return self.delegation.delegate_id


@dataclass(frozen=True)
class ReminderScope:
    """Which overdue assignments a reminder run targets.

    With neither field set the run covers every overdue assignment.
    """

    assignment_id: AssignmentId | None = None
    holder_id: PrincipalId | None = None

    @classmethod
    def everyone(cls) -> ReminderScope:
        """Scope covering every overdue assignment."""
        return cls()


@dataclass(frozen=True)
class ReminderResult:
    """Outcome of one reminder attempt."""

    assignment_id: str
    key_id: str
    holder_id: str
    days_overdue: int
    tier: EscalationTier
    delivered: bool
    transaction_id: str
    error: str | None = None


@dataclass(frozen=True)
class SweepReport:
    """Summary of one periodic sweep."""

    assignments_overdue: int = 0
    delegations_expired: int = 0
    reminders_retried: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        """Total number of records the sweep transitioned or retried."""
        return (
            self.assignments_overdue + self.delegations_expired + self.reminders_retried
        )
