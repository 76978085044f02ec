"""Delegation (sharing) domain events for the custody context."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class DelegationCreated:
    """Event raised when a holder shares a key with a peer.

    Attributes:
        delegation_id: The ULID of the delegation
        key_id: The ULID of the shared key
        assignment_id: The hold the delegation is layered on
        delegator_id: The principal sharing the key
        delegate_id: The principal receiving access
        duration_hours: Requested length of the grant
        expires_at: When the grant lapses
        message: Optional note for the delegate
        occurred_at: When the event occurred (UTC)
    """

    delegation_id: str
    key_id: str
    assignment_id: str
    delegator_id: str
    delegate_id: str
    duration_hours: int
    expires_at: datetime
    message: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class DelegationRevoked:
    """Event raised when the delegator withdraws a grant."""

    delegation_id: str
    key_id: str
    assignment_id: str
    delegator_id: str
    delegate_id: str
    actor_id: str
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class DelegationCancelled:
    """Event raised when either party (or the end of the hold) cancels a grant."""

    delegation_id: str
    key_id: str
    assignment_id: str
    delegator_id: str
    delegate_id: str
    actor_id: str
    reason: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class DelegationExpired:
    """Event raised when a grant passes its expiry time."""

    delegation_id: str
    key_id: str
    assignment_id: str
    delegator_id: str
    delegate_id: str
    expires_at: datetime
    occurred_at: datetime


@dataclass(frozen=True)
class DelegationExtended:
    """Event raised when a grant's expiry is pushed back."""

    delegation_id: str
    key_id: str
    assignment_id: str
    delegator_id: str
    delegate_id: str
    extra_hours: int
    expires_at: datetime
    occurred_at: datetime
