"""Repository protocols (ports) for the custody bounded context.

Repository protocols define the interface for persisting and retrieving
custody aggregates. Implementations translate the domain events each
aggregate collects into transaction log records within the same database
transaction as the aggregate change.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from enum import StrEnum
from typing import Protocol, runtime_checkable

from custody.domain.aggregates import Assignment, Delegation, Key, KeyTransaction
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    DelegationId,
    KeyId,
    PrincipalId,
    TransactionId,
)


class DelegationDirection(StrEnum):
    """Which side of a delegation a principal is on."""

    GIVEN = "given"
    RECEIVED = "received"


@runtime_checkable
class IKeyRepository(Protocol):
    """Repository for Key aggregate persistence."""

    async def save(self, key: Key) -> None:
        """Persist a key aggregate.

        Creates a new key or updates an existing one, and appends a
        transaction record for each collected domain event.

        Args:
            key: The Key aggregate to persist
        """
        ...

    async def get_by_id(self, key_id: KeyId, for_update: bool = False) -> Key | None:
        """Retrieve a key by its ID.

        Args:
            key_id: The unique identifier of the key
            for_update: Lock the key row until the transaction ends, which
                serializes transitions that recompute the key's status

        Returns:
            The Key aggregate, or None if not found
        """
        ...

    async def list(
        self,
        department: str | None = None,
        include_retired: bool = False,
    ) -> list[Key]:
        """List keys, optionally filtered by department."""
        ...


@runtime_checkable
class IAssignmentRepository(Protocol):
    """Repository for Assignment aggregate persistence.

    Writes are atomic compare-and-swap operations against the stored row:
    an assignment with version 0 is inserted only if its key has no other
    outstanding assignment, and later saves only apply when the stored
    version still matches the one that was read.
    """

    async def save(self, assignment: Assignment) -> None:
        """Persist an assignment aggregate and bump its version.

        Args:
            assignment: The Assignment aggregate to persist

        Raises:
            ConflictError: If a new assignment's key already has a pending,
                active or overdue assignment
            InvalidStateError: If the stored row changed since it was read
        """
        ...

    async def get_by_id(self, assignment_id: AssignmentId) -> Assignment | None:
        """Retrieve an assignment by its ID, or None if not found."""
        ...

    async def get_outstanding_for_key(self, key_id: KeyId) -> Assignment | None:
        """Retrieve the pending, active or overdue assignment for a key."""
        ...

    async def list_for_key(self, key_id: KeyId) -> list[Assignment]:
        """List every assignment of a key, newest first."""
        ...

    async def list_for_holder(
        self,
        holder_id: PrincipalId,
        statuses: Collection[AssignmentStatus] | None = None,
    ) -> list[Assignment]:
        """List a holder's assignments, optionally filtered by status."""
        ...

    async def list_by_status(
        self,
        statuses: Collection[AssignmentStatus],
        limit: int | None = None,
    ) -> list[Assignment]:
        """List assignments in any of the given statuses, oldest due first."""
        ...

    async def list_active_past_due(
        self, now: datetime, limit: int | None = None
    ) -> list[Assignment]:
        """List active assignments whose due date has passed."""
        ...


@runtime_checkable
class IDelegationRepository(Protocol):
    """Repository for Delegation aggregate persistence."""

    async def save(self, delegation: Delegation) -> None:
        """Persist a delegation aggregate and bump its version.

        Raises:
            ConflictError: If a new delegation duplicates an active one from
                the same delegator to the same delegate for the key
            InvalidStateError: If the stored row changed since it was read
        """
        ...

    async def get_by_id(self, delegation_id: DelegationId) -> Delegation | None:
        """Retrieve a delegation by its ID, or None if not found."""
        ...

    async def find_active(
        self,
        key_id: KeyId,
        delegator_id: PrincipalId,
        delegate_id: PrincipalId,
    ) -> Delegation | None:
        """Find the active delegation between two principals for a key."""
        ...

    async def list_active_for_assignment(
        self, assignment_id: AssignmentId
    ) -> list[Delegation]:
        """List delegations stored as active for an assignment."""
        ...

    async def list_for_principal(
        self,
        principal_id: PrincipalId,
        direction: DelegationDirection,
    ) -> list[Delegation]:
        """List delegations a principal gave or received, newest first."""
        ...

    async def list_active_past_expiry(
        self, now: datetime, limit: int | None = None
    ) -> list[Delegation]:
        """List delegations stored as active whose expiry has passed."""
        ...


@runtime_checkable
class ITransactionLog(Protocol):
    """Append-only log of custody transactions."""

    async def append(self, transaction: KeyTransaction) -> None:
        """Append a new record to the log."""
        ...

    async def update_status(self, transaction: KeyTransaction) -> None:
        """Persist a completion or failure mark on an existing record.

        Only status, error_message, retry_count and details are written.
        """
        ...

    async def get_by_id(self, transaction_id: TransactionId) -> KeyTransaction | None:
        """Retrieve a record by its ID, or None if not found."""
        ...

    async def list_for_key(self, key_id: KeyId, limit: int = 100) -> list[KeyTransaction]:
        """List a key's records, newest first."""
        ...

    async def list_for_actor(
        self, actor_id: PrincipalId, limit: int = 100
    ) -> list[KeyTransaction]:
        """List records whose actor is the given principal, newest first."""
        ...

    async def list_recent(self, limit: int = 50) -> list[KeyTransaction]:
        """List the most recent records across all keys."""
        ...

    async def list_failed_reminders(
        self, max_retries: int, limit: int | None = None
    ) -> list[KeyTransaction]:
        """List failed reminder records that may still be retried."""
        ...
