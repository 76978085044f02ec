"""Domain probes for custody repository operations.

Following Domain-Oriented Observability patterns, these probes capture
domain-significant events during key, assignment, delegation and
transaction log persistence.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class KeyRepositoryProbe(Protocol):
    """Domain probe for key repository operations."""

    def key_saved(self, key_id: str, status: str) -> None:
        """Record that a key was successfully saved."""
        ...

    def key_not_found(self, key_id: str) -> None:
        """Record that a key was not found."""
        ...

    def with_context(self, context: ObservationContext) -> KeyRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class AssignmentRepositoryProbe(Protocol):
    """Domain probe for assignment repository operations."""

    def assignment_saved(self, assignment_id: str, status: str, version: int) -> None:
        """Record that an assignment was successfully saved."""
        ...

    def assignment_not_found(self, assignment_id: str) -> None:
        """Record that an assignment was not found."""
        ...

    def outstanding_assignment_exists(self, key_id: str) -> None:
        """Record that an insert lost the race for a key."""
        ...

    def stale_assignment_write(self, assignment_id: str, expected_version: int) -> None:
        """Record that a conditional update matched no row."""
        ...

    def with_context(self, context: ObservationContext) -> AssignmentRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DelegationRepositoryProbe(Protocol):
    """Domain probe for delegation repository operations."""

    def delegation_saved(self, delegation_id: str, status: str, version: int) -> None:
        """Record that a delegation was successfully saved."""
        ...

    def duplicate_active_delegation(
        self, key_id: str, delegator_id: str, delegate_id: str
    ) -> None:
        """Record that an insert duplicated an active grant."""
        ...

    def stale_delegation_write(self, delegation_id: str, expected_version: int) -> None:
        """Record that a conditional update matched no row."""
        ...

    def with_context(self, context: ObservationContext) -> DelegationRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class TransactionLogProbe(Protocol):
    """Domain probe for transaction log operations."""

    def transaction_appended(self, transaction_id: str, type: str, key_id: str) -> None:
        """Record that a transaction was appended to the log."""
        ...

    def transaction_status_updated(
        self, transaction_id: str, status: str, retry_count: int
    ) -> None:
        """Record that a transaction's status changed."""
        ...

    def with_context(self, context: ObservationContext) -> TransactionLogProbe:
        """Create a new probe with observation context bound."""
        ...


class _StructlogProbe:
    """Shared structlog plumbing for the default repository probes."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> Any:
        """Create a new probe with observation context bound."""
        return type(self)(logger=self._logger, context=context)


class DefaultKeyRepositoryProbe(_StructlogProbe):
    """Default implementation of KeyRepositoryProbe using structlog."""

    def key_saved(self, key_id: str, status: str) -> None:
        """Record that a key was successfully saved."""
        self._logger.debug(
            "key_saved",
            key_id=key_id,
            status=status,
            **self._get_context_kwargs(),
        )

    def key_not_found(self, key_id: str) -> None:
        """Record that a key was not found."""
        self._logger.debug(
            "key_not_found",
            key_id=key_id,
            **self._get_context_kwargs(),
        )


class DefaultAssignmentRepositoryProbe(_StructlogProbe):
    """Default implementation of AssignmentRepositoryProbe using structlog."""

    def assignment_saved(self, assignment_id: str, status: str, version: int) -> None:
        """Record that an assignment was successfully saved."""
        self._logger.debug(
            "assignment_saved",
            assignment_id=assignment_id,
            status=status,
            version=version,
            **self._get_context_kwargs(),
        )

    def assignment_not_found(self, assignment_id: str) -> None:
        """Record that an assignment was not found."""
        self._logger.debug(
            "assignment_not_found",
            assignment_id=assignment_id,
            **self._get_context_kwargs(),
        )

    def outstanding_assignment_exists(self, key_id: str) -> None:
        """Record that an insert lost the race for a key."""
        self._logger.warning(
            "outstanding_assignment_exists",
            key_id=key_id,
            **self._get_context_kwargs(),
        )

    def stale_assignment_write(self, assignment_id: str, expected_version: int) -> None:
        """Record that a conditional update matched no row."""
        self._logger.warning(
            "stale_assignment_write",
            assignment_id=assignment_id,
            expected_version=expected_version,
            **self._get_context_kwargs(),
        )


class DefaultDelegationRepositoryProbe(_StructlogProbe):
    """Default implementation of DelegationRepositoryProbe using structlog."""

    def delegation_saved(self, delegation_id: str, status: str, version: int) -> None:
        """Record that a delegation was successfully saved."""
        self._logger.debug(
            "delegation_saved",
            delegation_id=delegation_id,
            status=status,
            version=version,
            **self._get_context_kwargs(),
        )

    def duplicate_active_delegation(
        self, key_id: str, delegator_id: str, delegate_id: str
    ) -> None:
        """Record that an insert duplicated an active grant."""
        self._logger.warning(
            "duplicate_active_delegation",
            key_id=key_id,
            delegator_id=delegator_id,
            delegate_id=delegate_id,
            **self._get_context_kwargs(),
        )

    def stale_delegation_write(self, delegation_id: str, expected_version: int) -> None:
        """Record that a conditional update matched no row."""
        self._logger.warning(
            "stale_delegation_write",
            delegation_id=delegation_id,
            expected_version=expected_version,
            **self._get_context_kwargs(),
        )


class DefaultTransactionLogProbe(_StructlogProbe):
    """Default implementation of TransactionLogProbe using structlog."""

    def transaction_appended(self, transaction_id: str, type: str, key_id: str) -> None:
        """Record that a transaction was appended to the log."""
        self._logger.debug(
            "transaction_appended",
            transaction_id=transaction_id,
            type=type,
            key_id=key_id,
            **self._get_context_kwargs(),
        )

    def transaction_status_updated(
        self, transaction_id: str, status: str, retry_count: int
    ) -> None:
        """Record that a transaction's status changed."""
        self._logger.debug(
            "transaction_status_updated",
            transaction_id=transaction_id,
            status=status,
            retry_count=retry_count,
            **self._get_context_kwargs(),
        )
