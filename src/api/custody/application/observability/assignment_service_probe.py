"""Protocol for assignment ledger application service observability.

Defines the interface for domain probes that capture assignment
transitions and handover proof verification outcomes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class AssignmentServiceProbe(Protocol):
    """Domain probe for assignment ledger operations."""

    def assignment_requested(
        self, assignment_id: str, key_id: str, holder_id: str, due_date: str
    ) -> None:
        """Record that a key was requested."""
        ...

    def assignment_conflict(self, key_id: str, holder_id: str) -> None:
        """Record that a request lost to an outstanding assignment."""
        ...

    def assignment_transitioned(
        self, assignment_id: str, key_id: str, operation: str, status: str
    ) -> None:
        """Record that an assignment moved to a new state."""
        ...

    def assignment_operation_failed(
        self, operation: str, assignment_id: str | None, error: str
    ) -> None:
        """Record that an assignment operation failed."""
        ...

    def proof_minted(
        self, assignment_id: str, action: str, holder_id: str, expires_at: str
    ) -> None:
        """Record that a handover proof was issued."""
        ...

    def proof_rejected(self, action: str, reason: str, error: str) -> None:
        """Record that a presented proof failed verification."""
        ...

    def delegated_handover(
        self, assignment_id: str, delegation_id: str, delegate_id: str, action: str
    ) -> None:
        """Record that a delegate performed a handover."""
        ...

    def with_context(self, context: ObservationContext) -> AssignmentServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAssignmentServiceProbe:
    """Default implementation of AssignmentServiceProbe using structlog."""

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

    def with_context(
        self, context: ObservationContext
    ) -> DefaultAssignmentServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultAssignmentServiceProbe(logger=self._logger, context=context)

    def assignment_requested(
        self, assignment_id: str, key_id: str, holder_id: str, due_date: str
    ) -> None:
        """Record that a key was requested."""
        self._logger.info(
            "assignment_requested",
            assignment_id=assignment_id,
            key_id=key_id,
            holder_id=holder_id,
            due_date=due_date,
            **self._get_context_kwargs(),
        )

    def assignment_conflict(self, key_id: str, holder_id: str) -> None:
        """Record that a request lost to an outstanding assignment."""
        self._logger.warning(
            "assignment_conflict",
            key_id=key_id,
            holder_id=holder_id,
            **self._get_context_kwargs(),
        )

    def assignment_transitioned(
        self, assignment_id: str, key_id: str, operation: str, status: str
    ) -> None:
        """Record that an assignment moved to a new state."""
        self._logger.info(
            "assignment_transitioned",
            assignment_id=assignment_id,
            key_id=key_id,
            operation=operation,
            status=status,
            **self._get_context_kwargs(),
        )

    def assignment_operation_failed(
        self, operation: str, assignment_id: str | None, error: str
    ) -> None:
        """Record that an assignment operation failed."""
        self._logger.warning(
            "assignment_operation_failed",
            operation=operation,
            assignment_id=assignment_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def proof_minted(
        self, assignment_id: str, action: str, holder_id: str, expires_at: str
    ) -> None:
        """Record that a handover proof was issued."""
        self._logger.info(
            "proof_minted",
            assignment_id=assignment_id,
            action=action,
            holder_id=holder_id,
            expires_at=expires_at,
            **self._get_context_kwargs(),
        )

    def proof_rejected(self, action: str, reason: str, error: str) -> None:
        """Record that a presented proof failed verification."""
        self._logger.warning(
            "proof_rejected",
            action=action,
            reason=reason,
            error=error,
            **self._get_context_kwargs(),
        )

    def delegated_handover(
        self, assignment_id: str, delegation_id: str, delegate_id: str, action: str
    ) -> None:
        """Record that a delegate performed a handover."""
        self._logger.info(
            "delegated_handover",
            assignment_id=assignment_id,
            delegation_id=delegation_id,
            delegate_id=delegate_id,
            action=action,
            **self._get_context_kwargs(),
        )
