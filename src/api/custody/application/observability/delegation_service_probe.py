"""Protocol for delegation manager application service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class DelegationServiceProbe(Protocol):
    """Domain probe for delegation (sharing) operations."""

    def delegation_created(
        self,
        delegation_id: str,
        key_id: str,
        delegator_id: str,
        delegate_id: str,
        expires_at: str,
    ) -> None:
        """Record that a key was shared."""
        ...

    def delegation_transitioned(
        self, delegation_id: str, operation: str, status: str
    ) -> None:
        """Record that a delegation was revoked, cancelled or extended."""
        ...

    def delegation_operation_failed(
        self, operation: str, delegation_id: str | None, error: str
    ) -> None:
        """Record that a delegation operation failed."""
        ...

    def with_context(self, context: ObservationContext) -> DelegationServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultDelegationServiceProbe:
    """Default implementation of DelegationServiceProbe using structlog."""

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
    ) -> DefaultDelegationServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultDelegationServiceProbe(logger=self._logger, context=context)

    def delegation_created(
        self,
        delegation_id: str,
        key_id: str,
        delegator_id: str,
        delegate_id: str,
        expires_at: str,
    ) -> None:
        """Record that a key was shared."""
        self._logger.info(
            "delegation_created",
            delegation_id=delegation_id,
            key_id=key_id,
            delegator_id=delegator_id,
            delegate_id=delegate_id,
            expires_at=expires_at,
            **self._get_context_kwargs(),
        )

    def delegation_transitioned(
        self, delegation_id: str, operation: str, status: str
    ) -> None:
        """Record that a delegation was revoked, cancelled or extended."""
        self._logger.info(
            "delegation_transitioned",
            delegation_id=delegation_id,
            operation=operation,
            status=status,
            **self._get_context_kwargs(),
        )

    def delegation_operation_failed(
        self, operation: str, delegation_id: str | None, error: str
    ) -> None:
        """Record that a delegation operation failed."""
        self._logger.warning(
            "delegation_operation_failed",
            operation=operation,
            delegation_id=delegation_id,
            error=error,
            **self._get_context_kwargs(),
        )
