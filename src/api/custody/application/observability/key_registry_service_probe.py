"""Protocol for key registry application service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class KeyRegistryServiceProbe(Protocol):
    """Domain probe for key registry operations."""

    def key_registered(self, key_id: str, name: str, department: str) -> None:
        """Record that a key was registered."""
        ...

    def key_status_changed(
        self, key_id: str, previous_status: str, new_status: str, actor_id: str
    ) -> None:
        """Record that an administrator changed a key's status."""
        ...

    def key_retired(self, key_id: str, actor_id: str) -> None:
        """Record that a key was retired."""
        ...

    def key_operation_failed(self, operation: str, key_id: str | None, error: str) -> None:
        """Record that a key registry operation failed."""
        ...

    def with_context(self, context: ObservationContext) -> KeyRegistryServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultKeyRegistryServiceProbe:
    """Default implementation of KeyRegistryServiceProbe using structlog."""

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
    ) -> DefaultKeyRegistryServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultKeyRegistryServiceProbe(logger=self._logger, context=context)

    def key_registered(self, key_id: str, name: str, department: str) -> None:
        """Record that a key was registered."""
        self._logger.info(
            "key_registered",
            key_id=key_id,
            name=name,
            department=department,
            **self._get_context_kwargs(),
        )

    def key_status_changed(
        self, key_id: str, previous_status: str, new_status: str, actor_id: str
    ) -> None:
        """Record that an administrator changed a key's status."""
        self._logger.info(
            "key_status_changed",
            key_id=key_id,
            previous_status=previous_status,
            new_status=new_status,
            actor_id=actor_id,
            **self._get_context_kwargs(),
        )

    def key_retired(self, key_id: str, actor_id: str) -> None:
        """Record that a key was retired."""
        self._logger.info(
            "key_retired",
            key_id=key_id,
            actor_id=actor_id,
            **self._get_context_kwargs(),
        )

    def key_operation_failed(self, operation: str, key_id: str | None, error: str) -> None:
        """Record that a key registry operation failed."""
        self._logger.warning(
            "key_operation_failed",
            operation=operation,
            key_id=key_id,
            error=error,
            **self._get_context_kwargs(),
        )
