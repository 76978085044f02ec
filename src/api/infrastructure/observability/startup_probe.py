"""Domain probe for application startup and lifecycle events.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events during application initialization and shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class StartupProbe(Protocol):
    """Domain probe for application startup operations."""

    def application_starting(self, version: str) -> None:
        """Record that the application is starting."""
        ...

    def sweep_worker_enabled(self, interval_seconds: float) -> None:
        """Record that the periodic custody sweep was started."""
        ...

    def sweep_worker_disabled(self) -> None:
        """Record that the periodic custody sweep is disabled by configuration."""
        ...

    def application_stopped(self) -> None:
        """Record that background work stopped and connections were closed."""
        ...

    def with_context(self, context: ObservationContext) -> StartupProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultStartupProbe:
    """Default implementation of StartupProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultStartupProbe:
        """Create a new probe with observation context bound."""
        return DefaultStartupProbe(logger=self._logger, context=context)

    def application_starting(self, version: str) -> None:
        """Record that the application is starting."""
        self._logger.info(
            "application_starting",
            version=version,
            **self._get_context_kwargs(),
        )

    def sweep_worker_enabled(self, interval_seconds: float) -> None:
        """Record that the periodic custody sweep was started."""
        self._logger.info(
            "sweep_worker_enabled",
            interval_seconds=interval_seconds,
            **self._get_context_kwargs(),
        )

    def sweep_worker_disabled(self) -> None:
        """Record that the periodic custody sweep is disabled by configuration."""
        self._logger.info(
            "sweep_worker_disabled",
            **self._get_context_kwargs(),
        )

    def application_stopped(self) -> None:
        """Record that background work stopped and connections were closed."""
        self._logger.info(
            "application_stopped",
            **self._get_context_kwargs(),
        )
