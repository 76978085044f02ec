"""Protocol for sweep worker observability."""

from __future__ import annotations

from typing import Protocol

import structlog


class SweepWorkerProbe(Protocol):
    """Domain probe for the periodic overdue sweep."""

    def worker_started(self, interval_seconds: float) -> None:
        """Record that the sweep loop started."""
        ...

    def worker_stopped(self) -> None:
        """Record that the sweep loop stopped."""
        ...

    def sweep_failed(self, error: str) -> None:
        """Record that a sweep run raised; the loop keeps going."""
        ...


class DefaultSweepWorkerProbe:
    """Default implementation of SweepWorkerProbe using structlog."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self._logger = logger or structlog.get_logger()

    def worker_started(self, interval_seconds: float) -> None:
        """Record that the sweep loop started."""
        self._logger.info("sweep_worker_started", interval_seconds=interval_seconds)

    def worker_stopped(self) -> None:
        """Record that the sweep loop stopped."""
        self._logger.info("sweep_worker_stopped")

    def sweep_failed(self, error: str) -> None:
        """Record that a sweep run raised; the loop keeps going."""
        self._logger.error("sweep_failed", error=error)
