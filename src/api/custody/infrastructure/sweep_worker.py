"""Periodic overdue sweep.

The worker runs as a background task within the FastAPI application. Reads
already reclassify overdue holds and lapsed delegations in memory; the
sweep persists those transitions (with their transaction records) and
retries reminders whose delivery failed.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from custody.application.services import OverdueService
from custody.application.value_objects import SweepReport
from custody.infrastructure.observability import (
    DefaultSweepWorkerProbe,
    SweepWorkerProbe,
)

OverdueServiceFactory = Callable[[AsyncSession], OverdueService]


class SweepWorker:
    """Background worker that runs the overdue sweep on a fixed interval.

    Each run opens its own session; the service commits every record it
    transitions separately, so a failing run loses at most the record it
    was working on and the next run picks it up again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        service_factory: OverdueServiceFactory,
        probe: SweepWorkerProbe | None = None,
        interval_seconds: float = 300.0,
    ) -> None:
        """Initialize the worker.

        Args:
            session_factory: Factory for creating database sessions
            service_factory: Builds an OverdueService bound to a session
            probe: Observability probe for logging
            interval_seconds: Pause between the end of one run and the next
        """
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._probe = probe or DefaultSweepWorkerProbe()
        self._interval = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """Whether the sweep loop is active."""
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        self._probe.worker_started(self._interval)

    async def stop(self) -> None:
        """Gracefully stop the worker, waiting for the loop to finish."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._probe.worker_stopped()

    async def run_once(self) -> SweepReport:
        """Run a single sweep in a fresh session."""
        async with self._session_factory() as session:
            service = self._service_factory(session)
            return await service.sweep()

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                # Keep sweeping; the failing records are retried next run.
                self._probe.sweep_failed(str(e))
            await asyncio.sleep(self._interval)
