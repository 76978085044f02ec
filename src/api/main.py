"""Main FastAPI application entry point."""

import tomllib
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from fastapi import FastAPI

from custody.dependencies import build_overdue_service
from custody.infrastructure.sweep_worker import SweepWorker
from custody.presentation import router as custody_router
from infrastructure.database import close_database_connections, get_sessionmaker
from infrastructure.logging import configure_logging
from infrastructure.observability import DefaultStartupProbe
from infrastructure.settings import get_custody_settings


def keyward_version() -> str:
    """Version of the keyward-api distribution.

    An uninstalled source checkout reads it from the root pyproject.toml.
    """
    try:
        return version("keyward-api")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).parents[2] / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            return tomllib.load(f)["project"]["version"]


__version__ = keyward_version()


@asynccontextmanager
async def keyward_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging configuration
    - Periodic overdue sweep (started when enabled, stopped on shutdown)
    - Connection pool lifecycle (created lazily, closed on shutdown)
    """
    configure_logging()
    probe = DefaultStartupProbe()
    probe.application_starting(__version__)

    settings = get_custody_settings()
    worker: SweepWorker | None = None
    if settings.sweep_enabled:
        worker = SweepWorker(
            session_factory=get_sessionmaker(),
            service_factory=build_overdue_service,
            interval_seconds=settings.sweep_interval_seconds,
        )
        await worker.start()
        probe.sweep_worker_enabled(settings.sweep_interval_seconds)
    else:
        probe.sweep_worker_disabled()

    app.state.sweep_worker = worker

    yield

    if worker is not None:
        await worker.stop()
    await close_database_connections()
    probe.application_stopped()


app = FastAPI(
    title="Keyward API",
    description="Laboratory key custody: assignments, QR handovers and delegation",
    version=__version__,
    lifespan=keyward_lifespan,
)

# Include Custody bounded context routes
app.include_router(custody_router)


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "ok"}
