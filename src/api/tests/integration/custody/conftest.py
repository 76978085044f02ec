"""Integration test fixtures for the custody bounded context.

Each test gets freshly created tables and a controllable clock shared by
every service it builds.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import custody.infrastructure.models  # noqa: F401 - registers tables on Base
from custody.application.handover import HandoverVerifier
from custody.application.services import (
    AssignmentService,
    DelegationService,
    KeyRegistryService,
    OverdueService,
    TransactionHistoryService,
)
from custody.infrastructure.assignment_repository import AssignmentRepository
from custody.infrastructure.delegation_repository import DelegationRepository
from custody.infrastructure.key_repository import KeyRepository
from custody.infrastructure.notifications import LoggingReminderNotifier
from custody.infrastructure.transaction_log_repository import TransactionLogRepository
from infrastructure.database.engines import create_engine
from infrastructure.database.models import Base
from infrastructure.settings import DatabaseSettings

TABLES = "key_transactions, key_delegations, key_assignments, keys"


class SettableClock:
    """Clock the tests move forward explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class CustodyServices:
    """All custody services bound to one session."""

    session: AsyncSession
    keys: KeyRegistryService
    assignments: AssignmentService
    delegations: DelegationService
    overdue: OverdueService
    history: TransactionHistoryService


@pytest_asyncio.fixture
async def engine(
    integration_db_settings: DatabaseSettings,
) -> AsyncGenerator[AsyncEngine, None]:
    """Provide an engine over freshly created, empty custody tables."""
    engine = create_engine(integration_db_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(f"TRUNCATE {TABLES} CASCADE"))
    yield engine
    async with engine.begin() as conn:
        await conn.execute(text(f"TRUNCATE {TABLES} CASCADE"))
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def clock() -> SettableClock:
    return SettableClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def build_services(
    sessionmaker: async_sessionmaker[AsyncSession], clock: SettableClock
) -> AsyncGenerator[Callable[[], CustodyServices], None]:
    """Factory for service bundles, each on its own session.

    Sessions are closed when the test finishes.
    """
    sessions: list[AsyncSession] = []

    def _build() -> CustodyServices:
        session = sessionmaker()
        sessions.append(session)
        log = TransactionLogRepository(session=session)
        keys = KeyRepository(session=session, transaction_log=log)
        assignments = AssignmentRepository(session=session, transaction_log=log)
        delegations = DelegationRepository(session=session, transaction_log=log)
        verifier = HandoverVerifier(
            assignment_repository=assignments,
            delegation_repository=delegations,
            clock=clock,
        )
        return CustodyServices(
            session=session,
            keys=KeyRegistryService(
                session=session,
                key_repository=keys,
                assignment_repository=assignments,
                clock=clock,
            ),
            assignments=AssignmentService(
                session=session,
                key_repository=keys,
                assignment_repository=assignments,
                delegation_repository=delegations,
                verifier=verifier,
                clock=clock,
            ),
            delegations=DelegationService(
                session=session,
                key_repository=keys,
                assignment_repository=assignments,
                delegation_repository=delegations,
                clock=clock,
            ),
            overdue=OverdueService(
                session=session,
                key_repository=keys,
                assignment_repository=assignments,
                delegation_repository=delegations,
                transaction_log=log,
                notifier=LoggingReminderNotifier(),
                clock=clock,
            ),
            history=TransactionHistoryService(session=session, transaction_log=log),
        )

    yield _build

    for session in sessions:
        await session.close()


@pytest.fixture
def services(build_services: Callable[[], CustodyServices]) -> CustodyServices:
    return build_services()
