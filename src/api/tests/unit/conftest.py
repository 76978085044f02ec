"""Unit test fixtures with mocked dependencies."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from custody.domain.aggregates import Assignment, Key
from custody.domain.value_objects import AssignmentStatus, PrincipalId

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed clock reading shared by a test and its services."""
    return NOW


@pytest.fixture
def clock(now):
    """Clock callable returning the fixed reading."""
    return lambda: now


@pytest.fixture
def mock_session():
    """Create mock async session with transaction support."""
    session = AsyncMock()
    mock_transaction = MagicMock()
    mock_transaction.__aenter__ = AsyncMock(return_value=None)
    mock_transaction.__aexit__ = AsyncMock(return_value=None)
    session.begin = MagicMock(return_value=mock_transaction)
    return session


@pytest.fixture
def holder_id() -> PrincipalId:
    return PrincipalId(value="alice")


@pytest.fixture
def peer_id() -> PrincipalId:
    return PrincipalId(value="bob")


@pytest.fixture
def desk_id() -> PrincipalId:
    return PrincipalId(value="security-desk")


@pytest.fixture
def key() -> Key:
    """An available key with the default 24 hour cap."""
    return Key.create(
        name="Chem Lab 101",
        lab_name="Organic Chemistry",
        lab_number="101",
        department="Chemistry",
        location="Desk A",
    )


@pytest.fixture
def make_assignment(key, holder_id, now):
    """Build an assignment for the key fixture in a given status.

    Held assignments are collected ``collected_hours_ago`` before now, and
    the pending events recorded while building are discarded.
    """

    def _make(
        status: AssignmentStatus = AssignmentStatus.PENDING,
        duration_hours: int = 8,
        collected_hours_ago: int = 1,
        holder: PrincipalId | None = None,
    ) -> Assignment:
        start = now - timedelta(hours=collected_hours_ago)
        assignment = Assignment.request(
            key,
            holder_id=holder or holder_id,
            duration_hours=duration_hours,
            now=start,
        )
        if status != AssignmentStatus.PENDING:
            assignment.collect(PrincipalId(value="security-desk"), now=start)
        if status == AssignmentStatus.OVERDUE:
            assignment.refresh(now)
        elif status == AssignmentStatus.RETURNED:
            assignment.deposit_return(PrincipalId(value="security-desk"), now=now)
        elif status == AssignmentStatus.CANCELLED:
            assignment.cancel(assignment.holder_id, now=now)
        assignment.version = 1
        assignment.collect_events()
        return assignment

    return _make
