"""Fixtures for custody route tests with mocked services."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from custody.application.commands import CustodyCommandBus
from custody.application.services import (
    AssignmentService,
    DelegationService,
    KeyRegistryService,
    TransactionHistoryService,
)
from infrastructure.settings import CustodySettings, get_custody_settings


@pytest.fixture
def mock_bus() -> AsyncMock:
    """Mock CustodyCommandBus for testing."""
    return AsyncMock(spec=CustodyCommandBus)


@pytest.fixture
def mock_key_service() -> AsyncMock:
    return AsyncMock(spec=KeyRegistryService)


@pytest.fixture
def mock_assignment_service() -> AsyncMock:
    return AsyncMock(spec=AssignmentService)


@pytest.fixture
def mock_delegation_service() -> AsyncMock:
    return AsyncMock(spec=DelegationService)


@pytest.fixture
def mock_history_service() -> AsyncMock:
    return AsyncMock(spec=TransactionHistoryService)


@pytest.fixture
def custody_settings() -> CustodySettings:
    return CustodySettings(default_duration_hours=12, _env_file=None)


@pytest.fixture
def test_client(
    mock_bus: AsyncMock,
    mock_key_service: AsyncMock,
    mock_assignment_service: AsyncMock,
    mock_delegation_service: AsyncMock,
    mock_history_service: AsyncMock,
    custody_settings: CustodySettings,
) -> TestClient:
    """Create TestClient with mocked dependencies."""
    from custody.dependencies import (
        get_assignment_service,
        get_command_bus,
        get_delegation_service,
        get_key_registry_service,
        get_transaction_history_service,
    )
    from custody.presentation import router

    app = FastAPI()

    app.dependency_overrides[get_command_bus] = lambda: mock_bus
    app.dependency_overrides[get_key_registry_service] = lambda: mock_key_service
    app.dependency_overrides[get_assignment_service] = lambda: mock_assignment_service
    app.dependency_overrides[get_delegation_service] = lambda: mock_delegation_service
    app.dependency_overrides[get_transaction_history_service] = (
        lambda: mock_history_service
    )
    app.dependency_overrides[get_custody_settings] = lambda: custody_settings

    app.include_router(router)

    return TestClient(app)
