"""Integration test fixtures for database tests.

These fixtures require a running PostgreSQL instance.
Use docker-compose for testing.
"""

import os

import pytest
from pydantic import SecretStr

from infrastructure.settings import DatabaseSettings


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires database)",
    )


@pytest.fixture(scope="session")
def integration_db_settings() -> DatabaseSettings:
    """Database settings for integration tests.

    Override with environment variables:
        KEYWARD_DB_HOST, KEYWARD_DB_PORT, etc.
    """
    return DatabaseSettings(
        host=os.getenv("KEYWARD_DB_HOST", "localhost"),
        port=int(os.getenv("KEYWARD_DB_PORT", "5432")),
        database=os.getenv("KEYWARD_DB_DATABASE", "keyward"),
        username=os.getenv("KEYWARD_DB_USERNAME", "keyward"),
        password=SecretStr(os.getenv("KEYWARD_DB_PASSWORD", "keyward_dev_password")),
        _env_file=None,
    )
