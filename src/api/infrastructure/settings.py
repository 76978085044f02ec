"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        KEYWARD_DB_HOST: Database host (default: localhost)
        KEYWARD_DB_PORT: Database port (default: 5432)
        KEYWARD_DB_DATABASE: Database name (default: keyward)
        KEYWARD_DB_USERNAME: Database user (default: keyward)
        KEYWARD_DB_PASSWORD: Database password (required in production)
        KEYWARD_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        KEYWARD_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYWARD_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="keyward", description="Database name")
    username: str = Field(default="keyward", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class CustodySettings(BaseSettings):
    """Key custody rules and background sweep configuration.

    Environment variables:
        KEYWARD_CUSTODY_PROOF_WINDOW_MINUTES: Lifetime of a handover proof (default: 10)
        KEYWARD_CUSTODY_DEFAULT_DURATION_HOURS: Hold length when a request omits it (default: 24)
        KEYWARD_CUSTODY_SWEEP_ENABLED: Run the periodic sweep in the API process (default: true)
        KEYWARD_CUSTODY_SWEEP_INTERVAL_SECONDS: Seconds between sweeps (default: 300)
        KEYWARD_CUSTODY_SWEEP_BATCH_SIZE: Rows reclassified per sweep (default: 200)
        KEYWARD_CUSTODY_MAX_REMINDER_RETRIES: Attempts before a failed reminder is abandoned (default: 3)
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYWARD_CUSTODY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    proof_window_minutes: int = Field(
        default=10,
        description="Lifetime of a handover proof token in minutes",
        ge=1,
        le=1440,
    )
    default_duration_hours: int = Field(
        default=24,
        description="Hold length used when a request does not specify one",
        ge=1,
    )
    sweep_enabled: bool = Field(
        default=True,
        description="Run the periodic overdue/expiry sweep",
    )
    sweep_interval_seconds: float = Field(
        default=300.0,
        description="Seconds between sweeps",
        gt=0,
    )
    sweep_batch_size: int = Field(
        default=200,
        description="Maximum rows reclassified per sweep",
        ge=1,
        le=10000,
    )
    max_reminder_retries: int = Field(
        default=3,
        description="Delivery attempts before a failed reminder is abandoned",
        ge=1,
        le=20,
    )

    @property
    def proof_window(self) -> timedelta:
        """Proof token lifetime as a timedelta."""
        return timedelta(minutes=self.proof_window_minutes)


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="Keyward API", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()

    @property
    def custody(self) -> CustodySettings:
        """Get custody settings."""
        return get_custody_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return DatabaseSettings()


@lru_cache
def get_custody_settings() -> CustodySettings:
    """Get cached custody settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return CustodySettings()
