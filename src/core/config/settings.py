# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are loaded from environment variables with sensible defaults.
The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ENCRYPTION_KEY = "default_secret_key_32_characters!!"


class DatabaseSettings(BaseSettings):
    """Database configuration for notification settings, logs and lookups.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        name: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    host: str = "localhost"
    port: int = 5432
    name: str = "lecture_reminder"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.name}"


class EncryptionSettings(BaseSettings):
    """Secret vault configuration.

    The passphrase is hashed with SHA-256 to derive the AES key, so any
    length is accepted.

    Attributes:
        key: Passphrase for channel credential encryption.
    """

    model_config = SettingsConfigDict(
        env_prefix="ENCRYPTION_",
        extra="ignore",
    )

    key: SecretStr = SecretStr(DEFAULT_ENCRYPTION_KEY)


class ReminderSettings(BaseSettings):
    """Lecture reminder scanner configuration.

    Attributes:
        enabled: Whether the recurring scan is registered at startup.
        scan_interval_seconds: Seconds between scanner ticks.
        lookahead_minutes: Window ahead of now in which a lecture is due.
        tick_timeout_seconds: Upper bound for a single tick.
        timezone: Zone in which schedule dates and times are written.
    """

    model_config = SettingsConfigDict(
        env_prefix="REMINDER_",
        extra="ignore",
    )

    enabled: bool = True
    scan_interval_seconds: int = Field(default=60, ge=10)
    lookahead_minutes: int = Field(default=30, ge=1, le=180)
    tick_timeout_seconds: float = Field(default=240.0, gt=0)
    timezone: str = "Africa/Lagos"


class NotifySettings(BaseSettings):
    """Notification dispatch configuration.

    Attributes:
        max_concurrent_sends: Upper bound on in-flight provider calls.
        provider_timeout_seconds: Timeout for a single provider call.
        organization_id: Organization whose settings apply to users without
            their own settings row.
        email_from_name: Sender display name when none is configured.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        extra="ignore",
    )

    max_concurrent_sends: int = Field(default=10, ge=1)
    provider_timeout_seconds: float = Field(default=30.0, gt=0)
    organization_id: int | None = None
    email_from_name: str = "Lecture Reminder System"


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 3000
    workers: int = 1
    reload: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        db: Database settings.
        encryption: Secret vault settings.
        reminder: Reminder scanner settings.
        notify: Dispatch settings.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)
    reminder: ReminderSettings = Field(default_factory=ReminderSettings)
    notify: NotifySettings = Field(default_factory=NotifySettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if self.encryption.key.get_secret_value() == DEFAULT_ENCRYPTION_KEY:
                raise ValueError(
                    "Encryption key must be changed from default in production. "
                    "Set ENCRYPTION_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
