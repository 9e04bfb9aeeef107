# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the PostgreSQL connection and notification stores.

These tests require a running PostgreSQL instance.
Run with: pytest tests/integration/test_postgres_connection.py -v -m integration

Prerequisites:
    - PostgreSQL reachable with the DB_* environment variables
    - The configured database exists (tables are created by the tests)
"""

from uuid import uuid4

import pytest
from sqlalchemy import text

from src.core.config.settings import Settings, clear_settings_cache
from src.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_schema,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
)
from src.infrastructure.notifications.channels.base import DeliveryStatus
from src.infrastructure.notifications.delivery_log import AuditTrail, DeliveryLog
from src.infrastructure.notifications.settings_store import ChannelSettingsStore
from src.infrastructure.security.vault import SecretVault
from src.models.notification import NotificationSettingsPatch


@pytest.fixture
def settings() -> Settings:
    """Provide fresh settings for each test."""
    clear_settings_cache()
    return Settings()


@pytest.fixture
async def initialized_database(settings: Settings):
    """Initialize the connection and schema, then clean up."""
    await init_database(settings)
    await create_schema()
    yield
    await close_database()


@pytest.mark.integration
class TestDatabaseInitialization:
    """Tests for database initialization."""

    async def test_init_creates_engine_and_sessionmaker(self, settings: Settings) -> None:
        await init_database(settings)

        try:
            assert get_engine() is not None
            assert get_sessionmaker() is not None
        finally:
            await close_database()

    async def test_close_clears_state(self, settings: Settings) -> None:
        await init_database(settings)
        await close_database()

        with pytest.raises(DatabaseError) as exc_info:
            get_engine()

        assert "not initialized" in str(exc_info.value)

    async def test_check_connection_returns_false_when_not_initialized(self) -> None:
        await close_database()

        assert await check_database_connection() is False


@pytest.mark.integration
class TestDatabaseConnection:
    """Tests for session behavior against a live database."""

    async def test_check_connection_returns_true_when_connected(
        self, initialized_database: None
    ) -> None:
        assert await check_database_connection() is True

    async def test_session_can_execute_query(self, initialized_database: None) -> None:
        async with get_session() as session:
            result = await session.execute(text("SELECT 1 as value"))
            row = result.fetchone()
            assert row is not None
            assert row.value == 1

    async def test_session_rollbacks_on_exception(self, initialized_database: None) -> None:
        with pytest.raises(ValueError):
            async with get_session() as session:
                await session.execute(text("SELECT 1"))
                raise ValueError("Test exception")


@pytest.mark.integration
class TestNotificationPersistence:
    """Round trips through the stores on real tables."""

    async def test_settings_upsert_and_audit(self, initialized_database: None) -> None:
        vault = SecretVault("integration-passphrase")
        audit = AuditTrail()
        store = ChannelSettingsStore(vault, audit)
        owner_id = uuid4().int % 1_000_000_000

        await store.upsert(
            "user",
            owner_id,
            NotificationSettingsPatch(
                channels={"email": True},
                email_config={"provider": "gmail", "username": "a@b.c", "password": "app-pass"},
            ),
            actor_id=owner_id,
        )
        row = await store.get("user", owner_id)

        assert row is not None
        assert row.is_channel_enabled("email")
        assert vault.decrypt(row.email_config["encrypted_password"]) == "app-pass"

        entries = await audit.list_audit_for_user(owner_id)
        assert entries[0].action == "CREATE"
        assert entries[0].changes["email_config.encrypted_password"]["to"] == "[REDACTED]"

    async def test_delivery_log_lifecycle(self, initialized_database: None) -> None:
        log = DeliveryLog()
        user_id = uuid4().int % 1_000_000_000

        assert await log.already_attempted(user_id, 42, "email") is False
        entry_id = await log.record_attempt(user_id, 42, "email")
        assert await log.already_attempted(user_id, 42, "email") is True
        assert await log.record_attempt(user_id, 42, "email") is None

        await log.complete_attempt(entry_id, DeliveryStatus.SENT, "<id@mail>")

        entries = await log.list_for_user(user_id)
        assert entries[0].status == "sent"
        assert entries[0].attempts == 1
