# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Store tests against real tables in a SQLite file.

The sessions are built like the application's: ``expire_on_commit=False``
and committed when the context exits, so rows returned by a store are
read after their session is closed.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.infrastructure.database.models import Base
from src.infrastructure.notifications.channels.base import DeliveryStatus
from src.infrastructure.notifications.delivery_log import AuditTrail, DeliveryLog
from src.infrastructure.notifications.settings_store import ChannelSettingsStore
from src.infrastructure.security.vault import SecretVault
from src.models.notification import NotificationSettingsPatch


@pytest.fixture
async def sqlite_session_factory(tmp_path: Path) -> AsyncIterator[Any]:
    """Provide a session factory over a fresh SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessionmaker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    @asynccontextmanager
    async def factory() -> AsyncIterator[AsyncSession]:
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    yield factory
    await engine.dispose()


@pytest.fixture
def store(vault: SecretVault, sqlite_session_factory: Any) -> ChannelSettingsStore:
    return ChannelSettingsStore(
        vault=vault,
        audit_trail=AuditTrail(sqlite_session_factory),
        session_factory=sqlite_session_factory,
    )


class TestSettingsStore:
    """ChannelSettingsStore on real tables."""

    @pytest.mark.asyncio
    async def test_created_row_renders_masked_view(self, store: ChannelSettingsStore) -> None:
        row = await store.upsert(
            "user",
            7,
            NotificationSettingsPatch(
                channels={"email": True},
                email_config={"provider": "gmail", "username": "ada@example.com", "password": "app-pass"},
            ),
            actor_id=7,
        )

        view = store.to_masked_view(row)

        assert view["updated_at"] is not None
        assert view["email_config"]["password"] == "ap****ss"

    @pytest.mark.asyncio
    async def test_updated_row_renders_masked_view(self, store: ChannelSettingsStore) -> None:
        await store.upsert(
            "user",
            7,
            NotificationSettingsPatch(
                channels={"email": True},
                email_config={"provider": "gmail", "username": "ada@example.com", "password": "app-pass"},
            ),
            actor_id=7,
        )
        row = await store.upsert(
            "user",
            7,
            NotificationSettingsPatch(
                channels={"sms": True},
                sms_config={"twilio_sid": "AC123", "twilio_token": "twilio-token"},
            ),
            actor_id=7,
        )

        view = store.to_masked_view(row)

        assert view["updated_at"] is not None
        assert view["channels"]["email"] is True
        assert view["channels"]["sms"] is True
        assert view["email_config"]["username"] == "ada@example.com"
        assert view["sms_config"]["twilio_token"] == "tw********en"


class TestDeliveryLog:
    """DeliveryLog on real tables."""

    @pytest.mark.asyncio
    async def test_duplicate_entry_is_rejected(self, sqlite_session_factory: Any) -> None:
        log = DeliveryLog(sqlite_session_factory)

        first = await log.record_attempt(7, 42, "sms")
        second = await log.record_attempt(7, 42, "sms")

        assert first is not None
        assert second is None
        assert len(await log.list_for_user(7)) == 1

    @pytest.mark.asyncio
    async def test_failed_entry_counts_as_attempted(self, sqlite_session_factory: Any) -> None:
        log = DeliveryLog(sqlite_session_factory)
        entry_id = await log.record_attempt(7, 42, "sms")

        await log.complete_attempt(entry_id, DeliveryStatus.FAILED, "InvalidRecipientError: Twilio error 21211")

        assert await log.already_attempted(7, 42, "sms") is True
        assert await log.already_attempted(7, 42, "email") is False

    @pytest.mark.asyncio
    async def test_entries_without_schedule_are_not_constrained(self, sqlite_session_factory: Any) -> None:
        log = DeliveryLog(sqlite_session_factory)

        first = await log.record_attempt(7, None, "email")
        second = await log.record_attempt(7, None, "email")

        assert first is not None
        assert second is not None
        assert first != second
