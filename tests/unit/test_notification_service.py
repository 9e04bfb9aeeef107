# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the notification service."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.core.config.settings import Settings
from src.infrastructure.database.models import NotificationSettings
from src.infrastructure.notifications.channels import (
    CalendarChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailChannel,
    PushChannel,
    SMSChannel,
)
from src.infrastructure.notifications.errors import AUTH, UnsupportedChannelError
from src.infrastructure.notifications.service import (
    NotificationService,
    build_channel_registry,
)
from src.infrastructure.security.vault import SecretVault
from src.models import notification as schemas


def _provider(result: ChannelResult) -> MagicMock:
    provider = MagicMock()
    provider.test = AsyncMock(return_value=result)
    return provider


@pytest.fixture
def settings_store() -> MagicMock:
    store = MagicMock()
    store.resolve_for_user = AsyncMock(
        return_value=NotificationSettings(
            owner_type="user",
            owner_id=7,
            channels={"email": True},
            email_config={"provider": "gmail", "username": "ada@example.com"},
        )
    )
    return store


@pytest.fixture
def email_provider() -> MagicMock:
    return _provider(ChannelResult(channel=ChannelType.EMAIL, status=DeliveryStatus.SENT, provider_response="id"))


@pytest.fixture
def service(settings_store: MagicMock, email_provider: MagicMock) -> NotificationService:
    dispatcher = MagicMock()
    dispatcher.channels = {ChannelType.EMAIL: email_provider}
    dispatcher.dispatch = AsyncMock()
    return NotificationService(
        settings_store=settings_store,
        dispatcher=dispatcher,
        delivery_log=MagicMock(),
        audit_trail=MagicMock(),
        database_check=AsyncMock(return_value=True),
        scheduler_stats=lambda: {"is_running": True, "job_count": 1},
    )


class TestChannelTest:
    """Tests for NotificationService.test_channel."""

    @pytest.mark.asyncio
    async def test_success(self, service: NotificationService, email_provider: MagicMock) -> None:
        outcome = await service.test_channel("email", "ada@example.com", actor_id=7)

        assert outcome.success is True
        assert outcome.message == "Test email notification sent successfully"
        config, address = email_provider.test.await_args.args
        assert config == {"provider": "gmail", "username": "ada@example.com"}
        assert address == "ada@example.com"

    @pytest.mark.asyncio
    async def test_missing_address(self, service: NotificationService) -> None:
        outcome = await service.test_channel(ChannelType.SMS, None, actor_id=7)

        assert outcome.success is False
        assert outcome.message == "Test phone number is required for SMS testing"

    @pytest.mark.asyncio
    async def test_no_settings(self, service: NotificationService, settings_store: MagicMock) -> None:
        settings_store.resolve_for_user.return_value = None

        outcome = await service.test_channel("email", "ada@example.com", actor_id=7)

        assert outcome.message == "No notification settings found for this user"

    @pytest.mark.asyncio
    async def test_channel_not_configured(self, service: NotificationService) -> None:
        outcome = await service.test_channel("sms", "+15550000", actor_id=7)

        assert outcome.success is False
        assert outcome.message == "No configuration found for sms"

    @pytest.mark.asyncio
    async def test_failure_carries_category(
        self, service: NotificationService, email_provider: MagicMock
    ) -> None:
        email_provider.test.return_value = ChannelResult(
            channel=ChannelType.EMAIL,
            status=DeliveryStatus.FAILED,
            error_category=AUTH,
            error_message="SMTP authentication failed (535)",
        )

        outcome = await service.test_channel("email", "ada@example.com", actor_id=7)

        assert outcome.success is False
        assert outcome.category == AUTH
        assert outcome.message == (
            "The provider rejected the stored credentials: SMTP authentication failed (535)"
        )

    @pytest.mark.asyncio
    async def test_provider_body_not_in_response(
        self, service: NotificationService, settings_store: MagicMock, vault: SecretVault
    ) -> None:
        body = {"code": 21614, "message": "Unverified number for trial account AC9f3e"}
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json=body))
        service.dispatcher.channels[ChannelType.SMS] = SMSChannel(vault, transport=transport)
        settings_store.resolve_for_user.return_value = NotificationSettings(
            owner_type="user",
            owner_id=7,
            channels={"sms": True},
            sms_config={
                "twilio_sid": "AC9f3e",
                "phone_number": "+15550000",
                "encrypted_twilio_token": vault.encrypt("twilio-token"),
            },
        )

        outcome = await service.test_channel("sms", "+2348012345678", actor_id=7)
        response = schemas.TestNotificationResponse(
            success=outcome.success, message=outcome.message, category=outcome.category
        )

        assert response.success is False
        assert response.message.endswith("Twilio error 21614")
        assert "Unverified number" not in response.message
        assert "AC9f3e" not in response.message


class TestSend:
    """Tests for NotificationService.send and validation."""

    def test_validate_channels(self, service: NotificationService) -> None:
        assert service.validate_channels(["push"]) == [ChannelType.PUSH]
        with pytest.raises(UnsupportedChannelError):
            service.validate_channels(["pager"])

    @pytest.mark.asyncio
    async def test_send_delegates_to_dispatcher(self, service: NotificationService) -> None:
        await service.send(7, 42, ["email"], {"course_title": "Algebra"})

        service.dispatcher.dispatch.assert_awaited_once_with(7, 42, ["email"], {"course_title": "Algebra"})


class TestHealthCheck:
    """Tests for NotificationService.health_check."""

    @pytest.mark.asyncio
    async def test_healthy(self, service: NotificationService) -> None:
        health = await service.health_check()

        assert health["status"] == "healthy"
        assert health["services"]["database"] == "connected"
        assert health["services"]["email"] == "available"
        assert health["services"]["calendar"] == "unavailable"
        assert health["scheduler"]["is_running"] is True

    @pytest.mark.asyncio
    async def test_database_down_is_degraded(self, service: NotificationService) -> None:
        service._database_check = AsyncMock(return_value=False)

        health = await service.health_check()

        assert health["status"] == "degraded"
        assert health["services"]["database"] == "disconnected"


class TestDiagnostics:
    """Tests for NotificationService.run_diagnostics."""

    @pytest.mark.asyncio
    async def test_unreachable_provider_marks_degraded(self, service: NotificationService) -> None:
        async def check_endpoint(name: str, host: str, port: int) -> dict[str, str]:
            status = "failed" if name == "sms" else "passed"
            return {"name": name, "status": status, "details": f"{host}:{port}"}

        service._check_endpoint = check_endpoint

        report = await service.run_diagnostics()

        assert report["status"] == "degraded"
        names = [t["name"] for t in report["tests"]]
        assert names == ["database", "email", "sms", "push", "calendar"]


class TestChannelRegistry:
    """Tests for build_channel_registry."""

    def test_one_channel_per_type(self, vault: SecretVault) -> None:
        registry = build_channel_registry(Settings(), vault)

        assert isinstance(registry[ChannelType.EMAIL], EmailChannel)
        assert isinstance(registry[ChannelType.SMS], SMSChannel)
        assert isinstance(registry[ChannelType.PUSH], PushChannel)
        assert isinstance(registry[ChannelType.CALENDAR], CalendarChannel)
        assert registry[ChannelType.CALENDAR].timezone == "Africa/Lagos"
