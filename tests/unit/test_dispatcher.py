# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the notification dispatcher."""

from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.infrastructure.database import DatabaseError
from src.infrastructure.database.models import NotificationSettings
from src.infrastructure.notifications.channels.base import (
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
)
from src.infrastructure.notifications.delivery_log import InvalidTransitionError
from src.infrastructure.notifications.dispatcher import (
    NotificationDispatcher,
    coerce_payload,
    parse_channels,
)
from src.infrastructure.notifications.errors import (
    AUTH,
    CONFIGURATION_MISSING,
    UnsupportedChannelError,
)


class InMemoryDeliveryLog:
    """Delivery log keeping entries in a list."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def _find(self, user_id: int, schedule_id: Optional[int], channel: Any) -> Optional[dict[str, Any]]:
        if schedule_id is None:
            return None
        for e in self.entries:
            if (
                e["user_id"] == user_id
                and e["schedule_id"] == schedule_id
                and e["channel"] == ChannelType(channel).value
            ):
                return e
        return None

    async def already_attempted(self, user_id: int, schedule_id: Optional[int], channel: Any) -> bool:
        return self._find(user_id, schedule_id, channel) is not None

    async def record_attempt(self, user_id: int, schedule_id: Optional[int], channel: Any) -> Optional[int]:
        if self._find(user_id, schedule_id, channel) is not None:
            return None
        self.entries.append(
            {
                "id": len(self.entries) + 1,
                "user_id": user_id,
                "schedule_id": schedule_id,
                "channel": ChannelType(channel).value,
                "status": "pending",
                "provider_response": None,
                "error_category": None,
            }
        )
        return len(self.entries)

    async def complete_attempt(
        self,
        entry_id: int,
        outcome: Any,
        provider_response: Optional[str],
        error_category: Optional[str] = None,
    ) -> dict[str, Any]:
        entry = self.entries[entry_id - 1]
        outcome = DeliveryStatus(outcome)
        if entry["status"] != "pending":
            raise InvalidTransitionError(entry_id, entry["status"], outcome.value)
        entry.update(
            status=outcome.value,
            provider_response=provider_response,
            error_category=error_category,
        )
        return entry


def _provider(channel: ChannelType, result: Optional[ChannelResult] = None) -> MagicMock:
    provider = MagicMock()
    provider.send = AsyncMock(
        return_value=result
        or ChannelResult(channel=channel, status=DeliveryStatus.SENT, provider_response=f"{channel.value}-id")
    )
    return provider


def _settings(**channels: bool) -> NotificationSettings:
    return NotificationSettings(
        owner_type="user",
        owner_id=7,
        channels=channels,
        email_config={"provider": "gmail"},
        sms_config={"twilio_sid": "AC1"},
    )


@pytest.fixture
def delivery_log() -> InMemoryDeliveryLog:
    return InMemoryDeliveryLog()


@pytest.fixture
def settings_store() -> MagicMock:
    store = MagicMock()
    store.resolve_for_user = AsyncMock(return_value=_settings(email=True, sms=False))
    return store


@pytest.fixture
def providers() -> dict[ChannelType, MagicMock]:
    return {channel: _provider(channel) for channel in ChannelType}


@pytest.fixture
def dispatcher(
    settings_store: MagicMock,
    delivery_log: InMemoryDeliveryLog,
    providers: dict[ChannelType, MagicMock],
) -> NotificationDispatcher:
    return NotificationDispatcher(settings_store, delivery_log, providers)


class TestParseChannels:
    """Tests for parse_channels."""

    def test_keeps_order_and_drops_repeats(self) -> None:
        assert parse_channels(["sms", "email", "sms"]) == [ChannelType.SMS, ChannelType.EMAIL]

    def test_unknown_channel(self) -> None:
        with pytest.raises(UnsupportedChannelError) as exc_info:
            parse_channels(["email", "fax"])

        assert "fax" in str(exc_info.value)


class TestCoercePayload:
    """Tests for coerce_payload."""

    def test_dict_payload(self) -> None:
        payload = coerce_payload(7, 42, {"course_title": "Algebra", "recipient_email": "a@b.c", "extra": 1})

        assert payload.user_id == 7
        assert payload.schedule_id == 42
        assert payload.course_title == "Algebra"
        assert payload.venue == ""
        assert payload.data == {"extra": 1}

    def test_payload_object_passes_through(self, sample_payload: NotificationPayload) -> None:
        assert coerce_payload(7, 42, sample_payload) is sample_payload


class TestDispatch:
    """Tests for NotificationDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_only_enabled_channels_are_sent(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        await dispatcher.dispatch(7, 42, ["email", "sms"], sample_payload)

        assert len(delivery_log.entries) == 1
        entry = delivery_log.entries[0]
        assert entry["channel"] == "email"
        assert entry["status"] == "sent"
        assert entry["provider_response"] == "email-id"
        providers[ChannelType.SMS].send.assert_not_awaited()

        config, address, payload = providers[ChannelType.EMAIL].send.await_args.args
        assert config == {"provider": "gmail"}
        assert address == "ada@example.com"
        assert payload is sample_payload

    @pytest.mark.asyncio
    async def test_failure_is_logged_with_category(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        providers[ChannelType.EMAIL].send.return_value = ChannelResult(
            channel=ChannelType.EMAIL,
            status=DeliveryStatus.FAILED,
            error_category=AUTH,
            error_message="SMTP authentication failed (535)",
        )

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        entry = delivery_log.entries[0]
        assert entry["status"] == "failed"
        assert entry["error_category"] == AUTH
        assert entry["provider_response"] == "AuthError: SMTP authentication failed (535)"

    @pytest.mark.asyncio
    async def test_one_failing_channel_does_not_block_others(
        self,
        dispatcher: NotificationDispatcher,
        settings_store: MagicMock,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        settings_store.resolve_for_user.return_value = _settings(email=True, sms=True)
        providers[ChannelType.SMS].send.return_value = ChannelResult(
            channel=ChannelType.SMS,
            status=DeliveryStatus.FAILED,
            error_category="ConnectivityError",
            error_message="Network error: ConnectError",
        )

        await dispatcher.dispatch(7, 42, ["email", "sms"], sample_payload)

        statuses = {e["channel"]: e["status"] for e in delivery_log.entries}
        assert statuses == {"email": "sent", "sms": "failed"}

    @pytest.mark.asyncio
    async def test_sent_channel_is_skipped(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        await dispatcher.dispatch(7, 42, ["email"], sample_payload)
        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        assert len(delivery_log.entries) == 1
        assert providers[ChannelType.EMAIL].send.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_channel_is_not_resent(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        providers[ChannelType.EMAIL].send.return_value = ChannelResult(
            channel=ChannelType.EMAIL,
            status=DeliveryStatus.FAILED,
            error_category="InvalidRecipientError",
            error_message="SMTP error 550",
        )

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)
        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        assert [e["status"] for e in delivery_log.entries] == ["failed"]
        assert providers[ChannelType.EMAIL].send.await_count == 1

    @pytest.mark.asyncio
    async def test_pending_entry_blocks_second_dispatch(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        await delivery_log.record_attempt(7, 42, "email")

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        assert [e["status"] for e in delivery_log.entries] == ["pending"]
        providers[ChannelType.EMAIL].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_insert_race_skips_provider(
        self,
        settings_store: MagicMock,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        log = MagicMock()
        log.already_attempted = AsyncMock(return_value=False)
        log.record_attempt = AsyncMock(return_value=None)
        log.complete_attempt = AsyncMock()
        dispatcher = NotificationDispatcher(settings_store, log, providers)

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        providers[ChannelType.EMAIL].send.assert_not_awaited()
        log.complete_attempt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ad_hoc_sends_are_not_deduplicated(
        self,
        dispatcher: NotificationDispatcher,
        delivery_log: InMemoryDeliveryLog,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        await dispatcher.dispatch(7, None, ["email"], sample_payload)
        await dispatcher.dispatch(7, None, ["email"], sample_payload)

        assert [e["status"] for e in delivery_log.entries] == ["sent", "sent"]
        assert providers[ChannelType.EMAIL].send.await_count == 2

    @pytest.mark.asyncio
    async def test_no_settings_sends_nothing(
        self,
        dispatcher: NotificationDispatcher,
        settings_store: MagicMock,
        delivery_log: InMemoryDeliveryLog,
        sample_payload: NotificationPayload,
    ) -> None:
        settings_store.resolve_for_user.return_value = None

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        assert delivery_log.entries == []

    @pytest.mark.asyncio
    async def test_unknown_channel_rejected_before_anything_happens(
        self,
        dispatcher: NotificationDispatcher,
        settings_store: MagicMock,
        delivery_log: InMemoryDeliveryLog,
        sample_payload: NotificationPayload,
    ) -> None:
        with pytest.raises(UnsupportedChannelError):
            await dispatcher.dispatch(7, 42, ["email", "fax"], sample_payload)

        settings_store.resolve_for_user.assert_not_awaited()
        assert delivery_log.entries == []

    @pytest.mark.asyncio
    async def test_missing_provider_is_configuration_missing(
        self,
        settings_store: MagicMock,
        delivery_log: InMemoryDeliveryLog,
        sample_payload: NotificationPayload,
    ) -> None:
        dispatcher = NotificationDispatcher(settings_store, delivery_log, {})

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        entry = delivery_log.entries[0]
        assert entry["status"] == "failed"
        assert entry["error_category"] == CONFIGURATION_MISSING

    @pytest.mark.asyncio
    async def test_log_failure_skips_channel(
        self,
        settings_store: MagicMock,
        providers: dict[ChannelType, MagicMock],
        sample_payload: NotificationPayload,
    ) -> None:
        log = MagicMock()
        log.already_attempted = AsyncMock(return_value=False)
        log.record_attempt = AsyncMock(side_effect=DatabaseError("connection lost"))
        dispatcher = NotificationDispatcher(settings_store, log, providers)

        await dispatcher.dispatch(7, 42, ["email"], sample_payload)

        providers[ChannelType.EMAIL].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dict_payload(
        self,
        dispatcher: NotificationDispatcher,
        providers: dict[ChannelType, MagicMock],
    ) -> None:
        await dispatcher.dispatch(
            7,
            42,
            ["email"],
            {"course_title": "Algebra", "course_code": "MTH101", "recipient_email": "x@y.z"},
        )

        _, address, payload = providers[ChannelType.EMAIL].send.await_args.args
        assert address == "x@y.z"
        assert payload.course_code == "MTH101"
