# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fan-out of one reminder to the channels enabled for a recipient.

Per (recipient, schedule, channel) the lifecycle is:

    not requested -> pending -> sent | failed

A pending delivery log entry is written before the provider is called, so
a crash mid-send leaves a visible pending row. Any existing entry for a
scheduled reminder, failed ones included, means the channel is skipped.

Channels run concurrently and independently; a failing channel never
prevents the others. The number of provider calls in flight across the
process is bounded by a semaphore.
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.database.models import NotificationSettings
from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
)
from src.infrastructure.notifications.delivery_log import DeliveryLog, DeliveryLogError
from src.infrastructure.notifications.errors import (
    CONFIGURATION_MISSING,
    UnsupportedChannelError,
)
from src.infrastructure.notifications.settings_store import ChannelSettingsStore

logger = logging.getLogger(__name__)

_PAYLOAD_DEFAULTS = {
    "course_title": "",
    "course_code": "",
    "date": "",
    "time": "",
    "venue": "",
}


def parse_channels(channels: Iterable[Any]) -> list[ChannelType]:
    """Validate requested channel names, keeping order and dropping repeats.

    Raises:
        UnsupportedChannelError: On the first unknown channel name.
    """
    parsed: list[ChannelType] = []
    for name in channels:
        try:
            channel = ChannelType(getattr(name, "value", name))
        except ValueError:
            raise UnsupportedChannelError(str(name)) from None
        if channel not in parsed:
            parsed.append(channel)
    return parsed


def coerce_payload(
    user_id: int,
    schedule_id: Optional[int],
    payload: NotificationPayload | Mapping[str, Any],
) -> NotificationPayload:
    """Accept a payload object or a loosely shaped dict from the API."""
    if isinstance(payload, NotificationPayload):
        return payload
    return NotificationPayload.from_dict(
        {**_PAYLOAD_DEFAULTS, **payload, "user_id": user_id, "schedule_id": schedule_id}
    )


class NotificationDispatcher:
    """Sends a reminder through every requested and enabled channel.

    Args:
        settings_store: Resolves the settings that apply to a user.
        delivery_log: Records every attempt.
        channels: Channel implementation per channel type.
        max_concurrency: Upper bound of concurrent provider calls.
    """

    def __init__(
        self,
        settings_store: ChannelSettingsStore,
        delivery_log: DeliveryLog,
        channels: Mapping[ChannelType, BaseChannel],
        max_concurrency: int = 10,
    ) -> None:
        self._settings = settings_store
        self._log = delivery_log
        self._channels = dict(channels)
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @property
    def channels(self) -> dict[ChannelType, BaseChannel]:
        return self._channels

    async def dispatch(
        self,
        user_id: int,
        schedule_id: Optional[int],
        channels: Iterable[Any],
        payload: NotificationPayload | Mapping[str, Any],
    ) -> None:
        """Dispatch a reminder to one user.

        Outcomes are recorded in the delivery log; nothing is returned.

        Args:
            user_id: Recipient user ID.
            schedule_id: Schedule the reminder is about.
            channels: Requested channel names.
            payload: Reminder content.

        Raises:
            UnsupportedChannelError: If a channel name is unknown. Raised
                before anything is sent or logged.
            DatabaseError: If the recipient's settings cannot be read.
        """
        requested = parse_channels(channels)
        payload = coerce_payload(user_id, schedule_id, payload)

        settings = await self._settings.resolve_for_user(user_id)
        if settings is None:
            logger.warning("No notification settings found for user %s", user_id)
            return

        enabled = [c for c in requested if settings.is_channel_enabled(c.value)]
        if not enabled:
            logger.debug(
                "No requested channel enabled for user %s (requested %s)",
                user_id,
                [c.value for c in requested],
            )
            return

        await asyncio.gather(
            *(
                self._dispatch_channel(channel, settings, user_id, schedule_id, payload)
                for channel in enabled
            )
        )

    async def _dispatch_channel(
        self,
        channel: ChannelType,
        settings: NotificationSettings,
        user_id: int,
        schedule_id: Optional[int],
        payload: NotificationPayload,
    ) -> None:
        """Run the pending -> sent|failed lifecycle of one channel."""
        try:
            if await self._log.already_attempted(user_id, schedule_id, channel):
                logger.debug(
                    "Skipping %s for user %s schedule %s: already attempted",
                    channel.value,
                    user_id,
                    schedule_id,
                )
                return
            entry_id = await self._log.record_attempt(user_id, schedule_id, channel)
        except (DatabaseError, DeliveryLogError) as e:
            logger.error(
                "Could not create %s log entry for user %s: %s",
                channel.value,
                user_id,
                str(e),
            )
            return

        if entry_id is None:
            # A concurrent dispatch created the entry first
            return

        result = await self._send(channel, settings, payload)

        try:
            if result.success:
                await self._log.complete_attempt(
                    entry_id, DeliveryStatus.SENT, result.provider_response or "sent"
                )
            else:
                await self._log.complete_attempt(
                    entry_id,
                    DeliveryStatus.FAILED,
                    result.failure_text,
                    result.error_category,
                )
        except (DatabaseError, DeliveryLogError) as e:
            logger.error(
                "Could not complete log entry %s (%s): %s",
                entry_id,
                channel.value,
                str(e),
            )

    async def _send(
        self,
        channel: ChannelType,
        settings: NotificationSettings,
        payload: NotificationPayload,
    ) -> ChannelResult:
        provider = self._channels.get(channel)
        if provider is None:
            return ChannelResult(
                channel=channel,
                status=DeliveryStatus.FAILED,
                error_category=CONFIGURATION_MISSING,
                error_message=f"No provider registered for {channel.value}",
            )

        async with self._semaphore:
            return await provider.send(
                settings.get_config(channel.value),
                payload.address_for(channel),
                payload,
            )
