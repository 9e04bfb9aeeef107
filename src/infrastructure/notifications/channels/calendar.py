# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Calendar notification channel using the Google Calendar API.

The owner's ``calendar_config`` holds an OAuth client ID and, encrypted,
the client secret and a long-lived refresh token. Each send exchanges the
refresh token for an access token and inserts a one hour event on the
``primary`` calendar with the recipient as attendee.
"""

import asyncio
from datetime import timedelta
from typing import Any, Optional

import google.auth.exceptions
import httpx
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelType,
    NotificationPayload,
    build_lecture_message,
)
from src.infrastructure.notifications.errors import (
    ProviderAuthError,
    ProviderConnectivityError,
    ProviderError,
)
from src.infrastructure.security.vault import SecretVault
from src.utils.datetime import combine_wall_clock

CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
EVENT_DURATION = timedelta(hours=1)


class CalendarChannel(BaseChannel):
    """Calendar channel creating Google Calendar events.

    Args:
        vault: Vault used to decrypt the client secret and refresh token.
        timeout: HTTP timeout in seconds.
        timezone: IANA timezone the lecture wall-clock times are in.
        transport: Optional httpx transport.
    """

    def __init__(
        self,
        vault: SecretVault,
        timeout: float = 30.0,
        timezone: str = "UTC",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(vault, timeout=timeout, transport=transport)
        self.timezone = timezone

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.CALENDAR

    async def _deliver(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> str:
        client_id = self._require(config, "google_client_id")
        client_secret = self._decrypt(config, "google_client_secret")
        refresh_token = self._decrypt(config, "refresh_token")

        access_token = await self._refresh_access_token(client_id, client_secret, refresh_token)

        async with self._http_client() as client:
            response = await client.post(
                CALENDAR_EVENTS_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                json=self._build_event(address, payload),
            )

        self._raise_for_status(response)
        return response.json().get("id", "")

    async def _refresh_access_token(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> str:
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            token_uri=GOOGLE_TOKEN_URI,
            scopes=[CALENDAR_SCOPE],
        )
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, credentials.refresh, Request())
        return credentials.token

    def _build_event(self, address: str, payload: NotificationPayload) -> dict[str, Any]:
        subject, body = build_lecture_message(payload)
        start = combine_wall_clock(payload.date, payload.time, self.timezone)
        end = start + EVENT_DURATION
        return {
            "summary": subject,
            "description": body,
            "location": payload.venue,
            "start": {"dateTime": start.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": self.timezone},
            "attendees": [{"email": address}],
        }

    def map_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, google.auth.exceptions.RefreshError):
            return ProviderAuthError("Google token refresh failed", exc, detail=str(exc))
        if isinstance(exc, google.auth.exceptions.TransportError):
            return ProviderConnectivityError("Google token endpoint unreachable", exc, detail=str(exc))
        return super().map_error(exc)
