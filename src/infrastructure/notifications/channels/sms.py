# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SMS notification channel using the Twilio REST API.

Messages are posted with httpx to the Twilio Messages resource using
HTTP basic auth (account SID, auth token). The auth token is stored as
``encrypted_twilio_token`` in the owner's ``sms_config``.
"""

from typing import Any

import httpx

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelType,
    NotificationPayload,
    classify_http_status,
)
from src.infrastructure.notifications.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderInvalidRecipientError,
    ProviderServerError,
)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

# Twilio error codes for unusable destination numbers
_INVALID_NUMBER_CODES = {21211, 21214, 21217, 21408, 21610, 21614}


def build_sms_text(payload: NotificationPayload) -> str:
    """Compose the fixed-format reminder text."""
    title = payload.course_title or "Unknown Course"
    code = payload.course_code or "Unknown Code"
    return (
        f"Reminder: {title} ({code}) on {payload.date} at {payload.time}, "
        f"venue {payload.venue}."
    )


class SMSChannel(BaseChannel):
    """SMS notification channel using Twilio."""

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.SMS

    async def _deliver(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> str:
        sid = self._require(config, "twilio_sid")
        sender = self._require(config, "phone_number")
        token = self._decrypt(config, "twilio_token")

        async with self._http_client() as client:
            response = await client.post(
                TWILIO_MESSAGES_URL.format(sid=sid),
                data={"To": address, "From": sender, "Body": build_sms_text(payload)},
                auth=(sid, token),
            )

        if not response.is_success:
            raise self._classify_twilio_error(response)

        return response.json().get("sid", "")

    def _classify_twilio_error(self, response: httpx.Response) -> ProviderError:
        """Map a Twilio error response using its error code when present."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = body.get("code")
        detail = body.get("message") or response.text

        if code in _INVALID_NUMBER_CODES:
            return ProviderInvalidRecipientError(f"Twilio error {code}", detail=detail)
        if code == 20003:
            return ProviderAuthError(f"Twilio error {code}", detail=detail)
        if code == 20429:
            return ProviderServerError(f"Twilio error {code}", detail=detail)

        return classify_http_status(response.status_code, detail)
