# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification channel using Firebase Cloud Messaging.

This channel sends push notifications to a device token using the FCM
HTTP v1 API. The Firebase service account JSON is stored encrypted as
``encrypted_firebase_service_account_json`` in the owner's
``push_config``.

The FCM client (service account credentials plus project ID) is created
lazily on first use and then reused by every later send in the process.
Creation is guarded by an ``asyncio.Lock`` so concurrent first sends build
it only once.
"""

import asyncio
import hashlib
import json
from typing import Any, Optional

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2 import service_account

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

# FCM HTTP v1 API endpoint template
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


class FCMClient:
    """Service account credentials bound to one Firebase project."""

    def __init__(self, credentials: service_account.Credentials, project_id: str) -> None:
        self.credentials = credentials
        self.project_id = project_id

    @classmethod
    def from_service_account_json(cls, raw: str) -> "FCMClient":
        """Build a client from a service account JSON document.

        Raises:
            ProviderAuthError: If the document is not a usable service account.
        """
        try:
            info = json.loads(raw)
            credentials = service_account.Credentials.from_service_account_info(
                info,
                scopes=[FCM_SCOPE],
            )
        except ValueError as e:
            raise ProviderAuthError("Firebase service account is invalid", e) from e

        project_id = info.get("project_id")
        if not project_id:
            raise ProviderAuthError("Firebase service account has no project_id")
        return cls(credentials, project_id)

    @property
    def send_url(self) -> str:
        return FCM_API_URL.format(project_id=self.project_id)

    async def access_token(self) -> str:
        """Return a valid OAuth2 access token, refreshing when expired."""
        if not self.credentials.valid:
            # google-auth refresh is blocking
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.credentials.refresh, Request())
        return self.credentials.token


class PushChannel(BaseChannel):
    """Push notification channel using Firebase Cloud Messaging."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._clients: dict[str, FCMClient] = {}
        self._client_lock = asyncio.Lock()

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.PUSH

    async def get_client(self, raw_service_account: str) -> FCMClient:
        """Get the FCM client for a service account, creating it once.

        Args:
            raw_service_account: Decrypted service account JSON.

        Returns:
            The cached or newly created FCMClient.
        """
        key = hashlib.sha256(raw_service_account.encode("utf-8")).hexdigest()
        client = self._clients.get(key)
        if client is not None:
            return client

        async with self._client_lock:
            client = self._clients.get(key)
            if client is None:
                client = FCMClient.from_service_account_json(raw_service_account)
                self._clients[key] = client
                self.logger.info("FCM push client initialized for project %s", client.project_id)
        return client

    async def _deliver(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> str:
        raw = self._decrypt(config, "firebase_service_account_json")
        client = await self.get_client(raw)
        access_token = await client.access_token()

        async with self._http_client() as http:
            response = await http.post(
                client.send_url,
                headers={"Authorization": f"Bearer {access_token}"},
                json={"message": self._build_fcm_message(address, payload)},
            )

        self._raise_for_status(response)
        return response.json().get("name", "").split("/")[-1]

    def _build_fcm_message(self, token: str, payload: NotificationPayload) -> dict[str, Any]:
        """Build the FCM v1 message; data values must be strings."""
        subject, _ = build_lecture_message(payload)
        data = {
            "course_id": _as_str(payload.course_id),
            "schedule_id": _as_str(payload.schedule_id),
        }
        return {
            "token": token,
            "notification": {
                "title": subject,
                "body": f"{payload.course_code} at {payload.time}, {payload.venue}",
            },
            "data": data,
        }

    def map_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, google.auth.exceptions.RefreshError):
            return ProviderAuthError("Firebase token refresh failed", exc, detail=str(exc))
        if isinstance(exc, google.auth.exceptions.TransportError):
            return ProviderConnectivityError("Firebase token endpoint unreachable", exc, detail=str(exc))
        return super().map_error(exc)


def _as_str(value: Optional[Any]) -> str:
    return "" if value is None else str(value)
