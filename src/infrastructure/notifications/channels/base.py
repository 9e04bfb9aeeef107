# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for notification channels.

This module defines the abstract base class and shared types for all
notification channels. Each channel wraps one third-party delivery API
(SMTP, Twilio, FCM, Google Calendar) and returns a normalized
ChannelResult. Channels never raise provider exceptions to their caller;
every failure is translated into a category from
``src.infrastructure.notifications.errors``.

Credentials arrive encrypted inside the channel config and are decrypted
through the SecretVault immediately before the provider call. Decrypted
values are never written back to the config.
"""

import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

import httpx

from src.infrastructure.notifications.errors import (
    AUTH,
    CONFIGURATION_MISSING,
    INVALID_RECIPIENT,
    ConfigurationMissing,
    DecryptionError,
    ProviderAuthError,
    ProviderConnectivityError,
    ProviderError,
    ProviderInvalidRecipientError,
    ProviderServerError,
    ProviderUnknownError,
)
from src.infrastructure.security.vault import SecretVault
from src.utils.datetime import utc_now

UNKNOWN_COURSE = "Unknown Course"
UNKNOWN_CODE = "Unknown Code"
SIGNATURE = "Lecture Reminder System"


class ChannelType(str, Enum):
    """Available notification channel types."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    CALENDAR = "calendar"


class DeliveryStatus(str, Enum):
    """Delivery status of one (user, schedule, channel) attempt."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class NotificationPayload:
    """Normalized lecture reminder content for one recipient.

    Contains everything any channel needs to render and address a
    reminder.

    Attributes:
        user_id: Recipient user ID.
        schedule_id: Schedule the reminder is about (None for test sends).
        course_title: Course title shown to the recipient.
        course_code: Course code shown to the recipient.
        date: Lecture date, ISO ``YYYY-MM-DD``.
        time: Lecture wall-clock time, ``HH:MM`` or ``HH:MM:SS``.
        venue: Lecture venue.
        recipient_name: Recipient first name used in the greeting.
        recipient_email: Address for email and calendar channels.
        recipient_phone: Number for the SMS channel.
        device_token: FCM registration token for the push channel.
        instructor_name: Lecturer display name.
        course_id: Course ID, sent as push data.
        role: ``lecturer`` or ``student``; selects the greeting wording.
        data: Extra key/value data forwarded by callers.
    """

    user_id: int
    schedule_id: Optional[int]
    course_title: str
    course_code: str
    date: str
    time: str
    venue: str
    recipient_name: str = ""
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    device_token: Optional[str] = None
    instructor_name: Optional[str] = None
    course_id: Optional[int] = None
    role: str = "student"
    data: dict[str, Any] = field(default_factory=dict)

    def address_for(self, channel: ChannelType | str) -> Optional[str]:
        """Return the recipient address used by a channel."""
        channel = ChannelType(channel)
        if channel in (ChannelType.EMAIL, ChannelType.CALENDAR):
            return self.recipient_email
        if channel == ChannelType.SMS:
            return self.recipient_phone
        return self.device_token

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationPayload":
        """Build a payload from a loosely shaped dict, ignoring unknown keys."""
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        payload = cls(**values)
        if extra:
            payload.data = {**payload.data, **extra}
        return payload


@dataclass
class ChannelResult:
    """Result of a channel send operation.

    Attributes:
        channel: Which channel was used.
        status: SENT or FAILED.
        provider_response: Opaque provider identifier on success.
        error_category: Failure category on failure.
        error_message: Short failure description on failure.
        sent_at: When the attempt finished.
    """

    channel: ChannelType
    status: DeliveryStatus
    provider_response: Optional[str] = None
    error_category: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @property
    def failure_text(self) -> str:
        """Failure rendered as ``<Category>: <message>`` for the delivery log."""
        return f"{self.error_category}: {self.error_message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "provider_response": self.provider_response,
            "error_category": self.error_category,
            "error_message": self.error_message,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }


def build_lecture_message(payload: NotificationPayload) -> tuple[str, str]:
    """Render the reminder subject and body.

    Args:
        payload: Reminder content.

    Returns:
        Tuple of (subject, body).
    """
    title = payload.course_title or UNKNOWN_COURSE
    code = payload.course_code or UNKNOWN_CODE
    lecture = "your upcoming lecture" if payload.role == "student" else "your lecture"
    subject = f"Lecture Reminder: {title}"
    body = (
        f"Hello {payload.recipient_name},\n\n"
        f"This is a reminder for {lecture}:\n"
        f"Course: {title} ({code})\n"
        f"Date: {payload.date}\n"
        f"Time: {payload.time}\n"
        f"Venue: {payload.venue}\n\n"
        f"Best regards,\n"
        f"{SIGNATURE}"
    )
    return subject, body


def build_test_payload(channel: ChannelType | str, address: str) -> NotificationPayload:
    """Build a sample reminder for a test send to ``address``."""
    channel = ChannelType(channel)
    start = utc_now() + timedelta(hours=1)
    payload = NotificationPayload(
        user_id=0,
        schedule_id=None,
        course_title="Test Course",
        course_code="TEST101",
        date=start.date().isoformat(),
        time=start.strftime("%H:%M"),
        venue="Test Venue",
        recipient_name="there",
        role="lecturer",
    )
    if channel in (ChannelType.EMAIL, ChannelType.CALENDAR):
        payload.recipient_email = address
    elif channel == ChannelType.SMS:
        payload.recipient_phone = address
    else:
        payload.device_token = address
    return payload


def classify_transport_error(exc: BaseException) -> Optional[ProviderError]:
    """Map network-level exceptions to ProviderConnectivityError.

    Returns:
        The mapped error, or None if ``exc`` is not a transport failure.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.ProxyError)):
        return ProviderConnectivityError(f"Network error: {exc.__class__.__name__}", exc)
    if isinstance(exc, (socket.gaierror, ConnectionError, TimeoutError)):
        return ProviderConnectivityError(f"Network error: {exc.__class__.__name__}", exc)
    return None


def classify_http_status(status_code: int, detail: str = "") -> ProviderError:
    """Map a provider HTTP error status to a ProviderError.

    The response body is kept as log-only detail.
    """
    message = f"HTTP {status_code}"
    detail = detail[:500] or None
    if status_code in (401, 403):
        return ProviderAuthError(message, detail=detail)
    if status_code in (400, 404, 422):
        return ProviderInvalidRecipientError(message, detail=detail)
    if status_code == 429 or status_code >= 500:
        return ProviderServerError(message, detail=detail)
    return ProviderUnknownError(message, detail=detail)


class BaseChannel(ABC):
    """Abstract base class for notification channels.

    Subclasses implement :meth:`_deliver`, which talks to the provider and
    returns an opaque response identifier. :meth:`send` wraps it with the
    shared checks and error normalization.

    Args:
        vault: Vault used to decrypt ``encrypted_*`` config fields.
        timeout: Provider call timeout in seconds.
        transport: Optional httpx transport, used by HTTP based channels.
    """

    def __init__(
        self,
        vault: SecretVault,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.vault = vault
        self.timeout = timeout
        self._transport = transport
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        ...

    @abstractmethod
    async def _deliver(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> str:
        """Perform the provider call.

        Returns:
            Opaque provider response (message id, event id...).

        Raises:
            ProviderError: On a classified provider failure.
            ConfigurationMissing: If a required config field is absent.
            DecryptionError: If a stored secret cannot be decrypted.
        """
        ...

    async def send(
        self,
        config: Optional[dict[str, Any]],
        address: Optional[str],
        payload: NotificationPayload,
    ) -> ChannelResult:
        """Send a reminder through this channel.

        Args:
            config: Stored channel config with encrypted secrets.
            address: Recipient address for this channel.
            payload: Reminder content.

        Returns:
            ChannelResult with SENT or FAILED status.
        """
        if not config:
            return self.create_failure_result(
                CONFIGURATION_MISSING,
                f"No {self.channel_type.value} configuration found",
            )
        if not address:
            return self.create_failure_result(
                INVALID_RECIPIENT,
                f"Recipient has no {self.channel_type.value} address",
            )

        try:
            response = await self._deliver(config, address, payload)
        except ProviderError as e:
            return self._log_failure(e.category, e.message, e.detail)
        except ConfigurationMissing as e:
            return self._log_failure(e.category, e.message)
        except DecryptionError:
            return self._log_failure(AUTH, "Stored credential unreadable")
        except Exception as e:
            mapped = self.map_error(e)
            return self._log_failure(mapped.category, mapped.message, mapped.detail)

        self.logger.info(
            "%s reminder sent for schedule %s: %s",
            self.channel_type.value,
            payload.schedule_id,
            response,
        )
        return self.create_success_result(response)

    async def test(self, config: Optional[dict[str, Any]], address: str) -> ChannelResult:
        """Send a sample reminder to ``address`` using ``config``."""
        return await self.send(config, address, build_test_payload(self.channel_type, address))

    def map_error(self, exc: Exception) -> ProviderError:
        """Translate an unclassified exception raised during delivery.

        Subclasses extend this with their SDK's exception types.
        """
        mapped = classify_transport_error(exc)
        if mapped is not None:
            return mapped
        return ProviderUnknownError(
            "Unexpected provider error",
            exc,
            detail=f"{exc.__class__.__name__}: {exc}",
        )

    def _require(self, config: dict[str, Any], key: str) -> Any:
        value = config.get(key)
        if value in (None, ""):
            raise ConfigurationMissing(f"{self.channel_type.value} config is missing '{key}'")
        return value

    def _decrypt(self, config: dict[str, Any], secret: str) -> str:
        """Decrypt the ``encrypted_<secret>`` field of a config.

        Raises:
            ConfigurationMissing: If the secret was never stored.
            DecryptionError: If the stored value cannot be decrypted.
        """
        return self.vault.decrypt(self._require(config, f"encrypted_{secret}"))

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise classify_http_status(response.status_code, response.text)

    def _log_failure(self, category: str, message: str, detail: Optional[str] = None) -> ChannelResult:
        self.logger.warning(
            "%s delivery failed (%s): %s%s",
            self.channel_type.value,
            category,
            message,
            f" [{detail}]" if detail else "",
        )
        return self.create_failure_result(category, message)

    def create_success_result(self, provider_response: Optional[str] = None) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            provider_response=provider_response,
            sent_at=utc_now(),
        )

    def create_failure_result(self, category: str, message: str) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_category=category,
            error_message=message,
            sent_at=utc_now(),
        )
