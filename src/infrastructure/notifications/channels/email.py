# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

This channel sends lecture reminders using aiosmtplib. Transport settings
come from the owner's ``email_config``:

- ``provider == "gmail"``: smtp.gmail.com on port 465 with implicit TLS.
- otherwise ``smtp_host`` / ``smtp_port``; implicit TLS when the port is
  465, STARTTLS on any other port.

The SMTP password is stored as ``encrypted_password`` and decrypted just
before the connection is opened.
"""

from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

import aiosmtplib

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelType,
    NotificationPayload,
    build_lecture_message,
)
from src.infrastructure.notifications.errors import (
    ConfigurationMissing,
    ProviderAuthError,
    ProviderConnectivityError,
    ProviderError,
    ProviderInvalidRecipientError,
    ProviderServerError,
)
from src.infrastructure.security.vault import SecretVault

GMAIL_HOST = "smtp.gmail.com"
IMPLICIT_TLS_PORT = 465
DEFAULT_FROM_NAME = "Lecture Reminder System"


def resolve_transport(config: dict[str, Any]) -> tuple[str, int, bool]:
    """Resolve (host, port, implicit_tls) from an email config.

    An unset host is returned as an empty string.
    """
    if (config.get("provider") or "").lower() == "gmail":
        return GMAIL_HOST, IMPLICIT_TLS_PORT, True

    port = int(config.get("smtp_port") or 587)
    return config.get("smtp_host") or "", port, port == IMPLICIT_TLS_PORT


class EmailChannel(BaseChannel):
    """Email notification channel using async SMTP.

    Args:
        vault: Vault used to decrypt the SMTP password.
        timeout: SMTP operation timeout in seconds.
        default_from_name: Sender display name when the config has none.
    """

    def __init__(
        self,
        vault: SecretVault,
        timeout: float = 30.0,
        default_from_name: str = DEFAULT_FROM_NAME,
    ) -> None:
        super().__init__(vault, timeout=timeout)
        self.default_from_name = default_from_name

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.EMAIL

    async def _deliver(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> str:
        host, port, implicit_tls = resolve_transport(config)
        if not host:
            raise ConfigurationMissing("email config is missing 'smtp_host'")

        username = self._require(config, "username")
        password = self._decrypt(config, "password")

        message = self._build_email_message(config, address, payload)

        await aiosmtplib.send(
            message,
            hostname=host,
            port=port,
            username=username,
            password=password,
            use_tls=implicit_tls,
            start_tls=False if implicit_tls else None,
            timeout=self.timeout,
        )

        return message["Message-ID"]

    def _build_email_message(
        self,
        config: dict[str, Any],
        address: str,
        payload: NotificationPayload,
    ) -> EmailMessage:
        """Build the plain text reminder email."""
        subject, body = build_lecture_message(payload)
        from_email = config.get("from_email") or config.get("username")
        from_name = config.get("from_name") or self.default_from_name

        message = EmailMessage()
        message["From"] = formataddr((from_name, from_email))
        message["To"] = address
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=from_email.split("@")[-1] if from_email else None)
        message.set_content(body)
        return message

    def map_error(self, exc: Exception) -> ProviderError:
        """Translate aiosmtplib exceptions to notification errors."""
        if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
            return ProviderAuthError(f"SMTP authentication failed ({exc.code})", exc)
        if isinstance(exc, (aiosmtplib.SMTPRecipientsRefused, aiosmtplib.SMTPRecipientRefused)):
            return ProviderInvalidRecipientError("SMTP server refused the recipient", exc)
        if isinstance(
            exc,
            (
                aiosmtplib.SMTPConnectError,
                aiosmtplib.SMTPTimeoutError,
                aiosmtplib.SMTPServerDisconnected,
            ),
        ):
            return ProviderConnectivityError("SMTP connection failed", exc, detail=str(exc))
        if isinstance(exc, aiosmtplib.SMTPResponseException):
            return ProviderServerError(f"SMTP error {exc.code}", exc, detail=exc.message)
        return super().map_error(exc)
