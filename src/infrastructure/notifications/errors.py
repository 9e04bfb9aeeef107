# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification error taxonomy.

Channel implementations translate every provider SDK or transport
exception into one of the ``Provider*Error`` classes below. Only the
``category`` string and a fixed short message ever leave a channel;
raw provider exceptions and response bodies are logged, never returned.
"""

from typing import Optional

from src.infrastructure.security.vault import DecryptionError

CONNECTIVITY = "ConnectivityError"
AUTH = "AuthError"
INVALID_RECIPIENT = "InvalidRecipientError"
PROVIDER_SERVER = "ProviderServerError"
UNKNOWN = "UnknownError"
CONFIGURATION_MISSING = "ConfigurationMissing"

_CATEGORY_DESCRIPTIONS: dict[str, str] = {
    CONNECTIVITY: "The provider could not be reached",
    AUTH: "The provider rejected the stored credentials",
    INVALID_RECIPIENT: "The recipient address was rejected",
    PROVIDER_SERVER: "The provider failed to process the request",
    UNKNOWN: "The provider returned an unexpected error",
    CONFIGURATION_MISSING: "The channel is enabled but not configured",
}


class NotificationError(Exception):
    """Base exception for notification operations."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationMissing(NotificationError):
    """A channel is enabled but has no usable configuration."""

    category = CONFIGURATION_MISSING


class UnsupportedChannelError(NotificationError):
    """A dispatch request named a channel this system does not know."""

    def __init__(self, channel: str) -> None:
        super().__init__(f"Unsupported notification channel: {channel}")
        self.channel = channel


class ProviderError(NotificationError):
    """Normalized failure of a third-party delivery provider.

    ``message`` is safe to show to users: a fixed phrase plus at most an
    HTTP status or SMTP reply code. Provider-supplied text goes to
    ``detail``, which is only ever logged.

    Attributes:
        category: User-facing failure category.
        original_error: The provider exception that was translated.
        detail: Raw provider text for the log.
    """

    category = UNKNOWN

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error
        self.detail = detail


class ProviderConnectivityError(ProviderError):
    category = CONNECTIVITY


class ProviderAuthError(ProviderError):
    category = AUTH


class ProviderInvalidRecipientError(ProviderError):
    category = INVALID_RECIPIENT


class ProviderServerError(ProviderError):
    category = PROVIDER_SERVER


class ProviderUnknownError(ProviderError):
    category = UNKNOWN


def describe_category(category: Optional[str]) -> str:
    """Return a human-readable explanation of a failure category."""
    if not category:
        return ""
    return _CATEGORY_DESCRIPTIONS.get(category, _CATEGORY_DESCRIPTIONS[UNKNOWN])


__all__ = [
    "AUTH",
    "CONFIGURATION_MISSING",
    "CONNECTIVITY",
    "INVALID_RECIPIENT",
    "PROVIDER_SERVER",
    "UNKNOWN",
    "ConfigurationMissing",
    "DecryptionError",
    "NotificationError",
    "ProviderAuthError",
    "ProviderConnectivityError",
    "ProviderError",
    "ProviderInvalidRecipientError",
    "ProviderServerError",
    "ProviderUnknownError",
    "UnsupportedChannelError",
    "describe_category",
]
