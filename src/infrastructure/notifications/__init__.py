# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Lecture reminder notification system.

This package delivers lecture reminders through four channels and keeps
track of what was sent:

- channels: EmailChannel, SMSChannel, PushChannel, CalendarChannel
- settings_store: Per-owner channel switches and encrypted credentials
- dispatcher: Parallel, failure-isolated fan-out to enabled channels
- delivery_log: Delivery attempts and the settings audit trail
- service: NotificationService used by the HTTP layer

Usage:
    from src.infrastructure.notifications import get_notification_service

    service = get_notification_service()
    await service.send(
        user_id=12,
        schedule_id=340,
        channels=["email", "sms"],
        payload=payload,
    )

Configuration (environment variables):
- ENCRYPTION_KEY: Passphrase protecting stored credentials
- NOTIFY_MAX_CONCURRENT_SENDS: Concurrent provider calls (default: 10)
- NOTIFY_PROVIDER_TIMEOUT_SECONDS: Provider call timeout (default: 30)
- NOTIFY_ORGANIZATION_ID: Organization settings used as fallback
"""

from src.infrastructure.notifications.channels import (
    BaseChannel,
    CalendarChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailChannel,
    NotificationPayload,
    PushChannel,
    SMSChannel,
)
from src.infrastructure.notifications.delivery_log import (
    AuditTrail,
    DeliveryLog,
    DeliveryLogError,
    InvalidTransitionError,
    LogEntryNotFoundError,
)
from src.infrastructure.notifications.dispatcher import NotificationDispatcher
from src.infrastructure.notifications.errors import (
    ConfigurationMissing,
    DecryptionError,
    NotificationError,
    ProviderError,
    UnsupportedChannelError,
)
from src.infrastructure.notifications.service import (
    NotificationService,
    ChannelTestOutcome,
    get_notification_service,
)
from src.infrastructure.notifications.settings_store import (
    ChannelSettingsStore,
    InvalidOwnerError,
)

__all__ = [
    # Service
    "NotificationService",
    "ChannelTestOutcome",
    "get_notification_service",
    # Engine
    "AuditTrail",
    "ChannelSettingsStore",
    "DeliveryLog",
    "NotificationDispatcher",
    # Channel types
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "NotificationPayload",
    # Channels
    "CalendarChannel",
    "EmailChannel",
    "PushChannel",
    "SMSChannel",
    # Errors
    "ConfigurationMissing",
    "DecryptionError",
    "DeliveryLogError",
    "InvalidOwnerError",
    "InvalidTransitionError",
    "LogEntryNotFoundError",
    "NotificationError",
    "ProviderError",
    "UnsupportedChannelError",
]
