# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification channels for delivering lecture reminders.

This package provides one channel per delivery mechanism:

- EmailChannel: SMTP via aiosmtplib
- SMSChannel: Twilio REST API
- PushChannel: Firebase Cloud Messaging HTTP v1
- CalendarChannel: Google Calendar events

Usage:
    from src.infrastructure.notifications.channels import EmailChannel
    from src.infrastructure.security import get_secret_vault

    email = EmailChannel(get_secret_vault())
    result = await email.send(settings.email_config, "ada@example.com", payload)
"""

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
    build_lecture_message,
    build_test_payload,
)
from src.infrastructure.notifications.channels.calendar import CalendarChannel
from src.infrastructure.notifications.channels.email import EmailChannel
from src.infrastructure.notifications.channels.push import FCMClient, PushChannel
from src.infrastructure.notifications.channels.sms import SMSChannel

__all__ = [
    # Base types
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "NotificationPayload",
    "build_lecture_message",
    "build_test_payload",
    # Channels
    "CalendarChannel",
    "EmailChannel",
    "FCMClient",
    "PushChannel",
    "SMSChannel",
]
