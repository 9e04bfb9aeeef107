# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification settings and delivery schemas.

Channel configs are a union keyed by channel name: each channel kind has
its own patch model, registered in ``CONFIG_PATCH_MODELS``. Patch models
accept plaintext secrets (``password``, ``twilio_token``...). Those never
reach the database; the settings store encrypts them into ``encrypted_*``
fields first.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.infrastructure.notifications.channels.base import ChannelType


class OwnerType(str, Enum):
    """Who a settings row belongs to."""

    ORGANIZATION = "organization"
    USER = "user"


class _ConfigPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_patch(self) -> dict[str, Any]:
        """Return only the fields the caller actually provided."""
        return self.model_dump(exclude_unset=True, exclude_none=True, mode="json")


class EmailConfigPatch(_ConfigPatch):
    provider: Optional[Literal["gmail", "smtp", "sendgrid", "custom"]] = None
    smtp_host: Optional[str] = Field(default=None, max_length=255)
    smtp_port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    from_name: Optional[str] = Field(default=None, max_length=100)
    from_email: Optional[str] = Field(default=None, max_length=255)


class SmsConfigPatch(_ConfigPatch):
    twilio_sid: Optional[str] = None
    twilio_token: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)


class PushConfigPatch(_ConfigPatch):
    firebase_service_account_json: Optional[str] = None


class CalendarConfigPatch(_ConfigPatch):
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    redirect_uri: Optional[str] = None


CONFIG_PATCH_MODELS: dict[ChannelType, type[_ConfigPatch]] = {
    ChannelType.EMAIL: EmailConfigPatch,
    ChannelType.SMS: SmsConfigPatch,
    ChannelType.PUSH: PushConfigPatch,
    ChannelType.CALENDAR: CalendarConfigPatch,
}


class NotificationSettingsPatch(BaseModel):
    """Partial update of an owner's notification settings.

    Fields left out are retained from the stored settings.
    """

    model_config = ConfigDict(extra="forbid")

    channels: Optional[dict[ChannelType, bool]] = None
    email_config: Optional[EmailConfigPatch] = None
    sms_config: Optional[SmsConfigPatch] = None
    push_config: Optional[PushConfigPatch] = None
    calendar_config: Optional[CalendarConfigPatch] = None

    def channel_flags(self) -> dict[str, bool]:
        return {channel.value: enabled for channel, enabled in (self.channels or {}).items()}

    def config_patches(self) -> dict[str, dict[str, Any]]:
        """Return ``{channel: provided fields}`` for every config in the patch."""
        patches: dict[str, dict[str, Any]] = {}
        for channel in ChannelType:
            config = getattr(self, f"{channel.value}_config")
            if config is not None:
                patches[channel.value] = config.to_patch()
        return patches


class UpdateNotificationSettingsRequest(NotificationSettingsPatch):
    """Request body of PUT /settings/notifications."""

    owner_type: OwnerType
    owner_id: int = Field(..., ge=1)

    def to_settings_patch(self) -> NotificationSettingsPatch:
        data = self.model_dump(exclude={"owner_type", "owner_id"}, exclude_unset=True)
        return NotificationSettingsPatch.model_validate(data)


class TestNotificationRequest(BaseModel):
    """Request body of POST /settings/notifications/test."""

    model_config = ConfigDict(extra="forbid")

    provider: ChannelType
    test_to: Optional[str] = Field(default=None, description="Phone number for SMS tests")
    test_email: Optional[str] = Field(default=None, description="Address for email tests")
    test_device_token: Optional[str] = Field(default=None, description="Device token for push tests")
    test_calendar_event: Optional[str] = Field(
        default=None, description="Attendee address for calendar tests"
    )

    def address(self) -> Optional[str]:
        """Return the test address matching the provider."""
        if self.provider == ChannelType.SMS:
            return self.test_to
        if self.provider == ChannelType.EMAIL:
            return self.test_email
        if self.provider == ChannelType.PUSH:
            return self.test_device_token
        return self.test_calendar_event or self.test_email


class SendNotificationRequest(BaseModel):
    """Request body of POST /notifications/send."""

    user_id: int = Field(..., ge=1)
    schedule_id: int = Field(..., ge=1)
    channels: list[str] = Field(..., min_length=1)
    payload: dict[str, Any]


class NotificationSettingsResponse(BaseModel):
    """Masked settings as returned by the API."""

    id: Optional[int] = None
    owner_type: OwnerType
    owner_id: int
    channels: dict[str, bool]
    email_config: Optional[dict[str, Any]] = None
    sms_config: Optional[dict[str, Any]] = None
    push_config: Optional[dict[str, Any]] = None
    calendar_config: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None


class TestNotificationResponse(BaseModel):
    success: bool
    message: str
    category: Optional[str] = None


class SendNotificationResponse(BaseModel):
    accepted: bool = True
    user_id: int
    schedule_id: int
    channels: list[str]


class NotificationLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    schedule_id: Optional[int] = None
    channel: str
    status: str
    attempts: int
    provider_response: Optional[str] = None
    error_category: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    changes: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class NotificationHealthResponse(BaseModel):
    """Health of the notification subsystem."""

    status: Literal["healthy", "degraded"]
    timestamp: datetime
    services: dict[str, str]
    scheduler: dict[str, Any] = Field(default_factory=dict)
