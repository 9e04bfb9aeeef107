# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification settings, delivery log and audit log models.

JSON columns are always reassigned as new dicts, never mutated in place,
so that SQLAlchemy detects the change without MutableDict tracking.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, JSONType, TimestampMixin

CHANNEL_CONFIG_COLUMNS: dict[str, str] = {
    "email": "email_config",
    "sms": "sms_config",
    "push": "push_config",
    "calendar": "calendar_config",
}


class NotificationSettings(Base, TimestampMixin):
    """Channel switches and provider credentials of one owner.

    An owner is either the organization or an individual user. Secret
    values inside the ``*_config`` columns are stored only in their
    ``encrypted_*`` form.
    """

    __tablename__ = "notification_settings"
    __table_args__ = (
        UniqueConstraint("owner_type", "owner_id", name="uq_notification_settings_owner"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_type: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    channels: Mapped[dict[str, bool]] = mapped_column(JSONType, nullable=False, default=dict)
    email_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    sms_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    push_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    calendar_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    def get_config(self, channel: str) -> Optional[dict[str, Any]]:
        """Return the stored config of a channel, or None if never configured."""
        column = CHANNEL_CONFIG_COLUMNS.get(channel)
        if column is None:
            return None
        return getattr(self, column)

    def set_config(self, channel: str, config: Optional[dict[str, Any]]) -> None:
        """Replace the stored config of a channel."""
        setattr(self, CHANNEL_CONFIG_COLUMNS[channel], dict(config) if config is not None else None)

    def is_channel_enabled(self, channel: str) -> bool:
        return bool((self.channels or {}).get(channel, False))

    def __repr__(self) -> str:
        return f"<NotificationSettings {self.owner_type}:{self.owner_id}>"


class NotificationLog(Base):
    """One delivery attempt for a (user, schedule, channel) triple.

    Rows without a schedule (ad-hoc sends) are not constrained.
    """

    __tablename__ = "notifications_log"
    __table_args__ = (
        UniqueConstraint("user_id", "schedule_id", "channel", name="uq_notifications_log_attempt"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    schedule_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    provider_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_category: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<NotificationLog {self.id} {self.channel}:{self.status}>"


class AuditLog(Base):
    """Append-only change record for notification settings."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    changes: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
