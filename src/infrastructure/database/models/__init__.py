# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models.

Importing this package registers every table on ``Base.metadata``.
"""

from src.infrastructure.database.models.academic import Course, Enrollment, Schedule, User
from src.infrastructure.database.models.base import Base, JSONType, TimestampMixin
from src.infrastructure.database.models.notification import (
    CHANNEL_CONFIG_COLUMNS,
    AuditLog,
    NotificationLog,
    NotificationSettings,
)

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "User",
    "Course",
    "Schedule",
    "Enrollment",
    "CHANNEL_CONFIG_COLUMNS",
    "NotificationSettings",
    "NotificationLog",
    "AuditLog",
]
