# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific area.

Modules:
    notification_settings: Channel settings, channel tests, health and diagnostics.
    notifications: Sending reminders and reading delivery and audit history.
"""

from fastapi import APIRouter

from src.api.v1 import notification_settings, notifications

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(
    notification_settings.router,
    prefix="/settings/notifications",
    tags=["Notification Settings"],
)
router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"],
)

__all__ = ["router"]
