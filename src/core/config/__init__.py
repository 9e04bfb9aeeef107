# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the lecture reminder backend.

Settings are Pydantic-based and loaded from environment variables.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.reminder.lookahead_minutes
    30
"""

from src.core.config.settings import (
    DEFAULT_ENCRYPTION_KEY,
    APISettings,
    CORSSettings,
    DatabaseSettings,
    EncryptionSettings,
    NotifySettings,
    ReminderSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "DEFAULT_ENCRYPTION_KEY",
    # Subsettings
    "DatabaseSettings",
    "EncryptionSettings",
    "ReminderSettings",
    "NotifySettings",
    "CORSSettings",
    "APISettings",
]
