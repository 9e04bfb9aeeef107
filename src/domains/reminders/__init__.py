# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Lecture reminders domain package.

This package provides the periodic scan that turns upcoming schedules
into notification dispatches:
- ScheduleDirectory: read-only lookup of schedules, students, preferences
- LectureReminderScanner: the per-tick scan driven by the scheduler
"""

from src.domains.reminders.directory import (
    Recipient,
    ScheduleDirectory,
    ScheduleEvent,
    SqlScheduleDirectory,
    resolve_preferences,
)
from src.domains.reminders.scanner import (
    LectureReminderScanner,
    TickResult,
    build_payload,
    build_reminder_scanner,
    compute_windows,
)

__all__ = [
    "LectureReminderScanner",
    "Recipient",
    "ScheduleDirectory",
    "ScheduleEvent",
    "SqlScheduleDirectory",
    "TickResult",
    "build_payload",
    "build_reminder_scanner",
    "compute_windows",
    "resolve_preferences",
]
