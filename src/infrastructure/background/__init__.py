# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background job scheduling.

The lecture reminder scanner runs as an APScheduler interval job inside
the API process.
"""

from src.infrastructure.background.scheduler import (
    ReminderScheduler,
    ScheduledJob,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "ReminderScheduler",
    "ScheduledJob",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
