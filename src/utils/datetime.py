# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the lecture reminder backend.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. Lecture schedules are wall-clock date/time pairs in the configured zone
3. All Python datetimes handled here are timezone-aware

Usage:
------
    from src.utils.datetime import utc_now, zoned_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)

    # For comparing against schedule wall-clock fields
    now = zoned_now("Africa/Lagos")
"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def zoned_now(tz_name: str) -> datetime:
    """Get the current time in a named timezone.

    Args:
        tz_name: IANA timezone name (e.g. "Africa/Lagos").

    Returns:
        Timezone-aware datetime in the given zone.
    """
    return datetime.now(ZoneInfo(tz_name))


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def combine_wall_clock(day: date | str, at: time | str, tz_name: str) -> datetime:
    """Combine a schedule's date and time fields into an aware datetime.

    Args:
        day: Date or ISO date string ("2025-03-14").
        at: Time or ISO time string ("09:30" or "09:30:00").
        tz_name: Zone the wall-clock values are written in.

    Returns:
        Timezone-aware datetime.

    Raises:
        ValueError: If the strings are not ISO formatted.
    """
    if isinstance(day, str):
        day = date.fromisoformat(day)
    if isinstance(at, str):
        at = time.fromisoformat(at)
    return datetime.combine(day, at, tzinfo=ZoneInfo(tz_name))

