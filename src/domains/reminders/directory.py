# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-only lookups of schedules, students and channel preferences.

Schedules, users and enrollments belong to the academic records service.
The scanner reads them only through the ScheduleDirectory interface, and
receives plain dataclasses rather than ORM rows.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Optional

from sqlalchemy import select

from src.infrastructure.database.connection import get_session
from src.infrastructure.database.models import Enrollment, Schedule, User
from src.infrastructure.notifications.channels.base import ChannelType
from src.infrastructure.notifications.delivery_log import SessionFactory

UNKNOWN_COURSE = "Unknown Course"
UNKNOWN_CODE = "Unknown Code"


def resolve_preferences(raw: Optional[dict[str, Any]]) -> dict[str, bool]:
    """Normalize stored channel preferences.

    Accepts both ``{"email": true}`` and ``{"emailEnabled": true}`` keys.
    Channels without a stored value are enabled.
    """
    raw = raw or {}
    preferences: dict[str, bool] = {}
    for channel in ChannelType:
        value = raw.get(channel.value, raw.get(f"{channel.value}Enabled", True))
        preferences[channel.value] = bool(value)
    return preferences


@dataclass
class Recipient:
    """A person who receives reminders.

    Attributes:
        id: User ID.
        first_name: First name, used in greetings.
        last_name: Last name.
        email: Email address.
        phone: Phone number, if any.
        device_token: FCM registration token, if any.
        role: ``lecturer`` or ``student``.
        preferences: Enabled flag per channel.
    """

    id: int
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str] = None
    device_token: Optional[str] = None
    role: str = "student"
    preferences: dict[str, bool] = field(default_factory=lambda: resolve_preferences(None))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def enabled_channels(self) -> list[str]:
        return [channel for channel, enabled in self.preferences.items() if enabled]

    @classmethod
    def from_user(cls, user: User, role: Optional[str] = None) -> "Recipient":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone,
            device_token=user.device_token,
            role=role or user.role,
            preferences=resolve_preferences(user.notification_preferences),
        )


@dataclass
class ScheduleEvent:
    """A lecture due within the scan window."""

    id: int
    date: date
    time: time
    venue: str
    course_title: str
    course_code: str
    course_id: Optional[int] = None
    lecturer: Optional[Recipient] = None

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleEvent":
        course = schedule.course
        return cls(
            id=schedule.id,
            date=schedule.date,
            time=schedule.time,
            venue=schedule.venue,
            course_title=(course.title if course else schedule.course_title) or UNKNOWN_COURSE,
            course_code=(course.code if course else schedule.course_code) or UNKNOWN_CODE,
            course_id=schedule.course_id,
            lecturer=Recipient.from_user(schedule.lecturer, role="lecturer") if schedule.lecturer else None,
        )


class ScheduleDirectory(ABC):
    """Lookup interface the scanner depends on."""

    @abstractmethod
    async def find_schedules_in_window(
        self,
        day: date,
        start_time: time,
        end_time: time,
    ) -> list[ScheduleEvent]:
        """Schedules on ``day`` with ``start_time <= time <= end_time``."""
        ...

    @abstractmethod
    async def find_students_by_course(self, course_id: int) -> list[Recipient]:
        ...

    @abstractmethod
    async def get_channel_preferences(self, user_id: int) -> dict[str, bool]:
        ...


class SqlScheduleDirectory(ScheduleDirectory):
    """ScheduleDirectory backed by the academic tables."""

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    async def find_schedules_in_window(
        self,
        day: date,
        start_time: time,
        end_time: time,
    ) -> list[ScheduleEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Schedule)
                .where(
                    Schedule.date == day,
                    Schedule.time >= start_time,
                    Schedule.time <= end_time,
                )
                .order_by(Schedule.time, Schedule.id)
            )
            return [ScheduleEvent.from_schedule(s) for s in result.scalars().all()]

    async def find_students_by_course(self, course_id: int) -> list[Recipient]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User)
                .join(Enrollment, Enrollment.student_id == User.id)
                .where(Enrollment.course_id == course_id)
                .order_by(User.id)
            )
            return [Recipient.from_user(u, role="student") for u in result.scalars().unique().all()]

    async def get_channel_preferences(self, user_id: int) -> dict[str, bool]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User.notification_preferences).where(User.id == user_id)
            )
            return resolve_preferences(result.scalar_one_or_none())
