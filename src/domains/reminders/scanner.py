# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic scan for lectures about to start.

On every tick the scanner looks for schedules starting between now and
now + lookahead (wall clock in the configured timezone), then dispatches a
reminder to the lecturer and every enrolled student of each schedule.

A window that crosses midnight is queried as two ranges: the rest of
today and the start of tomorrow.

Ticks never overlap: a tick that fires while the previous one is still
running is skipped. Each tick is bounded by a timeout, and errors stay
local: a failing recipient does not affect the others, and a failing
tick does not affect the next one.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Callable, Optional
from uuid import uuid4

from src.domains.reminders.directory import (
    Recipient,
    ScheduleDirectory,
    ScheduleEvent,
    SqlScheduleDirectory,
)
from src.infrastructure.notifications.channels.base import NotificationPayload
from src.infrastructure.notifications.dispatcher import NotificationDispatcher
from src.utils.datetime import zoned_now
from src.utils.logging import bind_context, clear_context, get_logger

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = get_logger(__name__)

END_OF_DAY = time(23, 59, 59)

Window = tuple[date, time, time]


def compute_windows(now: datetime, lookahead: timedelta) -> list[Window]:
    """Split ``[now, now + lookahead]`` into per-day time ranges.

    Both ends are truncated to the minute.

    Returns:
        One ``(day, start, end)`` range, or two when the window crosses
        midnight.
    """
    start = now.replace(second=0, microsecond=0)
    end = (now + lookahead).replace(second=0, microsecond=0)

    if end.date() == start.date():
        return [(start.date(), start.time(), end.time())]

    return [
        (start.date(), start.time(), END_OF_DAY),
        (end.date(), time(0, 0), end.time()),
    ]


@dataclass
class TickResult:
    """Summary of one scanner tick."""

    tick_id: str = field(default_factory=lambda: uuid4().hex[:12])
    schedules: int = 0
    dispatches: int = 0
    errors: int = 0
    skipped: bool = False
    timed_out: bool = False


class LectureReminderScanner:
    """Finds due lectures and dispatches reminders for them.

    Args:
        directory: Lookup of schedules, students and preferences.
        dispatcher: Notification dispatcher.
        lookahead_minutes: Window length.
        timezone: IANA zone of the schedules' wall-clock times.
        tick_timeout: Seconds a tick may run before it is cancelled.
        clock: Returns the current aware time; defaults to the zone's now.
    """

    def __init__(
        self,
        directory: ScheduleDirectory,
        dispatcher: NotificationDispatcher,
        lookahead_minutes: int = 30,
        timezone: str = "Africa/Lagos",
        tick_timeout: float = 240.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._directory = directory
        self._dispatcher = dispatcher
        self._lookahead = timedelta(minutes=lookahead_minutes)
        self._timezone = timezone
        self._tick_timeout = tick_timeout
        self._clock = clock or (lambda: zoned_now(timezone))
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def tick(self) -> TickResult:
        """Run one scan.

        Returns:
            Counters of what the tick did. Never raises on scan errors.
        """
        result = TickResult()
        if self._run_lock.locked():
            result.skipped = True
            logger.warning("reminder_tick_skipped", reason="previous tick still running")
            return result

        async with self._run_lock:
            bind_context(tick_id=result.tick_id)
            try:
                await asyncio.wait_for(self._scan(result), timeout=self._tick_timeout)
            except asyncio.TimeoutError:
                result.timed_out = True
                logger.error("reminder_tick_timed_out", timeout=self._tick_timeout)
            except Exception as e:
                result.errors += 1
                logger.error("reminder_tick_failed", error=str(e), exc_info=True)
            finally:
                logger.info(
                    "reminder_tick_finished",
                    schedules=result.schedules,
                    dispatches=result.dispatches,
                    errors=result.errors,
                )
                clear_context()
        return result

    async def _scan(self, result: TickResult) -> None:
        now = self._clock()
        for day, start, end in compute_windows(now, self._lookahead):
            schedules = await self._directory.find_schedules_in_window(day, start, end)
            logger.debug(
                "reminder_window_scanned",
                day=day.isoformat(),
                start=start.isoformat(),
                end=end.isoformat(),
                found=len(schedules),
            )
            for schedule in schedules:
                result.schedules += 1
                await self._process_schedule(schedule, result)

    async def _process_schedule(self, schedule: ScheduleEvent, result: TickResult) -> None:
        """Remind the lecturer and all enrolled students of one schedule."""
        recipients: list[Recipient] = []
        if schedule.lecturer is not None:
            recipients.append(schedule.lecturer)
        else:
            logger.warning("schedule_without_lecturer", schedule_id=schedule.id)

        if schedule.course_id is not None:
            try:
                recipients.extend(await self._directory.find_students_by_course(schedule.course_id))
            except Exception as e:
                result.errors += 1
                logger.error(
                    "student_lookup_failed",
                    schedule_id=schedule.id,
                    course_id=schedule.course_id,
                    error=str(e),
                )

        instructor = schedule.lecturer.full_name if schedule.lecturer else None
        outcomes = await asyncio.gather(
            *(self._remind(schedule, recipient, instructor) for recipient in recipients)
        )
        result.dispatches += sum(1 for ok in outcomes if ok)
        result.errors += sum(1 for ok in outcomes if not ok)

    async def _remind(
        self,
        schedule: ScheduleEvent,
        recipient: Recipient,
        instructor: Optional[str],
    ) -> bool:
        """Dispatch to one recipient; errors abort only this recipient."""
        try:
            preferences = await self._directory.get_channel_preferences(recipient.id)
            channels = [channel for channel, enabled in preferences.items() if enabled]
            if not channels:
                logger.debug("recipient_opted_out", user_id=recipient.id)
                return True
            await self._dispatcher.dispatch(
                recipient.id,
                schedule.id,
                channels,
                build_payload(schedule, recipient, instructor),
            )
            return True
        except Exception as e:
            logger.error(
                "reminder_dispatch_failed",
                user_id=recipient.id,
                schedule_id=schedule.id,
                error=str(e),
            )
            return False


def build_payload(
    schedule: ScheduleEvent,
    recipient: Recipient,
    instructor: Optional[str] = None,
) -> NotificationPayload:
    """Build the normalized reminder for one recipient."""
    return NotificationPayload(
        user_id=recipient.id,
        schedule_id=schedule.id,
        course_id=schedule.course_id,
        course_title=schedule.course_title,
        course_code=schedule.course_code,
        date=schedule.date.isoformat(),
        time=schedule.time.strftime("%H:%M"),
        venue=schedule.venue,
        recipient_name=recipient.first_name,
        recipient_email=recipient.email,
        recipient_phone=recipient.phone,
        device_token=recipient.device_token,
        instructor_name=instructor,
        role=recipient.role,
    )


def build_reminder_scanner(
    settings: "Settings",
    dispatcher: NotificationDispatcher,
    directory: Optional[ScheduleDirectory] = None,
) -> LectureReminderScanner:
    """Wire a scanner from the reminder settings.

    Args:
        settings: Application settings.
        dispatcher: Dispatcher shared with the HTTP layer.
        directory: Schedule lookup; defaults to the SQL directory.
    """
    return LectureReminderScanner(
        directory=directory or SqlScheduleDirectory(),
        dispatcher=dispatcher,
        lookahead_minutes=settings.reminder.lookahead_minutes,
        timezone=settings.reminder.timezone,
        tick_timeout=settings.reminder.tick_timeout_seconds,
    )
