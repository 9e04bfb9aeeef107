# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic in-process jobs.

Uses APScheduler's AsyncIOScheduler to run coroutine functions on the
application event loop. Every job is registered with ``max_instances=1``
and ``coalesce=True``: a run that is still going when the next one is due
makes APScheduler skip the overlap, and missed runs collapse into one.

Example:
    from src.infrastructure.background.scheduler import get_scheduler

    scheduler = get_scheduler()

    # Add interval job (runs every minute)
    scheduler.add_interval_job(
        name="Lecture Reminder Scan",
        func=scanner.tick,
        seconds=60,
    )

    # Start scheduler
    await scheduler.start()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """Configuration and statistics of a scheduled job.

    Attributes:
        id: Unique job identifier.
        name: Human-readable job name.
        func: Coroutine function to await on each run.
        interval_seconds: Seconds between runs.
        start_immediately: Run once as soon as the scheduler starts.
        last_run: Last run timestamp.
        run_count: Total number of runs.
        error_count: Number of failed runs.
    """

    name: str
    func: JobFunc
    interval_seconds: int
    id: str = field(default_factory=lambda: str(uuid4()))
    start_immediately: bool = False
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class ReminderScheduler:
    """Runs registered coroutine jobs at fixed intervals.

    Jobs may be added before or after :meth:`start`; jobs added before are
    handed to APScheduler when it starts.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_interval_job(
        self,
        name: str,
        func: JobFunc,
        seconds: int,
        start_immediately: bool = False,
    ) -> ScheduledJob:
        """Add an interval-scheduled job.

        Args:
            name: Job name.
            func: Coroutine function awaited on each run.
            seconds: Interval in seconds.
            start_immediately: Run immediately on start.

        Returns:
            Created ScheduledJob.

        Raises:
            ValueError: If the interval is not positive.
        """
        if seconds <= 0:
            raise ValueError(f"Interval must be positive, got {seconds}")

        job = ScheduledJob(
            name=name,
            func=func,
            interval_seconds=seconds,
            start_immediately=start_immediately,
        )
        self._jobs[job.id] = job

        if self._scheduler is not None:
            self._register(job)

        logger.info("Added interval job: %s (every %ds)", name, seconds)
        return job

    def _register(self, job: ScheduledJob) -> None:
        # next_run_time=None would add the job paused
        extra: dict[str, Any] = {}
        if job.start_immediately:
            extra["next_run_time"] = utc_now()

        self._scheduler.add_job(
            self._execute_job,
            trigger=IntervalTrigger(seconds=job.interval_seconds),
            args=[job.id],
            id=job.id,
            name=job.name,
            max_instances=1,
            coalesce=True,
            **extra,
        )

    async def _execute_job(self, job_id: str) -> None:
        """Execute a scheduled job and record its outcome.

        Args:
            job_id: ID of the job to execute.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return

        logger.debug("Executing scheduled job: %s", job.name)

        try:
            await job.func()
            job.run_count += 1
        except Exception as e:
            job.error_count += 1
            logger.error("Scheduled job %s failed: %s", job.name, str(e), exc_info=True)
        finally:
            job.last_run = utc_now()

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler()
        for job in self._jobs.values():
            self._register(job)
        self._scheduler.start()
        self._running = True

        logger.info("Reminder scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Reminder scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self._running,
            "job_count": len(self._jobs),
            "total_runs": sum(j.run_count for j in self._jobs.values()),
            "total_errors": sum(j.error_count for j in self._jobs.values()),
            "jobs": [j.to_dict() for j in self._jobs.values()],
        }


# Singleton instance
_scheduler: ReminderScheduler | None = None


def get_scheduler() -> ReminderScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ReminderScheduler()
    return _scheduler


async def start_scheduler() -> ReminderScheduler:
    """Start the singleton scheduler.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    await scheduler.start()
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler and drop the singleton."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
