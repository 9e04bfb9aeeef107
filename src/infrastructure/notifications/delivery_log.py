# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Delivery log and audit trail persistence.

DeliveryLog records one ``notifications_log`` row per (user, schedule,
channel) attempt. A row is created as ``pending`` before the provider is
called and moved exactly once to ``sent`` or ``failed`` afterwards, so a
crash in between leaves a visible pending row.

For a scheduled reminder the triple is unique: once any row exists,
whatever its status, the channel is not attempted again. The unique
constraint on the table settles races between concurrent dispatches.

AuditTrail appends change records for notification settings. Writing an
audit entry is best-effort: failures are logged and never propagate to
the settings update that triggered them.

Every operation opens its own short-lived session.
"""

import logging
import re
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.connection import get_session
from src.infrastructure.database.models import AuditLog, NotificationLog
from src.infrastructure.notifications.channels.base import ChannelType, DeliveryStatus
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

REDACTED = "[REDACTED]"
SENSITIVE_FIELD_PATTERN = re.compile(r"password|token|secret|refresh|encrypted", re.IGNORECASE)

DEFAULT_LIST_LIMIT = 50


class DeliveryLogError(Exception):
    """Base exception for delivery log operations."""


class LogEntryNotFoundError(DeliveryLogError):
    """The referenced log entry does not exist."""

    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Notification log entry not found: {entry_id}")
        self.entry_id = entry_id


class InvalidTransitionError(DeliveryLogError):
    """A status change that does not start from ``pending``."""

    def __init__(self, entry_id: int, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move log entry {entry_id} from '{current}' to '{requested}'"
        )
        self.entry_id = entry_id
        self.current = current
        self.requested = requested


def redact_diff(diff: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Replace both sides of every secret-like field with a marker.

    Args:
        diff: ``{field_path: {"from": old, "to": new}}``.

    Returns:
        A new diff safe to persist.
    """
    redacted: dict[str, dict[str, Any]] = {}
    for path, change in diff.items():
        if SENSITIVE_FIELD_PATTERN.search(path):
            redacted[path] = {"from": REDACTED, "to": REDACTED}
        else:
            redacted[path] = dict(change)
    return redacted


class DeliveryLog:
    """Persistence of per-channel delivery attempts.

    Args:
        session_factory: Returns an async context manager yielding a session
            that commits on exit.
    """

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    async def record_attempt(
        self,
        user_id: int,
        schedule_id: Optional[int],
        channel: ChannelType | str,
    ) -> Optional[int]:
        """Create a pending entry before a send.

        Returns:
            The new entry ID, or None if another dispatch already holds
            the entry for this user, schedule and channel.
        """
        async with self._session_factory() as session:
            entry = NotificationLog(
                user_id=user_id,
                schedule_id=schedule_id,
                channel=ChannelType(channel).value,
                status=DeliveryStatus.PENDING.value,
                attempts=0,
            )
            session.add(entry)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    "Log entry for user %s schedule %s %s already exists",
                    user_id,
                    schedule_id,
                    ChannelType(channel).value,
                )
                return None
            return entry.id

    async def complete_attempt(
        self,
        entry_id: int,
        outcome: DeliveryStatus | str,
        provider_response: Optional[str],
        error_category: Optional[str] = None,
    ) -> NotificationLog:
        """Move a pending entry to its terminal state.

        Args:
            entry_id: Entry returned by :meth:`record_attempt`.
            outcome: ``sent`` or ``failed``.
            provider_response: Provider identifier or failure text.
            error_category: Failure category for failed attempts.

        Returns:
            The updated entry.

        Raises:
            LogEntryNotFoundError: If the entry does not exist.
            InvalidTransitionError: If the entry is not pending or the
                outcome is not terminal.
        """
        outcome = DeliveryStatus(outcome)

        async with self._session_factory() as session:
            entry = await session.get(NotificationLog, entry_id, with_for_update=True)
            if entry is None:
                raise LogEntryNotFoundError(entry_id)

            if entry.status != DeliveryStatus.PENDING.value or outcome == DeliveryStatus.PENDING:
                raise InvalidTransitionError(entry_id, entry.status, outcome.value)

            entry.status = outcome.value
            entry.attempts = (entry.attempts or 0) + 1
            entry.last_attempt_at = utc_now()
            entry.provider_response = provider_response
            entry.error_category = error_category if outcome == DeliveryStatus.FAILED else None
            await session.flush()
            return entry

    async def already_attempted(
        self,
        user_id: int,
        schedule_id: Optional[int],
        channel: ChannelType | str,
    ) -> bool:
        """Check whether a reminder was already handled on a channel.

        Pending, sent and failed entries all count; failed deliveries are
        not resent on later ticks.
        """
        if schedule_id is None:
            return False

        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationLog.id)
                .where(
                    NotificationLog.user_id == user_id,
                    NotificationLog.schedule_id == schedule_id,
                    NotificationLog.channel == ChannelType(channel).value,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def list_for_user(self, user_id: int, limit: int = DEFAULT_LIST_LIMIT) -> list[NotificationLog]:
        """Get the most recent delivery attempts of a user, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationLog)
                .where(NotificationLog.user_id == user_id)
                .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())


class AuditTrail:
    """Append-only change history of notification settings."""

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory

    async def append_audit(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        diff: dict[str, dict[str, Any]],
        actor_id: int,
    ) -> bool:
        """Append an audit entry; secret-like fields are always redacted.

        Returns:
            True if the entry was written, False if writing failed.
        """
        try:
            async with self._session_factory() as session:
                session.add(
                    AuditLog(
                        user_id=actor_id,
                        action=action,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        changes=redact_diff(diff),
                    )
                )
        except Exception as e:
            logger.error(
                "Failed to write audit entry %s %s:%s: %s",
                action,
                entity_type,
                entity_id,
                str(e),
            )
            return False
        return True

    async def list_audit_for_user(self, actor_id: int, limit: int = DEFAULT_LIST_LIMIT) -> list[AuditLog]:
        """Get the most recent audit entries written by a user."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLog)
                .where(AuditLog.user_id == actor_id)
                .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
