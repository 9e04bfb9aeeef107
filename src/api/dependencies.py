# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Initialize and close the database engine
- Identify the acting user
- Get the notification service

Authentication happens upstream; the gateway forwards the acting user
in the ``X-User-Id`` and ``X-User-Role`` headers.

Example:
    @router.get("/logs")
    async def list_logs(
        actor: CurrentActor = Depends(require_actor),
        service: NotificationService = Depends(get_notification_service),
    ):
        ...
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from src.core.config import get_settings
from src.infrastructure.database import close_database, init_database
from src.infrastructure.notifications.service import (
    NotificationService,
    get_notification_service as _get_notification_service,
)
from src.utils.logging import bind_actor_context

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"


async def init_db() -> None:
    """Initialize the database engine."""
    await init_database(get_settings())


async def close_db() -> None:
    """Dispose of the database engine."""
    await close_database()


@dataclass(frozen=True)
class CurrentActor:
    """The user on whose behalf a request is made.

    Attributes:
        id: User id.
        role: Role code, e.g. ``student``, ``lecturer`` or ``super_admin``.
    """

    id: int
    role: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN_ROLE

    def can_access_user(self, user_id: int) -> bool:
        """Check whether the actor may read or change another user's data."""
        return self.is_super_admin or self.id == user_id


async def require_actor(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> CurrentActor:
    """Require an acting user.

    The actor is bound to the logging context of the request.

    Args:
        x_user_id: Value of the X-User-Id header.
        x_user_role: Value of the X-User-Role header.

    Returns:
        CurrentActor.

    Raises:
        HTTPException: If the user id header is missing or not a positive integer.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        user_id = 0
    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    actor = CurrentActor(id=user_id, role=x_user_role or None)
    bind_actor_context(actor.id, actor.role)
    return actor


def require_super_admin(
    actor: Annotated[CurrentActor, Depends(require_actor)],
) -> CurrentActor:
    """Require a super admin.

    Raises:
        HTTPException: If the actor is not a super admin.
    """
    if not actor.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return actor


def get_notification_service() -> NotificationService:
    """Get the notification service singleton."""
    return _get_notification_service()

