# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification settings API endpoints.

This module provides endpoints for managing channel settings:
- GET / - Get masked settings of an owner
- PUT / - Create or update settings of an owner
- POST /test - Send a test notification through one channel
- GET /health - Notification subsystem health
- GET /diagnostics - Provider reachability checks

Access rules:
- Users read and write their own user-owned settings.
- super_admin may read and write any settings, including the
  organization-wide row, and run health and diagnostics.

Example:
    PUT /api/v1/settings/notifications
    {
        "owner_type": "user",
        "owner_id": 7,
        "channels": {"email": true},
        "email_config": {"provider": "gmail", "username": "a@b.c", "password": "app-pass"}
    }
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import (
    CurrentActor,
    get_notification_service,
    require_actor,
    require_super_admin,
)
from src.infrastructure.database import DatabaseError
from src.infrastructure.notifications import NotificationService
from src.infrastructure.notifications.settings_store import SettingsStoreError
from src.models.notification import (
    NotificationHealthResponse,
    NotificationSettingsResponse,
    OwnerType,
    TestNotificationRequest,
    TestNotificationResponse,
    UpdateNotificationSettingsRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_owner_access(actor: CurrentActor, owner_type: OwnerType, owner_id: int) -> None:
    """Reject access to settings the actor does not own.

    Raises:
        HTTPException: 403 if access is not allowed.
    """
    if actor.is_super_admin:
        return
    if owner_type == OwnerType.USER and owner_id == actor.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Not allowed to access these notification settings",
    )


def _database_unavailable(e: DatabaseError) -> HTTPException:
    logger.error("Notification settings storage failure: %s", e.message)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Settings storage unavailable",
    )


@router.get(
    "",
    response_model=Optional[NotificationSettingsResponse],
    summary="Get notification settings",
    description="Get an owner's channel settings with secrets masked. Returns null when none exist.",
)
async def get_notification_settings(
    owner_type: OwnerType = Query(OwnerType.USER, description="Settings owner type"),
    owner_id: Optional[int] = Query(None, ge=1, description="Owner id; defaults to the acting user"),
    actor: CurrentActor = Depends(require_actor),
    service: NotificationService = Depends(get_notification_service),
) -> Optional[NotificationSettingsResponse]:
    """Get masked notification settings.

    Args:
        owner_type: Owner type.
        owner_id: Owner id, defaulting to the acting user.
        actor: Acting user.
        service: Notification service.

    Returns:
        Masked settings, or None when the owner has no settings.
    """
    if owner_id is None:
        owner_id = actor.id
    _check_owner_access(actor, owner_type, owner_id)

    try:
        view = await service.get_masked_settings(owner_type.value, owner_id)
    except DatabaseError as e:
        raise _database_unavailable(e) from e

    if view is None:
        return None
    return NotificationSettingsResponse.model_validate(view)


@router.put(
    "",
    response_model=NotificationSettingsResponse,
    summary="Update notification settings",
    description="Merge channel flags and configuration into an owner's settings.",
)
async def update_notification_settings(
    data: UpdateNotificationSettingsRequest,
    actor: CurrentActor = Depends(require_actor),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationSettingsResponse:
    """Create or update notification settings.

    Secrets in the request are encrypted before they are stored and
    every effective change is written to the audit trail.

    Raises:
        HTTPException: 403 on foreign settings, 400 on a bad owner,
            503 if storage fails.
    """
    _check_owner_access(actor, data.owner_type, data.owner_id)

    logger.info(
        "Updating notification settings: owner=%s:%s, by=%s",
        data.owner_type.value,
        data.owner_id,
        actor.id,
    )

    try:
        view = await service.update_settings(
            data.owner_type.value,
            data.owner_id,
            data.to_settings_patch(),
            actor.id,
        )
    except SettingsStoreError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except DatabaseError as e:
        raise _database_unavailable(e) from e

    return NotificationSettingsResponse.model_validate(view)


@router.post(
    "/test",
    response_model=TestNotificationResponse,
    summary="Test a channel",
    description="Send a sample lecture reminder through one channel using the actor's settings.",
)
async def test_notification_channel(
    data: TestNotificationRequest,
    actor: CurrentActor = Depends(require_actor),
    service: NotificationService = Depends(get_notification_service),
) -> TestNotificationResponse:
    """Send a test notification.

    Provider failures are reported in the response body, not as HTTP
    errors.
    """
    try:
        outcome = await service.test_channel(data.provider, data.address(), actor.id)
    except DatabaseError as e:
        raise _database_unavailable(e) from e

    return TestNotificationResponse(
        success=outcome.success,
        message=outcome.message,
        category=outcome.category,
    )


@router.get(
    "/health",
    response_model=NotificationHealthResponse,
    summary="Notification health",
    description="Database reachability, channel availability and scheduler state.",
)
async def notification_health(
    _: CurrentActor = Depends(require_super_admin),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationHealthResponse:
    health = await service.health_check()
    return NotificationHealthResponse.model_validate(health)


@router.get(
    "/diagnostics",
    summary="Provider diagnostics",
    description="Check TCP reachability of each provider endpoint and the database.",
)
async def notification_diagnostics(
    _: CurrentActor = Depends(require_super_admin),
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    return await service.run_diagnostics()
