# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification sending and history API endpoints.

This module provides endpoints for:
- POST /send - Queue a lecture reminder for one user (202, super_admin)
- GET /logs - Delivery log entries of a user
- GET /audit - Audit entries written by a user

Sending is fire-and-forget: the request is acknowledged once the channel
list is validated and per-channel outcomes land in the delivery log.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from src.api.dependencies import (
    CurrentActor,
    get_notification_service,
    require_actor,
    require_super_admin,
)
from src.infrastructure.database import DatabaseError
from src.infrastructure.notifications import NotificationService, UnsupportedChannelError
from src.models.notification import (
    AuditLogResponse,
    NotificationLogResponse,
    SendNotificationRequest,
    SendNotificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_user(actor: CurrentActor, user_id: Optional[int]) -> int:
    """Default to the actor and reject foreign users for non-admins.

    Raises:
        HTTPException: 403 if the actor may not read that user's history.
    """
    if user_id is None:
        return actor.id
    if not actor.can_access_user(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to read another user's notifications",
        )
    return user_id


async def _send_in_background(service: NotificationService, data: SendNotificationRequest) -> None:
    try:
        await service.send(data.user_id, data.schedule_id, data.channels, data.payload)
    except Exception as e:
        logger.error(
            "Background send failed for user %s, schedule %s: %s",
            data.user_id,
            data.schedule_id,
            str(e),
            exc_info=True,
        )


@router.post(
    "/send",
    response_model=SendNotificationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send reminder",
    description="Queue a lecture reminder for one user over the given channels.",
)
async def send_notification(
    data: SendNotificationRequest,
    background_tasks: BackgroundTasks,
    actor: CurrentActor = Depends(require_super_admin),
    service: NotificationService = Depends(get_notification_service),
) -> SendNotificationResponse:
    """Validate the channel list and dispatch in the background.

    Sending uses the recipient's or the organization's provider
    credentials, so only super_admin may trigger it.

    Raises:
        HTTPException: 403 for non-admins, 400 on an unknown channel name.
    """
    try:
        channels = service.validate_channels(data.channels)
    except UnsupportedChannelError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    logger.info(
        "Send requested: user=%s, schedule=%s, channels=%s, by=%s",
        data.user_id,
        data.schedule_id,
        [c.value for c in channels],
        actor.id,
    )
    background_tasks.add_task(_send_in_background, service, data)

    return SendNotificationResponse(
        user_id=data.user_id,
        schedule_id=data.schedule_id,
        channels=[c.value for c in channels],
    )


@router.get(
    "/logs",
    response_model=list[NotificationLogResponse],
    summary="Delivery history",
    description="Most recent delivery log entries of a user, newest first.",
)
async def list_notification_logs(
    user_id: Optional[int] = Query(None, ge=1, description="User id; defaults to the acting user"),
    limit: int = Query(50, ge=1, le=500),
    actor: CurrentActor = Depends(require_actor),
    service: NotificationService = Depends(get_notification_service),
) -> list[NotificationLogResponse]:
    target = _resolve_user(actor, user_id)
    try:
        entries = await service.list_delivery_logs(target, limit)
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Delivery log unavailable",
        ) from e
    return [NotificationLogResponse.model_validate(entry) for entry in entries]


@router.get(
    "/audit",
    response_model=list[AuditLogResponse],
    summary="Audit history",
    description="Most recent audit entries written by a user, newest first.",
)
async def list_audit_logs(
    user_id: Optional[int] = Query(None, ge=1, description="User id; defaults to the acting user"),
    limit: int = Query(50, ge=1, le=500),
    actor: CurrentActor = Depends(require_actor),
    service: NotificationService = Depends(get_notification_service),
) -> list[AuditLogResponse]:
    target = _resolve_user(actor, user_id)
    try:
        entries = await service.list_audit_logs(target, limit)
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit log unavailable",
        ) from e
    return [AuditLogResponse.model_validate(entry) for entry in entries]
