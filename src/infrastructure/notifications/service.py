# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification service: the operations offered to the HTTP layer.

This service ties together the settings store, the dispatcher, the
delivery log and the audit trail:

1. Reading settings (masked) and merging updates
2. Test-sending a single channel with the caller's stored config
3. Dispatching reminders
4. Listing delivery and audit history
5. Health and network diagnostics
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Optional

from src.infrastructure.database.connection import check_database_connection
from src.infrastructure.database.models import AuditLog, NotificationLog
from src.infrastructure.notifications.channels import (
    BaseChannel,
    CalendarChannel,
    ChannelType,
    EmailChannel,
    NotificationPayload,
    PushChannel,
    SMSChannel,
)
from src.infrastructure.notifications.delivery_log import AuditTrail, DeliveryLog
from src.infrastructure.notifications.dispatcher import NotificationDispatcher, parse_channels
from src.infrastructure.notifications.errors import describe_category
from src.infrastructure.notifications.settings_store import ChannelSettingsStore
from src.infrastructure.security.vault import SecretVault, get_secret_vault
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.core.config.settings import Settings
    from src.models.notification import NotificationSettingsPatch

logger = logging.getLogger(__name__)

# Provider endpoints checked by the network diagnostics
DIAGNOSTIC_TARGETS: dict[str, tuple[str, int]] = {
    ChannelType.EMAIL.value: ("smtp.gmail.com", 465),
    ChannelType.SMS.value: ("api.twilio.com", 443),
    ChannelType.PUSH.value: ("fcm.googleapis.com", 443),
    ChannelType.CALENDAR.value: ("www.googleapis.com", 443),
}

_TEST_ADDRESS_LABELS = {
    ChannelType.SMS: "Test phone number is required for SMS testing",
    ChannelType.EMAIL: "Test email address is required for email testing",
    ChannelType.PUSH: "Test device token is required for push notification testing",
    ChannelType.CALENDAR: "Test attendee email is required for calendar testing",
}


@dataclass
class ChannelTestOutcome:
    """Result of a single-channel test send."""

    success: bool
    message: str
    category: Optional[str] = None


class NotificationService:
    """Service offering settings, sending and history operations.

    Args:
        settings_store: Channel settings store.
        dispatcher: Reminder dispatcher; also owns the channel registry.
        delivery_log: Delivery log.
        audit_trail: Audit trail.
        database_check: Coroutine returning True when the database answers.
        scheduler_stats: Callable returning scheduler statistics.
        diagnostics_timeout: Seconds allowed for each diagnostics check.
    """

    def __init__(
        self,
        settings_store: ChannelSettingsStore,
        dispatcher: NotificationDispatcher,
        delivery_log: DeliveryLog,
        audit_trail: AuditTrail,
        database_check: Callable[[], Awaitable[bool]] = check_database_connection,
        scheduler_stats: Optional[Callable[[], dict[str, Any]]] = None,
        diagnostics_timeout: float = 5.0,
    ) -> None:
        self._store = settings_store
        self._dispatcher = dispatcher
        self._log = delivery_log
        self._audit = audit_trail
        self._database_check = database_check
        self._scheduler_stats = scheduler_stats
        self._diagnostics_timeout = diagnostics_timeout

    @property
    def settings_store(self) -> ChannelSettingsStore:
        return self._store

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    async def get_masked_settings(self, owner_type: str, owner_id: int) -> Optional[dict[str, Any]]:
        """Get an owner's settings with secrets masked, or None."""
        settings = await self._store.get(owner_type, owner_id)
        if settings is None:
            return None
        return self._store.to_masked_view(settings)

    async def update_settings(
        self,
        owner_type: str,
        owner_id: int,
        patch: "NotificationSettingsPatch",
        actor_id: int,
    ) -> dict[str, Any]:
        """Merge a patch into an owner's settings and return the masked result."""
        settings = await self._store.upsert(owner_type, owner_id, patch, actor_id)
        return self._store.to_masked_view(settings)

    async def test_channel(
        self,
        channel: ChannelType | str,
        address: Optional[str],
        actor_id: int,
    ) -> ChannelTestOutcome:
        """Send a sample reminder through one channel.

        Uses the settings that apply to the acting user (their own row or
        the organization row).

        Args:
            channel: Channel to test.
            address: Test recipient address.
            actor_id: Acting user.

        Returns:
            ChannelTestOutcome with a category-mapped message on failure.
        """
        channel = ChannelType(channel)
        if not address:
            return ChannelTestOutcome(False, _TEST_ADDRESS_LABELS[channel])

        settings = await self._store.resolve_for_user(actor_id)
        if settings is None:
            return ChannelTestOutcome(False, "No notification settings found for this user")

        config = settings.get_config(channel.value)
        if not config:
            return ChannelTestOutcome(False, f"No configuration found for {channel.value}")

        provider = self._dispatcher.channels.get(channel)
        if provider is None:
            return ChannelTestOutcome(False, "Unsupported provider")

        result = await provider.test(config, address)
        if result.success:
            logger.info("Test %s notification sent by user %s", channel.value, actor_id)
            return ChannelTestOutcome(True, f"Test {channel.value} notification sent successfully")

        return ChannelTestOutcome(
            False,
            f"{describe_category(result.error_category)}: {result.error_message}",
            result.error_category,
        )

    def validate_channels(self, channels: Iterable[Any]) -> list[ChannelType]:
        """Validate channel names without sending anything.

        Raises:
            UnsupportedChannelError: On an unknown channel name.
        """
        return parse_channels(channels)

    async def send(
        self,
        user_id: int,
        schedule_id: Optional[int],
        channels: Iterable[Any],
        payload: NotificationPayload | Mapping[str, Any],
    ) -> None:
        """Dispatch a reminder; outcomes land in the delivery log."""
        await self._dispatcher.dispatch(user_id, schedule_id, channels, payload)

    async def list_delivery_logs(self, user_id: int, limit: int = 50) -> list[NotificationLog]:
        return await self._log.list_for_user(user_id, limit)

    async def list_audit_logs(self, user_id: int, limit: int = 50) -> list[AuditLog]:
        return await self._audit.list_audit_for_user(user_id, limit)

    async def health_check(self) -> dict[str, Any]:
        """Report database reachability, registered channels and scheduler state."""
        services: dict[str, str] = {}
        status = "healthy"

        try:
            database_ok = await self._database_check()
        except Exception as e:
            logger.error("Database connectivity issue: %s", str(e))
            database_ok = False
        services["database"] = "connected" if database_ok else "disconnected"
        if not database_ok:
            status = "degraded"

        for channel in ChannelType:
            services[channel.value] = (
                "available" if channel in self._dispatcher.channels else "unavailable"
            )

        scheduler = self._scheduler_stats() if self._scheduler_stats else {}
        return {
            "status": status,
            "timestamp": utc_now(),
            "services": services,
            "scheduler": scheduler,
        }

    async def run_diagnostics(self) -> dict[str, Any]:
        """Check TCP reachability of each provider endpoint."""
        results = await asyncio.gather(
            *(self._check_endpoint(name, host, port) for name, (host, port) in DIAGNOSTIC_TARGETS.items())
        )
        database_ok = await self._database_check()
        tests = [
            {
                "name": "database",
                "status": "passed" if database_ok else "failed",
                "details": "Database reachable" if database_ok else "Database unreachable",
            },
            *results,
        ]
        return {
            "timestamp": utc_now(),
            "status": "success" if all(t["status"] == "passed" for t in tests) else "degraded",
            "tests": tests,
        }

    async def _check_endpoint(self, name: str, host: str, port: int) -> dict[str, str]:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._diagnostics_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            return {
                "name": name,
                "status": "failed",
                "details": f"{host}:{port} unreachable ({e.__class__.__name__})",
            }
        writer.close()
        await writer.wait_closed()
        return {"name": name, "status": "passed", "details": f"{host}:{port} reachable"}


def build_channel_registry(
    settings: "Settings",
    vault: SecretVault,
) -> dict[ChannelType, BaseChannel]:
    """Create one instance of every channel implementation."""
    timeout = settings.notify.provider_timeout_seconds
    return {
        ChannelType.EMAIL: EmailChannel(
            vault,
            timeout=timeout,
            default_from_name=settings.notify.email_from_name,
        ),
        ChannelType.SMS: SMSChannel(vault, timeout=timeout),
        ChannelType.PUSH: PushChannel(vault, timeout=timeout),
        ChannelType.CALENDAR: CalendarChannel(
            vault,
            timeout=timeout,
            timezone=settings.reminder.timezone,
        ),
    }


def build_notification_service(settings: "Settings") -> NotificationService:
    """Wire a NotificationService from application settings."""
    from src.infrastructure.background.scheduler import get_scheduler

    vault = get_secret_vault()
    audit_trail = AuditTrail()
    delivery_log = DeliveryLog()
    store = ChannelSettingsStore(
        vault=vault,
        audit_trail=audit_trail,
        organization_id=settings.notify.organization_id,
    )
    dispatcher = NotificationDispatcher(
        settings_store=store,
        delivery_log=delivery_log,
        channels=build_channel_registry(settings, vault),
        max_concurrency=settings.notify.max_concurrent_sends,
    )
    return NotificationService(
        settings_store=store,
        dispatcher=dispatcher,
        delivery_log=delivery_log,
        audit_trail=audit_trail,
        scheduler_stats=lambda: get_scheduler().get_stats(),
    )


# Singleton instance management
_service_instance: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get or create the notification service singleton."""
    global _service_instance
    if _service_instance is None:
        from src.core.config import get_settings

        _service_instance = build_notification_service(get_settings())
        logger.info(
            "NotificationService initialized with %d channels",
            len(_service_instance.dispatcher.channels),
        )
    return _service_instance


def reset_notification_service() -> None:
    """Drop the singleton, e.g. after settings changed."""
    global _service_instance
    _service_instance = None
