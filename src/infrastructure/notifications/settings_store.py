# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-owner notification settings with encrypted credentials.

Each owner (the organization or a single user) has at most one
``notification_settings`` row holding channel switches and one optional
config per channel. Secrets are encrypted by the SecretVault before they
are merged into a config, so plaintext never reaches the database.

Updates are merges: fields missing from a patch keep their stored value.
Each update that changes something appends one audit entry with a
field-level diff; secret-like fields are redacted by the audit trail.

Example:
    store = ChannelSettingsStore(vault=get_secret_vault(), audit_trail=AuditTrail())
    row = await store.upsert("user", 12, patch, actor_id=12)
    view = store.to_masked_view(row)
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import select

from src.infrastructure.database.connection import get_session
from src.infrastructure.database.models import CHANNEL_CONFIG_COLUMNS, NotificationSettings
from src.infrastructure.notifications.channels.base import ChannelType
from src.infrastructure.notifications.delivery_log import AuditTrail, SessionFactory
from src.infrastructure.security.vault import DecryptionError, SecretVault

if TYPE_CHECKING:
    from src.models.notification import NotificationSettingsPatch

logger = logging.getLogger(__name__)

OWNER_TYPES = ("organization", "user")
ENTITY_TYPE = "NotificationSettings"
UNREADABLE = "<unreadable>"

# Plaintext secret name -> stored as "encrypted_<name>"
SECRET_FIELDS: dict[str, tuple[str, ...]] = {
    ChannelType.EMAIL.value: ("password",),
    ChannelType.SMS.value: ("twilio_token",),
    ChannelType.PUSH.value: ("firebase_service_account_json",),
    ChannelType.CALENDAR.value: ("google_client_secret", "refresh_token"),
}


class SettingsStoreError(Exception):
    """Base exception for settings store operations."""


class InvalidOwnerError(SettingsStoreError):
    """Owner type is not ``organization`` or ``user``."""

    def __init__(self, owner_type: str) -> None:
        super().__init__(f"Invalid owner type: {owner_type}")
        self.owner_type = owner_type


def default_channels() -> dict[str, bool]:
    return {channel.value: False for channel in ChannelType}


def snapshot(row: NotificationSettings) -> dict[str, Any]:
    """Copy the mutable state of a row into plain dicts."""
    state: dict[str, Any] = {"channels": dict(row.channels or {})}
    for channel in ChannelType:
        config = row.get_config(channel.value)
        state[CHANNEL_CONFIG_COLUMNS[channel.value]] = dict(config) if config is not None else None
    return state


def _flatten(state: dict[str, Any]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for section, value in state.items():
        if isinstance(value, dict):
            for key, inner in value.items():
                flat[f"{section}.{key}"] = inner
    return flat


def compute_diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Field-level diff between two settings states.

    Args:
        before: Previous state (empty for a new owner).
        after: Merged state.

    Returns:
        ``{"section.field": {"from": old, "to": new}}`` for changed fields.
    """
    old = _flatten(before)
    new = _flatten(after)
    diff: dict[str, dict[str, Any]] = {}
    for path in sorted(set(old) | set(new)):
        if old.get(path) != new.get(path):
            diff[path] = {"from": old.get(path), "to": new.get(path)}
    return diff


class ChannelSettingsStore:
    """Reads, merges and masks notification settings.

    Args:
        vault: Vault used to encrypt incoming secrets and unmask for display.
        audit_trail: Destination of change records.
        session_factory: Returns an async session context manager.
        organization_id: Organization row used when a user has none.
    """

    def __init__(
        self,
        vault: SecretVault,
        audit_trail: AuditTrail,
        session_factory: SessionFactory = get_session,
        organization_id: Optional[int] = None,
    ) -> None:
        self._vault = vault
        self._audit = audit_trail
        self._session_factory = session_factory
        self._organization_id = organization_id

    async def get(self, owner_type: str, owner_id: int) -> Optional[NotificationSettings]:
        """Get the settings of an owner.

        Returns:
            The settings row, or None if the owner never saved any.
        """
        owner_type = self._check_owner_type(owner_type)
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationSettings).where(
                    NotificationSettings.owner_type == owner_type,
                    NotificationSettings.owner_id == owner_id,
                )
            )
            return result.scalar_one_or_none()

    async def resolve_for_user(self, user_id: int) -> Optional[NotificationSettings]:
        """Get the settings that apply to a user.

        A user's own row wins; otherwise the organization row is used.
        """
        settings = await self.get("user", user_id)
        if settings is None and self._organization_id is not None:
            settings = await self.get("organization", self._organization_id)
        return settings

    async def upsert(
        self,
        owner_type: str,
        owner_id: int,
        patch: "NotificationSettingsPatch",
        actor_id: int,
    ) -> NotificationSettings:
        """Create or merge-update the settings of an owner.

        Args:
            owner_type: ``organization`` or ``user``.
            owner_id: Owner ID.
            patch: Partial settings with plaintext secrets.
            actor_id: User performing the change, for the audit trail.

        Returns:
            The persisted row; secrets remain encrypted.

        Raises:
            InvalidOwnerError: If owner_type is unknown.
            DatabaseError: If persisting fails.
        """
        owner_type = self._check_owner_type(owner_type)

        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationSettings)
                .where(
                    NotificationSettings.owner_type == owner_type,
                    NotificationSettings.owner_id == owner_id,
                )
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            created = row is None

            if created:
                row = NotificationSettings(
                    owner_type=owner_type,
                    owner_id=owner_id,
                    channels=default_channels(),
                )
                session.add(row)
                before: dict[str, Any] = {}
                current = {"channels": default_channels()}
            else:
                before = snapshot(row)
                current = before

            after = self.merge(current, patch)

            row.channels = after["channels"]
            for channel in ChannelType:
                column = CHANNEL_CONFIG_COLUMNS[channel.value]
                if column in after:
                    row.set_config(channel.value, after[column])

            await session.flush()
            # Load server-side timestamps while the row is still attached
            await session.refresh(row)
            entity_id = row.id

        diff = compute_diff(before, after)
        if diff:
            await self._audit.append_audit(
                "CREATE" if created else "UPDATE",
                ENTITY_TYPE,
                entity_id,
                diff,
                actor_id,
            )
            logger.info(
                "Notification settings %s for %s:%s by user %s (%d fields)",
                "created" if created else "updated",
                owner_type,
                owner_id,
                actor_id,
                len(diff),
            )
        return row

    def merge(self, current: dict[str, Any], patch: "NotificationSettingsPatch") -> dict[str, Any]:
        """Merge a patch into a settings state without mutating it.

        Plaintext secrets in the patch are replaced by their encrypted form.
        When a submitted secret equals the stored one, the stored ciphertext
        is kept so that re-saving an unchanged form is a no-op.
        """
        merged: dict[str, Any] = {
            "channels": {**default_channels(), **current.get("channels", {}), **patch.channel_flags()},
        }
        for channel in ChannelType:
            column = CHANNEL_CONFIG_COLUMNS[channel.value]
            if column in current:
                merged[column] = current[column]

        for channel, config_patch in patch.config_patches().items():
            column = CHANNEL_CONFIG_COLUMNS[channel]
            existing = current.get(column) or {}
            encrypted = self.encrypt_secrets(channel, config_patch, existing)
            merged[column] = {**existing, **encrypted}
        return merged

    def encrypt_secrets(
        self,
        channel: str,
        config_patch: dict[str, Any],
        existing: dict[str, Any],
    ) -> dict[str, Any]:
        """Replace plaintext secret fields with ``encrypted_*`` fields."""
        result = dict(config_patch)
        for secret in SECRET_FIELDS[channel]:
            if secret not in result:
                continue
            plaintext = result.pop(secret)
            key = f"encrypted_{secret}"
            stored = existing.get(key)
            if stored and self._matches(stored, plaintext):
                result[key] = stored
            else:
                result[key] = self._vault.encrypt(plaintext)
        return result

    def to_masked_view(self, settings: NotificationSettings) -> dict[str, Any]:
        """Render settings for an API response with secrets masked.

        Secrets appear under their plaintext field name; values that fail
        to decrypt are shown as ``<unreadable>``.
        """
        view: dict[str, Any] = {
            "id": settings.id,
            "owner_type": settings.owner_type,
            "owner_id": settings.owner_id,
            "channels": {**default_channels(), **(settings.channels or {})},
            "updated_at": settings.updated_at,
        }
        for channel in ChannelType:
            column = CHANNEL_CONFIG_COLUMNS[channel.value]
            config = settings.get_config(channel.value)
            view[column] = self._mask_config(channel.value, config) if config is not None else None
        return view

    def _mask_config(self, channel: str, config: dict[str, Any]) -> dict[str, Any]:
        masked = {k: v for k, v in config.items() if not k.startswith("encrypted_")}
        for secret in SECRET_FIELDS[channel]:
            stored = config.get(f"encrypted_{secret}")
            if not stored:
                continue
            try:
                masked[secret] = self._vault.mask(self._vault.decrypt(stored))
            except DecryptionError:
                logger.warning("Stored %s secret '%s' is unreadable", channel, secret)
                masked[secret] = UNREADABLE
        return masked

    def _matches(self, stored: str, plaintext: str) -> bool:
        try:
            return self._vault.decrypt(stored) == plaintext
        except DecryptionError:
            return False

    @staticmethod
    def _check_owner_type(owner_type: Any) -> str:
        value = getattr(owner_type, "value", owner_type)
        if value not in OWNER_TYPES:
            raise InvalidOwnerError(str(value))
        return value
