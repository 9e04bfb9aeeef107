# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.infrastructure.notifications.channels.base import NotificationPayload
from src.infrastructure.security.vault import SecretVault


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Security Fixtures
# =============================================================================


@pytest.fixture
def vault() -> SecretVault:
    """Provide a vault with a fixed test passphrase."""
    return SecretVault("test-passphrase-for-unit-tests")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def mock_session() -> AsyncMock:
    """Provide a mocked AsyncSession.

    ``execute`` returns a result whose ``scalar_one_or_none`` is None and
    whose ``scalars().all()`` is empty; tests override as needed.
    """
    session = AsyncMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    result.scalars.return_value.all.return_value = []
    session.execute.return_value = result
    session.get.return_value = None
    session.add = MagicMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def session_factory(mock_session: AsyncMock) -> Any:
    """Provide a session factory yielding ``mock_session``."""

    @asynccontextmanager
    async def factory():
        yield mock_session

    return factory


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_payload() -> NotificationPayload:
    """Provide a lecture reminder for a student."""
    return NotificationPayload(
        user_id=7,
        schedule_id=42,
        course_id=3,
        course_title="Data Structures",
        course_code="CSC201",
        date="2025-03-10",
        time="10:00",
        venue="Hall B",
        recipient_name="Ada",
        recipient_email="ada@example.com",
        recipient_phone="+2348012345678",
        device_token="device-token-123",
        instructor_name="Dr. Okafor",
        role="student",
    )
