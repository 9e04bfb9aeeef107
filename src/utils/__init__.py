# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from src.utils.datetime import (
    combine_wall_clock,
    ensure_utc,
    utc_now,
    zoned_now,
)
from src.utils.logging import (
    bind_actor_context,
    bind_context,
    bind_request_context,
    clear_context,
    get_logger,
    setup_logging,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "bind_request_context",
    "bind_actor_context",
    # Datetime
    "utc_now",
    "zoned_now",
    "ensure_utc",
    "combine_wall_clock",
]
