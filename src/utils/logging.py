# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Both structlog loggers and plain ``logging.getLogger(__name__)`` loggers
end up in one stdout handler whose formatter is a structlog
``ProcessorFormatter``. Records from either side therefore carry the
context bound for the current request or scanner tick (request id,
acting user, tick id) and are rendered as JSON in production and as
colored console output in development.

Example:
    >>> import logging
    >>> from src.utils.logging import setup_logging, get_logger, bind_context
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(request_id="5f0c", actor_id=12)
    >>> logging.getLogger("src.infrastructure.notifications").info("Dispatching %s", "sms")
"""

import logging
import sys
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

REQUEST_ID_HEADER = "X-Request-Id"

# Provider SDKs and the scheduler are chatty at INFO
QUIET_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "sqlalchemy",
    "asyncio",
    "urllib3",
    "aiosmtplib",
    "apscheduler",
    "google.auth",
)


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the application.

    Replaces the handlers of the root logger with a single stdout handler
    so that uvicorn, APScheduler and module loggers share one format.

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Applied to structlog events and to foreign stdlib records alike
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    renderer: Processor
    if settings.is_development or settings.debug:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final_processors: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if not isinstance(renderer, structlog.dev.ConsoleRenderer):
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(renderer)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=final_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def bind_request_context(request_id: Optional[str], method: str, path: str) -> str:
    """Start the logging context of one HTTP request.

    Args:
        request_id: Id supplied by the caller, if any.
        method: HTTP method.
        path: Request path.

    Returns:
        The request id in effect, generated when none was supplied.
    """
    request_id = request_id or uuid4().hex
    clear_context()
    bind_context(request_id=request_id, method=method, path=path)
    return request_id


def bind_actor_context(actor_id: int, role: Optional[str]) -> None:
    """Tag the current request's log records with the acting user."""
    bind_context(actor_id=actor_id, actor_role=role or "unknown")
