# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the lecture
reminder notification API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import close_db, get_notification_service, init_db
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.domains.reminders import build_reminder_scanner
from src.infrastructure.background import get_scheduler, start_scheduler, stop_scheduler
from src.infrastructure.database import create_schema
from src.utils.logging import REQUEST_ID_HEADER, bind_request_context, clear_context, setup_logging

logger = logging.getLogger(__name__)

REMINDER_JOB_NAME = "Lecture Reminder Scan"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.
    Initializes and cleans up:
    - Database connections
    - The lecture reminder scan job
    - APScheduler

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting lecture reminder API (environment=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    try:
        await init_db()
        logger.info("Database connection initialized")
    except Exception as e:
        logger.warning("Failed to initialize database connection: %s", str(e))

    if settings.is_development:
        try:
            await create_schema()
            logger.info("Database schema ensured")
        except Exception as e:
            logger.warning("Failed to create database schema: %s", str(e))

    if settings.reminder.enabled:
        try:
            service = get_notification_service()
            scanner = build_reminder_scanner(settings, service.dispatcher)
            get_scheduler().add_interval_job(
                REMINDER_JOB_NAME,
                scanner.tick,
                seconds=settings.reminder.scan_interval_seconds,
                start_immediately=True,
            )
            logger.info(
                "Reminder scan registered every %ss",
                settings.reminder.scan_interval_seconds,
            )
        except Exception as e:
            logger.warning("Failed to register reminder scan: %s", str(e))
    else:
        logger.info("Reminder scan disabled")

    try:
        await start_scheduler()
        logger.info("Scheduler started")
    except Exception as e:
        logger.warning("Failed to start scheduler: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    # Stop scheduler first so no tick runs against a closed engine
    try:
        await stop_scheduler()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.warning("Error stopping scheduler: %s", str(e))

    try:
        await close_db()
        logger.info("Database connection closed")
    except Exception as e:
        logger.warning("Error closing database connection: %s", str(e))

    logger.info("Shutting down lecture reminder API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Lecture Reminder API",
        description="Lecture reminder notifications over email, SMS, push and calendar",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        # Disable automatic redirects from /path to /path/
        redirect_slashes=False,
    )

    # =========================================================================
    # Middleware
    # =========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    @app.middleware("http")
    async def request_logging_context(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Bind a request id to every log record written while serving a request."""
        request_id = bind_request_context(
            request.headers.get(REQUEST_ID_HEADER),
            request.method,
            request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
