"""
Main entrypoint for the Taskflow API.

This module assembles the FastAPI application: logging, versioned
routers, the catch‑all error handler and the objects that used to be
module globals (the forgot‑password rate limiter and the background job
scheduler), which now live on ``app.state`` with an explicit lifecycle.
Run it with uvicorn, e.g.::

    uvicorn taskflow_api.app.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.v1.router import router as v1_router
from .core.config import settings
from .core.db import init_db
from .core.logging_config import setup_logging
from .core.rate_limiter import RateLimiter
from .core.scheduler import JobScheduler
from .services.overdue_service import OverdueTaskService
from .services.routinary_service import RoutinaryTaskService

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Returns
    -------
    FastAPI
        A configured application.  The scheduler is started on the
        startup event when ``CRON_ENABLED`` is set and stopped on
        shutdown.
    """
    # Logging first so that everything below can log.
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version)
    app.include_router(v1_router, prefix="/api/v1")

    app.state.forgot_password_limiter = RateLimiter(
        window_seconds=settings.password_reset_window_seconds,
        max_requests=settings.password_reset_max_requests,
    )

    scheduler = JobScheduler(settings.timezone)
    scheduler.add_job(
        "overdue-tasks",
        OverdueTaskService.update_overdue_tasks,
        hour=settings.cron_hour,
        minute=settings.cron_minute,
        count_key="updated_count",
    )
    scheduler.add_job(
        "routinary-tasks",
        RoutinaryTaskService.create_routinary_tasks,
        hour=settings.cron_hour,
        minute=settings.cron_minute,
        count_key="created",
    )
    app.state.scheduler = scheduler

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.on_event("startup")
    async def startup_event() -> None:
        # Creates the database file if needed and applies migrations.
        init_db()
        if settings.cron_enabled:
            scheduler.start()
        else:
            logger.info("[CRON] Background jobs disabled (CRON_ENABLED=false)")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await scheduler.stop()

    return app


# Created at import time so uvicorn can discover it.
app = create_app()
