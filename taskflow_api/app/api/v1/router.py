"""
Top‑level router for version 1 of the API.

Aggregates the domain routers under a single prefix.  When a new
domain is added, include its router here.
"""

from fastapi import APIRouter

from .endpoints import auth, cron, health, notifications, services, tasks, workspaces

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(workspaces.router, prefix="/workspaces", tags=["workspaces"])
router.include_router(services.router, prefix="/services", tags=["services"])
router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(cron.router, prefix="/cron", tags=["cron"])
# The health router defines its own "/health" path.
router.include_router(health.router, tags=["health"])
