"""
Manual triggers and status of the background jobs.

All routes are restricted to super administrators.  ``POST`` runs the
job immediately through ``app.state.scheduler`` so the manual run shows
up as the job's last execution; ``GET`` reports what is pending and the
scheduler state.  An external scheduler can drive the jobs by calling
the ``POST`` routes (see ``scripts/trigger_cron.py``).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from taskflow_api.app.core.config import settings
from taskflow_api.app.core.security import require_super_admin
from taskflow_api.app.core.timeutils import local_zone, utcnow
from taskflow_api.app.services.overdue_service import OverdueTaskService
from taskflow_api.app.services.routinary_service import RoutinaryTaskService

logger = logging.getLogger(__name__)

router = APIRouter()

ROUTINARY_JOB = "routinary-tasks"
OVERDUE_JOB = "overdue-tasks"


def _local_time() -> str:
    return f"{utcnow().astimezone(local_zone()):%Y-%m-%d %H:%M:%S} ({settings.timezone})"


@router.post("/routinary-tasks")
async def trigger_routinary_tasks(request: Request, current_user: dict = Depends(require_super_admin)) -> dict:
    logger.info("[CRON] Manual routinary tasks trigger by user %s", current_user["email"])
    try:
        result = await request.app.state.scheduler.run_job(ROUTINARY_JOB)
    except Exception:
        logger.exception("[CRON] Manual routinary tasks trigger failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create routinary tasks",
        )
    return {"success": True, "message": "Routinary tasks creation completed", "result": result}


@router.get("/routinary-tasks")
async def routinary_tasks_status(request: Request, current_user: dict = Depends(require_super_admin)) -> dict:
    return {
        "success": True,
        "current_time": _local_time(),
        "routinary_services_due_count": await RoutinaryTaskService.count_due_services(),
        "routinary_services": await RoutinaryTaskService.list_routinary_services(),
        "cron_job": request.app.state.scheduler.status(ROUTINARY_JOB),
    }


@router.post("/overdue-tasks")
async def trigger_overdue_tasks(request: Request, current_user: dict = Depends(require_super_admin)) -> dict:
    logger.info("[CRON] Manual overdue tasks trigger by user %s", current_user["email"])
    try:
        result = await request.app.state.scheduler.run_job(OVERDUE_JOB)
    except Exception:
        logger.exception("[CRON] Manual overdue tasks trigger failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update overdue tasks",
        )
    return {"success": True, "message": "Overdue tasks update completed", "result": result}


@router.get("/overdue-tasks")
async def overdue_tasks_status(request: Request, current_user: dict = Depends(require_super_admin)) -> dict:
    return {
        "success": True,
        "current_time": _local_time(),
        "overdue_tasks_count": await OverdueTaskService.count_overdue_tasks(),
        "timezone": settings.timezone,
        "cron_job": request.app.state.scheduler.status(OVERDUE_JOB),
    }
