"""
Service (project) and checklist endpoints for API v1.

Workspace members can read services; only workspace admins can create
or change them, including their routinary schedule and checklist.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from taskflow_api.app.core.errors import to_http_exception
from taskflow_api.app.core.security import get_current_user
from taskflow_api.app.schemas.service import (
    ChecklistRead,
    ChecklistReplace,
    ServiceCreate,
    ServiceRead,
    ServiceUpdate,
)
from taskflow_api.app.services.checklist_service import ChecklistService
from taskflow_api.app.services.service_service import ServiceService

router = APIRouter()


@router.post("", response_model=ServiceRead, status_code=status.HTTP_201_CREATED)
async def create_service(data: ServiceCreate, current_user: dict = Depends(get_current_user)) -> ServiceRead:
    try:
        return await ServiceService.create_service(data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("", response_model=List[ServiceRead])
async def list_services(
    workspace_id: int = Query(..., description="Workspace whose services are listed"),
    current_user: dict = Depends(get_current_user),
) -> List[ServiceRead]:
    try:
        return await ServiceService.list_services(workspace_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{service_id}", response_model=ServiceRead)
async def get_service(service_id: int, current_user: dict = Depends(get_current_user)) -> ServiceRead:
    try:
        return await ServiceService.get_service(service_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.patch("/{service_id}", response_model=ServiceRead)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    current_user: dict = Depends(get_current_user),
) -> ServiceRead:
    """Partial update.  Changing the schedule resets the next run date."""
    try:
        return await ServiceService.update_service(service_id, data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{service_id}/checklist", response_model=ChecklistRead)
async def get_checklist(service_id: int, current_user: dict = Depends(get_current_user)) -> ChecklistRead:
    try:
        return await ChecklistService.get_checklist(service_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.put("/{service_id}/checklist", response_model=ChecklistRead)
async def replace_checklist(
    service_id: int,
    data: ChecklistReplace,
    current_user: dict = Depends(get_current_user),
) -> ChecklistRead:
    """Replace the checklist template copied into new tasks of the service."""
    try:
        return await ChecklistService.replace_checklist(service_id, data.sections, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)
