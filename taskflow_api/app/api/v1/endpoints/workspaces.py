"""
Workspace endpoints for API v1.

Any authenticated user can create a workspace and becomes its admin.
Reading a workspace requires membership; adding members and reading
the KPI board requires the workspace ``ADMIN`` role.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from taskflow_api.app.core.errors import to_http_exception
from taskflow_api.app.core.security import get_current_user
from taskflow_api.app.schemas.workspace import (
    MemberCreate,
    MemberRead,
    WorkspaceCreate,
    WorkspaceKPI,
    WorkspaceRead,
)
from taskflow_api.app.services.statistics_service import StatisticsService
from taskflow_api.app.services.workspace_service import WorkspaceService

router = APIRouter()


@router.post("", response_model=WorkspaceRead, status_code=status.HTTP_201_CREATED)
async def create_workspace(
    data: WorkspaceCreate,
    current_user: dict = Depends(get_current_user),
) -> WorkspaceRead:
    return await WorkspaceService.create_workspace(data, current_user)


@router.get("", response_model=List[WorkspaceRead])
async def list_workspaces(current_user: dict = Depends(get_current_user)) -> List[WorkspaceRead]:
    return await WorkspaceService.list_workspaces(current_user)


@router.get("/{workspace_id}", response_model=WorkspaceRead)
async def get_workspace(workspace_id: int, current_user: dict = Depends(get_current_user)) -> WorkspaceRead:
    try:
        return await WorkspaceService.get_workspace(workspace_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.post("/{workspace_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
async def add_member(
    workspace_id: int,
    data: MemberCreate,
    current_user: dict = Depends(get_current_user),
) -> MemberRead:
    """Add an existing user (by id or email) to the workspace."""
    try:
        return await WorkspaceService.add_member(workspace_id, data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{workspace_id}/members", response_model=List[MemberRead])
async def list_members(workspace_id: int, current_user: dict = Depends(get_current_user)) -> List[MemberRead]:
    try:
        return await WorkspaceService.list_members(workspace_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{workspace_id}/kpi", response_model=WorkspaceKPI)
async def workspace_kpi(workspace_id: int, current_user: dict = Depends(get_current_user)) -> WorkspaceKPI:
    """Per member KPI scores, best first.  Workspace admins only."""
    try:
        return await StatisticsService.workspace_kpi(workspace_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)
