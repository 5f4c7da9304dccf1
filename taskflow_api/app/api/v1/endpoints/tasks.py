"""
Task endpoints for API v1: tasks, their messages and their history.

``DELETE /tasks/{id}`` archives the task instead of removing the row.
Posting a message notifies every member it mentions (``@name`` or
``@all``).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.errors import to_http_exception
from taskflow_api.app.core.security import get_current_user
from taskflow_api.app.schemas.task import (
    TaskCreate,
    TaskHistoryRead,
    TaskMessageCreate,
    TaskMessageRead,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from taskflow_api.app.services.history_service import TaskHistoryService
from taskflow_api.app.services.message_service import TaskMessageService
from taskflow_api.app.services.task_service import TaskService, fetch_visible_task

router = APIRouter()


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(data: TaskCreate, current_user: dict = Depends(get_current_user)) -> TaskRead:
    try:
        return await TaskService.create_task(data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("", response_model=List[TaskRead])
async def list_tasks(
    workspace_id: int = Query(...),
    service_id: Optional[int] = Query(None),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    assignee_id: Optional[int] = Query(None, description="Member id of the assignee"),
    search: Optional[str] = Query(None, max_length=200),
    include_archived: bool = Query(False),
    current_user: dict = Depends(get_current_user),
) -> List[TaskRead]:
    """Tasks of a workspace visible to the caller."""
    try:
        return await TaskService.list_tasks(
            workspace_id,
            current_user,
            service_id=service_id,
            status=status_filter,
            assignee_id=assignee_id,
            search=search,
            include_archived=include_archived,
        )
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: int, current_user: dict = Depends(get_current_user)) -> TaskRead:
    try:
        return await TaskService.get_task(task_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(task_id: int, data: TaskUpdate, current_user: dict = Depends(get_current_user)) -> TaskRead:
    try:
        return await TaskService.update_task(task_id, data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.delete("/{task_id}", response_model=TaskRead)
async def archive_task(task_id: int, current_user: dict = Depends(get_current_user)) -> TaskRead:
    """Archive a task.  Allowed for its creator and workspace admins."""
    try:
        return await TaskService.archive_task(task_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{task_id}/messages", response_model=List[TaskMessageRead])
async def list_messages(task_id: int, current_user: dict = Depends(get_current_user)) -> List[TaskMessageRead]:
    try:
        return await TaskMessageService.list_messages(task_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.post("/{task_id}/messages", response_model=TaskMessageRead, status_code=status.HTTP_201_CREATED)
async def create_message(
    task_id: int,
    data: TaskMessageCreate,
    current_user: dict = Depends(get_current_user),
) -> TaskMessageRead:
    try:
        return await TaskMessageService.create_message(task_id, data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)


@router.get("/{task_id}/history", response_model=List[TaskHistoryRead])
async def list_history(task_id: int, current_user: dict = Depends(get_current_user)) -> List[TaskHistoryRead]:
    """Activity log of a task, newest first."""
    conn = get_connection()
    try:
        fetch_visible_task(conn.cursor(), task_id, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)
    finally:
        conn.close()
    return await TaskHistoryService.list_history(task_id)
