"""
Notification endpoints for API v1.

Users only ever see and acknowledge their own notifications.
``POST /notifications/create-mention`` lets a workspace member create a
notification for another member of the same workspace.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from taskflow_api.app.core.errors import to_http_exception
from taskflow_api.app.core.security import get_current_user
from taskflow_api.app.schemas.notification import (
    MarkReadRequest,
    NotificationCreate,
    NotificationPage,
    NotificationRead,
    NotificationType,
)
from taskflow_api.app.services.notification_service import NotificationService

router = APIRouter()


@router.get("", response_model=NotificationPage)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type_filter: Optional[NotificationType] = Query(None, alias="type"),
    current_user: dict = Depends(get_current_user),
) -> NotificationPage:
    """Return the caller's notifications, newest first, one page at a time."""
    return await NotificationService.list_notifications(
        current_user["user_id"], page=page, limit=limit, type_=type_filter
    )


@router.get("/count")
async def unread_count(current_user: dict = Depends(get_current_user)) -> dict:
    return {"count": await NotificationService.unread_count(current_user["user_id"])}


@router.post("/read")
async def mark_as_read(data: MarkReadRequest, current_user: dict = Depends(get_current_user)) -> dict:
    """Mark notifications as read by ids, by task or all at once."""
    try:
        updated = await NotificationService.mark_as_read(current_user["user_id"], data)
    except ValueError as exc:
        raise to_http_exception(exc)
    return {"updated_count": updated}


@router.post("/create-mention", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_mention(
    data: NotificationCreate,
    current_user: dict = Depends(get_current_user),
) -> NotificationRead:
    try:
        return await NotificationService.create_notification(data, current_user)
    except (ValueError, PermissionError) as exc:
        raise to_http_exception(exc)
