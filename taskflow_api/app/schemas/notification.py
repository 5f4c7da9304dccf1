"""
Pydantic schemas for in‑app notifications.

Notifications are created as side effects of mutations (mentions in
task messages, task and reviewer assignment) and are immutable except
for their read state.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    MENTION = "MENTION"
    NEW_MESSAGE = "NEW_MESSAGE"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATE = "TASK_UPDATE"
    TASK_COMMENT = "TASK_COMMENT"
    REVIEWER_ASSIGNED = "REVIEWER_ASSIGNED"


class NotificationCreate(BaseModel):
    """Body of ``POST /notifications/create-mention``."""

    user_id: int = Field(..., description="Recipient user id")
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    workspace_id: int
    task_id: Optional[int] = None
    message_id: Optional[int] = None
    mentioned_by: Optional[int] = None


class NotificationRead(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    workspace_id: int
    workspace_name: Optional[str] = None
    task_id: Optional[int] = None
    task_name: Optional[str] = None
    message_id: Optional[int] = None
    mentioned_by: Optional[int] = None
    mentioner_name: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None


class NotificationPage(BaseModel):
    documents: List[NotificationRead]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class MarkReadRequest(BaseModel):
    """At least one selector must be given (checked by the service, HTTP 400)."""

    notification_ids: Optional[List[int]] = None
    task_id: Optional[int] = None
    mark_all: bool = False

    @property
    def has_selector(self) -> bool:
        return bool(self.notification_ids) or self.task_id is not None or self.mark_all
