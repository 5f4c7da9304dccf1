"""
Pydantic models for tasks, task messages and task history.

Tasks move across the kanban columns listed in ``TaskStatus``.
``ARCHIVED`` is the soft‑delete state.  "Overdue" is not a status; it
is derived from ``due_date`` and the overdue sweep moves such tasks
back to ``BACKLOG``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class TaskStatus(str, Enum):
    BACKLOG = "BACKLOG"
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"


# Statuses the overdue sweep moves back to the backlog.
OVERDUE_ELIGIBLE_STATUSES = (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW)


class TaskHistoryAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNEE_CHANGED = "ASSIGNEE_CHANGED"
    REVIEWER_CHANGED = "REVIEWER_CHANGED"
    DUE_DATE_CHANGED = "DUE_DATE_CHANGED"
    NAME_CHANGED = "NAME_CHANGED"
    DESCRIPTION_UPDATED = "DESCRIPTION_UPDATED"
    ARCHIVED = "ARCHIVED"


class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    workspace_id: int
    service_id: Optional[int] = None
    status: TaskStatus = TaskStatus.TODO
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = Field(None, description="Member id of the assignee")
    reviewer_id: Optional[int] = Field(None, description="Member id of the reviewer")
    followed_ids: List[int] = Field(default_factory=list, description="Member ids following the task")
    is_confidential: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class TaskUpdate(BaseModel):
    """Partial update.  Explicit ``null`` clears assignee/reviewer/due date."""

    name: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    service_id: Optional[int] = None
    position: Optional[int] = None
    followed_ids: Optional[List[int]] = None
    is_confidential: Optional[bool] = None


class TaskRead(BaseModel):
    id: int
    task_number: str
    name: str
    description: Optional[str] = None
    status: TaskStatus
    workspace_id: int
    service_id: Optional[int] = None
    assignee_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    creator_id: Optional[int] = None
    due_date: Optional[datetime] = None
    position: int
    followed_ids: List[int] = Field(default_factory=list)
    is_confidential: bool = False
    checklist: Optional[Dict[str, Any]] = None
    is_overdue: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TaskMessageCreate(BaseModel):
    content: str = Field(..., max_length=1000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message must not be empty")
        return v


class TaskMessageRead(BaseModel):
    id: int
    task_id: int
    workspace_id: int
    sender_id: int
    sender_name: str
    content: str
    created_at: Optional[datetime] = None
    mentioned_user_ids: List[int] = Field(default_factory=list)


class TaskHistoryRead(BaseModel):
    id: int
    task_id: int
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    action: TaskHistoryAction
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    details: Optional[str] = None
    created_at: Optional[datetime] = None
