"""
Service layer for tasks.

Tasks live in kanban columns (``status``) ordered by ``position``; a new
task, or a task moved to another column, goes to the bottom of its
column (highest position + 1000).  Assignee, reviewer and followers are
*member* ids of the task's workspace.

Visibility rules:

* confidential tasks are visible to their creator, assignee and
  followers only;
* ``VISITOR`` members only see tasks they follow and cannot create,
  edit or archive tasks;
* super administrators see everything.

History entries and notifications are written after the task change is
committed.  A failure there is logged and does not undo the change.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from taskflow_api.app.core.security import is_super_admin
from taskflow_api.app.core.timeutils import from_db, start_of_local_day, to_db, utcnow
from taskflow_api.app.schemas.task import TaskCreate, TaskHistoryAction, TaskRead, TaskStatus, TaskUpdate
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.checklist_service import build_task_checklist, dump_checklist
from taskflow_api.app.services.history_service import TaskHistoryService
from taskflow_api.app.services.notification_service import NotificationService
from taskflow_api.app.services.task_number import generate_task_number
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)

POSITION_STEP = 1000
EDITOR_ROLES = (MemberRole.ADMIN, MemberRole.MEMBER, MemberRole.CUSTOMER)
CLOSED_STATUSES = (TaskStatus.DONE.value, TaskStatus.ARCHIVED.value)

# Field name -> history action for per-field change entries.
FIELD_ACTIONS = {
    "status": TaskHistoryAction.STATUS_CHANGED,
    "assignee_id": TaskHistoryAction.ASSIGNEE_CHANGED,
    "reviewer_id": TaskHistoryAction.REVIEWER_CHANGED,
    "due_date": TaskHistoryAction.DUE_DATE_CHANGED,
    "name": TaskHistoryAction.NAME_CHANGED,
    "description": TaskHistoryAction.DESCRIPTION_UPDATED,
}


def load_followers(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed followed_ids value %r", raw)
        return []
    return [int(v) for v in value] if isinstance(value, list) else []


def is_overdue(due_date: Optional[datetime], status: str, now: Optional[datetime] = None) -> bool:
    """Overdue means due before the start of today and not done or archived."""
    if due_date is None or status in CLOSED_STATUSES:
        return False
    return due_date < start_of_local_day(now or utcnow())


def task_from_row(row: sqlite3.Row | Dict[str, Any]) -> TaskRead:
    data = dict(row)
    data["followed_ids"] = load_followers(data.get("followed_ids"))
    data["checklist"] = json.loads(data["checklist"]) if data.get("checklist") else None
    data["is_confidential"] = bool(data["is_confidential"])
    for key in ("due_date", "created_at", "updated_at"):
        data[key] = from_db(data.get(key))
    data["is_overdue"] = is_overdue(data["due_date"], data["status"])
    return TaskRead(**data)


def can_view_task(task: Dict[str, Any], member: Optional[Dict], current_user: Dict) -> bool:
    if is_super_admin(current_user):
        return True
    if member is None:
        return False
    followers = load_followers(task.get("followed_ids"))
    involved = (
        task.get("creator_id") == current_user["user_id"]
        or task.get("assignee_id") == member["id"]
        or member["id"] in followers
    )
    if member["role"] == MemberRole.VISITOR:
        return member["id"] in followers
    if task.get("is_confidential"):
        return involved
    return True


def fetch_visible_task(cursor: sqlite3.Cursor, task_id: int, current_user: Dict) -> Tuple[Dict, Optional[Dict]]:
    """Load a task the caller may see, together with the caller's member row.

    Raises ``NotFoundError`` for a missing task and
    ``PermissionDeniedError`` when the caller cannot see it.
    """
    row = cursor.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if not row:
        raise NotFoundError("Task not found")
    task = dict(row)
    member = WorkspaceService.require_member(cursor, task["workspace_id"], current_user)
    if not can_view_task(task, member, current_user):
        raise PermissionDeniedError("You do not have access to this task")
    return task, member


def _user_of_member(cursor: sqlite3.Cursor, workspace_id: int, member_id: Optional[int]) -> Optional[int]:
    """Resolve a member id of the workspace to its user id (``ValidationError`` if foreign)."""
    if member_id is None:
        return None
    row = cursor.execute(
        "SELECT user_id FROM members WHERE id = ? AND workspace_id = ?",
        (member_id, workspace_id),
    ).fetchone()
    if not row:
        raise ValidationError(f"Member {member_id} does not belong to this workspace")
    return row["user_id"]


def _bottom_position(cursor: sqlite3.Cursor, workspace_id: int, status: str) -> int:
    row = cursor.execute(
        "SELECT MAX(position) FROM tasks WHERE workspace_id = ? AND status = ?",
        (workspace_id, status),
    ).fetchone()
    return (row[0] or 0) + POSITION_STEP


def _check_service(cursor: sqlite3.Cursor, workspace_id: int, service_id: Optional[int]) -> None:
    if service_id is None:
        return
    row = cursor.execute("SELECT workspace_id FROM services WHERE id = ?", (service_id,)).fetchone()
    if not row:
        raise NotFoundError("Service not found")
    if row["workspace_id"] != workspace_id:
        raise ValidationError("Service belongs to another workspace", field="service_id")


class TaskService:
    """Create, read, update and archive tasks."""

    @classmethod
    async def create_task(cls, data: TaskCreate, current_user: Dict) -> TaskRead:
        now = utcnow()
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                member = WorkspaceService.require_member(
                    cursor, data.workspace_id, current_user, roles=EDITOR_ROLES
                )
                _check_service(cursor, data.workspace_id, data.service_id)
                assignee_user = _user_of_member(cursor, data.workspace_id, data.assignee_id)
                reviewer_user = _user_of_member(cursor, data.workspace_id, data.reviewer_id)

                followers: List[int] = []
                for member_id in data.followed_ids:
                    _user_of_member(cursor, data.workspace_id, member_id)
                    if member_id not in followers:
                        followers.append(member_id)
                if member is not None and member["id"] not in followers:
                    followers.append(member["id"])

                task_number = generate_task_number(cursor)
                cursor.execute(
                    """
                    INSERT INTO tasks (
                        task_number, name, description, status, workspace_id, service_id,
                        assignee_id, reviewer_id, creator_id, due_date, position,
                        followed_ids, is_confidential, checklist, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task_number,
                        data.name,
                        data.description,
                        data.status.value,
                        data.workspace_id,
                        data.service_id,
                        data.assignee_id,
                        data.reviewer_id,
                        current_user["user_id"],
                        to_db(data.due_date),
                        _bottom_position(cursor, data.workspace_id, data.status.value),
                        json.dumps(followers),
                        int(data.is_confidential),
                        dump_checklist(build_task_checklist(cursor, data.service_id)),
                        to_db(now),
                        to_db(now),
                    ),
                )
                task_id = cursor.lastrowid
            row = dict(conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone())
        finally:
            conn.close()

        logger.info("Task %s (%s) created by user %s", task_id, task_number, current_user["user_id"])
        await TaskHistoryService.record_safely(
            task_id,
            current_user["user_id"],
            [{"action": TaskHistoryAction.CREATED, "details": f"Task created: {data.name}"}],
        )
        await NotificationService.notify_task_assigned(row, assignee_user, current_user)
        await NotificationService.notify_reviewer_assigned(row, reviewer_user, current_user)
        return task_from_row(row)

    @classmethod
    async def get_task(cls, task_id: int, current_user: Dict) -> TaskRead:
        conn = get_connection()
        try:
            task, _ = fetch_visible_task(conn.cursor(), task_id, current_user)
        finally:
            conn.close()
        return task_from_row(task)

    @classmethod
    async def list_tasks(
        cls,
        workspace_id: int,
        current_user: Dict,
        service_id: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        assignee_id: Optional[int] = None,
        search: Optional[str] = None,
        include_archived: bool = False,
    ) -> List[TaskRead]:
        """Tasks of a workspace visible to the caller, by column and position."""
        clauses = ["workspace_id = ?"]
        params: List[Any] = [workspace_id]
        if service_id is not None:
            clauses.append("service_id = ?")
            params.append(service_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        elif not include_archived:
            clauses.append("status != ?")
            params.append(TaskStatus.ARCHIVED.value)
        if assignee_id is not None:
            clauses.append("assignee_id = ?")
            params.append(assignee_id)
        if search:
            clauses.append("(name LIKE ? OR task_number LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])

        conn = get_connection()
        try:
            cursor = conn.cursor()
            member = WorkspaceService.require_member(cursor, workspace_id, current_user)
            rows = cursor.execute(
                f"SELECT * FROM tasks WHERE {' AND '.join(clauses)} ORDER BY status, position, id",
                params,
            ).fetchall()
        finally:
            conn.close()
        return [task_from_row(r) for r in rows if can_view_task(dict(r), member, current_user)]

    @classmethod
    async def update_task(cls, task_id: int, data: TaskUpdate, current_user: Dict) -> TaskRead:
        """Apply a partial update and log one history entry per changed field."""
        changes = data.model_dump(exclude_unset=True)
        now = utcnow()
        history: List[Dict[str, Any]] = []
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                task, member = fetch_visible_task(cursor, task_id, current_user)
                if member is not None and member["role"] == MemberRole.VISITOR and not is_super_admin(current_user):
                    raise PermissionDeniedError("Visitors cannot edit tasks")
                workspace_id = task["workspace_id"]

                values: Dict[str, Any] = {}
                for key, value in changes.items():
                    if key == "name":
                        if value is None or not value.strip():
                            raise ValidationError("name is required", field="name")
                        value = value.strip()
                    elif key == "status":
                        if value is None:
                            raise ValidationError("status cannot be null", field="status")
                        if value == TaskStatus.ARCHIVED:
                            cls._check_can_archive(task, member, current_user)
                        value = value.value
                    elif key in ("assignee_id", "reviewer_id"):
                        _user_of_member(cursor, workspace_id, value)
                    elif key == "service_id":
                        _check_service(cursor, workspace_id, value)
                    elif key == "due_date":
                        value = to_db(value)
                    elif key == "followed_ids":
                        for member_id in value or []:
                            _user_of_member(cursor, workspace_id, member_id)
                        value = json.dumps(list(dict.fromkeys(value or [])))
                    elif key == "is_confidential":
                        value = int(bool(value))
                    elif key == "position" and value is None:
                        continue
                    if task.get(key) == value:
                        continue
                    values[key] = value
                    history.append(
                        {
                            "action": FIELD_ACTIONS.get(key, TaskHistoryAction.UPDATED),
                            "field": key,
                            "old_value": task.get(key),
                            "new_value": value,
                        }
                    )

                if "status" in values and "position" not in values:
                    values["position"] = _bottom_position(cursor, workspace_id, values["status"])
                if values:
                    values["updated_at"] = to_db(now)
                    assignments = ", ".join(f"{key} = ?" for key in values)
                    cursor.execute(
                        f"UPDATE tasks SET {assignments} WHERE id = ?",
                        (*values.values(), task_id),
                    )
                updated = dict(cursor.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone())
                assignee_user = (
                    _user_of_member(cursor, workspace_id, values["assignee_id"]) if values.get("assignee_id") else None
                )
                reviewer_user = (
                    _user_of_member(cursor, workspace_id, values["reviewer_id"]) if values.get("reviewer_id") else None
                )
        finally:
            conn.close()

        await TaskHistoryService.record_safely(task_id, current_user["user_id"], history)
        if assignee_user is not None:
            await NotificationService.notify_task_assigned(updated, assignee_user, current_user)
        if reviewer_user is not None:
            await NotificationService.notify_reviewer_assigned(updated, reviewer_user, current_user)
        return task_from_row(updated)

    @staticmethod
    def _check_can_archive(task: Dict, member: Optional[Dict], current_user: Dict) -> None:
        if is_super_admin(current_user):
            return
        if member is None or member["role"] == MemberRole.VISITOR:
            raise PermissionDeniedError("Visitors cannot archive tasks")
        if task.get("creator_id") != current_user["user_id"] and member["role"] != MemberRole.ADMIN:
            raise PermissionDeniedError("Only the creator or a workspace admin can archive this task")

    @classmethod
    async def archive_task(cls, task_id: int, current_user: Dict) -> TaskRead:
        """Soft delete: move the task to ``ARCHIVED``."""
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                task, member = fetch_visible_task(cursor, task_id, current_user)
                cls._check_can_archive(task, member, current_user)
                old_status = task["status"]
                if old_status != TaskStatus.ARCHIVED.value:
                    cursor.execute(
                        "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                        (TaskStatus.ARCHIVED.value, to_db(utcnow()), task_id),
                    )
                updated = dict(cursor.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone())
        finally:
            conn.close()
        if old_status != TaskStatus.ARCHIVED.value:
            logger.info("Task %s archived by user %s", task_id, current_user["user_id"])
            await TaskHistoryService.record_safely(
                task_id,
                current_user["user_id"],
                [
                    {
                        "action": TaskHistoryAction.ARCHIVED,
                        "field": "status",
                        "old_value": old_status,
                        "new_value": TaskStatus.ARCHIVED.value,
                    }
                ],
            )
        return task_from_row(updated)
