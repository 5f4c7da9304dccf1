"""
Service for in‑app notifications.

Notifications are produced as side effects of other mutations:

* a message mentioning members (``notify_mentions``);
* assigning a task (``notify_task_assigned``);
* assigning a reviewer (``notify_reviewer_assigned``).

These helpers run after the primary change has been committed and
never raise: a failure is logged and the triggering request still
succeeds.  Users then list their notifications page by page, count the
unread ones and mark them as read.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from typing import Dict, Iterable, List, Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from taskflow_api.app.core.timeutils import from_db, to_db, utcnow
from taskflow_api.app.schemas.notification import (
    MarkReadRequest,
    NotificationCreate,
    NotificationPage,
    NotificationRead,
    NotificationType,
)
from taskflow_api.app.services.mention_utils import extract_mentions, get_mentioned_user_ids
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)

MESSAGE_PREVIEW_LENGTH = 100

NOTIFICATION_SELECT = """
    SELECT n.*, w.name AS workspace_name, t.name AS task_name,
           COALESCE(mu.full_name, mu.email) AS mentioner_name
    FROM notifications n
    LEFT JOIN workspaces w ON w.id = n.workspace_id
    LEFT JOIN tasks t ON t.id = n.task_id
    LEFT JOIN users mu ON mu.id = n.mentioned_by
"""


def _notification_from_row(row: sqlite3.Row) -> NotificationRead:
    data = dict(row)
    data["is_read"] = bool(data["is_read"])
    data["created_at"] = from_db(data.get("created_at"))
    data["read_at"] = from_db(data.get("read_at"))
    return NotificationRead(**data)


def mention_message(author_name: str, task_name: str, content: str) -> str:
    preview = content[:MESSAGE_PREVIEW_LENGTH]
    if len(content) > MESSAGE_PREVIEW_LENGTH:
        preview += "..."
    return f'{author_name} mentioned you in task "{task_name}": {preview}'


class NotificationService:
    """Create, list and acknowledge notifications."""

    @staticmethod
    def _insert(
        cursor: sqlite3.Cursor,
        user_id: int,
        type_: NotificationType,
        title: str,
        message: str,
        workspace_id: int,
        task_id: Optional[int] = None,
        message_id: Optional[int] = None,
        mentioned_by: Optional[int] = None,
    ) -> int:
        cursor.execute(
            """
            INSERT INTO notifications (
                user_id, type, title, message, workspace_id,
                task_id, message_id, mentioned_by, is_read, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                user_id,
                type_.value,
                title,
                message,
                workspace_id,
                task_id,
                message_id,
                mentioned_by,
                to_db(utcnow()),
            ),
        )
        return cursor.lastrowid

    # ------------------------------------------------------------------
    # Explicit creation (POST /notifications/create-mention)
    # ------------------------------------------------------------------
    @classmethod
    async def create_notification(cls, data: NotificationCreate, current_user: Dict) -> NotificationRead:
        """Create a notification on behalf of the caller.

        The caller must belong to ``data.workspace_id``; the recipient
        must be a member of it as well.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            WorkspaceService.require_member(cursor, data.workspace_id, current_user)
            if not WorkspaceService.fetch_member(cursor, data.workspace_id, data.user_id):
                raise NotFoundError("Recipient is not a member of this workspace")
            if data.task_id is not None:
                task = cursor.execute("SELECT workspace_id FROM tasks WHERE id = ?", (data.task_id,)).fetchone()
                if not task:
                    raise NotFoundError("Task not found")
                if task["workspace_id"] != data.workspace_id:
                    raise PermissionDeniedError("Task belongs to another workspace")
            notification_id = cls._insert(
                cursor,
                user_id=data.user_id,
                type_=data.type,
                title=data.title,
                message=data.message,
                workspace_id=data.workspace_id,
                task_id=data.task_id,
                message_id=data.message_id,
                mentioned_by=data.mentioned_by if data.mentioned_by is not None else current_user["user_id"],
            )
            conn.commit()
            row = cursor.execute(NOTIFICATION_SELECT + " WHERE n.id = ?", (notification_id,)).fetchone()
        finally:
            conn.close()
        return _notification_from_row(row)

    # ------------------------------------------------------------------
    # Side effects of task mutations
    # ------------------------------------------------------------------
    @classmethod
    async def notify_mentions(
        cls,
        task: Dict,
        message_id: int,
        content: str,
        author: Dict,
        members: Iterable[Dict],
    ) -> List[int]:
        """Create one MENTION notification per mentioned user except the author.

        Parameters
        ----------
        task : dict
            Row with at least ``id``, ``name`` and ``workspace_id``.
        message_id : int
            The message containing the mentions.
        content : str
            Message text.
        author : dict
            The current user dict (``user_id``, ``full_name``, ``email``).
        members : Iterable[dict]
            Workspace members (``user_id``, ``name``) used for resolution.

        Returns
        -------
        List[int]
            User ids that were notified.
        """
        author_id = author["user_id"]
        author_name = author.get("full_name") or author.get("email") or "Someone"
        mentions = extract_mentions(content, members, current_user_id=author_id)
        recipients = [uid for uid in get_mentioned_user_ids(mentions) if uid != author_id]
        if not recipients:
            return []
        title = f"{author_name} mentioned you"
        text = mention_message(author_name, task["name"], content)
        notified: List[int] = []
        conn = get_connection()
        try:
            cursor = conn.cursor()
            for user_id in recipients:
                try:
                    cls._insert(
                        cursor,
                        user_id=user_id,
                        type_=NotificationType.MENTION,
                        title=title,
                        message=text,
                        workspace_id=task["workspace_id"],
                        task_id=task["id"],
                        message_id=message_id,
                        mentioned_by=author_id,
                    )
                    notified.append(user_id)
                except sqlite3.Error:
                    logger.exception("Failed to create mention notification for user %s", user_id)
            conn.commit()
        except Exception:
            logger.exception("Failed to create mention notifications for task %s", task["id"])
            return []
        finally:
            conn.close()
        return notified

    @classmethod
    async def _notify_single(
        cls,
        recipient_user_id: Optional[int],
        actor: Dict,
        task: Dict,
        type_: NotificationType,
        title: str,
        message: str,
    ) -> Optional[int]:
        if recipient_user_id is None or recipient_user_id == actor["user_id"]:
            return None
        conn = get_connection()
        try:
            cursor = conn.cursor()
            notification_id = cls._insert(
                cursor,
                user_id=recipient_user_id,
                type_=type_,
                title=title,
                message=message,
                workspace_id=task["workspace_id"],
                task_id=task["id"],
                mentioned_by=actor["user_id"],
            )
            conn.commit()
            return notification_id
        except Exception:
            logger.exception("Failed to create %s notification for task %s", type_.value, task["id"])
            return None
        finally:
            conn.close()

    @classmethod
    async def notify_task_assigned(cls, task: Dict, assignee_user_id: Optional[int], assigner: Dict) -> Optional[int]:
        """Tell the new assignee about the task.  Self‑assignment is silent."""
        name = assigner.get("full_name") or assigner.get("email") or "Someone"
        return await cls._notify_single(
            assignee_user_id,
            assigner,
            task,
            NotificationType.TASK_ASSIGNED,
            "Task assigned to you",
            f'{name} assigned you to task "{task["name"]}"',
        )

    @classmethod
    async def notify_reviewer_assigned(cls, task: Dict, reviewer_user_id: Optional[int], assigner: Dict) -> Optional[int]:
        name = assigner.get("full_name") or assigner.get("email") or "Someone"
        return await cls._notify_single(
            reviewer_user_id,
            assigner,
            task,
            NotificationType.REVIEWER_ASSIGNED,
            "Assigned as reviewer",
            f'{name} assigned you as reviewer for task "{task["name"]}"',
        )

    # ------------------------------------------------------------------
    # Reading and acknowledging
    # ------------------------------------------------------------------
    @classmethod
    async def list_notifications(
        cls,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        type_: Optional[NotificationType] = None,
    ) -> NotificationPage:
        """Return one page of the user's notifications, newest first."""
        where = "n.user_id = ?"
        params: List = [user_id]
        if type_ is not None:
            where += " AND n.type = ?"
            params.append(type_.value)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(
                f"SELECT COUNT(*) FROM notifications n WHERE {where}", params
            ).fetchone()[0]
            rows = cursor.execute(
                NOTIFICATION_SELECT + f" WHERE {where} ORDER BY n.created_at DESC, n.id DESC LIMIT ? OFFSET ?",
                (*params, limit, (page - 1) * limit),
            ).fetchall()
        finally:
            conn.close()
        total_pages = math.ceil(total / limit) if limit else 0
        return NotificationPage(
            documents=[_notification_from_row(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    @classmethod
    async def mark_as_read(cls, user_id: int, request: MarkReadRequest) -> int:
        """Mark matching unread notifications as read; return how many changed."""
        if not request.has_selector:
            raise ValidationError("Must specify notification IDs, task ID, or mark all")
        where = ["user_id = ?", "is_read = 0"]
        params: List = [user_id]
        if request.notification_ids:
            where.append(f"id IN ({', '.join('?' for _ in request.notification_ids)})")
            params.extend(request.notification_ids)
        if request.task_id is not None:
            where.append("task_id = ?")
            params.append(request.task_id)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE notifications SET is_read = 1, read_at = ? WHERE {' AND '.join(where)}",
                (to_db(utcnow()), *params),
            )
            updated = cursor.rowcount
            conn.commit()
        finally:
            conn.close()
        return updated

    @classmethod
    async def unread_count(cls, user_id: int) -> int:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        return row[0]
