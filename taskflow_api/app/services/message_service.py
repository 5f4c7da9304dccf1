"""
Chat‑style messages on a task.

Posting a message is sequenced: the message is stored and committed,
then its mentions are resolved against the workspace members and one
notification is created per mentioned user.  A failure while notifying
is logged and the message stays posted.
"""

import logging
from typing import Dict, List

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.timeutils import from_db, to_db, utcnow
from taskflow_api.app.schemas.task import TaskMessageCreate, TaskMessageRead
from taskflow_api.app.services.notification_service import NotificationService
from taskflow_api.app.services.task_service import fetch_visible_task
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


class TaskMessageService:
    """Post and list task messages."""

    @classmethod
    async def create_message(cls, task_id: int, data: TaskMessageCreate, current_user: Dict) -> TaskMessageRead:
        sender_name = current_user.get("full_name") or current_user["email"]
        conn = get_connection()
        try:
            cursor = conn.cursor()
            task, _ = fetch_visible_task(cursor, task_id, current_user)
            cursor.execute(
                """
                INSERT INTO task_messages (task_id, workspace_id, sender_id, sender_name, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (task_id, task["workspace_id"], current_user["user_id"], sender_name, data.content, to_db(utcnow())),
            )
            message_id = cursor.lastrowid
            conn.commit()
            row = cursor.execute("SELECT * FROM task_messages WHERE id = ?", (message_id,)).fetchone()
            members = WorkspaceService.fetch_members(cursor, task["workspace_id"])
        finally:
            conn.close()

        notified = await NotificationService.notify_mentions(task, message_id, data.content, current_user, members)
        if notified:
            logger.info("Message %s on task %s notified %d users", message_id, task_id, len(notified))
        message = dict(row)
        message["created_at"] = from_db(message["created_at"])
        return TaskMessageRead(**message, mentioned_user_ids=notified)

    @classmethod
    async def list_messages(cls, task_id: int, current_user: Dict) -> List[TaskMessageRead]:
        """Messages of a task, oldest first."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            fetch_visible_task(cursor, task_id, current_user)
            rows = cursor.execute(
                "SELECT * FROM task_messages WHERE task_id = ? ORDER BY created_at ASC, id ASC",
                (task_id,),
            ).fetchall()
        finally:
            conn.close()
        result = []
        for row in rows:
            data = dict(row)
            data["created_at"] = from_db(data["created_at"])
            result.append(TaskMessageRead(**data))
        return result
