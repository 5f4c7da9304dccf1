"""Task history (activity log) recording and listing."""

import logging
import sqlite3
from typing import Dict, List, Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.timeutils import from_db, to_db, utcnow
from taskflow_api.app.schemas.task import TaskHistoryAction, TaskHistoryRead

logger = logging.getLogger(__name__)


class TaskHistoryService:
    """Append‑only log of changes made to a task."""

    @staticmethod
    def record(
        cursor: sqlite3.Cursor,
        task_id: int,
        user_id: Optional[int],
        action: TaskHistoryAction,
        field: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        details: Optional[str] = None,
    ) -> int:
        """Insert a history entry on the caller's cursor and return its id."""
        cursor.execute(
            """
            INSERT INTO task_history (task_id, user_id, action, field, old_value, new_value, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                user_id,
                action.value,
                field,
                None if old_value is None else str(old_value),
                None if new_value is None else str(new_value),
                details,
                to_db(utcnow()),
            ),
        )
        return cursor.lastrowid

    @classmethod
    async def record_safely(cls, task_id: int, user_id: Optional[int], entries: List[Dict]) -> None:
        """Write entries in their own transaction; failures are logged only.

        Used after the primary change has been committed, so a failing
        history write never undoes it.
        """
        if not entries:
            return
        conn = get_connection()
        try:
            cursor = conn.cursor()
            for entry in entries:
                cls.record(cursor, task_id, user_id, **entry)
            conn.commit()
        except Exception:
            logger.exception("Failed to record history for task %s", task_id)
        finally:
            conn.close()

    @classmethod
    async def list_history(cls, task_id: int) -> List[TaskHistoryRead]:
        """Entries for a task, newest first.  Access is checked by the caller."""
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT h.*, COALESCE(u.full_name, u.email) AS user_name
                FROM task_history h
                LEFT JOIN users u ON u.id = h.user_id
                WHERE h.task_id = ?
                ORDER BY h.created_at DESC, h.id DESC
                """,
                (task_id,),
            ).fetchall()
        finally:
            conn.close()
        result = []
        for row in rows:
            data = dict(row)
            data["created_at"] = from_db(data.get("created_at"))
            result.append(TaskHistoryRead(**data))
        return result
