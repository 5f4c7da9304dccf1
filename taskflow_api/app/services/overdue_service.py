"""
Overdue task sweep.

Tasks whose due date lies before the start of today (business timezone)
and that are still open (``TODO``, ``IN_PROGRESS`` or ``IN_REVIEW``) are
moved back to ``BACKLOG``.  Each move is its own transaction together
with its ``STATUS_CHANGED`` history entry.  The update is conditional on
the status read earlier, so a task changed concurrently by a user is
left alone.  ``BACKLOG`` is not an eligible status, which makes a second
sweep without new overdue tasks a no‑op.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.core.security import ROLE_SUPER_ADMIN
from taskflow_api.app.core.timeutils import from_db, local_zone, start_of_local_day, to_db, utcnow
from taskflow_api.app.schemas.task import OVERDUE_ELIGIBLE_STATUSES, TaskHistoryAction, TaskStatus
from taskflow_api.app.services.history_service import TaskHistoryService

logger = logging.getLogger(__name__)

_STATUS_PLACEHOLDERS = ", ".join("?" for _ in OVERDUE_ELIGIBLE_STATUSES)
_STATUS_VALUES = tuple(s.value for s in OVERDUE_ELIGIBLE_STATUSES)


class OverdueTaskService:
    """Moves overdue open tasks to the backlog."""

    @classmethod
    async def update_overdue_tasks(cls, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run the sweep.

        Returns
        -------
        dict
            ``{"total", "updated_count", "success", "failed"}`` where
            ``total`` is the number of tasks selected.
        """
        now = now or utcnow()
        cutoff = to_db(start_of_local_day(now))
        conn = get_connection()
        try:
            system_user = conn.execute(
                "SELECT id FROM users WHERE role_id = ? AND disabled = 0 ORDER BY id ASC LIMIT 1",
                (ROLE_SUPER_ADMIN,),
            ).fetchone()
            if not system_user:
                raise RuntimeError("No superadmin user found to perform automated task updates")
            tasks = conn.execute(
                f"""
                SELECT id, status, due_date FROM tasks
                WHERE status IN ({_STATUS_PLACEHOLDERS}) AND due_date IS NOT NULL AND due_date < ?
                ORDER BY id ASC
                """,
                (*_STATUS_VALUES, cutoff),
            ).fetchall()

            logger.info("[CRON] Found %d overdue tasks to update", len(tasks))
            updated = 0
            failed = 0
            for task in tasks:
                try:
                    with transaction(conn) as cursor:
                        cursor.execute(
                            "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                            (TaskStatus.BACKLOG.value, to_db(now), task["id"], task["status"]),
                        )
                        if cursor.rowcount == 0:
                            continue
                        due_local = from_db(task["due_date"]).astimezone(local_zone()).date().isoformat()
                        TaskHistoryService.record(
                            cursor,
                            task["id"],
                            system_user["id"],
                            TaskHistoryAction.STATUS_CHANGED,
                            field="status",
                            old_value=task["status"],
                            new_value=TaskStatus.BACKLOG.value,
                            details=(
                                f"Task automatically moved to backlog due to overdue date ({due_local}). "
                                f"Previous status: {task['status']}. (Automated system update)"
                            ),
                        )
                    updated += 1
                except Exception:
                    logger.exception("[CRON] Failed to update overdue task %s", task["id"])
                    failed += 1
        finally:
            conn.close()

        logger.info("[CRON] Overdue tasks update completed. Success: %d, Failed: %d", updated, failed)
        return {"total": len(tasks), "updated_count": updated, "success": updated, "failed": failed}

    @classmethod
    async def count_overdue_tasks(cls, now: Optional[datetime] = None) -> int:
        conn = get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT COUNT(*) FROM tasks
                WHERE status IN ({_STATUS_PLACEHOLDERS}) AND due_date IS NOT NULL AND due_date < ?
                """,
                (*_STATUS_VALUES, to_db(start_of_local_day(now or utcnow()))),
            ).fetchone()
        finally:
            conn.close()
        return row[0]
