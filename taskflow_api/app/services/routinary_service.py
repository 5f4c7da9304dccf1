"""
Creation of recurring ("routinary") tasks.

Every routinary service has a frequency and a ``routinary_next_run_date``.
When the job runs it picks every service whose next run date falls on
or before the end of today (business timezone) and, per service:

* claims the run by moving ``routinary_next_run_date`` forward with a
  compare‑and‑swap update.  The update only matches while the column
  still holds the value read at the start of the run, so two
  overlapping runs (the daily schedule and a manual trigger) can never
  both create tasks for the same window;
* creates today's task (two for ``BIDAILY``), unless a task with the
  same title already exists for the service.

A service that missed several cycles, e.g. because the server was down,
gets a single catch‑up run: one set of tasks is created and the next
run date jumps to the first cadence boundary after today.  Missed
cycles are not replayed.

Each service is processed in its own transaction and failures are
collected per service; one broken service never stops the batch.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.core.security import ROLE_SUPER_ADMIN
from taskflow_api.app.core.timeutils import (
    add_business_days,
    add_months,
    end_of_local_day,
    from_db,
    local_zone,
    to_db,
    utcnow,
)
from taskflow_api.app.schemas.service import RoutinaryFrequency
from taskflow_api.app.schemas.task import TaskHistoryAction, TaskStatus
from taskflow_api.app.services.checklist_service import build_task_checklist, dump_checklist
from taskflow_api.app.services.history_service import TaskHistoryService
from taskflow_api.app.services.task_number import generate_task_number

logger = logging.getLogger(__name__)

AUTO_TASK_DESCRIPTION = "Auto Generated Task"
AUTO_TASK_POSITION = 1000
DEFAULT_SLA_DAYS = 7
SAME_DAY_FREQUENCIES = (RoutinaryFrequency.DAILY, RoutinaryFrequency.BIDAILY)


def add_frequency_interval(value: datetime, frequency: RoutinaryFrequency) -> datetime:
    """Advance ``value`` by one cadence unit."""
    if frequency in SAME_DAY_FREQUENCIES:
        return value + timedelta(days=1)
    if frequency == RoutinaryFrequency.WEEKLY:
        return value + timedelta(weeks=1)
    if frequency == RoutinaryFrequency.QUARTERLY:
        return add_months(value, 3)
    if frequency == RoutinaryFrequency.BIYEARLY:
        return add_months(value, 6)
    if frequency == RoutinaryFrequency.YEARLY:
        return add_months(value, 12)
    return add_months(value, 1)


def calculate_next_run_date(previous: datetime, frequency: RoutinaryFrequency, now: datetime) -> datetime:
    """First cadence boundary after the end of today, starting from ``previous``.

    At least one interval is always added, so the result is strictly
    later than ``previous`` and strictly later than ``now``.  Intervals
    are added in local time so month boundaries stay on the local date.
    """
    today_end = end_of_local_day(now)
    next_date = add_frequency_interval(previous.astimezone(local_zone()), frequency)
    while next_date <= today_end:
        next_date = add_frequency_interval(next_date, frequency)
    return next_date.astimezone(timezone.utc)


def build_task_titles(service_name: str, frequency: RoutinaryFrequency, now: datetime) -> List[tuple]:
    """Return ``(title, suffix)`` pairs for the tasks of one run.

    Dates in titles are local dates, e.g. ``"Pump Check - December 6, 2025"``
    (daily), ``"Pump Check - December 6 (1st)"`` (bi‑daily) or
    ``"Pump Check - July 2026"`` (everything else).
    """
    local = now.astimezone(local_zone())
    if frequency == RoutinaryFrequency.BIDAILY:
        day = f"{local:%B} {local.day}"
        return [(f"{service_name} - {day} ({suffix})", suffix) for suffix in ("1st", "2nd")]
    if frequency == RoutinaryFrequency.DAILY:
        return [(f"{service_name} - {local:%B} {local.day}, {local.year}", None)]
    return [(f"{service_name} - {local:%B} {local.year}", None)]


def calculate_due_date(
    sla_days: Optional[int],
    include_weekends: bool,
    frequency: RoutinaryFrequency,
    now: datetime,
) -> datetime:
    """Daily cadences are due at the end of today; others follow the SLA."""
    if frequency in SAME_DAY_FREQUENCIES:
        return end_of_local_day(now)
    if not sla_days:
        return now + timedelta(days=DEFAULT_SLA_DAYS)
    if include_weekends:
        return now + timedelta(days=sla_days)
    # Weekends are local weekends.
    return add_business_days(now.astimezone(local_zone()), sla_days)


class RoutinaryTaskService:
    """Materialises tasks for routinary services."""

    @staticmethod
    def _system_user_id(cursor: sqlite3.Cursor) -> int:
        row = cursor.execute(
            "SELECT id FROM users WHERE role_id = ? AND disabled = 0 ORDER BY id ASC LIMIT 1",
            (ROLE_SUPER_ADMIN,),
        ).fetchone()
        if not row:
            raise RuntimeError("No superadmin user found to perform automated task creation")
        return row["id"]

    @classmethod
    async def process_service(
        cls,
        service: Dict[str, Any],
        system_user_id: int,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Run one service.

        ``service`` is the row as read at the start of the batch; its
        ``routinary_next_run_date`` is the expected value of the
        compare‑and‑swap.

        Returns
        -------
        dict
            ``{"status": "created" | "skipped", "created": n, "next_run_date": ...}``
        """
        now = now or utcnow()
        frequency = RoutinaryFrequency(service["routinary_frequency"])
        expected_next_run = service["routinary_next_run_date"]
        previous = from_db(expected_next_run) or now
        next_run = calculate_next_run_date(previous, frequency, now)
        due_date = calculate_due_date(service["sla_days"], bool(service["include_weekends"]), frequency, now)
        titles = build_task_titles(service["name"], frequency, now)

        created: List[str] = []
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                cursor.execute(
                    """
                    UPDATE services
                    SET routinary_next_run_date = ?, routinary_last_run_date = ?, updated_at = ?
                    WHERE id = ? AND is_routinary = 1 AND routinary_next_run_date = ?
                    """,
                    (to_db(next_run), to_db(now), to_db(now), service["id"], expected_next_run),
                )
                if cursor.rowcount == 0:
                    logger.info(
                        "[CRON] Service %s (%s) already claimed by another run, skipping",
                        service["id"],
                        service["name"],
                    )
                    return {"status": "skipped", "created": 0, "next_run_date": None}

                checklist = dump_checklist(build_task_checklist(cursor, service["id"]))
                for title, suffix in titles:
                    exists = cursor.execute(
                        "SELECT 1 FROM tasks WHERE service_id = ? AND name = ?",
                        (service["id"], title),
                    ).fetchone()
                    if exists:
                        logger.info("[CRON] Task %r already exists for service %s", title, service["name"])
                        continue
                    task_number = generate_task_number(cursor)
                    cursor.execute(
                        """
                        INSERT INTO tasks (
                            task_number, name, description, status, workspace_id, service_id,
                            creator_id, due_date, position, followed_ids, is_confidential,
                            checklist, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '[]', 0, ?, ?, ?)
                        """,
                        (
                            task_number,
                            title,
                            AUTO_TASK_DESCRIPTION,
                            TaskStatus.TODO.value,
                            service["workspace_id"],
                            service["id"],
                            system_user_id,
                            to_db(due_date),
                            AUTO_TASK_POSITION,
                            checklist,
                            to_db(now),
                            to_db(now),
                        ),
                    )
                    label = f"{frequency.value} - {suffix}" if suffix else frequency.value
                    TaskHistoryService.record(
                        cursor,
                        cursor.lastrowid,
                        system_user_id,
                        TaskHistoryAction.CREATED,
                        details=(
                            "Automatically created by routinary schedule for service: "
                            f"{service['name']} ({label})"
                        ),
                    )
                    logger.info("[CRON] Created routinary task %r (%s)", title, task_number)
                    created.append(task_number)
        finally:
            conn.close()

        logger.info("[CRON] Service %s next run: %s", service["name"], next_run.isoformat())
        return {
            "status": "created" if created else "skipped",
            "created": len(created),
            "next_run_date": next_run,
        }

    @classmethod
    async def create_routinary_tasks(cls, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Process every due routinary service.

        Raises ``RuntimeError`` when no super administrator exists to act
        as the author of the generated tasks.
        """
        now = now or utcnow()
        today_end = to_db(end_of_local_day(now))
        conn = get_connection()
        try:
            cursor = conn.cursor()
            system_user_id = cls._system_user_id(cursor)
            services = [
                dict(r)
                for r in cursor.execute(
                    """
                    SELECT * FROM services
                    WHERE is_routinary = 1
                      AND routinary_frequency IS NOT NULL
                      AND routinary_next_run_date IS NOT NULL
                      AND routinary_next_run_date <= ?
                    ORDER BY routinary_next_run_date ASC, id ASC
                    """,
                    (today_end,),
                ).fetchall()
            ]
        finally:
            conn.close()

        logger.info("[CRON] Found %d routinary services due on or before %s", len(services), today_end)
        result: Dict[str, Any] = {"total": len(services), "created": 0, "skipped": 0, "failed": 0, "errors": []}
        for service in services:
            try:
                outcome = await cls.process_service(service, system_user_id, now)
            except Exception as exc:
                logger.exception("[CRON] Failed to process routinary service %s (%s)", service["id"], service["name"])
                result["failed"] += 1
                result["errors"].append({"service_id": service["id"], "error": str(exc)})
                continue
            if outcome["status"] == "skipped":
                result["skipped"] += 1
            result["created"] += outcome["created"]

        logger.info(
            "[CRON] Routinary tasks job completed. Created: %s, Skipped: %s, Failed: %s",
            result["created"],
            result["skipped"],
            result["failed"],
        )
        return result

    @classmethod
    async def list_routinary_services(cls) -> List[Dict[str, Any]]:
        """Overview of all routinary services ordered by next run date."""
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT s.id, s.name, s.routinary_frequency, s.routinary_start_date,
                       s.routinary_next_run_date, s.routinary_last_run_date,
                       w.name AS workspace_name
                FROM services s
                JOIN workspaces w ON w.id = s.workspace_id
                WHERE s.is_routinary = 1
                ORDER BY s.routinary_next_run_date ASC
                """
            ).fetchall()
        finally:
            conn.close()
        services = []
        for row in rows:
            data = dict(row)
            for key in ("routinary_start_date", "routinary_next_run_date", "routinary_last_run_date"):
                value = from_db(data[key])
                data[key] = value.isoformat() if value else None
            services.append(data)
        return services

    @classmethod
    async def count_due_services(cls, now: Optional[datetime] = None) -> int:
        conn = get_connection()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM services
                WHERE is_routinary = 1 AND routinary_frequency IS NOT NULL
                  AND routinary_next_run_date <= ?
                """,
                (to_db(end_of_local_day(now or utcnow())),),
            ).fetchone()
        finally:
            conn.close()
        return row[0]
