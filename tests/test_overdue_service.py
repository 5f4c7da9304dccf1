# tests/test_overdue_service.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from taskflow_api.app.services.overdue_service import OverdueTaskService

from . import factories

# Start of 6 December 2025 in Manila.
START_OF_TODAY = datetime(2025, 12, 5, 16, 0, tzinfo=timezone.utc)


def status_of(task: dict) -> str:
    return factories.fetch_one("SELECT status FROM tasks WHERE id = ?", (task["id"],))["status"]


@pytest.mark.asyncio
async def test_open_overdue_tasks_move_to_backlog(super_admin: dict, workspace: dict, now: datetime) -> None:
    yesterday = START_OF_TODAY - timedelta(hours=1)
    todo = factories.create_task(workspace, "Todo", status="TODO", due_date=yesterday)
    doing = factories.create_task(workspace, "Doing", status="IN_PROGRESS", due_date=yesterday)
    review = factories.create_task(workspace, "Review", status="IN_REVIEW", due_date=yesterday)

    result = await OverdueTaskService.update_overdue_tasks(now)

    assert result == {"total": 3, "updated_count": 3, "success": 3, "failed": 0}
    assert {status_of(t) for t in (todo, doing, review)} == {"BACKLOG"}


@pytest.mark.asyncio
async def test_closed_and_current_tasks_are_left_alone(super_admin: dict, workspace: dict, now: datetime) -> None:
    yesterday = START_OF_TODAY - timedelta(hours=1)
    done = factories.create_task(workspace, "Done", status="DONE", due_date=yesterday)
    archived = factories.create_task(workspace, "Archived", status="ARCHIVED", due_date=yesterday)
    due_today = factories.create_task(workspace, "Due today", status="TODO", due_date=START_OF_TODAY)
    no_due = factories.create_task(workspace, "No due date", status="TODO")

    result = await OverdueTaskService.update_overdue_tasks(now)

    assert result["total"] == 0
    assert status_of(done) == "DONE"
    assert status_of(archived) == "ARCHIVED"
    assert status_of(due_today) == "TODO"
    assert status_of(no_due) == "TODO"


@pytest.mark.asyncio
async def test_sweep_is_idempotent(super_admin: dict, workspace: dict, now: datetime) -> None:
    factories.create_task(workspace, "Todo", status="TODO", due_date=START_OF_TODAY - timedelta(days=2))
    await OverdueTaskService.update_overdue_tasks(now)

    second = await OverdueTaskService.update_overdue_tasks(now)

    assert second["updated_count"] == 0
    assert second["total"] == 0


@pytest.mark.asyncio
async def test_history_entry_written(super_admin: dict, workspace: dict, now: datetime) -> None:
    task = factories.create_task(workspace, "Todo", status="IN_PROGRESS", due_date=START_OF_TODAY - timedelta(days=1))

    await OverdueTaskService.update_overdue_tasks(now)

    (entry,) = factories.fetch_all("SELECT * FROM task_history WHERE task_id = ?", (task["id"],))
    assert entry["action"] == "STATUS_CHANGED"
    assert entry["field"] == "status"
    assert entry["old_value"] == "IN_PROGRESS"
    assert entry["new_value"] == "BACKLOG"
    assert entry["user_id"] == super_admin["user_id"]
    assert "(2025-12-05)" in entry["details"]


@pytest.mark.asyncio
async def test_count_matches_pending_sweep(super_admin: dict, workspace: dict, now: datetime) -> None:
    factories.create_task(workspace, "Todo", status="TODO", due_date=START_OF_TODAY - timedelta(days=1))
    factories.create_task(workspace, "Later", status="TODO", due_date=START_OF_TODAY + timedelta(days=1))

    assert await OverdueTaskService.count_overdue_tasks(now) == 1


@pytest.mark.asyncio
async def test_requires_super_admin(workspace: dict, now: datetime) -> None:
    with pytest.raises(RuntimeError):
        await OverdueTaskService.update_overdue_tasks(now)
