# tests/test_scheduler.py

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from taskflow_api.app.core.scheduler import JobScheduler

from .fakes import FakeClock, FakeJob

MANILA = ZoneInfo("Asia/Manila")


@pytest.fixture()
def clock() -> FakeClock:
    # 10:00 in Manila.
    return FakeClock(datetime(2025, 12, 6, 2, 0, tzinfo=timezone.utc))


def make_scheduler(clock: FakeClock, job: FakeJob, hour: int = 0, minute: int = 0) -> JobScheduler:
    scheduler = JobScheduler("Asia/Manila", clock=clock.now)
    scheduler.add_job("routinary-tasks", job, hour=hour, minute=minute, count_key="created")
    return scheduler


def test_next_run_is_next_local_midnight(clock: FakeClock) -> None:
    scheduler = make_scheduler(clock, FakeJob())

    assert scheduler.next_run("routinary-tasks") == datetime(2025, 12, 7, 0, 0, tzinfo=MANILA)


def test_next_run_later_today(clock: FakeClock) -> None:
    scheduler = make_scheduler(clock, FakeJob(), hour=18, minute=30)

    assert scheduler.next_run("routinary-tasks") == datetime(2025, 12, 6, 18, 30, tzinfo=MANILA)
    assert scheduler.get_job("routinary-tasks").cron_expression == "30 18 * * *"


def test_duplicate_and_unknown_jobs(clock: FakeClock) -> None:
    scheduler = make_scheduler(clock, FakeJob())

    with pytest.raises(ValueError):
        scheduler.add_job("routinary-tasks", FakeJob())
    with pytest.raises(KeyError):
        scheduler.get_job("missing")


@pytest.mark.asyncio
async def test_run_job_records_success(clock: FakeClock) -> None:
    job = FakeJob(result={"created": 3, "failed": 0})
    scheduler = make_scheduler(clock, job)

    result = await scheduler.run_job("routinary-tasks")

    assert result == {"created": 3, "failed": 0}
    last = scheduler.status("routinary-tasks")["last_execution"]
    assert last["success"] is True
    assert last["count"] == 3
    assert last["error"] is None


@pytest.mark.asyncio
async def test_run_job_records_and_reraises_failure(clock: FakeClock) -> None:
    scheduler = make_scheduler(clock, FakeJob(error=RuntimeError("No superadmin user found")))

    with pytest.raises(RuntimeError):
        await scheduler.run_job("routinary-tasks")

    status = scheduler.status("routinary-tasks")
    assert status["is_running"] is False
    assert status["next_execution"] is None
    assert status["last_execution"]["success"] is False
    assert status["last_execution"]["error"] == "No superadmin user found"


@pytest.mark.asyncio
async def test_start_and_stop(clock: FakeClock) -> None:
    job = FakeJob()
    scheduler = make_scheduler(clock, job)

    scheduler.start()
    await asyncio.sleep(0)
    assert scheduler.is_running is True
    assert scheduler.status("routinary-tasks")["next_execution"] == "2025-12-07T00:00:00+08:00"

    await scheduler.stop()

    assert scheduler.is_running is False
    # The loop was sleeping until midnight, so nothing ran.
    assert job.calls == 0
