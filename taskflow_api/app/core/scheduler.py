"""
In‑process scheduler for daily background jobs.

The scheduler owns one asyncio task per registered job.  Each task
sleeps until the job's next wall‑clock run time in the business
timezone, runs it and goes back to sleep.  ``start`` and ``stop`` are
wired to the application's startup and shutdown events; an instance
lives on ``app.state.scheduler`` so endpoints can trigger jobs manually
through ``run_job`` and read their status.

Only one scheduler should be started per deployment.  Manual triggers
and scheduled runs of the same job may still overlap; the jobs
themselves are written to tolerate that.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from .timeutils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass
class ExecutionLog:
    timestamp: datetime
    success: bool
    count: int
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "count": self.count,
            "error": self.error,
        }


@dataclass
class DailyJob:
    name: str
    func: JobFunc
    hour: int = 0
    minute: int = 0
    # Key of the job's result dict reported as ``count`` in the execution log.
    count_key: str = "created"
    last_execution: Optional[ExecutionLog] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def cron_expression(self) -> str:
        return f"{self.minute} {self.hour} * * *"


class JobScheduler:
    """Runs registered jobs once a day at a fixed local time."""

    def __init__(self, tz_name: str, clock: Callable[[], datetime] = utcnow) -> None:
        self.tz_name = tz_name
        self.zone = ZoneInfo(tz_name)
        self._clock = clock
        self._jobs: Dict[str, DailyJob] = {}

    def add_job(self, name: str, func: JobFunc, hour: int = 0, minute: int = 0, count_key: str = "created") -> None:
        if name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")
        self._jobs[name] = DailyJob(name=name, func=func, hour=hour, minute=minute, count_key=count_key)

    def get_job(self, name: str) -> DailyJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown job {name!r}") from None

    @property
    def is_running(self) -> bool:
        return any(job.task is not None and not job.task.done() for job in self._jobs.values())

    def next_run(self, name: str, now: Optional[datetime] = None) -> datetime:
        """Next local occurrence of the job's hour:minute strictly after ``now``."""
        job = self.get_job(name)
        local_now = ensure_aware(now or self._clock()).astimezone(self.zone)
        candidate = local_now.replace(hour=job.hour, minute=job.minute, second=0, microsecond=0)
        if candidate <= local_now:
            candidate = candidate + timedelta(days=1)
        return candidate

    def start(self) -> None:
        """Spawn the job loops.  Must be called from a running event loop."""
        for job in self._jobs.values():
            if job.task is not None and not job.task.done():
                logger.info("[CRON] Job %s already running", job.name)
                continue
            job.task = asyncio.create_task(self._run_forever(job), name=f"cron:{job.name}")
            logger.info(
                "[CRON] Scheduled %s at %s (%s), next run %s",
                job.name,
                job.cron_expression,
                self.tz_name,
                self.next_run(job.name).isoformat(),
            )

    async def stop(self) -> None:
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
        if tasks:
            logger.info("[CRON] Scheduler stopped")

    async def run_job(self, name: str) -> Dict[str, Any]:
        """Execute a job now and record the outcome.  Errors are re‑raised."""
        job = self.get_job(name)
        logger.info("[CRON] Starting %s at %s", name, self._clock().isoformat())
        try:
            result = await job.func()
        except Exception as exc:
            job.last_execution = ExecutionLog(
                timestamp=self._clock(), success=False, count=0, error=str(exc)
            )
            raise
        job.last_execution = ExecutionLog(
            timestamp=self._clock(), success=True, count=int(result.get(job.count_key, 0))
        )
        logger.info("[CRON] %s completed: %s", name, result)
        return result

    def status(self, name: str) -> Dict[str, Any]:
        job = self.get_job(name)
        running = job.task is not None and not job.task.done()
        return {
            "is_running": running,
            "cron_expression": job.cron_expression,
            "timezone": self.tz_name,
            "next_execution": self.next_run(name).isoformat() if running else None,
            "last_execution": job.last_execution.as_dict() if job.last_execution else None,
        }

    async def _run_forever(self, job: DailyJob) -> None:
        while True:
            now = self._clock()
            delay = (self.next_run(job.name, now) - ensure_aware(now)).total_seconds()
            await asyncio.sleep(max(delay, 0))
            try:
                await self.run_job(job.name)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[CRON] Scheduled run of %s failed", job.name)
