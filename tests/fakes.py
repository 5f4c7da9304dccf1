# tests/fakes.py

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List

from taskflow_api.app.core.rate_limiter import MemoryRateLimitStore


class FakeClock:
    """
    Manually advanced clock.

    Call it for epoch seconds (rate limiter) or use ``now()`` for an
    aware datetime (scheduler).
    """

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current.timestamp()

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current = self.current + timedelta(**delta)


class RecordingStore(MemoryRateLimitStore):
    """Memory store that remembers which keys were deleted."""

    def __init__(self) -> None:
        super().__init__()
        self.deleted: List[str] = []

    def delete(self, key: str) -> None:
        self.deleted.append(key)
        super().delete(key)


class FakeJob:
    """Async job returning a canned result or raising."""

    def __init__(self, result: Dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.result = result or {}
        self.error = error
        self.calls = 0

    async def __call__(self) -> Dict[str, Any]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result
