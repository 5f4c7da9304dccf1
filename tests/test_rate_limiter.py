# tests/test_rate_limiter.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskflow_api.app.core.rate_limiter import RateLimiter, format_remaining_time

from .fakes import FakeClock, RecordingStore

DAY = 24 * 60 * 60


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 12, 6, 2, 0, tzinfo=timezone.utc))


def test_second_request_in_window_is_denied(clock: FakeClock) -> None:
    limiter = RateLimiter(window_seconds=DAY, max_requests=1, clock=clock)

    assert limiter.is_allowed("a@example.com") is True
    assert limiter.is_allowed("a@example.com") is False
    # Other identifiers have their own window.
    assert limiter.is_allowed("b@example.com") is True


def test_window_expiry_opens_new_window(clock: FakeClock) -> None:
    limiter = RateLimiter(window_seconds=DAY, max_requests=1, clock=clock)
    limiter.is_allowed("a@example.com")

    clock.advance(hours=23, minutes=59)
    assert limiter.is_allowed("a@example.com") is False

    clock.advance(minutes=1)
    assert limiter.is_allowed("a@example.com") is True


def test_remaining_time_counts_down(clock: FakeClock) -> None:
    limiter = RateLimiter(window_seconds=DAY, max_requests=1, clock=clock)
    assert limiter.get_remaining_time("a@example.com") == 0

    limiter.is_allowed("a@example.com")
    clock.advance(hours=2)

    assert limiter.get_remaining_time("a@example.com") == 22 * 60 * 60 * 1000


def test_reset_refunds_attempt(clock: FakeClock) -> None:
    limiter = RateLimiter(window_seconds=DAY, max_requests=1, clock=clock)
    limiter.is_allowed("a@example.com")

    limiter.reset("a@example.com")

    assert limiter.is_allowed("a@example.com") is True


def test_expired_entries_are_swept_on_check(clock: FakeClock) -> None:
    store = RecordingStore()
    limiter = RateLimiter(window_seconds=60, max_requests=1, store=store, clock=clock)
    limiter.is_allowed("old@example.com")

    clock.advance(seconds=61)
    limiter.is_allowed("new@example.com")

    assert "old@example.com" in store.deleted
    assert store.get("old@example.com") is None
    assert len(store) == 1


def test_max_requests_above_one(clock: FakeClock) -> None:
    limiter = RateLimiter(window_seconds=60, max_requests=3, clock=clock)

    results = [limiter.is_allowed("a@example.com") for _ in range(4)]

    assert results == [True, True, True, False]


def test_invalid_configuration_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter(window_seconds=0, max_requests=1)


@pytest.mark.parametrize(
    "ms, expected",
    [
        (60 * 1000, "1 minute"),
        (5 * 60 * 1000, "5 minutes"),
        ((3 * 60 + 5) * 60 * 1000, "3 hours and 5 minutes"),
        ((60 + 1) * 60 * 1000, "1 hour and 1 minute"),
    ],
)
def test_format_remaining_time(ms: int, expected: str) -> None:
    assert format_remaining_time(ms) == expected
