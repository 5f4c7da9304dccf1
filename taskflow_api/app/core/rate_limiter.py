"""
Fixed‑window rate limiting for sensitive endpoints.

``RateLimiter`` allows at most ``max_requests`` actions per identifier
within a window of ``window_seconds``.  The first attempt opens the
window; once it expires the next attempt opens a fresh one.  Expired
entries are swept lazily on every ``is_allowed`` call, so no timer is
needed.

Entries live in a ``RateLimitStore``.  The default
``MemoryRateLimitStore`` is a plain dict owned by the current process:
it is NOT shared between workers or instances, so a deployment with
several processes effectively multiplies the quota.  Pass a shared
store implementation to lift that limit.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float  # epoch seconds


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[RateLimitEntry]: ...

    def set(self, key: str, entry: RateLimitEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterable[Tuple[str, RateLimitEntry]]: ...


class MemoryRateLimitStore:
    """Process‑local store backed by a dict."""

    def __init__(self) -> None:
        self._entries: Dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterable[Tuple[str, RateLimitEntry]]:
        # Copy so callers may delete while iterating.
        return list(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """Fixed‑window counter keyed by an identifier such as a lowercase email."""

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.store = store if store is not None else MemoryRateLimitStore()
        self._clock = clock

    def _cleanup_expired_entries(self, now: float) -> None:
        for key, entry in self.store.items():
            if entry.reset_at <= now:
                self.store.delete(key)

    def is_allowed(self, identifier: str) -> bool:
        """Record an attempt and report whether it is within the quota."""
        now = self._clock()
        self._cleanup_expired_entries(now)

        entry = self.store.get(identifier)
        if entry is None or entry.reset_at <= now:
            self.store.set(identifier, RateLimitEntry(count=1, reset_at=now + self.window_seconds))
            return True

        if entry.count >= self.max_requests:
            logger.info("Rate limit exceeded for %s", identifier)
            return False

        entry.count += 1
        self.store.set(identifier, entry)
        return True

    def get_remaining_time(self, identifier: str) -> int:
        """Milliseconds until the identifier's window resets, 0 if none is active."""
        entry = self.store.get(identifier)
        if entry is None:
            return 0
        return max(0, int((entry.reset_at - self._clock()) * 1000))

    def reset(self, identifier: str) -> None:
        """Drop the identifier's window, refunding any recorded attempts."""
        self.store.delete(identifier)


def format_remaining_time(ms: int) -> str:
    """Human readable duration, e.g. ``"3 hours and 5 minutes"``."""
    hours = ms // (1000 * 60 * 60)
    minutes = (ms % (1000 * 60 * 60)) // (1000 * 60)
    minute_text = f"{minutes} minute{'s' if minutes != 1 else ''}"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} and {minute_text}"
    return minute_text
