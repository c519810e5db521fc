"""Per-subject send caps over fixed hourly/daily windows plus a lifetime per-scope cap.

Windows reset on expiry rather than rolling: a window stays valid while
``now - window_start <= window_size`` and the first send after that starts a new
window with a count of 1. A burst straddling a boundary can therefore reach up to
twice the nominal rate; that is the accepted bound of this scheme.
"""

from __future__ import annotations

import logging
import threading
import time
import zlib
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS


class RateLimitConfig(BaseModel):
    max_per_hour: int = Field(default=5, ge=0)
    max_per_day: int = Field(default=20, ge=0)
    max_per_scope: int = Field(default=3, ge=0)
    hour_window_seconds: float = HOUR_SECONDS
    day_window_seconds: float = DAY_SECONDS
    sweep_interval_seconds: float = HOUR_SECONDS


@dataclass
class WindowCounter:
    count: int = 0
    window_start: float = 0.0

    def expired(self, now: float, window_size: float) -> bool:
        return now - self.window_start > window_size

    def consume(self, now: float, window_size: float) -> None:
        if self.count == 0 or self.expired(now, window_size):
            self.count = 1
            self.window_start = now
        else:
            self.count += 1


@dataclass
class RateWindow:
    hourly: WindowCounter
    daily: WindowCounter
    scope_counts: dict[str, int] = field(default_factory=dict)

    def last_activity(self) -> float:
        return max(self.hourly.window_start, self.daily.window_start)


class RateLimiter:
    """In-memory counter store, safe to share between worker threads.

    Updates for one subject key are serialised by a lock stripe chosen from the
    key, so unrelated keys rarely contend.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.time,
        lock_stripes: int = 64,
    ) -> None:
        self._config = config
        self._clock = clock
        self._entries: dict[str, RateWindow] = {}
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]
        self._sweep_lock = threading.Lock()
        self._last_sweep = clock()

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]

    def _within(self, counter: WindowCounter, now: float, window: float, limit: int) -> bool:
        if counter.count == 0 or counter.expired(now, window):
            return limit > 0
        return counter.count < limit

    def check_and_consume(self, subject_key: str, scope_key: str | None = None) -> bool:
        """Return True and consume one unit from every cap, or False and consume nothing."""
        cfg = self._config
        now = self._clock()
        with self._lock_for(subject_key):
            entry = self._entries.get(subject_key)
            if entry is None:
                entry = RateWindow(hourly=WindowCounter(), daily=WindowCounter())
                self._entries[subject_key] = entry

            if not self._within(entry.hourly, now, cfg.hour_window_seconds, cfg.max_per_hour):
                logger.warning("Hourly rate limit exceeded for %s", subject_key)
                return False
            if not self._within(entry.daily, now, cfg.day_window_seconds, cfg.max_per_day):
                logger.warning("Daily rate limit exceeded for %s", subject_key)
                return False
            if scope_key is not None and entry.scope_counts.get(scope_key, 0) >= cfg.max_per_scope:
                logger.warning("Per-scope rate limit exceeded for %s (scope %s)", subject_key, scope_key)
                return False

            entry.hourly.consume(now, cfg.hour_window_seconds)
            entry.daily.consume(now, cfg.day_window_seconds)
            if scope_key is not None:
                entry.scope_counts[scope_key] = entry.scope_counts.get(scope_key, 0) + 1

        self._maybe_sweep(now)
        return True

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._config.sweep_interval_seconds:
            return
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            self._last_sweep = now
            self.sweep(now)
        finally:
            self._sweep_lock.release()

    def sweep(self, now: float | None = None) -> int:
        """Drop entries idle for longer than the longest window. Returns the count removed."""
        now = self._clock() if now is None else now
        horizon = max(self._config.hour_window_seconds, self._config.day_window_seconds)
        removed = 0
        for key in list(self._entries):
            with self._lock_for(key):
                entry = self._entries.get(key)
                if entry is not None and now - entry.last_activity() > horizon:
                    del self._entries[key]
                    removed += 1
        if removed:
            logger.debug("Cleaned up %d expired rate limit entries", removed)
        return removed

    def snapshot(self, subject_key: str) -> dict | None:
        """Copy of the counters for one subject, or None if it has none."""
        with self._lock_for(subject_key):
            entry = self._entries.get(subject_key)
            if entry is None:
                return None
            return {
                "hourly": {"count": entry.hourly.count, "window_start": entry.hourly.window_start},
                "daily": {"count": entry.daily.count, "window_start": entry.daily.window_start},
                "scopes": dict(entry.scope_counts),
            }

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self) -> None:
        for lock in self._locks:
            lock.acquire()
        try:
            self._entries.clear()
        finally:
            for lock in self._locks:
                lock.release()
