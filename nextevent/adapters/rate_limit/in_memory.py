"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards every read-modify-write of the client map.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable

from nextevent.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting each client's requests over a trailing window.

    Every client keeps the timestamps of its requests inside the window, in
    arrival order. A timestamp stops counting once its age reaches the window
    length, so a request arriving exactly ``window_seconds`` after an earlier
    one no longer sees it.

    Clients whose timestamps have all expired are deleted, either on their
    next request or by ``sweep()``.
    """

    def __init__(
        self,
        *,
        requests_per_window: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter.

        Args:
            requests_per_window: Maximum allowed requests per client per window.
            window_seconds: Length of the trailing window in seconds.
            clock: Time source used when callers don't pass ``now``.

        Raises:
            ValueError: If requests_per_window or window_seconds are invalid.
        """
        if requests_per_window < 1:
            raise ValueError("requests_per_window must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = requests_per_window
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._timestamps_by_key: dict[str, deque[float]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _prune_locked(self, key: str, now: float) -> deque[float] | None:
        """Evict expired timestamps for ``key``; delete the key if none remain."""
        timestamps = self._timestamps_by_key.get(key)
        if timestamps is None:
            return None

        # Arrival order is chronological, so expired entries sit at the left.
        while timestamps and now - timestamps[0] >= self._window_seconds:
            timestamps.popleft()

        if not timestamps:
            del self._timestamps_by_key[key]
            return None
        return timestamps

    def _retry_after(self, oldest: float, now: float) -> int:
        return max(1, math.ceil(oldest + self._window_seconds - now))

    def consume(self, key: str, *, now: float | None = None) -> RateLimitResult:
        """Account one request for ``key``.

        Rejected requests are not recorded; the pruned history is kept.

        Args:
            key: Client identifier.
            now: Request timestamp; the configured clock when omitted.

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        current = self._clock() if now is None else now

        with self._lock:
            timestamps = self._prune_locked(key, current)

            if timestamps is not None and len(timestamps) >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    retry_after_seconds=self._retry_after(timestamps[0], current),
                )

            if timestamps is None:
                timestamps = deque()
                self._timestamps_by_key[key] = timestamps
            timestamps.append(current)

            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - len(timestamps),
                retry_after_seconds=None,
            )

    def sweep(self, now: float | None = None) -> int:
        current = self._clock() if now is None else now

        with self._lock:
            before = len(self._timestamps_by_key)
            for key in list(self._timestamps_by_key):
                self._prune_locked(key, current)
            return before - len(self._timestamps_by_key)

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._timestamps_by_key)

    def reset(self) -> None:
        """Forget every client."""
        with self._lock:
            self._timestamps_by_key.clear()
