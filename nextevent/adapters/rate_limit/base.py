"""Rate limiter interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a single rate limit accounting call.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests still available in the window after this call.
        retry_after_seconds: Whole seconds until the oldest counted request
            leaves the window; None when allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-client rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, now: float | None = None) -> RateLimitResult:
        """Account one request for ``key`` and decide whether it may proceed.

        Args:
            key: Client identifier (e.g. IP address).
            now: Timestamp of the request; the limiter's clock when omitted.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def allow(self, key: str, now: float | None = None) -> bool:
        """Return True if the request from ``key`` is within its budget."""
        return self.consume(key, now=now).allowed

    @abstractmethod
    def sweep(self, now: float | None = None) -> int:
        """Drop clients with no requests left in the window.

        Returns:
            Number of client entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def tracked_clients(self) -> int:
        """Number of client identifiers currently holding state."""
        raise NotImplementedError
