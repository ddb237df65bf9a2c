"""GitHub API rate limit monitoring."""

from __future__ import annotations

import time

import httpx

from .. import config


class RateLimitMonitor:
    """Tracks the server-reported budget from ``X-RateLimit-*`` response headers."""

    def __init__(
        self,
        threshold: int = config.RATE_LIMIT_THRESHOLD,
        max_wait: float = config.RATE_LIMIT_MAX_WAIT_SEC,
    ) -> None:
        self._remaining: int | None = None
        self._reset_at: float | None = None
        self._threshold = threshold
        self._max_wait = max_wait

    @property
    def remaining(self) -> int | None:
        return self._remaining

    def update(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset_at = response.headers.get("X-RateLimit-Reset")
        try:
            if remaining is not None:
                self._remaining = int(remaining)
            if reset_at is not None:
                self._reset_at = float(reset_at)
        except ValueError:
            return

    def seconds_until_reset(self, now: float | None = None) -> float:
        """How long to hold dispatch; 0 unless the server budget is nearly spent."""
        if (
            self._remaining is None
            or self._remaining > self._threshold
            or self._reset_at is None
        ):
            return 0.0
        now = time.time() if now is None else now
        if now >= self._reset_at:
            return 0.0
        return min(self._reset_at - now + 1, self._max_wait)
