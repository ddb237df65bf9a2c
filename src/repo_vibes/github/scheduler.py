"""Rate-limited request scheduler.

All outbound calls go through :meth:`RequestScheduler.submit`. The scheduler
owns the token bucket, spaces dispatches, caps concurrency, bounds each call
with a timeout and retries according to :func:`retry_policy`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, TypeVar

from .. import config
from ..cancellation import CancelToken
from ..errors import RateLimitedError, RepoVibesError, RunCancelled, TransientError
from ..models import RequestBudget
from .rate_limit import RateLimitMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    wait: float = 0.0


NO_RETRY = RetryDecision(retry=False)


def retry_policy(error: BaseException, attempt: int) -> RetryDecision:
    """Decide whether to retry after ``error``.

    ``attempt`` is the 1-based number of failures of the same kind so far;
    rate-limit failures and transient failures are counted separately.
    """
    if isinstance(error, RateLimitedError):
        if attempt > config.RATE_LIMIT_MAX_RETRIES:
            return NO_RETRY
        if error.secondary:
            return RetryDecision(True, config.SECONDARY_RATE_LIMIT_WAIT_SEC)
        if error.retry_after is not None:
            return RetryDecision(True, max(0.0, error.retry_after))
        return RetryDecision(True, config.RATE_LIMIT_FALLBACK_SEC)
    if isinstance(error, TransientError):
        if attempt >= config.TRANSIENT_MAX_ATTEMPTS:
            return NO_RETRY
        delay = config.BACKOFF_BASE_SEC * 2 ** (attempt - 1)
        return RetryDecision(True, min(delay, config.BACKOFF_MAX_SEC))
    return NO_RETRY


def _retry_kind(error: BaseException) -> str | None:
    if isinstance(error, RateLimitedError):
        return "rate_limit"
    if isinstance(error, TransientError):
        return "transient"
    return None


RetryPolicy = Callable[[BaseException, int], RetryDecision]


class RequestScheduler:
    """Serializes outbound calls under a token bucket and a concurrency cap."""

    def __init__(
        self,
        budget: RequestBudget | None = None,
        *,
        cancel: CancelToken | None = None,
        monitor: RateLimitMonitor | None = None,
        policy: RetryPolicy = retry_policy,
        timeout: float = config.REQUEST_TIMEOUT,
    ) -> None:
        # Private copy: the bucket is never shared with callers
        self._budget = replace(budget) if budget is not None else RequestBudget()
        self._cancel = cancel or CancelToken()
        self._monitor = monitor
        self._policy = policy
        self._timeout = timeout
        self._slots = asyncio.Semaphore(self._budget.max_concurrent)
        self._queue = asyncio.Lock()
        self._refilled_at: float | None = None
        self._last_dispatch: float | None = None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.dispatched = 0
        self.retries = 0

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    @property
    def remaining(self) -> int:
        return self._budget.remaining or 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def submit(
        self, work: Callable[[], Awaitable[T]], *, label: str = "request"
    ) -> T:
        """Run ``work`` once budget allows, retrying per the policy."""
        attempts: dict[str, int] = {}
        while True:
            await self._acquire()
            try:
                return await asyncio.wait_for(work(), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                error: RepoVibesError = TransientError(
                    f"{label}: no response after {self._timeout:.0f}s"
                )
                error.__cause__ = exc
            except RepoVibesError as exc:
                error = exc
            finally:
                self._release()

            kind = _retry_kind(error)
            if kind is None:
                raise error
            attempts[kind] = attempts.get(kind, 0) + 1
            decision = self._policy(error, attempts[kind])
            if not decision.retry:
                logger.warning(
                    "%s: giving up after %d %s failure(s): %s",
                    label,
                    attempts[kind],
                    kind.replace("_", " "),
                    error,
                )
                raise error
            self.retries += 1
            if kind == "rate_limit":
                logger.warning(
                    "%s: rate limited, waiting %.0fs before retry", label, decision.wait
                )
            else:
                logger.warning(
                    "%s: %s (attempt %d/%d), retry in %.1fs",
                    label,
                    error,
                    attempts[kind],
                    config.TRANSIENT_MAX_ATTEMPTS,
                    decision.wait,
                )
            if await self._cancel.sleep(decision.wait):
                raise RunCancelled(f"{label}: cancelled while waiting to retry")

    async def drain(self) -> None:
        """Wait until no call is in flight."""
        await self._idle.wait()

    async def _acquire(self) -> None:
        # The lock keeps dispatch FIFO; budget waits happen while holding it
        async with self._queue:
            self._cancel.raise_if_cancelled()
            await self._slots.acquire()
            try:
                await self._wait_for_budget()
            except BaseException:
                self._slots.release()
                raise
            self._budget.remaining -= 1
            self._last_dispatch = asyncio.get_running_loop().time()
            self._in_flight += 1
            self._idle.clear()
            self.dispatched += 1

    def _release(self) -> None:
        self._in_flight -= 1
        if self._in_flight == 0:
            self._idle.set()
        self._slots.release()

    def _refill(self, now: float) -> None:
        if self._refilled_at is None:
            self._refilled_at = now
            return
        periods = int((now - self._refilled_at) // self._budget.refill_interval)
        if periods > 0:
            self._budget.remaining = min(
                self._budget.capacity,
                self._budget.remaining + periods * self._budget.refill_amount,
            )
            self._refilled_at += periods * self._budget.refill_interval

    async def _wait_for_budget(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            self._cancel.raise_if_cancelled()
            now = loop.time()
            self._refill(now)
            wait = 0.0
            if self._budget.remaining <= 0:
                wait = self._refilled_at + self._budget.refill_interval - now
            if self._last_dispatch is not None:
                wait = max(wait, self._last_dispatch + self._budget.min_spacing - now)
            if self._monitor is not None:
                server_wait = self._monitor.seconds_until_reset()
                if server_wait > wait:
                    logger.warning(
                        "GitHub reports %s request(s) left; pausing %.0fs until reset",
                        self._monitor.remaining,
                        server_wait,
                    )
                    wait = server_wait
            if wait <= 0:
                return
            if self._budget.remaining <= 0:
                logger.info("Request budget exhausted, waiting %.1fs for refill", wait)
            if await self._cancel.sleep(wait):
                raise RunCancelled("cancelled while waiting for request budget")
