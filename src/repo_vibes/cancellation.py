"""Run cancellation and orderly shutdown."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .errors import RunCancelled

if TYPE_CHECKING:
    from .github.client import GitHubClient
    from .github.scheduler import RequestScheduler

logger = logging.getLogger(__name__)


class CancelToken:
    """One-shot cancellation signal shared by every loop of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, quiet: bool = False) -> None:
        if not self._event.is_set() and not quiet:
            logger.warning("Cancellation requested; finishing in-flight requests")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("run cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``. Returns True if woken by cancellation."""
        if self._event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class ShutdownCoordinator:
    """Cancel a run, wait for in-flight requests, then release the HTTP client."""

    def __init__(
        self,
        token: CancelToken,
        scheduler: RequestScheduler,
        client: GitHubClient | None = None,
    ) -> None:
        self.token = token
        self._scheduler = scheduler
        self._client = client

    def cancel(self) -> None:
        self.token.cancel()

    async def shutdown(self, timeout: float | None = None) -> None:
        # Stops any loop still running; a clean finish is not a cancellation
        self.token.cancel(quiet=True)
        try:
            await asyncio.wait_for(self._scheduler.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%d request(s) still in flight after %.0fs; closing anyway",
                self._scheduler.in_flight,
                timeout,
            )
        if self._client is not None:
            await self._client.close()
