"""Paginated collection fetcher with time-boundary short-circuit."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, TypeVar

from . import config
from .cancellation import CancelToken
from .errors import RunCancelled
from .github.parsing import ListingItem, parse_listing_item

logger = logging.getLogger(__name__)

T = TypeVar("T")

ListPage = Callable[[str, str, int, int], Awaitable[list[Any]]]
Enrich = Callable[[str, str, ListingItem], Awaitable[Any]]


class PaginatedFetcher(Generic[T]):
    """Walks a created-desc listing and enriches every item inside the window.

    ``list_page(owner, repo, page, per_page)`` returns one raw page;
    ``enrich(owner, repo, item)`` turns an in-range item into a record, or
    returns None to drop it.
    """

    def __init__(
        self,
        list_page: ListPage,
        enrich: Enrich,
        cancel: CancelToken | None = None,
        page_size: int = config.PAGE_SIZE,
        kind: str = "items",
    ) -> None:
        self._list_page = list_page
        self._enrich = enrich
        self._cancel = cancel or CancelToken()
        self._page_size = page_size
        self._kind = kind

    async def fetch_since(
        self,
        owner: str,
        repo: str,
        since: datetime,
        until: datetime | None = None,
    ) -> list[T]:
        results: list[T] = []
        try:
            await self._scan(owner, repo, since, until, results)
        except RunCancelled:
            logger.warning(
                "%s/%s: %s scan cancelled, keeping %d collected",
                owner,
                repo,
                self._kind,
                len(results),
            )
        return results

    async def _scan(
        self,
        owner: str,
        repo: str,
        since: datetime,
        until: datetime | None,
        results: list[T],
    ) -> None:
        page = 1
        while True:
            self._cancel.raise_if_cancelled()
            logger.info("%s/%s: fetching %s page %d", owner, repo, self._kind, page)
            batch = await self._list_page(owner, repo, page, self._page_size)
            if not batch:
                return

            for raw in batch:
                item = parse_listing_item(raw)
                # Newest first: everything after this is older too
                if item.created_at < since:
                    logger.info(
                        "%s/%s: reached %s older than %s, stopping scan",
                        owner,
                        repo,
                        self._kind,
                        since.date().isoformat(),
                    )
                    return
                if until is not None and item.created_at > until:
                    continue
                self._cancel.raise_if_cancelled()
                record = await self._enrich(owner, repo, item)
                if record is not None:
                    results.append(record)

            if len(batch) < self._page_size:
                return
            page += 1
