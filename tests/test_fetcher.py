"""Tests for the paginated fetcher."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from repo_vibes.cancellation import CancelToken
from repo_vibes.errors import NotFoundError, SchemaError
from repo_vibes.fetcher import PaginatedFetcher

SINCE = datetime(2024, 6, 1, tzinfo=timezone.utc)
UNTIL = datetime(2024, 6, 30, tzinfo=timezone.utc)


def _item(number: int, created_at: str) -> dict:
    return {"number": number, "created_at": created_at}


async def _enrich_number(owner, repo, item):
    return item.number


@pytest.mark.asyncio
async def test_stops_at_first_item_older_than_since():
    pages = [
        [_item(5, "2024-06-20T00:00:00Z"), _item(4, "2024-06-10T00:00:00Z")],
        [_item(3, "2024-06-02T00:00:00Z"), _item(2, "2024-05-31T23:59:59Z")],
        [_item(1, "2024-05-01T00:00:00Z")],
    ]
    list_page = AsyncMock(side_effect=pages)
    fetcher = PaginatedFetcher(list_page, _enrich_number, page_size=2)

    result = await fetcher.fetch_since("o", "r", SINCE, UNTIL)

    assert result == [5, 4, 3]
    assert list_page.await_count == 2


@pytest.mark.asyncio
async def test_item_on_boundary_is_included():
    list_page = AsyncMock(return_value=[_item(1, "2024-06-01T00:00:00Z")])
    fetcher = PaginatedFetcher(list_page, _enrich_number, page_size=2)

    assert await fetcher.fetch_since("o", "r", SINCE, UNTIL) == [1]


@pytest.mark.asyncio
async def test_skips_items_after_until():
    list_page = AsyncMock(
        return_value=[_item(9, "2024-07-05T00:00:00Z"), _item(8, "2024-06-15T00:00:00Z")]
    )
    enrich = AsyncMock(side_effect=_enrich_number)
    fetcher = PaginatedFetcher(list_page, enrich, page_size=100)

    result = await fetcher.fetch_since("o", "r", SINCE, UNTIL)

    assert result == [8]
    assert enrich.await_count == 1


@pytest.mark.asyncio
async def test_empty_page_ends_scan():
    list_page = AsyncMock(side_effect=[[_item(2, "2024-06-10T00:00:00Z")], []])
    fetcher = PaginatedFetcher(list_page, _enrich_number, page_size=1)

    assert await fetcher.fetch_since("o", "r", SINCE) == [2]
    assert list_page.await_count == 2


@pytest.mark.asyncio
async def test_requests_successive_pages():
    list_page = AsyncMock(
        side_effect=[[_item(2, "2024-06-10T00:00:00Z")], [_item(1, "2024-06-09T00:00:00Z")], []]
    )
    fetcher = PaginatedFetcher(list_page, _enrich_number, page_size=1)

    await fetcher.fetch_since("o", "r", SINCE)
    pages = [c.args[2] for c in list_page.await_args_list]
    assert pages == [1, 2, 3]
    assert all(c.args[3] == 1 for c in list_page.await_args_list)


@pytest.mark.asyncio
async def test_none_from_enrich_is_dropped():
    list_page = AsyncMock(
        return_value=[_item(2, "2024-06-10T00:00:00Z"), _item(1, "2024-06-09T00:00:00Z")]
    )

    async def enrich(owner, repo, item):
        return None if item.number == 2 else item.number

    fetcher = PaginatedFetcher(list_page, enrich)
    assert await fetcher.fetch_since("o", "r", SINCE) == [1]


@pytest.mark.asyncio
async def test_malformed_item_raises():
    list_page = AsyncMock(return_value=[{"number": 1}])
    fetcher = PaginatedFetcher(list_page, _enrich_number)

    with pytest.raises(SchemaError):
        await fetcher.fetch_since("o", "r", SINCE)


@pytest.mark.asyncio
async def test_enrich_error_propagates():
    list_page = AsyncMock(return_value=[_item(1, "2024-06-09T00:00:00Z")])
    enrich = AsyncMock(side_effect=NotFoundError("gone"))
    fetcher = PaginatedFetcher(list_page, enrich)

    with pytest.raises(NotFoundError):
        await fetcher.fetch_since("o", "r", SINCE)


@pytest.mark.asyncio
async def test_cancellation_returns_collected_items():
    token = CancelToken()
    list_page = AsyncMock(
        return_value=[
            _item(3, "2024-06-12T00:00:00Z"),
            _item(2, "2024-06-11T00:00:00Z"),
            _item(1, "2024-06-10T00:00:00Z"),
        ]
    )

    async def enrich(owner, repo, item):
        if item.number == 2:
            token.cancel()
        return item.number

    fetcher = PaginatedFetcher(list_page, enrich, cancel=token)
    assert await fetcher.fetch_since("o", "r", SINCE) == [3, 2]


@pytest.mark.asyncio
async def test_cancelled_before_start_fetches_nothing():
    token = CancelToken()
    token.cancel()
    list_page = AsyncMock(return_value=[])
    fetcher = PaginatedFetcher(list_page, _enrich_number, cancel=token)

    assert await fetcher.fetch_since("o", "r", SINCE) == []
    list_page.assert_not_awaited()
