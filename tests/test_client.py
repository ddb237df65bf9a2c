"""Tests for the GitHub client module."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from repo_vibes.errors import (
    AuthenticationError,
    GitHubApiError,
    NotFoundError,
    RateLimitedError,
    RunCancelled,
    SchemaError,
    TransientError,
)
from repo_vibes.github.client import GitHubClient, raise_for_status
from repo_vibes.github.scheduler import RetryDecision, retry_policy
from repo_vibes.models import RequestBudget

FAST = RequestBudget(capacity=100, refill_amount=100, min_spacing=0)


def _make_client(**kwargs) -> GitHubClient:
    kwargs.setdefault("budget", FAST)
    return GitHubClient(token="test-token", **kwargs)


def _make_mock_response(
    status_code: int = 200,
    json_data=None,
    headers: dict | None = None,
):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else []
    resp.headers = headers or {"Link": ""}
    resp.text = ""
    return resp


def _instant_retry(error, attempt):
    return RetryDecision(retry_policy(error, attempt).retry, 0.0)


def test_client_instantiation():
    client = _make_client()
    assert client._client is not None
    assert "Bearer test-token" in client._client.headers["Authorization"]
    assert client._client.headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_client_without_token_is_anonymous():
    client = GitHubClient(token=None, budget=FAST)
    assert "Authorization" not in client._client.headers


def test_client_custom_base_url():
    client = _make_client(base_url="https://ghe.example.com/api/v3")
    assert str(client._client.base_url).startswith("https://ghe.example.com/api/v3")


@pytest.mark.asyncio
async def test_client_context_manager():
    async with _make_client() as client:
        assert client is not None


# --- raise_for_status ---


def test_raise_for_status_ok():
    raise_for_status(_make_mock_response(200), "/x")


@pytest.mark.parametrize("status", [404, 410])
def test_raise_for_status_not_found(status):
    with pytest.raises(NotFoundError):
        raise_for_status(_make_mock_response(status), "/x")


def test_raise_for_status_429_with_retry_after():
    resp = _make_mock_response(429, headers={"Retry-After": "7"})
    with pytest.raises(RateLimitedError) as info:
        raise_for_status(resp, "/x")
    assert info.value.retry_after == 7
    assert info.value.secondary is False


def test_raise_for_status_403_exhausted_is_rate_limit():
    resp = _make_mock_response(403, headers={"X-RateLimit-Remaining": "0"})
    with pytest.raises(RateLimitedError):
        raise_for_status(resp, "/x")


def test_raise_for_status_secondary_rate_limit():
    resp = _make_mock_response(
        403, json_data={"message": "You have exceeded a secondary rate limit."}
    )
    with pytest.raises(RateLimitedError) as info:
        raise_for_status(resp, "/x")
    assert info.value.secondary is True


def test_raise_for_status_429_secondary_message_wins():
    resp = _make_mock_response(
        429,
        json_data={"message": "You have exceeded a secondary rate limit."},
        headers={"Retry-After": "2"},
    )
    with pytest.raises(RateLimitedError) as info:
        raise_for_status(resp, "/x")
    assert info.value.secondary is True
    assert retry_policy(info.value, 1).wait == 60


@pytest.mark.parametrize("status", [401, 403])
def test_raise_for_status_auth(status):
    resp = _make_mock_response(status, json_data={"message": "Bad credentials"})
    with pytest.raises(AuthenticationError):
        raise_for_status(resp, "/x")


@pytest.mark.parametrize("status", [500, 502, 503])
def test_raise_for_status_server_error_is_transient(status):
    with pytest.raises(TransientError):
        raise_for_status(_make_mock_response(status), "/x")


def test_raise_for_status_other_status():
    with pytest.raises(GitHubApiError) as info:
        raise_for_status(_make_mock_response(422, json_data={"message": "Invalid"}), "/x")
    assert info.value.status_code == 422


# --- request path ---


@pytest.mark.asyncio
async def test_get_basic():
    """_get should call httpx client and return response."""
    client = _make_client()
    resp = _make_mock_response(200, json_data={"key": "value"})
    client._client.get = AsyncMock(return_value=resp)

    result = await client._get("/test")
    assert result == resp
    assert client.scheduler.dispatched == 1


@pytest.mark.asyncio
async def test_get_updates_rate_limit_monitor():
    client = _make_client()
    resp = _make_mock_response(
        200, headers={"X-RateLimit-Remaining": "4321", "X-RateLimit-Reset": "0"}
    )
    client._client.get = AsyncMock(return_value=resp)

    await client._get("/test")
    assert client._rate_limit.remaining == 4321


@pytest.mark.asyncio
async def test_get_json_not_json():
    client = _make_client()
    resp = _make_mock_response(200)
    resp.json.side_effect = ValueError("no json")
    client._client.get = AsyncMock(return_value=resp)

    with pytest.raises(SchemaError):
        await client._get_json("/test")


@pytest.mark.asyncio
async def test_transport_error_retried_as_transient():
    client = _make_client()
    client._scheduler._policy = _instant_retry
    ok = _make_mock_response(200, json_data={"ok": True})
    client._client.get = AsyncMock(
        side_effect=[httpx.ConnectError("boom"), httpx.ReadTimeout("slow"), ok]
    )

    assert await client._get_json("/test") == {"ok": True}
    assert client._client.get.await_count == 3


@pytest.mark.asyncio
async def test_server_error_exhausts_retries():
    client = _make_client()
    client._scheduler._policy = _instant_retry
    client._client.get = AsyncMock(return_value=_make_mock_response(502))

    with pytest.raises(TransientError):
        await client._get("/test")
    assert client._client.get.await_count == 3


@pytest.mark.asyncio
async def test_not_found_not_retried():
    client = _make_client()
    client._client.get = AsyncMock(return_value=_make_mock_response(404))

    with pytest.raises(NotFoundError):
        await client.get_repository("octo", "missing")
    assert client._client.get.await_count == 1


@pytest.mark.asyncio
async def test_429_waits_retry_after():
    client = _make_client()
    loop = asyncio.get_running_loop()
    stamps: list[float] = []
    responses = [
        _make_mock_response(429, headers={"Retry-After": "2"}),
        _make_mock_response(200, json_data={"full_name": "octo/hello"}),
    ]

    async def mock_get(url, params=None):
        stamps.append(loop.time())
        return responses.pop(0)

    client._client.get = mock_get

    result = await client.get_repository("octo", "hello")
    assert result == {"full_name": "octo/hello"}
    assert len(stamps) == 2
    assert stamps[1] - stamps[0] >= 1.99


@pytest.mark.asyncio
async def test_paginate_single_page():
    """_paginate should handle a single page response."""
    client = _make_client()
    resp = _make_mock_response(200, json_data=[{"id": 1}, {"id": 2}])
    client._client.get = AsyncMock(return_value=resp)

    result = await client._paginate("/test")
    assert result == [{"id": 1}, {"id": 2}]


@pytest.mark.asyncio
async def test_paginate_multiple_pages():
    """_paginate should follow Link headers for pagination."""
    client = _make_client()

    resp1 = _make_mock_response(
        200,
        json_data=[{"id": 1}],
        headers={"Link": '<https://api.github.com/test?page=2>; rel="next"'},
    )
    resp2 = _make_mock_response(200, json_data=[{"id": 2}])
    client._client.get = AsyncMock(side_effect=[resp1, resp2])

    result = await client._paginate("/test")
    assert result == [{"id": 1}, {"id": 2}]
    second = client._client.get.call_args_list[1]
    assert second.args[0] == "https://api.github.com/test?page=2"


@pytest.mark.asyncio
async def test_paginate_non_list_response():
    """_paginate rejects object payloads."""
    client = _make_client()
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data={"total": 5}))

    with pytest.raises(SchemaError):
        await client._paginate("/test")


@pytest.mark.asyncio
async def test_list_pull_requests_page_params():
    client = _make_client()
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data=[]))

    await client.list_pull_requests_page("o", "r", page=3, per_page=50)
    call_args = client._client.get.call_args
    assert call_args.args[0] == "/repos/o/r/pulls"
    params = call_args.kwargs["params"]
    assert params["state"] == "all"
    assert params["sort"] == "created"
    assert params["direction"] == "desc"
    assert params["page"] == 3
    assert params["per_page"] == 50


@pytest.mark.asyncio
async def test_list_commits_with_since_until():
    """list_commits should pass since/until params."""
    client = _make_client()
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data=[]))

    await client.list_commits(
        "o", "r", since="2024-01-01T00:00:00Z", until="2024-12-31T23:59:59Z", sha="dev"
    )
    params = client._client.get.call_args.kwargs["params"]
    assert params.get("since") == "2024-01-01T00:00:00Z"
    assert params.get("until") == "2024-12-31T23:59:59Z"
    assert params.get("sha") == "dev"


@pytest.mark.asyncio
async def test_list_commits_409_empty_repo():
    """list_commits should return [] on 409 (empty repo)."""
    client = _make_client()
    client._client.get = AsyncMock(return_value=_make_mock_response(409))

    result = await client.list_commits("owner", "repo")
    assert result == []


@pytest.mark.asyncio
async def test_list_check_runs_returns_object():
    client = _make_client()
    payload = {"total_count": 1, "check_runs": [{"name": "ci"}]}
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data=payload))

    result = await client.list_check_runs("o", "r", "abc")
    assert result == payload
    assert client._client.get.call_args.args[0] == "/repos/o/r/commits/abc/check-runs"


def _cancel_after_first_page(client: GitHubClient, items: list) -> AsyncMock:
    first = _make_mock_response(
        200,
        json_data=items,
        headers={"Link": '<https://api.github.com/repos/o/r/commits?page=2>; rel="next"'},
    )

    async def mock_get(url, params=None):
        client.cancel_token.cancel()
        return first

    return AsyncMock(side_effect=mock_get)


@pytest.mark.asyncio
async def test_list_commits_cancelled_keeps_fetched_pages():
    client = _make_client()
    client._client.get = _cancel_after_first_page(client, [{"sha": "a"}, {"sha": "b"}])

    result = await client.list_commits("o", "r", sha="dev")

    assert result == [{"sha": "a"}, {"sha": "b"}]
    assert client._client.get.await_count == 1


@pytest.mark.asyncio
async def test_list_branches_cancelled_keeps_fetched_pages():
    client = _make_client()
    client._client.get = _cancel_after_first_page(client, [{"name": "main"}])

    assert await client.list_branches("o", "r") == [{"name": "main"}]


@pytest.mark.asyncio
async def test_sub_resource_listing_cancellation_raises():
    client = _make_client()
    client._client.get = _cancel_after_first_page(client, [{"filename": "a.py"}])

    with pytest.raises(RunCancelled):
        await client.list_pull_files("o", "r", 1)


@pytest.mark.asyncio
async def test_list_commit_pulls():
    client = _make_client()
    payload = [{"number": 5, "merged_at": "2024-06-02T00:00:00Z"}]
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data=payload))

    assert await client.list_commit_pulls("o", "r", "abc") == payload
    assert client._client.get.call_args.args[0] == "/repos/o/r/commits/abc/pulls"
