"""GitHub REST API client."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from .. import __version__, config
from ..cancellation import CancelToken
from ..errors import (
    AuthenticationError,
    GitHubApiError,
    NotFoundError,
    RateLimitedError,
    RunCancelled,
    SchemaError,
    TransientError,
)
from ..models import RequestBudget
from .parsing import parse_page
from .rate_limit import RateLimitMonitor
from .scheduler import RequestScheduler

logger = logging.getLogger(__name__)

_SECONDARY_LIMIT = re.compile(r"secondary rate limit|abuse", re.IGNORECASE)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response: httpx.Response, url: str) -> None:
    """Map an error response onto the repo-vibes error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    message = _error_message(response)
    if status in (404, 410):
        raise NotFoundError(f"GET {url}: not found")
    if status in (403, 429) and _SECONDARY_LIMIT.search(message):
        raise RateLimitedError(
            f"GET {url}: secondary rate limit",
            retry_after=_retry_after(response),
            secondary=True,
        )
    exhausted = response.headers.get("X-RateLimit-Remaining") == "0"
    if status == 429 or (status == 403 and exhausted):
        raise RateLimitedError(
            f"GET {url}: rate limit exceeded", retry_after=_retry_after(response)
        )
    if status in (401, 403):
        raise AuthenticationError(f"GET {url}: HTTP {status} {message}".rstrip())
    if status >= 500:
        raise TransientError(f"GET {url}: HTTP {status}")
    raise GitHubApiError(f"GET {url}: HTTP {status} {message}".rstrip(), status_code=status)


class GitHubClient:
    """Async GitHub REST API client; every request goes through the scheduler."""

    def __init__(
        self,
        token: str | None = None,
        budget: RequestBudget | None = None,
        cancel: CancelToken | None = None,
        base_url: str | None = None,
        verify_ssl: bool = True,
        timeout: float = config.REQUEST_TIMEOUT,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": config.API_VERSION,
            "User-Agent": f"repo-vibes/{__version__}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No GitHub token provided; anonymous rate limits apply")
        self._client = httpx.AsyncClient(
            base_url=base_url or config.BASE_URL,
            headers=headers,
            timeout=timeout,
            verify=verify_ssl,
        )
        self._rate_limit = RateLimitMonitor()
        self._scheduler = RequestScheduler(
            budget, cancel=cancel, monitor=self._rate_limit, timeout=timeout
        )

    @property
    def scheduler(self) -> RequestScheduler:
        return self._scheduler

    @property
    def cancel_token(self) -> CancelToken:
        return self._scheduler.cancel_token

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _send(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """One attempt, no retries. Raises taxonomy errors, never httpx ones."""
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise TransientError(f"GET {url}: timed out") from exc
        except httpx.TransportError as exc:
            raise TransientError(f"GET {url}: {exc}") from exc
        self._rate_limit.update(response)
        raise_for_status(response, url)
        return response

    async def _get(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._scheduler.submit(
            lambda: self._send(url, params), label=f"GET {url}"
        )

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._get(url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise SchemaError(f"GET {url}: response is not JSON") from exc

    async def _paginate(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        keep_partial: bool = False,
    ) -> list[Any]:
        """Collect every page of ``url``.

        With ``keep_partial``, a cancellation returns the pages fetched so
        far instead of raising :class:`RunCancelled`.
        """
        results: list[Any] = []
        params = dict(params or {})
        params.setdefault("per_page", config.PAGE_SIZE)
        next_url: str | None = url

        while next_url is not None:
            try:
                response = await self._get(next_url, params)
            except RunCancelled:
                if not keep_partial:
                    raise
                logger.warning(
                    "GET %s cancelled, keeping %d collected", url, len(results)
                )
                return results
            try:
                data = response.json()
            except ValueError as exc:
                raise SchemaError(f"GET {next_url}: response is not JSON") from exc
            results.extend(parse_page(data, url))

            # Follow Link header for next page
            next_url = None
            link_header = response.headers.get("Link", "")
            for part in link_header.split(","):
                if 'rel="next"' in part:
                    next_url = part.split(";")[0].strip().strip("<>")
                    params = {}  # URL already contains params
                    break

        return results

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}")

    async def list_pull_requests_page(
        self, owner: str, repo: str, page: int, per_page: int = config.PAGE_SIZE
    ) -> list[Any]:
        """One page of pull requests, newest first."""
        data = await self._get_json(
            f"/repos/{owner}/{repo}/pulls",
            params={
                "state": "all",
                "sort": "created",
                "direction": "desc",
                "per_page": per_page,
                "page": page,
            },
        )
        return parse_page(data, "pull requests")

    async def list_issues_page(
        self, owner: str, repo: str, page: int, per_page: int = config.PAGE_SIZE
    ) -> list[Any]:
        """One page of issues (pull requests included), newest first."""
        data = await self._get_json(
            f"/repos/{owner}/{repo}/issues",
            params={
                "state": "all",
                "sort": "created",
                "direction": "desc",
                "per_page": per_page,
                "page": page,
            },
        )
        return parse_page(data, "issues")

    async def get_pull_request(
        self, owner: str, repo: str, number: int
    ) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}/pulls/{number}")

    async def list_pull_files(self, owner: str, repo: str, number: int) -> list[Any]:
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{number}/files")

    async def list_pull_commits(self, owner: str, repo: str, number: int) -> list[Any]:
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{number}/commits")

    async def list_pull_reviews(self, owner: str, repo: str, number: int) -> list[Any]:
        return await self._paginate(f"/repos/{owner}/{repo}/pulls/{number}/reviews")

    async def list_issue_comments(
        self, owner: str, repo: str, number: int
    ) -> list[Any]:
        """Conversation comments of an issue or pull request."""
        return await self._paginate(f"/repos/{owner}/{repo}/issues/{number}/comments")

    async def list_check_runs(self, owner: str, repo: str, ref: str) -> dict[str, Any]:
        return await self._get_json(
            f"/repos/{owner}/{repo}/commits/{ref}/check-runs",
            params={"per_page": config.PAGE_SIZE},
        )

    async def get_commit(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        return await self._get_json(f"/repos/{owner}/{repo}/commits/{sha}")

    async def list_commit_pulls(self, owner: str, repo: str, sha: str) -> list[Any]:
        """Pull requests associated with a commit."""
        data = await self._get_json(f"/repos/{owner}/{repo}/commits/{sha}/pulls")
        return parse_page(data, "commit pull requests")

    async def list_branches(self, owner: str, repo: str) -> list[Any]:
        return await self._paginate(
            f"/repos/{owner}/{repo}/branches", keep_partial=True
        )

    async def list_commits(
        self,
        owner: str,
        repo: str,
        since: str | None = None,
        until: str | None = None,
        sha: str | None = None,
    ) -> list[Any]:
        """List commits reachable from ``sha`` (default branch when omitted)."""
        params: dict[str, Any] = {}
        if since:
            params["since"] = since
        if until:
            params["until"] = until
        if sha:
            params["sha"] = sha
        try:
            return await self._paginate(
                f"/repos/{owner}/{repo}/commits", params=params, keep_partial=True
            )
        except GitHubApiError as exc:
            # 409: repository is empty
            if exc.status_code == 409:
                return []
            raise
