"""Analyze one repository over a time window."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Coroutine

from . import config
from .aggregator import associate_commits_with_prs, build, link_issues_to_prs
from .branches import CrossBranchCommitAggregator
from .cancellation import CancelToken
from .enrichment import CommitEnricher, IssueEnricher, PullRequestEnricher
from .errors import (
    InvalidInputError,
    PartialEnrichment,
    RepoVibesError,
    RunCancelled,
    SchemaError,
)
from .fetcher import PaginatedFetcher
from .github.client import GitHubClient
from .github.parsing import parse_commit
from .models import AnalysisReport, CommitRecord, RequestBudget, Window, isoformat

logger = logging.getLogger(__name__)

_OWNER = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
_REPO = re.compile(r"^[A-Za-z0-9._-]{1,100}$")

When = datetime | date | str


def validate_repository(owner: str, repo: str) -> None:
    if not isinstance(owner, str) or not _OWNER.match(owner):
        raise InvalidInputError(f"invalid repository owner: {owner!r}")
    if not isinstance(repo, str) or not _REPO.match(repo) or repo in (".", ".."):
        raise InvalidInputError(f"invalid repository name: {repo!r}")


def parse_when(value: When, name: str) -> datetime:
    """Accept a datetime, a date or an ISO-8601 string; naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidInputError(f"invalid {name} timestamp: {value!r}") from exc
    else:
        raise InvalidInputError(f"invalid {name} timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_window(
    since: When, until: When | None = None, now: datetime | None = None
) -> Window:
    """Validate the window; an open ``until`` becomes ``now``."""
    now = now or datetime.now(timezone.utc)
    start = parse_when(since, "since")
    end = parse_when(until, "until") if until is not None else now
    if start > now:
        raise InvalidInputError("since cannot be in the future")
    if end > now:
        raise InvalidInputError("until cannot be in the future")
    if start > end:
        raise InvalidInputError("since must not be after until")
    return Window(since=start, until=end)


async def _join_or_abort(coros: list[Coroutine[Any, Any, Any]]) -> list[Any]:
    """Run streams concurrently; the first failure cancels the others and is raised."""
    tasks = [asyncio.create_task(c) for c in coros]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    for t in tasks:
        if t in done and t.exception() is not None:
            raise t.exception()
    return [t.result() for t in tasks]


class RepoAnalyzer:
    """Wires fetchers, enrichers and aggregators around one :class:`GitHubClient`."""

    def __init__(
        self,
        client: GitHubClient,
        include_all_branches: bool = True,
        enrich_commits: bool = False,
    ) -> None:
        self._client = client
        self._cancel: CancelToken = client.cancel_token
        self._include_all_branches = include_all_branches
        self._enrich_commits = enrich_commits

    async def analyze(
        self, owner: str, repo: str, since: When, until: When | None = None
    ) -> AnalysisReport:
        validate_repository(owner, repo)
        window = resolve_window(since, until)
        # Fresh per run so repeated calls never accumulate
        partial: list[PartialEnrichment] = []

        try:
            await self._client.get_repository(owner, repo)
        except RepoVibesError as exc:
            raise exc.bind(owner, repo)

        logger.info(
            "%s/%s: analyzing %s .. %s",
            owner,
            repo,
            isoformat(window.since),
            isoformat(window.until),
        )
        pr_fetcher = PaginatedFetcher(
            self._client.list_pull_requests_page,
            PullRequestEnricher(self._client, partial).enrich_item,
            self._cancel,
            kind="pull requests",
        )
        issue_fetcher = PaginatedFetcher(
            self._client.list_issues_page,
            IssueEnricher(self._client, partial).enrich_item,
            self._cancel,
            kind="issues",
        )
        try:
            prs, commits, issues, all_branch_counts = await _join_or_abort(
                [
                    pr_fetcher.fetch_since(owner, repo, window.since, window.until),
                    self._default_branch_commits(owner, repo, window, partial),
                    issue_fetcher.fetch_since(owner, repo, window.since, window.until),
                    self._all_branch_counts(owner, repo, window, partial),
                ]
            )
        except RepoVibesError as exc:
            raise exc.bind(owner, repo)

        link_issues_to_prs(issues, prs)
        associate_commits_with_prs(commits, prs)
        contributors, summary = build(prs, commits, issues, all_branch_counts)

        if partial:
            logger.warning(
                "%s/%s: report is partial, %d sub-resource(s) could not be fetched",
                owner,
                repo,
                len(partial),
            )
        return AnalysisReport(
            repo=f"{owner}/{repo}",
            window=window,
            summary=summary,
            contributors=contributors,
            pull_requests=prs,
            commits=commits,
            issues=issues,
            warnings=partial,
            generated_at=isoformat(datetime.now(timezone.utc)),
            cancelled=self._cancel.cancelled,
        )

    async def _default_branch_commits(
        self,
        owner: str,
        repo: str,
        window: Window,
        partial: list[PartialEnrichment],
    ) -> list[CommitRecord]:
        try:
            raw = await self._client.list_commits(
                owner,
                repo,
                since=isoformat(window.since),
                until=isoformat(window.until),
            )
        except RunCancelled:
            return []
        try:
            commits = [parse_commit(c) for c in raw]
        except SchemaError as exc:
            raise exc.bind(owner, repo, "default branch commits")
        logger.info("%s/%s: %d commit(s) on the default branch", owner, repo, len(commits))

        if self._enrich_commits:
            enricher = CommitEnricher(self._client, partial)
            for commit in commits:
                if self._cancel.cancelled:
                    break
                try:
                    await enricher.enrich(owner, repo, commit)
                except RunCancelled:
                    break
        return commits

    async def _all_branch_counts(
        self,
        owner: str,
        repo: str,
        window: Window,
        partial: list[PartialEnrichment],
    ) -> dict[str, int] | None:
        if not self._include_all_branches:
            return None
        aggregator = CrossBranchCommitAggregator(self._client, partial, self._cancel)
        try:
            return await aggregator.count_commits_by_author(
                owner, repo, window.since, window.until
            )
        except RunCancelled:
            return {}


async def analyze(
    owner: str,
    repo: str,
    since: When,
    until: When | None = None,
    token: str | None = None,
    *,
    budget: RequestBudget | None = None,
    cancel: CancelToken | None = None,
    base_url: str | None = None,
    verify_ssl: bool = True,
    include_all_branches: bool = True,
    enrich_commits: bool = False,
) -> AnalysisReport:
    """Fetch and aggregate activity for ``owner/repo`` between ``since`` and ``until``.

    ``token`` falls back to ``GITHUB_TOKEN`` / ``GH_TOKEN``. Input is validated
    before any request is made.
    """
    validate_repository(owner, repo)
    resolve_window(since, until)
    async with GitHubClient(
        token=config.resolve_token(token),
        budget=budget,
        cancel=cancel,
        base_url=base_url,
        verify_ssl=verify_ssl,
    ) as client:
        analyzer = RepoAnalyzer(
            client,
            include_all_branches=include_all_branches,
            enrich_commits=enrich_commits,
        )
        return await analyzer.analyze(owner, repo, since, until)
