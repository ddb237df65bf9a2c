"""Per-item enrichment: fan out sub-resource fetches and fold them into one record."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Iterable

from .errors import (
    PartialEnrichment,
    RepoVibesError,
    RunCancelled,
    SchemaError,
)
from .github.client import GitHubClient
from .github.parsing import (
    CheckRun,
    Comment,
    ListingItem,
    is_pull_request_entry,
    parse_check_runs,
    parse_comments,
    parse_commit,
    parse_commit_shas,
    parse_file_stats,
    parse_issue,
    parse_merged_pr_number,
    parse_pull_request,
    parse_review_authors,
    parse_timestamp,
)
from .models import CommitRecord, IssueRecord, PullRequestRecord

logger = logging.getLogger(__name__)

_VERBS = r"(?:closes|close|fixes|fix|resolves|resolve)"
LINKED_ISSUE_SHORT = re.compile(rf"\b{_VERBS}\s+#(\d+)", re.IGNORECASE)
LINKED_ISSUE_URL = re.compile(
    rf"\b{_VERBS}\s+https?://[^\s/]+/[\w.-]+/[\w.-]+/issues/(\d+)",
    re.IGNORECASE,
)

PENDING_STATUSES = frozenset({"queued", "in_progress", "waiting", "requested", "pending"})
FAILURE_CONCLUSIONS = frozenset({"failure", "cancelled", "timed_out"})

_COMMIT_CI = {"success": "pass", "failure": "fail", "pending": "pending", "unknown": "unknown"}


def derive_ci_outcome(runs: Iterable[CheckRun]) -> str:
    """Collapse check runs into one outcome: pending > failure > success > unknown."""
    runs = list(runs)
    if any(r.status in PENDING_STATUSES for r in runs):
        return "pending"
    if any(r.conclusion in FAILURE_CONCLUSIONS for r in runs):
        return "failure"
    if any(r.conclusion == "success" for r in runs):
        return "success"
    return "unknown"


def derive_commit_ci_status(runs: Iterable[CheckRun]) -> str:
    """Commit vocabulary: pass/fail/pending/unknown, or none without check runs."""
    runs = list(runs)
    if not runs:
        return "none"
    return _COMMIT_CI[derive_ci_outcome(runs)]


def extract_linked_issue(body: str | None) -> int | None:
    """First issue closed by the body; ``#N`` references win over issue URLs."""
    if not body:
        return None
    for pattern in (LINKED_ISSUE_SHORT, LINKED_ISSUE_URL):
        match = pattern.search(body)
        if match:
            return int(match.group(1))
    return None


def first_response_minutes(issue: IssueRecord, comments: Iterable[Comment]) -> int | None:
    """Minutes until the first comment by someone other than the issue author."""
    created = parse_timestamp(issue.created_at, "created_at")
    replies = [c.created_at for c in comments if c.author != issue.author]
    if not replies:
        return None
    return max(0, round((min(replies) - created).total_seconds() / 60))


async def join_fields(
    owner: str,
    repo: str,
    item: str,
    fetches: dict[str, Awaitable[Any]],
    partial: list[PartialEnrichment],
) -> dict[str, Any]:
    """Run every fetch to completion and return the ones that succeeded.

    A failed fetch is recorded as :class:`PartialEnrichment` and left out of
    the result. Cancellation and malformed payloads are re-raised.
    """
    names = list(fetches)
    results = await asyncio.gather(*fetches.values(), return_exceptions=True)
    values: dict[str, Any] = {}
    for name, result in zip(names, results):
        if isinstance(result, (RunCancelled, SchemaError)):
            raise result.bind(owner, repo, item)
        if isinstance(result, RepoVibesError):
            logger.warning("%s/%s %s: could not fetch %s: %s", owner, repo, item, name, result)
            partial.append(PartialEnrichment(item=item, field=name, error=str(result)))
            continue
        if isinstance(result, BaseException):
            raise result
        values[name] = result
    return values


class PullRequestEnricher:
    """Builds a :class:`PullRequestRecord` from the PR detail and its sub-resources."""

    def __init__(
        self, client: GitHubClient, partial: list[PartialEnrichment] | None = None
    ) -> None:
        self._client = client
        self.partial = partial if partial is not None else []

    async def enrich_item(
        self, owner: str, repo: str, item: ListingItem
    ) -> PullRequestRecord:
        return await self.enrich(owner, repo, item.number)

    async def enrich(self, owner: str, repo: str, number: int) -> PullRequestRecord:
        label = f"PR #{number}"
        logger.info("%s/%s: analyzing %s", owner, repo, label)
        try:
            detail = await self._client.get_pull_request(owner, repo, number)
            record = parse_pull_request(detail)
        except RepoVibesError as exc:
            raise exc.bind(owner, repo, label)

        fetches: dict[str, Awaitable[Any]] = {
            "files": self._files(owner, repo, number),
            "commits": self._commits(owner, repo, number),
            "reviews": self._reviews(owner, repo, number),
            "comments": self._comments(owner, repo, number),
        }
        if record.head_sha:
            fetches["checks"] = self._checks(owner, repo, record.head_sha)
        fields = await join_fields(owner, repo, label, fetches, self.partial)

        # Per-file totals win; the detail's summary counts are the fallback
        if "files" in fields:
            files = fields["files"]
            record.additions = sum(f.additions for f in files)
            record.deletions = sum(f.deletions for f in files)
            record.changed_files = len(files)
        if "commits" in fields:
            record.commit_shas = fields["commits"]
            record.commits = len(record.commit_shas)
        if "reviews" in fields:
            authors = fields["reviews"]
            record.review_count = len(authors)
            record.reviewers = list(dict.fromkeys(a for a in authors if a))
        if "comments" in fields:
            record.comments = len(fields["comments"])
        if "checks" in fields:
            record.ci_status = derive_ci_outcome(fields["checks"])

        body = detail.get("body") if isinstance(detail, dict) else None
        record.linked_issue = extract_linked_issue(body if isinstance(body, str) else None)
        record.linked_issues = [record.linked_issue] if record.linked_issue else []
        return record

    async def _files(self, owner: str, repo: str, number: int):
        return parse_file_stats(await self._client.list_pull_files(owner, repo, number))

    async def _commits(self, owner: str, repo: str, number: int) -> list[str]:
        return parse_commit_shas(await self._client.list_pull_commits(owner, repo, number))

    async def _reviews(self, owner: str, repo: str, number: int) -> list[str | None]:
        return parse_review_authors(
            await self._client.list_pull_reviews(owner, repo, number)
        )

    async def _comments(self, owner: str, repo: str, number: int) -> list[Comment]:
        return parse_comments(await self._client.list_issue_comments(owner, repo, number))

    async def _checks(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        return parse_check_runs(await self._client.list_check_runs(owner, repo, ref))


class IssueEnricher:
    """Parses issues from the issue listing and adds first-response latency."""

    def __init__(
        self, client: GitHubClient, partial: list[PartialEnrichment] | None = None
    ) -> None:
        self._client = client
        self.partial = partial if partial is not None else []

    async def enrich_item(
        self, owner: str, repo: str, item: ListingItem
    ) -> IssueRecord | None:
        return await self.enrich(owner, repo, item.raw)

    async def enrich(
        self, owner: str, repo: str, raw: dict[str, Any]
    ) -> IssueRecord | None:
        # The issues endpoint lists pull requests as well
        if is_pull_request_entry(raw):
            return None
        try:
            issue = parse_issue(raw)
        except SchemaError as exc:
            raise exc.bind(owner, repo, f"issue #{raw.get('number')}")
        if issue.comments == 0:
            return issue

        label = f"issue #{issue.number}"
        fields = await join_fields(
            owner,
            repo,
            label,
            {"comments": self._comments(owner, repo, issue.number)},
            self.partial,
        )
        if "comments" in fields:
            issue.time_to_first_response_minutes = first_response_minutes(
                issue, fields["comments"]
            )
        return issue

    async def _comments(self, owner: str, repo: str, number: int) -> list[Comment]:
        return parse_comments(await self._client.list_issue_comments(owner, repo, number))


class CommitEnricher:
    """Adds line stats, CI status and the merging PR to commits (opt-in)."""

    def __init__(
        self, client: GitHubClient, partial: list[PartialEnrichment] | None = None
    ) -> None:
        self._client = client
        self.partial = partial if partial is not None else []

    async def enrich(self, owner: str, repo: str, commit: CommitRecord) -> CommitRecord:
        label = f"commit {commit.sha[:7]}"
        fields = await join_fields(
            owner,
            repo,
            label,
            {
                "stats": self._detail(owner, repo, commit.sha),
                "checks": self._checks(owner, repo, commit.sha),
                "pulls": self._pulls(owner, repo, commit.sha),
            },
            self.partial,
        )
        if "stats" in fields:
            commit.additions = fields["stats"].additions
            commit.deletions = fields["stats"].deletions
        if "checks" in fields:
            commit.ci_status = derive_commit_ci_status(fields["checks"])
        if fields.get("pulls") is not None:
            commit.pr = fields["pulls"]
        return commit

    async def _detail(self, owner: str, repo: str, sha: str) -> CommitRecord:
        return parse_commit(await self._client.get_commit(owner, repo, sha))

    async def _checks(self, owner: str, repo: str, sha: str) -> list[CheckRun]:
        return parse_check_runs(await self._client.list_check_runs(owner, repo, sha))

    async def _pulls(self, owner: str, repo: str, sha: str) -> int | None:
        return parse_merged_pr_number(await self._client.list_commit_pulls(owner, repo, sha))
