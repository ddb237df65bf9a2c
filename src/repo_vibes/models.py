"""Data models for repo-vibes."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from typing import Any

from . import config
from .errors import PartialEnrichment

AVATAR_URL = "https://avatars.githubusercontent.com/{login}"


def _internal() -> Any:
    return field(default=None, repr=False, metadata={"internal": True})


def isoformat(value: datetime) -> str:
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def to_dict(obj: Any) -> Any:
    """Serialize dataclasses recursively, dropping internal fields."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: to_dict(getattr(obj, f.name))
            for f in fields(obj)
            if not f.metadata.get("internal")
        }
    if isinstance(obj, (list, tuple)):
        return [to_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    if isinstance(obj, datetime):
        return isoformat(obj)
    return obj


@dataclass(frozen=True)
class Window:
    since: datetime
    until: datetime

    def to_dict(self) -> dict[str, str]:
        return {"from": isoformat(self.since), "to": isoformat(self.until)}


@dataclass
class RequestBudget:
    """Token bucket settings. ``remaining`` starts at ``capacity``."""

    capacity: int = config.BUDGET_CAPACITY
    refill_amount: int = config.BUDGET_REFILL_AMOUNT
    refill_interval: float = config.BUDGET_REFILL_INTERVAL
    min_spacing: float = config.BUDGET_MIN_SPACING
    max_concurrent: int = config.BUDGET_MAX_CONCURRENT
    remaining: int | None = None

    def __post_init__(self) -> None:
        if self.capacity < 1 or self.max_concurrent < 1:
            raise ValueError("capacity and max_concurrent must be at least 1")
        if self.refill_interval <= 0 or self.min_spacing < 0:
            raise ValueError("refill_interval must be positive, min_spacing non-negative")
        if self.remaining is None:
            self.remaining = self.capacity


@dataclass
class PullRequestRecord:
    number: int
    title: str
    author: str
    created_at: str
    closed_at: str | None = None
    merged_at: str | None = None
    status: str = "Open"
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    commits: int = 0
    review_count: int = 0
    reviewers: list[str] = field(default_factory=list)
    comments: int = 0
    ci_status: str = "unknown"
    linked_issue: int | None = None
    linked_issues: list[int] = field(default_factory=list)
    url: str = ""
    # Used for cross-linking, not part of the report
    head_sha: str | None = _internal()
    merge_commit_sha: str | None = _internal()
    commit_shas: list[str] | None = _internal()


@dataclass
class CommitRecord:
    sha: str
    committer: str
    message: str
    date: str
    ci_status: str | None = None
    additions: int | None = None
    deletions: int | None = None
    is_merge: bool = False
    pr: int | None = None


@dataclass
class IssueRecord:
    number: int
    title: str
    author: str
    created_at: str
    closed_at: str | None = None
    is_closed: bool = False
    time_to_first_response_minutes: int | None = None
    time_to_close_hours: int | None = None
    assignees: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    linked_prs: list[int] = field(default_factory=list)
    comments: int = 0
    url: str = ""


@dataclass
class ContributorLedgerEntry:
    login: str
    commits: int = 0
    commits_all_branches: int | None = None
    prs: int = 0
    reviews: int = 0
    issues: int = 0
    direct_pushes: int = 0
    avatar_url: str = ""

    def __post_init__(self) -> None:
        if not self.avatar_url:
            self.avatar_url = AVATAR_URL.format(login=self.login)


@dataclass
class Summary:
    contributors_active: int = 0
    prs_opened: int = 0
    prs_merged: int = 0
    issues_opened: int = 0
    issues_closed: int = 0
    commits: int = 0
    direct_pushes: int = 0
    pct_prs_reviewed: float = 0
    ci_success_rate: float | None = None


@dataclass
class AnalysisReport:
    repo: str
    window: Window
    summary: Summary
    contributors: list[ContributorLedgerEntry] = field(default_factory=list)
    pull_requests: list[PullRequestRecord] = field(default_factory=list)
    commits: list[CommitRecord] = field(default_factory=list)
    issues: list[IssueRecord] = field(default_factory=list)
    warnings: list[PartialEnrichment] = field(default_factory=list)
    generated_at: str | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = to_dict(self)
        data["window"] = self.window.to_dict()
        return data
