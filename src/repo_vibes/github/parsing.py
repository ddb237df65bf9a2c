"""Parse-and-validate boundary for GitHub REST payloads.

Every function here turns a loosely typed JSON value into a typed record or
raises :class:`SchemaError`. Optional fields are defaulted per field; required
fields (numbers, timestamps, SHAs) must be present with the right type.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..errors import SchemaError
from ..models import CommitRecord, IssueRecord, PullRequestRecord, isoformat

UNKNOWN_LOGIN = "unknown"


@dataclass(frozen=True)
class ListingItem:
    """Minimal view of an entry in a created-desc listing."""

    number: int
    created_at: datetime
    raw: dict[str, Any]


@dataclass(frozen=True)
class CheckRun:
    name: str
    status: str
    conclusion: str


@dataclass(frozen=True)
class FileStat:
    filename: str
    additions: int
    deletions: int


@dataclass(frozen=True)
class Comment:
    author: str
    created_at: datetime


def parse_timestamp(value: Any, field: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if not isinstance(value, str) or not value:
        raise SchemaError(f"expected timestamp for {field!r}, got {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise SchemaError(f"invalid timestamp for {field!r}: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_timestamp(value: Any, field: str) -> str | None:
    if value is None:
        return None
    return isoformat(parse_timestamp(value, field))


def _require_dict(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaError(f"expected object for {what}, got {type(value).__name__}")
    return value


def _require_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise SchemaError(f"expected array for {what}, got {type(value).__name__}")
    return value


def _require_int(obj: dict[str, Any], key: str) -> int:
    value = obj.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise SchemaError(f"expected integer for {key!r}, got {value!r}")
    return value


def _int(obj: dict[str, Any], key: str, default: int = 0) -> int:
    value = obj.get(key)
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return default


def _str(obj: dict[str, Any], key: str, default: str = "") -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else default


def user_login(user: Any) -> str | None:
    """Login of a GitHub user object, or None for ghost/absent users."""
    if isinstance(user, dict):
        login = user.get("login")
        if isinstance(login, str) and login:
            return login
    return None


def parse_listing_item(raw: Any) -> ListingItem:
    item = _require_dict(raw, "listing item")
    return ListingItem(
        number=_require_int(item, "number"),
        created_at=parse_timestamp(item.get("created_at"), "created_at"),
        raw=item,
    )


def parse_page(raw: Any, what: str) -> list[Any]:
    return _require_list(raw, what)


def parse_pull_request_status(detail: dict[str, Any]) -> str:
    if detail.get("merged_at"):
        return "Merged"
    if str(detail.get("state") or "").lower() == "closed":
        return "Closed"
    if detail.get("draft"):
        return "Draft"
    return "Open"


def parse_pull_request(raw: Any) -> PullRequestRecord:
    """Base record from ``/pulls/{n}``; summary counts are placeholders until enriched."""
    pr = _require_dict(raw, "pull request")
    head = pr.get("head")
    head_sha = head.get("sha") if isinstance(head, dict) else None
    return PullRequestRecord(
        number=_require_int(pr, "number"),
        title=_str(pr, "title"),
        author=user_login(pr.get("user")) or UNKNOWN_LOGIN,
        created_at=isoformat(parse_timestamp(pr.get("created_at"), "created_at")),
        closed_at=_optional_timestamp(pr.get("closed_at"), "closed_at"),
        merged_at=_optional_timestamp(pr.get("merged_at"), "merged_at"),
        status=parse_pull_request_status(pr),
        additions=_int(pr, "additions"),
        deletions=_int(pr, "deletions"),
        changed_files=_int(pr, "changed_files"),
        commits=_int(pr, "commits"),
        comments=_int(pr, "comments"),
        url=_str(pr, "html_url"),
        head_sha=head_sha if isinstance(head_sha, str) and head_sha else None,
        merge_commit_sha=_str(pr, "merge_commit_sha") or None,
    )


def parse_file_stats(raw: Any) -> list[FileStat]:
    files = _require_list(raw, "pull request files")
    return [
        FileStat(
            filename=_str(f, "filename"),
            additions=_int(f, "additions"),
            deletions=_int(f, "deletions"),
        )
        for f in (_require_dict(f, "file") for f in files)
    ]


def parse_commit_shas(raw: Any) -> list[str]:
    commits = _require_list(raw, "pull request commits")
    shas = []
    for c in commits:
        sha = _require_dict(c, "commit").get("sha")
        if not isinstance(sha, str) or not sha:
            raise SchemaError(f"commit without sha: {c!r}")
        shas.append(sha)
    return shas


def parse_review_authors(raw: Any) -> list[str | None]:
    """One entry per review; None where the reviewer account is gone."""
    reviews = _require_list(raw, "reviews")
    return [user_login(_require_dict(r, "review").get("user")) for r in reviews]


def parse_comments(raw: Any) -> list[Comment]:
    comments = _require_list(raw, "comments")
    result = []
    for c in comments:
        c = _require_dict(c, "comment")
        result.append(
            Comment(
                author=user_login(c.get("user")) or UNKNOWN_LOGIN,
                created_at=parse_timestamp(c.get("created_at"), "comment.created_at"),
            )
        )
    return result


def parse_check_runs(raw: Any) -> list[CheckRun]:
    """Parse ``/commits/{ref}/check-runs`` (object with ``check_runs`` array)."""
    payload = _require_dict(raw, "check runs response")
    runs = _require_list(payload.get("check_runs", []), "check_runs")
    return [
        CheckRun(
            name=_str(r, "name"),
            status=_str(r, "status").lower(),
            conclusion=_str(r, "conclusion").lower(),
        )
        for r in (_require_dict(r, "check run") for r in runs)
    ]


def parse_merged_pr_number(raw: Any) -> int | None:
    """Number of the merged PR among a commit's associated pull requests."""
    for pr in _require_list(raw, "commit pull requests"):
        pr = _require_dict(pr, "pull request")
        if pr.get("merged_at"):
            return _require_int(pr, "number")
    return None


def commit_author(raw: dict[str, Any]) -> str:
    """Resolved account login, else the raw git author name, else ``unknown``."""
    login = user_login(raw.get("author"))
    if login:
        return login
    git_commit = raw.get("commit")
    if isinstance(git_commit, dict):
        for key in ("author", "committer"):
            person = git_commit.get(key)
            if isinstance(person, dict):
                name = person.get("name")
                if isinstance(name, str) and name.strip():
                    return name.strip()
    return UNKNOWN_LOGIN


def parse_commit(raw: Any) -> CommitRecord:
    """Parse an entry of ``/repos/{o}/{r}/commits`` (or a commit detail)."""
    c = _require_dict(raw, "commit")
    sha = c.get("sha")
    if not isinstance(sha, str) or not sha:
        raise SchemaError(f"commit without sha: {c!r}")
    git_commit = _require_dict(c.get("commit"), f"commit {sha[:7]} payload")
    dated = git_commit.get("committer") or git_commit.get("author")
    date = _require_dict(dated, f"commit {sha[:7]} signature").get("date")
    parents = c.get("parents") or []
    record = CommitRecord(
        sha=sha,
        committer=commit_author(c),
        message=_str(git_commit, "message"),
        date=isoformat(parse_timestamp(date, "commit.committer.date")),
        is_merge=isinstance(parents, list) and len(parents) > 1,
    )
    stats = c.get("stats")
    if isinstance(stats, dict):
        record.additions = _int(stats, "additions")
        record.deletions = _int(stats, "deletions")
    return record


def is_pull_request_entry(raw: dict[str, Any]) -> bool:
    """The issues listing also returns pull requests; they carry this key."""
    return "pull_request" in raw


def parse_issue(raw: Any) -> IssueRecord:
    i = _require_dict(raw, "issue")
    created = parse_timestamp(i.get("created_at"), "created_at")
    closed_at = i.get("closed_at")
    closed = parse_timestamp(closed_at, "closed_at") if closed_at else None
    is_closed = str(i.get("state") or "").lower() == "closed"
    ttc = None
    if closed is not None:
        ttc = round((closed - created).total_seconds() / 3600)
    assignees = [
        login for login in (user_login(a) for a in i.get("assignees") or []) if login
    ]
    labels = [
        _str(label, "name") if isinstance(label, dict) else str(label)
        for label in i.get("labels") or []
    ]
    return IssueRecord(
        number=_require_int(i, "number"),
        title=_str(i, "title"),
        author=user_login(i.get("user")) or UNKNOWN_LOGIN,
        created_at=isoformat(created),
        closed_at=isoformat(closed) if closed else None,
        is_closed=is_closed,
        time_to_close_hours=ttc,
        assignees=assignees,
        labels=[name for name in labels if name],
        comments=_int(i, "comments"),
        url=_str(i, "html_url"),
    )


def parse_branch_names(raw: Any) -> list[str]:
    branches = _require_list(raw, "branches")
    names = []
    for b in branches:
        name = _require_dict(b, "branch").get("name")
        if not isinstance(name, str) or not name:
            raise SchemaError(f"branch without name: {b!r}")
        names.append(name)
    return names


__all__ = [
    "UNKNOWN_LOGIN",
    "CheckRun",
    "Comment",
    "FileStat",
    "ListingItem",
    "commit_author",
    "is_pull_request_entry",
    "parse_branch_names",
    "parse_check_runs",
    "parse_comments",
    "parse_commit",
    "parse_commit_shas",
    "parse_file_stats",
    "parse_issue",
    "parse_listing_item",
    "parse_page",
    "parse_pull_request",
    "parse_pull_request_status",
    "parse_review_authors",
    "parse_timestamp",
    "user_login",
]
