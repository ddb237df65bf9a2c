"""Tests for data models."""

from datetime import datetime, timedelta, timezone

import pytest

from repo_vibes.errors import PartialEnrichment
from repo_vibes.models import (
    AnalysisReport,
    CommitRecord,
    ContributorLedgerEntry,
    PullRequestRecord,
    RequestBudget,
    Summary,
    Window,
    isoformat,
    to_dict,
)


def test_isoformat_converts_to_utc():
    dt = datetime(2024, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert isoformat(dt) == "2024-06-01T10:00:00Z"


def test_window_to_dict():
    w = Window(
        since=datetime(2024, 6, 1, tzinfo=timezone.utc),
        until=datetime(2024, 6, 30, 23, 59, 59, tzinfo=timezone.utc),
    )
    assert w.to_dict() == {"from": "2024-06-01T00:00:00Z", "to": "2024-06-30T23:59:59Z"}


def test_request_budget_defaults():
    b = RequestBudget()
    assert b.capacity == 5000
    assert b.remaining == 5000
    assert b.max_concurrent == 1
    assert b.min_spacing == 0.75


def test_request_budget_rejects_invalid():
    with pytest.raises(ValueError):
        RequestBudget(capacity=0)
    with pytest.raises(ValueError):
        RequestBudget(max_concurrent=0)
    with pytest.raises(ValueError):
        RequestBudget(refill_interval=0)


def test_contributor_avatar_url():
    c = ContributorLedgerEntry(login="alice")
    assert c.avatar_url == "https://avatars.githubusercontent.com/alice"
    assert c.commits == 0
    assert c.commits_all_branches is None


def test_pull_request_internal_fields_not_serialized():
    pr = PullRequestRecord(
        number=1,
        title="t",
        author="alice",
        created_at="2024-06-01T00:00:00Z",
        head_sha="abc",
        merge_commit_sha="def",
        commit_shas=["abc"],
    )
    data = to_dict(pr)
    assert data["number"] == 1
    assert data["ci_status"] == "unknown"
    assert "head_sha" not in data
    assert "merge_commit_sha" not in data
    assert "commit_shas" not in data


def test_commit_record_defaults():
    c = CommitRecord(sha="a", committer="bob", message="m", date="2024-06-01T00:00:00Z")
    assert c.ci_status is None
    assert c.additions is None
    assert c.pr is None
    assert c.is_merge is False


def test_analysis_report_to_dict():
    window = Window(
        since=datetime(2024, 6, 1, tzinfo=timezone.utc),
        until=datetime(2024, 6, 2, tzinfo=timezone.utc),
    )
    report = AnalysisReport(
        repo="octo/hello",
        window=window,
        summary=Summary(commits=2),
        contributors=[ContributorLedgerEntry(login="alice", commits=2)],
        warnings=[PartialEnrichment(item="PR #1", field="reviews", error="boom")],
    )
    data = report.to_dict()
    assert data["repo"] == "octo/hello"
    assert data["window"] == {"from": "2024-06-01T00:00:00Z", "to": "2024-06-02T00:00:00Z"}
    assert data["summary"]["commits"] == 2
    assert data["summary"]["ci_success_rate"] is None
    assert data["contributors"][0]["login"] == "alice"
    assert data["warnings"] == [{"item": "PR #1", "field": "reviews", "error": "boom"}]
    assert data["cancelled"] is False
