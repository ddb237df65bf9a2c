"""Fold PR, commit and issue records into a contributor ledger and a summary."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .github.parsing import UNKNOWN_LOGIN
from .models import (
    CommitRecord,
    ContributorLedgerEntry,
    IssueRecord,
    PullRequestRecord,
    Summary,
)

logger = logging.getLogger(__name__)

# "Title (#123)" on the first line, as written by squash and rebase merges
_SQUASH_SUFFIX = re.compile(r"\(#(\d+)\)\s*$")


def _is_bot(username: str) -> bool:
    """Check if a username belongs to a bot account."""
    return username.lower().endswith("[bot]")


def _login(value: str | None) -> str:
    # Logins are case-sensitive exact keys; only empty values are replaced
    return value if value else UNKNOWN_LOGIN


def link_issues_to_prs(
    issues: Iterable[IssueRecord], prs: Iterable[PullRequestRecord]
) -> None:
    """Fill ``IssueRecord.linked_prs`` from the issues the PR bodies close."""
    by_number = {i.number: i for i in issues}
    for pr in prs:
        issue = by_number.get(pr.linked_issue) if pr.linked_issue else None
        if issue is not None and pr.number not in issue.linked_prs:
            issue.linked_prs.append(pr.number)


def squashed_pr_number(message: str) -> int | None:
    """PR number from a squash-merge subject line, if any."""
    subject = message.splitlines()[0] if message else ""
    match = _SQUASH_SUFFIX.search(subject)
    return int(match.group(1)) if match else None


def associate_commits_with_prs(
    commits: Iterable[CommitRecord], prs: Iterable[PullRequestRecord]
) -> None:
    """Set ``CommitRecord.pr`` for commits that belong to, or merged, a PR.

    PRs in the window are matched by SHA first. A commit whose PR was opened
    before the window falls back to the ``(#N)`` suffix of its subject.
    """
    owner_of: dict[str, int] = {}
    for pr in prs:
        for sha in pr.commit_shas or []:
            owner_of.setdefault(sha, pr.number)
        if pr.merge_commit_sha and pr.merged_at:
            owner_of.setdefault(pr.merge_commit_sha, pr.number)
    for commit in commits:
        if commit.pr is None:
            commit.pr = owner_of.get(commit.sha)
        if commit.pr is None:
            commit.pr = squashed_pr_number(commit.message)


def _is_direct_push(commit: CommitRecord) -> bool:
    if commit.pr is not None or commit.is_merge:
        return False
    return squashed_pr_number(commit.message) is None


def build_contributors(
    prs: Iterable[PullRequestRecord],
    commits: Iterable[CommitRecord],
    issues: Iterable[IssueRecord],
    all_branch_counts: dict[str, int] | None = None,
) -> list[ContributorLedgerEntry]:
    """One ledger entry per login seen in any stream, bots removed at the end."""
    default_all = 0 if all_branch_counts is not None else None
    ledger: dict[str, ContributorLedgerEntry] = {}

    def entry(login: str | None) -> ContributorLedgerEntry:
        key = _login(login)
        if key not in ledger:
            ledger[key] = ContributorLedgerEntry(login=key, commits_all_branches=default_all)
        return ledger[key]

    for c in commits:
        e = entry(c.committer)
        e.commits += 1
        if _is_direct_push(c):
            e.direct_pushes += 1

    for login, count in (all_branch_counts or {}).items():
        entry(login).commits_all_branches = count

    prs = list(prs)
    for pr in prs:
        entry(pr.author).prs += 1
    for pr in prs:
        for reviewer in pr.reviewers:
            entry(reviewer).reviews += 1

    for issue in issues:
        entry(issue.author).issues += 1

    bots = [login for login in ledger if _is_bot(login)]
    for login in bots:
        del ledger[login]
    if bots:
        logger.info("Excluded %d bot account(s) from contributors", len(bots))

    return list(ledger.values())


def build_summary(
    prs: list[PullRequestRecord],
    commits: list[CommitRecord],
    issues: list[IssueRecord],
    contributors: list[ContributorLedgerEntry],
) -> Summary:
    reviewed = sum(1 for pr in prs if pr.review_count > 0 or pr.reviewers)
    with_ci = [pr for pr in prs if pr.ci_status != "unknown"]
    ci_success_rate = None
    if with_ci:
        passed = sum(1 for pr in with_ci if pr.ci_status == "success")
        ci_success_rate = round(passed / len(with_ci), 4)

    return Summary(
        contributors_active=len(contributors),
        prs_opened=len(prs),
        prs_merged=sum(1 for pr in prs if pr.merged_at),
        issues_opened=sum(1 for i in issues if not i.is_closed),
        issues_closed=sum(1 for i in issues if i.is_closed),
        commits=len(commits),
        direct_pushes=sum(1 for c in commits if _is_direct_push(c)),
        pct_prs_reviewed=round(reviewed / len(prs), 4) if prs else 0,
        ci_success_rate=ci_success_rate,
    )


def build(
    prs: list[PullRequestRecord],
    commits: list[CommitRecord],
    issues: list[IssueRecord],
    all_branch_counts: dict[str, int] | None = None,
) -> tuple[list[ContributorLedgerEntry], Summary]:
    contributors = build_contributors(prs, commits, issues, all_branch_counts)
    return contributors, build_summary(prs, commits, issues, contributors)
