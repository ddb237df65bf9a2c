"""Commit counts per author across every branch of a repository."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime

from .cancellation import CancelToken
from .errors import (
    NotFoundError,
    PartialEnrichment,
    RateLimitedError,
    RunCancelled,
    SchemaError,
    TransientError,
)
from .github.client import GitHubClient
from .github.parsing import commit_author, parse_branch_names, parse_page
from .models import isoformat

logger = logging.getLogger(__name__)


class CrossBranchCommitAggregator:
    """Counts unique commits per author over all branches.

    A commit reachable from several branches is counted once: SHAs are
    de-duplicated across the whole run, not per branch.
    """

    def __init__(
        self,
        client: GitHubClient,
        partial: list[PartialEnrichment] | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self._client = client
        self._cancel = cancel or CancelToken()
        self.partial = partial if partial is not None else []
        self.unique_commits = 0

    async def count_commits_by_author(
        self, owner: str, repo: str, since: datetime, until: datetime
    ) -> dict[str, int]:
        logger.info("%s/%s: counting commits across all branches", owner, repo)
        branches = parse_branch_names(await self._client.list_branches(owner, repo))
        logger.info("%s/%s: found %d branches", owner, repo, len(branches))

        since_iso = isoformat(since)
        until_iso = isoformat(until)
        seen: set[str] = set()
        counts: Counter[str] = Counter()

        for branch in branches:
            if self._cancel.cancelled:
                logger.warning(
                    "%s/%s: branch scan cancelled before %s", owner, repo, branch
                )
                break
            try:
                raw_commits = await self._client.list_commits(
                    owner, repo, since=since_iso, until=until_iso, sha=branch
                )
            except (NotFoundError, TransientError, RateLimitedError) as exc:
                logger.warning(
                    "%s/%s: skipping branch %s: %s", owner, repo, branch, exc
                )
                self.partial.append(
                    PartialEnrichment(item=f"branch {branch}", field="commits", error=str(exc))
                )
                continue
            except RunCancelled:
                logger.warning(
                    "%s/%s: branch scan cancelled at %s", owner, repo, branch
                )
                break

            new = 0
            for raw in parse_page(raw_commits, f"commits on {branch}"):
                sha = raw.get("sha") if isinstance(raw, dict) else None
                if not isinstance(sha, str) or not sha:
                    raise SchemaError(f"commit without sha on {branch}: {raw!r}")
                if sha in seen:
                    continue
                seen.add(sha)
                counts[commit_author(raw)] += 1
                new += 1
            logger.info(
                "%s/%s: %d new commit(s) on %s", owner, repo, new, branch
            )

        self.unique_commits = len(seen)
        logger.info(
            "%s/%s: %d contributor(s), %d unique commit(s) across all branches",
            owner,
            repo,
            len(counts),
            self.unique_commits,
        )
        return dict(counts)
