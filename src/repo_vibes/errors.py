"""Error taxonomy for repo-vibes."""

from __future__ import annotations

from dataclasses import dataclass


class RepoVibesError(Exception):
    """Base error. Carries optional owner/repo/item context."""

    def __init__(
        self,
        message: str,
        *,
        owner: str | None = None,
        repo: str | None = None,
        item: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.owner = owner
        self.repo = repo
        self.item = item

    def bind(
        self,
        owner: str | None = None,
        repo: str | None = None,
        item: str | None = None,
    ) -> RepoVibesError:
        """Fill in context that is not already set. Returns self."""
        if self.owner is None:
            self.owner = owner
        if self.repo is None:
            self.repo = repo
        if self.item is None:
            self.item = item
        return self

    @property
    def context(self) -> str:
        parts = []
        if self.owner and self.repo:
            parts.append(f"{self.owner}/{self.repo}")
        if self.item:
            parts.append(self.item)
        return " ".join(parts)

    def __str__(self) -> str:
        ctx = self.context
        return f"{self.message} ({ctx})" if ctx else self.message


class InvalidInputError(RepoVibesError, ValueError):
    """Malformed owner/repo or time window."""


class NotFoundError(RepoVibesError):
    """Repository or item missing, or hidden from the given credential."""


class RateLimitedError(RepoVibesError):
    """Primary (429 / exhausted budget) or secondary (abuse) rate limit."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        secondary: bool = False,
        **context: str | None,
    ) -> None:
        super().__init__(message, **context)
        self.retry_after = retry_after
        self.secondary = secondary


class TransientError(RepoVibesError):
    """Network failure, 5xx response or timeout."""


class FatalError(RepoVibesError):
    """Anything that aborts the run."""


class AuthenticationError(FatalError):
    pass


class SchemaError(FatalError):
    """The API returned a payload of an unexpected shape."""


class GitHubApiError(FatalError):
    def __init__(self, message: str, *, status_code: int, **context: str | None) -> None:
        super().__init__(message, **context)
        self.status_code = status_code


class RunCancelled(RepoVibesError):
    """The run was cancelled; no new requests are dispatched."""


@dataclass
class PartialEnrichment:
    """A sub-resource of one item could not be fetched; the field was defaulted."""

    item: str
    field: str
    error: str
