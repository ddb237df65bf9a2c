"""CLI entrypoint for repo-vibes."""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from datetime import datetime, timedelta, timezone

import click
from rich.logging import RichHandler

from . import __version__
from .errors import (
    AuthenticationError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    RepoVibesError,
    SchemaError,
    TransientError,
)


def _parse_relative_date(value: str, now: datetime | None = None) -> datetime | None:
    """Parse relative date like 7d, 2w, 3m, 1y into a UTC midnight."""
    match = re.match(r"^(\d+)([dwmy])$", value)
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2)
    if unit == "d":
        delta = timedelta(days=amount)
    elif unit == "w":
        delta = timedelta(weeks=amount)
    elif unit == "m":
        delta = timedelta(days=amount * 30)
    else:  # unit == "y"
        delta = timedelta(days=amount * 365)
    target = (now or datetime.now(timezone.utc)) - delta
    return target.replace(hour=0, minute=0, second=0, microsecond=0)


def _resolve_date(
    value: str | None, end_of_day: bool = False, now: datetime | None = None
) -> datetime | str | None:
    """Resolve a date value that may be relative (7d, 30d, 3m, 1y) or absolute.

    A bare ``YYYY-MM-DD`` ``until`` covers that whole day, capped at now.
    Anything else is passed through for the analyzer to validate.
    """
    if value is None:
        return None
    now = now or datetime.now(timezone.utc)
    parsed = _parse_relative_date(value, now)
    if parsed is None and re.match(r"^\d{4}-\d{2}-\d{2}$", value):
        try:
            parsed = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return value
    if parsed is None:
        return value
    if end_of_day:
        parsed = min(parsed.replace(hour=23, minute=59, second=59), now)
    return parsed


def _split_target(target: str) -> tuple[str, str]:
    owner, sep, repo = target.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise click.BadParameter("expected OWNER/REPO", param_hint="'TARGET'")
    return owner, repo


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.command()
@click.argument("target")
@click.option(
    "--since",
    required=True,
    help="Start date (YYYY-MM-DD, ISO 8601 or relative: 7d, 2w, 3m, 1y)",
)
@click.option(
    "--until",
    default=None,
    help="End date (YYYY-MM-DD, ISO 8601 or relative); defaults to now",
)
@click.option(
    "--token",
    envvar=["GITHUB_TOKEN", "GH_TOKEN"],
    default=None,
    show_envvar=True,
    help="GitHub personal access token (anonymous when omitted)",
)
@click.option(
    "--top-n", default=10, show_default=True, help="Number of rows to show per table"
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format",
)
@click.option(
    "--output",
    "output_file",
    default=None,
    type=click.Path(),
    help="Save output to file instead of stdout",
)
@click.option(
    "--default-branch-only",
    is_flag=True,
    default=False,
    help="Skip the per-branch commit scan",
)
@click.option(
    "--enrich-commits",
    is_flag=True,
    default=False,
    help="Fetch line stats and CI status for every default-branch commit",
)
@click.option(
    "--api-url",
    default=None,
    help="GitHub Enterprise API base URL",
)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    default=False,
    help="Disable SSL verification (self-signed certs)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log progress")
@click.version_option(version=__version__)
def main(
    target: str,
    since: str,
    until: str | None,
    token: str | None,
    top_n: int,
    output_format: str,
    output_file: str | None,
    default_branch_only: bool,
    enrich_commits: bool,
    api_url: str | None,
    no_ssl_verify: bool,
    verbose: bool,
) -> None:
    """Summarize pull requests, commits, issues and contributors of one repository.

    \b
    Examples:
      repo-vibes octocat/hello-world --since 30d
      repo-vibes myorg/myrepo --since 2024-01-01 --until 2024-03-31
      repo-vibes myorg/myrepo --since 2w --format json --output report.json
    """
    owner, repo = _split_target(target)
    _configure_logging(verbose)

    from .orchestrator import run

    try:
        asyncio.run(
            run(
                owner=owner,
                repo=repo,
                since=_resolve_date(since),
                until=_resolve_date(until, end_of_day=True),
                token=token,
                top_n=top_n,
                output_format=output_format,
                output_file=output_file,
                include_all_branches=not default_branch_only,
                enrich_commits=enrich_commits,
                api_url=api_url,
                verify_ssl=not no_ssl_verify,
            )
        )
    except InvalidInputError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    except NotFoundError:
        click.echo(f"Error: '{target}' not found. Check the owner/repo name.", err=True)
        sys.exit(1)
    except AuthenticationError:
        click.echo("Error: Authentication failed. Check your --token or $GITHUB_TOKEN.", err=True)
        sys.exit(1)
    except RateLimitedError as exc:
        click.echo(f"Error: GitHub rate limit exhausted. {exc}", err=True)
        sys.exit(1)
    except TransientError as exc:
        click.echo(f"Error: Could not reach the GitHub API. {exc}", err=True)
        sys.exit(1)
    except SchemaError as exc:
        click.echo(f"Error: Unexpected response from GitHub. {exc}", err=True)
        sys.exit(1)
    except RepoVibesError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
