"""Rich-based terminal report renderer with JSON support."""

from __future__ import annotations

import io
import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import AnalysisReport, ContributorLedgerEntry

_CI_STYLES = {
    "success": "green",
    "failure": "red",
    "pending": "yellow",
}

_STATUS_STYLES = {
    "Merged": "magenta",
    "Closed": "red",
    "Draft": "dim",
    "Open": "green",
}


def _format_number(n: int | None) -> str:
    if n is None:
        return "-"
    return f"{n:,}"


def _format_pct(ratio: float | None) -> str:
    if ratio is None:
        return "-"
    return f"{ratio * 100:.1f}%"


def _format_minutes(m: int | None) -> str:
    if m is None:
        return "-"
    if m < 60:
        return f"{m}m"
    if m < 24 * 60:
        return f"{m / 60:.1f}h"
    return f"{m / 1440:.1f}d"


def _format_date(iso: str | None) -> str:
    """Format an ISO 8601 date string to YYYY-MM-DD for display."""
    if not iso:
        return "-"
    return iso[:10] if len(iso) >= 10 else iso


def _write_to_file(content: str, output_file: str) -> None:
    """Write content to a file and print confirmation."""
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(content)
    Console().print(f"Saved to {output_file}")


def _activity(c: ContributorLedgerEntry) -> int:
    return c.commits + c.prs + c.reviews + c.issues


def render_report(
    report: AnalysisReport,
    top_n: int = 10,
    output_file: str | None = None,
) -> None:
    """Render an AnalysisReport to the terminal using rich."""
    if output_file:
        string_io = io.StringIO()
        console = Console(file=string_io, force_terminal=False, width=120)
    else:
        console = Console()

    window = report.window.to_dict()
    console.print(Panel(
        Text(
            f"repo-vibes: {report.repo}\n"
            f"Period: {_format_date(window['from'])} ~ {_format_date(window['to'])}",
            justify="center",
        ),
        style="bold cyan",
    ))
    console.print()

    if report.cancelled:
        console.print(
            "[bold yellow]Warning:[/bold yellow] Run was cancelled; "
            "figures below cover only what was fetched"
        )
        console.print()

    if report.warnings:
        console.print(
            f"[bold yellow]Warning:[/bold yellow] {len(report.warnings)} field(s) "
            "could not be fetched and were left at defaults"
        )
        for w in report.warnings[:10]:
            console.print(f"  [dim]{escape(w.item)}[/dim] {w.field}: {escape(w.error)}")
        if len(report.warnings) > 10:
            console.print(f"  [dim]... and {len(report.warnings) - 10} more[/dim]")
        console.print()

    # Summary
    s = report.summary
    console.print("[bold]Summary[/bold]")
    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column("label", style="dim")
    summary.add_column("value", style="bold")
    summary.add_row("Active Contributors", _format_number(s.contributors_active))
    summary.add_row("Commits", _format_number(s.commits))
    summary.add_row("Direct Pushes", _format_number(s.direct_pushes))
    summary.add_row("PRs Opened", _format_number(s.prs_opened))
    summary.add_row("PRs Merged", _format_number(s.prs_merged))
    summary.add_row("PRs Reviewed", _format_pct(s.pct_prs_reviewed))
    summary.add_row("CI Success Rate", _format_pct(s.ci_success_rate))
    summary.add_row("Open Issues", _format_number(s.issues_opened))
    summary.add_row("Closed Issues", _format_number(s.issues_closed))
    console.print(summary)
    console.print()

    # Top contributors
    if report.contributors:
        ranked = sorted(report.contributors, key=_activity, reverse=True)
        console.print(f"[bold]Top Contributors (top {top_n})[/bold]")
        contrib_table = Table(show_header=True, header_style="bold")
        contrib_table.add_column("#", justify="right")
        contrib_table.add_column("Username")
        contrib_table.add_column("Commits", justify="right")
        contrib_table.add_column("All Branches", justify="right")
        contrib_table.add_column("PRs", justify="right")
        contrib_table.add_column("Reviews", justify="right")
        contrib_table.add_column("Issues", justify="right")
        contrib_table.add_column("Direct Pushes", justify="right")
        for i, c in enumerate(ranked[:top_n], 1):
            contrib_table.add_row(
                str(i),
                escape(c.login),
                _format_number(c.commits),
                _format_number(c.commits_all_branches),
                _format_number(c.prs),
                _format_number(c.reviews),
                _format_number(c.issues),
                _format_number(c.direct_pushes),
            )
        console.print(contrib_table)
        console.print()

    # Pull requests
    if report.pull_requests:
        console.print(f"[bold]Pull Requests ({len(report.pull_requests)})[/bold]")
        pr_table = Table(show_header=True, header_style="bold")
        pr_table.add_column("#", justify="right")
        pr_table.add_column("Title")
        pr_table.add_column("Author")
        pr_table.add_column("Status", no_wrap=True)
        pr_table.add_column("+/-", justify="right", no_wrap=True)
        pr_table.add_column("Reviews", justify="right")
        pr_table.add_column("CI", no_wrap=True)
        pr_table.add_column("Created", no_wrap=True)
        for pr in report.pull_requests[:top_n]:
            status_style = _STATUS_STYLES.get(pr.status, "")
            ci_style = _CI_STYLES.get(pr.ci_status, "dim")
            pr_table.add_row(
                str(pr.number),
                escape(pr.title),
                escape(pr.author),
                f"[{status_style}]{pr.status}[/{status_style}]" if status_style else pr.status,
                f"+{_format_number(pr.additions)} / -{_format_number(pr.deletions)}",
                _format_number(pr.review_count),
                f"[{ci_style}]{pr.ci_status}[/{ci_style}]",
                _format_date(pr.created_at),
            )
        console.print(pr_table)
        console.print()

    # Issues
    if report.issues:
        console.print(f"[bold]Issues ({len(report.issues)})[/bold]")
        issue_table = Table(show_header=True, header_style="bold")
        issue_table.add_column("#", justify="right")
        issue_table.add_column("Title")
        issue_table.add_column("Author")
        issue_table.add_column("State", no_wrap=True)
        issue_table.add_column("First Response", justify="right")
        issue_table.add_column("Linked PRs")
        for issue in report.issues[:top_n]:
            issue_table.add_row(
                str(issue.number),
                escape(issue.title),
                escape(issue.author),
                "closed" if issue.is_closed else "open",
                _format_minutes(issue.time_to_first_response_minutes),
                ", ".join(f"#{n}" for n in issue.linked_prs) or "-",
            )
        console.print(issue_table)
        console.print()

    if output_file:
        _write_to_file(string_io.getvalue(), output_file)


def render_json(report: AnalysisReport, output_file: str | None = None) -> None:
    """Render an AnalysisReport as JSON."""
    content = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if output_file:
        _write_to_file(content, output_file)
    else:
        print(content)
