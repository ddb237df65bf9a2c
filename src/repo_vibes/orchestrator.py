"""Orchestrator: wires together client, analyzer, and renderer."""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime

from .analyzer import RepoAnalyzer
from .cancellation import CancelToken, ShutdownCoordinator
from .github.client import GitHubClient
from .models import AnalysisReport, RequestBudget
from .renderer import render_json, render_report

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 30.0


def _install_signal_handlers(coordinator: ShutdownCoordinator) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, coordinator.cancel)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            continue
        installed.append(sig)
    return installed


def _remove_signal_handlers(installed: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


async def collect(
    owner: str,
    repo: str,
    since: datetime | str,
    until: datetime | str | None = None,
    token: str | None = None,
    budget: RequestBudget | None = None,
    include_all_branches: bool = True,
    enrich_commits: bool = False,
    api_url: str | None = None,
    verify_ssl: bool = True,
) -> AnalysisReport:
    """Run one analysis; SIGINT/SIGTERM cancel it and still yield a partial report."""
    cancel = CancelToken()
    client = GitHubClient(
        token=token,
        budget=budget,
        cancel=cancel,
        base_url=api_url,
        verify_ssl=verify_ssl,
    )
    coordinator = ShutdownCoordinator(cancel, client.scheduler, client)
    installed = _install_signal_handlers(coordinator)
    try:
        analyzer = RepoAnalyzer(
            client,
            include_all_branches=include_all_branches,
            enrich_commits=enrich_commits,
        )
        report = await analyzer.analyze(owner, repo, since, until)
    finally:
        _remove_signal_handlers(installed)
        await coordinator.shutdown(timeout=SHUTDOWN_TIMEOUT)

    if report.cancelled:
        logger.warning("Run was cancelled; the report is partial")
    return report


async def run(
    owner: str,
    repo: str,
    since: datetime | str,
    until: datetime | str | None = None,
    token: str | None = None,
    top_n: int = 10,
    output_format: str = "table",
    output_file: str | None = None,
    include_all_branches: bool = True,
    enrich_commits: bool = False,
    api_url: str | None = None,
    verify_ssl: bool = True,
) -> AnalysisReport:
    """Main pipeline: fetch data, aggregate, render."""
    report = await collect(
        owner,
        repo,
        since,
        until,
        token=token,
        include_all_branches=include_all_branches,
        enrich_commits=enrich_commits,
        api_url=api_url,
        verify_ssl=verify_ssl,
    )

    if output_format == "json":
        render_json(report, output_file=output_file)
    else:
        render_report(report, top_n=top_n, output_file=output_file)
    return report
