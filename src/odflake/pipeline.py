"""Async orchestration of baseline and variant rounds across a project."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Sequence
from functools import partial
from pathlib import Path
from typing import Awaitable, Optional, Protocol

from .config import RuntimeSettings
from .ids import CounterIds, IdSource
from .logging import get_logger, log_event
from .outcome import has_diverged
from .schemas import FlakyTest, OrderPolicy, ProjectReport, RoundResult, TestFile, to_json
from .workflow.discovery import discover_test_files
from .workflow.scaffold import ensure_project_ready
from .workflow.testing import run_round

LOGGER = get_logger("pipeline")


class ReportWriteError(RuntimeError):
    """Raised when the project report cannot be written out."""


class RoundRunner(Protocol):
    def __call__(
        self,
        file: str,
        *,
        project: Path,
        order: OrderPolicy,
        seed: int,
        timeout: float,
        keep_workspace: bool,
        workspace_root: Optional[Path],
        id_source: IdSource,
    ) -> Awaitable[RoundResult]:
        ...


def variant_seeds(base_seed: int, rounds: int) -> list[int]:
    """Seeds of the variant rounds: ``base_seed + i - 1`` for ``i`` in ``1..rounds``."""

    return [base_seed + index - 1 for index in range(1, rounds + 1)]


async def execute_project(
    settings: RuntimeSettings,
    files: Optional[Sequence[TestFile]] = None,
    *,
    runner: RoundRunner = run_round,
    id_source: Optional[IdSource] = None,
) -> ProjectReport:
    """Run a baseline plus ``settings.rounds`` variants for every test file.

    Files are processed one after another; the rounds of a single file run
    concurrently, at most ``settings.concurrency`` at a time. Round workspaces are
    named from ``id_source``, a fresh counter per call unless one is given.
    """

    project = settings.project
    if files is None:
        await asyncio.to_thread(ensure_project_ready, project, install=settings.install)
        files = await discover_test_files(project)

    total = len(files)
    log_event(LOGGER, logging.INFO, "project.files", project=str(project), files=total)
    log_event(
        LOGGER,
        logging.INFO,
        "project.start",
        order=settings.order.value,
        rounds=settings.rounds,
        seed=settings.seed,
        concurrency=settings.concurrency,
    )

    limit = asyncio.Semaphore(settings.concurrency)
    run = partial(
        runner,
        project=project,
        timeout=settings.round_timeout,
        keep_workspace=settings.keep_workspaces,
        workspace_root=settings.workspace_root,
        id_source=id_source or CounterIds(),
    )

    async def bounded(file: str, order: OrderPolicy, seed: int) -> RoundResult:
        async with limit:
            result = await run(file, order=order, seed=seed)
        log_event(
            LOGGER,
            logging.INFO,
            "round.pass" if result.success else "round.fail",
            file=_relative(file, project),
            order=order.value,
            seed=seed,
        )
        return result

    report = ProjectReport(project=str(project), total_test_files=total)

    for index, test_file in enumerate(files, start=1):
        relative = _relative(test_file.file, project)
        log_event(LOGGER, logging.INFO, "file.start", file=relative, position=f"{index}/{total}")
        log_event(LOGGER, logging.INFO, "file.flaky_so_far", count=len(report.flaky_tests))

        baseline, *variants = await asyncio.gather(
            bounded(test_file.file, OrderPolicy.ORIGINAL, settings.seed),
            *(
                bounded(test_file.file, settings.order, seed)
                for seed in variant_seeds(settings.seed, settings.rounds)
            ),
        )

        if not baseline.success:
            report.failed_tests.append(baseline)

        if has_diverged(baseline, variants):
            log_event(LOGGER, logging.INFO, "file.flaky", file=relative)
            report.flaky_tests.append(
                FlakyTest(
                    file=relative,
                    reports=[baseline.report, *(variant.report for variant in variants)],
                )
            )

    _log_summary(report, settings)
    return report


def _relative(file: str, project: Path) -> str:
    try:
        return os.path.relpath(file, project)
    except ValueError:
        return file


def _log_summary(report: ProjectReport, settings: RuntimeSettings) -> None:
    failed = len(report.failed_tests)
    log_event(
        LOGGER,
        logging.INFO,
        "project.summary",
        project=report.project,
        files=report.total_test_files,
        flaky=len(report.flaky_tests),
        order=settings.order.value,
        rounds=settings.rounds,
        passed_in_original_order=report.total_test_files - failed,
        failed_in_original_order=failed,
    )
    for flaky in report.flaky_tests:
        log_event(LOGGER, logging.INFO, "project.flaky_file", file=flaky.file)


def emit_report(report: ProjectReport, out: Optional[Path] = None) -> None:
    """Write the report to ``out``, or to stdout when no destination is set."""

    payload = to_json(report)
    if out is None:
        sys.stdout.write(payload + "\n")
        sys.stdout.flush()
        return

    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(payload, encoding="utf-8")
    except OSError as exc:
        raise ReportWriteError(f"Failed to write report to {out}: {exc}") from exc
    log_event(LOGGER, logging.INFO, "report.written", path=str(out))
