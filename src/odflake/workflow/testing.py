"""Helpers for executing one test file once under one ordering."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_ROUND_TIMEOUT
from ..ids import CounterIds, IdSource
from ..instrumentation import (
    RoundChannel,
    RoundReportError,
    read_round_report,
    round_environment,
)
from ..logging import get_logger, log_event
from ..schemas import OrderPolicy, RoundResult
from .types import ProcessOutput

LOGGER = get_logger("workflow.testing")

WORKSPACE_PREFIX = "odflake-"
PYTEST_FLAGS = ("-q", "-p", "no:cacheprovider", "-p", "no:randomly")


async def run_command(
    command: Sequence[str],
    *,
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
) -> ProcessOutput:
    """Run ``command`` and capture its combined output.

    Draining stdout and waiting for the exit code run as two concurrent tasks.
    If the caller is cancelled (e.g. by a timeout) the process is killed before
    the cancellation propagates.
    """

    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd),
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, exit_code = await asyncio.gather(process.stdout.read(), process.wait())
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return ProcessOutput(
        command=" ".join(command),
        exit_code=exit_code,
        output=stdout.decode("utf-8", errors="replace"),
    )


def pytest_command(file: str, *, python: str = sys.executable) -> list[str]:
    return [python, "-m", "pytest", *PYTEST_FLAGS, file]


def _allocate_workspace(round_id: str, root: Optional[Path]) -> Path:
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{round_id}-", dir=root))


async def run_round(
    file: str | Path,
    *,
    project: Path,
    order: OrderPolicy,
    seed: int,
    timeout: float = DEFAULT_ROUND_TIMEOUT,
    keep_workspace: bool = False,
    workspace_root: Optional[Path] = None,
    id_source: Optional[IdSource] = None,
    python: str = sys.executable,
) -> RoundResult:
    """Execute ``file`` once under ``(order, seed)`` in a private workspace.

    Never raises for round-level problems: timeouts, spawn failures and
    missing or invalid reports all come back as an unsuccessful
    :class:`~odflake.schemas.RoundResult` carrying diagnostics.
    """

    file = str(file)
    round_id = (id_source or CounterIds())()
    try:
        workspace = await asyncio.to_thread(_allocate_workspace, round_id, workspace_root)
    except OSError as exc:
        log_event(LOGGER, logging.WARNING, "round.workspace_failed", file=file, error=str(exc))
        return RoundResult.failure(file, f"Failed to create round workspace: {exc}")

    try:
        return await _execute_round(
            file,
            channel=RoundChannel(order=order, seed=seed, workspace=workspace),
            project=project,
            timeout=timeout,
            python=python,
        )
    finally:
        if keep_workspace:
            log_event(LOGGER, logging.INFO, "round.workspace_kept", file=file, workspace=str(workspace))
        else:
            await asyncio.to_thread(shutil.rmtree, workspace, ignore_errors=True)


async def _execute_round(
    file: str,
    *,
    channel: RoundChannel,
    project: Path,
    timeout: float,
    python: str,
) -> RoundResult:
    command = pytest_command(file, python=python)
    log_event(
        LOGGER,
        logging.DEBUG,
        "round.start",
        file=file,
        order=channel.order.value,
        seed=channel.seed,
        workspace=str(channel.workspace),
    )

    try:
        output = await asyncio.wait_for(
            run_command(command, cwd=project, env=round_environment(channel)),
            timeout,
        )
    except asyncio.TimeoutError:
        log_event(
            LOGGER,
            logging.WARNING,
            "round.timeout",
            file=file,
            seed=channel.seed,
            timeout=timeout,
        )
        return RoundResult.failure(file, f"Round timed out after {timeout:g}s")
    except OSError as exc:
        log_event(LOGGER, logging.WARNING, "round.spawn_failed", file=file, error=str(exc))
        return RoundResult.failure(file, f"Failed to start test process: {exc}")

    log_event(
        LOGGER,
        logging.DEBUG,
        "round.output",
        file=file,
        command=output.command,
        exit_code=output.exit_code,
        output=output.output,
    )

    try:
        report = await asyncio.to_thread(read_round_report, channel.workspace)
    except RoundReportError as exc:
        log_event(
            LOGGER,
            logging.WARNING,
            "round.report_unusable",
            file=file,
            seed=channel.seed,
            error=str(exc),
        )
        return RoundResult.failure(
            file,
            f"{exc}\n{output.tail()}".strip(),
            exit_code=output.exit_code,
        )

    return RoundResult.from_execution(
        file,
        exit_code=output.exit_code,
        report=report,
        diagnostics=None if output.ok else output.tail(),
    )
