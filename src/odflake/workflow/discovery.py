"""Discovery of the test files a project's pytest configuration collects."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from ..logging import get_logger, log_event
from ..schemas import TestFile
from .scaffold import SetupError
from .testing import run_command

LOGGER = get_logger("workflow.discovery")

_EXIT_OK = 0
_EXIT_NO_TESTS = 5
ADDOPTS_ENV_VAR = "PYTEST_ADDOPTS"


def parse_collected_files(output: str, project: Path) -> list[TestFile]:
    """Extract unique test files, in collection order, from ``--collect-only -q`` output."""

    seen: set[str] = set()
    files: list[TestFile] = []
    for line in output.splitlines():
        line = line.strip()
        if "::" not in line or line.startswith(("=", "<")):
            continue
        relative = line.split("::", 1)[0]
        if relative in seen:
            continue
        seen.add(relative)
        files.append(TestFile(file=str((project / relative).resolve()), project=project.name))
    return files


async def discover_test_files(project: Path, *, python: str = sys.executable) -> list[TestFile]:
    """List the test files of ``project``.

    Raises :class:`SetupError` when pytest cannot collect the project or finds
    nothing to run, since no round can proceed without a file list.
    """

    command = [
        python,
        "-m",
        "pytest",
        "--collect-only",
        "-q",
        "-p",
        "no:cacheprovider",
        "-o",
        "addopts=",
        "--rootdir",
        str(project),
    ]
    # One node id per line only holds at exactly -q, so the project's addopts are dropped.
    env = {name: value for name, value in os.environ.items() if name != ADDOPTS_ENV_VAR}
    try:
        result = await run_command(command, cwd=project, env=env)
    except OSError as exc:
        raise SetupError(f"Failed to run test collection in {project}: {exc}") from exc

    if result.exit_code not in (_EXIT_OK, _EXIT_NO_TESTS):
        log_event(
            LOGGER,
            logging.ERROR,
            "discovery.failed",
            project=str(project),
            exit_code=result.exit_code,
            output=result.tail(),
        )
        raise SetupError(
            f"Test collection failed in {project} with exit code {result.exit_code}:\n{result.tail()}"
        )

    files = parse_collected_files(result.output, project)
    if not files:
        raise SetupError(f"No test files found in {project}")

    log_event(LOGGER, logging.DEBUG, "discovery.complete", project=str(project), files=len(files))
    return files
