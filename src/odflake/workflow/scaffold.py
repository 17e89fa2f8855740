"""Project preparation before any round runs."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from ..logging import get_logger

LOGGER = get_logger("workflow.scaffold")


class SetupError(RuntimeError):
    """Raised when the project under analysis cannot be prepared or listed."""


def ensure_project_ready(project: Path, *, install: bool = False, python: str = sys.executable) -> None:
    """Make sure the project's dependencies are importable by the rounds.

    Nothing happens unless ``install`` is set. With ``install``,
    ``requirements.txt`` is installed when present, otherwise the project
    itself is installed in editable mode when it has a ``pyproject.toml`` or
    ``setup.py``. Projects with neither are left untouched.
    """

    if not install:
        return

    command = _install_command(project, python)
    if command is None:
        LOGGER.warning(
            "No requirements.txt, pyproject.toml or setup.py in %s; skipping dependency installation.",
            project,
        )
        return

    LOGGER.info("Installing dependencies in project at %s", project)
    try:
        subprocess.run(
            command,
            cwd=project,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=True,
            text=True,
        )
    except OSError as exc:
        raise SetupError(f"Failed to run {' '.join(command)}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        LOGGER.error(
            "Dependency installation failed in %s with exit code %s. Output:\n%s",
            project,
            exc.returncode,
            exc.output,
        )
        raise SetupError(f"Failed to install dependencies at: {project}") from exc


def _install_command(project: Path, python: str) -> list[str] | None:
    if (project / "requirements.txt").exists():
        return [python, "-m", "pip", "install", "-r", "requirements.txt"]
    if (project / "pyproject.toml").exists() or (project / "setup.py").exists():
        return [python, "-m", "pip", "install", "-e", "."]
    return None
