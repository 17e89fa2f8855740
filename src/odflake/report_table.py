"""Markdown summary over a directory of saved project reports."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .schemas import ProjectReport, Suite


class ReportTableError(RuntimeError):
    """Raised when a report in the directory cannot be loaded."""


@dataclass(frozen=True)
class ProjectRow:
    project_label: str
    od_test_files: int
    od_tests: int
    total_test_files: Optional[int]


def project_label(project: str, projects_root: Optional[Path] = None) -> str:
    """Short label for a project path: ``owner/name`` under ``projects_root``, else the path."""

    resolved = Path(project).resolve()
    if projects_root is None:
        return str(resolved)
    try:
        relative = resolved.relative_to(projects_root.resolve())
    except ValueError:
        return str(resolved)
    return "/".join(relative.parts[:2]) or str(resolved)


def failing_test_names(suite: Optional[Suite]) -> set[str]:
    if suite is None:
        return set()
    return {test.name for _, test in suite.walk() if test.state == "fail"}


def load_report(path: Path) -> ProjectReport:
    try:
        return ProjectReport.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise ReportTableError(f"Cannot load report {path}: {exc}") from exc


def build_rows(reports_dir: Path, projects_root: Optional[Path] = None) -> list[ProjectRow]:
    """One row per ``*.json`` report, most order-dependent files first."""

    rows: list[ProjectRow] = []
    for path in sorted(reports_dir.glob("*.json")):
        if not path.is_file():
            continue
        report = load_report(path)
        od_tests: set[str] = set()
        for flaky in report.flaky_tests:
            for round_report in flaky.reports:
                if round_report is not None:
                    od_tests |= failing_test_names(round_report.shuffled_suite)
        rows.append(
            ProjectRow(
                project_label=project_label(report.project, projects_root),
                od_test_files=len(report.flaky_tests),
                od_tests=len(od_tests),
                total_test_files=report.total_test_files or None,
            )
        )

    rows.sort(key=lambda row: (-row.od_test_files, row.project_label))
    return rows


def format_table(rows: list[ProjectRow]) -> str:
    header = "| Project | OD Test Files | OD Tests | Total Test Files |"
    separator = "| --- | --- | --- | --- |"
    body = [
        f"| {row.project_label} | {row.od_test_files} | {row.od_tests} | "
        f"{row.total_test_files if row.total_test_files is not None else 'N/A'} |"
        for row in rows
    ]
    return "\n".join([header, separator, *body])
