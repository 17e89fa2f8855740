"""Public entry points for analysing a project for order-dependent tests."""

from __future__ import annotations

import asyncio
from typing import Optional

from .config import RuntimeSettings, load_settings
from .pipeline import emit_report, execute_project
from .schemas import ProjectReport


async def run_async(settings: Optional[RuntimeSettings] = None) -> ProjectReport:
    """Analyse the configured project and return the collected report."""

    settings = settings or load_settings()
    return await execute_project(settings)


def run(settings: Optional[RuntimeSettings] = None) -> ProjectReport:
    """Synchronous helper that runs the async analysis via ``asyncio.run``."""

    return asyncio.run(run_async(settings))


def main(settings: Optional[RuntimeSettings] = None) -> ProjectReport:
    """Run the analysis and emit the report to the configured destination."""

    settings = settings or load_settings()
    report = run(settings)
    emit_report(report, settings.out)
    return report
