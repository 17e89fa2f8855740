"""odflake: order-dependent flaky test detection for pytest projects."""

from .app import main, run, run_async
from .config import RuntimeSettings, load_settings
from .ordering import partition, permute_suite
from .outcome import has_diverged, node_success
from .pipeline import execute_project
from .schemas import (
    FlakyTest,
    OrderPolicy,
    ProjectReport,
    RoundReport,
    RoundResult,
    Suite,
    TaskGroup,
    TestCase,
)

__all__ = [
    "FlakyTest",
    "OrderPolicy",
    "ProjectReport",
    "RoundReport",
    "RoundResult",
    "RuntimeSettings",
    "Suite",
    "TaskGroup",
    "TestCase",
    "execute_project",
    "has_diverged",
    "load_settings",
    "main",
    "node_success",
    "partition",
    "permute_suite",
    "run",
    "run_async",
]
