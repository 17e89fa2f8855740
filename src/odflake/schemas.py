"""Pydantic models for suite trees, round reports and project reports.

Field names are Python style; the persisted JSON uses the camelCase keys
declared as aliases (``taskGroups``, ``originalSuite``, ``flakyTests``...).
Dump with :func:`to_json` (or ``by_alias=True``) to stay compatible with
reports written by earlier runs.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .outcome import node_success

TestState = Literal["run", "skip", "only", "todo", "queued", "pass", "fail", "unknown"]


class OrderPolicy(str, Enum):
    """How sibling tasks are reordered inside each suite."""

    ORIGINAL = "original"
    RANDOM_GROUP = "random-group"
    RANDOM_TEST = "random-test"
    REVERSE_GROUP = "reverse-group"
    REVERSE_TEST = "reverse-test"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TestCase(_Model):
    """A leaf test and the state it was observed in."""

    __test__ = False  # keep pytest from collecting this class

    type: Literal["test"] = "test"
    name: str
    state: TestState = "unknown"


class Suite(_Model):
    """A named suite whose children are split into concurrency groups."""

    type: Literal["suite"] = "suite"
    name: str
    task_groups: List["TaskGroup"] = Field(default_factory=list, alias="taskGroups")

    def children(self) -> list["TestNode"]:
        return [task for group in self.task_groups for task in group.tasks]

    def walk(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], "TestCase"]]:
        """Yield every leaf test in execution order with the names of its enclosing suites."""

        path = (*prefix, self.name)
        for task in self.children():
            if task.type == "suite":
                yield from task.walk(path)
            else:
                yield path, task


TestNode = Annotated[Union[TestCase, Suite], Field(discriminator="type")]


class TaskGroup(_Model):
    """Maximal run of adjacent siblings sharing the same ``concurrent`` flag."""

    concurrent: bool
    tasks: List[TestNode] = Field(default_factory=list)


Suite.model_rebuild()


class RoundReport(_Model):
    """State persisted by the instrumented test process for one round.

    ``done`` is ``False`` while the round is still running, so a report left
    behind by a crashed process is recognisable.
    """

    done: bool
    order: OrderPolicy
    seed: int
    original_suite: Suite = Field(..., alias="originalSuite")
    shuffled_suite: Suite = Field(..., alias="shuffledSuite")


class RoundResult(_Model):
    """Outcome of executing one test file once under one ordering."""

    file: str
    exit_code: Optional[int] = Field(default=None, alias="exitCode")
    success: bool
    report: Optional[RoundReport] = None
    diagnostics: Optional[str] = None

    @classmethod
    def from_execution(
        cls,
        file: str,
        *,
        exit_code: int | None,
        report: RoundReport | None = None,
        diagnostics: str | None = None,
    ) -> "RoundResult":
        """Build a result, deriving ``success`` from the report when there is one."""

        if report is not None:
            success = node_success(report.shuffled_suite)
        else:
            success = exit_code == 0
        return cls(
            file=file,
            exit_code=exit_code,
            success=success,
            report=report,
            diagnostics=diagnostics,
        )

    @classmethod
    def failure(cls, file: str, diagnostics: str, *, exit_code: int | None = None) -> "RoundResult":
        return cls(file=file, exit_code=exit_code, success=False, diagnostics=diagnostics)


class FlakyTest(_Model):
    """A test file whose outcome changed under reordering, with every round's report."""

    file: str
    reports: List[Optional[RoundReport]] = Field(default_factory=list)


class ProjectReport(BaseModel):
    """Aggregate result of analysing a whole project."""

    model_config = ConfigDict(populate_by_name=True)

    project: str
    total_test_files: int = Field(default=0, alias="totalTestFiles")
    flaky_tests: List[FlakyTest] = Field(default_factory=list, alias="flakyTests")
    failed_tests: List[RoundResult] = Field(default_factory=list, alias="failedTests")


class TestFile(_Model):
    """A test file handed to the orchestrator by discovery."""

    __test__ = False

    file: str
    project: Optional[str] = None


def to_json(model: BaseModel) -> str:
    """Serialise a model with its persisted (aliased) key names."""

    return model.model_dump_json(by_alias=True, indent=2)
