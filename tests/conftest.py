from __future__ import annotations

import pytest

from odflake.schemas import Suite, TaskGroup, TestCase

pytest_plugins = ["pytester"]


def leaf(name: str, state: str = "unknown") -> TestCase:
    return TestCase(name=name, state=state)


def group(concurrent: bool, *tasks) -> TaskGroup:
    return TaskGroup(concurrent=concurrent, tasks=list(tasks))


def suite(name: str, *groups: TaskGroup) -> Suite:
    return Suite(name=name, task_groups=list(groups))


@pytest.fixture
def scenario_suite() -> Suite:
    """Two sequential tests A, B followed by a concurrent group {C, D}."""

    return suite(
        "test_scenario.py",
        group(False, leaf("A"), leaf("B")),
        group(True, leaf("C"), leaf("D")),
    )


@pytest.fixture
def nested_suite() -> Suite:
    return suite(
        "test_nested.py",
        group(
            False,
            leaf("top_1"),
            suite(
                "TestInner",
                group(False, leaf("inner_1"), leaf("inner_2"), leaf("inner_3")),
                group(True, leaf("inner_c1"), leaf("inner_c2")),
            ),
            leaf("top_2"),
        ),
        group(
            True,
            suite("TestConcurrent", group(True, leaf("conc_1"), leaf("conc_2"))),
            leaf("top_c"),
        ),
        group(False, leaf("top_3")),
    )
