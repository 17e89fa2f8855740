from __future__ import annotations

import pytest

from conftest import group, leaf, suite
from odflake.outcome import has_diverged, node_success
from odflake.schemas import OrderPolicy, RoundReport, RoundResult


def _result(success: bool) -> RoundResult:
    return RoundResult(file="test_x.py", exit_code=0 if success else 1, success=success)


def _report(*states: str) -> RoundReport:
    tree = suite("test_x.py", group(False, *(leaf(f"t{i}", state) for i, state in enumerate(states))))
    return RoundReport(
        done=True,
        order=OrderPolicy.ORIGINAL,
        seed=0,
        original_suite=tree,
        shuffled_suite=tree,
    )


@pytest.mark.parametrize(
    "state, expected",
    [("pass", True), ("fail", False), ("skip", False), ("todo", False), ("unknown", False)],
)
def test_leaf_success_requires_pass(state, expected):
    assert node_success(leaf("t", state)) is expected


def test_suite_success_requires_every_nested_leaf_to_pass():
    passing = suite(
        "root",
        group(False, leaf("a", "pass"), suite("Inner", group(True, leaf("b", "pass")))),
        group(True, leaf("c", "pass")),
    )
    failing_deep = suite(
        "root",
        group(False, leaf("a", "pass"), suite("Inner", group(True, leaf("b", "fail")))),
    )

    assert node_success(passing)
    assert not node_success(failing_deep)
    assert node_success(suite("empty"))


def test_divergence_in_either_direction():
    assert has_diverged(_result(True), [_result(True), _result(False)])
    assert has_diverged(_result(False), [_result(False), _result(True)])
    assert not has_diverged(_result(True), [_result(True), _result(True)])
    assert not has_diverged(_result(False), [_result(False)])
    assert not has_diverged(_result(True), [])


def test_success_is_derived_from_report_before_exit_code():
    passed = RoundResult.from_execution("test_x.py", exit_code=1, report=_report("pass", "pass"))
    partially = RoundResult.from_execution("test_x.py", exit_code=0, report=_report("pass", "fail"))

    assert passed.success
    assert not partially.success


def test_success_falls_back_to_exit_code_without_report():
    assert RoundResult.from_execution("test_x.py", exit_code=0).success
    assert not RoundResult.from_execution("test_x.py", exit_code=1).success
    assert not RoundResult.from_execution("test_x.py", exit_code=None).success
