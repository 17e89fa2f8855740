from __future__ import annotations

import sys
import textwrap

import pytest

from odflake.ids import CounterIds
from odflake.schemas import OrderPolicy
from odflake.workflow.testing import pytest_command, run_command, run_round

PASSING = """
def test_one():
    assert True

def test_two():
    assert True
"""

ORDER_DEPENDENT = """
STATE = []

def test_first():
    STATE.append(1)

def test_second():
    assert STATE == [1]
"""

SLOW = """
import time

def test_sleeps():
    time.sleep(60)
"""


@pytest.fixture
def project(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


def _write(project, name, source):
    path = project / name
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return str(path)


def test_pytest_command_targets_a_single_file():
    command = pytest_command("tests/test_a.py", python="python3")

    assert command[:3] == ["python3", "-m", "pytest"]
    assert command[-1] == "tests/test_a.py"
    assert "no:cacheprovider" in command


@pytest.mark.asyncio
async def test_run_command_captures_output_and_exit_code(tmp_path):
    result = await run_command(
        [sys.executable, "-c", "import sys; print('hello'); sys.exit(3)"],
        cwd=tmp_path,
    )

    assert result.exit_code == 3
    assert result.output.strip() == "hello"
    assert not result.ok


@pytest.mark.asyncio
async def test_passing_round_reports_shuffled_suite(project, tmp_path):
    file = _write(project, "test_sample.py", PASSING)
    root = tmp_path / "rounds"

    result = await run_round(
        file,
        project=project,
        order=OrderPolicy.REVERSE_TEST,
        seed=7,
        workspace_root=root,
    )

    assert result.success, result.diagnostics
    assert result.exit_code == 0
    assert result.report.done
    assert result.report.seed == 7
    assert [test.name for _, test in result.report.shuffled_suite.walk()] == ["test_two", "test_one"]
    assert list(root.iterdir()) == []


@pytest.mark.asyncio
async def test_order_dependent_round_fails(project, tmp_path):
    file = _write(project, "test_od.py", ORDER_DEPENDENT)

    common = {"project": project, "seed": 1, "workspace_root": tmp_path / "rounds"}

    baseline = await run_round(file, order=OrderPolicy.ORIGINAL, **common)
    variant = await run_round(file, order=OrderPolicy.REVERSE_TEST, **common)

    assert baseline.success
    assert not variant.success
    assert variant.exit_code == 1
    assert variant.diagnostics


@pytest.mark.asyncio
async def test_timed_out_round_is_a_failure_without_report(project, tmp_path):
    file = _write(project, "test_slow.py", SLOW)
    root = tmp_path / "rounds"

    result = await run_round(
        file,
        project=project,
        order=OrderPolicy.ORIGINAL,
        seed=0,
        timeout=1.0,
        workspace_root=root,
    )

    assert not result.success
    assert result.report is None
    assert "timed out" in result.diagnostics
    assert list(root.iterdir()) == []


@pytest.mark.asyncio
async def test_keep_workspace_leaves_report_for_inspection(project, tmp_path):
    file = _write(project, "test_sample.py", PASSING)
    root = tmp_path / "rounds"

    await run_round(
        file,
        project=project,
        order=OrderPolicy.ORIGINAL,
        seed=0,
        keep_workspace=True,
        workspace_root=root,
        id_source=CounterIds(start=255),
    )

    (workspace,) = root.iterdir()
    assert workspace.name.startswith("odflake-00ff-")
    assert (workspace / "report.json").is_file()


@pytest.mark.asyncio
async def test_spawn_failure_is_a_failure(project, tmp_path):
    file = _write(project, "test_sample.py", PASSING)

    result = await run_round(
        file,
        project=project,
        order=OrderPolicy.ORIGINAL,
        seed=0,
        workspace_root=tmp_path / "rounds",
        python=str(tmp_path / "missing-python"),
    )

    assert not result.success
    assert result.exit_code is None
    assert "Failed to start" in result.diagnostics


@pytest.mark.asyncio
async def test_missing_report_is_a_failure(project, tmp_path):
    file = _write(project, "test_empty.py", "VALUE = 1\n")

    result = await run_round(
        file,
        project=project,
        order=OrderPolicy.RANDOM_TEST,
        seed=0,
        workspace_root=tmp_path / "rounds",
    )

    assert not result.success
    assert result.report is None
    assert result.exit_code == 5
    assert "No round report" in result.diagnostics
