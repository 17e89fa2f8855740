from __future__ import annotations

from collections import Counter

import pytest

from conftest import group, leaf, suite
from odflake.ordering import draw, flatten, order_groups, partition, permute_suite, shuffle
from odflake.schemas import OrderPolicy, Suite

RANDOM_POLICIES = [OrderPolicy.RANDOM_GROUP, OrderPolicy.RANDOM_TEST]
ALL_POLICIES = list(OrderPolicy)


def _names(node) -> list[str]:
    return [test.name for _, test in node.walk()]


def _flags(node: Suite) -> dict[str, bool]:
    flags: dict[str, bool] = {}
    for task_group in node.task_groups:
        for task in task_group.tasks:
            flags[task.name] = task_group.concurrent
            if task.type == "suite":
                flags.update(_flags(task))
    return flags


def _assert_same_shape(original: Suite, permuted: Suite) -> None:
    assert permuted.name == original.name
    assert len(permuted.children()) == len(original.children())
    assert Counter(child.name for child in permuted.children()) == Counter(
        child.name for child in original.children()
    )
    originals = {child.name: child for child in original.children() if child.type == "suite"}
    for child in permuted.children():
        if child.type == "suite":
            _assert_same_shape(originals[child.name], child)


def _shuffle_steps(node: Suite, policy: OrderPolicy) -> int:
    """Number of seed increments a permutation of ``node`` consumes."""

    groups = node.task_groups
    steps = 0
    if policy is OrderPolicy.RANDOM_TEST:
        steps += sum(2 * len(task_group.tasks) for task_group in groups)
    steps += 2 * len(groups)
    for child in node.children():
        if child.type == "suite":
            steps += _shuffle_steps(child, policy)
    return steps


@pytest.mark.parametrize(
    "flags",
    [
        [],
        [False],
        [True, True, True],
        [False, True],
        [False, False, True, True, False],
        [True, False, True, False, True],
    ],
)
def test_partition_groups_are_maximal_and_reconstruct_input(flags):
    children = [(flag, leaf(f"t{index}")) for index, flag in enumerate(flags)]

    groups = partition(children)

    assert flatten(groups) == children
    assert all(task_group.tasks for task_group in groups)
    for left, right in zip(groups, groups[1:]):
        assert left.concurrent != right.concurrent


def test_draw_is_sine_hash_of_current_seed():
    value, next_seed = draw(10)

    assert value == pytest.approx(0.7888911, abs=1e-6)
    assert next_seed == 11
    assert 0 <= draw(-3)[0] < 1


def test_shuffle_advances_seed_twice_per_element():
    assert shuffle([], 5) == ([], 5)
    assert shuffle(["only"], 5) == (["only"], 7)
    assert shuffle(["a", "b"], 10) == (["a", "b"], 14)
    assert shuffle(["a", "b"], 11) == (["b", "a"], 15)


def test_shuffle_leaves_input_untouched():
    items = ["a", "b", "c", "d"]

    shuffled, _ = shuffle(items, 99)

    assert items == ["a", "b", "c", "d"]
    assert sorted(shuffled) == items


def test_original_order_is_identity(nested_suite):
    permuted, seed = permute_suite(nested_suite, OrderPolicy.ORIGINAL, 1234)

    assert permuted == nested_suite
    assert seed == 1234


@pytest.mark.parametrize("policy", ALL_POLICIES)
@pytest.mark.parametrize("seed", [0, 42, 1_700_000_000_000])
def test_permutation_is_deterministic(nested_suite, policy, seed):
    assert permute_suite(nested_suite, policy, seed) == permute_suite(nested_suite, policy, seed)


@pytest.mark.parametrize("policy", ALL_POLICIES)
@pytest.mark.parametrize("seed", [1, 43, 987654])
def test_permutation_rearranges_without_losing_tests(nested_suite, policy, seed):
    permuted, _ = permute_suite(nested_suite, policy, seed)

    assert Counter(_names(permuted)) == Counter(_names(nested_suite))
    _assert_same_shape(nested_suite, permuted)


@pytest.mark.parametrize("policy", ALL_POLICIES)
@pytest.mark.parametrize("seed", [3, 44])
def test_permutation_never_moves_tests_across_concurrency_groups(nested_suite, policy, seed):
    permuted, _ = permute_suite(nested_suite, policy, seed)

    assert _flags(permuted) == _flags(nested_suite)


def test_reverse_test_is_an_involution(nested_suite):
    once, _ = permute_suite(nested_suite, OrderPolicy.REVERSE_TEST, 0)
    twice, _ = permute_suite(once, OrderPolicy.REVERSE_TEST, 0)

    assert twice == nested_suite
    assert _names(once) != _names(nested_suite)


def test_reverse_test_reverses_every_level(nested_suite):
    permuted, seed = permute_suite(nested_suite, OrderPolicy.REVERSE_TEST, 7)

    assert seed == 7
    assert [child.name for child in permuted.children()] == [
        "top_3",
        "top_c",
        "TestConcurrent",
        "top_2",
        "TestInner",
        "top_1",
    ]
    inner = next(child for child in permuted.children() if child.name == "TestInner")
    assert _names(inner) == ["inner_c2", "inner_c1", "inner_3", "inner_2", "inner_1"]


def test_reverse_group_keeps_group_contents(scenario_suite):
    permuted, _ = permute_suite(scenario_suite, OrderPolicy.REVERSE_GROUP, 0)

    assert [task_group.concurrent for task_group in permuted.task_groups] == [True, False]
    assert _names(permuted) == ["C", "D", "A", "B"]


@pytest.mark.parametrize("seed", range(12))
def test_reordered_groups_stay_maximal(seed):
    original = suite(
        "test_merge.py",
        group(False, leaf("a")),
        group(True, leaf("c")),
        group(False, leaf("b")),
        group(True, leaf("d")),
    )

    permuted, _ = permute_suite(original, OrderPolicy.RANDOM_GROUP, seed)

    flags = [task_group.concurrent for task_group in permuted.task_groups]
    assert all(left != right for left, right in zip(flags, flags[1:]))
    assert sorted(_names(permuted)) == ["a", "b", "c", "d"]
    assert _flags(permuted) == _flags(original)


@pytest.mark.parametrize("policy", RANDOM_POLICIES)
def test_seed_consumption_covers_every_suite(nested_suite, policy):
    _, seed = permute_suite(nested_suite, policy, 100)

    assert seed == 100 + _shuffle_steps(nested_suite, policy)


def test_random_test_shuffles_inside_groups_then_groups(scenario_suite):
    groups, seed = order_groups(scenario_suite.task_groups, OrderPolicy.RANDOM_TEST, 42)

    assert seed == 42 + 2 * 2 + 2 * 2 + 2 * 2
    assert sorted(task_group.concurrent for task_group in groups) == [False, True]
    by_flag = {task_group.concurrent: {task.name for task in task_group.tasks} for task_group in groups}
    assert by_flag == {False: {"A", "B"}, True: {"C", "D"}}
