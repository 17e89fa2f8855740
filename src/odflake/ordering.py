"""Seed-reproducible reordering of suite trees.

Children of a suite are only moved within the boundaries of their
concurrency group (see :func:`partition`); moving a task across a boundary
would change which tasks run concurrently rather than just their order.

The pseudo random source is a sine hash of an integer seed that advances
twice per Fisher-Yates step. Seed state is passed in and handed back
explicitly by every function here, so a permutation depends only on its ``(tree, policy, seed)``
inputs.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TypeVar

from .schemas import OrderPolicy, Suite, TaskGroup, TestNode

T = TypeVar("T")

TaggedNode = tuple[bool, TestNode]


def partition(children: Sequence[TaggedNode]) -> list[TaskGroup]:
    """Split ``(concurrent, node)`` pairs into maximal runs of equal flag."""

    groups: list[TaskGroup] = []
    current: list[TestNode] = []
    current_flag = False
    for concurrent, node in children:
        if current and concurrent != current_flag:
            groups.append(TaskGroup(concurrent=current_flag, tasks=current))
            current = []
        current_flag = concurrent
        current.append(node)
    if current:
        groups.append(TaskGroup(concurrent=current_flag, tasks=current))
    return groups


def flatten(groups: Sequence[TaskGroup]) -> list[TaggedNode]:
    """Inverse of :func:`partition`."""

    return [(group.concurrent, task) for group in groups for task in group.tasks]


def draw(seed: int) -> tuple[float, int]:
    """Return a value in ``[0, 1)`` derived from ``seed`` and the advanced seed."""

    x = math.sin(seed) * 10000
    return x - math.floor(x), seed + 1


def shuffle(items: Sequence[T], seed: int) -> tuple[list[T], int]:
    """Fisher-Yates shuffle of a copy of ``items``.

    Each step consumes one draw and then advances the seed once more.
    """

    result = list(items)
    length = len(result)
    while length:
        value, seed = draw(seed)
        index = math.floor(value * length)
        length -= 1
        result[length], result[index] = result[index], result[length]
        seed += 1
    return result, seed


def order_groups(
    groups: Sequence[TaskGroup],
    policy: OrderPolicy,
    seed: int,
) -> tuple[list[TaskGroup], int]:
    """Apply ``policy`` to one suite's groups, without descending into children."""

    if policy is OrderPolicy.ORIGINAL:
        return list(groups), seed

    if policy is OrderPolicy.RANDOM_GROUP:
        return shuffle(groups, seed)

    if policy is OrderPolicy.RANDOM_TEST:
        shuffled: list[TaskGroup] = []
        for group in groups:
            tasks, seed = shuffle(group.tasks, seed)
            shuffled.append(TaskGroup(concurrent=group.concurrent, tasks=tasks))
        return shuffle(shuffled, seed)

    if policy is OrderPolicy.REVERSE_GROUP:
        return list(reversed(groups)), seed

    if policy is OrderPolicy.REVERSE_TEST:
        reversed_groups = [
            TaskGroup(concurrent=group.concurrent, tasks=list(reversed(group.tasks)))
            for group in reversed(groups)
        ]
        return reversed_groups, seed

    raise ValueError(f"Unsupported order policy: {policy!r}")


def permute_suite(
    suite: Suite,
    policy: OrderPolicy | str,
    seed: int,
) -> tuple[Suite, int]:
    """Return a reordered copy of ``suite`` and the seed left after reordering.

    Nested suites are visited in their new order, so the seed each one
    receives depends on how its parent was shuffled. Groups whose flags end
    up adjacent after reordering are merged, matching how the test runner
    partitions the reordered children.
    """

    policy = OrderPolicy(policy)
    if policy is OrderPolicy.ORIGINAL:
        return suite, seed

    groups = partition(flatten(suite.task_groups))
    ordered, seed = order_groups(groups, policy, seed)

    children: list[TaggedNode] = []
    for concurrent, task in flatten(ordered):
        if task.type == "suite":
            task, seed = permute_suite(task, policy, seed)
        children.append((concurrent, task))

    return suite.model_copy(update={"task_groups": partition(children)}), seed
