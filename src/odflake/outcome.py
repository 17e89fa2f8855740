"""Outcome comparison between a baseline round and its reordered variants.

Rounds are compared on whole-file success only: a file either passed under an
ordering or it did not.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schemas import RoundResult, TestNode


def node_success(node: "TestNode") -> bool:
    """Return ``True`` when every leaf test below ``node`` passed."""

    if node.type == "test":
        return node.state == "pass"
    return all(node_success(task) for group in node.task_groups for task in group.tasks)


def has_diverged(baseline: "RoundResult", variants: Iterable["RoundResult"]) -> bool:
    """Whether any variant round's success differs from the baseline's."""

    return any(variant.success != baseline.success for variant in variants)
