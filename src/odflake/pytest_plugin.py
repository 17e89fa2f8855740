"""pytest adapter for the round instrumentation hooks.

The round executor loads this module into the test process through
``PYTEST_PLUGINS``. Collected items are turned into a suite tree (module,
then classes, then test functions), handed to
:meth:`~odflake.instrumentation.RoundHooks.before_run`, and executed in the
order of the suite tree it returns. After the session the tree is rebuilt
with the observed outcomes and passed to ``after_run``.

Tests marked ``@pytest.mark.concurrent`` (directly or through their class or
module) form concurrency groups; reordering never moves a test across the
boundary between a concurrent and a sequential run of siblings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

import pytest

from .config import ConfigurationError
from .instrumentation import RoundChannel, RoundHooks, RoundInstrumentation
from .ordering import partition
from .schemas import Suite, TestCase, TestState

CONCURRENT_MARKER = "concurrent"
PLUGIN_NAME = "odflake-ordering"

ItemKey = tuple[str, ...]


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{CONCURRENT_MARKER}: tests that form a concurrency group and are only "
        "reordered among themselves",
    )
    if config.pluginmanager.has_plugin(PLUGIN_NAME):
        return
    try:
        channel = RoundChannel.from_env()
    except ConfigurationError as exc:
        raise pytest.UsageError(str(exc)) from exc
    config.pluginmanager.register(OrderingPlugin(RoundInstrumentation(channel)), PLUGIN_NAME)


class OrderingPlugin:
    """Calls the round hooks around a pytest session."""

    def __init__(self, hooks: RoundHooks) -> None:
        self.hooks = hooks
        self._items: list[pytest.Item] = []
        self._states: dict[str, TestState] = {}
        self._ordered = False

    @pytest.hookimpl(trylast=True)
    def pytest_collection_modifyitems(
        self,
        session: pytest.Session,
        config: pytest.Config,
        items: list[pytest.Item],
    ) -> None:
        if not items:
            return
        suite = build_suite(items)
        ordered = self.hooks.before_run(suite)
        items[:] = reorder_items(ordered, items)
        self._items = list(items)
        self._ordered = True

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        self._states[report.nodeid] = merge_state(self._states.get(report.nodeid), report)

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        if not self._ordered:
            return
        self.hooks.after_run(build_suite(self._items, self._states))


def merge_state(previous: Optional[TestState], report: pytest.TestReport) -> TestState:
    """Fold the report of one test phase into the state recorded so far."""

    if previous == "fail" or report.failed:
        return "fail"
    if report.skipped:
        return "skip"
    if report.when == "setup":
        return "run"
    if report.when == "call":
        return "pass"
    return previous or "unknown"


@dataclass
class _SuiteBuilder:
    name: str
    concurrent: bool
    children: list = field(default_factory=list)
    index: dict[str, "_SuiteBuilder"] = field(default_factory=dict)

    def build(self) -> Suite:
        tagged = [
            (child.concurrent, child.build()) if isinstance(child, _SuiteBuilder) else child
            for child in self.children
        ]
        return Suite(name=self.name, task_groups=partition(tagged))


def is_concurrent(node: pytest.Item | pytest.Collector) -> bool:
    marker = node.get_closest_marker(CONCURRENT_MARKER)
    if marker is None:
        return False
    return bool(marker.args[0]) if marker.args else True


def _suite_chain(item: pytest.Item) -> list[pytest.Collector]:
    chain = item.listchain()[:-1]
    for position, node in enumerate(chain):
        if isinstance(node, pytest.Module):
            return chain[position:]
    return chain[-1:]


def _suite_name(collector: pytest.Collector) -> str:
    return collector.nodeid if isinstance(collector, pytest.Module) else collector.name


def _root_prefix(items: Sequence[pytest.Item]) -> ItemKey:
    modules = {_suite_chain(item)[0].nodeid for item in items}
    if len(modules) > 1:
        return (items[0].session.name,)
    return ()


def item_key(item: pytest.Item, prefix: ItemKey = ()) -> ItemKey:
    """Suite names from the root down to ``item``, followed by the item's own name."""

    return (*prefix, *(_suite_name(node) for node in _suite_chain(item)), item.name)


def build_suite(
    items: Sequence[pytest.Item],
    states: Optional[dict[str, TestState]] = None,
) -> Suite:
    """Build the suite tree for ``items`` in their current order."""

    states = states or {}
    roots: list[_SuiteBuilder] = []
    root_index: dict[str, _SuiteBuilder] = {}

    for item in items:
        siblings, index = roots, root_index
        for collector in _suite_chain(item):
            builder = index.get(collector.nodeid)
            if builder is None:
                builder = _SuiteBuilder(_suite_name(collector), is_concurrent(collector))
                index[collector.nodeid] = builder
                siblings.append(builder)
            siblings, index = builder.children, builder.index
        test = TestCase(name=item.name, state=states.get(item.nodeid, "unknown"))
        siblings.append((is_concurrent(item), test))

    if len(roots) == 1:
        return roots[0].build()

    session = _SuiteBuilder(items[0].session.name, False)
    session.children.extend(roots)
    return session.build()


def reorder_items(suite: Suite, items: Sequence[pytest.Item]) -> list[pytest.Item]:
    """Sort ``items`` into the leaf order of ``suite``."""

    position = {(*path, test.name): rank for rank, (path, test) in enumerate(suite.walk())}
    prefix = _root_prefix(items)
    return sorted(items, key=lambda item: position[item_key(item, prefix)])
