"""Two-phase hooks run inside the test process of a single round.

The orchestrator and the test process only share a workspace directory and a
handful of environment variables (:class:`RoundChannel`). Inside the test
process an execution engine adapter calls :meth:`RoundHooks.before_run` once
the suite tree is known and :meth:`RoundHooks.after_run` once it finished. The
hooks persist a :class:`~odflake.schemas.RoundReport` to the workspace, which
the orchestrator reads back after the process exits.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from .config import ConfigurationError
from .logging import get_logger, log_event
from .ordering import permute_suite
from .schemas import OrderPolicy, RoundReport, Suite, to_json

LOGGER = get_logger("instrumentation")

ORDER_ENV_VAR = "ODFLAKE_TEST_ORDER"
SEED_ENV_VAR = "ODFLAKE_TEST_SEED"
TEMP_DIR_ENV_VAR = "ODFLAKE_TEMP_DIR"
PLUGINS_ENV_VAR = "PYTEST_PLUGINS"
PLUGIN_MODULE = "odflake.pytest_plugin"
REPORT_FILENAME = "report.json"


class RoundReportError(RuntimeError):
    """Raised when a persisted round report is missing or unreadable."""


class RoundReportMissing(RoundReportError):
    """Raised when the test process never wrote a round report."""


class RoundHooks(Protocol):
    """Callbacks an execution engine invokes around running one test file."""

    def before_run(self, suite: Suite) -> Suite:
        """Receive the collected suite and return the suite to execute."""

    def after_run(self, suite: Suite) -> None:
        """Receive the executed suite carrying final test states."""


@dataclass(frozen=True)
class RoundChannel:
    """Per-round settings handed to the test process through its environment."""

    order: OrderPolicy
    seed: int
    workspace: Path

    @property
    def report_path(self) -> Path:
        return self.workspace / REPORT_FILENAME

    def to_env(self) -> dict[str, str]:
        return {
            ORDER_ENV_VAR: self.order.value,
            SEED_ENV_VAR: str(self.seed),
            TEMP_DIR_ENV_VAR: str(self.workspace),
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RoundChannel":
        env = os.environ if environ is None else environ

        workspace = env.get(TEMP_DIR_ENV_VAR)
        if not workspace:
            raise ConfigurationError(f"{TEMP_DIR_ENV_VAR} is not set")

        raw_order = env.get(ORDER_ENV_VAR) or OrderPolicy.ORIGINAL.value
        try:
            order = OrderPolicy(raw_order)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {ORDER_ENV_VAR} value: {raw_order!r}") from exc

        raw_seed = env.get(SEED_ENV_VAR)
        if raw_seed:
            try:
                seed = int(raw_seed, 10)
            except ValueError as exc:
                raise ConfigurationError(f"Invalid {SEED_ENV_VAR} value: {raw_seed!r}") from exc
        else:
            seed = int(time.time() * 1000)

        return cls(order=order, seed=seed, workspace=Path(workspace))


def round_environment(
    channel: RoundChannel,
    base: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Environment for a round's test process: ``base`` plus the channel and plugin."""

    env = dict(os.environ if base is None else base)
    env.update(channel.to_env())
    plugins = [name for name in env.get(PLUGINS_ENV_VAR, "").split(",") if name.strip()]
    if PLUGIN_MODULE not in plugins:
        plugins.append(PLUGIN_MODULE)
    env[PLUGINS_ENV_VAR] = ",".join(plugins)
    return env


class RoundInstrumentation:
    """:class:`RoundHooks` implementation that reorders and records one round."""

    def __init__(self, channel: RoundChannel) -> None:
        self.channel = channel
        self._original: Suite | None = None

    def before_run(self, suite: Suite) -> Suite:
        self._original = suite
        shuffled, _ = permute_suite(suite, self.channel.order, self.channel.seed)
        self._persist(done=False, shuffled=shuffled)
        log_event(
            LOGGER,
            logging.DEBUG,
            "round.ordered",
            order=self.channel.order.value,
            seed=self.channel.seed,
            report=str(self.channel.report_path),
        )
        return shuffled

    def after_run(self, suite: Suite) -> None:
        if self._original is None:
            raise RuntimeError("after_run called before before_run")
        self._persist(done=True, shuffled=suite)

    def _persist(self, *, done: bool, shuffled: Suite) -> None:
        report = RoundReport(
            done=done,
            order=self.channel.order,
            seed=self.channel.seed,
            original_suite=self._original,
            shuffled_suite=shuffled,
        )
        write_round_report(self.channel.report_path, report)


def write_round_report(path: Path, report: RoundReport) -> None:
    """Write ``report`` to ``path``, replacing the previous version in one step."""

    staging = path.with_name(path.name + ".tmp")
    staging.write_text(to_json(report), encoding="utf-8")
    os.replace(staging, path)


def read_round_report(workspace: Path) -> RoundReport:
    """Load and validate the report persisted in a round workspace."""

    path = workspace / REPORT_FILENAME
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise RoundReportMissing(f"No round report at {path}") from exc
    except OSError as exc:
        raise RoundReportError(f"Failed to read round report {path}: {exc}") from exc

    try:
        return RoundReport.model_validate_json(raw)
    except (ValidationError, UnicodeDecodeError) as exc:
        raise RoundReportError(f"Round report {path} is invalid: {exc}") from exc
