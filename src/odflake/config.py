"""Configuration helpers for the odflake runtime."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .logging import configure_logging
from .schemas import OrderPolicy


class ConfigurationError(ValueError):
    """Raised when runtime configuration is invalid or incomplete."""


_PROJECT_ENV_VAR = "ODFLAKE_PROJECT_DIR"
_ORDER_ENV_VAR = "ODFLAKE_ORDER"
_ROUNDS_ENV_VAR = "ODFLAKE_ROUNDS"
_SEED_ENV_VAR = "ODFLAKE_SEED"
_OUT_FILE_ENV_VAR = "ODFLAKE_OUT_FILE"
_CONCURRENCY_ENV_VAR = "ODFLAKE_CONCURRENCY"
_ROUND_TIMEOUT_ENV_VAR = "ODFLAKE_ROUND_TIMEOUT"
_KEEP_WORKSPACES_ENV_VAR = "ODFLAKE_KEEP_WORKSPACES"
_LOG_LEVEL_ENV_VAR = "ODFLAKE_LOG_LEVEL"
_LOG_FILE_ENV_VAR = "ODFLAKE_LOG_FILE"
_LOG_FILE_LEVEL_ENV_VAR = "ODFLAKE_LOG_FILE_LEVEL"

DEFAULT_ROUNDS = 20
DEFAULT_ROUND_TIMEOUT = 30.0
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RuntimeSettings:
    """Represents the resolved settings required to analyse a project."""

    project: Path
    order: OrderPolicy
    rounds: int
    seed: int
    out: Optional[Path] = None
    concurrency: int = 1
    round_timeout: float = DEFAULT_ROUND_TIMEOUT
    keep_workspaces: bool = False
    workspace_root: Optional[Path] = None
    install: bool = False


def load_settings(
    project: Optional[Path] = None,
    *,
    order: Optional[str] = None,
    rounds: Optional[int] = None,
    seed: Optional[int] = None,
    out: Optional[Path] = None,
    concurrency: Optional[int] = None,
    round_timeout: Optional[float] = None,
    keep_workspaces: Optional[bool] = None,
    workspace_root: Optional[Path] = None,
    install: bool = False,
    debug: bool = False,
) -> RuntimeSettings:
    """Resolve runtime settings from provided parameters and environment variables."""

    load_dotenv()  # Allows .env values to override defaults
    configure_logging(
        os.getenv(_LOG_LEVEL_ENV_VAR),
        debug=debug,
        log_file=os.getenv(_LOG_FILE_ENV_VAR),
        file_level=os.getenv(_LOG_FILE_LEVEL_ENV_VAR),
    )

    resolved_out = out
    if resolved_out is None and (env_out := os.getenv(_OUT_FILE_ENV_VAR)):
        resolved_out = Path(env_out)

    return RuntimeSettings(
        project=_resolve_project(project),
        order=_resolve_order(order),
        rounds=_resolve_positive_int(rounds, _ROUNDS_ENV_VAR, DEFAULT_ROUNDS, "Rounds"),
        seed=_resolve_seed(seed),
        out=resolved_out.expanduser().resolve() if resolved_out is not None else None,
        concurrency=_resolve_positive_int(
            concurrency, _CONCURRENCY_ENV_VAR, available_parallelism(), "Concurrency"
        ),
        round_timeout=_resolve_timeout(round_timeout),
        keep_workspaces=_resolve_flag(keep_workspaces, _KEEP_WORKSPACES_ENV_VAR),
        workspace_root=workspace_root,
        install=install,
    )


def _resolve_project(cli_value: Optional[Path]) -> Path:
    if cli_value is not None:
        project = cli_value
    elif env_path := os.getenv(_PROJECT_ENV_VAR):
        project = Path(env_path)
    else:
        project = Path.cwd()

    project = project.expanduser().resolve()
    if not project.is_dir():
        raise ConfigurationError(f"Project directory does not exist: {project}")
    return project


def _resolve_order(cli_value: Optional[str]) -> OrderPolicy:
    raw = cli_value or os.getenv(_ORDER_ENV_VAR) or OrderPolicy.ORIGINAL.value
    try:
        return OrderPolicy(raw)
    except ValueError as exc:
        choices = ", ".join(policy.value for policy in OrderPolicy)
        raise ConfigurationError(f"Invalid order {raw!r}; expected one of: {choices}") from exc


def _resolve_positive_int(cli_value: Optional[int], env_var: str, default: int, label: str) -> int:
    if cli_value is not None:
        if cli_value < 1:
            raise ConfigurationError(f"{label} must be at least 1.")
        return cli_value

    env_value = os.getenv(env_var)
    if env_value:
        try:
            parsed = int(env_value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {env_var} value: {env_value!r}") from exc
        if parsed < 1:
            raise ConfigurationError(f"{label} must be at least 1.")
        return parsed

    return default


def _resolve_seed(cli_value: Optional[int]) -> int:
    if cli_value is not None:
        return cli_value

    env_value = os.getenv(_SEED_ENV_VAR)
    if env_value:
        try:
            return int(env_value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {_SEED_ENV_VAR} value: {env_value!r}") from exc

    return int(time.time() * 1000)


def _resolve_timeout(cli_value: Optional[float]) -> float:
    if cli_value is None:
        env_value = os.getenv(_ROUND_TIMEOUT_ENV_VAR)
        if not env_value:
            return DEFAULT_ROUND_TIMEOUT
        try:
            cli_value = float(env_value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {_ROUND_TIMEOUT_ENV_VAR} value: {env_value!r}") from exc

    if cli_value <= 0:
        raise ConfigurationError("Round timeout must be positive.")
    return cli_value


def _resolve_flag(cli_value: Optional[bool], env_var: str) -> bool:
    if cli_value is not None:
        return cli_value
    return os.getenv(env_var, "").strip().lower() in _TRUTHY


def available_parallelism() -> int:
    """Number of CPUs this process may run on, honouring affinity masks where the OS exposes them."""

    if hasattr(os, "sched_getaffinity"):
        return max(len(os.sched_getaffinity(0)), 1)
    return os.cpu_count() or 1
