"""Logging helpers for the odflake package.

Every component logs through a child of the ``odflake`` logger. Events are
emitted as single-line JSON payloads via :func:`log_event` so that a run's
log can be grepped or loaded back for post-mortem analysis.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

LOGGER_NAME = "odflake"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

_LEVEL_ALIASES = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def resolve_level(level: Optional[str | int], default: int = logging.INFO) -> int:
    """Map a level name or number to a ``logging`` level, falling back to ``default``."""

    if level is None:
        return default

    if isinstance(level, int):
        return level

    return _LEVEL_ALIASES.get(level.strip().upper(), default)


def configure_logging(
    level: Optional[str | int] = None,
    *,
    debug: bool = False,
    log_file: Optional[str | Path] = None,
    file_level: Optional[str | int] = None,
) -> logging.Logger:
    """Configure and return the package logger.

    Parameters
    ----------
    level:
        Log level for the console handler. Defaults to ``INFO`` when ``None``.
    debug:
        Forces the console handler down to ``DEBUG`` regardless of ``level``.
    log_file:
        Optional path to a log file that receives the full output. Parent
        directories are created automatically.
    file_level:
        Log level for the file handler. Defaults to ``DEBUG``.

    The console handler writes to stderr; stdout is reserved for the JSON
    project report.
    """

    logger = logging.getLogger(LOGGER_NAME)
    formatter = logging.Formatter(fmt=LOG_FORMAT)

    console_level = logging.DEBUG if debug else resolve_level(level)
    console = _find_console_handler(logger)
    if console is None:
        console = logging.StreamHandler(sys.stderr)
        logger.addHandler(console)
    console.setLevel(console_level)
    console.setFormatter(formatter)

    effective_level = console_level
    if log_file is not None:
        log_path = Path(log_file).expanduser().resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = _find_file_handler(logger, log_path)
        if file_handler is None:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            logger.addHandler(file_handler)

        resolved_file_level = resolve_level(file_level, default=logging.DEBUG)
        file_handler.setLevel(resolved_file_level)
        file_handler.setFormatter(formatter)
        effective_level = min(console_level, resolved_file_level)

    logger.setLevel(effective_level)
    logger.propagate = False
    return logger


def _find_console_handler(logger: logging.Logger) -> logging.StreamHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, logging.FileHandler
        ):
            return handler
    return None


def _find_file_handler(logger: logging.Logger, path: Path) -> logging.FileHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename).resolve() == path:
            return handler
    return None


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a child logger under the package root."""

    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry encoded as JSON."""

    payload = {"event": event, **fields}
    try:
        message = json.dumps(payload, default=str, sort_keys=True)
    except (TypeError, ValueError):
        message = json.dumps({"event": event}, sort_keys=True)
    logger.log(level, message)
