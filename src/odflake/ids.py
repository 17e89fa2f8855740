"""ID sources used to name round workspaces."""

from __future__ import annotations

import itertools
import threading
from typing import Callable

IdSource = Callable[[], str]


class CounterIds:
    """Monotonic hexadecimal ids (``0000``, ``0001``, ...) unique within one instance."""

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            value = next(self._counter)
        return format(value, "04x")

