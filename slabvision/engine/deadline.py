"""Cooperative time budget checked inside the long pixel loops."""

from __future__ import annotations

import time

from slabvision.engine.errors import TimeoutExceeded


class Deadline:
    """Monotonic time budget. ``timeout_ms=None`` never expires."""

    def __init__(self, timeout_ms: float | None) -> None:
        self.timeout_ms = timeout_ms
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    @property
    def remaining_ms(self) -> float:
        if self.timeout_ms is None:
            return float("inf")
        return max(0.0, self.timeout_ms - self.elapsed_ms)

    @property
    def expired(self) -> bool:
        return self.timeout_ms is not None and self.elapsed_ms > self.timeout_ms

    def check(self) -> None:
        if self.expired:
            raise TimeoutExceeded(self.timeout_ms, self.elapsed_ms)

    @classmethod
    def unlimited(cls) -> Deadline:
        return cls(None)
