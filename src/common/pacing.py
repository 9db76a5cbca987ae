from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional


class PacingCancelled(RuntimeError):
    """Raised by `pause()` once the pacer has been cancelled."""


@dataclass
class _DelayWindow:
    min_seconds: float
    max_seconds: float


class HumanPacer:
    """
    Randomized delay between outbound sends.

    - Each `pause()` waits a duration drawn uniformly from
      [min_seconds, max_seconds] to look like human-paced sending.
    - `cancel()` wakes any waiter and makes further pauses raise
      `PacingCancelled`; used on process shutdown.
    - `uniform` and `wait` are injectable for tests. `wait(seconds)` must
      return True when woken early by cancellation (like `Event.wait`).
    """

    def __init__(
        self,
        min_seconds: float = 1.5,
        max_seconds: float = 3.5,
        *,
        uniform: Callable[[float, float], float] = random.uniform,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> None:
        if min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if max_seconds < min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")
        self._cfg = _DelayWindow(min_seconds=min_seconds, max_seconds=max_seconds)
        self._cancelled = threading.Event()
        self._uniform = uniform
        self._wait = wait or self._cancelled.wait

    @property
    def window(self) -> tuple[float, float]:
        return (self._cfg.min_seconds, self._cfg.max_seconds)

    def next_delay(self) -> float:
        return self._uniform(self._cfg.min_seconds, self._cfg.max_seconds)

    def pause(self) -> float:
        """Sleep for one randomized interval; returns the chosen delay."""
        if self._cancelled.is_set():
            raise PacingCancelled("pacer cancelled")
        delay = self.next_delay()
        woken = self._wait(delay)
        if woken or self._cancelled.is_set():
            raise PacingCancelled("pacer cancelled")
        return delay

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()
