"""Period timer that records intervals between ticks."""

from __future__ import annotations

import math
import time
from collections import deque


class Timer:
    """Measures periods (in seconds) between successive ticks."""

    def __init__(self, name: str, size: int = 1) -> None:
        if size < 1:
            raise ValueError("size must be at least 1")
        self.name = name
        self.size = size
        self._periods: deque[float] = deque(maxlen=size)
        self._tick_count = 0
        self._last = 0.0
        self._start_time = 0.0
        self._started = False
        self._max = 0.0

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if not self._started:
            self._last = time.perf_counter()
            self._start_time = self._last
            self._started = True

    def tick(self) -> None:
        now = time.perf_counter()
        if self._started:
            period = now - self._last
            self._periods.append(period)
            self._max = max(self._max, period)
            self._tick_count += 1
        else:
            self._started = True
        self._last = now

    def stop(self) -> None:
        self._started = False

    def countdown_complete(self, min_time: float) -> bool:
        """True once more than min_time seconds passed since start(); stops the timer then."""
        if not self._started:
            return True
        if time.perf_counter() - self._start_time > min_time:
            self._started = False
            return True
        return False

    def clear(self) -> None:
        """Reset the all-time maximum period."""
        self._max = 0.0

    def min_period(self) -> float:
        return min(self._periods, default=-1.0)

    def max_period(self) -> float:
        return max(self._periods, default=-1.0)

    def mean_period(self) -> float:
        if not self._periods:
            return math.nan
        return sum(self._periods) / len(self._periods)

    def all_max_period(self) -> float:
        return self._max

    def report(self) -> str:
        lines = [
            f"--- {self.name} ---",
            f"Number of ticks     : {self._tick_count}",
        ]
        if self._tick_count:
            lines += [
                f"Minimum period      : {self.min_period() * 1e6:g} us",
                f"Average period      : {self.mean_period() * 1e6:g} us",
                f"Maximum period      : {self.max_period() * 1e6:g} us",
                f"Maximum period (All): {self.all_max_period() * 1e6:g} us",
            ]
        return "\n".join(lines) + "\n"