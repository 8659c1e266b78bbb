"""Wall-clock timestamps and moving averages of elapsed times."""

from __future__ import annotations

import time
from dataclasses import dataclass

_NS_PER_S = 1_000_000_000
_MIN_TIME_INIT = 0xFFFFFFF


def _trunc_div(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


@dataclass(frozen=True)
class Time:
    """A point in time (or a duration) as seconds plus nanoseconds."""

    seconds: int = 0
    nanoseconds: int = 0

    @classmethod
    def now(cls) -> "Time":
        """Return the current wall-clock time."""
        seconds, nanoseconds = divmod(time.time_ns(), _NS_PER_S)
        return cls(seconds, nanoseconds)

    def __add__(self, other: object) -> "Time":
        if not isinstance(other, Time):
            return NotImplemented
        seconds = self.seconds + other.seconds
        nanoseconds = self.nanoseconds + other.nanoseconds
        if nanoseconds > _NS_PER_S:
            return Time(seconds + 1, nanoseconds - _NS_PER_S)
        return Time(seconds, nanoseconds)

    def __sub__(self, other: object) -> "Time":
        if not isinstance(other, Time):
            return NotImplemented
        seconds = self.seconds - other.seconds
        if other.nanoseconds < self.nanoseconds:
            return Time(seconds, self.nanoseconds - other.nanoseconds)
        return Time(seconds - 1, _NS_PER_S + self.nanoseconds - other.nanoseconds)

    def _total_nanoseconds(self) -> int:
        return self.seconds * _NS_PER_S + self.nanoseconds

    def to_millis(self) -> int:
        """Whole milliseconds, truncated toward zero."""
        return _trunc_div(self._total_nanoseconds(), 1_000_000)

    def to_micros(self) -> int:
        """Whole microseconds, truncated toward zero."""
        return _trunc_div(self._total_nanoseconds(), 1_000)

    def __str__(self) -> str:
        return f"{self.seconds}:{self.nanoseconds}"


class TimeAverage:
    """Collects elapsed times (in microseconds) and keeps a moving average."""

    def __init__(self, samples: int = 60, name: str = "Processing Time") -> None:
        if samples < 1:
            raise ValueError("samples must be at least 1")
        self._name = name
        self._size = samples
        self._buffer = [0] * samples
        self._false_start_count = 0
        self._start = Time()
        self._reset_state()

    def _reset_state(self) -> None:
        self._head = 0
        self._tail = 0
        self._max_time = 0
        self._min_time = _MIN_TIME_INIT
        self._average_time = 0
        self._sum = 0
        self._elapsed_time = 0
        self._started = False
        self._sample_count = 0
        self._end_failed_count = 0
        self._full = False
        self._buffer = [0] * self._size

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._size

    @property
    def maximum(self) -> int:
        """Largest elapsed time recorded, in microseconds."""
        return self._max_time

    @property
    def minimum(self) -> int:
        """Smallest elapsed time recorded, in microseconds."""
        return self._min_time

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def false_start_count(self) -> int:
        """How often start() was called while already started."""
        return self._false_start_count

    @property
    def end_failed_count(self) -> int:
        """How often end() was called without a start()."""
        return self._end_failed_count

    def start(self) -> None:
        if self._started:
            self._false_start_count += 1
        self._start = Time.now()
        self._started = True

    def restart(self) -> None:
        self._start = Time.now()
        self._started = True

    def end(self) -> int | None:
        """Stop the measurement; return the elapsed microseconds, or None if not started."""
        if not self._started:
            self._end_failed_count += 1
            return None
        self._elapsed_time = (Time.now() - self._start).to_micros()
        self._update()
        self._started = False
        return self._elapsed_time

    def _update(self) -> None:
        elapsed = self._elapsed_time
        self._max_time = max(self._max_time, elapsed)
        self._min_time = min(self._min_time, elapsed)

        self._sum -= self._buffer[self._tail]
        self._head = (self._head + 1) % self._size
        if self._head == self._tail:
            self._full = True
            self._tail = (self._tail + 1) % self._size

        self._buffer[self._head] = elapsed
        self._sum += elapsed
        self._sample_count += 1

    def average(self) -> int:
        """Moving average of the recorded times, in microseconds."""
        if self._full:
            self._average_time = _trunc_div(self._sum, self._size)
        else:
            self._average_time = 0
            if self._head != 0:
                self._average_time = _trunc_div(self._sum, self._head)
        return self._average_time

    def rate(self) -> int:
        """Events per second implied by the moving average (0 if unknown)."""
        if self._full:
            self._average_time = _trunc_div(self._sum, self._size)
        elif self._head != 0:
            self._average_time = _trunc_div(self._sum, self._head)
        if self._average_time > 0:
            return 1_000_000 // self._average_time
        if self._average_time < 0:
            return _trunc_div(1_000_000, self._average_time)
        return 0

    def report(self, leading_spaces: str = "") -> str:
        lines = [
            f"{leading_spaces}--- {self._name} ---",
            f"{leading_spaces}  average: {self.average()} usec (samples={self._size}, "
            f"total count={self._sample_count}, fs={self._false_start_count}, "
            f"end fail={self._end_failed_count})",
            f"{leading_spaces}  max:     {self._max_time} usec",
            f"{leading_spaces}  min:     {self._min_time} usec",
        ]
        return "\n".join(lines) + "\n"

    def clear(self) -> None:
        """Forget all samples and counters except the false-start count."""
        self._reset_state()