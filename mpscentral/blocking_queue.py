"""Thread-safe FIFO queue with a high-water mark."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class BlockingQueue(Generic[T]):
    """FIFO queue whose pop() blocks until an item is available."""

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._cond = threading.Condition()
        self._watermark = 0

    def push(self, value: T) -> None:
        with self._cond:
            self._items.append(value)
            self._watermark = max(self._watermark, len(self._items))
            self._cond.notify()

    def pop(self) -> T:
        """Remove and return the oldest item, waiting for one if needed."""
        with self._cond:
            self._cond.wait_for(lambda: bool(self._items))
            return self._items.popleft()

    def try_pop(self) -> T | None:
        """Remove and return the oldest item, or None if the queue is empty."""
        with self._cond:
            return self._items.popleft() if self._items else None

    @property
    def max_size(self) -> int:
        """Largest number of items held at once since the counters were cleared."""
        with self._cond:
            return self._watermark

    def clear_counters(self) -> None:
        with self._cond:
            self._watermark = 0

    def reset(self) -> None:
        """Drop all items and clear the counters."""
        with self._cond:
            self._items.clear()
            self._watermark = 0

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)