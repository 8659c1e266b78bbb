"""In-memory model of the central node's register space."""

from __future__ import annotations

import queue
from typing import Callable, Iterable, Iterator, Union


class RegisterIOError(OSError):
    """A register, command or stream access failed."""


class RegisterNotFoundError(LookupError):
    """No entry exists at the requested path."""


class Register:
    """An array of unsigned integer values, read-write or read-only."""

    def __init__(self, nelms: int = 1, read_only: bool = False) -> None:
        if nelms < 1:
            raise ValueError("a register holds at least one element")
        self.nelms = nelms
        self.read_only = read_only
        self.faulty = False
        self._values = [0] * nelms

    def _check(self) -> None:
        if self.faulty:
            raise RegisterIOError("register access failed")

    @property
    def values(self) -> tuple[int, ...]:
        """Current contents; assigning replaces them regardless of read_only."""
        return tuple(self._values)

    @values.setter
    def values(self, values: Iterable[int]) -> None:
        new = [int(v) for v in values]
        if len(new) != self.nelms:
            raise ValueError(f"expected {self.nelms} values, got {len(new)}")
        self._values = new

    def get(self) -> int:
        """Read the first element."""
        self._check()
        return self._values[0]

    def get_values(self, count: int | None = None) -> list[int]:
        """Read up to count elements (all of them by default)."""
        self._check()
        if count is None:
            count = self.nelms
        if count < 0:
            raise ValueError("count must not be negative")
        return self._values[:count]

    def set(self, value: int) -> None:
        """Write value into every element."""
        if self.read_only:
            raise PermissionError("register is read-only")
        self._check()
        self._values = [int(value)] * self.nelms

    def set_values(self, values: Iterable[int]) -> None:
        """Write the leading elements from values."""
        if self.read_only:
            raise PermissionError("register is read-only")
        self._check()
        new = [int(v) for v in values]
        if len(new) > self.nelms:
            raise ValueError(f"register holds {self.nelms} elements, got {len(new)}")
        self._values[: len(new)] = new


class Command:
    """A write-only action; counts its executions."""

    def __init__(self, action: Callable[[], None] | None = None) -> None:
        self.action = action
        self.faulty = False
        self.count = 0

    def execute(self) -> None:
        if self.faulty:
            raise RegisterIOError("command execution failed")
        if self.action is not None:
            self.action()
        self.count += 1


class Stream:
    """A stream of frames; read() takes the next frame, waiting up to a timeout."""

    def __init__(self) -> None:
        self.faulty = False
        self._frames: queue.Queue[bytes] = queue.Queue()

    def push(self, data: bytes) -> None:
        """Queue a frame to be returned by read()."""
        self._frames.put(bytes(data))

    def read(self, size: int, timeout: int | None = None) -> bytes:
        """Return the next frame cut to size bytes, or b"" on timeout (microseconds)."""
        if self.faulty:
            raise RegisterIOError("stream read failed")
        try:
            if timeout is None:
                frame = self._frames.get()
            elif timeout <= 0:
                frame = self._frames.get_nowait()
            else:
                frame = self._frames.get(timeout=timeout / 1_000_000)
        except queue.Empty:
            return b""
        return frame[:size]


Entry = Union[Register, Command, Stream]


class RegisterMap:
    """Entries addressed by path names."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}

    def add(self, path: str, entry: Entry) -> Entry:
        if path in self._entries:
            raise ValueError(f"duplicate path {path}")
        self._entries[path] = entry
        return entry

    def find(self, path: str) -> Entry:
        try:
            return self._entries[path]
        except KeyError:
            raise RegisterNotFoundError(path) from None

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)