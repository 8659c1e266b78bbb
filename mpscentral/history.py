"""Queued sender of MPS history messages over UDP."""

from __future__ import annotations

import logging
import socket
import struct
import threading
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, ClassVar, Optional

logger = logging.getLogger(__name__)

HIST_QUEUE_MAX_SIZE = 100
_SEND_WAIT_SECONDS = 0.2

_MESSAGE_FORMAT = struct.Struct("<5I")

Transport = Callable[[bytes], int]


class HistoryMessageType(IntEnum):
    """Kind of state change carried by a history message."""

    FAULT_STATE = 1
    MITIGATION = 2
    DEVICE_INPUT = 3
    ANALOG_DEVICE = 4
    BYPASS_STATE = 5
    BYPASS_VALUE = 6


@dataclass(frozen=True)
class Message:
    """One history record: a value of an entity changed from old to new."""

    type: HistoryMessageType
    id: int
    old_value: int
    new_value: int
    aux: int = 0

    SIZE: ClassVar[int] = _MESSAGE_FORMAT.size

    def pack(self) -> bytes:
        """Encode as five little-endian 32-bit words: type, id, old, new, aux."""
        return _MESSAGE_FORMAT.pack(
            int(self.type), self.id, self.old_value, self.new_value, self.aux
        )


class History:
    """Collects history messages and sends them from a background thread."""

    def __init__(self, enabled: bool = True, transport: Optional[Transport] = None) -> None:
        self.enabled = enabled
        self._transport = transport
        self._socket: Optional[socket.socket] = None
        self._queue: deque[Message] = deque()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._done = False
        self._counter = 0

    @property
    def messages_sent(self) -> int:
        return self._counter

    @property
    def queued(self) -> int:
        """Number of messages waiting to be sent."""
        with self._cond:
            return len(self._queue)

    def start_sender_thread(self, server_name: str = "localhost", port: int = 3356) -> None:
        """Set up the destination and, if enabled, start the sender thread."""
        if self._transport is None:
            try:
                address = socket.gethostbyname(server_name)
            except OSError as exc:
                raise OSError(
                    f"Failed to resolve {server_name!r} for MPS history sender"
                ) from exc
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._socket = sock
            target = (address, port)
            self._transport = lambda data: sock.sendto(data, target)

        if self.enabled:
            with self._cond:
                self._done = False
            self._thread = threading.Thread(
                target=self._sender_loop, name="SenderThread", daemon=True
            )
            self._thread.start()
            logger.info("MPS History sender ready")

    def stop_sender_thread(self) -> None:
        logger.info("Stopping history thread")
        with self._cond:
            self._done = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        logger.info("Joined history thread")

    def log(
        self,
        type: HistoryMessageType,
        id: int,
        old_value: int,
        new_value: int,
        aux: int,
    ) -> bool:
        return self.add(Message(HistoryMessageType(type), id, old_value, new_value, aux))

    def log_fault(self, id: int, old_value: int, new_value: int, allowed_class: int) -> bool:
        return self.log(HistoryMessageType.FAULT_STATE, id, old_value, new_value, allowed_class)

    def log_mitigation(
        self, id: int, old_value: int, new_value: int, allowed_class: int
    ) -> bool:
        return self.log(HistoryMessageType.MITIGATION, id, old_value, new_value, allowed_class)

    def log_device_input(self, id: int, old_value: int, new_value: int) -> bool:
        return self.log(HistoryMessageType.DEVICE_INPUT, id, old_value, new_value, 0)

    def log_analog_device(self, id: int, old_value: int, new_value: int) -> bool:
        return self.log(HistoryMessageType.ANALOG_DEVICE, id, old_value, new_value, 0)

    def log_bypass_state(self, id: int, old_value: int, new_value: int, index: int) -> bool:
        return self.log(HistoryMessageType.BYPASS_STATE, id, old_value, new_value, index)

    def log_bypass_value(self, id: int, old_value: int, new_value: int) -> bool:
        return self.log(HistoryMessageType.BYPASS_VALUE, id, old_value, new_value, 0)

    def add(self, message: Message) -> bool:
        """Queue a message; False if disabled or the queue is full."""
        if not self.enabled:
            return False
        with self._cond:
            if len(self._queue) >= HIST_QUEUE_MAX_SIZE:
                return False
            self._queue.append(message)
            self._cond.notify_all()
        return True

    def send(self, message: Message) -> bool:
        """Send one message now; False only when history is disabled."""
        if not self.enabled:
            return False
        data = message.pack()
        if self._transport is None:
            logger.error("Failed to send history message (no destination configured)")
            return True
        try:
            sent = self._transport(data)
        except OSError as exc:
            logger.error("Failed to send history message: %s", exc)
            return True
        if sent != len(data):
            logger.error("Failed to send history message (returned %s)", sent)
        else:
            self._counter += 1
        return True

    def send_front(self) -> bool:
        """Wait briefly for messages and send all queued; False once stopped."""
        with self._cond:
            if not self._done:
                self._cond.wait(timeout=_SEND_WAIT_SECONDS)
            if self._done:
                return False
            while self._queue:
                self.send(self._queue.popleft())
            return True

    def _sender_loop(self) -> None:
        logger.info("History sender thread ready.")
        while self.send_front():
            pass

    def __str__(self) -> str:
        return f"=== History ===\n  messages sent: {self._counter}\n"