"""Stand-in for the central node firmware that takes updates over UDP."""

from __future__ import annotations

import logging
import os
import socket
import struct
from dataclasses import dataclass
from typing import ClassVar, Optional, Sequence

from mpscentral.firmware import CentralNodeError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4356
PORT_ENV_VAR = "CENTRAL_NODE_TEST_PORT"
INFO_REQUEST = b"INFO?"
_RECEIVE_TIMEOUT_SECONDS = 1.0

_INFO_FORMAT = struct.Struct("128s64s64s64s")
_MITIGATION_FORMAT = struct.Struct("<2I")


@dataclass(frozen=True)
class DatabaseInfo:
    """Description of the loaded MPS database, sent on request."""

    source: str = ""
    date: str = ""
    user: str = ""
    md5sum: str = ""

    SIZE: ClassVar[int] = _INFO_FORMAT.size

    def pack(self) -> bytes:
        """Fixed-size record of zero-padded fields (128, 64, 64 and 64 bytes)."""
        return _INFO_FORMAT.pack(
            self.source.encode(),
            self.date.encode(),
            self.user.encode(),
            self.md5sum.encode(),
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DatabaseInfo":
        fields = _INFO_FORMAT.unpack_from(data)
        return cls(*(f.split(b"\0", 1)[0].decode(errors="replace") for f in fields))


class SimulatedFirmware:
    """Receives simulated link node updates on a UDP port and answers them."""

    def __init__(
        self,
        port: Optional[int] = None,
        database_info: Optional[DatabaseInfo] = None,
    ) -> None:
        if port is None:
            configured = os.environ.get(PORT_ENV_VAR)
            if configured is not None:
                port = int(configured)
                logger.info("Server waiting on test data using port %d.", port)
            else:
                port = DEFAULT_PORT
        self.database_info = database_info or DatabaseInfo()
        self.fpga_version = 1
        self.build_stamp = ""
        self.git_hash = "NONE"
        self.updates_received = 0
        self._client: Optional[tuple[str, int]] = None

        try:
            self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise CentralNodeError(
                "ERROR: Failed to open socket for simulated firmware inputs"
            ) from exc
        try:
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._socket.settimeout(_RECEIVE_TIMEOUT_SECONDS)
            self._socket.bind(("", port))
        except OSError as exc:
            self._socket.close()
            raise CentralNodeError(
                "ERROR: Failed to open socket for simulated firmware inputs"
            ) from exc
        logger.info("Running without firmware; simulated inputs on port %d", self.port)

    @property
    def port(self) -> int:
        """The UDP port actually bound."""
        return self._socket.getsockname()[1]

    @property
    def client(self) -> Optional[tuple[str, int]]:
        """Address of the last sender, to which mitigation is returned."""
        return self._client

    def read_update_stream(self, size: int, timeout: int = 0) -> bytes:
        """Receive one update of at most size bytes; b"" on timeout or info request.

        The timeout argument is accepted for compatibility with the firmware
        interface; the socket itself waits up to one second.
        """
        try:
            data, self._client = self._socket.recvfrom(size)
        except OSError:
            return b""
        logger.info("Received %d bytes.", len(data))

        if data[: len(INFO_REQUEST)] == INFO_REQUEST:
            logger.info("Received request for database info")
            logger.info("Database md5sum is %s", self.database_info.md5sum)
            try:
                self._socket.sendto(self.database_info.pack(), self._client)
            except OSError as exc:
                logger.error("Failed to send database info: %s", exc)
            return b""

        self.updates_received += 1
        return data

    def write_mitigation(self, mitigation: Sequence[int]) -> None:
        """Send the two mitigation words, swapped, back to the last sender."""
        if self._client is None:
            logger.debug("No client to send mitigation to")
            return
        payload = _MITIGATION_FORMAT.pack(
            mitigation[1] & 0xFFFFFFFF, mitigation[0] & 0xFFFFFFFF
        )
        try:
            self._socket.sendto(payload, self._client)
        except OSError as exc:
            logger.error("Failed to send mitigation: %s", exc)

    def report(self) -> str:
        return (
            "=== MpsCentralNode ===\n"
            f"FPGA version={self.fpga_version}\n"
            f'Build stamp="{self.build_stamp}"\n'
            f'Git hash="{self.git_hash}"\n'
            f"Updates received={self.updates_received}\n"
        )

    def close(self) -> None:
        self._socket.close()

    def __enter__(self) -> "SimulatedFirmware":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()