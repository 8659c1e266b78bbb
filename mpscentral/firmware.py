"""Access to the MPS central node firmware registers."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable, Optional, Sequence, Union

from mpscentral.registers import (
    Command,
    Register,
    RegisterIOError,
    RegisterMap,
    RegisterNotFoundError,
    Stream,
)

logger = logging.getLogger(__name__)

FW_NUM_APPLICATIONS = 1024
FW_NUM_BEAM_CLASSES = 16
FW_NUM_MITIGATION_DEVICES = 16
FW_NUM_BEAM_DESTINATIONS = 16
FW_NUM_CONNECTIONS = 12
FW_NUM_APPLICATION_MASKS = 1024
FW_NUM_APPLICATION_MASKS_WORDS = FW_NUM_APPLICATION_MASKS // 4

_U32 = 0xFFFFFFFF

_BASE = "/mmio"
_AXI = _BASE + "/AmcCarrierCore/AxiVersion"
_CORE = _BASE + "/MpsCentralApplication/MpsCentralNodeCore"
CONFIG_PATH = _BASE + "/MpsCentralApplication/MpsCentralNodeConfig/AppId[{}]/Config"


class RegisterKind(Enum):
    """Interface an entry of the register map must offer."""

    READ_WRITE = "rw"
    READ_ONLY = "ro"
    COMMAND = "command"
    STREAM = "stream"


_RW = RegisterKind.READ_WRITE
_RO = RegisterKind.READ_ONLY
_CMD = RegisterKind.COMMAND
_STREAM = RegisterKind.STREAM

REGISTER_SPECS: tuple[tuple[str, RegisterKind], ...] = (
    (f"{_AXI}/FpgaVersion", _RO),
    (f"{_AXI}/BuildStamp", _RO),
    (f"{_AXI}/GitHash", _RO),
    (f"{_CORE}/SwHeartbeat", _CMD),
    (f"{_CORE}/EvalLatchClear", _CMD),
    (f"{_CORE}/Enable", _RW),
    (f"{_CORE}/SoftwareEnable", _RW),
    (f"{_CORE}/SoftwareClear", _RW),
    (f"{_CORE}/SoftwareLossError", _RO),
    (f"{_CORE}/SoftwareLossCnt", _RO),
    (f"{_CORE}/SoftwareBwidthCnt", _RO),
    (f"{_CORE}/BeamIntTime", _RW),
    (f"{_CORE}/BeamMinPeriod", _RW),
    (f"{_CORE}/BeamIntCharge", _RW),
    (f"{_CORE}/BeamFaultReason", _RO),
    (f"{_CORE}/BeamFaultEn", _RW),
    (f"{_CORE}/MonErrClear", _CMD),
    (f"{_CORE}/SwErrClear", _CMD),
    (f"{_CORE}/BeamFaultClr", _RW),
    (f"{_CORE}/EvaluationSwPowerLevel", _RW),
    (f"{_CORE}/EvaluationFwPowerLevel", _RO),
    (f"{_CORE}/EvaluationLatchedPowerLevel", _RO),
    (f"{_CORE}/EvaluationPowerLevel", _RO),
    (f"{_CORE}/ConPowH", _RO),
    (f"{_CORE}/ConPowL", _RO),
    (f"{_CORE}/SwitchConfig", _CMD),
    (f"{_CORE}/ToErrClear", _CMD),
    (f"{_CORE}/MoConcErrClear", _CMD),
    (f"{_CORE}/MonitorReady", _RO),
    (f"{_CORE}/MonitorRxErrCnt", _RO),
    (f"{_CORE}/MonitorPauseCnt", _RO),
    (f"{_CORE}/MonitorOvflCnt", _RO),
    (f"{_CORE}/MonitorDropCnt", _RO),
    (f"{_CORE}/MonitorConcWdErr", _RO),
    (f"{_CORE}/MonitorConcStallErr", _RO),
    (f"{_CORE}/MonitorConcExtRxErr0", _RO),
    (f"{_CORE}/MonitorConcExtRxErr1", _RO),
    (f"{_CORE}/TimeoutEnable", _RW),
    (f"{_CORE}/TimeoutClear", _RW),
    (f"{_CORE}/TimeoutTime", _RW),
    (f"{_CORE}/TimeoutMask", _RW),
    (f"{_CORE}/TimeoutErrStatus", _RO),
    (f"{_CORE}/TimeoutErrIndex", _RO),
    (f"{_CORE}/TimeoutMsgVer", _RW),
    (f"{_CORE}/EvaluationEnable", _RW),
    (f"{_CORE}/EvaluationTimeStamp", _RO),
    (f"{_CORE}/SoftwareWdTime", _RW),
    (f"{_CORE}/SoftwareBusy", _RO),
    (f"{_CORE}/SoftwarePause", _RO),
    (f"{_CORE}/SoftwareWdError", _RO),
    (f"{_CORE}/SoftwareOvflCnt", _RO),
    (f"{_CORE}/TimePowH", _RO),
    (f"{_CORE}/TimePowL", _RO),
    ("/Stream0", _STREAM),
    ("/Stream1", _STREAM),
)

Entry = Union[Register, Command, Stream]


class CentralNodeError(Exception):
    """The central node firmware could not be set up or configured."""


PC_CHANGE_FLAG_LABELS: tuple[str, ...] = (
    "MonReady",
    "ExtRxErr",
    "RxErr",
    "Pause",
    "Ovfl",
    "Drop",
    "ConWdErr2",
    "ConWdErr1",
    "ConWdErr0",
    "ConStallErr2",
    "ConStallErr1",
    "ConStallErr0",
    "TimeoutErr",
    "SwErr",
    "Enables",
)

_PC_CHANGE_FORMAT = struct.Struct("<2IHHH3HQB")


@dataclass(frozen=True)
class PcChange:
    """Power class asynchronous message from the firmware."""

    header: tuple[int, int]
    tag: int
    flags: int
    time_stamp: int
    power_class: int
    tail: int

    SIZE: ClassVar[int] = _PC_CHANGE_FORMAT.size
    FLAGS_MASK: ClassVar[int] = 0x7FFF

    @classmethod
    def parse(cls, data: bytes) -> "PcChange":
        if len(data) < cls.SIZE:
            raise ValueError(
                f"power class message needs {cls.SIZE} bytes, got {len(data)}"
            )
        h0, h1, tag, flags, stamp, _g0, _g1, _g2, power, tail = (
            _PC_CHANGE_FORMAT.unpack_from(data)
        )
        return cls((h0, h1), tag, flags, stamp, power, tail)

    def active_flags(self) -> list[str]:
        """Labels of the flag bits that differ from their normal state."""
        active = self.flags ^ self.FLAGS_MASK
        return [
            label
            for bit, label in enumerate(PC_CHANGE_FLAG_LABELS)
            if active >> bit & 1
        ]


def extract_mitigation(compressed: Sequence[int]) -> list[int]:
    """Expand two words of 4-bit power classes into 16 values."""
    return [
        (word >> (4 * i)) & 0xF for word in compressed[:2] for i in range(8)
    ]


def encode_integration_time(time: int) -> int:
    """Encode an integration time for the BeamIntTime register.

    Times above 1000 keep (time/1000 - 1) in bits 25:16 and 999 in the
    lower bits; smaller times are written unchanged.
    """
    if time > 1000:
        return (((time // 1000 - 1) << 16) | 999) & _U32
    return time & _U32


def _leaf(path: str) -> str:
    return path.rsplit("/", 1)[1]


class Firmware:
    """Central node firmware reached through a register map."""

    def __init__(self, root: Optional[RegisterMap] = None) -> None:
        self.root = root
        self.registers: dict[str, Entry] = {}
        self.config_registers: list[Register] = []
        self.fpga_version = 0
        self.build_stamp = ""
        self.git_hash = ""
        self._timeout_mask = 0
        self._timeout_errors = 0

    # -- setup -----------------------------------------------------------

    def _lookup(self, path: str, kind: RegisterKind) -> Entry:
        assert self.root is not None
        try:
            entry = self.root.find(path)
        except RegisterNotFoundError:
            raise CentralNodeError(f"ERROR: Failed to find {path}") from None
        valid = {
            RegisterKind.READ_WRITE: isinstance(entry, Register)
            and not getattr(entry, "read_only", True),
            RegisterKind.READ_ONLY: isinstance(entry, Register),
            RegisterKind.COMMAND: isinstance(entry, Command),
            RegisterKind.STREAM: isinstance(entry, Stream),
        }[kind]
        if not valid:
            raise CentralNodeError(f"ERROR: Wrong interface for {path}")
        return entry

    def create_registers(self) -> None:
        """Look up every register and read the static version information."""
        if self.root is None:
            raise CentralNodeError("ERROR: No register root set")

        self.registers = {}
        for path, kind in REGISTER_SPECS:
            self.registers[_leaf(path)] = self._lookup(path, kind)
            if _leaf(path) == "TimeoutMask":
                self.write_app_timeout_mask()
        self.config_registers = [
            self._lookup(CONFIG_PATH.format(i), RegisterKind.READ_WRITE)
            for i in range(FW_NUM_APPLICATIONS)
        ]

        for name in ("BeamIntTime", "BeamMinPeriod", "BeamIntCharge"):
            if self._register(name).nelms != FW_NUM_BEAM_CLASSES:
                raise CentralNodeError(
                    f"ERROR: Invalid number of beam classes ({name})"
                )

        git_hash = [0] * 21
        try:
            self.fpga_version = self._register("FpgaVersion").get()
            stamp = bytes(v & 0xFF for v in self._register("BuildStamp").get_values(256))
            self.build_stamp = stamp.split(b"\0", 1)[0].decode("latin-1")
            values = self._register("GitHash").get_values(21)
            git_hash[: len(values)] = [v & 0xFF for v in values]
        except RegisterIOError:
            logger.error("I/O error reading version registers")
        # Each byte contributes the first digit of its hex form.
        self.git_hash = "".join(f"{b:X}"[0] for b in git_hash[:20])

    def _entry(self, name: str) -> Entry:
        try:
            return self.registers[name]
        except KeyError:
            raise CentralNodeError(
                f"ERROR: Register {name} not available; call create_registers()"
            ) from None

    def _register(self, name: str) -> Register:
        entry = self._entry(name)
        assert isinstance(entry, Register)
        return entry

    # -- generic accessors ----------------------------------------------

    def _get_bool(self, name: str) -> bool:
        try:
            return self._register(name).get() != 0
        except RegisterIOError:
            logger.error("I/O error reading %s", name)
            return False

    def _set_bool(self, name: str, enable: bool) -> None:
        try:
            self._register(name).set(1 if enable else 0)
        except RegisterIOError:
            logger.error("I/O error writing %s", name)

    def _get_uint(self, name: str, mask: int = _U32) -> int:
        try:
            return self._register(name).get() & mask
        except RegisterIOError:
            logger.error("I/O error reading %s", name)
            return 0

    def _get_pair(self, name: str) -> list[int]:
        try:
            values = [v & _U32 for v in self._register(name).get_values(2)]
        except RegisterIOError:
            logger.error("I/O error reading %s", name)
            return [0, 0]
        return values + [0] * (2 - len(values))

    def _execute(self, name: str) -> bool:
        command = self._entry(name)
        assert isinstance(command, Command)
        try:
            command.execute()
        except RegisterIOError as exc:
            logger.error("Command %s failed: %s", name, exc)
            return False
        return True

    # -- enables and status ------------------------------------------------

    @property
    def enable(self) -> bool:
        return self._get_bool("Enable")

    @enable.setter
    def enable(self, value: bool) -> None:
        self._set_bool("Enable", value)

    @property
    def software_enable(self) -> bool:
        return self._get_bool("SoftwareEnable")

    @software_enable.setter
    def software_enable(self, value: bool) -> None:
        self._set_bool("SoftwareEnable", value)

    @property
    def timing_check_enable(self) -> bool:
        return self._get_bool("BeamFaultEn")

    @timing_check_enable.setter
    def timing_check_enable(self, value: bool) -> None:
        self._set_bool("BeamFaultEn", value)

    @property
    def evaluation_enable(self) -> bool:
        return self._get_bool("EvaluationEnable")

    @evaluation_enable.setter
    def evaluation_enable(self, value: bool) -> None:
        self._set_bool("EvaluationEnable", value)

    @property
    def timeout_enable(self) -> bool:
        return self._get_bool("TimeoutEnable")

    @timeout_enable.setter
    def timeout_enable(self, value: bool) -> None:
        self._set_bool("TimeoutEnable", value)

    @property
    def software_loss_error(self) -> int:
        return self._get_uint("SoftwareLossError", 0xFF)

    @property
    def software_loss_count(self) -> int:
        return self._get_uint("SoftwareLossCnt")

    @property
    def software_clock_count(self) -> int:
        return self._get_uint("SoftwareBwidthCnt")

    @property
    def fault_reason(self) -> int:
        return self._get_uint("BeamFaultReason")

    def software_clear(self) -> None:
        self._set_bool("SoftwareClear", True)
        self._set_bool("SoftwareClear", False)

    # -- application timeouts --------------------------------------------

    def _mask_words(self) -> list[int]:
        return [
            (self._timeout_mask >> (32 * i)) & _U32
            for i in range(FW_NUM_APPLICATION_MASKS_WORDS)
        ]

    def write_app_timeout_mask(self) -> None:
        try:
            self._register("TimeoutMask").set_values(self._mask_words())
        except RegisterIOError:
            logger.error("I/O error writing the application timeout mask")

    def set_app_timeout_enable(
        self, app_id: int, enable: bool, write_fw: bool = True
    ) -> None:
        """Set the timeout enable bit of an application; invalid ids are ignored."""
        if not 0 <= app_id < FW_NUM_APPLICATION_MASKS:
            return
        if enable:
            self._timeout_mask |= 1 << app_id
        else:
            self._timeout_mask &= ~(1 << app_id)
        if write_fw:
            self.write_app_timeout_mask()

    def get_app_timeout_enable(self, app_id: int) -> bool:
        if not 0 <= app_id < FW_NUM_APPLICATION_MASKS:
            raise IndexError(f"application id {app_id} out of range")
        return bool(self._timeout_mask >> app_id & 1)

    def read_app_timeout_status(self) -> None:
        """Read the per-application timeout error bits from the firmware."""
        try:
            words = self._register("TimeoutErrIndex").get_values(
                FW_NUM_APPLICATION_MASKS_WORDS
            )
        except RegisterIOError:
            logger.error("I/O error reading the application timeout status")
            return
        bits = 0
        for i, word in enumerate(words):
            bits |= (word & _U32) << (32 * i)
        self._timeout_errors = bits & ((1 << FW_NUM_APPLICATION_MASKS) - 1)

    def get_app_timeout_status(self, app_id: int) -> bool:
        """True if the application has a timeout error; unknown ids count as errors."""
        if 0 <= app_id < FW_NUM_APPLICATION_MASKS:
            return bool(self._timeout_errors >> app_id & 1)
        return True

    # -- mitigation and beam class -----------------------------------------

    def firmware_mitigation(self) -> list[int]:
        return self._get_pair("EvaluationFwPowerLevel")

    def software_mitigation(self) -> list[int]:
        return self._get_pair("EvaluationSwPowerLevel")

    def mitigation(self) -> list[int]:
        return self._get_pair("EvaluationPowerLevel")

    def latched_mitigation(self) -> list[int]:
        return self._get_pair("EvaluationLatchedPowerLevel")

    def final_bc_high(self) -> int:
        return self._get_uint("ConPowH")

    def final_bc_low(self) -> int:
        return self._get_uint("ConPowL")

    def timing_bc_high(self) -> int:
        return self._get_uint("TimePowH")

    def timing_bc_low(self) -> int:
        return self._get_uint("TimePowL")

    def write_mitigation(self, mitigation: Iterable[int]) -> None:
        try:
            self._register("EvaluationSwPowerLevel").set_values(
                [v & _U32 for v in mitigation]
            )
        except RegisterIOError:
            logger.error("I/O error writing the software mitigation")

    # -- configuration -----------------------------------------------------

    def write_config(self, app_number: int, config: bytes) -> None:
        """Write an application configuration; config is taken as little-endian words."""
        if not 0 <= app_number < FW_NUM_APPLICATIONS:
            return
        if not self.config_registers:
            raise CentralNodeError(
                "ERROR: Configuration registers not available; call create_registers()"
            )
        count = len(config) // 4
        words = struct.unpack(f"<{count}I", bytes(config[: count * 4]))
        logger.debug(
            "Writing configuration for application number #%d data size=%d",
            app_number,
            count,
        )
        try:
            self.config_registers[app_number].set_values(words)
        except (ValueError, PermissionError) as exc:
            raise CentralNodeError(
                "ERROR: Failed writing app configuration (InvalidArgError)."
            ) from exc
        except RegisterIOError as exc:
            logger.error("Exception Info: %s", exc)
            raise CentralNodeError(
                "ERROR: Failed writing app configuration (IOError)"
            ) from exc

    def switch_config(self) -> bool:
        return self._execute("SwitchConfig")

    def eval_latch_clear(self) -> bool:
        return self._execute("EvalLatchClear")

    def mon_err_clear(self) -> bool:
        return self._execute("MonErrClear")

    def sw_err_clear(self) -> bool:
        return self._execute("SwErrClear")

    def to_err_clear(self) -> bool:
        return self._execute("ToErrClear")

    def mo_conc_err_clear(self) -> bool:
        return self._execute("MoConcErrClear")

    def beam_fault_clear(self) -> bool:
        register = self._register("BeamFaultClr")
        try:
            register.set(1)
            register.set(0)
        except RegisterIOError as exc:
            logger.error("Exception Info: %s", exc)
            return False
        return True

    def clear_all(self) -> bool:
        """Run the clear commands in turn, stopping at the first that succeeds."""
        return (
            self.eval_latch_clear()
            or self.mon_err_clear()
            or self.sw_err_clear()
            or self.to_err_clear()
            or self.beam_fault_clear()
            or self.mo_conc_err_clear()
        )

    def write_timing_checking(
        self, time: Sequence[int], period: Sequence[int], charge: Sequence[int]
    ) -> None:
        """Write per beam class integration time, minimum period and charge."""
        n = FW_NUM_BEAM_CLASSES
        try:
            self._register("BeamMinPeriod").set_values(list(period[:n]))
            self._register("BeamIntCharge").set_values(list(charge[:n]))
            self._register("BeamIntTime").set_values(
                [encode_integration_time(t) for t in time[:n]]
            )
        except RegisterIOError:
            logger.error("I/O error writing timing checking registers")

    # -- streams -----------------------------------------------------------

    def _read_stream(self, name: str, size: int, timeout: int) -> bytes:
        stream = self._entry(name)
        assert isinstance(stream, Stream)
        try:
            return stream.read(size, timeout)
        except RegisterIOError as exc:
            logger.error("Failed to read %s: %s", name, exc)
            return b""

    def read_update_stream(self, size: int, timeout: int) -> bytes:
        """Next update frame (timeout in microseconds); b"" on timeout or error."""
        return self._read_stream("Stream0", size, timeout)

    def read_pc_change_stream(self, size: int, timeout: int) -> bytes:
        """Next power class change frame; b"" on timeout or error."""
        return self._read_stream("Stream1", size, timeout)

    # -- lifetime ----------------------------------------------------------

    def close(self) -> None:
        """Disable software and firmware evaluation."""
        if self.registers:
            self.software_enable = False
            self.enable = False

    def __enter__(self) -> "Firmware":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()