"""Human-readable status dump of the central node firmware."""

from __future__ import annotations

import logging

from mpscentral.firmware import (
    FW_NUM_BEAM_CLASSES,
    FW_NUM_BEAM_DESTINATIONS,
    FW_NUM_CONNECTIONS,
    CentralNodeError,
    Firmware,
    extract_mitigation,
)
from mpscentral.registers import Register, RegisterIOError

logger = logging.getLogger(__name__)

_U32 = 0xFFFFFFFF
_TIMEOUT_WORDS_SHOWN = 32


def _register(firmware: Firmware, name: str) -> Register:
    entry = firmware.registers.get(name)
    if not isinstance(entry, Register):
        raise CentralNodeError(
            f"ERROR: Register {name} not available; call create_registers()"
        )
    return entry


def _words(firmware: Firmware, name: str, count: int) -> list[int]:
    """Read count words, zero-filled; I/O errors propagate."""
    values = [v & _U32 for v in _register(firmware, name).get_values(count)]
    return values + [0] * (count - len(values))


def _u32(firmware: Firmware, name: str) -> int:
    try:
        return _register(firmware, name).get() & _U32
    except RegisterIOError:
        logger.error("I/O error reading %s", name)
        return 0


def _flag(firmware: Firmware, name: str) -> bool:
    try:
        return _register(firmware, name).get() != 0
    except RegisterIOError:
        logger.error("I/O error reading %s", name)
        return False


def _signed(value: int) -> int:
    return value - (1 << 32) if value & 0x80000000 else value


def _state_line(label: str, enabled: bool) -> str:
    """Format a "Label=Enabled/Disabled" line."""
    state = "Enabled" if enabled else "Disabled"
    return f"{label}={state}"


def _list(values: list[int]) -> str:
    return "[" + ", ".join(str(v) for v in values) + "]"


def _hex_words(values: list[int]) -> str:
    return ", ".join(f"0x{v:x}" for v in values) + "]"


def format_firmware_status(firmware: Firmware) -> str:
    """Describe the firmware state, one "Name=value" line per register.

    A register access failure ends the dump early; what was gathered up
    to that point is returned.
    """
    lines = [
        "=== MpsCentralNode ===",
        f"FPGA version={firmware.fpga_version}",
        f'Build stamp="{firmware.build_stamp}"',
        f'Git hash="{firmware.git_hash}"',
    ]

    try:
        lines.append(_state_line("Enable", firmware.enable))
        lines.append(_state_line("SwEnable", firmware.software_enable))
        lines.append(f"SwLossCnt={firmware.software_loss_count}")
        lines.append(f"SwLossError={firmware.software_loss_error}")
        lines.append(f"SwBwidthCnt={firmware.software_clock_count}")

        for name in ("BeamIntTime", "BeamMinPeriod", "BeamIntCharge"):
            values = _words(firmware, name, FW_NUM_BEAM_CLASSES)
            lines.append(f"{name}={_list(values)}")

        lines.append(f"BeamFaultReason=0x{_u32(firmware, 'BeamFaultReason'):x}")
        lines.append(_state_line("BeamFaultEnable", _flag(firmware, "BeamFaultEn")))

        lines.append(f"Mitigation={_list(extract_mitigation(firmware.mitigation()))}")
        lines.append(
            "FirmwareMitigation="
            + _list(extract_mitigation(firmware.firmware_mitigation()))
        )
        software = firmware.software_mitigation()
        lines.append(f"SoftwareMitigation=[0x{software[0]:x} 0x{software[1]:x}]")
        lines.append(f"SoftwareMitigation={_list(extract_mitigation(software))}")
        lines.append(
            "LatchedMitigation="
            + _list(extract_mitigation(firmware.latched_mitigation()))
        )

        for register_name, label in (
            ("MonitorRxErrCnt", "MonitorRxErrorCnt"),
            ("MonitorPauseCnt", "MonitorPauseCnt"),
            ("MonitorOvflCnt", "MonitorOvflCnt"),
            ("MonitorDropCnt", "MonitorDropCnt"),
        ):
            values = _words(firmware, register_name, FW_NUM_BEAM_DESTINATIONS)
            shown = [_signed(v) for v in values[:FW_NUM_CONNECTIONS]]
            lines.append(f"{label}={_list(shown)}")

        for register_name, label in (
            ("MonitorConcWdErr", "MonitorConcWdErrCnt"),
            ("MonitorConcStallErr", "MonitorConcStallErrCnt"),
            ("MonitorConcExtRxErr0", "MonitorConcExtRxErr0Cnt"),
            ("MonitorConcExtRxErr1", "MonitorConcExtRxErr1Cnt"),
            ("TimeoutErrStatus", "TimeoutErrStatus"),
        ):
            lines.append(f"{label}={_u32(firmware, register_name)}")

        lines.append(_state_line("TimeoutEnable", _flag(firmware, "TimeoutEnable")))
        lines.append(f"TimeoutTime={_u32(firmware, 'TimeoutTime')} usec")
        # The dump has always reset the timeout time to 7 us after showing it.
        _register(firmware, "TimeoutTime").set(7)
        lines.append(f"TimeoutMsgVer={_u32(firmware, 'TimeoutMsgVer')}")

        for register_name, label in (
            ("TimeoutErrIndex", "TimoutErrIndex"),
            ("TimeoutMask", "TimoutMask"),
        ):
            lines.append(f"{label}=")
            values = _words(firmware, register_name, _TIMEOUT_WORDS_SHOWN)
            lines[-1] += _hex_words(values)

        lines.append(
            _state_line("EvaluationEnable", _flag(firmware, "EvaluationEnable"))
        )
        lines.append(f"SoftwareWdTime={_u32(firmware, 'SoftwareWdTime')}")
        lines.append(f"EvaluationTimeStamp={_u32(firmware, 'EvaluationTimeStamp')}")
    except (RegisterIOError, ValueError, PermissionError) as exc:
        logger.error("Exception Info: %s", exc)

    return "\n".join(lines) + "\n"