import pytest

from mpscentral.firmware import (
    CONFIG_PATH,
    FW_NUM_APPLICATIONS,
    REGISTER_SPECS,
    Firmware,
    RegisterKind,
)
from mpscentral.firmware_report import format_firmware_status
from mpscentral.registers import Command, Register, RegisterMap, Stream

_SIZES = {
    "BeamIntTime": 16,
    "BeamMinPeriod": 16,
    "BeamIntCharge": 16,
    "BuildStamp": 256,
    "GitHash": 21,
    "TimeoutMask": 256,
    "TimeoutErrIndex": 256,
    "EvaluationSwPowerLevel": 2,
    "EvaluationFwPowerLevel": 2,
    "EvaluationPowerLevel": 2,
    "EvaluationLatchedPowerLevel": 2,
    "MonitorRxErrCnt": 16,
    "MonitorPauseCnt": 16,
    "MonitorOvflCnt": 16,
    "MonitorDropCnt": 16,
}


def _build_root():
    root = RegisterMap()
    for path, kind in REGISTER_SPECS:
        leaf = path.rsplit("/", 1)[1]
        if kind is RegisterKind.COMMAND:
            root.add(path, Command())
        elif kind is RegisterKind.STREAM:
            root.add(path, Stream())
        else:
            root.add(
                path,
                Register(_SIZES.get(leaf, 1), read_only=kind is RegisterKind.READ_ONLY),
            )
    for i in range(FW_NUM_APPLICATIONS):
        root.add(CONFIG_PATH.format(i), Register(8))
    return root


@pytest.fixture
def firmware():
    fw = Firmware(_build_root())
    fw.create_registers()
    return fw


def _line(text, prefix):
    matches = [line for line in text.splitlines() if line.startswith(prefix)]
    assert matches, f"no line starting with {prefix!r}"
    return matches[0]


def test_header_lines(firmware):
    firmware.registers["FpgaVersion"].values = [42]
    firmware.create_registers()
    text = format_firmware_status(firmware)
    lines = text.splitlines()
    assert lines[0] == "=== MpsCentralNode ==="
    assert lines[1] == "FPGA version=42"
    assert lines[2] == 'Build stamp=""'
    assert lines[3] == f'Git hash="{firmware.git_hash}"'


def test_enable_states(firmware):
    firmware.enable = True
    firmware.software_enable = False
    text = format_firmware_status(firmware)
    assert _line(text, "Enable=") == "Enable=Enabled"
    assert _line(text, "SwEnable=") == "SwEnable=Disabled"


def test_beam_class_arrays(firmware):
    times = list(range(1, 17))
    firmware.registers["BeamIntTime"].values = times
    text = format_firmware_status(firmware)
    assert _line(text, "BeamIntTime=") == "BeamIntTime=[" + ", ".join(map(str, times)) + "]"
    assert _line(text, "BeamMinPeriod=") == "BeamMinPeriod=[" + ", ".join(["0"] * 16) + "]"


def test_fault_reason_hex(firmware):
    firmware.registers["BeamFaultReason"].values = [255]
    text = format_firmware_status(firmware)
    assert _line(text, "BeamFaultReason=") == "BeamFaultReason=0xff"


def test_mitigation_expanded(firmware):
    firmware.registers["EvaluationPowerLevel"].values = [0x76543210, 0xFEDCBA98]
    text = format_firmware_status(firmware)
    expected = "Mitigation=[" + ", ".join(str(i) for i in range(16)) + "]"
    assert _line(text, "Mitigation=") == expected


def test_software_mitigation_hex_and_expanded(firmware):
    firmware.write_mitigation([0x12, 0xAB])
    text = format_firmware_status(firmware)
    sw_lines = [l for l in text.splitlines() if l.startswith("SoftwareMitigation=")]
    assert sw_lines[0] == "SoftwareMitigation=[0x12 0xab]"
    assert len(sw_lines) == 2
    assert sw_lines[1].count(",") == 15


def test_monitor_counts_show_connections_signed(firmware):
    firmware.registers["MonitorRxErrCnt"].values = [0xFFFFFFFF] * 16
    text = format_firmware_status(firmware)
    line = _line(text, "MonitorRxErrorCnt=")
    entries = line.split("=", 1)[1].strip("[]").split(", ")
    assert len(entries) == 12
    assert set(entries) == {"-1"}


def test_timeout_time_is_shown_then_reset(firmware):
    firmware.registers["TimeoutTime"].set(123)
    text = format_firmware_status(firmware)
    assert _line(text, "TimeoutTime=") == "TimeoutTime=123 usec"
    assert firmware.registers["TimeoutTime"].get() == 7


def test_timeout_index_words(firmware):
    text = format_firmware_status(firmware)
    line = _line(text, "TimoutErrIndex=")
    assert line.endswith("]")
    assert line.count("0x") == 32


def test_timeout_mask_reflects_enabled_apps(firmware):
    firmware.set_app_timeout_enable(0, True)
    text = format_firmware_status(firmware)
    line = _line(text, "TimoutMask=")
    assert line.startswith("TimoutMask=0x1, 0x0")


def test_failed_scalar_read_reports_zero(firmware):
    firmware.registers["MonitorConcWdErr"].values = [5]
    firmware.registers["MonitorConcWdErr"].faulty = True
    text = format_firmware_status(firmware)
    assert _line(text, "MonitorConcWdErrCnt=") == "MonitorConcWdErrCnt=0"
    assert "EvaluationTimeStamp=" in text


def test_failed_array_read_stops_dump(firmware):
    firmware.registers["MonitorRxErrCnt"].faulty = True
    text = format_firmware_status(firmware)
    assert "LatchedMitigation=" in text
    assert "MonitorRxErrorCnt" not in text
    assert "EvaluationEnable" not in text