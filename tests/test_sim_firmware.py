import socket
import struct

import pytest

from mpscentral.firmware import CentralNodeError
from mpscentral.sim_firmware import DatabaseInfo, SimulatedFirmware


@pytest.fixture
def sim():
    info = DatabaseInfo(source="mps.yaml", date="today", user="tester", md5sum="abc")
    firmware = SimulatedFirmware(port=0, database_info=info)
    yield firmware
    firmware.close()


@pytest.fixture
def client():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(2.0)
    yield sock
    sock.close()


def test_database_info_round_trip():
    info = DatabaseInfo(source="src", date="d", user="u", md5sum="m")
    packed = info.pack()
    assert len(packed) == DatabaseInfo.SIZE
    assert DatabaseInfo.unpack(packed) == info


def test_database_info_truncates_long_fields():
    info = DatabaseInfo(md5sum="x" * 100)
    packed = info.pack()
    assert len(packed) == DatabaseInfo.SIZE
    assert DatabaseInfo.unpack(packed).md5sum == "x" * 64


def test_update_truncated_to_size(sim, client):
    client.sendto(b"abcdefgh", ("127.0.0.1", sim.port))
    assert sim.read_update_stream(3, 0) == b"abc"


def test_info_request_answered(sim, client):
    client.sendto(b"INFO?", ("127.0.0.1", sim.port))
    assert sim.read_update_stream(1024, 0) == b""
    assert sim.updates_received == 0
    reply, _ = client.recvfrom(1024)
    assert len(reply) == DatabaseInfo.SIZE
    assert DatabaseInfo.unpack(reply) == sim.database_info


def test_timeout_returns_empty(sim):
    assert sim.read_update_stream(1024, 0) == b""
    assert sim.updates_received == 0


def test_write_mitigation_swaps_words(sim, client):
    client.sendto(b"update", ("127.0.0.1", sim.port))
    sim.read_update_stream(1024, 0)
    sim.write_mitigation([0x11111111, 0x22222222])
    reply, _ = client.recvfrom(64)
    assert struct.unpack("<2I", reply) == (0x22222222, 0x11111111)


def test_write_mitigation_without_client_sends_nothing(sim):
    sim.write_mitigation([1, 2])
    assert sim.client is None


def test_report(sim, client):
    client.sendto(b"x", ("127.0.0.1", sim.port))
    sim.read_update_stream(16, 0)
    lines = sim.report().splitlines()
    assert lines[0] == "=== MpsCentralNode ==="
    assert lines[1] == "FPGA version=1"
    assert lines[3] == 'Git hash="NONE"'
    assert lines[4] == "Updates received=1"


def test_port_from_environment(monkeypatch):
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    probe.bind(("", 0))
    free_port = probe.getsockname()[1]
    probe.close()
    monkeypatch.setenv("CENTRAL_NODE_TEST_PORT", str(free_port))
    with SimulatedFirmware() as firmware:
        assert firmware.port == free_port


def test_bind_failure_raises(sim):
    with pytest.raises(CentralNodeError):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            blocker.bind(("", 0))
            busy = blocker.getsockname()[1]
            SimulatedFirmware(port=busy)
        finally:
            blocker.close()