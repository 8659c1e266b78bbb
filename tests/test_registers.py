import threading
import time

import pytest

from mpscentral.registers import (
    Command,
    Register,
    RegisterIOError,
    RegisterMap,
    RegisterNotFoundError,
    Stream,
)


def test_new_register_reads_zero():
    register = Register(3)
    assert register.get() == 0
    assert register.get_values() == [0, 0, 0]


def test_set_broadcasts_to_all_elements():
    register = Register(4)
    register.set(7)
    assert register.get_values(4) == [7] * 4


def test_set_values_writes_prefix():
    register = Register(4)
    register.set(5)
    register.set_values([1, 2])
    assert register.get_values() == [1, 2, 5, 5]


def test_set_values_too_many_rejected():
    with pytest.raises(ValueError):
        Register(2).set_values([1, 2, 3])


def test_get_values_caps_at_size():
    register = Register(2)
    register.set_values([8, 9])
    assert register.get_values(16) == [8, 9]
    assert register.get_values(1) == [8]


def test_read_only_rejects_writes():
    register = Register(1, read_only=True)
    with pytest.raises(PermissionError):
        register.set(1)
    with pytest.raises(PermissionError):
        register.set_values([1])


def test_values_setter_bypasses_read_only():
    register = Register(2, read_only=True)
    register.values = [3, 4]
    assert register.get_values() == [3, 4]
    with pytest.raises(ValueError):
        register.values = [1]


def test_faulty_register_raises():
    register = Register(1)
    register.faulty = True
    with pytest.raises(RegisterIOError):
        register.get()
    with pytest.raises(RegisterIOError):
        register.set(1)


def test_invalid_size():
    with pytest.raises(ValueError):
        Register(0)


def test_command_runs_action_and_counts():
    calls = []
    command = Command(lambda: calls.append("run"))
    command.execute()
    command.execute()
    assert calls == ["run", "run"]
    assert command.count == 2


def test_faulty_command_raises():
    command = Command()
    command.faulty = True
    with pytest.raises(RegisterIOError):
        command.execute()
    assert command.count == 0


def test_stream_returns_frames_in_order_and_truncates():
    stream = Stream()
    stream.push(b"abcdef")
    stream.push(b"xy")
    assert stream.read(4, 0) == b"abcd"
    assert stream.read(100, 0) == b"xy"


def test_stream_timeout_returns_empty():
    assert Stream().read(10, 1000) == b""


def test_stream_waits_for_frame():
    stream = Stream()

    def producer():
        time.sleep(0.05)
        stream.push(b"frame")

    thread = threading.Thread(target=producer)
    thread.start()
    assert stream.read(10, 2_000_000) == b"frame"
    thread.join()


def test_faulty_stream_raises():
    stream = Stream()
    stream.faulty = True
    with pytest.raises(RegisterIOError):
        stream.read(10, 0)


def test_map_find_and_missing():
    registers = RegisterMap()
    enable = registers.add("/mmio/Enable", Register())
    assert registers.find("/mmio/Enable") is enable
    assert "/mmio/Enable" in registers
    assert list(registers) == ["/mmio/Enable"]
    with pytest.raises(RegisterNotFoundError):
        registers.find("/mmio/Missing")


def test_map_duplicate_rejected():
    registers = RegisterMap()
    registers.add("/Stream0", Stream())
    with pytest.raises(ValueError):
        registers.add("/Stream0", Stream())
    assert len(registers) == 1