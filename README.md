# mpscentral

Core pieces of a machine protection system central node as a plain Python
library. It uses only the standard library.

## Modules

- `mpscentral.time_util`
  - `Time` is a seconds-plus-nanoseconds value. It supports `+` and `-`,
    `to_millis()` and `to_micros()`, and `Time.now()`.
  - `TimeAverage(samples=60, name="Processing Time")` keeps a moving average
    of elapsed times in microseconds. It is driven by `start()` and `end()`.
    `end()` returns `None` when the average was not started.
  - It also provides `average()`, `rate()`, `report()` and `clear()`.
  - The properties `maximum`, `minimum`, `sample_count`, `false_start_count`
    and `end_failed_count` expose the counters.
- `mpscentral.timer`
  - `Timer(name, size=1)` records the periods between `tick()` calls, in
    seconds, over a window of `size` periods.
  - `min_period()`, `max_period()`, `mean_period()` and `all_max_period()`
    return the statistics.
  - `countdown_complete(min_time)` tells whether more than `min_time`
    seconds have passed since `start()`.
  - `report()` returns a text summary.
- `mpscentral.blocking_queue`
  - `BlockingQueue` is a thread-safe FIFO with blocking `pop()` and
    non-blocking `try_pop()`. `try_pop()` returns `None` when the queue is
    empty.
  - `max_size` is a high-water mark, reset by `clear_counters()` or
    `reset()`.
- `mpscentral.registers` holds an in-memory register space:
  - `Register(nelms=1, read_only=False)`, `Command` and `Stream`;
  - `RegisterMap`, which `add()`s and `find()`s entries by path;
  - the errors `RegisterIOError` and `RegisterNotFoundError`.
  - Each entry has a `faulty` flag. Setting it makes accesses raise
    `RegisterIOError`.
- `mpscentral.history`
  - `History(enabled=True, transport=None)` queues `Message` records. The
    queue holds at most 100 messages.
  - A background thread sends them, started by
    `start_sender_thread(server_name="localhost", port=3356)` and ended by
    `stop_sender_thread()`. Messages go over UDP unless a `transport`
    callable is given.
  - `HistoryMessageType` names the event kinds, and `Message.pack()`
    encodes one record as five little-endian 32-bit words.
- `mpscentral.heartbeat`
  - `HeartBeat(root, policy=BlockingBeat, timeout=3500, timer_buffer_size=360)`
    writes the software watchdog time and sends heartbeats through the
    `SwHeartbeat` command of a `RegisterMap`.
  - `BlockingBeat` sends in the calling thread. `NonBlockingBeat` queues the
    request and sends it from a background thread.
  - `HeartBeat` is a context manager, and `report()` returns its statistics.
- `mpscentral.firmware`
  - `Firmware(root)` works on the central node registers of a
    `RegisterMap`. `create_registers()` looks up every expected path. That
    includes 1024 `.../MpsCentralNodeConfig/AppId[i]/Config` registers.
  - It exposes the enables as properties, along with per-application
    timeout masks, mitigation readout and writes, configuration writes, the
    clear commands, timing checks and the two streams.
  - `PcChange.parse()` decodes power class change packets.
  - `extract_mitigation()` and `encode_integration_time()` are helpers.
  - Setup failures raise `CentralNodeError`.
- `mpscentral.firmware_report`
  - `format_firmware_status(firmware)` returns a "Name=value" status dump.
  - The dump writes 7 to the `TimeoutTime` register after reading it.
- `mpscentral.sim_firmware`
  - `SimulatedFirmware(port=None, database_info=None)` takes updates on a UDP
    port. The port defaults to `CENTRAL_NODE_TEST_PORT` or 4356.
  - An `INFO?` request is answered with the packed `DatabaseInfo`.
  - `write_mitigation()` sends the two mitigation words, swapped, to the
    last sender.

## Example

```python
from mpscentral.firmware import extract_mitigation, encode_integration_time

extract_mitigation([0x76543210, 0xFEDCBA98])
# [0, 1, 2, ..., 15]

encode_integration_time(100_000)
# (99 << 16) | 999
```

```python
from mpscentral.registers import Register, RegisterMap
from mpscentral.history import History

regs = RegisterMap()
regs.add("/mmio/Example", Register(nelms=2))
regs.find("/mmio/Example").set_values([1, 2])

sent = []
history = History(transport=lambda data: sent.append(data) or len(data))
history.log_fault(5, 0, 1, 3)   # True: queued
```

## What it does not do

The register space is an in-memory model. The package does not talk to real
central node hardware, and it does not build a `RegisterMap` from a register
description file. It has no MPS database, no evaluation engine and no
command-line program. `Firmware` and `HeartBeat` work only on a `RegisterMap`
that the caller fills in.

## Running the tests

```
pip install -e .[test]
pytest
```