"""Software heartbeat sent to the central node firmware watchdog."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Type, TypeVar

from mpscentral.registers import Command, Register, RegisterIOError, RegisterMap
from mpscentral.timer import Timer

logger = logging.getLogger(__name__)

_CORE = "/mmio/MpsCentralApplication/MpsCentralNodeCore"
_FPGA_CLK_PER_US = 250
_REQUEST_TIMEOUT_MS = 5

E = TypeVar("E")


def _find(root: RegisterMap, path: str, kind: Type[E]) -> E:
    entry = root.find(path)
    if not isinstance(entry, kind):
        raise TypeError(f"wrong interface for {path}")
    return entry


class BeatBase:
    """Sends heartbeats in the calling thread and keeps statistics."""

    def __init__(self, root: RegisterMap, timer_buffer_size: int) -> None:
        self._tx_period = Timer("Time Between Heartbeats", timer_buffer_size)
        self._tx_duration = Timer("Time to send Heartbeats", timer_buffer_size)
        self._sw_wd_error = _find(root, f"{_CORE}/SoftwareWdError", Register)
        self._sw_heartbeat = _find(root, f"{_CORE}/SwHeartbeat", Command)
        self._hb_count = 0
        self._wd_error_count = 0

    @property
    def heartbeat_count(self) -> int:
        return self._hb_count

    @property
    def wd_error_count(self) -> int:
        return self._wd_error_count

    @property
    def min_tx_period(self) -> float:
        return self._tx_period.min_period()

    @property
    def max_tx_period(self) -> float:
        return self._tx_period.all_max_period()

    @property
    def mean_tx_period(self) -> float:
        return self._tx_period.mean_period()

    @property
    def min_tx_duration(self) -> float:
        return self._tx_duration.min_period()

    @property
    def max_tx_duration(self) -> float:
        return self._tx_duration.all_max_period()

    @property
    def mean_tx_duration(self) -> float:
        return self._tx_duration.mean_period()

    def _default_beat(self) -> None:
        self._tx_duration.start()
        if self._sw_wd_error.get():
            self._wd_error_count += 1
        self._sw_heartbeat.execute()
        self._tx_period.tick()
        self._hb_count += 1
        self._tx_duration.tick()

    def _default_clear(self) -> None:
        self._tx_period.clear()
        self._tx_duration.clear()
        self._hb_count = 0
        self._wd_error_count = 0

    def _default_report(self) -> str:
        return (
            f"Heartbeat count               : {self._hb_count}\n"
            f"Software watchdog error count : {self._wd_error_count}\n"
            + self._tx_period.report()
            + self._tx_duration.report()
        )

    def beat(self) -> None:
        self._default_beat()

    def clear(self) -> None:
        self._default_clear()

    def beat_report(self) -> str:
        return self._default_report()

    def close(self) -> None:
        """Release resources; nothing to do for a blocking beat."""


class BlockingBeat(BeatBase):
    """beat() returns after the heartbeat command has been sent."""


class NonBlockingBeat(BeatBase):
    """beat() only queues a request; a background thread sends the heartbeat."""

    def __init__(self, root: RegisterMap, timer_buffer_size: int) -> None:
        super().__init__(root, timer_buffer_size)
        self._cond = threading.Condition()
        self._req_timeout_count = 0
        self._req_timeout_ms = _REQUEST_TIMEOUT_MS
        self._beat_req_count = 0
        self._beat_req_count_max = 0
        self._run = True
        self._thread: Optional[threading.Thread] = threading.Thread(
            target=self._beat_writer, name="HeartBeat", daemon=True
        )
        self._thread.start()

    def beat(self) -> None:
        with self._cond:
            self._beat_req_count += 1
            self._beat_req_count_max = max(self._beat_req_count_max, self._beat_req_count)
            self._cond.notify()

    def clear(self) -> None:
        with self._cond:
            self._beat_req_count_max = 0
            self._req_timeout_count = 0
        self._default_clear()

    def _beat_writer(self) -> None:
        logger.info("Heartbeat writer thread started...")
        timeout = self._req_timeout_ms / 1000
        while True:
            with self._cond:
                requested = self._cond.wait_for(lambda: self._beat_req_count > 0, timeout)
                if requested:
                    self._beat_req_count -= 1
                else:
                    self._req_timeout_count += 1
            if requested:
                try:
                    self._default_beat()
                except RegisterIOError as exc:
                    logger.error("Heartbeat failed: %s", exc)
            if not self._run:
                logger.info("Heartbeat writer thread interrupted")
                return

    def beat_report(self) -> str:
        with self._cond:
            maximum = self._beat_req_count_max
            timeouts = self._req_timeout_count
        return (
            f"Request timeout               : {self._req_timeout_ms} ms\n"
            f"Timeouts waiting for requests : {timeouts}\n"
            f"Maximum queued requests       : {maximum}\n"
            + self._default_report()
        )

    def close(self) -> None:
        """Stop the writer thread and wait for it to finish."""
        self._run = False
        if self._thread is not None:
            self._thread.join()
            self._thread = None


class HeartBeat:
    """Sets the firmware watchdog time and sends heartbeats using a beat policy."""

    def __init__(
        self,
        root: RegisterMap,
        policy: Type[BeatBase] = BlockingBeat,
        timeout: int = 3500,
        timer_buffer_size: int = 360,
    ) -> None:
        self._sw_wd_time = _find(root, f"{_CORE}/SoftwareWdTime", Register)
        self._sw_hb_cnt_max = _find(root, f"{_CORE}/SoftwareHbUpCntMax", Register)
        self._sw_wd_time.set(timeout)
        self.policy = policy(root, timer_buffer_size)
        logger.info("Central Node HeartBeat started.")
        logger.info("Software Watchdog timer set to: %d", timeout)

    def beat(self) -> None:
        self.policy.beat()

    def clear(self) -> None:
        self.policy.clear()

    def set_wd_time(self, timeout: int) -> None:
        self._sw_wd_time.set(timeout)

    def report(self) -> str:
        wd_time = self._sw_wd_time.get()
        max_period_us = self._sw_hb_cnt_max.get() // _FPGA_CLK_PER_US
        return (
            "\nHeartBeat report:\n"
            "===============================================\n"
            f"Software watchdog timer       : {wd_time} us\n"
            f"Maximum heartbeat period (FW) : {max_period_us} us\n"
            + self.policy.beat_report()
        )

    def close(self) -> None:
        """Stop the policy and log the final report."""
        self.policy.close()
        logger.info("%s", self.report())

    def __enter__(self) -> "HeartBeat":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()