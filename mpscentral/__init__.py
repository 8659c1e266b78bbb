"""Machine protection system central node core: registers, firmware access, heartbeat, history and timing."""

__version__ = "0.1.0"

__all__ = [
    "blocking_queue",
    "firmware",
    "firmware_report",
    "heartbeat",
    "history",
    "registers",
    "sim_firmware",
    "time_util",
    "timer",
]