from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class WireConfig:
    connect_timeout: float = 10.0
    command_timeout: float = 30.0
    # No frame for this long -> the channel posts itself a probe so blocked waits return.
    watchdog_window: float = 5.0
    poll_interval: float = 0.25
    read_buffer_bytes: int = 256 * 1024 * 1024
    max_event_log: int = 2000
    max_response_log: int = 2000
    release_on_exit: bool = True

    @classmethod
    def from_env(cls) -> WireConfig:
        return cls(
            connect_timeout=_env_float("WIRE_CONNECT_TIMEOUT", 10.0),
            command_timeout=_env_float("WIRE_COMMAND_TIMEOUT", 30.0),
            watchdog_window=_env_float("WIRE_WATCHDOG_WINDOW", 5.0),
            poll_interval=_env_float("WIRE_POLL_INTERVAL", 0.25),
            read_buffer_bytes=_env_int("WIRE_READ_BUFFER_BYTES", 256 * 1024 * 1024),
            max_event_log=_env_int("WIRE_MAX_EVENT_LOG", 2000),
            max_response_log=_env_int("WIRE_MAX_RESPONSE_LOG", 2000),
            release_on_exit=_env_bool("WIRE_RELEASE_ON_EXIT", True),
        )

    def poll_timeout(self, remaining: float | None = None) -> float:
        """Socket timeout for one poll step, never longer than what is left."""
        step = max(0.01, float(self.poll_interval))
        if remaining is None:
            return step
        return max(0.01, min(step, remaining))
