"""Websocket transport channel.

One Channel owns one websocket. It hands out whole logical messages:
continuation frames are concatenated until FIN, bounded by
WireConfig.read_buffer_bytes.

Blocking reads:
- The socket is polled with short timeouts (WireConfig.poll_interval) so a
  read never blocks for longer than one poll step.
- If no frame arrives within the watchdog window, the channel posts itself a
  synthetic probe message (see frames.PROBE_METHOD) and returns it. Waits that
  have no guaranteed terminating reply ("frame stopped loading") use the probe
  as their "no event yet" signal.
- wake() posts the same probe from another thread to unblock a reader early.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections import deque
from contextlib import suppress
from typing import Any

import websocket

from .config import WireConfig
from .errors import SendError, WireConnectionError
from .frames import probe_message

_LOGGER = logging.getLogger("browser_wire.transport")

_DATA_OPCODES = (websocket.ABNF.OPCODE_TEXT, websocket.ABNF.OPCODE_BINARY)


class Channel:
    """Bidirectional message channel over a websocket-client connection."""

    def __init__(self, ws: Any, endpoint: str, config: WireConfig | None = None) -> None:
        self.ws = ws
        self.endpoint = endpoint
        self.config = config or WireConfig()
        self._open = bool(getattr(ws, "connected", True))
        self._probes: deque[str] = deque()
        self._send_lock = threading.Lock()

    @classmethod
    def connect(cls, endpoint: str, config: WireConfig | None = None) -> Channel:
        """Open the websocket and complete the handshake."""
        cfg = config or WireConfig()
        try:
            ws = websocket.create_connection(
                endpoint,
                timeout=cfg.connect_timeout,
                suppress_origin=True,
                skip_utf8_validation=True,
                enable_multithread=True,
            )
        except (websocket.WebSocketException, OSError, ValueError) as exc:
            raise WireConnectionError(f"Handshake with {endpoint} failed: {exc}") from exc

        channel = cls(ws, endpoint, cfg)
        if not getattr(ws, "connected", False):
            channel.abort()
            raise WireConnectionError(f"Handshake with {endpoint} did not leave the socket open")
        _LOGGER.info("connected endpoint=%s", endpoint)
        return channel

    @property
    def is_open(self) -> bool:
        return self._open

    # ─────────────────────────────────────────────────────────────────────────
    # Outbound
    # ─────────────────────────────────────────────────────────────────────────

    def send(self, text: str) -> None:
        if not self._open:
            raise SendError(f"Channel to {self.endpoint} is not open")
        try:
            with self._send_lock:
                self.ws.send(text)
        except (websocket.WebSocketException, OSError) as exc:
            self._open = False
            raise SendError(str(exc)) from exc

    def wake(self, reason: str = "wake") -> None:
        """Force a blocked receive() to return a probe message."""
        self._probes.append(probe_message(reason))

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound
    # ─────────────────────────────────────────────────────────────────────────

    def receive(self, window: float | None = None) -> str | None:
        """Return one reassembled message, a probe message, or None once closed."""
        window = self.config.watchdog_window if window is None else float(window)
        started_at = time.monotonic()
        buf: bytearray | None = None

        while True:
            if buf is None:
                if self._probes:
                    return self._probes.popleft()
                if not self._open:
                    return None
                if time.monotonic() - started_at >= window:
                    _LOGGER.debug("watchdog fired after %.2fs without frames", window)
                    self.wake("watchdog")
                    continue
            elif not self._open:
                return None

            try:
                # Between messages, never poll past the watchdog window.
                remaining = None if buf is not None else window - (time.monotonic() - started_at)
                self.ws.settimeout(self.config.poll_timeout(remaining))
                frame = self.ws.recv_frame()
            except (websocket.WebSocketTimeoutException, TimeoutError, socket.timeout):
                continue
            except (websocket.WebSocketException, OSError) as exc:
                _LOGGER.warning("channel read failed endpoint=%s error=%s", self.endpoint, exc)
                self._open = False
                return None

            if frame is None:
                continue
            opcode = frame.opcode
            data = frame.data if isinstance(frame.data, bytes) else str(frame.data or "").encode("utf-8")

            if opcode == websocket.ABNF.OPCODE_PING:
                with suppress(Exception):
                    self.ws.pong(data)
                continue
            if opcode == websocket.ABNF.OPCODE_PONG:
                continue
            if opcode == websocket.ABNF.OPCODE_CLOSE:
                _LOGGER.info("remote closed channel endpoint=%s", self.endpoint)
                self._open = False
                return None

            if opcode in _DATA_OPCODES:
                buf = bytearray(data)
            elif opcode == websocket.ABNF.OPCODE_CONT:
                if buf is None:
                    # Continuation without a start frame; nothing to attach it to.
                    continue
                buf.extend(data)
            else:
                continue

            if len(buf) > self.config.read_buffer_bytes:
                self.abort()
                raise WireConnectionError(
                    f"Message exceeds read buffer ({len(buf)} > {self.config.read_buffer_bytes} bytes)"
                )
            if frame.fin:
                return bytes(buf).decode("utf-8", errors="replace")

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def abort(self) -> None:
        """Hard break of the underlying socket (safe from any thread)."""
        self._open = False
        try:
            sock = getattr(self.ws, "sock", None)
        except Exception:
            sock = None
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(Exception):
                sock.close()

    def close(self) -> None:
        if not self._open:
            self.abort()
            return
        self._open = False
        with suppress(Exception):
            self.ws.close(timeout=1.0)
        self.abort()


__all__ = ["Channel"]
