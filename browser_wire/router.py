"""Command/reply correlation over one Channel.

exchange() sends one command and drains the channel until the reply with the
same id arrives. It never short-circuits on unrelated frames: every frame is
decoded and folded into the session state first.

Error replies:
- The remote engine abandons the socket shortly after any error reply, so the
  session is torn down as soon as one is observed (session id cleared, channel
  closed) and ProtocolError is raised. There is no resume path.

Deadlines:
- exchange() and wait_for_event() each hold one deadline (command_timeout) for
  the whole call, checked after every frame. A page that keeps emitting
  unrelated events never resets it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from .config import WireConfig
from .errors import ExchangeInProgress, ProtocolError, WireConnectionError
from .frames import Command, CommandKind, ErrorReply, Event, Frame, Probe, Reply, decode_frame
from .state import PRINT_PLACEHOLDER, EventRecord, SessionState, apply
from .transport import Channel

_LOGGER = logging.getLogger("browser_wire.router")


def _preview(text: str, limit: int = 300) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"


class Router:
    def __init__(self, channel: Channel, state: SessionState, config: WireConfig | None = None) -> None:
        self.channel = channel
        self.state = state
        self.config = config or channel.config
        self._lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def usable(self) -> bool:
        return not self.state.torn_down and self.channel.is_open

    def teardown(self, reason: str) -> None:
        """Unconditional teardown: clear the session id and close the channel."""
        if not self.state.torn_down:
            _LOGGER.warning("session teardown: %s", reason)
        self.state.torn_down = True
        self.state.session_id = None
        self.state.target_sessions.clear()
        self.channel.close()

    def _ensure_usable(self) -> None:
        if self.state.torn_down:
            raise WireConnectionError("Session was torn down; create a new one")
        if not self.channel.is_open:
            raise WireConnectionError(f"Channel to {self.channel.endpoint} is closed")

    @contextmanager
    def _exclusive(self, what: str) -> Iterator[None]:
        # One outstanding command per session: a second caller is refused, not queued.
        if not self._lock.acquire(blocking=False):
            raise ExchangeInProgress(f"{what} refused: another exchange is in progress on this session")
        try:
            yield
        finally:
            self._lock.release()

    def _observe(self, text: str) -> Frame:
        frame = decode_frame(text)
        if isinstance(frame, Reply) and frame.kind is CommandKind.PRINT:
            _LOGGER.debug("recv id=%s %s (%d chars)", frame.id, PRINT_PLACEHOLDER, len(text))
        else:
            _LOGGER.debug("recv %s", _preview(text))
        apply(self.state, frame)
        if isinstance(frame, ErrorReply):
            self.teardown(f"error reply id={frame.id} error={frame.error} message={frame.message}")
            raise ProtocolError(f"{frame.error}: {frame.message}".strip(": "), frame=frame.raw)
        return frame

    def _deadline(self) -> float:
        return time.monotonic() + float(self.config.command_timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Exchange
    # ─────────────────────────────────────────────────────────────────────────

    def exchange_observed(self, command: Command) -> tuple[Reply | None, list[Frame]]:
        """Send `command`, drain until its reply; also return every frame observed."""
        with self._exclusive(command.method):
            self._ensure_usable()
            text = command.encode()
            _LOGGER.debug("send %s", _preview(text))
            self.channel.send(text)

            observed: list[Frame] = []
            deadline = self._deadline()
            while True:
                raw = self.channel.receive()
                if raw is None:
                    _LOGGER.warning("channel closed while awaiting reply id=%s method=%s", command.id, command.method)
                    return None, observed
                frame = self._observe(raw)
                observed.append(frame)
                if isinstance(frame, Reply) and frame.id == command.id:
                    return frame, observed
                if time.monotonic() >= deadline:
                    # The reply may still arrive later; one outstanding command is the limit.
                    self.teardown(f"no reply to id={command.id} method={command.method}")
                    raise WireConnectionError(f"{command.method} timed out after {self.config.command_timeout}s")

    def exchange(self, command: Command) -> Reply | None:
        reply, _ = self.exchange_observed(command)
        return reply

    def exchange_all(self, commands: list[Command]) -> list[Reply | None]:
        """Run exchanges in order; stops early if the channel closes."""
        replies: list[Reply | None] = []
        for cmd in commands:
            reply = self.exchange(cmd)
            replies.append(reply)
            if reply is None:
                break
        return replies

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def event_mark(self) -> int:
        """Sequence number that the next logged event will receive."""
        return self.state.event_seq

    def wait_for_event(self, method: str, since_seq: int = 0, window: float | None = None) -> EventRecord | None:
        """Block until `method` is logged (at or after `since_seq`), the watchdog fires or the deadline passes."""
        with self._exclusive(f"wait for {method}"):
            found = self.state.find_event(method, since_seq)
            if found is not None:
                return found
            self._ensure_usable()
            deadline = self._deadline()
            while True:
                raw = self.channel.receive(window)
                if raw is None:
                    return None
                frame = self._observe(raw)
                if isinstance(frame, Probe):
                    _LOGGER.debug("no %s event before watchdog (%s)", method, frame.reason)
                    return None
                if isinstance(frame, Event) and frame.method == method:
                    return self.state.find_event(method, since_seq)
                if time.monotonic() >= deadline:
                    _LOGGER.info("no %s event within %ss; giving up", method, self.config.command_timeout)
                    return None


__all__ = ["Router"]
