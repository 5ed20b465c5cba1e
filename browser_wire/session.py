"""High-level browser session over one websocket.

WireSession owns the whole stack for one connection:
Channel (transport) -> Router (correlation) -> SessionState (classifier) ->
ProtocolAdapter (CDP or BiDi, picked once from the endpoint).

Usage:
    with WireSession.connect("ws://127.0.0.1:9222/devtools/browser/...") as s:
        s.new_session()
        s.set_active_target(0)
        s.navigate("https://example.com")
        s.locate_elements("a")
        s.click()

Leaving the `with` block releases the browser (end session + close browser)
when `release_on_exit` is set; failures there are logged, never raised.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

from .adapters import ProtocolAdapter, adapter_for
from .config import WireConfig
from .errors import PreconditionError, PrintQueueEmpty, WireError
from .frames import ProtocolMode
from .keys import expand_key_names
from .router import Router
from .state import ElementHandle, SessionState, TargetRecord
from .transport import Channel

_LOGGER = logging.getLogger("browser_wire.session")


class WireSession:
    def __init__(self, channel: Channel, router: Router, adapter: ProtocolAdapter) -> None:
        self.channel = channel
        self.router = router
        self.adapter = adapter

    @classmethod
    def connect(cls, endpoint: str, config: WireConfig | None = None) -> WireSession:
        cfg = config or WireConfig.from_env()
        mode = ProtocolMode.from_endpoint(endpoint)
        channel = Channel.connect(endpoint, cfg)
        return cls.over(channel, mode, cfg)

    @classmethod
    def over(cls, channel: Channel, mode: ProtocolMode, config: WireConfig | None = None) -> WireSession:
        """Build a session on an already-open channel."""
        cfg = config or channel.config
        state = SessionState(
            mode=mode,
            release_on_exit=cfg.release_on_exit,
            max_event_log=cfg.max_event_log,
            max_response_log=cfg.max_response_log,
        )
        router = Router(channel, state, cfg)
        _LOGGER.info("session ready mode=%s endpoint=%s", mode.value, channel.endpoint)
        return cls(channel, router, adapter_for(mode, router))

    # ─────────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.router.state

    @property
    def mode(self) -> ProtocolMode:
        return self.state.mode

    @property
    def usable(self) -> bool:
        return self.router.usable

    # ─────────────────────────────────────────────────────────────────────────
    # Session lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def new_session(self, capabilities: dict[str, Any] | None = None) -> str | None:
        sid = self.adapter.new_session(capabilities)
        _LOGGER.info("new session id=%s", sid)
        return sid

    def end_session(self) -> None:
        self.adapter.end_session()

    def close_browser(self) -> None:
        self.adapter.close_browser()

    def release(self) -> None:
        """End the session and close the browser; skipped with a warning if the channel is gone."""
        if not self.usable:
            _LOGGER.warning("release skipped: channel to %s is closed", self.channel.endpoint)
            return
        try:
            if self.state.session_id:
                self.end_session()
            self.close_browser()
        except WireError as exc:
            _LOGGER.warning("release failed: %s", exc)

    def close(self) -> None:
        """Explicit teardown; later operations raise WireConnectionError."""
        self.router.teardown("closed by caller")

    def __enter__(self) -> WireSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state.release_on_exit:
            self.release()
        with suppress(Exception):
            self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Targets and frames
    # ─────────────────────────────────────────────────────────────────────────

    def list_targets(self) -> list[TargetRecord]:
        return self.adapter.list_targets()

    def resolve_target(self, selector: int | str) -> str:
        """Resolve an index, an exact target id, or a url substring to a target id."""
        if not self.state.targets:
            self.list_targets()
        top = [rec for rec in self.state.targets if rec.parent is None]
        if isinstance(selector, int) and not isinstance(selector, bool):
            if 0 <= selector < len(top):
                return top[selector].id
        else:
            needle = str(selector)
            if self.state.target(needle) is not None:
                return needle
            for rec in top:
                if needle and needle in rec.url:
                    return rec.id
        raise PreconditionError(
            operation="set_active_target",
            reason=f"No target matches {selector!r}",
            suggestion="Call list_targets() and pick an index, id or url fragment",
            details={"targets": [{"id": rec.id, "url": rec.url} for rec in top]},
        )

    def set_active_target(self, selector: int | str) -> str:
        target_id = self.resolve_target(selector)
        return self.adapter.set_active_target(target_id)

    def set_active_frame(self, index: int | None) -> str | int | None:
        return self.adapter.set_active_frame(index)

    # ─────────────────────────────────────────────────────────────────────────
    # Page operations
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, url: str, readiness: str = "complete") -> str:
        _LOGGER.info("navigate url=%s readiness=%s", url, readiness)
        return self.adapter.navigate(url, readiness)

    def evaluate(self, script: str, *, await_promise: bool = True) -> Any:
        return self.adapter.evaluate(script, await_promise=await_promise)

    def locate_elements(self, selector: str) -> list[ElementHandle]:
        elements = self.adapter.locate_elements(selector)
        _LOGGER.debug("locate selector=%s matches=%d", selector, len(elements))
        return elements

    def perform_key_input(self, text: str) -> None:
        self.adapter.perform_key_input(text)

    def type_text(self, text: str) -> None:
        """Like perform_key_input, with "<Enter>"-style names expanded first."""
        self.adapter.perform_key_input(expand_key_names(text))

    def click(self, click_count: int = 1) -> bool:
        return self.adapter.perform_pointer_input(click_count)

    def print_page(self, options: dict[str, Any] | None = None) -> None:
        self.adapter.print_page(options)

    def take_pdf(self) -> str:
        """Dequeue exactly one base64 PDF payload (oldest first)."""
        if not self.state.print_queue:
            raise PrintQueueEmpty("No printed page is waiting; call print_page() first")
        return self.state.print_queue.popleft()


__all__ = ["WireSession"]
