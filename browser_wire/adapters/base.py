from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..errors import PreconditionError, WireConnectionError
from ..frames import Command, CommandKind, ProtocolMode, Reply
from ..router import Router
from ..state import ElementHandle, SessionState, TargetRecord

READINESS = ("none", "interactive", "complete")


class ProtocolAdapter(ABC):
    """One logical operation per browser action, rendered for one protocol.

    Selected once at connect time (see adapters.adapter_for); the session never
    re-tests the protocol mode per call.
    """

    mode: ProtocolMode

    def __init__(self, router: Router) -> None:
        self.router = router

    @property
    def state(self) -> SessionState:
        return self.router.state

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers shared by both protocols
    # ─────────────────────────────────────────────────────────────────────────

    def command(self, kind: CommandKind, method: str, params: dict[str, Any] | None = None) -> Command:
        return Command(kind=kind, id=kind.wire_id(self.mode), method=method, params=params or {})

    def call(self, kind: CommandKind, method: str, params: dict[str, Any] | None = None) -> Reply:
        """Exchange one command; a closed channel is a hard failure here."""
        cmd = self.command(kind, method, params)
        reply = self.router.exchange(cmd)
        if reply is None:
            raise WireConnectionError(f"Channel closed while awaiting {method}")
        return reply

    def call_all(self, commands: list[Command]) -> list[Reply]:
        """Exchange a fixed sequence of commands; a closed channel fails the whole step."""
        replies = self.router.exchange_all(commands)
        if replies and replies[-1] is None:
            raise WireConnectionError(f"Channel closed while awaiting {commands[len(replies) - 1].method}")
        return [r for r in replies if r is not None]

    def require_target(self, operation: str) -> str:
        target = self.state.active_target
        if not target:
            raise PreconditionError(
                operation=operation,
                reason="No active target",
                suggestion="Call list_targets()/set_active_target() first",
            )
        return target

    def require_element(self, operation: str) -> ElementHandle:
        element = self.state.current_element
        if element is None:
            raise PreconditionError(
                operation=operation,
                reason="No element has been located",
                suggestion="Call locate_elements(selector) first",
            )
        return element

    @staticmethod
    def check_readiness(readiness: str) -> str:
        value = str(readiness or "complete").strip().lower()
        if value not in READINESS:
            raise PreconditionError(
                operation="navigate",
                reason=f"Unknown readiness {readiness!r}",
                suggestion=f"Use one of {', '.join(READINESS)}",
            )
        return value

    # ─────────────────────────────────────────────────────────────────────────
    # Logical operations
    # ─────────────────────────────────────────────────────────────────────────

    @abstractmethod
    def new_session(self, capabilities: dict[str, Any] | None = None) -> str | None:
        """Start the protocol-level session and return its identifier."""

    @abstractmethod
    def end_session(self) -> None:
        """End the protocol-level session."""

    @abstractmethod
    def close_browser(self) -> None:
        """Ask the browser to exit. The channel usually closes right after."""

    @abstractmethod
    def list_targets(self) -> list[TargetRecord]:
        """Refresh and return the reconciled target collection."""

    @abstractmethod
    def set_active_target(self, target_id: str) -> str:
        """Make `target_id` the target for subsequent page operations."""

    @abstractmethod
    def set_active_frame(self, index: int | None) -> str | int | None:
        """Scope element location to the index-th iframe (None resets to the top document)."""

    @abstractmethod
    def navigate(self, url: str, readiness: str = "complete") -> str:
        """Navigate the active target."""

    @abstractmethod
    def evaluate(self, script: str, *, await_promise: bool = True) -> Any:
        """Evaluate a script expression and return its JSON-like value."""

    @abstractmethod
    def locate_elements(self, selector: str) -> list[ElementHandle]:
        """Run a CSS query; the first match becomes the current element."""

    @abstractmethod
    def perform_key_input(self, text: str) -> None:
        """Type `text` into the focused element (WebDriver key codepoints allowed)."""

    @abstractmethod
    def perform_pointer_input(self, click_count: int = 1) -> bool:
        """Click the current element `click_count` times; False if skipped."""

    @abstractmethod
    def print_page(self, options: dict[str, Any] | None = None) -> None:
        """Print the active target to PDF; the payload lands in the print queue."""


__all__ = ["READINESS", "ProtocolAdapter"]
