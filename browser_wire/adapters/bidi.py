"""WebDriver BiDi rendering of the logical operations.

Every operation is a single named-method command scoped to a browsing
context (the active iframe context when one is selected, the active
top-level context otherwise). Input goes through `input.performActions`
as one atomic action list followed by `input.releaseActions`.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import EvaluationError, PreconditionError
from ..frames import CommandKind, ProtocolMode
from ..state import ElementHandle, TargetRecord, select_frame, select_target
from .base import ProtocolAdapter

_LOGGER = logging.getLogger("browser_wire.adapters.bidi")


def deserialize_remote_value(remote: Any) -> Any:
    """Convert a BiDi RemoteValue into plain Python data (best-effort)."""
    if not isinstance(remote, dict):
        return remote
    kind = remote.get("type")
    value = remote.get("value")
    if kind in {"undefined", "null"}:
        return None
    if kind in {"string", "boolean"}:
        return value
    if kind == "number":
        if value == "NaN":
            return float("nan")
        if value == "Infinity":
            return float("inf")
        if value == "-Infinity":
            return float("-inf")
        if value == "-0":
            return -0.0
        return value
    if kind == "bigint":
        try:
            return int(value)
        except (TypeError, ValueError):
            return value
    if kind in {"array", "set"} and isinstance(value, list):
        return [deserialize_remote_value(v) for v in value]
    if kind in {"object", "map"} and isinstance(value, list):
        out: dict[str, Any] = {}
        for pair in value:
            if not (isinstance(pair, list) and len(pair) == 2):
                continue
            key = pair[0] if isinstance(pair[0], str) else deserialize_remote_value(pair[0])
            out[str(key)] = deserialize_remote_value(pair[1])
        return out
    if kind == "date":
        return value
    # Nodes, windows, functions...: hand back the remote reference.
    return remote


class BidiAdapter(ProtocolAdapter):
    mode = ProtocolMode.BIDI

    def _context(self, operation: str) -> str:
        frame = self.state.active_frame
        if isinstance(frame, str) and frame:
            return frame
        return self.require_target(operation)

    # ── session ──────────────────────────────────────────────────────────────

    def new_session(self, capabilities: dict[str, Any] | None = None) -> str | None:
        self.call(CommandKind.NEW_SESSION, "session.new", {"capabilities": {"alwaysMatch": dict(capabilities or {})}})
        return self.state.session_id

    def end_session(self) -> None:
        self.call(CommandKind.END_SESSION, "session.end")

    def close_browser(self) -> None:
        reply = self.router.exchange(self.command(CommandKind.CLOSE_BROWSER, "browser.close"))
        if reply is None:
            _LOGGER.info("channel closed during browser.close")

    # ── targets ──────────────────────────────────────────────────────────────

    def list_targets(self) -> list[TargetRecord]:
        self.call(CommandKind.LIST_TARGETS, "browsingContext.getTree")
        return list(self.state.targets)

    def set_active_target(self, target_id: str) -> str:
        select_target(self.state, target_id)
        self.call(CommandKind.ACTIVATE_TARGET, "browsingContext.activate", {"context": target_id})
        return target_id

    def set_active_frame(self, index: int | None) -> str | int | None:
        if index is None:
            select_frame(self.state, None)
            return None
        parent = self.require_target("set_active_frame")
        self.list_targets()
        children = self.state.children_of(parent)
        if not 0 <= int(index) < len(children):
            raise PreconditionError(
                operation="set_active_frame",
                reason=f"Frame index {index} out of range ({len(children)} iframe(s))",
                suggestion="Pick an index below the number of child contexts",
                details={"available": [c.id for c in children]},
            )
        frame_id = children[int(index)].id
        select_frame(self.state, frame_id)
        return frame_id

    # ── page ─────────────────────────────────────────────────────────────────

    def navigate(self, url: str, readiness: str = "complete") -> str:
        wait = self.check_readiness(readiness)
        context = self.require_target("navigate")
        reply = self.call(
            CommandKind.NAVIGATE,
            "browsingContext.navigate",
            {"context": context, "url": url, "wait": wait},
        )
        return str(reply.result.get("url") or url)

    def evaluate(self, script: str, *, await_promise: bool = True) -> Any:
        context = self._context("evaluate")
        reply = self.call(
            CommandKind.EVALUATE,
            "script.evaluate",
            {
                "expression": script,
                "target": {"context": context},
                "awaitPromise": bool(await_promise),
                "resultOwnership": "none",
            },
        )
        result = reply.result
        if result.get("type") == "exception":
            details = result.get("exceptionDetails") if isinstance(result.get("exceptionDetails"), dict) else {}
            raise EvaluationError(str(details.get("text") or "Script threw an exception"))
        return deserialize_remote_value(result.get("result"))

    def locate_elements(self, selector: str) -> list[ElementHandle]:
        context = self._context("locate_elements")
        self.call(
            CommandKind.LOCATE,
            "browsingContext.locateNodes",
            {"context": context, "locator": {"type": "css", "value": selector}},
        )
        return list(self.state.elements)

    def print_page(self, options: dict[str, Any] | None = None) -> None:
        context = self.require_target("print_page")
        params: dict[str, Any] = {"context": context, "background": True}
        params.update(options or {})
        self.call(CommandKind.PRINT, "browsingContext.print", params)

    # ── input ────────────────────────────────────────────────────────────────

    def _perform(self, context: str, source: dict[str, Any], kind: CommandKind, release: CommandKind) -> None:
        self.call_all(
            [
                self.command(kind, "input.performActions", {"context": context, "actions": [source]}),
                self.command(release, "input.releaseActions", {"context": context}),
            ]
        )

    def perform_key_input(self, text: str) -> None:
        if not text:
            return
        context = self._context("perform_key_input")
        actions: list[dict[str, Any]] = []
        for char in text:
            actions.append({"type": "keyDown", "value": char})
            actions.append({"type": "keyUp", "value": char})
        source = {"type": "key", "id": "keyboard", "actions": actions}
        self._perform(context, source, CommandKind.KEY_INPUT, CommandKind.KEY_RELEASE)

    def perform_pointer_input(self, click_count: int = 1) -> bool:
        element = self.require_element("perform_pointer_input")
        context = self._context("perform_pointer_input")
        actions: list[dict[str, Any]] = [
            {
                "type": "pointerMove",
                "x": 0,
                "y": 0,
                "origin": {"type": "element", "element": {"sharedId": element.handle}},
            }
        ]
        for _ in range(max(1, int(click_count))):
            actions.append({"type": "pointerDown", "button": 0})
            actions.append({"type": "pointerUp", "button": 0})
        source = {"type": "pointer", "id": "mouse", "parameters": {"pointerType": "mouse"}, "actions": actions}
        self._perform(context, source, CommandKind.POINTER_INPUT, CommandKind.POINTER_RELEASE)
        return True


__all__ = ["BidiAdapter", "deserialize_remote_value"]
