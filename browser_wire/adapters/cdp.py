"""Chrome DevTools Protocol rendering of the logical operations.

CDP multiplexes targets over one browser-level socket: once a page target is
attached (flatten mode), every Page/Runtime/DOM/Input command carries that
target's sessionId. Target/Browser commands never do. An active target with
no cached sessionId is attached on demand before its first page command.

Per-operation notes:
- navigate issues Page.navigate twice (unfocused windows can ignore the
  first one) and then waits for Page.frameStoppedLoading, bounded by the
  channel watchdog.
- iframes are DOM nodes: the pierced document tree is flattened in document
  order and the nth "#document" below the root is the nth iframe.
- typing sends one down/up pair per character: printable characters as a
  "char" event, WebDriver key codepoints as "rawKeyDown" via keys.lookup().
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import EvaluationError, PreconditionError
from ..frames import Category, Command, CommandKind, ProtocolMode
from ..keys import is_control, lookup
from ..state import ElementHandle, TargetRecord, expect_attach, select_frame, select_target
from .base import ProtocolAdapter

_LOGGER = logging.getLogger("browser_wire.adapters.cdp")

FRAME_STOPPED_LOADING = "Page.frameStoppedLoading"


def flatten_document(node: dict[str, Any]) -> list[dict[str, Any]]:
    """Depth-first list of DOM nodes, descending into iframe content documents."""
    out: list[dict[str, Any]] = []

    def _walk(n: Any) -> None:
        if not isinstance(n, dict):
            return
        out.append(n)
        content = n.get("contentDocument")
        if isinstance(content, dict):
            _walk(content)
        for child in n.get("children") or []:
            _walk(child)

    _walk(node)
    return out


def quad_center(quad: Any) -> tuple[float, float] | None:
    if not isinstance(quad, list) or len(quad) < 8:
        return None
    try:
        xs = [float(quad[i]) for i in (0, 2, 4, 6)]
        ys = [float(quad[i]) for i in (1, 3, 5, 7)]
    except (TypeError, ValueError):
        return None
    return sum(xs) / 4.0, sum(ys) / 4.0


class CdpAdapter(ProtocolAdapter):
    mode = ProtocolMode.CDP

    def command(self, kind: CommandKind, method: str, params: dict[str, Any] | None = None) -> Command:
        cmd = super().command(kind, method, params)
        if kind.category is not Category.TARGET:
            cmd.session_id = self.target_session()
        return cmd

    def target_session(self) -> str | None:
        """sessionId of the active target, attaching first when none is cached."""
        target = self.state.active_target
        if target is not None and self.state.target_session_id is None:
            # e.g. after list_targets() fell back from a vanished target
            _LOGGER.info("no session for active target %s; attaching", target)
            self.attach(target)
        return self.state.target_session_id

    def attach(self, target_id: str) -> None:
        expect_attach(self.state, target_id)
        self.call(CommandKind.ATTACH_TARGET, "Target.attachToTarget", {"targetId": target_id, "flatten": True})

    # ── session ──────────────────────────────────────────────────────────────

    def new_session(self, capabilities: dict[str, Any] | None = None) -> str | None:  # noqa: ARG002
        self.call(CommandKind.NEW_SESSION, "Target.attachToBrowserTarget")
        return self.state.session_id

    def end_session(self) -> None:
        sid = self.state.session_id
        if not sid:
            return
        self.call(CommandKind.END_SESSION, "Target.detachFromTarget", {"sessionId": sid})

    def close_browser(self) -> None:
        reply = self.router.exchange(self.command(CommandKind.CLOSE_BROWSER, "Browser.close"))
        if reply is None:
            _LOGGER.info("channel closed during Browser.close")

    # ── targets ──────────────────────────────────────────────────────────────

    def list_targets(self) -> list[TargetRecord]:
        self.call(CommandKind.LIST_TARGETS, "Target.getTargets")
        return list(self.state.targets)

    def set_active_target(self, target_id: str) -> str:
        select_target(self.state, target_id)
        self.call(CommandKind.ACTIVATE_TARGET, "Target.activateTarget", {"targetId": target_id})
        if target_id not in self.state.target_sessions:
            self.attach(target_id)
        else:
            _LOGGER.debug("reusing target session for %s", target_id)
        return target_id

    def set_active_frame(self, index: int | None) -> str | int | None:
        if index is None:
            select_frame(self.state, None)
            return None
        self.require_target("set_active_frame")
        reply = self.call(CommandKind.FRAME_TREE, "DOM.getDocument", {"depth": -1, "pierce": True})
        root = reply.result.get("root")
        nodes = flatten_document(root) if isinstance(root, dict) else []
        documents = [n for n in nodes[1:] if n.get("nodeName") == "#document" and isinstance(n.get("nodeId"), int)]
        if not 0 <= int(index) < len(documents):
            raise PreconditionError(
                operation="set_active_frame",
                reason=f"Frame index {index} out of range ({len(documents)} iframe document(s))",
                suggestion="Pick an index below the number of iframes on the page",
            )
        node_id = int(documents[int(index)]["nodeId"])
        select_frame(self.state, node_id)
        return node_id

    # ── page ─────────────────────────────────────────────────────────────────

    def navigate(self, url: str, readiness: str = "complete") -> str:
        wait = self.check_readiness(readiness)
        self.require_target("navigate")
        mark = self.router.event_mark()
        *_, reply = self.call_all(
            [
                self.command(CommandKind.NAVIGATE_ENABLE, "Page.enable"),
                self.command(CommandKind.NAVIGATE, "Page.navigate", {"url": url}),
                self.command(CommandKind.NAVIGATE, "Page.navigate", {"url": url}),
            ]
        )
        error_text = reply.result.get("errorText")
        if error_text:
            _LOGGER.warning("navigate url=%s errorText=%s", url, error_text)
        if wait != "none":
            event = self.router.wait_for_event(FRAME_STOPPED_LOADING, since_seq=mark)
            if event is None:
                _LOGGER.info("no %s before watchdog; continuing", FRAME_STOPPED_LOADING)
        self.call(CommandKind.NAVIGATE_DISABLE, "Page.disable")
        # A navigation replaces the document, so the iframe node id is stale.
        select_frame(self.state, None)
        return url

    def evaluate(self, script: str, *, await_promise: bool = True) -> Any:
        self.require_target("evaluate")
        reply = self.call(
            CommandKind.EVALUATE,
            "Runtime.evaluate",
            {"expression": script, "returnByValue": True, "awaitPromise": bool(await_promise)},
        )
        details = reply.result.get("exceptionDetails")
        if isinstance(details, dict):
            exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
            raise EvaluationError(str(exc.get("description") or details.get("text") or "Script threw an exception"))
        value = reply.result.get("result")
        if not isinstance(value, dict):
            return None
        # CDP returns undefined as {"type":"undefined"} with no "value" field.
        if value.get("type") == "undefined":
            return None
        if value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value")

    def locate_elements(self, selector: str) -> list[ElementHandle]:
        self.require_target("locate_elements")
        frame = self.state.active_frame
        if isinstance(frame, int):
            root_id = frame
        else:
            reply = self.call(CommandKind.DOCUMENT, "DOM.getDocument", {"depth": 0})
            root = reply.result.get("root") if isinstance(reply.result.get("root"), dict) else {}
            root_id = root.get("nodeId")
            if not isinstance(root_id, int):
                raise PreconditionError(
                    operation="locate_elements",
                    reason="DOM.getDocument returned no root node",
                    suggestion="Navigate to a regular page and retry",
                )
        self.call(CommandKind.LOCATE, "DOM.querySelectorAll", {"nodeId": root_id, "selector": selector})
        return list(self.state.elements)

    def print_page(self, options: dict[str, Any] | None = None) -> None:
        self.require_target("print_page")
        params: dict[str, Any] = {"printBackground": True}
        params.update(options or {})
        self.call(CommandKind.PRINT, "Page.printToPDF", params)

    # ── input ────────────────────────────────────────────────────────────────

    @staticmethod
    def key_events(char: str) -> list[dict[str, Any]]:
        """The down/up pair for one character."""
        if is_control(char):
            spec = lookup(char)
            base = {"key": spec.key, "code": spec.code, "windowsVirtualKeyCode": spec.key_code}
            down = {"type": "rawKeyDown", **base}
            if spec.key == "Enter":
                down["text"] = "\r"
            return [down, {"type": "keyUp", **base}]
        return [{"type": "char", "text": char, "key": char}, {"type": "keyUp", "key": char}]

    def perform_key_input(self, text: str) -> None:
        if not text:
            return
        self.require_target("perform_key_input")
        for char in text:
            for params in self.key_events(char):
                self.call(CommandKind.KEY_INPUT, "Input.dispatchKeyEvent", params)

    def perform_pointer_input(self, click_count: int = 1) -> bool:
        element = self.require_element("perform_pointer_input")
        reply = self.call(CommandKind.BOX_MODEL, "DOM.getBoxModel", {"nodeId": element.handle})
        model = reply.result.get("model") if isinstance(reply.result.get("model"), dict) else {}
        point = quad_center(model.get("content"))
        if point is None:
            _LOGGER.warning("click skipped: no box model for node %s", element.handle)
            return False
        x, y = point
        for i in range(max(1, int(click_count))):
            for event_type in ("mousePressed", "mouseReleased"):
                self.call(
                    CommandKind.POINTER_INPUT,
                    "Input.dispatchMouseEvent",
                    {"type": event_type, "x": x, "y": y, "button": "left", "clickCount": i + 1},
                )
        return True


__all__ = ["FRAME_STOPPED_LOADING", "CdpAdapter", "flatten_document", "quad_center"]
