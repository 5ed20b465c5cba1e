from __future__ import annotations

import base64
import json
from collections import deque
from collections.abc import Callable
from typing import Any

import pytest

from browser_wire.config import WireConfig
from browser_wire.frames import ProtocolMode, probe_message
from browser_wire.keys import is_control
from browser_wire.session import WireSession

HANGUP = "__hangup__"
PDF_BYTES = b"%PDF-1.4 fake"

CDP_ENDPOINT = "ws://127.0.0.1:9222/devtools/browser/abc"
BIDI_ENDPOINT = "ws://127.0.0.1:9222/session"


def fast_config(**overrides: Any) -> WireConfig:
    values: dict[str, Any] = {"command_timeout": 1.0, "watchdog_window": 0.01, "poll_interval": 0.01}
    values.update(overrides)
    return WireConfig(**values)


class FakeChannel:
    """Channel double: every send() is answered synchronously by `responder`.

    An empty inbox on an open channel yields a watchdog probe, the same thing
    the real channel produces once its window elapses without frames.
    """

    def __init__(
        self,
        responder: Callable[[dict[str, Any]], list[Any]] | None = None,
        *,
        endpoint: str = BIDI_ENDPOINT,
        config: WireConfig | None = None,
    ) -> None:
        self.responder = responder
        self.endpoint = endpoint
        self.config = config or fast_config()
        self.inbox: deque[Any] = deque()
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self.closed_calls = 0

    @property
    def is_open(self) -> bool:
        return self.open

    def push(self, *frames: Any) -> None:
        self.inbox.extend(frames)

    def hangup(self) -> None:
        """Queue a remote close after whatever is already pushed."""
        self.inbox.append(HANGUP)

    def send(self, text: str) -> None:
        msg = json.loads(text)
        self.sent.append(msg)
        if self.responder is not None:
            self.inbox.extend(self.responder(msg))

    def receive(self, window: float | None = None) -> str | None:  # noqa: ARG002
        if self.inbox:
            item = self.inbox.popleft()
            if item == HANGUP:
                self.open = False
                return None
            return item if isinstance(item, str) else json.dumps(item)
        if not self.open:
            return None
        return probe_message("watchdog")

    def close(self) -> None:
        self.closed_calls += 1
        self.open = False

    def methods(self) -> list[str]:
        return [m["method"] for m in self.sent]


class FakeBrowser:
    """Scripted remote end for both protocols, with a tiny text-input model."""

    def __init__(self) -> None:
        self.text: list[str] = []
        self.attach_count = 0
        self.contexts: list[dict[str, Any]] = [
            {"context": "ctx-1", "url": "https://example.com/", "children": [
                {"context": "frame-1", "url": "https://example.com/ad", "children": []},
                {"context": "frame-2", "url": "https://example.com/login", "children": []},
            ]},
            {"context": "ctx-2", "url": "https://other.example/", "children": []},
        ]
        self.target_infos: list[dict[str, Any]] = [
            {"targetId": "T1", "type": "page", "url": "https://example.com/"},
            {"targetId": "SW", "type": "service_worker", "url": "https://example.com/sw.js"},
            {"targetId": "T2", "type": "page", "url": "https://other.example/"},
        ]
        self.document_tree: dict[str, Any] = {
            "nodeId": 1,
            "nodeName": "#document",
            "children": [
                {"nodeId": 2, "nodeName": "HTML", "children": [
                    {"nodeId": 3, "nodeName": "IFRAME", "contentDocument": {
                        "nodeId": 30, "nodeName": "#document", "children": [],
                    }},
                    {"nodeId": 4, "nodeName": "IFRAME", "contentDocument": {
                        "nodeId": 40, "nodeName": "#document", "children": [
                            {"nodeId": 41, "nodeName": "IFRAME", "contentDocument": {
                                "nodeId": 50, "nodeName": "#document",
                            }},
                        ],
                    }},
                ]},
            ],
        }
        self.handlers: dict[str, Any] = {
            # WebDriver BiDi
            "session.new": {"sessionId": "bidi-session", "capabilities": {}},
            "session.end": {},
            "browser.close": {},
            "browsingContext.getTree": lambda p: {"contexts": self.contexts},
            "browsingContext.activate": {},
            "browsingContext.navigate": lambda p: {"navigation": "nav-1", "url": p["url"]},
            "script.evaluate": {"type": "success", "realm": "r1", "result": {"type": "number", "value": 2}},
            "browsingContext.locateNodes": {"nodes": [
                {"type": "node", "sharedId": "e1"},
                {"type": "node", "sharedId": "e2"},
            ]},
            "input.performActions": {},
            "input.releaseActions": {},
            "browsingContext.print": {"data": base64.b64encode(PDF_BYTES).decode()},
            # Chrome DevTools Protocol
            "Target.attachToBrowserTarget": {"sessionId": "browser-session"},
            "Target.detachFromTarget": {},
            "Browser.close": {},
            "Target.getTargets": lambda p: {"targetInfos": self.target_infos},
            "Target.activateTarget": {},
            "Target.attachToTarget": self._attach,
            "Page.enable": {},
            "Page.disable": {},
            "Page.navigate": {"frameId": "F1", "loaderId": "L1"},
            "Runtime.evaluate": {"result": {"type": "number", "value": 2}},
            "DOM.getDocument": self._document,
            "DOM.querySelectorAll": {"nodeIds": [7, 8]},
            "DOM.getBoxModel": {"model": {"content": [10, 20, 30, 20, 30, 40, 10, 40]}},
            "Input.dispatchKeyEvent": {},
            "Input.dispatchMouseEvent": {},
            "Page.printToPDF": {"data": base64.b64encode(PDF_BYTES).decode()},
        }
        self.after: dict[str, list[Any]] = {
            "Page.navigate": [{"method": "Page.frameStoppedLoading", "params": {"frameId": "F1"}}],
        }
        self.errors: dict[str, dict[str, Any]] = {}
        self.hangups: set[str] = set()

    @property
    def typed(self) -> str:
        return "".join(self.text)

    def _attach(self, params: dict[str, Any]) -> dict[str, Any]:
        self.attach_count += 1
        return {"sessionId": f"S-{params['targetId']}-{self.attach_count}"}

    def _document(self, params: dict[str, Any]) -> dict[str, Any]:
        if params.get("depth") == -1:
            return {"root": self.document_tree}
        return {"root": {"nodeId": 1, "nodeName": "#document"}}

    def _type(self, msg: dict[str, Any]) -> None:
        method = msg["method"]
        params = msg.get("params") or {}
        if method == "input.performActions":
            for source in params.get("actions") or []:
                if source.get("type") != "key":
                    continue
                for action in source.get("actions") or []:
                    if action.get("type") != "keyDown":
                        continue
                    value = action.get("value", "")
                    if value == "\ue003":
                        if self.text:
                            self.text.pop()
                    elif value and not is_control(value):
                        self.text.append(value)
        elif method == "Input.dispatchKeyEvent":
            if params.get("type") == "char":
                self.text.append(params.get("text", ""))
            elif params.get("type") == "rawKeyDown" and params.get("key") == "Backspace" and self.text:
                self.text.pop()

    def __call__(self, msg: dict[str, Any]) -> list[Any]:
        method = msg["method"]
        if method in self.hangups:
            return [HANGUP]
        if method in self.errors:
            return [{"id": msg["id"], **self.errors[method]}]
        handler = self.handlers.get(method, {})
        params = msg.get("params") or {}
        result = handler(params) if callable(handler) else handler
        self._type(msg)
        return [{"id": msg["id"], "result": result}, *self.after.get(method, [])]


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def make_session(browser: FakeBrowser) -> Callable[..., tuple[WireSession, FakeChannel]]:
    def _make(mode: ProtocolMode, **config: Any) -> tuple[WireSession, FakeChannel]:
        endpoint = CDP_ENDPOINT if mode is ProtocolMode.CDP else BIDI_ENDPOINT
        channel = FakeChannel(browser, endpoint=endpoint, config=fast_config(**config))
        return WireSession.over(channel, mode), channel

    return _make


@pytest.fixture
def fake_channel() -> Callable[..., FakeChannel]:
    def _make(responder: Callable[[dict[str, Any]], list[Any]] | None = None, **config: Any) -> FakeChannel:
        return FakeChannel(responder, config=fast_config(**config))

    return _make
