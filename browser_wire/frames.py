"""Wire frames, command kinds and correlation ids.

Both protocols exchange JSON text frames:
- command: {"id", "method", "params"} (+ "sessionId" for CDP target commands)
- reply:   {"id", "result"} or an error-tagged {"id", "type": "error"} / {"id", "error"}
- event:   {"method", "params"} without an id

Correlation ids:
- Every logical step has a small, category-grouped id (CommandKind).
- BiDi sends the logical id as-is; CDP sends logical id + category offset
  (9000 / 9100 / 9200), so one response log can hold both without collisions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Union
from urllib.parse import urlsplit

MALFORMED_REPLY_ID = -1
PROBE_METHOD = "browser_wire.watchdogProbe"


class ProtocolMode(str, Enum):
    CDP = "cdp"
    BIDI = "bidi"

    @classmethod
    def from_endpoint(cls, endpoint: str) -> ProtocolMode:
        """Derive the protocol from the websocket endpoint.

        Chromium exposes CDP under /devtools/(browser|page)/<id>; anything else
        (Firefox's /session, chromedriver's /session/<id>) speaks BiDi.
        """
        path = urlsplit(str(endpoint or "")).path
        if path.startswith("/devtools/"):
            return cls.CDP
        return cls.BIDI


class Category(IntEnum):
    TARGET = 9000
    PAGE = 9100
    DOM = 9200


class CommandKind(IntEnum):
    NEW_SESSION = 1
    END_SESSION = 2
    CLOSE_BROWSER = 3

    LIST_TARGETS = 10
    ACTIVATE_TARGET = 11
    ATTACH_TARGET = 12
    FRAME_TREE = 13

    NAVIGATE_ENABLE = 20
    NAVIGATE = 21
    NAVIGATE_DISABLE = 22

    EVALUATE = 30

    DOCUMENT = 40
    LOCATE = 41

    KEY_INPUT = 50
    KEY_RELEASE = 51

    BOX_MODEL = 60
    POINTER_INPUT = 61
    POINTER_RELEASE = 62

    PRINT = 70

    @property
    def category(self) -> Category:
        return _CATEGORY[self]

    def wire_id(self, mode: ProtocolMode) -> int:
        if mode is ProtocolMode.CDP:
            return int(self) + int(self.category)
        return int(self)

    @classmethod
    def from_wire_id(cls, wire_id: Any) -> CommandKind | None:
        if isinstance(wire_id, bool) or not isinstance(wire_id, int):
            return None
        if wire_id in _BY_VALUE:
            return _BY_VALUE[wire_id]
        base = int(Category.TARGET)
        if not base <= wire_id < base + 300:
            return None
        offset = base + ((wire_id - base) // 100) * 100
        kind = _BY_VALUE.get(wire_id - offset)
        if kind is None or int(kind.category) != offset:
            return None
        return kind


_CATEGORY: dict[CommandKind, Category] = {
    CommandKind.NEW_SESSION: Category.TARGET,
    CommandKind.END_SESSION: Category.TARGET,
    CommandKind.CLOSE_BROWSER: Category.TARGET,
    CommandKind.LIST_TARGETS: Category.TARGET,
    CommandKind.ACTIVATE_TARGET: Category.TARGET,
    CommandKind.ATTACH_TARGET: Category.TARGET,
    CommandKind.FRAME_TREE: Category.DOM,
    CommandKind.NAVIGATE_ENABLE: Category.PAGE,
    CommandKind.NAVIGATE: Category.PAGE,
    CommandKind.NAVIGATE_DISABLE: Category.PAGE,
    CommandKind.EVALUATE: Category.PAGE,
    CommandKind.DOCUMENT: Category.DOM,
    CommandKind.LOCATE: Category.DOM,
    CommandKind.KEY_INPUT: Category.DOM,
    CommandKind.KEY_RELEASE: Category.DOM,
    CommandKind.BOX_MODEL: Category.DOM,
    CommandKind.POINTER_INPUT: Category.DOM,
    CommandKind.POINTER_RELEASE: Category.DOM,
    CommandKind.PRINT: Category.PAGE,
}

_BY_VALUE: dict[int, CommandKind] = {int(k): k for k in CommandKind}


@dataclass
class Command:
    kind: CommandKind
    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"id": self.id, "method": self.method, "params": self.params}
        if self.session_id:
            msg["sessionId"] = self.session_id
        return msg

    def encode(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


# ─────────────────────────────────────────────────────────────────────────────
# Inbound frames (closed tagged union)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Reply:
    id: int
    result: dict[str, Any]
    raw: dict[str, Any]

    @property
    def kind(self) -> CommandKind | None:
        return CommandKind.from_wire_id(self.id)


@dataclass(frozen=True)
class ErrorReply:
    id: int | None
    error: str
    message: str
    raw: dict[str, Any]


@dataclass(frozen=True)
class Event:
    method: str
    params: dict[str, Any]
    session_id: str | None
    raw: dict[str, Any]


@dataclass(frozen=True)
class Malformed:
    text: str
    reason: str


@dataclass(frozen=True)
class Probe:
    reason: str = "watchdog"


Frame = Union[Reply, ErrorReply, Event, Malformed, Probe]


def probe_message(reason: str = "watchdog") -> str:
    return json.dumps({"method": PROBE_METHOD, "params": {"reason": reason}})


def _error_fields(data: dict[str, Any]) -> tuple[str, str]:
    err = data.get("error")
    if isinstance(err, dict):
        # CDP: {"error": {"code": -32000, "message": "..."}}
        code = err.get("code")
        return (str(code) if code is not None else "error", str(err.get("message") or ""))
    # BiDi: {"type": "error", "error": "no such frame", "message": "..."}
    return (str(err or "error"), str(data.get("message") or ""))


def decode_frame(text: str | bytes) -> Frame:
    """Decode one reassembled message. Never raises."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        return Malformed(text=str(text), reason=f"invalid JSON: {exc}")
    if not isinstance(data, dict):
        return Malformed(text=str(text), reason="frame is not a JSON object")

    msg_id = data.get("id")
    if data.get("type") == "error" or "error" in data:
        error, message = _error_fields(data)
        return ErrorReply(id=msg_id if isinstance(msg_id, int) else None, error=error, message=message, raw=data)

    if msg_id is None:
        method = data.get("method")
        if not isinstance(method, str):
            return Malformed(text=str(text), reason="frame has neither id nor method")
        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        if method == PROBE_METHOD:
            return Probe(reason=str(params.get("reason") or "watchdog"))
        session_id = data.get("sessionId")
        return Event(method=method, params=params, session_id=session_id if isinstance(session_id, str) else None, raw=data)

    if isinstance(msg_id, bool) or not isinstance(msg_id, int):
        return Malformed(text=str(text), reason=f"non-integer id: {msg_id!r}")
    result = data.get("result")
    return Reply(id=msg_id, result=result if isinstance(result, dict) else {}, raw=data)


__all__ = [
    "MALFORMED_REPLY_ID",
    "PROBE_METHOD",
    "Category",
    "Command",
    "CommandKind",
    "ErrorReply",
    "Event",
    "Frame",
    "Malformed",
    "Probe",
    "ProtocolMode",
    "Reply",
    "decode_frame",
    "probe_message",
]
