"""Session state store and response classifier.

`apply(state, frame)` is the only writer of SessionState. The router calls it
for every frame it observes, matching or not, so derived fields (session id,
targets, located elements, print queue) never go stale.

Dispatch:
- events (no id) go to the event log; CDP detach events also drop the cached
  target session id;
- replies are routed by CommandKind to one apply function per side-effecting
  kind, everything else is logged verbatim;
- malformed payloads are logged under MALFORMED_REPLY_ID so correlation
  matching is unaffected.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .frames import (
    MALFORMED_REPLY_ID,
    CommandKind,
    ErrorReply,
    Event,
    Frame,
    Malformed,
    Probe,
    ProtocolMode,
    Reply,
)

_LOGGER = logging.getLogger("browser_wire.state")

PRINT_PLACEHOLDER = "<pdf payload moved to print queue>"


@dataclass
class TargetRecord:
    id: str
    url: str = ""
    parent: str | None = None
    kind: str = "page"


@dataclass(frozen=True)
class ElementHandle:
    """A located element: BiDi sharedId (str) or CDP nodeId (int)."""

    handle: str | int
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class EventRecord:
    seq: int
    method: str
    params: dict[str, Any]
    session_id: str | None = None


@dataclass
class SessionState:
    mode: ProtocolMode
    session_id: str | None = None
    active_target: str | None = None
    targets: list[TargetRecord] = field(default_factory=list)
    # CDP only: targetId -> flattened target session id.
    target_sessions: dict[str, str] = field(default_factory=dict)
    # Pending targetId for the next ATTACH_TARGET reply.
    attaching_target: str | None = None
    # BiDi: child browsing context id. CDP: iframe "#document" node id.
    active_frame: str | int | None = None
    elements: list[ElementHandle] = field(default_factory=list)
    current_element: ElementHandle | None = None
    responses: list[dict[str, Any]] = field(default_factory=list)
    events: list[EventRecord] = field(default_factory=list)
    event_seq: int = 0
    print_queue: deque[str] = field(default_factory=deque)
    release_on_exit: bool = True
    torn_down: bool = False
    max_event_log: int = 2000
    max_response_log: int = 2000

    @property
    def target_session_id(self) -> str | None:
        if self.active_target is None:
            return None
        return self.target_sessions.get(self.active_target)

    def target(self, target_id: str | None) -> TargetRecord | None:
        for rec in self.targets:
            if rec.id == target_id:
                return rec
        return None

    def children_of(self, target_id: str | None) -> list[TargetRecord]:
        return [rec for rec in self.targets if rec.parent == target_id and target_id is not None]

    def log_response(self, entry: dict[str, Any]) -> None:
        self.responses.append(entry)
        if len(self.responses) > self.max_response_log:
            del self.responses[: len(self.responses) - self.max_response_log]

    def log_event(self, event: Event) -> EventRecord:
        record = EventRecord(seq=self.event_seq, method=event.method, params=event.params, session_id=event.session_id)
        self.event_seq += 1
        self.events.append(record)
        if len(self.events) > self.max_event_log:
            # Drop oldest events to avoid unbounded growth in long sessions.
            del self.events[: len(self.events) - self.max_event_log]
        return record

    def find_event(self, method: str, since_seq: int = 0) -> EventRecord | None:
        for rec in self.events:
            if rec.seq >= since_seq and rec.method == method:
                return rec
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Target reconciliation
# ─────────────────────────────────────────────────────────────────────────────


def reconcile_targets(previous: list[TargetRecord], incoming: Iterable[TargetRecord]) -> list[TargetRecord]:
    """Set-difference merge keyed by id.

    Removals are applied first, then additions. Retained entries keep their
    relative order (with refreshed url/parent), new entries are appended in
    snapshot order. Duplicate ids in the snapshot collapse to the first one.
    """
    latest: dict[str, TargetRecord] = {}
    for rec in incoming:
        if rec.id and rec.id not in latest:
            latest[rec.id] = rec

    previous_ids = {rec.id for rec in previous}
    removed = previous_ids - latest.keys()
    added = [tid for tid in latest if tid not in previous_ids]

    merged: list[TargetRecord] = []
    seen: set[str] = set()
    for rec in previous:
        if rec.id in removed or rec.id in seen:
            continue
        seen.add(rec.id)
        fresh = latest[rec.id]
        merged.append(TargetRecord(id=rec.id, url=fresh.url, parent=fresh.parent, kind=fresh.kind))
    for tid in added:
        merged.append(latest[tid])
    return merged


def _bidi_contexts(contexts: Any, parent: str | None, out: list[TargetRecord]) -> None:
    if not isinstance(contexts, list):
        return
    for ctx in contexts:
        if not isinstance(ctx, dict):
            continue
        cid = ctx.get("context")
        if not isinstance(cid, str) or not cid:
            continue
        out.append(
            TargetRecord(
                id=cid,
                url=str(ctx.get("url") or ""),
                parent=ctx.get("parent") if isinstance(ctx.get("parent"), str) else parent,
                kind="page" if parent is None else "iframe",
            )
        )
        _bidi_contexts(ctx.get("children"), cid, out)


def decode_targets(result: dict[str, Any]) -> list[TargetRecord]:
    """Decode a ListTargets reply from either protocol into flat records."""
    out: list[TargetRecord] = []
    if isinstance(result.get("contexts"), list):
        _bidi_contexts(result["contexts"], None, out)
        return out
    infos = result.get("targetInfos")
    if not isinstance(infos, list):
        return out
    for info in infos:
        if not isinstance(info, dict) or info.get("type") != "page":
            continue
        tid = info.get("targetId")
        if not isinstance(tid, str) or not tid:
            continue
        out.append(TargetRecord(id=tid, url=str(info.get("url") or ""), parent=None, kind="page"))
    return out


def decode_elements(result: dict[str, Any]) -> list[ElementHandle]:
    nodes = result.get("nodes")
    if isinstance(nodes, list):
        return [
            ElementHandle(handle=n["sharedId"], raw=n)
            for n in nodes
            if isinstance(n, dict) and isinstance(n.get("sharedId"), str)
        ]
    node_ids = result.get("nodeIds")
    if isinstance(node_ids, list):
        # nodeId 0 means "no node" in CDP.
        return [ElementHandle(handle=n) for n in node_ids if isinstance(n, int) and n > 0]
    return []


# ─────────────────────────────────────────────────────────────────────────────
# Apply functions (one per side-effecting command kind)
# ─────────────────────────────────────────────────────────────────────────────


def _apply_new_session(state: SessionState, reply: Reply) -> dict[str, Any]:
    sid = reply.result.get("sessionId")
    if isinstance(sid, str) and sid:
        state.session_id = sid
    return reply.raw


def _apply_end_session(state: SessionState, reply: Reply) -> dict[str, Any]:
    state.session_id = None
    state.target_sessions.clear()
    return reply.raw


def _apply_attach(state: SessionState, reply: Reply) -> dict[str, Any]:
    sid = reply.result.get("sessionId")
    target_id = state.attaching_target or state.active_target
    if isinstance(sid, str) and sid and target_id:
        state.target_sessions[target_id] = sid
    state.attaching_target = None
    return reply.raw


def _apply_list_targets(state: SessionState, reply: Reply) -> dict[str, Any]:
    state.targets = reconcile_targets(state.targets, decode_targets(reply.result))
    live = {rec.id for rec in state.targets}
    for tid in [t for t in state.target_sessions if t not in live]:
        state.target_sessions.pop(tid, None)
    if state.active_target not in live:
        top = [rec for rec in state.targets if rec.parent is None]
        fallback = top[0].id if top else None
        if state.active_target is not None:
            _LOGGER.info("active target %s vanished; falling back to %s", state.active_target, fallback)
        state.active_target = fallback
        state.active_frame = None
        state.elements = []
        state.current_element = None
    return reply.raw


def _apply_locate(state: SessionState, reply: Reply) -> dict[str, Any]:
    state.elements = decode_elements(reply.result)
    state.current_element = state.elements[0] if state.elements else None
    return reply.raw


def _apply_print(state: SessionState, reply: Reply) -> dict[str, Any]:
    data = reply.result.get("data")
    if not isinstance(data, str):
        return reply.raw
    state.print_queue.append(data)
    scrubbed = dict(reply.raw)
    result = dict(reply.result)
    result["data"] = PRINT_PLACEHOLDER
    scrubbed["result"] = result
    return scrubbed


_APPLIERS: dict[CommandKind, Callable[[SessionState, Reply], dict[str, Any]]] = {
    CommandKind.NEW_SESSION: _apply_new_session,
    CommandKind.END_SESSION: _apply_end_session,
    CommandKind.ATTACH_TARGET: _apply_attach,
    CommandKind.LIST_TARGETS: _apply_list_targets,
    CommandKind.LOCATE: _apply_locate,
    CommandKind.PRINT: _apply_print,
}


# ─────────────────────────────────────────────────────────────────────────────
# Caller selections (the only writes that do not come from a frame)
# ─────────────────────────────────────────────────────────────────────────────


def select_target(state: SessionState, target_id: str) -> SessionState:
    if state.target(target_id) is None:
        raise KeyError(target_id)
    if state.active_target != target_id:
        state.active_frame = None
        state.elements = []
        state.current_element = None
    state.active_target = target_id
    return state


def select_frame(state: SessionState, frame: str | int | None) -> SessionState:
    if state.active_frame != frame:
        state.elements = []
        state.current_element = None
    state.active_frame = frame
    return state


def expect_attach(state: SessionState, target_id: str) -> SessionState:
    """Remember which target the next ATTACH_TARGET reply belongs to."""
    state.attaching_target = target_id
    return state


def _apply_event(state: SessionState, event: Event) -> None:
    state.log_event(event)
    if event.method == "Target.detachedFromTarget":
        sid = event.params.get("sessionId")
        for tid, cached in list(state.target_sessions.items()):
            if cached == sid:
                state.target_sessions.pop(tid, None)


def apply(state: SessionState, frame: Frame) -> SessionState:
    """Fold one inbound frame into the session state and return it."""
    if isinstance(frame, Probe):
        return state
    if isinstance(frame, Event):
        _apply_event(state, frame)
        return state
    if isinstance(frame, Malformed):
        _LOGGER.warning("malformed reply recorded: %s", frame.reason)
        state.log_response({"id": MALFORMED_REPLY_ID, "malformed": frame.text[:2000], "reason": frame.reason})
        return state
    if isinstance(frame, ErrorReply):
        state.log_response(frame.raw)
        return state

    kind = frame.kind
    applier = _APPLIERS.get(kind) if kind is not None else None
    entry = applier(state, frame) if applier is not None else frame.raw
    state.log_response(entry)
    return state


__all__ = [
    "PRINT_PLACEHOLDER",
    "ElementHandle",
    "EventRecord",
    "SessionState",
    "TargetRecord",
    "apply",
    "decode_elements",
    "decode_targets",
    "expect_attach",
    "reconcile_targets",
    "select_frame",
    "select_target",
]
