from __future__ import annotations

import json

import pytest

from browser_wire.frames import MALFORMED_REPLY_ID, CommandKind, ProtocolMode, decode_frame
from browser_wire.state import (
    PRINT_PLACEHOLDER,
    ElementHandle,
    SessionState,
    TargetRecord,
    apply,
    decode_targets,
    reconcile_targets,
    select_frame,
    select_target,
)


def _ids(records: list[TargetRecord]) -> list[str]:
    return [rec.id for rec in records]


def _reply(kind: CommandKind, mode: ProtocolMode, result: dict) -> str:
    return json.dumps({"id": kind.wire_id(mode), "result": result})


# ─── Reconciliation ──────────────────────────────────────────────────────────


def test_reconcile_removes_then_appends_keeping_retained_order() -> None:
    previous = [TargetRecord("a"), TargetRecord("b"), TargetRecord("c")]
    incoming = [TargetRecord("d"), TargetRecord("c", url="https://c2"), TargetRecord("a")]
    merged = reconcile_targets(previous, incoming)
    assert _ids(merged) == ["a", "c", "d"]
    assert merged[1].url == "https://c2"


def test_reconcile_collapses_duplicate_ids() -> None:
    merged = reconcile_targets([], [TargetRecord("a", url="1"), TargetRecord("a", url="2"), TargetRecord("b")])
    assert _ids(merged) == ["a", "b"]
    assert merged[0].url == "1"


def test_reconcile_is_idempotent() -> None:
    snapshot = [TargetRecord("x"), TargetRecord("y")]
    once = reconcile_targets([TargetRecord("y"), TargetRecord("z")], snapshot)
    twice = reconcile_targets(once, snapshot)
    assert _ids(once) == _ids(twice) == ["y", "x"]


def test_decode_targets_flattens_bidi_tree_with_parents() -> None:
    records = decode_targets(
        {
            "contexts": [
                {"context": "top", "url": "https://a", "children": [{"context": "child", "url": "https://b"}]},
            ]
        }
    )
    assert [(r.id, r.parent, r.kind) for r in records] == [("top", None, "page"), ("child", "top", "iframe")]


def test_decode_targets_keeps_only_cdp_pages() -> None:
    records = decode_targets(
        {
            "targetInfos": [
                {"targetId": "P", "type": "page", "url": "https://a"},
                {"targetId": "W", "type": "worker", "url": "https://a/w.js"},
            ]
        }
    )
    assert _ids(records) == ["P"]


def test_list_targets_reply_falls_back_when_active_target_vanishes() -> None:
    state = SessionState(mode=ProtocolMode.CDP)
    state.targets = [TargetRecord("T1"), TargetRecord("T2")]
    state.active_target = "T1"
    state.target_sessions = {"T1": "S1", "T2": "S2"}
    state.elements = [ElementHandle(7), ElementHandle(8)]
    state.current_element = state.elements[0]

    apply(state, decode_frame(_reply(CommandKind.LIST_TARGETS, ProtocolMode.CDP, {
        "targetInfos": [{"targetId": "T2", "type": "page", "url": ""}],
    })))

    assert _ids(state.targets) == ["T2"]
    assert state.active_target == "T2"
    assert state.target_sessions == {"T2": "S2"}
    assert state.elements == []
    assert state.current_element is None


def test_list_targets_reply_with_no_pages_clears_active_target() -> None:
    state = SessionState(mode=ProtocolMode.BIDI, active_target="gone", targets=[TargetRecord("gone")])
    apply(state, decode_frame(_reply(CommandKind.LIST_TARGETS, ProtocolMode.BIDI, {"contexts": []})))
    assert state.targets == []
    assert state.active_target is None


# ─── Classifier ──────────────────────────────────────────────────────────────


def test_new_session_and_end_session_replies_track_session_id() -> None:
    state = SessionState(mode=ProtocolMode.BIDI)
    apply(state, decode_frame(_reply(CommandKind.NEW_SESSION, ProtocolMode.BIDI, {"sessionId": "s1"})))
    assert state.session_id == "s1"
    apply(state, decode_frame(_reply(CommandKind.END_SESSION, ProtocolMode.BIDI, {})))
    assert state.session_id is None


def test_locate_replaces_elements_wholesale() -> None:
    state = SessionState(mode=ProtocolMode.CDP)
    apply(state, decode_frame(_reply(CommandKind.LOCATE, ProtocolMode.CDP, {"nodeIds": [3, 4, 0]})))
    assert [e.handle for e in state.elements] == [3, 4]
    assert state.current_element is not None and state.current_element.handle == 3

    apply(state, decode_frame(_reply(CommandKind.LOCATE, ProtocolMode.CDP, {"nodeIds": [9]})))
    assert [e.handle for e in state.elements] == [9]

    apply(state, decode_frame(_reply(CommandKind.LOCATE, ProtocolMode.CDP, {"nodeIds": []})))
    assert state.elements == []
    assert state.current_element is None


def test_print_payload_goes_to_queue_and_log_is_scrubbed() -> None:
    state = SessionState(mode=ProtocolMode.BIDI)
    apply(state, decode_frame(_reply(CommandKind.PRINT, ProtocolMode.BIDI, {"data": "QUJD"})))
    assert list(state.print_queue) == ["QUJD"]
    assert state.responses[-1]["result"]["data"] == PRINT_PLACEHOLDER
    assert "QUJD" not in repr(state.responses)


def test_malformed_payload_is_logged_under_sentinel_id() -> None:
    state = SessionState(mode=ProtocolMode.BIDI)
    apply(state, decode_frame("{truncated"))
    assert state.responses[-1]["id"] == MALFORMED_REPLY_ID
    assert state.session_id is None


def test_unrecognised_reply_is_logged_verbatim() -> None:
    state = SessionState(mode=ProtocolMode.BIDI)
    apply(state, decode_frame('{"id": 555, "result": {"x": 1}}'))
    assert state.responses == [{"id": 555, "result": {"x": 1}}]


def test_events_get_increasing_sequence_numbers_and_bounded_log() -> None:
    state = SessionState(mode=ProtocolMode.CDP, max_event_log=2)
    for name in ("A", "B", "C"):
        apply(state, decode_frame(f'{{"method": "{name}", "params": {{}}}}'))
    assert [(e.seq, e.method) for e in state.events] == [(1, "B"), (2, "C")]
    assert state.find_event("C", since_seq=2) is not None
    assert state.find_event("B", since_seq=2) is None


def test_detached_event_drops_cached_target_session() -> None:
    state = SessionState(mode=ProtocolMode.CDP, target_sessions={"T1": "S1", "T2": "S2"})
    apply(state, decode_frame('{"method": "Target.detachedFromTarget", "params": {"sessionId": "S1"}}'))
    assert state.target_sessions == {"T2": "S2"}


def test_attach_reply_is_cached_for_pending_target() -> None:
    state = SessionState(mode=ProtocolMode.CDP, active_target="T1")
    state.attaching_target = "T2"
    apply(state, decode_frame(_reply(CommandKind.ATTACH_TARGET, ProtocolMode.CDP, {"sessionId": "S9"})))
    assert state.target_sessions == {"T2": "S9"}
    assert state.attaching_target is None


# ─── Caller selections ───────────────────────────────────────────────────────


def test_select_target_rejects_unknown_ids() -> None:
    state = SessionState(mode=ProtocolMode.BIDI, targets=[TargetRecord("a")])
    with pytest.raises(KeyError):
        select_target(state, "b")


def test_switching_target_or_frame_clears_located_elements() -> None:
    state = SessionState(mode=ProtocolMode.CDP, targets=[TargetRecord("a"), TargetRecord("b")], active_target="a")
    apply(state, decode_frame(_reply(CommandKind.LOCATE, ProtocolMode.CDP, {"nodeIds": [5]})))
    select_target(state, "a")
    assert state.current_element is not None

    select_frame(state, 40)
    assert state.current_element is None
    assert state.active_frame == 40

    select_target(state, "b")
    assert state.active_frame is None
