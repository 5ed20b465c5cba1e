from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from browser_wire import main as main_mod
from browser_wire.frames import ProtocolMode


@pytest.fixture
def cdp_session(make_session: Any, monkeypatch: pytest.MonkeyPatch) -> Any:
    session, channel = make_session(ProtocolMode.CDP)
    monkeypatch.setattr(main_mod.WireSession, "connect", classmethod(lambda cls, endpoint, config=None: session))
    return session, channel


def test_cli_chains_operations_and_releases(cdp_session: Any, browser: Any, tmp_path: Path, capsys: Any) -> None:
    _session, channel = cdp_session
    pdf = tmp_path / "page.pdf"
    code = main_mod.main(
        [
            "https://example.com/",
            "--endpoint",
            "ws://127.0.0.1:9222/devtools/browser/abc",
            "--click",
            "a",
            "--type",
            "hi<Enter>",
            "--eval",
            "1 + 1",
            "--pdf",
            str(pdf),
        ]
    )
    assert code == 0
    assert pdf.read_bytes().startswith(b"%PDF")
    assert browser.typed == "hi"
    assert capsys.readouterr().out.strip() == "2"
    methods = channel.methods()
    assert methods[0] == "Target.attachToBrowserTarget"
    assert "Input.dispatchMouseEvent" in methods
    assert methods[-2:] == ["Target.detachFromTarget", "Browser.close"]


def test_cli_reports_protocol_errors(cdp_session: Any, browser: Any) -> None:
    browser.errors["Page.navigate"] = {"error": {"code": -32000, "message": "Cannot navigate to invalid URL"}}
    code = main_mod.main(["notaurl", "--endpoint", "ws://127.0.0.1:9222/devtools/browser/abc"])
    assert code == 1


def test_cli_launches_browser_without_endpoint(cdp_session: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    class DummyLauncher:
        def __init__(self, config: Any) -> None:
            calls.append(f"init:{config.kind}")

        def launch(self) -> str:
            calls.append("launch")
            return "ws://127.0.0.1:9222/devtools/browser/abc"

        def stop(self) -> bool:
            calls.append("stop")
            return True

    monkeypatch.setattr(main_mod, "BrowserLauncher", DummyLauncher)
    assert main_mod.main(["https://example.com/", "--browser", "chromium"]) == 0
    assert calls == ["init:chromium", "launch", "stop"]
