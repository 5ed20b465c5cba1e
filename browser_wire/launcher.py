"""Browser process launcher.

Starts Chromium (CDP) or Firefox (BiDi) with remote debugging enabled and
returns the websocket endpoint, discovered through the marker file the browser
writes into its profile directory:

- Chromium: `DevToolsActivePort` (line 1: port, line 2: browser ws path)
- Firefox:  `WebDriverBiDiServer.json` ({"ws_host": ..., "ws_port": ...})
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

from .errors import LaunchError

_LOGGER = logging.getLogger("browser_wire.launcher")

CHROMIUM = "chromium"
FIREFOX = "firefox"

CHROMIUM_MARKER = "DevToolsActivePort"
FIREFOX_MARKER = "WebDriverBiDiServer.json"

DEFAULT_BINARY_CANDIDATES: dict[str, list[str]] = {
    CHROMIUM: [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/local/bin/chromium",
        "/opt/chromium/chromium",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/opt/google/chrome/chrome",
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        # Snap builds ignore --user-data-dir, so the marker lands elsewhere.
        "/snap/bin/chromium",
    ],
    FIREFOX: [
        "/usr/bin/firefox",
        "/usr/local/bin/firefox",
        "/opt/firefox/firefox",
        "/Applications/Firefox.app/Contents/MacOS/firefox",
        "C:\\Program Files\\Mozilla Firefox\\firefox.exe",
    ],
}

_PATH_FALLBACK = {CHROMIUM: "google-chrome", FIREFOX: "firefox"}


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def normalize_kind(raw: str | None) -> str:
    kind = (raw or "").strip().lower()
    if kind in {"firefox", "ff", "gecko", "bidi"}:
        return FIREFOX
    return CHROMIUM


@dataclass
class LaunchConfig:
    kind: str = CHROMIUM
    binary_path: str = ""
    profile_path: str = "~/.cache/browser-wire/profile"
    port: int = 0
    headless: bool = True
    start_url: str = "about:blank"
    extra_flags: list[str] = field(default_factory=list)
    timeout: float = 15.0

    @classmethod
    def detect_binary(cls, kind: str) -> str:
        env_path = os.environ.get("WIRE_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES.get(kind, []):
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        return _PATH_FALLBACK[kind]

    @classmethod
    def from_env(cls, kind: str | None = None) -> LaunchConfig:
        kind = normalize_kind(kind or os.environ.get("WIRE_BROWSER_KIND"))
        flags_raw = os.environ.get("WIRE_BROWSER_FLAGS", "")
        return cls(
            kind=kind,
            binary_path=cls.detect_binary(kind),
            profile_path=expand_path(os.environ.get("WIRE_BROWSER_PROFILE", f"~/.cache/browser-wire/{kind}-profile")),
            port=int(os.environ.get("WIRE_BROWSER_PORT", "0")),
            headless=os.environ.get("WIRE_HEADLESS", "1") != "0",
            extra_flags=[flag.strip() for flag in flags_raw.split(",") if flag.strip()],
            timeout=float(os.environ.get("WIRE_LAUNCH_TIMEOUT", "15")),
        )

    @property
    def marker_path(self) -> Path:
        name = FIREFOX_MARKER if self.kind == FIREFOX else CHROMIUM_MARKER
        return Path(expand_path(self.profile_path)) / name


# ─────────────────────────────────────────────────────────────────────────────
# Marker files
# ─────────────────────────────────────────────────────────────────────────────


def parse_devtools_active_port(text: str) -> str | None:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    try:
        port = int(lines[0])
    except ValueError:
        return None
    path = lines[1] if lines[1].startswith("/") else f"/{lines[1]}"
    return f"ws://127.0.0.1:{port}{path}"


def parse_bidi_server_json(text: str) -> str | None:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    host = data.get("ws_host") or "127.0.0.1"
    port = data.get("ws_port")
    if isinstance(port, bool) or not isinstance(port, int) or port <= 0:
        return None
    return f"ws://{host}:{port}/session"


def read_marker(config: LaunchConfig) -> str | None:
    """Endpoint from the marker file, or None while it is missing or half-written."""
    path = config.marker_path
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None
    if config.kind == FIREFOX:
        return parse_bidi_server_json(text)
    return parse_devtools_active_port(text)


# ─────────────────────────────────────────────────────────────────────────────
# Launcher
# ─────────────────────────────────────────────────────────────────────────────


class BrowserLauncher:
    def __init__(self, config: LaunchConfig | None = None) -> None:
        self.config = config or LaunchConfig.from_env()
        self.process: subprocess.Popen | None = None

    def build_launch_command(self) -> list[str]:
        cfg = self.config
        profile = expand_path(cfg.profile_path)
        if cfg.kind == FIREFOX:
            flags = [
                f"--remote-debugging-port={cfg.port}",
                "--profile",
                profile,
                "--no-remote",
            ]
            if cfg.headless:
                flags.append("--headless")
        else:
            flags = [
                f"--remote-debugging-port={cfg.port}",
                f"--user-data-dir={profile}",
                "--remote-allow-origins=*",
                "--no-first-run",
                "--no-default-browser-check",
            ]
            if cfg.headless:
                flags.append("--headless=new")
        flags.extend(cfg.extra_flags)
        return [cfg.binary_path, *flags, cfg.start_url]

    def launch(self) -> str:
        """Start the browser and return its websocket endpoint."""
        cfg = self.config
        Path(expand_path(cfg.profile_path)).mkdir(parents=True, exist_ok=True)
        # A marker left by a previous run would point at a dead port.
        with contextlib.suppress(FileNotFoundError):
            cfg.marker_path.unlink()

        cmd = self.build_launch_command()
        _LOGGER.info("launching %s", " ".join(cmd))
        try:
            self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            raise LaunchError(f"Could not start {cfg.binary_path}: {exc}") from exc
        return self.wait_for_endpoint()

    def wait_for_endpoint(self) -> str:
        deadline = time.time() + max(0.1, float(self.config.timeout))
        while time.time() < deadline:
            proc = self.process
            if proc is not None and proc.poll() is not None:
                raise LaunchError(f"Browser exited with code {proc.returncode} before writing its marker file")
            endpoint = read_marker(self.config)
            if endpoint:
                _LOGGER.info("browser endpoint=%s", endpoint)
                return endpoint
            time.sleep(0.1)
        self.stop()
        raise LaunchError(f"{self.config.marker_path} did not appear within {self.config.timeout}s")

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned browser process."""
        proc = self.process
        if proc is None:
            return False
        if proc.poll() is not None:
            return True
        with contextlib.suppress(Exception):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
        except subprocess.TimeoutExpired:
            with contextlib.suppress(Exception):
                proc.kill()
        return True


__all__ = [
    "CHROMIUM",
    "FIREFOX",
    "BrowserLauncher",
    "LaunchConfig",
    "parse_bidi_server_json",
    "parse_devtools_active_port",
    "read_marker",
]
