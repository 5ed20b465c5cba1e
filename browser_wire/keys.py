"""WebDriver special-key codepoints.

Callers embed special keys in plain strings using the WebDriver private-use
codepoints (U+E000..U+E05D), e.g. "ab\\ue003" types "a", "b", Backspace.
BiDi understands these codepoints natively; CDP needs the key name, DOM code
and Windows virtual key code, looked up here.
"""

from __future__ import annotations

from dataclasses import dataclass

CONTROL_FIRST = 0xE000
CONTROL_LAST = 0xE05D


@dataclass(frozen=True)
class KeySpec:
    key: str
    code: str
    key_code: int


_TABLE: dict[int, KeySpec] = {
    0xE000: KeySpec("Unidentified", "", 0),
    0xE001: KeySpec("Cancel", "Abort", 3),
    0xE002: KeySpec("Help", "Help", 6),
    0xE003: KeySpec("Backspace", "Backspace", 8),
    0xE004: KeySpec("Tab", "Tab", 9),
    0xE005: KeySpec("Clear", "NumpadClear", 12),
    0xE006: KeySpec("Enter", "NumpadEnter", 13),
    0xE007: KeySpec("Enter", "Enter", 13),
    0xE008: KeySpec("Shift", "ShiftLeft", 16),
    0xE009: KeySpec("Control", "ControlLeft", 17),
    0xE00A: KeySpec("Alt", "AltLeft", 18),
    0xE00B: KeySpec("Pause", "Pause", 19),
    0xE00C: KeySpec("Escape", "Escape", 27),
    0xE00D: KeySpec(" ", "Space", 32),
    0xE00E: KeySpec("PageUp", "PageUp", 33),
    0xE00F: KeySpec("PageDown", "PageDown", 34),
    0xE010: KeySpec("End", "End", 35),
    0xE011: KeySpec("Home", "Home", 36),
    0xE012: KeySpec("ArrowLeft", "ArrowLeft", 37),
    0xE013: KeySpec("ArrowUp", "ArrowUp", 38),
    0xE014: KeySpec("ArrowRight", "ArrowRight", 39),
    0xE015: KeySpec("ArrowDown", "ArrowDown", 40),
    0xE016: KeySpec("Insert", "Insert", 45),
    0xE017: KeySpec("Delete", "Delete", 46),
    0xE018: KeySpec(";", "Semicolon", 186),
    0xE019: KeySpec("=", "Equal", 187),
    0xE01A: KeySpec("0", "Numpad0", 96),
    0xE01B: KeySpec("1", "Numpad1", 97),
    0xE01C: KeySpec("2", "Numpad2", 98),
    0xE01D: KeySpec("3", "Numpad3", 99),
    0xE01E: KeySpec("4", "Numpad4", 100),
    0xE01F: KeySpec("5", "Numpad5", 101),
    0xE020: KeySpec("6", "Numpad6", 102),
    0xE021: KeySpec("7", "Numpad7", 103),
    0xE022: KeySpec("8", "Numpad8", 104),
    0xE023: KeySpec("9", "Numpad9", 105),
    0xE024: KeySpec("*", "NumpadMultiply", 106),
    0xE025: KeySpec("+", "NumpadAdd", 107),
    0xE026: KeySpec(",", "NumpadComma", 108),
    0xE027: KeySpec("-", "NumpadSubtract", 109),
    0xE028: KeySpec(".", "NumpadDecimal", 110),
    0xE029: KeySpec("/", "NumpadDivide", 111),
    0xE031: KeySpec("F1", "F1", 112),
    0xE032: KeySpec("F2", "F2", 113),
    0xE033: KeySpec("F3", "F3", 114),
    0xE034: KeySpec("F4", "F4", 115),
    0xE035: KeySpec("F5", "F5", 116),
    0xE036: KeySpec("F6", "F6", 117),
    0xE037: KeySpec("F7", "F7", 118),
    0xE038: KeySpec("F8", "F8", 119),
    0xE039: KeySpec("F9", "F9", 120),
    0xE03A: KeySpec("F10", "F10", 121),
    0xE03B: KeySpec("F11", "F11", 122),
    0xE03C: KeySpec("F12", "F12", 123),
    0xE03D: KeySpec("Meta", "MetaLeft", 91),
    0xE040: KeySpec("ZenkakuHankaku", "Lang1", 0),
}

# Friendly names for callers building input strings (main.py uses these).
KEYS: dict[str, str] = {
    "Backspace": "\ue003",
    "Tab": "\ue004",
    "Enter": "\ue007",
    "Shift": "\ue008",
    "Control": "\ue009",
    "Alt": "\ue00a",
    "Escape": "\ue00c",
    "PageUp": "\ue00e",
    "PageDown": "\ue00f",
    "End": "\ue010",
    "Home": "\ue011",
    "ArrowLeft": "\ue012",
    "ArrowUp": "\ue013",
    "ArrowRight": "\ue014",
    "ArrowDown": "\ue015",
    "Delete": "\ue017",
}


def is_control(char: str) -> bool:
    """True only for the WebDriver key block; other private-use or astral text is typed as-is."""
    return len(char) == 1 and CONTROL_FIRST <= ord(char) <= CONTROL_LAST


def lookup(char: str) -> KeySpec:
    spec = _TABLE.get(ord(char))
    if spec is None:
        return KeySpec("Unidentified", "", 0)
    return spec


def expand_key_names(text: str) -> str:
    """Replace "<Name>" tokens (e.g. "<Enter>") with their WebDriver codepoints."""
    out = text
    for name, codepoint in KEYS.items():
        out = out.replace(f"<{name}>", codepoint)
    return out


__all__ = ["CONTROL_FIRST", "CONTROL_LAST", "KEYS", "KeySpec", "expand_key_names", "is_control", "lookup"]
