from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class WireError(Exception):
    pass


class WireConnectionError(WireError, ConnectionError):
    """The channel is gone (or never opened); the session must be recreated."""


class SendError(WireConnectionError):
    pass


class ProtocolError(WireError):
    """An error-tagged reply arrived. The session has already been torn down."""

    def __init__(self, message: str, *, frame: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.frame = frame or {}


class PrintQueueEmpty(WireError):
    pass


class EvaluationError(WireError):
    """The page script threw; the session itself is still usable."""


class LaunchError(WireError):
    pass


class ExchangeInProgress(WireError):
    """A second exchange was attempted while one is still outstanding."""


@dataclass
class PreconditionError(WireError):
    """Structured error for operations that cannot run in the current state."""

    operation: str
    reason: str
    suggestion: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.operation}] {self.reason}. Suggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "operation": self.operation,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


__all__ = [
    "EvaluationError",
    "ExchangeInProgress",
    "LaunchError",
    "PreconditionError",
    "PrintQueueEmpty",
    "ProtocolError",
    "SendError",
    "WireConnectionError",
    "WireError",
]
