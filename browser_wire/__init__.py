"""Browser automation over raw CDP / WebDriver BiDi websockets."""

from __future__ import annotations

from .config import WireConfig
from .errors import (
    EvaluationError,
    ExchangeInProgress,
    LaunchError,
    PreconditionError,
    PrintQueueEmpty,
    ProtocolError,
    SendError,
    WireConnectionError,
    WireError,
)
from .frames import ProtocolMode
from .session import WireSession

__version__ = "0.1.0"

__all__ = [
    "EvaluationError",
    "ExchangeInProgress",
    "LaunchError",
    "PreconditionError",
    "PrintQueueEmpty",
    "ProtocolError",
    "ProtocolMode",
    "SendError",
    "WireConfig",
    "WireConnectionError",
    "WireError",
    "WireSession",
]
