from __future__ import annotations

from ..frames import ProtocolMode
from ..router import Router
from .base import ProtocolAdapter
from .bidi import BidiAdapter
from .cdp import CdpAdapter

_ADAPTERS: dict[ProtocolMode, type[ProtocolAdapter]] = {
    ProtocolMode.CDP: CdpAdapter,
    ProtocolMode.BIDI: BidiAdapter,
}


def adapter_for(mode: ProtocolMode, router: Router) -> ProtocolAdapter:
    return _ADAPTERS[mode](router)


__all__ = ["BidiAdapter", "CdpAdapter", "ProtocolAdapter", "adapter_for"]
