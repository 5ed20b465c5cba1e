from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path

from .errors import WireError
from .session import WireSession

_LOGGER = logging.getLogger("browser_wire.pdf")


class PdfWriter:
    """Persists printed pages: one queued payload per write()."""

    def __init__(self, session: WireSession) -> None:
        self.session = session

    def write(self, path: str | Path) -> Path:
        payload = self.session.take_pdf()
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WireError(f"Print payload is not valid base64: {exc}") from exc
        out = Path(path).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(data)
        _LOGGER.info("pdf written path=%s bytes=%d", out, len(data))
        return out


__all__ = ["PdfWriter"]
