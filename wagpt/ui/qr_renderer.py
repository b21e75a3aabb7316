import sys
from typing import Optional, TextIO

import qrcode


class QRRenderer:
    """Prints WhatsApp pairing payloads as terminal QR codes."""

    def __init__(self, out: Optional[TextIO] = None, invert: bool = True):
        self.out = out
        self.invert = invert

    def render(self, payload: str) -> None:
        """Render a pairing payload so it can be scanned from the terminal."""
        qr = qrcode.QRCode(border=1)
        qr.add_data(payload)
        qr.make(fit=True)
        qr.print_ascii(out=self.out or sys.stdout, invert=self.invert)
