"""
QR Rendering
============
Turns a BOLT11 payment request into a PNG the chat can show as a photo.
"""

import io

import qrcode
from qrcode.exceptions import DataOverflowError

from ln_imagegen.errors import PaymentSetupError


class QrRenderer:
    """Renders payment requests as QR code PNGs"""

    def __init__(self, box_size: int = 10, border: int = 4):
        self.box_size = box_size
        self.border = border

    def render(self, payment_request: str) -> io.BytesIO:
        if not payment_request:
            raise PaymentSetupError("Empty payment request")
        try:
            qr = qrcode.QRCode(
                error_correction=qrcode.constants.ERROR_CORRECT_M,
                box_size=self.box_size,
                border=self.border,
            )
            qr.add_data(payment_request.upper())
            qr.make(fit=True)
            buffer = io.BytesIO()
            qr.make_image().save(buffer, format="PNG")
        except (ValueError, OSError, DataOverflowError) as e:
            raise PaymentSetupError(f"QR rendering failed: {e}") from e
        buffer.seek(0)
        buffer.name = "invoice.png"
        return buffer
