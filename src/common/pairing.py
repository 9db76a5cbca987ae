from __future__ import annotations

import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M


DATA_URL_PREFIX = "data:image/png;base64,"


def render_pairing_artifact(payload: str) -> str:
    """Render a pairing payload into a PNG data URL a browser can display.

    Raises ValueError for an empty payload; image errors propagate as-is.
    """
    if not payload:
        raise ValueError("pairing payload is empty")
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=4)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")
