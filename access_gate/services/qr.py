import io

import qrcode


def share_qr_png(url: str) -> bytes:
    """PNG bytes of a QR code pointing at a share URL."""
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()
