"""
QR Code rendering for payment links.

Produces a data URL the client can embed directly, so a payment can be
completed from a phone.
"""

import base64
import io

import qrcode
import qrcode.constants
import qrcode.exceptions
from qrcode.image.svg import SvgPathImage
from structlog import get_logger

logger = get_logger(__name__)


def payment_qr_data_url(payment_url: str) -> str:
    """
    Render a payment URL as an SVG QR code data URL.

    Returns an empty string when the URL is empty or rendering fails;
    the payment session is still usable without the QR code.
    """
    if not payment_url:
        return ""

    try:
        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
            image_factory=SvgPathImage,
        )
        qr.add_data(payment_url)
        qr.make(fit=True)
        image = qr.make_image()

        buffer = io.BytesIO()
        image.save(buffer)
    except (ValueError, qrcode.exceptions.DataOverflowError) as exc:
        logger.error("qr_code_generation_failed", error=str(exc))
        return ""

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
