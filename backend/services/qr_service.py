import io
import logging
from typing import Optional

import cv2
import numpy as np
import qrcode
from PIL import Image

logger = logging.getLogger(__name__)

_detector = cv2.QRCodeDetector()


def render(text: str, box_size: int = 10, border: int = 4) -> Image.Image:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").get_image()


def render_png(text: str) -> bytes:
    buf = io.BytesIO()
    render(text).save(buf, format="PNG")
    return buf.getvalue()


def _as_array(image):
    if isinstance(image, Image.Image):
        return cv2.cvtColor(np.asarray(image.convert("RGB")), cv2.COLOR_RGB2BGR)
    return image


def read(image) -> Optional[str]:
    if image is None:
        return None
    text, _, _ = _detector.detectAndDecode(_as_array(image))
    return text or None


def read_bytes(data: bytes) -> Optional[str]:
    frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        logger.info("Uploaded data is not a readable image")
        return None
    return read(frame)

