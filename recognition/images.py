"""Decode captured images posted by the kiosk page or the enrollment form."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

import cv2
import numpy as np

from . import config
from .errors import InvalidFrame

logger = logging.getLogger(__name__)


def extract_image_bytes(uploaded: Any = None, raw_image: Any = None) -> Optional[bytes]:
    """Return raw image bytes from an uploaded file or a base64 / data URL string.

    Returns ``None`` when nothing was supplied. Oversized or malformed payloads
    raise :class:`InvalidFrame`.
    """

    max_size = config.max_upload_bytes()

    if uploaded is not None:
        if uploaded.size > max_size:
            raise InvalidFrame(
                f"Image size {uploaded.size} bytes exceeds maximum allowed size of {max_size} bytes."
            )
        return uploaded.read()

    if not raw_image:
        return None

    if isinstance(raw_image, (bytes, bytearray)):
        if len(raw_image) > max_size:
            raise InvalidFrame("Image payload exceeds maximum allowed size.")
        return bytes(raw_image)

    if not isinstance(raw_image, str):
        raise InvalidFrame("Unsupported image payload supplied.")

    image_data = raw_image.strip()
    if not image_data:
        return None
    if image_data.startswith("data:"):
        _, _, image_data = image_data.partition(",")

    # base64 inflates by roughly 4/3
    if len(image_data) > max_size * 1.4:
        raise InvalidFrame("Image payload exceeds maximum allowed size.")

    try:
        decoded = base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidFrame("Invalid base64-encoded image payload supplied.") from exc
    if len(decoded) > max_size:
        raise InvalidFrame(
            f"Decoded image size {len(decoded)} bytes exceeds maximum allowed size of {max_size} bytes."
        )
    return decoded


def decode_frame(image_bytes: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG, PNG, ...) into a BGR frame."""

    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    if buffer.size == 0:
        raise InvalidFrame("Image payload is empty.")
    frame = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if frame is None:
        logger.warning("Failed to decode image payload", extra={"event": "decode_frame"})
        raise InvalidFrame()
    return frame


def frame_from_payload(uploaded: Any = None, raw_image: Any = None) -> Optional[np.ndarray]:
    image_bytes = extract_image_bytes(uploaded, raw_image)
    if image_bytes is None:
        return None
    return decode_frame(image_bytes)
