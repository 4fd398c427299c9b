import json
from typing import Any

import cv2 # type: ignore
import numpy as np # type: ignore

from backend.security import QR_PAYLOAD_TYPE

# OpenCV's built-in detector (offline, no extra model files)
QR_DETECTOR = cv2.QRCodeDetector()


def decode_image(data: bytes):
    """Returns a BGR frame, or None when the bytes are not a readable image."""
    if not data:
        return None
    img_array = np.frombuffer(data, np.uint8)
    return cv2.imdecode(img_array, cv2.IMREAD_COLOR)


def read_qr_text(frame_bgr) -> str | None:
    text, points, _ = QR_DETECTOR.detectAndDecode(frame_bgr)
    if points is None or not text:
        # retry on grayscale; low-contrast prints sometimes fail in color
        gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY)
        text, points, _ = QR_DETECTOR.detectAndDecode(gray)
    if not text:
        return None
    return text


def parse_qr_payload(text: str) -> dict[str, Any] | None:
    """
    Returns:
      {"child_id", "facility_id", "signature"} or None for anything that is
      not an attendance card.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return None

    if not isinstance(payload, dict) or payload.get("type") != QR_PAYLOAD_TYPE:
        return None

    return {
        "child_id": payload.get("child_id"),
        "facility_id": payload.get("facility_id"),
        "signature": payload.get("signature"),
    }
