# pipeline/preprocess.py
from __future__ import annotations

import cv2
import numpy as np

MIN_OCR_HEIGHT = 48  # counter digits below this are upscaled before OCR
MAX_UPSCALE = 4.0


def rgba_to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)
    return image


def prepare_for_ocr(crop: np.ndarray, min_height: int = MIN_OCR_HEIGHT) -> np.ndarray:
    """
    RGBA crop -> BGR image ready for the recognizer.
    Small crops are upscaled (aspect preserved, capped at MAX_UPSCALE).
    """
    bgr = rgba_to_bgr(crop)
    h, w = bgr.shape[:2]
    if h == 0 or w == 0 or h >= min_height:
        return bgr

    scale = min(MAX_UPSCALE, min_height / float(h))
    new_size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(bgr, new_size, interpolation=cv2.INTER_CUBIC)


def decode_variants(bgr: np.ndarray) -> list[tuple[str, np.ndarray]]:
    """Images to try a code decoder on, cheapest first: colour, gray, inverted gray."""
    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    return [
        ("color", bgr),
        ("gray", gray),
        ("inverted", cv2.bitwise_not(gray)),
    ]
