# pipeline/qr_decoder.py
from __future__ import annotations

import logging

import cv2
import numpy as np

from .models import CodePayload, Frame
from .preprocess import decode_variants

log = logging.getLogger(__name__)


class OpenCvQrDecoder:
    """
    QR decode adapter on cv2.QRCodeDetector.

    Tries the colour image, then grayscale, then inverted grayscale; the
    inverted pass picks up light-on-dark codes printed on machine panels.
    """

    def __init__(self, try_variants: bool = True):
        self.try_variants = try_variants
        self._detector = cv2.QRCodeDetector()

    def decode(self, frame: Frame) -> CodePayload | None:
        bgr = frame.to_bgr()
        variants = decode_variants(bgr) if self.try_variants else [("color", bgr)]

        for label, img in variants:
            data, points, _ = self._detector.detectAndDecode(img)
            if data:
                log.info(f"QR code found on frame {frame.seq} ({label}): {data!r}")
                return CodePayload(data=data, location=_corners(points))
        return None


def _corners(points: np.ndarray | None) -> list[tuple[float, float]] | None:
    if points is None:
        return None
    return [(float(x), float(y)) for x, y in np.asarray(points).reshape(-1, 2)]
