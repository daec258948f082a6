import cv2
import numpy as np
import pytest

from counter_scan.pipeline.models import Frame
from counter_scan.pipeline.preprocess import decode_variants, prepare_for_ocr
from counter_scan.pipeline.qr_decoder import OpenCvQrDecoder


def test_blank_frame_has_no_code(frame_factory):
    decoder = OpenCvQrDecoder()
    assert decoder.decode(frame_factory(1, width=120, height=90, fill=255)) is None


def test_decodes_generated_qr():
    if not hasattr(cv2, "QRCodeEncoder"):
        pytest.skip("OpenCV build without QRCodeEncoder")

    text = "Dover, changer 3, 963373 = $120"
    qr = cv2.QRCodeEncoder.create().encode(text)
    qr = cv2.resize(qr, None, fx=8, fy=8, interpolation=cv2.INTER_NEAREST)
    qr = cv2.copyMakeBorder(qr, 40, 40, 40, 40, cv2.BORDER_CONSTANT, value=255)

    payload = OpenCvQrDecoder().decode(Frame.from_bgr(5, qr))
    assert payload is not None
    assert payload.data == text
    assert payload.location is not None and len(payload.location) == 4


def test_decode_variants_order():
    bgr = np.full((10, 10, 3), 200, dtype=np.uint8)
    labels = [label for label, _ in decode_variants(bgr)]
    assert labels == ["color", "gray", "inverted"]
    inverted = decode_variants(bgr)[2][1]
    assert int(inverted[0, 0]) == 255 - 200


def test_prepare_for_ocr_upscales_small_crops():
    small = np.zeros((10, 30, 4), dtype=np.uint8)
    # capped at 4x
    assert prepare_for_ocr(small).shape == (40, 120, 3)

    tall = np.zeros((60, 30, 4), dtype=np.uint8)
    assert prepare_for_ocr(tall).shape == (60, 30, 3)
