# pipeline/easyocr_adapter.py
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import numpy as np

from .models import RecognitionOptions, RecognizedText, SegmentationMode
from .preprocess import prepare_for_ocr

log = logging.getLogger(__name__)

DEBUG_EVERY = 25


class EasyOcrRecognizer:
    """
    Recognition adapter backed by EasyOCR.

    The reader is built in configure() (model load is slow, so it runs in a
    worker thread); recognize() also runs readtext() off the event loop.

    easyocr.Reader is not thread-safe, so every call goes through one worker
    thread. A call that timed out keeps that worker busy until it returns;
    calls queued behind it are dropped if their caller has given up.
    """

    def __init__(self) -> None:
        self.options = RecognitionOptions()
        self._reader: Any = None
        self._calls = 0
        self._executor: ThreadPoolExecutor | None = None

    @property
    def ready(self) -> bool:
        return self._reader is not None

    async def configure(self, options: RecognitionOptions) -> None:
        self.options = options
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="easyocr")
        loop = asyncio.get_running_loop()
        self._reader = await loop.run_in_executor(self._executor, self._build_reader, options)
        log.info(
            f"EasyOCR ready (langs={list(options.languages)}, gpu={options.gpu}, "
            f"mode={options.segmentation_mode.value}, decoder={options.engine_mode})"
        )

    @staticmethod
    def _build_reader(options: RecognitionOptions) -> Any:
        import easyocr

        return easyocr.Reader(list(options.languages), gpu=options.gpu, verbose=False)

    async def recognize(self, image: np.ndarray) -> RecognizedText:
        if self._reader is None:
            raise RuntimeError("EasyOcrRecognizer.recognize() called before configure()")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._recognize_sync, image)

    def _recognize_sync(self, image: np.ndarray) -> RecognizedText:
        reader = self._reader
        if reader is None:
            raise RuntimeError("EasyOcrRecognizer closed")
        img = prepare_for_ocr(image)
        opts = self.options
        raw = reader.readtext(
            img,
            detail=1,
            paragraph=False,
            allowlist=opts.character_whitelist or None,
            decoder=opts.engine_mode,
        )

        self._calls += 1
        if self._calls % DEBUG_EVERY == 0:
            log.debug(f"[easyocr] call={self._calls} raw={raw[:3]}")

        return fragments_to_text(raw, opts.segmentation_mode)

    async def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._reader = None


def _left(fragment: Any) -> float:
    return min(float(p[0]) for p in fragment[0])


def _top(fragment: Any) -> float:
    return min(float(p[1]) for p in fragment[0])


def fragments_to_text(raw: list, mode: SegmentationMode) -> RecognizedText:
    """
    Collapse EasyOCR (bbox, text, conf) fragments into one text + 0..100 confidence.

    single_word: the highest-confidence fragment.
    single_line: fragments left to right, glued together.
    block: fragments in reading order, separated by spaces.
    """
    if not raw:
        return RecognizedText(text="", confidence=0.0)

    if mode == SegmentationMode.SINGLE_WORD:
        best = max(raw, key=lambda x: float(x[2]))
        return RecognizedText(text=str(best[1]), confidence=float(best[2]) * 100.0)

    if mode == SegmentationMode.SINGLE_LINE:
        ordered = sorted(raw, key=_left)
        sep = ""
    else:
        ordered = sorted(raw, key=lambda f: (round(_top(f) / 10.0), _left(f)))
        sep = " "

    text = sep.join(str(f[1]) for f in ordered)
    conf = sum(float(f[2]) for f in ordered) / len(ordered)
    return RecognizedText(text=text, confidence=conf * 100.0)
