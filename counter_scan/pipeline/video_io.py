# pipeline/video_io.py
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Iterable, Iterator, Protocol

import cv2

from .models import Frame

log = logging.getLogger(__name__)


def iter_frames(source: str | Path | int, stride: int = 1, max_frames: int | None = None) -> Iterator[Frame]:
    """
    Frames from a video file or camera index; seq is the capture index.

    The source is opened here, not on first iteration, so a bad path or
    missing camera raises RuntimeError to the caller.
    """
    cap = cv2.VideoCapture(source if isinstance(source, int) else str(source))
    if not cap.isOpened():
        cap.release()
        raise RuntimeError(f"Could not open video source: {source}")
    return _read_frames(cap, stride, max_frames)


def _read_frames(cap: cv2.VideoCapture, stride: int, max_frames: int | None) -> Iterator[Frame]:
    idx = -1
    yielded = 0
    try:
        while True:
            ok, image = cap.read()
            if not ok:
                break
            idx += 1

            if idx % stride != 0:
                continue

            yield Frame.from_bgr(idx, image)

            yielded += 1
            if max_frames is not None and yielded >= max_frames:
                break
    finally:
        cap.release()


class FrameSink(Protocol):
    def add_frame(self, frame: Frame) -> int:
        ...


class FrameFeeder(threading.Thread):
    """
    Capture thread: pulls frames from an iterator and pushes them into the
    engine until the iterator runs dry or stop() is called.
    """

    def __init__(self, sink: FrameSink, frames: Iterable[Frame], fps: float | None = None):
        super().__init__(name="frame-feeder", daemon=True)
        self.sink = sink
        self.frames = frames
        self.period = (1.0 / fps) if fps else 0.0
        self.pushed = 0
        self.error: BaseException | None = None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        log.info("frame feeder started")
        try:
            for frame in self.frames:
                if self._stop_event.is_set():
                    break
                t0 = time.perf_counter()
                self.sink.add_frame(frame)
                self.pushed += 1

                if self.period:
                    remaining = self.period - (time.perf_counter() - t0)
                    if remaining > 0 and self._stop_event.wait(remaining):
                        break
        except Exception as e:
            self.error = e
            log.exception("frame feeder failed")
        log.info(f"frame feeder finished after {self.pushed} frames")
