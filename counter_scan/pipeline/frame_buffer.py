# pipeline/frame_buffer.py
from __future__ import annotations

import logging
import threading
from collections import deque

from .errors import ScanContractError
from .models import Frame

log = logging.getLogger(__name__)


class FrameBuffer:
    """
    Bounded FIFO of the most recent frames.

    push() may be called from a capture thread while the scan loop reads
    snapshot(); the lock is held only for the deque operation itself.
    """

    def __init__(self, capacity: int = 3):
        if capacity < 1:
            raise ScanContractError(f"frame buffer capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._frames: deque[Frame] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def push(self, frame: Frame) -> bool:
        if frame.width <= 0 or frame.height <= 0:
            log.warning(f"rejecting frame {frame.seq}: empty image ({frame.width}x{frame.height})")
            return False

        # frames are shared with every reader from here on
        frame.pixels.setflags(write=False)

        with self._lock:
            self._frames.append(frame)  # deque(maxlen) drops the oldest
        return True

    def snapshot(self) -> tuple[Frame, ...]:
        """Current frames, oldest first. Pixel data is shared, not copied."""
        with self._lock:
            return tuple(self._frames)

    def latest(self) -> Frame | None:
        with self._lock:
            return self._frames[-1] if self._frames else None

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()
        log.debug("frame buffer cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._frames)
