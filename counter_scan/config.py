# config.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from counter_scan.pipeline.errors import ScanContractError


@dataclass(frozen=True)
class ScanOptions:
    # Buffering
    max_frame_buffer: int = 3

    # Acceptance
    min_occurrences: int = 2
    value_range: tuple[int, int] = (0, 9_999_999)

    # Loop timing (ms)
    tick_interval_ms: float = 100
    error_backoff_ms: float = 500
    recognize_timeout_ms: float | None = 10_000  # None = wait forever
    session_timeout_ms: float | None = None  # None = scan until stopped

    def __post_init__(self) -> None:
        if self.max_frame_buffer < 1:
            raise ScanContractError(f"max_frame_buffer must be >= 1, got {self.max_frame_buffer}")
        if self.min_occurrences < 1:
            raise ScanContractError(f"min_occurrences must be >= 1, got {self.min_occurrences}")
        lo, hi = self.value_range
        if lo < 0 or hi < lo:
            raise ScanContractError(f"value_range must satisfy 0 <= min <= max, got {self.value_range}")
        if self.tick_interval_ms < 0 or self.error_backoff_ms < 0:
            raise ScanContractError("tick_interval_ms and error_backoff_ms must be >= 0")
        for name in ("recognize_timeout_ms", "session_timeout_ms"):
            v = getattr(self, name)
            if v is not None and v <= 0:
                raise ScanContractError(f"{name} must be positive or None, got {v}")


@dataclass(frozen=True)
class AppConfig:
    # IO
    source: str  # video path or camera index ("0")

    # Regions
    region_preset: str = "webcam_stable"
    regions_file: Path | None = None

    # Frame sampling
    frame_stride: int = 1
    max_frames: int | None = None
    feed_fps: float | None = None  # pace file playback; None = as fast as decoded

    # Scan session
    scan: ScanOptions = ScanOptions(session_timeout_ms=20_000)

    # Logging
    logging_level: str = "INFO"

    # OCR engine settings
    ocr_langs: tuple[str, ...] = ("en",)
    ocr_gpu: bool = False
    ocr_decoder: str = "greedy"  # or "beamsearch"

    @property
    def camera_index(self) -> int | None:
        return int(self.source) if self.source.isdigit() else None
