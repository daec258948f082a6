# pipeline/models.py
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Protocol, Union

import cv2
import numpy as np

from .errors import ScanContractError


@dataclass(frozen=True, eq=False)
class Frame:
    """One captured frame: (height, width, 4) uint8 RGBA plus a sequence id."""
    seq: int
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @classmethod
    def from_bgr(cls, seq: int, image: np.ndarray) -> "Frame":
        """Wrap an OpenCV capture (gray, BGR or BGRA) as an RGBA frame."""
        if image.ndim == 2:
            rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
        elif image.shape[2] == 4:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
        return cls(seq=seq, pixels=rgba)

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGBA2BGR)


@dataclass(frozen=True)
class ScanRegion:
    """Named fractional rectangle. trust_weight ranks how likely it frames the display."""
    name: str
    x: float
    y: float
    w: float
    h: float
    trust_weight: float = 1.0

    def __post_init__(self) -> None:
        if not self.name:
            raise ScanContractError("scan region needs a name")
        for attr in ("x", "y", "w", "h"):
            if not math.isfinite(getattr(self, attr)):
                raise ScanContractError(
                    f"region {self.name!r}: {attr} must be finite",
                    details={"region": self.name, attr: getattr(self, attr)},
                )
        if not math.isfinite(self.trust_weight) or self.trust_weight <= 0:
            raise ScanContractError(
                f"region {self.name!r}: trust_weight must be positive, got {self.trust_weight}",
                details={"region": self.name, "trust_weight": self.trust_weight},
            )


@dataclass(frozen=True, eq=False)
class RegionCrop:
    region_name: str
    frame_seq: int
    image: np.ndarray  # RGBA, clipped to the frame

    @property
    def empty(self) -> bool:
        return self.image.size == 0


@dataclass(frozen=True)
class RecognizedText:
    text: str
    confidence: float  # 0..100


@dataclass(frozen=True)
class RecognitionSample:
    region_name: str
    frame_seq: int
    raw_text: str
    confidence: float
    region_weight: float = 1.0

    def __post_init__(self) -> None:
        conf = float(self.confidence)
        if not math.isfinite(conf):
            conf = 0.0
        object.__setattr__(self, "confidence", max(0.0, min(100.0, conf)))


@dataclass(frozen=True)
class NumericCandidate:
    value: int
    digit_length: int
    source_sample: RecognitionSample


@dataclass(frozen=True)
class ValueGroup:
    value: int
    candidates: tuple[NumericCandidate, ...]
    occurrences: int
    avg_confidence: float
    total_weight: float
    weighted_score: float
    digit_length: int


@dataclass(frozen=True)
class FinalReading:
    value: int
    confidence: float
    occurrences: int
    evidence: tuple[RecognitionSample, ...]


@dataclass(frozen=True)
class CodePayload:
    data: str
    location: Any = None  # opaque: corner points from the decoder


class SegmentationMode(str, Enum):
    SINGLE_LINE = "single_line"
    SINGLE_WORD = "single_word"
    BLOCK = "block"


@dataclass(frozen=True)
class RecognitionOptions:
    character_whitelist: str = "0123456789"
    segmentation_mode: SegmentationMode = SegmentationMode.SINGLE_LINE
    engine_mode: str = "greedy"  # or "beamsearch"
    languages: tuple[str, ...] = ("en",)
    gpu: bool = False


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    QR_FOUND = "qr_found"
    STABLE_READING_FOUND = "stable_reading_found"
    NO_STABLE_READING = "no_stable_reading"
    CANCELLED = "cancelled"
    ERROR_ABORTED = "error_aborted"

    @property
    def terminal(self) -> bool:
        return self not in (ScanState.IDLE, ScanState.SCANNING)


class ResultKind(str, Enum):
    CODE = "code"
    READING = "reading"
    NO_READING = "no_reading"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class ScanResult:
    kind: ResultKind
    code: CodePayload | None = None
    reading: FinalReading | None = None
    detail: str = ""


@dataclass(frozen=True)
class ScanStats:
    state: ScanState
    buffer_occupancy: int
    ticks_run: int
    last_error: str | None = None
    samples_last_tick: int = 0
    recognition_calls: int = 0


class RecognitionAdapter(Protocol):
    """Recognition backend plugin interface (EasyOCR, Tesseract, remote, etc.)."""
    async def configure(self, options: RecognitionOptions) -> None:
        ...

    async def recognize(self, image: np.ndarray) -> RecognizedText:
        ...


class CodeDecodeAdapter(Protocol):
    """Code decoder plugin interface. May return an awaitable."""
    def decode(self, frame: Frame) -> Union[CodePayload, None, Awaitable[CodePayload | None]]:
        ...
