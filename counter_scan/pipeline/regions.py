# pipeline/regions.py
from __future__ import annotations

import json
import logging
import math
from pathlib import Path

import numpy as np

from .errors import ScanContractError
from .models import Frame, RegionCrop, ScanRegion

log = logging.getLogger(__name__)


def region_to_pixels(region: ScanRegion, width: int, height: int) -> tuple[int, int, int, int]:
    """
    Fractional region -> clipped pixel box (x1, y1, x2, y2).

    Each fraction is floored against its dimension first, then the box is
    clipped to the frame, so a region running past 1.0 just gets smaller.
    """
    x = math.floor(region.x * width)
    y = math.floor(region.y * height)
    w = math.floor(region.w * width)
    h = math.floor(region.h * height)

    x1 = max(0, min(x, width))
    y1 = max(0, min(y, height))
    x2 = max(x1, min(x + w, width))
    y2 = max(y1, min(y + h, height))
    return x1, y1, x2, y2


def extract_region(frame: Frame, region: ScanRegion) -> RegionCrop:
    x1, y1, x2, y2 = region_to_pixels(region, frame.width, frame.height)

    if x2 <= x1 or y2 <= y1:
        log.debug(f"region {region.name!r} clips to zero area on frame {frame.seq}")
        channels = frame.pixels.shape[2] if frame.pixels.ndim == 3 else 1
        return RegionCrop(region.name, frame.seq, np.zeros((0, 0, channels), dtype=frame.pixels.dtype))

    # copy: the crop must not alias the shared frame buffer
    crop = frame.pixels[y1:y2, x1:x2].copy()
    return RegionCrop(region.name, frame.seq, crop)


# ──────────────────────────────────────────────
# Region presets (one per historical scanner layout)
# ──────────────────────────────────────────────

REGION_PRESETS: dict[str, tuple[ScanRegion, ...]] = {
    # webcam tuned: weighted towards where the display usually sits
    "webcam_stable": (
        ScanRegion("primary_display", 0.3, 0.2, 0.4, 0.3, trust_weight=3),
        ScanRegion("full_center", 0.2, 0.15, 0.6, 0.4, trust_weight=2),
        ScanRegion("top_area", 0.2, 0.1, 0.6, 0.3),
        ScanRegion("bottom_area", 0.2, 0.5, 0.6, 0.3),
        ScanRegion("left_side", 0.1, 0.2, 0.3, 0.4),
        ScanRegion("right_side", 0.6, 0.2, 0.3, 0.4),
    ),
    "combined": (
        ScanRegion("primary_display", 0.3, 0.2, 0.4, 0.3),
        ScanRegion("full_center", 0.2, 0.15, 0.6, 0.4),
        ScanRegion("top_area", 0.2, 0.1, 0.6, 0.3),
        ScanRegion("bottom_area", 0.2, 0.5, 0.6, 0.3),
    ),
    "precise": (
        ScanRegion("center_display", 0.35, 0.35, 0.3, 0.3),
        ScanRegion("top_display", 0.25, 0.15, 0.5, 0.25),
        ScanRegion("bottom_display", 0.25, 0.6, 0.5, 0.25),
        ScanRegion("left_display", 0.1, 0.3, 0.25, 0.4),
        ScanRegion("right_display", 0.65, 0.3, 0.25, 0.4),
    ),
    "digital": (
        ScanRegion("center", 0.2, 0.3, 0.6, 0.4),
        ScanRegion("top", 0.1, 0.1, 0.8, 0.3),
        ScanRegion("bottom", 0.1, 0.6, 0.8, 0.3),
        ScanRegion("left", 0.05, 0.2, 0.4, 0.6),
        ScanRegion("right", 0.55, 0.2, 0.4, 0.6),
    ),
    "large_number": (
        ScanRegion("full_center", 0.1, 0.25, 0.8, 0.5),
        ScanRegion("top_half", 0.1, 0.1, 0.8, 0.4),
        ScanRegion("bottom_half", 0.1, 0.5, 0.8, 0.4),
        ScanRegion("left_side", 0.05, 0.2, 0.45, 0.6),
        ScanRegion("right_side", 0.5, 0.2, 0.45, 0.6),
        ScanRegion("very_large", 0.05, 0.1, 0.9, 0.8),
    ),
    "permissive": (
        ScanRegion("primary_display", 0.3, 0.2, 0.4, 0.3),
        ScanRegion("full_center", 0.2, 0.15, 0.6, 0.4),
        ScanRegion("top_area", 0.2, 0.1, 0.6, 0.3),
        ScanRegion("bottom_area", 0.2, 0.5, 0.6, 0.3),
        ScanRegion("left_side", 0.05, 0.2, 0.4, 0.6),
        ScanRegion("right_side", 0.55, 0.2, 0.4, 0.6),
        ScanRegion("very_large", 0.1, 0.1, 0.8, 0.8),
        ScanRegion("full_image", 0.0, 0.0, 1.0, 1.0),
    ),
}

DEFAULT_PRESET = "webcam_stable"


def get_region_preset(name: str) -> tuple[ScanRegion, ...]:
    try:
        return REGION_PRESETS[name]
    except KeyError:
        available = ", ".join(sorted(REGION_PRESETS))
        raise ScanContractError(
            f"unknown region preset {name!r}. Available: {available}",
            details={"preset": name},
        ) from None


def _region_from_dict(item: dict) -> ScanRegion:
    try:
        return ScanRegion(
            name=str(item["name"]),
            x=float(item["x"]),
            y=float(item["y"]),
            w=float(item.get("w", item.get("width"))),
            h=float(item.get("h", item.get("height"))),
            trust_weight=float(item.get("trust_weight", item.get("weight", 1.0))),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        if isinstance(e, ScanContractError):
            raise
        raise ScanContractError(f"malformed region entry {item!r}: {e}") from e


def load_regions_file(path: Path) -> tuple[ScanRegion, ...]:
    """
    Read regions from a JSON list, e.g.

        [{"name": "display", "x": 0.3, "y": 0.2, "width": 0.4, "height": 0.3, "weight": 3}]
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list) or not data:
        raise ScanContractError(f"{path}: expected a non-empty JSON list of regions")

    regions = tuple(_region_from_dict(item) for item in data)
    log.info(f"loaded {len(regions)} regions from {path}")
    return regions
