# pipeline/utils.py
from __future__ import annotations

import logging

from .code_parser import parse_machine_code
from .errors import CodeFormatError
from .models import ResultKind, ScanResult

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def describe_result(result: ScanResult) -> list[str]:
    """Human-readable lines for a finished scan."""
    if result.kind == ResultKind.CODE and result.code is not None:
        lines = [f"Code: {result.code.data}"]
        try:
            mc = parse_machine_code(result.code.data)
        except CodeFormatError as e:
            lines.append(f"  (not a machine code: {e.message})")
        else:
            lines.append(f"  Machine: {mc.machine_id} ({mc.machine_display_name()})")
            lines.append(f"  {mc.display_text()}")
        return lines

    if result.kind == ResultKind.READING and result.reading is not None:
        r = result.reading
        lines = [f"Reading: {r.value}  (confidence={r.confidence:.1f}, occurrences={r.occurrences})"]
        for s in r.evidence[:10]:
            lines.append(f"  - {s.region_name} frame {s.frame_seq} -> {s.raw_text!r} (conf={s.confidence:.1f})")
        return lines

    if result.kind == ResultKind.NO_READING:
        return [f"No stable reading: {result.detail}"]
    if result.kind == ResultKind.CANCELLED:
        return ["Scan cancelled."]
    return [f"Scan failed: {result.detail}"]
