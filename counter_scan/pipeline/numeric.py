# pipeline/numeric.py
from __future__ import annotations

import logging
import re

from .models import NumericCandidate, RecognitionSample

log = logging.getLogger(__name__)

NON_DIGIT_RE = re.compile(r"[^0-9]+")

DEFAULT_VALUE_RANGE = (0, 9_999_999)


def extract_digit_runs(text: str) -> list[str]:
    """
    Every maximal run of ASCII digits, left to right.

    Non-digit characters are stripped by turning them into separators, so
    "96 33 73" yields three runs and "9b3" yields "9" and "3". Unicode
    digits (e.g. Arabic-Indic) are treated as noise, same as letters.
    """
    if not text:
        return []
    return [run for run in NON_DIGIT_RE.split(text) if run]


class NumericExtractor:
    """Turns one recognition sample into zero or more in-range integer candidates."""

    def __init__(self, min_value: int = DEFAULT_VALUE_RANGE[0], max_value: int = DEFAULT_VALUE_RANGE[1]):
        self.min_value = min_value
        self.max_value = max_value
        self.max_digits = len(str(max_value))

    def extract(self, sample: RecognitionSample) -> list[NumericCandidate]:
        candidates: list[NumericCandidate] = []
        for run in extract_digit_runs(sample.raw_text):
            # too long to be in range; also keeps int() under its digit limit
            if len(run.lstrip("0")) > self.max_digits:
                log.debug(f"{sample.region_name}/f{sample.frame_seq}: {len(run)}-digit run dropped")
                continue
            value = int(run, 10)
            if not (self.min_value <= value <= self.max_value):
                log.debug(f"{sample.region_name}/f{sample.frame_seq}: {run} outside range, dropped")
                continue
            candidates.append(NumericCandidate(value=value, digit_length=len(run), source_sample=sample))
        return candidates

    def extract_all(self, samples: list[RecognitionSample]) -> list[NumericCandidate]:
        out: list[NumericCandidate] = []
        for s in samples:
            out.extend(self.extract(s))
        return out
