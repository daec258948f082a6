# pipeline/aggregator.py
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Iterable

from .models import FinalReading, NumericCandidate, ValueGroup
from .numeric import DEFAULT_VALUE_RANGE

log = logging.getLogger(__name__)

DEFAULT_MIN_OCCURRENCES = 2
SCORE_REL_TOL = 1e-9


def _build_group(value: int, members: list[NumericCandidate]) -> ValueGroup:
    occurrences = len(members)
    avg_conf = sum(c.source_sample.confidence for c in members) / occurrences

    # a region counts once per frame it shows up in, however many runs it produced
    weight_by_slot: dict[tuple[str, int], float] = {}
    for c in members:
        s = c.source_sample
        weight_by_slot.setdefault((s.region_name, s.frame_seq), s.region_weight)
    total_weight = float(sum(weight_by_slot.values()))

    # deterministic evidence order: frame, region, then confidence
    ordered = tuple(
        sorted(
            members,
            key=lambda c: (c.source_sample.frame_seq, c.source_sample.region_name, -c.source_sample.confidence),
        )
    )

    return ValueGroup(
        value=value,
        candidates=ordered,
        occurrences=occurrences,
        avg_confidence=avg_conf,
        total_weight=total_weight,
        weighted_score=occurrences * avg_conf * total_weight,
        digit_length=max(c.digit_length for c in members),
    )


def group_candidates(
    candidates: Iterable[NumericCandidate],
    value_range: tuple[int, int] = DEFAULT_VALUE_RANGE,
) -> list[ValueGroup]:
    """Group in-range candidates by value, sorted by value."""
    lo, hi = value_range
    by_value: dict[int, list[NumericCandidate]] = defaultdict(list)
    for c in candidates:
        if lo <= c.value <= hi:
            by_value[c.value].append(c)

    return [_build_group(v, by_value[v]) for v in sorted(by_value)]


def select_winner(groups: list[ValueGroup]) -> ValueGroup | None:
    """
    Highest weighted score wins. Groups tied on score are ranked by digit
    length, then score, then value.
    """
    if not groups:
        return None

    best_score = max(g.weighted_score for g in groups)
    tied = [g for g in groups if math.isclose(g.weighted_score, best_score, rel_tol=SCORE_REL_TOL)]
    return max(tied, key=lambda g: (g.digit_length, g.weighted_score, g.value))


def aggregate(
    candidates: Iterable[NumericCandidate],
    *,
    min_occurrences: int = DEFAULT_MIN_OCCURRENCES,
    value_range: tuple[int, int] = DEFAULT_VALUE_RANGE,
) -> FinalReading | None:
    groups = group_candidates(candidates, value_range)

    for g in groups:
        log.debug(
            f"value {g.value}: {g.occurrences} occurrences, avg conf {g.avg_confidence:.1f}, "
            f"weight {g.total_weight:.1f}, score {g.weighted_score:.1f}"
        )

    winner = select_winner(groups)
    if winner is None:
        return None

    if winner.occurrences < min_occurrences:
        log.debug(f"best value {winner.value} seen {winner.occurrences}x (< {min_occurrences}), no stable reading yet")
        return None

    return FinalReading(
        value=winner.value,
        confidence=winner.avg_confidence,
        occurrences=winner.occurrences,
        evidence=tuple(c.source_sample for c in winner.candidates),
    )


class StabilityAggregator:
    """aggregate() bound to one session's thresholds."""

    def __init__(
        self,
        min_occurrences: int = DEFAULT_MIN_OCCURRENCES,
        value_range: tuple[int, int] = DEFAULT_VALUE_RANGE,
    ):
        self.min_occurrences = min_occurrences
        self.value_range = value_range

    def __call__(self, candidates: Iterable[NumericCandidate]) -> FinalReading | None:
        return aggregate(candidates, min_occurrences=self.min_occurrences, value_range=self.value_range)
