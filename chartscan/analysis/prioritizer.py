"""Overlap resolution between competing pattern detections."""

from __future__ import annotations

from typing import Sequence

from chartscan.analysis.models import Pattern

DEFAULT_OVERLAP_THRESHOLD = 0.5


def overlap_ratio(a: Pattern, b: Pattern) -> float:
    """Shared bars divided by the length of the shorter pattern (0..1)."""
    shared = min(a.end_index, b.end_index) - max(a.start_index, b.start_index) + 1
    if shared <= 0:
        return 0.0
    return shared / min(a.length, b.length)


def _rank(pattern: Pattern) -> tuple:
    # confidence, then more bars of evidence, then reversal > continuation > breakout
    return -pattern.confidence, -pattern.length, pattern.type.family.priority


def prioritize(patterns: Sequence[Pattern],
               overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD) -> list[Pattern]:
    """Keep the best pattern of every materially overlapping group.

    Patterns are admitted best-first; a pattern is dropped when it overlaps an
    already admitted one by at least ``overlap_threshold``. Survivors keep
    their input order.
    """
    ordered = sorted(range(len(patterns)), key=lambda i: (_rank(patterns[i]), i))
    kept: list[int] = []
    for i in ordered:
        if any(overlap_ratio(patterns[i], patterns[k]) >= overlap_threshold for k in kept):
            continue
        kept.append(i)
    return [patterns[i] for i in sorted(kept)]
