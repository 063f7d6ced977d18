"""Confidence scoring for detected chart patterns.

The 0-100 confidence is the sum of four independently capped components:

    geometric fit     0-30   how close the shape is to its textbook form
    volume            0-30   completion-bar volume vs. the trailing 20 bars
    duration          0-20   bars spanned vs. the pattern's typical length
    recency           0-20   linear decay over 60 bars since completion

The constants are class attributes so a calibrated scorer can be built by
subclassing or by passing overrides to ``ConfidenceScorer``.
"""

from __future__ import annotations

import numpy as np

from chartscan.analysis.models import (
    Breakout,
    CupHandle,
    DoubleExtreme,
    Flag,
    Gap,
    GapKind,
    HeadShoulders,
    Pattern,
    PatternType,
    Pennant,
    PriceSeries,
    Rectangle,
    RoundingBottom,
    Trendlines,
)
from chartscan.utils.logger import setup_logger

logger = setup_logger("scoring")


def _unit(value: float) -> float:
    """Clamp to [0, 1]."""
    return float(min(1.0, max(0.0, value)))


class ConfidenceScorer:
    """Assigns a 0-100 confidence to a pattern in the context of its series."""

    FIT_WEIGHT = 30.0
    VOLUME_WEIGHT = 30.0
    DURATION_WEIGHT = 20.0
    RECENCY_WEIGHT = 20.0
    VOLUME_LOOKBACK = 20
    RECENCY_HORIZON = 60

    TYPICAL_LENGTH = {
        PatternType.DOUBLE_TOP: 40,
        PatternType.DOUBLE_BOTTOM: 40,
        PatternType.HEAD_SHOULDERS: 60,
        PatternType.INVERSE_HEAD_SHOULDERS: 60,
        PatternType.CUP_HANDLE: 60,
        PatternType.ROUNDING_BOTTOM: 60,
        PatternType.ASCENDING_TRIANGLE: 30,
        PatternType.DESCENDING_TRIANGLE: 30,
        PatternType.SYMMETRICAL_TRIANGLE: 30,
        PatternType.RISING_WEDGE: 30,
        PatternType.FALLING_WEDGE: 30,
        PatternType.RECTANGLE: 30,
        PatternType.FLAG: 20,
        PatternType.PENNANT: 20,
        PatternType.BREAKOUT: 20,
        PatternType.GAP: 1,
    }

    _GAP_WEIGHT = {
        GapKind.BREAKAWAY: 1.0,
        GapKind.RUNAWAY: 0.8,
        GapKind.EXHAUSTION: 0.6,
        GapKind.COMMON: 0.3,
    }

    def __init__(self, **overrides):
        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"unknown scoring constant: {name}")
            setattr(self, name, value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(self, pattern: Pattern, series: PriceSeries) -> float:
        """Confidence in [0, 100]; any failure while scoring gives 0."""
        try:
            return self.breakdown(pattern, series)["total"]
        except Exception as e:
            logger.warning("Scoring failed for %s: %s", getattr(pattern, "type", pattern), e)
            return 0.0

    def breakdown(self, pattern: Pattern, series: PriceSeries) -> dict[str, float]:
        """Per-component scores plus ``total``; raises on malformed input."""
        if not 0 <= pattern.start_index <= pattern.completion_index < len(series):
            raise IndexError(
                f"pattern bars {pattern.start_index}-{pattern.completion_index} "
                f"outside a {len(series)}-bar series"
            )
        parts = {
            "fit": self.FIT_WEIGHT * _unit(self.fit_quality(pattern)),
            "volume": self.volume_score(pattern, series),
            "duration": self.duration_score(pattern),
            "recency": self.recency_score(pattern, series),
        }
        total = sum(parts.values())
        if not np.isfinite(total):
            raise ValueError(f"non-finite score components: {parts}")
        parts["total"] = round(float(min(100.0, max(0.0, total))), 2)
        return parts

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def fit_quality(self, pattern: Pattern) -> float:
        g = pattern.geometry
        if isinstance(g, DoubleExtreme):
            symmetry = 1 - g.difference_pct / 3.0
            return 0.7 * _unit(symmetry) + 0.3 * _unit((g.depth_pct - 10.0) / 10.0)
        if isinstance(g, HeadShoulders):
            symmetry = 1 - g.shoulder_difference_pct / 5.0
            left, right = g.head_index - g.left_index, g.right_index - g.head_index
            balance = min(left, right) / max(left, right)
            return 0.5 * _unit(symmetry) + 0.2 * balance + 0.3 * _unit((g.height_pct - 10.0) / 10.0)
        if isinstance(g, CupHandle):
            return 0.6 * _unit(1 - g.rim_difference_pct / 5.0) + 0.4 * _unit((g.depth_pct - 10.0) / 20.0)
        if isinstance(g, RoundingBottom):
            return (0.4 * _unit(1 - g.asymmetry / 0.4)
                    + 0.3 * _unit((g.depth_pct - 10.0) / 20.0)
                    + 0.3 * _unit((g.volume_ratio - 1.1) / 0.9))
        if isinstance(g, Trendlines):
            return self._trendline_fit(g)
        if isinstance(g, Pennant):
            return self._trendline_fit(g.lines)
        if isinstance(g, Flag):
            return 0.5 * _unit(1 - g.retracement_pct / 38.0) + 0.5 * _unit(1 - g.range_pct / 8.0)
        if isinstance(g, Rectangle):
            return 0.6 * _unit((g.containment - 0.7) / 0.3) + 0.4 * _unit(1 - g.spread_pct / 2.0)
        if isinstance(g, Breakout):
            return 0.5 * _unit(1 - g.range_pct / 10.0) + 0.5 * _unit((g.volume_ratio - 1.5) / 1.5)
        if isinstance(g, Gap):
            return self._GAP_WEIGHT[g.kind] * (0.5 if g.filled else 1.0)
        raise TypeError(f"no fit rule for geometry {type(g).__name__}")

    @staticmethod
    def _trendline_fit(lines: Trendlines) -> float:
        quality = (lines.resistance.r2 + lines.support.r2) / 2.0
        touches = lines.resistance.touches + lines.support.touches
        return 0.8 * quality + 0.2 * _unit((touches - 3) / 5.0)

    def volume_score(self, pattern: Pattern, series: PriceSeries) -> float:
        i = pattern.completion_index
        trailing = series.volume[max(0, i - self.VOLUME_LOOKBACK):i]
        average = float(trailing.mean()) if trailing.size else 0.0
        ratio = float(series.volume[i]) / average if average > 0 else 1.0
        lift = _unit(ratio - 1.0)
        half = self.VOLUME_WEIGHT / 2.0
        if pattern.confirmed:
            return half + half * lift
        return self.VOLUME_WEIGHT / 3.0 * lift

    def duration_score(self, pattern: Pattern) -> float:
        typical = self.TYPICAL_LENGTH.get(pattern.type, 30)
        span = max(1, pattern.end_index - pattern.start_index)
        return self.DURATION_WEIGHT * min(1.0, span / typical)

    def recency_score(self, pattern: Pattern, series: PriceSeries) -> float:
        age = (len(series) - 1) - pattern.completion_index
        return self.RECENCY_WEIGHT * _unit(1.0 - age / self.RECENCY_HORIZON)


_DEFAULT_SCORER = ConfidenceScorer()


def score_pattern(pattern: Pattern, series: PriceSeries) -> float:
    """Score with the default constants."""
    return _DEFAULT_SCORER.score(pattern, series)
