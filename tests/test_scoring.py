"""Tests for chartscan.analysis.scoring.ConfidenceScorer."""

import numpy as np
import pytest

from chartscan.analysis.models import (
    Direction,
    DoubleExtreme,
    Gap,
    GapKind,
    Pattern,
    PatternType,
    PriceSeries,
)
from chartscan.analysis.scoring import ConfidenceScorer, score_pattern

from conftest import make_frame


def _double_top(start=59, end=99, breakout=None, difference=0.0, depth=20.0):
    return Pattern(
        type=PatternType.DOUBLE_TOP,
        direction=Direction.BEARISH,
        start_index=start,
        end_index=end,
        geometry=DoubleExtreme(start, end, (start + end) // 2, 80.0, difference, depth, 60.0),
        confirmed=breakout is not None,
        breakout_index=breakout,
    )


class TestConfidenceScorer:

    def setup_method(self):
        self.scorer = ConfidenceScorer()
        self.flat_volume = PriceSeries.from_frame(make_frame(np.full(100, 100.0)))
        volume = np.full(100, 1_000_000.0)
        volume[99] = 2_500_000.0
        self.spike_volume = PriceSeries.from_frame(make_frame(np.full(100, 100.0), volume))

    def test_perfect_unconfirmed_pattern(self):
        parts = self.scorer.breakdown(_double_top(), self.flat_volume)
        assert parts["fit"] == pytest.approx(30.0)
        assert parts["volume"] == 0.0
        assert parts["duration"] == pytest.approx(20.0)
        assert parts["recency"] == pytest.approx(20.0)
        assert parts["total"] == pytest.approx(70.0)

    def test_confirmed_on_heavy_volume_scores_full_volume_component(self):
        pattern = _double_top(start=59, end=95, breakout=99)
        parts = self.scorer.breakdown(pattern, self.spike_volume)
        assert parts["volume"] == pytest.approx(30.0)

    def test_confirmation_without_volume_gets_half(self):
        pattern = _double_top(start=59, end=95, breakout=99)
        assert self.scorer.volume_score(pattern, self.flat_volume) == pytest.approx(15.0)

    def test_recency_decays_with_age(self):
        old = _double_top(start=10, end=50)
        assert self.scorer.recency_score(old, self.flat_volume) == pytest.approx(20.0 * (1 - 49 / 60))
        ancient = _double_top(start=0, end=20)
        assert self.scorer.recency_score(ancient, self.flat_volume) == 0.0

    def test_short_pattern_gets_partial_duration(self):
        assert self.scorer.duration_score(_double_top(start=79, end=99)) == pytest.approx(10.0)

    def test_asymmetric_peaks_lower_fit(self):
        assert self.scorer.fit_quality(_double_top(difference=2.5)) < self.scorer.fit_quality(_double_top())

    def test_gap_fit_depends_on_kind_and_fill(self):
        def gap(kind, filled):
            return Pattern(PatternType.GAP, Direction.BULLISH, 98, 99,
                           Gap(kind, 100.0, 103.0, 3.0, 0.0, filled, 106.0))
        assert self.scorer.fit_quality(gap(GapKind.BREAKAWAY, False)) == 1.0
        assert self.scorer.fit_quality(gap(GapKind.BREAKAWAY, True)) == 0.5
        assert self.scorer.fit_quality(gap(GapKind.COMMON, False)) < self.scorer.fit_quality(gap(GapKind.RUNAWAY, False))

    def test_total_is_bounded(self, sample_ohlcv):
        series = PriceSeries.from_frame(sample_ohlcv)
        value = self.scorer.score(_double_top(start=200, end=240, breakout=245), series)
        assert 0.0 <= value <= 100.0

    def test_malformed_pattern_scores_zero(self):
        broken = Pattern(PatternType.FLAG, Direction.BULLISH, 10, 20, geometry=object())
        assert self.scorer.score(broken, self.flat_volume) == 0.0

    def test_index_outside_series_scores_zero(self):
        assert self.scorer.score(_double_top(start=150, end=190), self.flat_volume) == 0.0
        assert self.scorer.score(_double_top(start=59, end=100), self.flat_volume) == 0.0

    def test_breakdown_rejects_bars_past_the_series(self):
        with pytest.raises(IndexError):
            self.scorer.breakdown(_double_top(start=150, end=190), self.flat_volume)

    def test_recency_never_exceeds_its_weight(self):
        future = _double_top(start=150, end=190)
        assert self.scorer.recency_score(future, self.flat_volume) == pytest.approx(20.0)

    def test_overrides(self):
        scorer = ConfidenceScorer(RECENCY_WEIGHT=0.0)
        assert scorer.breakdown(_double_top(), self.flat_volume)["total"] == pytest.approx(50.0)

    def test_unknown_override_rejected(self):
        with pytest.raises(AttributeError):
            ConfidenceScorer(NOT_A_WEIGHT=1.0)

    def test_module_level_helper(self):
        assert score_pattern(_double_top(), self.flat_volume) == pytest.approx(70.0)
