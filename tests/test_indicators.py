"""Tests for chartscan.analysis.indicators -- RSI, MACD, ATR, Stochastic, ADX."""

import numpy as np
import pandas as pd
import pytest
import talib

from chartscan.analysis.indicators import (
    ADX_NEUTRAL,
    ATR_NEUTRAL,
    MACD_NEUTRAL,
    RSI_NEUTRAL,
    STOCH_NEUTRAL,
    _aligned_hlc,
    _clean,
    adx,
    atr,
    indicator_snapshot,
    macd_histogram,
    rsi,
    stochastic_k,
)
from chartscan.analysis.models import PriceSeries


# ---------------------------------------------------------------------------
# Input cleaning
# ---------------------------------------------------------------------------

class TestClean:

    def test_drops_non_numeric_and_non_positive(self):
        out = _clean([1.0, "2.5", None, "abc", -3, 0, np.nan, np.inf, 4])
        assert out.tolist() == [1.0, 2.5, 4.0]

    def test_flattens_nested_and_pandas_inputs(self):
        out = _clean([[1, 2], pd.Series([3.0, 4.0]), np.array([[5.0]])])
        assert out.tolist() == [1.0, 2.0, 3.0, 4.0, 5.0]

    def test_none_is_empty(self):
        assert _clean(None).size == 0

    def test_aligned_hlc_uses_most_recent_end(self):
        h, l, c = _aligned_hlc([10, 11, 12, 13], [9, 10, 11], [9.5, 10.5], None)
        assert h.tolist() == [12.0, 13.0]
        assert l.tolist() == [10.0, 11.0]
        assert c.tolist() == [9.5, 10.5]

    def test_aligned_hlc_live_price_overwrites_last_close(self):
        _, _, c = _aligned_hlc([10, 11], [9, 10], [9.5, 10.5], 12.0)
        assert c.tolist() == [9.5, 12.0]


# ---------------------------------------------------------------------------
# Neutral defaults
# ---------------------------------------------------------------------------

class TestNeutralDefaults:

    def test_short_history_returns_neutral_values(self):
        closes = [10.0, 10.5, 10.2]
        assert rsi(closes) == RSI_NEUTRAL
        assert macd_histogram(closes) == MACD_NEUTRAL
        assert atr(closes, closes, closes) == ATR_NEUTRAL
        assert stochastic_k(closes, closes, closes) == STOCH_NEUTRAL
        assert adx(closes, closes, closes) == ADX_NEUTRAL

    def test_empty_and_garbage_inputs_never_raise(self):
        for bad in (None, [], ["x", "y"], [np.nan] * 30):
            assert rsi(bad) == 50.0
            assert macd_histogram(bad) == 0.0
            assert atr(bad, bad, bad) == 0.0
            assert stochastic_k(bad, bad, bad) == 0.5
            assert adx(bad, bad, bad) == 0.0

    def test_invalid_rsi_period_returns_neutral(self):
        assert rsi(np.arange(1, 50, dtype=float), period=1) == 50.0


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------

class TestRSI:

    def test_bounded(self, sample_ohlcv):
        value = rsi(sample_ohlcv["Close"])
        assert 0.0 <= value <= 100.0

    def test_all_gains_is_100(self):
        assert rsi(np.arange(1, 40, dtype=float)) == 100.0

    def test_all_losses_near_zero(self):
        assert rsi(np.arange(40, 1, -1, dtype=float)) <= 1.0

    def test_matches_talib_on_capped_window(self, sample_ohlcv):
        closes = sample_ohlcv["Close"].to_numpy()
        expected = talib.RSI(closes[-70:], timeperiod=14)[-1]
        assert rsi(closes) == pytest.approx(expected, abs=0.006)

    def test_live_price_spike_raises_rsi(self, sample_ohlcv):
        closes = sample_ohlcv["Close"]
        base = rsi(closes)
        spiked = rsi(closes, live_price=float(closes.iloc[-1]) * 1.2)
        assert spiked > base

    def test_invalid_live_price_is_ignored(self, sample_ohlcv):
        closes = sample_ohlcv["Close"]
        assert rsi(closes, live_price="n/a") == rsi(closes)
        assert rsi(closes, live_price=-5) == rsi(closes)


# ---------------------------------------------------------------------------
# MACD
# ---------------------------------------------------------------------------

class TestMACD:

    def test_accelerating_uptrend_is_positive(self):
        closes = 100.0 * 1.01 ** np.arange(120)
        assert macd_histogram(closes) > 0

    def test_sharp_reversal_is_negative(self):
        closes = np.concatenate([np.linspace(50, 100, 100), np.linspace(100, 80, 20)])
        assert macd_histogram(closes) < 0

    def test_constant_series_is_zero(self):
        assert macd_histogram(np.full(80, 25.0)) == 0.0

    def test_rounded_to_three_decimals(self, sample_ohlcv):
        value = macd_histogram(sample_ohlcv["Close"])
        assert value == round(value, 3)


# ---------------------------------------------------------------------------
# ATR
# ---------------------------------------------------------------------------

class TestATR:

    def test_matches_talib_on_clean_data(self, sample_ohlcv):
        h = sample_ohlcv["High"].to_numpy()
        l = sample_ohlcv["Low"].to_numpy()
        c = sample_ohlcv["Close"].to_numpy()
        expected = talib.ATR(h, l, c, timeperiod=14)[-1]
        assert atr(h, l, c) == pytest.approx(expected, abs=0.006)

    def test_constant_range(self):
        n = 40
        c = np.full(n, 100.0)
        assert atr(c + 1.0, c - 1.0, c) == 2.0

    def test_zero_ranges_are_skipped(self):
        c = np.full(40, 100.0)
        assert atr(c, c, c) == 0.0


# ---------------------------------------------------------------------------
# Stochastic %K
# ---------------------------------------------------------------------------

class TestStochastic:

    def setup_method(self):
        v = np.arange(1, 21, dtype=float)
        self.h, self.l, self.c = v + 1, v - 1 + 1e-9, v

    def test_known_value(self):
        # last close 20, window high 21, window low ~6
        assert stochastic_k(self.h, self.l, self.c) == pytest.approx(0.9333, abs=1e-4)

    def test_live_price_at_top_is_one(self):
        assert stochastic_k(self.h, self.l, self.c, live_price=21.0) == 1.0

    def test_live_price_below_range_clips_to_zero(self):
        assert stochastic_k(self.h, self.l, self.c, live_price=3.0) == 0.0

    def test_flat_window_is_neutral(self):
        flat = np.full(20, 50.0)
        assert stochastic_k(flat, flat, flat) == 0.5

    def test_flat_latest_window_is_neutral_when_smoothed(self):
        rising = np.arange(1, 21, dtype=float)
        v = np.concatenate([rising, np.full(14, 20.0)])
        assert stochastic_k(v, v, v, smooth_k=1) == 0.5
        assert stochastic_k(v, v, v, smooth_k=3) == 0.5

    def test_flat_earlier_windows_are_skipped(self):
        h = np.append(np.full(14, 10.0), 12.0)
        l = np.full(15, 10.0)
        c = np.append(np.full(14, 10.0), 12.0)
        # offset 0 closes at the window high; offset 1 is a flat window
        assert stochastic_k(h, l, c, smooth_k=2) == 1.0

    def test_smoothing_averages_offsets(self):
        single = stochastic_k(self.h, self.l, self.c)
        smoothed = stochastic_k(self.h, self.l, self.c, smooth_k=3)
        assert 0.0 <= smoothed <= 1.0
        assert smoothed <= single


# ---------------------------------------------------------------------------
# ADX
# ---------------------------------------------------------------------------

class TestADX:

    def test_perfect_uptrend_is_100(self):
        c = np.arange(10, 70, dtype=float)
        assert adx(c + 1.0, c - 1.0, c) == 100.0

    def test_below_twenty_bars_is_zero(self):
        c = np.arange(10, 29, dtype=float)
        assert adx(c + 1.0, c - 1.0, c) == 0.0

    def test_random_walk_in_range(self, sample_ohlcv):
        value = adx(sample_ohlcv["High"], sample_ohlcv["Low"], sample_ohlcv["Close"])
        assert 0.0 <= value <= 100.0


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

class TestSnapshot:

    def test_keys_and_types(self, sample_ohlcv):
        snap = indicator_snapshot(PriceSeries.from_frame(sample_ohlcv))
        assert set(snap) == {"rsi", "macd_hist", "atr", "stoch_k", "adx"}
        assert all(isinstance(v, float) for v in snap.values())

    def test_empty_series_is_all_neutral(self):
        snap = indicator_snapshot(PriceSeries.empty())
        assert snap == {"rsi": 50.0, "macd_hist": 0.0, "atr": 0.0, "stoch_k": 0.5, "adx": 0.0}
