"""Shared pytest fixtures for the chartscan test suite.

Provides synthetic OHLCV data with fixed random seeds or closed-form shapes.
All fixtures are independent of external APIs.
"""

import numpy as np
import pandas as pd
import pytest


def make_frame(close, volume=1_000_000.0, spread=0.01, start="2023-01-02"):
    """OHLCV frame around ``close``: high/low at +/- ``spread``, open = close."""
    close = np.asarray(close, dtype=float)
    n = close.size
    volume = np.broadcast_to(np.asarray(volume, dtype=float), (n,)).copy()
    return pd.DataFrame(
        {
            "Open": close,
            "High": close * (1 + spread),
            "Low": close * (1 - spread),
            "Close": close,
            "Volume": volume,
        },
        index=pd.bdate_range(start=start, periods=n),
    )


def piecewise(knots_x, knots_y, n):
    """Linear interpolation through ``(knots_x, knots_y)`` sampled at 0..n-1."""
    return np.interp(np.arange(n), knots_x, knots_y)


# ---------------------------------------------------------------------------
# 1. Random-walk OHLCV fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_ohlcv():
    """Synthetic OHLCV DataFrame with 252 rows and realistic prices.

    Geometric Brownian motion seeded at 42: start ~150, drift ~0.04%/day,
    vol ~1.5%/day.
    """
    np.random.seed(42)
    n = 252
    dates = pd.bdate_range(start="2023-01-02", periods=n)
    log_returns = np.random.normal(0.0004, 0.015, n)
    close = 150.0 * np.exp(np.cumsum(log_returns))

    high = close * (1 + np.abs(np.random.normal(0.002, 0.005, n)))
    low = close * (1 - np.abs(np.random.normal(0.002, 0.005, n)))
    open_ = close * (1 + np.random.normal(0, 0.003, n))
    volume = np.random.randint(1_000_000, 10_000_000, n).astype(float)

    return pd.DataFrame(
        {"Open": open_, "High": high, "Low": low, "Close": close, "Volume": volume},
        index=dates,
    )


# ---------------------------------------------------------------------------
# 2. Double top followed by a high-volume breakdown
# ---------------------------------------------------------------------------

@pytest.fixture
def double_top_ohlcv():
    """150 bars: rally to 100 (bar 90), pullback to 86 (bar 108), second peak
    at 99.6 (bar 126), then a slide to 78 that breaks the 85.14 neckline at
    bar 142. The last ten bars trade 2.5x normal volume.
    """
    n = 150
    close = piecewise([0, 90, 108, 126, 149], [60, 100, 86, 99.6, 78], n)
    volume = np.full(n, 1_000_000.0)
    volume[140:] = 2_500_000.0
    return make_frame(close, volume)


# ---------------------------------------------------------------------------
# 3. Straight-line uptrend
# ---------------------------------------------------------------------------

@pytest.fixture
def rising_ohlcv():
    """150 bars rising linearly from 50 to 150 on constant volume."""
    return make_frame(np.linspace(50, 150, 150))
