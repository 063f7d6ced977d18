"""Live indicator library: RSI, MACD histogram, ATR, Stochastic %K and ADX.

Every function takes raw history arrays (oldest first) plus an optional live
price and returns one rounded scalar "as of now". Inputs are flattened and
coerced to float, non-finite and non-positive entries are dropped, and short
histories return a neutral default instead of raising:

    RSI -> 50, MACD -> 0, ATR -> 0, Stochastic %K -> 0.5, ADX -> 0

TA-Lib supplies the EMA and RSI recursions (both seed with a simple average of
the first ``period`` values, then smooth); ATR and ADX need per-bar filtering
of zero true ranges, so their Wilder recursions are written out here.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import talib

from chartscan.analysis.models import PriceSeries
from chartscan.utils.logger import setup_logger

logger = setup_logger("indicators")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
RSI_NEUTRAL = 50.0
MACD_NEUTRAL = 0.0
ATR_NEUTRAL = 0.0
STOCH_NEUTRAL = 0.5
ADX_NEUTRAL = 0.0

_RSI_MIN_WINDOW = 60        # closes kept for RSI: max(60, 5 * period)
_MACD_FAST, _MACD_SLOW, _MACD_SIGNAL = 12, 26, 9
_HLC_WINDOW = 260           # ~one trading year caps ATR / ADX work
_ADX_PERIOD = 14
_ADX_MIN_BARS = 20
_STOCH_MIN_BARS = 5
_DX_EPSILON = 1e-12


# ---------------------------------------------------------------------------
# Input cleaning
# ---------------------------------------------------------------------------
def _flatten(values):
    if values is None:
        return
    if isinstance(values, (str, bytes)) or np.isscalar(values):
        yield values
        return
    if isinstance(values, (pd.Series, pd.Index, pd.DataFrame, np.ndarray)):
        values = np.asarray(values, dtype=object).ravel().tolist()
    try:
        items = iter(values)
    except TypeError:
        yield values
        return
    for item in items:
        yield from _flatten(item)


def _clean(values) -> np.ndarray:
    """Flatten, coerce to float and keep finite values > 0 (order preserved)."""
    flat = pd.Series(list(_flatten(values)), dtype=object)
    arr = pd.to_numeric(flat, errors="coerce").to_numpy(dtype=float, na_value=np.nan)
    return arr[np.isfinite(arr) & (arr > 0)]


def _live(live_price) -> float | None:
    try:
        price = float(live_price)
    except (TypeError, ValueError):
        return None
    return price if np.isfinite(price) and price > 0 else None


def _closes_with_live(history, live_price) -> np.ndarray:
    closes = _clean(history)
    live = _live(live_price)
    if live is not None:
        closes = np.append(closes, live)
    return closes


def _aligned_hlc(highs, lows, closes, live_price, window: int | None = _HLC_WINDOW,
                 ordered_only: bool = True) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Clean each array, align them on their most recent end, apply live close.

    With ``ordered_only`` bars whose high is below their low are dropped.
    """
    h, l, c = _clean(highs), _clean(lows), _clean(closes)
    m = min(h.size, l.size, c.size)
    h, l, c = h[h.size - m:], l[l.size - m:], c[c.size - m:]
    if ordered_only:
        keep = h >= l
        h, l, c = h[keep], l[keep], c[keep]
    if window is not None:
        h, l, c = h[-window:], l[-window:], c[-window:]
    live = _live(live_price)
    if live is not None and c.size:
        c = c.copy()
        c[-1] = live
    return h, l, c


def _true_range(h: np.ndarray, l: np.ndarray, c: np.ndarray) -> np.ndarray:
    """True range for bars 1..n-1 (bar 0 has no previous close)."""
    prev_close = c[:-1]
    return np.maximum.reduce([
        h[1:] - l[1:],
        np.abs(h[1:] - prev_close),
        np.abs(l[1:] - prev_close),
    ])


def _wilder_average(values: np.ndarray, period: int) -> float:
    """Seed with the mean of the first ``period`` values, then Wilder-smooth."""
    avg = float(values[:period].mean())
    for value in values[period:]:
        avg = (avg * (period - 1) + float(value)) / period
    return avg


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------
def rsi(history, live_price=None, period: int = 14) -> float:
    """Wilder RSI of the latest close, rounded to 2 decimals.

    Returns 50 with fewer than ``period + 1`` usable closes and 100 when the
    evaluated window holds no down-move at all.
    """
    closes = _closes_with_live(history, live_price)
    if period < 2 or closes.size < period + 1:
        return RSI_NEUTRAL
    closes = closes[-max(_RSI_MIN_WINDOW, period * 5):]
    if not (np.diff(closes) < 0).any():
        return 100.0
    value = talib.RSI(closes, timeperiod=period)[-1]
    if not np.isfinite(value):
        return RSI_NEUTRAL
    return round(float(np.clip(value, 0.0, 100.0)), 2)


def macd_histogram(history, live_price=None) -> float:
    """MACD(12, 26, 9) histogram of the latest close, rounded to 3 decimals."""
    closes = _closes_with_live(history, live_price)
    if closes.size < _MACD_SLOW:
        return MACD_NEUTRAL
    line = talib.EMA(closes, timeperiod=_MACD_FAST) - talib.EMA(closes, timeperiod=_MACD_SLOW)
    line = line[np.isfinite(line)]
    if line.size < _MACD_SIGNAL:
        return MACD_NEUTRAL
    signal = talib.EMA(line, timeperiod=_MACD_SIGNAL)
    return round(float(line[-1] - signal[-1]), 3)


def atr(highs, lows, closes, live_price=None, period: int = 14) -> float:
    """Wilder ATR over the most recent 260 bars, rounded to 2 decimals."""
    if period < 1:
        return ATR_NEUTRAL
    h, l, c = _aligned_hlc(highs, lows, closes, live_price)
    if c.size < period + 1:
        return ATR_NEUTRAL
    tr = _true_range(h, l, c)
    tr = tr[tr > 0]
    if tr.size < period:
        return ATR_NEUTRAL
    return round(_wilder_average(tr, period), 2)


def _raw_k(h: np.ndarray, l: np.ndarray, close: float, end: int, period: int) -> float | None:
    highest = h[end - period:end].max()
    lowest = l[end - period:end].min()
    if highest == lowest:
        return None
    return float(np.clip((close - lowest) / (highest - lowest), 0.0, 1.0))


def stochastic_k(highs, lows, closes, live_price=None, period: int = 14, smooth_k: int = 1) -> float:
    """Stochastic %K in [0, 1], optionally averaged over ``smooth_k`` offsets.

    A flat latest window is neutral; flat earlier windows are left out of
    the average.
    """
    h, l, c = _aligned_hlc(highs, lows, closes, None, window=None, ordered_only=False)
    n = c.size
    if period < 1 or n < max(period, _STOCH_MIN_BARS):
        return STOCH_NEUTRAL
    live = _live(live_price)
    values = []
    for offset in range(max(1, int(smooth_k))):
        end = n - offset
        if end < period:
            break
        close = live if (offset == 0 and live is not None) else float(c[end - 1])
        k = _raw_k(h, l, close, end, period)
        if k is None:
            if offset == 0:
                return STOCH_NEUTRAL
            continue
        values.append(k)
    if not values:
        return STOCH_NEUTRAL
    return round(float(np.mean(values)), 4)


def _dx(plus_dm: float, minus_dm: float, tr: float) -> float:
    plus_di = 100.0 * plus_dm / tr
    minus_di = 100.0 * minus_dm / tr
    denominator = plus_di + minus_di
    if denominator <= _DX_EPSILON:
        return 0.0
    return 100.0 * abs(plus_di - minus_di) / denominator


def adx(highs, lows, closes, live_price=None) -> float:
    """ADX(14) over the most recent 260 bars, rounded to 2 decimals."""
    period = _ADX_PERIOD
    h, l, c = _aligned_hlc(highs, lows, closes, live_price)
    if c.size < _ADX_MIN_BARS:
        return ADX_NEUTRAL

    up = h[1:] - h[:-1]
    down = l[:-1] - l[1:]
    plus_dm = np.where((up > down) & (up > 0), up, 0.0)
    minus_dm = np.where((down > up) & (down > 0), down, 0.0)
    tr = _true_range(h, l, c)
    keep = tr > 0
    plus_dm, minus_dm, tr = plus_dm[keep], minus_dm[keep], tr[keep]
    if tr.size < period:
        return ADX_NEUTRAL

    smooth_tr = float(tr[:period].sum())
    smooth_plus = float(plus_dm[:period].sum())
    smooth_minus = float(minus_dm[:period].sum())
    dx = [_dx(smooth_plus, smooth_minus, smooth_tr)]
    for i in range(period, tr.size):
        smooth_tr = smooth_tr - smooth_tr / period + tr[i]
        smooth_plus = smooth_plus - smooth_plus / period + plus_dm[i]
        smooth_minus = smooth_minus - smooth_minus / period + minus_dm[i]
        dx.append(_dx(smooth_plus, smooth_minus, smooth_tr))

    if len(dx) < period:
        return ADX_NEUTRAL
    return round(_wilder_average(np.asarray(dx), period), 2)


def indicator_snapshot(series: PriceSeries, live_price=None) -> dict[str, float]:
    """All five indicators for one security, keyed the way reports print them."""
    snapshot = {
        "rsi": rsi(series.close, live_price),
        "macd_hist": macd_histogram(series.close, live_price),
        "atr": atr(series.high, series.low, series.close, live_price),
        "stoch_k": stochastic_k(series.high, series.low, series.close, live_price),
        "adx": adx(series.high, series.low, series.close, live_price),
    }
    logger.debug("Indicator snapshot (%d bars, live=%s): %s", len(series), live_price, snapshot)
    return snapshot
