"""Pivot (swing high / swing low) extraction.

A bar is a pivot HIGH when its value is strictly greater than every other
value in ``[i - left, i + right]``; a pivot LOW is the strict minimum. Ties and
NaN neighbours disqualify, and bars closer than the window to either end of
the series are never pivots.
"""

from __future__ import annotations

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from chartscan.analysis.models import PivotKind, PivotPoint, PriceSeries

SHORT_WINDOW = 5    # triangles, flags, pennants, wedges, rectangle, breakout
LONG_WINDOW = 10    # double tops/bottoms, head and shoulders, cup, rounding bottom


def find_pivots(values, left: int, right: int | None = None,
                kind: PivotKind = PivotKind.HIGH) -> list[PivotPoint]:
    """Return pivots of one ``kind`` in index order."""
    right = left if right is None else right
    if left < 1 or right < 1:
        raise ValueError(f"pivot windows must be >= 1 (got left={left}, right={right})")
    arr = np.asarray(values, dtype=float).ravel()
    width = left + right + 1
    if arr.size < width:
        return []

    windows = sliding_window_view(arr, width)
    centre = windows[:, left]
    others = np.delete(windows, left, axis=1)
    if kind is PivotKind.HIGH:
        mask = (others < centre[:, None]).all(axis=1)
    else:
        mask = (others > centre[:, None]).all(axis=1)

    return [PivotPoint(int(i) + left, float(arr[int(i) + left]), kind) for i in np.flatnonzero(mask)]


def pivot_set(series: PriceSeries, window: int) -> tuple[PivotPoint, ...]:
    """Pivot highs from the highs and pivot lows from the lows, merged by index."""
    highs = find_pivots(series.high, window, window, PivotKind.HIGH)
    lows = find_pivots(series.low, window, window, PivotKind.LOW)
    merged = sorted(highs + lows, key=lambda p: (p.index, p.kind is PivotKind.LOW))
    return tuple(merged)
