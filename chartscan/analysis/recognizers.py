"""Geometric chart-pattern recognizers.

Each ``detect_*`` function takes the price series and one pivot set and
returns the most recent instance of its pattern, or ``None``. Only the last
``_SCAN_WINDOW`` bars are examined and candidates are visited newest first.
Recognizers never score: every pattern leaves here with ``confidence == 0``.

``RECOGNIZERS`` lists them with the pivot window each one expects (10 for
the slow reversal shapes, 5 for everything else).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional, Sequence

import numpy as np

from chartscan.analysis.models import (
    Breakout,
    CupHandle,
    Direction,
    DoubleExtreme,
    Flag,
    Gap,
    GapKind,
    HeadShoulders,
    KeyPoint,
    Line,
    Pattern,
    PatternType,
    Pennant,
    PivotKind,
    PivotPoint,
    PriceSeries,
    Rectangle,
    RoundingBottom,
    Trendlines,
)
from chartscan.analysis.pivots import LONG_WINDOW, SHORT_WINDOW

Pivots = Sequence[PivotPoint]
Detector = Callable[[PriceSeries, Pivots], Optional[Pattern]]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_SCAN_WINDOW = 260             # bars examined per recognizer
_MIN_SPACING = 10              # bars between peaks / shoulders
_DOUBLE_TOL_PCT = 3.0          # peak-to-peak difference for double top/bottom
_MIN_DEPTH_PCT = 10.0          # valley depth / pattern height
_SHOULDER_TOL_PCT = 5.0
_SHOULDER_SPACING_RATIO = 2.5
_CUP_BARS = (30, 130)
_CUP_RIM_TOL_PCT = 5.0
_CUP_BOTTOM_ZONE = (0.3, 0.7)  # bottom position as a fraction of cup width
_HANDLE_BARS = (5, 20)
_HANDLE_RETRACE = (0.10, 0.50)
_ROUND_MAX_ASYMMETRY = 0.40
_ROUND_VOLUME_LIFT = 1.10
_LEVEL_TOL_PCT = 2.0           # "flat" line: pivots within this spread
_MIN_FORMATION_BARS = 15
_PENNANT_MIN_BARS = 8
_BREAKOUT_VOLUME_MULT = 1.5
_SLOPE_RATIO = (0.5, 2.0)
_MAX_LINE_POINTS = 4
_LINE_CUTOFFS = 3
_POLE_BARS = (5, 15)
_POLE_MIN_MOVE_PCT = 10.0
_FLAG_BARS = (5, 20)
_FLAG_MAX_RANGE_PCT = 8.0
_FLAG_MAX_RETRACE_PCT = 38.0
_FLAG_MAX_DRIFT_PCT = 5.0
_RECT_MIN_HEIGHT_PCT = 5.0
_RECT_MIN_CONTAINMENT = 0.70
_RECT_SLACK = 0.02
_RANGE_BARS = (10, 50)
_RANGE_MAX_PCT = 10.0
_GAP_TREND_BARS = 10
_GAP_TREND_PCT = 5.0
_GAP_COMMON_PCT = 2.0
_GAP_EXHAUSTION_PCT = 5.0


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def _scan_start(series: PriceSeries) -> int:
    return max(0, len(series) - _SCAN_WINDOW)


def _recent(pivots: Pivots, series: PriceSeries, kind: PivotKind | None = None) -> list[PivotPoint]:
    start = _scan_start(series)
    return [p for p in pivots if p.index >= start and (kind is None or p.kind is kind)]


def _pct_diff(a: float, b: float) -> float:
    """Absolute difference as a percentage of the pair's mean."""
    mean = (a + b) / 2.0
    return abs(a - b) / mean * 100.0 if mean > 0 else float("inf")


def _spread_pct(points: Sequence) -> float:
    prices = np.array([p.price for p in points], dtype=float)
    return float((prices.max() - prices.min()) / prices.mean() * 100.0)


def _depth_pct(points: Sequence) -> float:
    prices = [p.price for p in points]
    highest = max(prices)
    if highest <= 0:
        return 0.0
    return (highest - min(prices)) / highest * 100.0


def has_minimum_spacing(points: Sequence, min_bars: int) -> bool:
    """True when consecutive points are at least ``min_bars`` apart."""
    if len(points) < 2:
        return False
    return all(b.index - a.index >= min_bars for a, b in zip(points, points[1:]))


def has_minimum_depth(points: Sequence, min_pct: float) -> bool:
    """True when the points span at least ``min_pct`` of their highest price."""
    if len(points) < 2 or not all(np.isfinite(p.price) for p in points):
        return False
    return _depth_pct(points) >= min_pct


def _fit_line(points: Sequence[PivotPoint]) -> Line:
    x = np.array([p.index for p in points], dtype=float)
    y = np.array([p.price for p in points], dtype=float)
    if x.size < 2:
        return Line(0.0, float(y.mean()) if y.size else 0.0, 0.0, int(x.size))
    slope, intercept = np.polyfit(x, y, 1)
    y_hat = slope * x + intercept
    ss_res = float(np.sum((y - y_hat) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r2 = 0.0 if ss_tot == 0 else max(0.0, 1.0 - ss_res / ss_tot)
    return Line(float(slope), float(intercept), r2, int(x.size))


def _extreme_between(series: PriceSeries, a: int, b: int, lowest: bool) -> tuple[int, float]:
    """Lowest low (or highest high) strictly between bars ``a`` and ``b``."""
    if lowest:
        k = a + 1 + int(np.argmin(series.low[a + 1:b]))
        return k, float(series.low[k])
    k = a + 1 + int(np.argmax(series.high[a + 1:b]))
    return k, float(series.high[k])


def _first_close_beyond(series: PriceSeries, after: int, level: float, above: bool,
                        min_volume: float | None = None) -> int | None:
    """Index of the first close after ``after`` that is above/below ``level``."""
    closes = series.close[after + 1:]
    hits = closes > level if above else closes < level
    if min_volume is not None:
        hits &= series.volume[after + 1:] >= min_volume
    found = np.flatnonzero(hits)
    return int(found[0]) + after + 1 if found.size else None


def _line_breakout(series: PriceSeries, lines: Trendlines,
                   volume_mult: float = 0.0) -> tuple[int | None, Direction]:
    """First close outside the trendlines after the formation ends."""
    after = lines.end_index
    idx = np.arange(after + 1, len(series))
    if idx.size == 0:
        return None, Direction.NEUTRAL
    closes = series.close[after + 1:]
    volume_ok = series.volume[after + 1:] >= volume_mult * series.volume[lines.start_index:after + 1].mean()
    up = (closes > lines.resistance.at(idx)) & volume_ok
    down = (closes < lines.support.at(idx)) & volume_ok
    hits = np.flatnonzero(up | down)
    if not hits.size:
        return None, Direction.NEUTRAL
    k = hits[0]
    return int(idx[k]), Direction.BULLISH if up[k] else Direction.BEARISH


def _labelled(points: Sequence[PivotPoint], label: str) -> list[KeyPoint]:
    return [KeyPoint(p.index, p.price, f"{label}{i + 1}") for i, p in enumerate(points)]


# ---------------------------------------------------------------------------
# Double top / double bottom
# ---------------------------------------------------------------------------
def _detect_double(series: PriceSeries, pivots: Pivots, top: bool) -> Pattern | None:
    extremes = _recent(pivots, series, PivotKind.HIGH if top else PivotKind.LOW)
    for j in range(len(extremes) - 1, 0, -1):
        second = extremes[j]
        for i in range(j - 1, -1, -1):
            first = extremes[i]
            if not has_minimum_spacing((first, second), _MIN_SPACING):
                continue
            difference = _pct_diff(first.price, second.price)
            if difference > _DOUBLE_TOL_PCT:
                continue
            inner = slice(first.index + 1, second.index)
            if top and series.high[inner].max() > max(first.price, second.price):
                continue
            if not top and series.low[inner].min() < min(first.price, second.price):
                continue
            neck_index, neckline = _extreme_between(series, first.index, second.index, lowest=top)
            label = "peak" if top else "trough"
            key_points = (
                KeyPoint(first.index, first.price, f"{label}1"),
                KeyPoint(neck_index, neckline, "valley" if top else "peak"),
                KeyPoint(second.index, second.price, f"{label}2"),
            )
            if not has_minimum_depth(key_points, _MIN_DEPTH_PCT):
                continue

            height = abs((first.price + second.price) / 2.0 - neckline)
            breakout = _first_close_beyond(series, second.index, neckline, above=not top)
            return Pattern(
                type=PatternType.DOUBLE_TOP if top else PatternType.DOUBLE_BOTTOM,
                direction=Direction.BEARISH if top else Direction.BULLISH,
                start_index=first.index,
                end_index=second.index,
                geometry=DoubleExtreme(
                    first_index=first.index,
                    second_index=second.index,
                    neckline_index=neck_index,
                    neckline=neckline,
                    difference_pct=difference,
                    depth_pct=_depth_pct(key_points),
                    target=neckline - height if top else neckline + height,
                ),
                key_points=key_points,
                confirmed=breakout is not None,
                breakout_index=breakout,
            )
    return None


def detect_double_top(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_double(series, pivots, top=True)


def detect_double_bottom(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_double(series, pivots, top=False)


# ---------------------------------------------------------------------------
# Head and shoulders / inverse
# ---------------------------------------------------------------------------
def _detect_head_shoulders(series: PriceSeries, pivots: Pivots, top: bool) -> Pattern | None:
    extremes = _recent(pivots, series, PivotKind.HIGH if top else PivotKind.LOW)
    sign = 1.0 if top else -1.0
    for j in range(len(extremes) - 1, 1, -1):
        left, head, right = extremes[j - 2], extremes[j - 1], extremes[j]
        if sign * (head.price - left.price) <= 0 or sign * (head.price - right.price) <= 0:
            continue
        if not has_minimum_spacing((left, head, right), _MIN_SPACING):
            continue
        spacings = (head.index - left.index, right.index - head.index)
        if max(spacings) / min(spacings) > _SHOULDER_SPACING_RATIO:
            continue
        shoulder_difference = _pct_diff(left.price, right.price)
        if shoulder_difference > _SHOULDER_TOL_PCT:
            continue

        first_index, first = _extreme_between(series, left.index, head.index, lowest=top)
        second_index, second = _extreme_between(series, head.index, right.index, lowest=top)
        neckline = (first + second) / 2.0
        if sign * (left.price - neckline) <= 0 or sign * (right.price - neckline) <= 0:
            continue
        height = abs(head.price - neckline)
        height_pct = height / head.price * 100.0
        if height_pct < _MIN_DEPTH_PCT:
            continue

        breakout = _first_close_beyond(series, right.index, neckline, above=not top)
        neck_label = "trough" if top else "peak"
        return Pattern(
            type=PatternType.HEAD_SHOULDERS if top else PatternType.INVERSE_HEAD_SHOULDERS,
            direction=Direction.BEARISH if top else Direction.BULLISH,
            start_index=left.index,
            end_index=right.index,
            geometry=HeadShoulders(
                left_index=left.index,
                head_index=head.index,
                right_index=right.index,
                head=head.price,
                neckline=neckline,
                shoulder_difference_pct=shoulder_difference,
                height_pct=height_pct,
                target=neckline - height if top else neckline + height,
            ),
            key_points=(
                KeyPoint(left.index, left.price, "left_shoulder"),
                KeyPoint(first_index, first, f"{neck_label}1"),
                KeyPoint(head.index, head.price, "head"),
                KeyPoint(second_index, second, f"{neck_label}2"),
                KeyPoint(right.index, right.price, "right_shoulder"),
            ),
            confirmed=breakout is not None,
            breakout_index=breakout,
        )
    return None


def detect_head_shoulders(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_head_shoulders(series, pivots, top=True)


def detect_inverse_head_shoulders(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_head_shoulders(series, pivots, top=False)


# ---------------------------------------------------------------------------
# Cup and handle / rounding bottom
# ---------------------------------------------------------------------------
def _find_handle(series: PriceSeries, rim: PivotPoint, bottom: float):
    """Shortest handle after the right rim retracing 10-50% of the cup advance."""
    advance = rim.price - bottom
    if advance <= 0:
        return None
    for length in range(_HANDLE_BARS[0], _HANDLE_BARS[1] + 1):
        end = rim.index + length
        if end >= len(series):
            return None
        lows = series.low[rim.index + 1:end + 1]
        k = int(np.argmin(lows))
        retrace = (rim.price - lows[k]) / advance
        if retrace > _HANDLE_RETRACE[1]:
            return None
        if retrace >= _HANDLE_RETRACE[0]:
            handle_high = float(series.high[rim.index + 1:end + 1].max())
            return end, rim.index + 1 + k, float(lows[k]), handle_high
    return None


def detect_cup_handle(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    highs = _recent(pivots, series, PivotKind.HIGH)
    for j in range(len(highs) - 1, 0, -1):
        right = highs[j]
        for i in range(j - 1, -1, -1):
            left = highs[i]
            width = right.index - left.index
            if width < _CUP_BARS[0]:
                continue
            if width > _CUP_BARS[1]:
                break
            rim_difference = _pct_diff(left.price, right.price)
            if rim_difference > _CUP_RIM_TOL_PCT:
                continue
            bottom_index, bottom = _extreme_between(series, left.index, right.index, lowest=True)
            rim = (left.price + right.price) / 2.0
            depth_pct = (rim - bottom) / rim * 100.0
            if depth_pct < _MIN_DEPTH_PCT:
                continue
            position = (bottom_index - left.index) / width
            if not _CUP_BOTTOM_ZONE[0] <= position <= _CUP_BOTTOM_ZONE[1]:
                continue
            handle = _find_handle(series, right, bottom)
            if handle is None:
                continue
            # a close back under the cup bottom breaks the pattern
            if (series.close[right.index + 1:] < bottom).any():
                continue

            handle_end, handle_low_index, handle_low, handle_high = handle
            resistance = max(right.price, handle_high)
            breakout = _first_close_beyond(series, handle_end, resistance, above=True)
            return Pattern(
                type=PatternType.CUP_HANDLE,
                direction=Direction.BULLISH,
                start_index=left.index,
                end_index=handle_end,
                geometry=CupHandle(
                    cup_start=left.index,
                    cup_bottom_index=bottom_index,
                    cup_end=right.index,
                    handle_end=handle_end,
                    rim_difference_pct=rim_difference,
                    depth_pct=depth_pct,
                    bottom=bottom,
                    handle_low=handle_low,
                    resistance=resistance,
                    target=resistance + (rim - bottom),
                ),
                key_points=(
                    KeyPoint(left.index, left.price, "left_rim"),
                    KeyPoint(bottom_index, bottom, "cup_bottom"),
                    KeyPoint(right.index, right.price, "right_rim"),
                    KeyPoint(handle_low_index, handle_low, "handle_low"),
                ),
                confirmed=breakout is not None,
                breakout_index=breakout,
            )
    return None


def detect_rounding_bottom(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    lows = _recent(pivots, series, PivotKind.LOW)
    highs = _recent(pivots, series, PivotKind.HIGH)
    closes = series.close
    for bottom_pivot in reversed(lows):
        b = bottom_pivot.index
        for start_pivot in reversed([h for h in highs if h.index < b]):
            s = start_pivot.index
            if b - s > _CUP_BARS[1]:
                break
            start_price = float(closes[s])
            e = _first_close_beyond(series, b, start_price * (1 - _CUP_RIM_TOL_PCT / 100.0), above=True)
            if e is None or not _CUP_BARS[0] <= e - s <= _CUP_BARS[1]:
                continue
            bottom = float(closes[s:e + 1].min())
            depth_pct = (start_price - bottom) / start_price * 100.0
            if depth_pct < _MIN_DEPTH_PCT:
                continue
            decline, recovery = b - s, e - b
            asymmetry = abs(decline - recovery) / max(decline, recovery)
            if asymmetry > _ROUND_MAX_ASYMMETRY:
                continue
            decline_volume = float(series.volume[s:b].mean())
            recovery_volume = float(series.volume[b + 1:e + 1].mean())
            if decline_volume <= 0 or recovery_volume < decline_volume * _ROUND_VOLUME_LIFT:
                continue
            if (closes[e + 1:] < bottom).any():
                continue

            breakout = _first_close_beyond(series, b, start_price, above=True)
            return Pattern(
                type=PatternType.ROUNDING_BOTTOM,
                direction=Direction.BULLISH,
                start_index=s,
                end_index=e,
                geometry=RoundingBottom(
                    bottom_index=b,
                    start_price=start_price,
                    end_price=float(closes[e]),
                    bottom=bottom,
                    depth_pct=depth_pct,
                    asymmetry=asymmetry,
                    volume_ratio=recovery_volume / decline_volume,
                    target=start_price + (start_price - bottom),
                ),
                key_points=(
                    KeyPoint(s, start_price, "start"),
                    KeyPoint(b, bottom_pivot.price, "bottom"),
                    KeyPoint(e, float(closes[e]), "end"),
                ),
                confirmed=breakout is not None,
                breakout_index=breakout,
            )
    return None


# ---------------------------------------------------------------------------
# Trendline formations: triangles, wedges, rectangle
# ---------------------------------------------------------------------------
def _line_candidates(series: PriceSeries, pivots: Pivots) -> Iterator[tuple[list, list]]:
    """Trailing runs of 2-4 pivot highs and lows, newest formations first.

    Each of the last few pivot indices is tried as the formation's end so a
    pattern that has already broken out is still visible.
    """
    recent = _recent(pivots, series)
    all_highs = [p for p in recent if p.kind is PivotKind.HIGH]
    all_lows = [p for p in recent if p.kind is PivotKind.LOW]
    if len(all_highs) < 2 or len(all_lows) < 2:
        return
    cutoffs = sorted({p.index for p in recent}, reverse=True)[:_LINE_CUTOFFS]
    seen = set()
    for cutoff in cutoffs:
        highs = [p for p in all_highs if p.index <= cutoff]
        lows = [p for p in all_lows if p.index <= cutoff]
        for nh in range(min(_MAX_LINE_POINTS, len(highs)), 1, -1):
            for nl in range(min(_MAX_LINE_POINTS, len(lows)), 1, -1):
                hs, ls = highs[-nh:], lows[-nl:]
                key = (hs[0].index, hs[-1].index, ls[0].index, ls[-1].index, nh, nl)
                if key in seen:
                    continue
                seen.add(key)
                yield hs, ls


def _trendlines(highs: Sequence[PivotPoint], lows: Sequence[PivotPoint],
                flat: PivotKind | None = None,
                min_span: int = _MIN_FORMATION_BARS) -> Trendlines | None:
    """Fit resistance/support and keep the pair only if it converges ahead."""
    start = min(highs[0].index, lows[0].index)
    end = max(highs[-1].index, lows[-1].index)
    if end - start < min_span:
        return None
    # both sides must be touched during the same stretch of bars
    if max(highs[0].index, lows[0].index) >= min(highs[-1].index, lows[-1].index):
        return None

    resistance, support = _fit_line(highs), _fit_line(lows)
    flat_spread = None
    if flat is not None:
        side = highs if flat is PivotKind.HIGH else lows
        flat_spread = _spread_pct(side)
        if flat_spread > _LEVEL_TOL_PCT:
            return None
        level = Line(0.0, float(np.mean([p.price for p in side])), 1.0 - flat_spread / _LEVEL_TOL_PCT, len(side))
        if flat is PivotKind.HIGH:
            resistance = level
        else:
            support = level

    if resistance.at(start) <= support.at(start) or resistance.at(end) <= support.at(end):
        return None
    closing_rate = resistance.slope - support.slope
    if closing_rate >= 0:
        return None
    apex = (support.intercept - resistance.intercept) / closing_rate
    if apex <= end:
        return None
    return Trendlines(resistance, support, start, end, float(apex), flat_spread)


def _slope_ratio_ok(lines: Trendlines) -> bool:
    if lines.support.slope == 0:
        return False
    ratio = abs(lines.resistance.slope) / abs(lines.support.slope)
    return _SLOPE_RATIO[0] <= ratio <= _SLOPE_RATIO[1]


def _trendline_pattern(pattern_type: PatternType, direction: Direction, lines: Trendlines,
                       highs, lows, breakout: int | None) -> Pattern:
    height = lines.resistance.at(lines.start_index) - lines.support.at(lines.start_index)
    target = None
    if breakout is not None and direction is Direction.BULLISH:
        target = lines.resistance.at(breakout) + height
    elif breakout is not None and direction is Direction.BEARISH:
        target = lines.support.at(breakout) - height
    key_points = sorted(_labelled(highs, "resistance") + _labelled(lows, "support"), key=lambda k: k.index)
    return Pattern(
        type=pattern_type,
        direction=direction,
        start_index=lines.start_index,
        end_index=lines.end_index,
        geometry=replace(lines, target=target),
        key_points=tuple(key_points),
        confirmed=breakout is not None,
        breakout_index=breakout,
    )


def _detect_flat_triangle(series: PriceSeries, pivots: Pivots, ascending: bool) -> Pattern | None:
    wanted = Direction.BULLISH if ascending else Direction.BEARISH
    for highs, lows in _line_candidates(series, pivots):
        lines = _trendlines(highs, lows, flat=PivotKind.HIGH if ascending else PivotKind.LOW)
        if lines is None:
            continue
        if ascending and lines.support.slope <= 0:
            continue
        if not ascending and lines.resistance.slope >= 0:
            continue
        breakout, direction = _line_breakout(series, lines, _BREAKOUT_VOLUME_MULT)
        if breakout is not None and direction is not wanted:
            continue
        return _trendline_pattern(
            PatternType.ASCENDING_TRIANGLE if ascending else PatternType.DESCENDING_TRIANGLE,
            wanted, lines, highs, lows, breakout,
        )
    return None


def detect_ascending_triangle(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_flat_triangle(series, pivots, ascending=True)


def detect_descending_triangle(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_flat_triangle(series, pivots, ascending=False)


def detect_symmetrical_triangle(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    for highs, lows in _line_candidates(series, pivots):
        lines = _trendlines(highs, lows)
        if lines is None or not lines.resistance.slope < 0 < lines.support.slope:
            continue
        if not _slope_ratio_ok(lines):
            continue
        breakout, direction = _line_breakout(series, lines, _BREAKOUT_VOLUME_MULT)
        return _trendline_pattern(PatternType.SYMMETRICAL_TRIANGLE, direction, lines, highs, lows, breakout)
    return None


def _detect_wedge(series: PriceSeries, pivots: Pivots, rising: bool) -> Pattern | None:
    wanted = Direction.BEARISH if rising else Direction.BULLISH
    for highs, lows in _line_candidates(series, pivots):
        lines = _trendlines(highs, lows)
        if lines is None:
            continue
        slopes = (lines.resistance.slope, lines.support.slope)
        if rising and not min(slopes) > 0:
            continue
        if not rising and not max(slopes) < 0:
            continue
        breakout, direction = _line_breakout(series, lines)
        if breakout is not None and direction is not wanted:
            continue
        return _trendline_pattern(
            PatternType.RISING_WEDGE if rising else PatternType.FALLING_WEDGE,
            wanted, lines, highs, lows, breakout,
        )
    return None


def detect_rising_wedge(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_wedge(series, pivots, rising=True)


def detect_falling_wedge(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    return _detect_wedge(series, pivots, rising=False)


def detect_rectangle(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    for highs, lows in _line_candidates(series, pivots):
        spread = max(_spread_pct(highs), _spread_pct(lows))
        if spread > _LEVEL_TOL_PCT:
            continue
        start = min(highs[0].index, lows[0].index)
        end = max(highs[-1].index, lows[-1].index)
        if end - start < _MIN_FORMATION_BARS:
            continue
        resistance = float(np.mean([p.price for p in highs]))
        support = float(np.mean([p.price for p in lows]))
        height_pct = (resistance - support) / support * 100.0
        if height_pct < _RECT_MIN_HEIGHT_PCT:
            continue
        closes = series.close[start:end + 1]
        inside = (closes <= resistance * (1 + _RECT_SLACK)) & (closes >= support * (1 - _RECT_SLACK))
        containment = float(inside.mean())
        if containment < _RECT_MIN_CONTAINMENT:
            continue

        up = _first_close_beyond(series, end, resistance, above=True)
        down = _first_close_beyond(series, end, support, above=False)
        height = resistance - support
        breakout, direction, target = None, Direction.NEUTRAL, None
        if up is not None and (down is None or up < down):
            breakout, direction, target = up, Direction.BULLISH, resistance + height
        elif down is not None:
            breakout, direction, target = down, Direction.BEARISH, support - height
        key_points = sorted(_labelled(highs, "resistance") + _labelled(lows, "support"), key=lambda k: k.index)
        return Pattern(
            type=PatternType.RECTANGLE,
            direction=direction,
            start_index=start,
            end_index=end,
            geometry=Rectangle(resistance, support, height_pct, containment, spread, target),
            key_points=tuple(key_points),
            confirmed=breakout is not None,
            breakout_index=breakout,
        )
    return None


# ---------------------------------------------------------------------------
# Flag / pennant
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class _Pole:
    start: int
    end: int
    move_pct: float
    height: float

    @property
    def direction(self) -> Direction:
        return Direction.BULLISH if self.move_pct > 0 else Direction.BEARISH


def _poles(series: PriceSeries) -> Iterator[_Pole]:
    """Strongest 5-15 bar move of at least 10% ending at each bar, newest first.

    The pole must end on its own extreme close, and leaves room for at least
    a minimal consolidation afterwards.
    """
    closes = series.close
    scan_start = _scan_start(series)
    for end in range(len(series) - 1 - _FLAG_BARS[0], scan_start + _POLE_BARS[0] - 1, -1):
        first = max(scan_start, end - _POLE_BARS[1])
        last = end - _POLE_BARS[0]
        if last < first:
            continue
        origins = closes[first:last + 1]
        moves = (closes[end] - origins) / origins * 100.0
        strength = np.abs(moves)
        # latest origin among equal moves, so flat bars stay out of the pole
        k = strength.size - 1 - int(np.argmax(strength[::-1]))
        if abs(moves[k]) < _POLE_MIN_MOVE_PCT:
            continue
        start = first + k
        segment = closes[start:end + 1]
        if moves[k] > 0 and closes[end] < segment.max():
            continue
        if moves[k] < 0 and closes[end] > segment.min():
            continue
        yield _Pole(start, end, float(moves[k]), float(abs(closes[end] - closes[start])))


def detect_flag(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    n = len(series)
    for pole in _poles(series):
        bullish = pole.direction is Direction.BULLISH
        e = pole.end
        for length in range(_FLAG_BARS[1], _FLAG_BARS[0] - 1, -1):
            c_end = e + length
            if c_end >= n:
                continue
            high = float(series.high[e + 1:c_end + 1].max())
            low = float(series.low[e + 1:c_end + 1].min())
            range_pct = (high - low) / ((high + low) / 2.0) * 100.0
            if range_pct >= _FLAG_MAX_RANGE_PCT:
                continue
            retrace = series.close[e] - low if bullish else high - series.close[e]
            retracement_pct = max(0.0, float(retrace)) / pole.height * 100.0
            if retracement_pct > _FLAG_MAX_RETRACE_PCT:
                continue
            first_close = series.close[e + 1]
            drift_pct = float((series.close[c_end] - first_close) / first_close * 100.0)
            if (bullish and drift_pct > 0) or (not bullish and drift_pct < 0):
                continue
            if abs(drift_pct) > _FLAG_MAX_DRIFT_PCT:
                continue

            breakout = _first_close_beyond(series, c_end, high if bullish else low, above=bullish)
            return Pattern(
                type=PatternType.FLAG,
                direction=pole.direction,
                start_index=pole.start,
                end_index=c_end,
                geometry=Flag(
                    pole_start=pole.start,
                    pole_end=e,
                    pole_move_pct=pole.move_pct,
                    high=high,
                    low=low,
                    range_pct=range_pct,
                    retracement_pct=retracement_pct,
                    drift_pct=drift_pct,
                    target=high + pole.height if bullish else low - pole.height,
                ),
                key_points=(
                    KeyPoint(pole.start, float(series.close[pole.start]), "pole_start"),
                    KeyPoint(e, float(series.close[e]), "pole_end"),
                    KeyPoint(c_end, float(series.close[c_end]), "flag_end"),
                ),
                confirmed=breakout is not None,
                breakout_index=breakout,
            )
    return None


def detect_pennant(series: PriceSeries, pivots: Pivots) -> Pattern | None:
    recent = _recent(pivots, series)
    for pole in _poles(series):
        window = [p for p in recent if pole.end <= p.index <= pole.end + _FLAG_BARS[1]]
        highs = [p for p in window if p.kind is PivotKind.HIGH][:_MAX_LINE_POINTS]
        lows = [p for p in window if p.kind is PivotKind.LOW][:_MAX_LINE_POINTS]
        if len(highs) < 2 or len(lows) < 2:
            continue
        lines = _trendlines(highs, lows, min_span=_PENNANT_MIN_BARS)
        if lines is None or not lines.resistance.slope < 0 < lines.support.slope:
            continue
        if not _slope_ratio_ok(lines):
            continue
        breakout, direction = _line_breakout(series, lines)
        if breakout is not None and direction is not pole.direction:
            continue

        bullish = pole.direction is Direction.BULLISH
        level = lines.resistance.at(lines.end_index) if bullish else lines.support.at(lines.end_index)
        key_points = sorted(
            [KeyPoint(pole.start, float(series.close[pole.start]), "pole_start")]
            + _labelled(highs, "resistance") + _labelled(lows, "support"),
            key=lambda k: k.index,
        )
        return Pattern(
            type=PatternType.PENNANT,
            direction=pole.direction,
            start_index=pole.start,
            end_index=lines.end_index,
            geometry=Pennant(
                pole_start=pole.start,
                pole_end=pole.end,
                pole_move_pct=pole.move_pct,
                lines=lines,
                target=level + pole.height if bullish else level - pole.height,
            ),
            key_points=tuple(key_points),
            confirmed=breakout is not None,
            breakout_index=breakout,
        )
    return None


# ---------------------------------------------------------------------------
# Breakout / gap (raw bars only)
# ---------------------------------------------------------------------------
def detect_breakout(series: PriceSeries, pivots: Pivots = ()) -> Pattern | None:
    """Close beyond a tight 10-50 bar range on 1.5x the range's volume."""
    scan_start = _scan_start(series)
    min_len, max_len = _RANGE_BARS
    for b in range(len(series) - 1, scan_start + min_len - 1, -1):
        depth = min(max_len, b - scan_start)
        window = slice(b - depth, b)
        # running extremes looking backwards from the bar before ``b``
        run_high = np.maximum.accumulate(series.high[window][::-1])
        run_low = np.minimum.accumulate(series.low[window][::-1])
        avg_volume = np.cumsum(series.volume[window][::-1]) / np.arange(1, depth + 1)
        range_pct = (run_high - run_low) / ((run_high + run_low) / 2.0) * 100.0

        close, volume = series.close[b], series.volume[b]
        up, down = close > run_high, close < run_low
        ok = (np.arange(1, depth + 1) >= min_len) & (range_pct < _RANGE_MAX_PCT) & (up | down)
        ok &= (avg_volume > 0) & (volume >= _BREAKOUT_VOLUME_MULT * avg_volume)
        candidates = np.flatnonzero(ok)
        if not candidates.size:
            continue

        k = int(candidates[-1])
        length = k + 1
        high, low = float(run_high[k]), float(run_low[k])
        bullish = bool(up[k])
        return Pattern(
            type=PatternType.BREAKOUT,
            direction=Direction.BULLISH if bullish else Direction.BEARISH,
            start_index=b - length,
            end_index=b,
            geometry=Breakout(
                range_high=high,
                range_low=low,
                range_pct=float(range_pct[k]),
                volume_ratio=float(volume / avg_volume[k]),
                target=high + (high - low) if bullish else low - (high - low),
            ),
            key_points=(
                KeyPoint(b - length, float(series.close[b - length]), "range_start"),
                KeyPoint(b, float(close), "breakout"),
            ),
            confirmed=True,
            breakout_index=b,
        )
    return None


def _classify_gap(size_pct: float, with_trend: bool) -> GapKind:
    if size_pct < _GAP_COMMON_PCT:
        return GapKind.COMMON
    if not with_trend:
        return GapKind.BREAKAWAY
    return GapKind.RUNAWAY if size_pct < _GAP_EXHAUSTION_PCT else GapKind.EXHAUSTION


def detect_gap(series: PriceSeries, pivots: Pivots = ()) -> Pattern | None:
    """Most recent price gap, skipping common gaps that have already filled."""
    high, low, close = series.high, series.low, series.close
    for i in range(len(series) - 1, max(1, _scan_start(series)) - 1, -1):
        if low[i] > high[i - 1]:
            up, lower, upper = True, float(high[i - 1]), float(low[i])
        elif high[i] < low[i - 1]:
            up, lower, upper = False, float(high[i]), float(low[i - 1])
        else:
            continue
        size_pct = (upper - lower) / close[i - 1] * 100.0

        trend_pct = 0.0
        lookback = min(_GAP_TREND_BARS, i)
        if lookback >= 5:
            base = close[i - lookback]
            trend_pct = float((close[i - 1] - base) / base * 100.0)
        with_trend = trend_pct > _GAP_TREND_PCT if up else trend_pct < -_GAP_TREND_PCT
        kind = _classify_gap(size_pct, with_trend)

        if up:
            filled = bool((low[i + 1:] <= upper).any())
        else:
            filled = bool((high[i + 1:] >= lower).any())
        if filled and kind is GapKind.COMMON:
            continue

        gap_size = upper - lower
        if kind is GapKind.EXHAUSTION:
            target = lower if up else upper
        else:
            target = close[i] + gap_size if up else close[i] - gap_size
        return Pattern(
            type=PatternType.GAP,
            direction=Direction.BULLISH if up else Direction.BEARISH,
            start_index=i - 1,
            end_index=i,
            geometry=Gap(kind, lower, upper, float(size_pct), trend_pct, filled, float(target)),
            key_points=(
                KeyPoint(i - 1, float(close[i - 1]), "pre_gap"),
                KeyPoint(i, float(series.open[i]), "post_gap"),
            ),
            confirmed=not filled,
            breakout_index=None if filled else i,
        )
    return None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Recognizer:
    name: str
    detect: Detector
    window: int


RECOGNIZERS: tuple[Recognizer, ...] = (
    Recognizer("double_top", detect_double_top, LONG_WINDOW),
    Recognizer("double_bottom", detect_double_bottom, LONG_WINDOW),
    Recognizer("head_shoulders", detect_head_shoulders, LONG_WINDOW),
    Recognizer("inverse_head_shoulders", detect_inverse_head_shoulders, LONG_WINDOW),
    Recognizer("cup_handle", detect_cup_handle, LONG_WINDOW),
    Recognizer("rounding_bottom", detect_rounding_bottom, LONG_WINDOW),
    Recognizer("ascending_triangle", detect_ascending_triangle, SHORT_WINDOW),
    Recognizer("descending_triangle", detect_descending_triangle, SHORT_WINDOW),
    Recognizer("symmetrical_triangle", detect_symmetrical_triangle, SHORT_WINDOW),
    Recognizer("flag", detect_flag, SHORT_WINDOW),
    Recognizer("pennant", detect_pennant, SHORT_WINDOW),
    Recognizer("rising_wedge", detect_rising_wedge, SHORT_WINDOW),
    Recognizer("falling_wedge", detect_falling_wedge, SHORT_WINDOW),
    Recognizer("rectangle", detect_rectangle, SHORT_WINDOW),
    Recognizer("breakout", detect_breakout, SHORT_WINDOW),
    Recognizer("gap", detect_gap, SHORT_WINDOW),
)
