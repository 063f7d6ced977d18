"""Value types shared by the indicator library and the pattern pipeline.

Price history is held column-wise in numpy arrays (``PriceSeries``); pattern
detections are frozen dataclasses carrying a per-kind geometry record so each
pattern type has a fixed set of fields.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Union

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class Direction(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class PivotKind(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class PatternFamily(str, Enum):
    REVERSAL = "REVERSAL"
    CONTINUATION = "CONTINUATION"
    BREAKOUT = "BREAKOUT"

    @property
    def priority(self) -> int:
        """Lower value wins ties during overlap resolution."""
        return _FAMILY_PRIORITY[self]


_FAMILY_PRIORITY = {
    PatternFamily.REVERSAL: 0,
    PatternFamily.CONTINUATION: 1,
    PatternFamily.BREAKOUT: 2,
}


class PatternType(str, Enum):
    DOUBLE_TOP = "DOUBLE_TOP"
    DOUBLE_BOTTOM = "DOUBLE_BOTTOM"
    HEAD_SHOULDERS = "HEAD_SHOULDERS"
    INVERSE_HEAD_SHOULDERS = "INVERSE_HEAD_SHOULDERS"
    CUP_HANDLE = "CUP_HANDLE"
    ROUNDING_BOTTOM = "ROUNDING_BOTTOM"
    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    SYMMETRICAL_TRIANGLE = "SYMMETRICAL_TRIANGLE"
    FLAG = "FLAG"
    PENNANT = "PENNANT"
    RISING_WEDGE = "RISING_WEDGE"
    FALLING_WEDGE = "FALLING_WEDGE"
    RECTANGLE = "RECTANGLE"
    BREAKOUT = "BREAKOUT"
    GAP = "GAP"

    @property
    def short_code(self) -> str:
        return _SHORT_CODES[self]

    @property
    def family(self) -> PatternFamily:
        return _FAMILIES[self]


_SHORT_CODES = {
    PatternType.DOUBLE_TOP: "DBL_TOP",
    PatternType.DOUBLE_BOTTOM: "DBL_BTM",
    PatternType.HEAD_SHOULDERS: "H&S",
    PatternType.INVERSE_HEAD_SHOULDERS: "INV_H&S",
    PatternType.CUP_HANDLE: "CUP_HDL",
    PatternType.ROUNDING_BOTTOM: "RND_BTM",
    PatternType.ASCENDING_TRIANGLE: "ASC_TRI",
    PatternType.DESCENDING_TRIANGLE: "DESC_TRI",
    PatternType.SYMMETRICAL_TRIANGLE: "SYM_TRI",
    PatternType.FLAG: "FLAG",
    PatternType.PENNANT: "PENNANT",
    PatternType.RISING_WEDGE: "RISE_WDG",
    PatternType.FALLING_WEDGE: "FALL_WDG",
    PatternType.RECTANGLE: "RECT",
    PatternType.BREAKOUT: "BRKOUT",
    PatternType.GAP: "GAP",
}

_FAMILIES = {
    PatternType.DOUBLE_TOP: PatternFamily.REVERSAL,
    PatternType.DOUBLE_BOTTOM: PatternFamily.REVERSAL,
    PatternType.HEAD_SHOULDERS: PatternFamily.REVERSAL,
    PatternType.INVERSE_HEAD_SHOULDERS: PatternFamily.REVERSAL,
    PatternType.CUP_HANDLE: PatternFamily.REVERSAL,
    PatternType.ROUNDING_BOTTOM: PatternFamily.REVERSAL,
    PatternType.RISING_WEDGE: PatternFamily.REVERSAL,
    PatternType.FALLING_WEDGE: PatternFamily.REVERSAL,
    PatternType.ASCENDING_TRIANGLE: PatternFamily.CONTINUATION,
    PatternType.DESCENDING_TRIANGLE: PatternFamily.CONTINUATION,
    PatternType.SYMMETRICAL_TRIANGLE: PatternFamily.CONTINUATION,
    PatternType.FLAG: PatternFamily.CONTINUATION,
    PatternType.PENNANT: PatternFamily.CONTINUATION,
    PatternType.RECTANGLE: PatternFamily.CONTINUATION,
    PatternType.BREAKOUT: PatternFamily.BREAKOUT,
    PatternType.GAP: PatternFamily.BREAKOUT,
}


class GapKind(str, Enum):
    COMMON = "COMMON"
    BREAKAWAY = "BREAKAWAY"
    RUNAWAY = "RUNAWAY"
    EXHAUSTION = "EXHAUSTION"


# ---------------------------------------------------------------------------
# Price data
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Bar:
    date: Any
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


def _readonly(values: Iterable[float]) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class PriceSeries:
    """Chronological OHLCV history, oldest bar first.

    Rows with missing, non-positive or inconsistent prices (high < low) are
    dropped on construction; a missing volume counts as zero. The arrays are
    read-only so a series can be shared between threads.
    """

    dates: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    def __len__(self) -> int:
        return int(self.close.size)

    def bar(self, i: int) -> Bar:
        return Bar(self.dates[i], float(self.open[i]), float(self.high[i]),
                   float(self.low[i]), float(self.close[i]), float(self.volume[i]))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> PriceSeries:
        """Build from an OHLCV DataFrame (``Open/High/Low/Close/Volume``, any case)."""
        if df is None or df.empty:
            return cls.empty()
        columns = {str(c).lower(): c for c in df.columns}
        missing = [c for c in ("high", "low", "close") if c not in columns]
        if missing:
            raise ValueError(f"price frame is missing columns: {missing}")

        def _col(name: str, default: pd.Series | None = None) -> pd.Series:
            if name not in columns:
                return default
            return pd.to_numeric(df[columns[name]], errors="coerce")

        close = _col("close")
        high = _col("high")
        low = _col("low")
        open_ = _col("open", close)
        volume = _col("volume", pd.Series(0.0, index=df.index)).fillna(0.0).clip(lower=0.0)

        prices = pd.concat([open_, high, low, close], axis=1).to_numpy(dtype=float)
        valid = np.isfinite(prices).all(axis=1) & (prices > 0).all(axis=1)
        valid &= high.to_numpy(dtype=float) >= low.to_numpy(dtype=float)

        if "date" in columns:
            dates = df[columns["date"]].to_numpy()
        else:
            dates = df.index.to_numpy()
        return cls(
            dates=dates[valid],
            open=_readonly(open_.to_numpy(dtype=float)[valid]),
            high=_readonly(high.to_numpy(dtype=float)[valid]),
            low=_readonly(low.to_numpy(dtype=float)[valid]),
            close=_readonly(close.to_numpy(dtype=float)[valid]),
            volume=_readonly(volume.to_numpy(dtype=float)[valid]),
        )

    @classmethod
    def from_bars(cls, bars: Iterable[Bar | dict]) -> PriceSeries:
        rows = [asdict(b) if isinstance(b, Bar) else dict(b) for b in bars]
        if not rows:
            return cls.empty()
        return cls.from_frame(pd.DataFrame(rows))

    @classmethod
    def coerce(cls, data) -> PriceSeries:
        """Accept a PriceSeries, an OHLCV DataFrame or a sequence of bars."""
        if isinstance(data, PriceSeries):
            return data
        if isinstance(data, pd.DataFrame):
            return cls.from_frame(data)
        if data is None:
            return cls.empty()
        return cls.from_bars(data)

    @classmethod
    def empty(cls) -> PriceSeries:
        return cls(np.array([], dtype=object), *(_readonly([]) for _ in range(5)))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"Open": self.open, "High": self.high, "Low": self.low,
             "Close": self.close, "Volume": self.volume},
            index=self.dates,
        )


# ---------------------------------------------------------------------------
# Pivots and key points
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PivotPoint:
    index: int
    price: float
    kind: PivotKind


@dataclass(frozen=True)
class KeyPoint:
    index: int
    price: float
    label: str


# ---------------------------------------------------------------------------
# Per-kind geometry
# ---------------------------------------------------------------------------
def _level_dict(**levels: float | None) -> dict[str, float]:
    return {k: round(float(v), 4) for k, v in levels.items() if v is not None}


@dataclass(frozen=True)
class DoubleExtreme:
    """Two comparable peaks (or troughs) with the neckline between them."""

    first_index: int
    second_index: int
    neckline_index: int
    neckline: float
    difference_pct: float
    depth_pct: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(neckline=self.neckline, target=self.target)


@dataclass(frozen=True)
class HeadShoulders:
    left_index: int
    head_index: int
    right_index: int
    head: float
    neckline: float
    shoulder_difference_pct: float
    height_pct: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(neckline=self.neckline, head=self.head, target=self.target)


@dataclass(frozen=True)
class CupHandle:
    cup_start: int
    cup_bottom_index: int
    cup_end: int
    handle_end: int
    rim_difference_pct: float
    depth_pct: float
    bottom: float
    handle_low: float
    resistance: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.resistance, support=self.bottom,
                           handle_low=self.handle_low, target=self.target)


@dataclass(frozen=True)
class RoundingBottom:
    bottom_index: int
    start_price: float
    end_price: float
    bottom: float
    depth_pct: float
    asymmetry: float
    volume_ratio: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.start_price, support=self.bottom, target=self.target)


@dataclass(frozen=True)
class Line:
    """``price = slope * index + intercept`` fitted through ``touches`` pivots."""

    slope: float
    intercept: float
    r2: float
    touches: int

    def at(self, index: float) -> float:
        return self.slope * index + self.intercept


@dataclass(frozen=True)
class Trendlines:
    """Resistance/support pair for triangles, wedges and pennants.

    ``flat_spread_pct`` is set when one side is a horizontal level (ascending
    and descending triangles); it is the spread of that side's pivots.
    """

    resistance: Line
    support: Line
    start_index: int
    end_index: int
    apex_index: float | None
    flat_spread_pct: float | None = None
    target: float | None = None

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.resistance.at(self.end_index),
                           support=self.support.at(self.end_index), target=self.target)


@dataclass(frozen=True)
class Flag:
    pole_start: int
    pole_end: int
    pole_move_pct: float
    high: float
    low: float
    range_pct: float
    retracement_pct: float
    drift_pct: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.high, support=self.low, target=self.target)


@dataclass(frozen=True)
class Pennant:
    pole_start: int
    pole_end: int
    pole_move_pct: float
    lines: Trendlines
    target: float

    def levels(self) -> dict[str, float]:
        return {**self.lines.levels(), **_level_dict(target=self.target)}


@dataclass(frozen=True)
class Rectangle:
    resistance: float
    support: float
    height_pct: float
    containment: float
    spread_pct: float
    target: float | None

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.resistance, support=self.support, target=self.target)


@dataclass(frozen=True)
class Breakout:
    range_high: float
    range_low: float
    range_pct: float
    volume_ratio: float
    target: float

    def levels(self) -> dict[str, float]:
        return _level_dict(resistance=self.range_high, support=self.range_low, target=self.target)


@dataclass(frozen=True)
class Gap:
    kind: GapKind
    lower: float
    upper: float
    size_pct: float
    trend_pct: float
    filled: bool
    target: float | None = None

    def levels(self) -> dict[str, float]:
        return _level_dict(gap_low=self.lower, gap_high=self.upper, target=self.target)


Geometry = Union[DoubleExtreme, HeadShoulders, CupHandle, RoundingBottom, Trendlines,
                 Flag, Pennant, Rectangle, Breakout, Gap]


# ---------------------------------------------------------------------------
# Pattern
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Pattern:
    """A detected chart pattern.

    Recognizers create patterns with ``confidence == 0``; the scorer derives
    the scored copy through :meth:`with_confidence`.

    ``key_points`` are the pattern's key pivots, each tagged with its role
    (``"head"``, ``"trough1"``, ``"pole_start"``) instead of a HIGH/LOW kind.
    Some of them are plain bars rather than pivots, e.g. the neckline
    extreme between two peaks or a pole origin.
    """

    type: PatternType
    direction: Direction
    start_index: int
    end_index: int
    geometry: Geometry
    key_points: tuple[KeyPoint, ...] = field(default_factory=tuple)
    confirmed: bool = False
    breakout_index: int | None = None
    confidence: float = 0.0

    @property
    def index_range(self) -> tuple[int, int]:
        return self.start_index, self.end_index

    @property
    def length(self) -> int:
        """Bars covered, both ends included."""
        return self.end_index - self.start_index + 1

    @property
    def completion_index(self) -> int:
        return self.breakout_index if self.breakout_index is not None else self.end_index

    @property
    def levels(self) -> dict[str, float]:
        return self.geometry.levels()

    def with_confidence(self, confidence: float) -> Pattern:
        return replace(self, confidence=float(confidence))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "code": self.type.short_code,
            "direction": self.direction.value,
            "index_range": [self.start_index, self.end_index],
            "confirmed": self.confirmed,
            "breakout_index": self.breakout_index,
            "confidence": round(self.confidence, 2),
            "levels": self.levels,
            "key_points": [asdict(k) for k in self.key_points],
            "geometry": _jsonable(asdict(self.geometry)),
        }


def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (np.floating, float)):
        return round(float(value), 4)
    if isinstance(value, np.integer):
        return int(value)
    return value
