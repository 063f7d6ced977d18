from .models import Direction, Pattern, PatternFamily, PatternType, PivotKind, PivotPoint, PriceSeries
from .indicators import adx, atr, indicator_snapshot, macd_histogram, rsi, stochastic_k
from .pivots import find_pivots, pivot_set
from .recognizers import RECOGNIZERS, Recognizer
from .scoring import ConfidenceScorer, score_pattern
from .prioritizer import overlap_ratio, prioritize
