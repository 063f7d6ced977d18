"""Compact pattern strings and the per-ticker cache that serves them.

The display form is ``"DBL_TOP (89%) | FLAG (64%)"``: short code and rounded
confidence, strongest first, pipe separated. Strings are cached per ticker so
repeated lookups do not rerun detection.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from chartscan.analysis.models import Pattern
from chartscan.config import DetectionConfig
from chartscan.pipeline.engine import PatternDetectionPipeline, scan_securities
from chartscan.utils.cache import PatternCache
from chartscan.utils.logger import setup_logger

logger = setup_logger("summary")

SEPARATOR = " | "


def format_patterns(patterns: Sequence[Pattern], min_confidence: float = 60.0) -> str:
    """Serialise patterns at or above ``min_confidence``; empty string if none."""
    parts = [
        f"{p.type.short_code} ({round(p.confidence)}%)"
        for p in patterns
        if p is not None and p.confidence >= min_confidence
    ]
    return SEPARATOR.join(parts)


def patterns_to_records(patterns: Sequence[Pattern]) -> list[dict]:
    return [p.to_dict() for p in patterns]


def get_patterns(
    ticker: str,
    data,
    cache: PatternCache | None = None,
    pipeline: PatternDetectionPipeline | None = None,
) -> str:
    """Cached pattern string for ``ticker``, detecting and caching on a miss.

    ``data`` may be the price history itself or a zero-argument callable
    producing it, so a cache hit never touches the data source.
    """
    if not ticker:
        return ""
    cache = cache or PatternCache()
    cached = cache.get(ticker)
    if cached is not None:
        logger.debug("Cache hit for %s: %r", ticker, cached)
        return cached

    pipeline = pipeline or PatternDetectionPipeline(DetectionConfig.from_settings())
    try:
        history = data() if callable(data) else data
        patterns = pipeline.run(history)
        pattern_string = format_patterns(patterns, pipeline.config.min_confidence)
    except Exception as e:
        logger.error("Error recalculating patterns for %s: %s", ticker, e)
        pattern_string = ""
    cache.set(ticker, pattern_string)
    logger.info("%s: cached patterns %r", ticker, pattern_string or "none")
    return pattern_string


def refresh_pattern_cache(
    price_data: Mapping[str, Any],
    cache: PatternCache | None = None,
    config: DetectionConfig | None = None,
) -> dict[str, str]:
    """Recompute and cache the pattern string of every ticker in ``price_data``."""
    cache = cache or PatternCache()
    config = config or DetectionConfig.from_settings()
    logger.info("Refreshing pattern cache for %d tickers", len(price_data))
    results = scan_securities(price_data, config)
    strings = {}
    for ticker, patterns in results.items():
        strings[ticker] = format_patterns(patterns, config.min_confidence)
        cache.set(ticker, strings[ticker])
    logger.info("Pattern cache refresh complete")
    return strings
