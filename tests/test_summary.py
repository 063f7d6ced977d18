"""Tests for chartscan.reports.summary -- pattern strings and the cached lookup."""

import json
from unittest.mock import MagicMock

from chartscan.analysis.models import Breakout, Direction, Pattern, PatternType
from chartscan.config import DetectionConfig
from chartscan.reports.summary import (
    format_patterns,
    get_patterns,
    patterns_to_records,
    refresh_pattern_cache,
)
from chartscan.utils.cache import PatternCache


def _pattern(pattern_type, confidence):
    return Pattern(
        type=pattern_type,
        direction=Direction.BULLISH,
        start_index=10,
        end_index=40,
        geometry=Breakout(110.0, 100.0, 9.5, 2.0, 120.0),
        confirmed=True,
        breakout_index=40,
        confidence=confidence,
    )


class TestFormatPatterns:

    def test_codes_and_rounded_confidence(self):
        patterns = [_pattern(PatternType.DOUBLE_TOP, 89.4), _pattern(PatternType.FLAG, 64.6)]
        assert format_patterns(patterns) == "DBL_TOP (89%) | FLAG (65%)"

    def test_threshold(self):
        patterns = [_pattern(PatternType.HEAD_SHOULDERS, 72.0), _pattern(PatternType.GAP, 59.9)]
        assert format_patterns(patterns) == "H&S (72%)"
        assert format_patterns(patterns, min_confidence=50) == "H&S (72%) | GAP (60%)"

    def test_empty(self):
        assert format_patterns([]) == ""

    def test_records_are_json_serialisable(self):
        records = patterns_to_records([_pattern(PatternType.BREAKOUT, 77.777)])
        assert records[0]["code"] == "BRKOUT"
        assert records[0]["confidence"] == 77.78
        assert records[0]["levels"]["resistance"] == 110.0
        json.dumps(records)


class TestGetPatterns:

    def setup_method(self):
        self.pipeline = MagicMock()
        self.pipeline.config = DetectionConfig()

    def test_cache_hit_skips_detection(self, tmp_path):
        cache = PatternCache(cache_dir=tmp_path)
        cache.set("AAPL", "FLAG (70%)")
        loader = MagicMock()
        assert get_patterns("aapl", loader, cache, self.pipeline) == "FLAG (70%)"
        loader.assert_not_called()
        self.pipeline.run.assert_not_called()

    def test_miss_detects_and_caches(self, tmp_path):
        cache = PatternCache(cache_dir=tmp_path)
        self.pipeline.run.return_value = [_pattern(PatternType.CUP_HANDLE, 81.2)]
        assert get_patterns("NVDA", object(), cache, self.pipeline) == "CUP_HDL (81%)"
        assert cache.get("NVDA") == "CUP_HDL (81%)"

    def test_error_caches_empty_string(self, tmp_path):
        cache = PatternCache(cache_dir=tmp_path)
        loader = MagicMock(side_effect=ConnectionError("offline"))
        assert get_patterns("TSLA", loader, cache, self.pipeline) == ""
        assert cache.get("TSLA") == ""

    def test_blank_ticker(self, tmp_path):
        assert get_patterns("", object(), PatternCache(cache_dir=tmp_path), self.pipeline) == ""

    def test_real_pipeline(self, tmp_path, double_top_ohlcv):
        result = get_patterns("DT", double_top_ohlcv, PatternCache(cache_dir=tmp_path))
        assert "DBL_TOP" in result


class TestRefreshPatternCache:

    def test_refresh_writes_every_ticker(self, tmp_path, double_top_ohlcv, rising_ohlcv):
        cache = PatternCache(cache_dir=tmp_path)
        cache.set("UP", "STALE (99%)")
        strings = refresh_pattern_cache({"DT": double_top_ohlcv, "UP": rising_ohlcv}, cache, DetectionConfig())
        assert "DBL_TOP" in strings["DT"]
        assert strings["UP"] == ""
        assert cache.get("UP") == ""
        assert cache.get("DT") == strings["DT"]
