"""PatternDetectionPipeline: validate, pivot, recognize, score, filter, rank.

One ``run()`` call walks the states

    VALIDATE -> PIVOT -> RECOGNIZE -> SCORE -> FILTER -> PRIORITIZE -> SORT -> DONE

and always returns a (possibly empty) list. Each recognizer runs inside its
own try/except and reports back through a ``RecognizerOutcome``, so a broken
recognizer costs only its own contribution.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from chartscan.analysis.models import Pattern, PivotPoint, PriceSeries
from chartscan.analysis.pivots import LONG_WINDOW, SHORT_WINDOW, pivot_set
from chartscan.analysis.prioritizer import prioritize
from chartscan.analysis.recognizers import RECOGNIZERS, Recognizer
from chartscan.analysis.scoring import ConfidenceScorer
from chartscan.config import DetectionConfig
from chartscan.utils.logger import setup_logger

logger = setup_logger("pipeline")

ProgressCallback = Callable[[str, str, float], None]


class PipelineState(str, Enum):
    VALIDATE = "VALIDATE"
    PIVOT = "PIVOT"
    RECOGNIZE = "RECOGNIZE"
    SCORE = "SCORE"
    FILTER = "FILTER"
    PRIORITIZE = "PRIORITIZE"
    SORT = "SORT"
    DONE = "DONE"


@dataclass(frozen=True)
class RecognizerOutcome:
    """Success (with or without a pattern) or failure of one recognizer call."""

    name: str
    pattern: Pattern | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def run(cls, recognizer: Recognizer, series: PriceSeries,
            pivots: Sequence[PivotPoint]) -> RecognizerOutcome:
        try:
            return cls(recognizer.name, pattern=recognizer.detect(series, pivots))
        except Exception as e:
            return cls(recognizer.name, error=f"{type(e).__name__}: {e}")


class PatternDetectionPipeline:
    """Runs every registered recognizer over one security's price history."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        recognizers: Sequence[Recognizer] | None = None,
        scorer: ConfidenceScorer | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.recognizers = tuple(RECOGNIZERS if recognizers is None else recognizers)
        self.scorer = scorer or ConfidenceScorer()

    def run(self, data) -> list[Pattern]:
        """Detect, score, filter and rank patterns; never raises."""
        state = PipelineState.VALIDATE
        try:
            series = PriceSeries.coerce(data)
            if len(series) < self.config.min_bars:
                logger.info("Insufficient data: %d bars (minimum %d)", len(series), self.config.min_bars)
                return []

            state = PipelineState.PIVOT
            pivots = self._pivot_sets(series)

            state = PipelineState.RECOGNIZE
            outcomes = self._recognize(series, pivots)
            candidates = [o.pattern for o in outcomes if o.ok and o.pattern is not None]

            state = PipelineState.SCORE
            scored = [p.with_confidence(self.scorer.score(p, series)) for p in candidates]

            state = PipelineState.FILTER
            passing = [p for p in scored if p.confidence >= self.config.min_confidence]

            state = PipelineState.PRIORITIZE
            survivors = prioritize(passing, self.config.overlap_threshold)

            state = PipelineState.SORT
            result = sorted(survivors, key=lambda p: -p.confidence)
            logger.debug(
                "Detection done: %d candidates, %d above %.0f, %d after overlap resolution",
                len(candidates), len(passing), self.config.min_confidence, len(result),
            )
            return result
        except Exception as e:
            logger.error("Pattern detection aborted in state %s: %s", state.value, e)
            return []

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _pivot_sets(self, series: PriceSeries) -> dict[int, tuple[PivotPoint, ...]]:
        windows = {SHORT_WINDOW, LONG_WINDOW} | {r.window for r in self.recognizers}
        return {w: pivot_set(series, w) for w in sorted(windows)}

    def _recognize(self, series: PriceSeries,
                   pivots: Mapping[int, Sequence[PivotPoint]]) -> list[RecognizerOutcome]:
        outcomes = []
        for recognizer in self.recognizers:
            outcome = RecognizerOutcome.run(recognizer, series, pivots[recognizer.window])
            if not outcome.ok:
                logger.error("Error detecting %s: %s", outcome.name, outcome.error)
            outcomes.append(outcome)
        return outcomes


def detect_patterns(data, config: DetectionConfig | None = None) -> list[Pattern]:
    """Convenience wrapper around ``PatternDetectionPipeline(config).run(data)``."""
    return PatternDetectionPipeline(config).run(data)


# ---------------------------------------------------------------------------
# Many securities
# ---------------------------------------------------------------------------
def scan_securities(
    price_data: Mapping[str, Any],
    config: DetectionConfig | None = None,
    max_workers: int | None = None,
    pipeline: PatternDetectionPipeline | None = None,
    progress_callback: ProgressCallback | None = None,
) -> dict[str, list[Pattern]]:
    """Run independent pipelines per ticker on a thread pool.

    Tickers are submitted ``config.batch_size`` at a time; each batch is
    drained before the next is submitted. A ticker whose run fails maps to
    an empty list.

    Args:
        price_data: ``ticker -> PriceSeries | DataFrame | bars``.
        config: Detection settings (defaults to ``DetectionConfig()``).
        max_workers: Thread-pool size override for ``config.max_workers``.
        pipeline: Pre-built pipeline to share across tickers.
        progress_callback: Called with ``(ticker, status, elapsed_seconds)``.

    Returns:
        Mapping of ``ticker -> patterns`` in the input order.
    """
    config = config or DetectionConfig()
    pipeline = pipeline or PatternDetectionPipeline(config)
    workers = max_workers if max_workers is not None else config.max_workers
    tickers = list(price_data)
    results: dict[str, list[Pattern]] = {}

    def _task(ticker: str) -> tuple[list[Pattern], float]:
        start = time.monotonic()
        return pipeline.run(price_data[ticker]), time.monotonic() - start

    batch_size = max(1, config.batch_size)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        for batch_start in range(0, len(tickers), batch_size):
            batch = tickers[batch_start:batch_start + batch_size]
            future_to_ticker = {executor.submit(_task, t): t for t in batch}
            for future in as_completed(future_to_ticker):
                ticker = future_to_ticker[future]
                try:
                    patterns, elapsed = future.result()
                    status = "completed"
                except Exception as exc:
                    logger.error("Scan failed for %s: %s", ticker, exc)
                    patterns, elapsed, status = [], 0.0, "failed"
                results[ticker] = patterns
                logger.info("%s: %d pattern(s) in %.2fs", ticker, len(patterns), elapsed)
                if progress_callback is not None:
                    progress_callback(ticker, status, elapsed)
            logger.debug("Batch %d-%d done", batch_start + 1, batch_start + len(batch))

    return {t: results.get(t, []) for t in tickers}
