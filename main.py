#!/usr/bin/env python3
"""chartscan: technical indicators and chart-pattern detection.

Usage:
    python main.py scan AAPL MSFT NVDA                    # yfinance history
    python main.py scan --csv data/aapl.csv --json        # offline file(s)
    python main.py scan --blocks data/sheet.csv AAPL MSFT # wide block export
    python main.py scan TSLA --no-cache                   # skip the pattern cache
    python main.py indicators AAPL                        # RSI/MACD/ATR/%K/ADX
    python main.py indicators AAPL --live 187.5           # with a live price
    python main.py cache clear                            # drop cached patterns
"""

import argparse
import json
import sys
from pathlib import Path

from chartscan.analysis.indicators import indicator_snapshot
from chartscan.analysis.models import PriceSeries
from chartscan.config import DetectionConfig
from chartscan.data_sources.market_data import MarketDataClient, load_block_csv, load_csv
from chartscan.pipeline.engine import PatternDetectionPipeline, scan_securities
from chartscan.reports.summary import format_patterns, get_patterns, patterns_to_records
from chartscan.utils.cache import DataCache, PatternCache
from chartscan.utils.logger import setup_logger

logger = setup_logger("main")


def _load_price_data(args) -> dict:
    """Resolve the scan inputs into ``ticker -> OHLCV frame`` (lazily for yfinance)."""
    if args.blocks:
        config = DetectionConfig.from_settings()
        return load_block_csv(args.blocks, args.tickers, config.block_size, skip_rows=args.skip_rows)
    if args.csv:
        return {Path(p).stem.upper(): load_csv(p) for p in args.csv}
    client = MarketDataClient()
    return {t.upper(): (lambda t=t: client.get_price_history(t, period=args.period)) for t in args.tickers}


# ============================================================
# COMMANDS
# ============================================================

def cmd_scan(args):
    """Detect patterns for each ticker."""
    if not (args.tickers or args.csv):
        print("Nothing to scan: pass tickers or --csv files")
        sys.exit(1)

    config = DetectionConfig.from_settings()
    price_data = _load_price_data(args)

    if args.json:
        loaded = {t: (d() if callable(d) else d) for t, d in price_data.items()}
        results = scan_securities(loaded, config)
        payload = {t: patterns_to_records(p) for t, p in results.items()}
        print(json.dumps(payload, indent=2, default=str))
        return

    if args.no_cache:
        loaded = {t: (d() if callable(d) else d) for t, d in price_data.items()}
        results = scan_securities(loaded, config)
        strings = {t: format_patterns(p, config.min_confidence) for t, p in results.items()}
    else:
        cache = PatternCache()
        pipeline = PatternDetectionPipeline(config)
        strings = {t: get_patterns(t, d, cache, pipeline) for t, d in price_data.items()}

    width = max(len(t) for t in strings)
    print(f"\n{'='*50}")
    for ticker, pattern_string in strings.items():
        print(f"  {ticker:{width}s}  {pattern_string or '-'}")
    print(f"{'='*50}")


def cmd_indicators(args):
    """Print the indicator snapshot."""
    if not (args.ticker or args.csv):
        print("Pass a ticker or --csv file")
        sys.exit(1)
    if args.csv:
        df = load_csv(args.csv)
    else:
        df = MarketDataClient().get_price_history(args.ticker)
    series = PriceSeries.coerce(df)
    if len(series) == 0:
        print(f"No price history for {args.ticker or args.csv}")
        sys.exit(1)
    snapshot = indicator_snapshot(series, args.live)
    print(f"\n--- Indicators ({args.ticker or args.csv}, {len(series)} bars) ---")
    for k, v in snapshot.items():
        print(f"  {k:12s}: {v}")


def cmd_cache(args):
    """Cache maintenance."""
    PatternCache().clear()
    if args.all:
        removed = DataCache("price_historical").clear()
        print(f"Removed {removed} cached price histories")
    print("Pattern cache cleared")


def main():
    parser = argparse.ArgumentParser(
        description="chartscan: technical indicators and chart-pattern detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", help="Commands")

    # scan
    p = sub.add_parser("scan", help="Detect chart patterns")
    p.add_argument("tickers", nargs="*", help="Ticker symbols")
    p.add_argument("--csv", nargs="+", default=[], help="OHLCV CSV file(s); ticker = file name")
    p.add_argument("--blocks", default="", help="Wide CSV with one column block per ticker")
    p.add_argument("--skip-rows", type=int, default=0, help="Header rows to skip in --blocks")
    p.add_argument("--period", default=None, help="History period for yfinance (default from settings)")
    p.add_argument("--json", action="store_true", help="Print full pattern records as JSON")
    p.add_argument("--no-cache", action="store_true", help="Bypass the pattern cache")
    p.set_defaults(func=cmd_scan)

    # indicators
    p = sub.add_parser("indicators", help="Indicator snapshot")
    p.add_argument("ticker", nargs="?", default="")
    p.add_argument("--csv", default="", help="Read history from a CSV file instead")
    p.add_argument("--live", type=float, default=None, help="Live price to treat as the latest close")
    p.set_defaults(func=cmd_indicators)

    # cache
    p = sub.add_parser("cache", help="Cache maintenance")
    p.add_argument("action", choices=["clear"])
    p.add_argument("--all", action="store_true", help="Also drop cached price histories")
    p.set_defaults(func=cmd_cache)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)
    args.func(args)


if __name__ == "__main__":
    main()
