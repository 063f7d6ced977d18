"""Data source modules."""

from .market_data import MarketDataClient, load_block_csv, load_csv, split_ticker_blocks
