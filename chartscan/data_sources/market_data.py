"""Market data client - daily OHLCV history and current price.

Primary: yfinance | Offline: CSV files with Date/Open/High/Low/Close/Volume
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import yfinance as yf

from chartscan.config import SETTINGS
from chartscan.utils.cache import DataCache
from chartscan.utils.logger import setup_logger

logger = setup_logger("market_data")

_MARKET = SETTINGS.get("market_data", {})
_OHLCV = ["Open", "High", "Low", "Close", "Volume"]


def load_csv(path: str | Path) -> pd.DataFrame:
    """Read an OHLCV CSV (first date-like column becomes the index)."""
    df = pd.read_csv(path)
    columns = {c.lower(): c for c in df.columns}
    date_col = columns.get("date") or columns.get("datetime")
    if date_col is not None:
        df[date_col] = pd.to_datetime(df[date_col], errors="coerce")
        df = df.set_index(date_col).sort_index()
    df = df.rename(columns={columns[c.lower()]: c for c in _OHLCV if c.lower() in columns})
    return df


def split_ticker_blocks(sheet: pd.DataFrame, tickers: list[str], block_size: int = 7) -> dict[str, pd.DataFrame]:
    """Split a wide sheet into one OHLCV frame per ticker.

    Ticker ``k`` occupies columns ``[k * block_size, k * block_size + 6)`` as
    Date, Open, High, Low, Close, Volume; any remaining block columns are
    ignored. Rows without a parseable date are dropped.
    """
    frames = {}
    for k, ticker in enumerate(tickers):
        offset = k * block_size
        block = sheet.iloc[:, offset:offset + 6]
        if block.shape[1] < 6:
            logger.warning("No data block for %s at column %d", ticker, offset)
            frames[ticker] = pd.DataFrame(columns=_OHLCV)
            continue
        block = block.copy()
        block.columns = ["Date"] + _OHLCV
        block["Date"] = pd.to_datetime(block["Date"], errors="coerce")
        block = block.dropna(subset=["Date"]).set_index("Date").sort_index()
        frames[ticker] = block.apply(pd.to_numeric, errors="coerce")
    return frames


def load_block_csv(path: str | Path, tickers: list[str], block_size: int = 7,
                   skip_rows: int = 0) -> dict[str, pd.DataFrame]:
    """Read a block-layout CSV export (see ``split_ticker_blocks``)."""
    sheet = pd.read_csv(path, header=None, skiprows=skip_rows)
    return split_ticker_blocks(sheet, tickers, block_size)


class MarketDataClient:
    """Fetch historical and current market data."""

    def __init__(self, cache: DataCache | None = None):
        self.cache = cache or DataCache("price_historical")

    def get_price_history(self, ticker: str, period: str | None = None,
                          interval: str | None = None) -> pd.DataFrame:
        """Get OHLCV price history for a ticker (empty DataFrame on failure).

        Args:
            ticker: Stock symbol (e.g. "AAPL")
            period: Data period - 1mo,3mo,6mo,1y,2y,5y,10y,max
            interval: Data interval - 1d,1wk,1mo
        """
        period = period or _MARKET.get("period", "2y")
        interval = interval or _MARKET.get("interval", "1d")
        cache_key = f"{ticker}_{period}_{interval}"
        cached = self.cache.get_df(cache_key)
        if cached is not None:
            logger.info("Cache hit: %s", cache_key)
            return cached

        logger.info("Fetching price history: %s (period=%s)", ticker, period)
        try:
            df = yf.Ticker(ticker).history(period=period, interval=interval)
        except Exception as e:
            logger.warning("yfinance history failed for %s: %s", ticker, e)
            return pd.DataFrame()

        if df is None or df.empty:
            logger.warning("No price history for %s", ticker)
            return pd.DataFrame()
        df = df[[c for c in _OHLCV if c in df.columns]]
        self.cache.set_df(cache_key, df)
        return df

    def get_current_price(self, ticker: str) -> float | None:
        """Latest traded price, or ``None`` when the quote is unavailable."""
        try:
            price = yf.Ticker(ticker).fast_info.last_price
        except Exception as e:
            logger.warning("yfinance quote failed for %s: %s", ticker, e)
            return None
        return float(price) if price else None

    def get_multiple(self, tickers: list[str], period: str | None = None) -> dict[str, pd.DataFrame]:
        """Fetch price history for multiple tickers."""
        return {t: self.get_price_history(t, period=period) for t in tickers}
