"""Tests for chartscan.data_sources.market_data (yfinance is always mocked)."""

from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd

from chartscan.data_sources.market_data import (
    MarketDataClient,
    load_block_csv,
    load_csv,
    split_ticker_blocks,
)
from chartscan.utils.cache import DataCache


class TestMarketDataClient:

    def setup_method(self):
        self.ticker = MagicMock()

    def _client(self, tmp_path):
        return MarketDataClient(cache=DataCache("price_historical", cache_dir=tmp_path, ttl_minutes=5))

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_history_is_fetched_then_cached(self, mock_ticker, tmp_path, sample_ohlcv):
        self.ticker.history.return_value = sample_ohlcv.assign(Dividends=0.0)
        mock_ticker.return_value = self.ticker
        client = self._client(tmp_path)

        first = client.get_price_history("AAPL", period="1y")
        second = client.get_price_history("AAPL", period="1y")

        assert list(first.columns) == ["Open", "High", "Low", "Close", "Volume"]
        assert len(second) == len(sample_ohlcv)
        assert self.ticker.history.call_count == 1

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_history_failure_returns_empty_frame(self, mock_ticker, tmp_path):
        self.ticker.history.side_effect = ConnectionError("offline")
        mock_ticker.return_value = self.ticker
        assert self._client(tmp_path).get_price_history("AAPL").empty

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_empty_history_is_not_cached(self, mock_ticker, tmp_path):
        self.ticker.history.return_value = pd.DataFrame()
        mock_ticker.return_value = self.ticker
        client = self._client(tmp_path)
        assert client.get_price_history("ZZZZ").empty
        assert client.get_price_history("ZZZZ").empty
        assert self.ticker.history.call_count == 2

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_current_price(self, mock_ticker, tmp_path):
        self.ticker.fast_info.last_price = 187.5
        mock_ticker.return_value = self.ticker
        assert self._client(tmp_path).get_current_price("AAPL") == 187.5

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_current_price_failure_is_none(self, mock_ticker, tmp_path):
        mock_ticker.side_effect = ValueError("bad symbol")
        assert self._client(tmp_path).get_current_price("???") is None

    @patch("chartscan.data_sources.market_data.yf.Ticker")
    def test_get_multiple(self, mock_ticker, tmp_path, sample_ohlcv):
        self.ticker.history.return_value = sample_ohlcv
        mock_ticker.return_value = self.ticker
        frames = self._client(tmp_path).get_multiple(["A", "B"])
        assert set(frames) == {"A", "B"}


class TestCsvLoaders:

    def test_load_csv_normalises_columns(self, tmp_path, sample_ohlcv):
        path = tmp_path / "aapl.csv"
        frame = sample_ohlcv.rename(columns=str.lower)
        frame.index.name = "date"
        frame.iloc[::-1].to_csv(path)
        df = load_csv(path)
        assert list(df.columns) == ["Open", "High", "Low", "Close", "Volume"]
        assert df.index.is_monotonic_increasing
        assert len(df) == len(sample_ohlcv)

    def test_split_ticker_blocks(self):
        dates = pd.bdate_range("2024-01-01", periods=3)
        rows = []
        for i, d in enumerate(dates):
            rows.append([d, 10 + i, 11 + i, 9 + i, 10.5 + i, 1000, None,
                         d, 20 + i, 21 + i, 19 + i, 20.5 + i, 2000, None])
        rows.append(["not a date", 1, 1, 1, 1, 1, None, None, 1, 1, 1, 1, 1, None])
        sheet = pd.DataFrame(rows)

        frames = split_ticker_blocks(sheet, ["AAA", "BBB", "CCC"], block_size=7)

        assert list(frames["AAA"]["Close"]) == [10.5, 11.5, 12.5]
        assert list(frames["BBB"]["Volume"]) == [2000, 2000, 2000]
        assert frames["CCC"].empty

    def test_load_block_csv_skips_header_rows(self, tmp_path):
        path = tmp_path / "sheet.csv"
        path.write_text(
            "DATA,,,,,,\n"
            "Date,Open,High,Low,Close,Volume,\n"
            "2024-01-02,10,11,9,10.5,1000,\n"
            "2024-01-03,11,12,10,11.5,1100,\n"
        )
        frames = load_block_csv(path, ["AAA"], skip_rows=2)
        assert np.allclose(frames["AAA"]["High"], [11, 12])
