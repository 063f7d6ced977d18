"""Simple file-based caching for price history and serialized pattern strings."""

import hashlib
import json
import time
from pathlib import Path

import pandas as pd

from chartscan.config import Paths, SETTINGS
from chartscan.utils.logger import setup_logger

logger = setup_logger("cache")

PATTERN_CACHE_PREFIX = "PATTERN_CACHE_"
_DEFAULT_TTL_MINUTES = 60


class DataCache:
    """File-based cache with TTL support."""

    def __init__(self, category: str = "general", cache_dir: Path | None = None,
                 ttl_minutes: float | None = None):
        self.category = category
        self.cache_dir = (cache_dir or Paths.DATA_CACHE) / category
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        if ttl_minutes is None:
            ttl_config = SETTINGS.get("cache", {}).get("ttl_minutes", {})
            ttl_minutes = ttl_config.get(category, _DEFAULT_TTL_MINUTES)
        self.ttl_seconds = float(ttl_minutes) * 60

    def _key_path(self, key: str, ext: str = "json") -> Path:
        hashed = hashlib.md5(key.encode()).hexdigest()
        return self.cache_dir / f"{hashed}.{ext}"

    def _fresh(self, path: Path) -> bool:
        if not path.exists():
            return False
        if time.time() - path.stat().st_mtime > self.ttl_seconds:
            path.unlink(missing_ok=True)
            return False
        return True

    def get(self, key: str):
        """Retrieve cached JSON data if not expired (``None`` otherwise)."""
        path = self._key_path(key)
        if not self._fresh(path):
            return None
        try:
            with open(path) as f:
                return json.load(f)["value"]
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            path.unlink(missing_ok=True)
            return None

    def set(self, key: str, data) -> None:
        """Store JSON data in cache."""
        path = self._key_path(key)
        with open(path, "w") as f:
            json.dump({"key": key, "value": data}, f)

    def delete(self, key: str) -> None:
        self._key_path(key).unlink(missing_ok=True)
        self._key_path(key, ext="csv").unlink(missing_ok=True)

    def clear(self) -> int:
        """Remove every entry in this category; returns the number removed."""
        removed = 0
        for path in self.cache_dir.iterdir():
            if path.suffix in (".json", ".csv"):
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    def get_df(self, key: str) -> pd.DataFrame | None:
        """Retrieve cached DataFrame (CSV, date index)."""
        path = self._key_path(key, ext="csv")
        if not self._fresh(path):
            return None
        return pd.read_csv(path, index_col=0, parse_dates=True)

    def set_df(self, key: str, df: pd.DataFrame) -> None:
        """Store DataFrame as CSV."""
        df.to_csv(self._key_path(key, ext="csv"))


class PatternCache:
    """Ticker -> serialized pattern string, expiring after ``ttl_minutes``.

    Keys are ``PATTERN_CACHE_<TICKER>`` with the ticker upper-cased, so
    ``"aapl"`` and ``"AAPL"`` share an entry. A cached empty string is a
    valid hit ("no patterns"), distinct from a miss (``None``).
    """

    def __init__(self, cache_dir: Path | None = None, ttl_minutes: float | None = None):
        self._store = DataCache("patterns", cache_dir=cache_dir, ttl_minutes=ttl_minutes)

    @staticmethod
    def key_for(ticker: str) -> str:
        return PATTERN_CACHE_PREFIX + str(ticker).strip().upper()

    def get(self, ticker: str) -> str | None:
        if not ticker:
            return None
        value = self._store.get(self.key_for(ticker))
        return None if value is None else str(value)

    def set(self, ticker: str, pattern_string: str) -> None:
        try:
            self._store.set(self.key_for(ticker), pattern_string)
        except OSError as e:
            logger.error("Error setting cached pattern for %s: %s", ticker, e)

    def clear(self) -> None:
        removed = self._store.clear()
        logger.info("Pattern cache cleared (%d entries)", removed)
