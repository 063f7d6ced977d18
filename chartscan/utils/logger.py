"""Logging configuration for chartscan.

Every module asks for its own logger (``setup_logger("pivots")``); names are
nested under the ``chartscan`` namespace so engine output is easy to tell
apart from library chatter (yfinance, urllib3) in a shared stream.
"""

import logging
import sys

from chartscan.config import LOG_LEVEL

_ROOT_NAME = "chartscan"
_FORMAT = "%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s"


def setup_logger(name: str = _ROOT_NAME, level: str | None = None) -> logging.Logger:
    """Create and configure a logger.

    ``level`` defaults to ``config.LOG_LEVEL`` (``CHARTSCAN_LOG_LEVEL``, then
    ``app.log_level`` in settings.yaml).
    """
    if name != _ROOT_NAME and not name.startswith(_ROOT_NAME + "."):
        name = f"{_ROOT_NAME}.{name}"
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    level = level or LOG_LEVEL
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
