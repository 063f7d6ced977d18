"""Central configuration loader for chartscan."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Project root is the parent of the chartscan/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def load_settings() -> dict:
    """Load settings from configs/settings.yaml (empty dict when absent)."""
    settings_path = Path(os.getenv("CHARTSCAN_SETTINGS", PROJECT_ROOT / "configs" / "settings.yaml"))
    if not settings_path.exists():
        return {}
    with open(settings_path) as f:
        return yaml.safe_load(f) or {}


SETTINGS = load_settings()

LOG_LEVEL = os.getenv("CHARTSCAN_LOG_LEVEL", SETTINGS.get("app", {}).get("log_level", "INFO"))


# --- Paths ---
class Paths:
    ROOT = PROJECT_ROOT
    DATA_CACHE = Path(os.getenv("CHARTSCAN_CACHE_DIR", PROJECT_ROOT / "data" / "cache"))


@dataclass(frozen=True)
class DetectionConfig:
    """Knobs accepted by the pattern-detection pipeline.

    ``batch_size`` and ``block_size`` only matter to callers that scan many
    securities or lay results out in fixed-width blocks; the pipeline itself
    reads ``min_bars``, ``min_confidence`` and ``overlap_threshold``.
    """

    min_bars: int = 100
    min_confidence: float = 60.0
    batch_size: int = 10
    block_size: int = 7
    max_workers: int = 4
    overlap_threshold: float = 0.5

    @classmethod
    def from_settings(cls, settings: dict | None = None) -> "DetectionConfig":
        section = (SETTINGS if settings is None else settings).get("detection", {}) or {}
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)
