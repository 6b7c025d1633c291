"""Global configuration for the georisk cache, analyzer and aggregates.

All tunables can be overridden via environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = (
    "https://news.google.com/rss/search"
    "?q=geopolitics+conflict+economy+trade+when:1d&hl=en-IN&gl=IN&ceid=IN:en"
)


def _env_float(key: str, default: float) -> float:
    """Read an env var as float, returning *default* on parse failure."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_int(key: str, default: int) -> int:
    """Read an env var as int, returning *default* on parse failure."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class Config:
    """Central configuration – one instance per process.

    Environment variables are read at **instantiation** time (not module
    import time) so callers can set them programmatically before
    creating a ``Config``.
    """

    # ── Gemini credentials (repr=False to prevent accidental logging) ──
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""), repr=False)

    # ── Analysis engine ─────────────────────────────────────────
    gemini_model: str = field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-3-flash-preview"))
    gemini_base_url: str = field(default_factory=lambda: os.getenv(
        "GEMINI_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta",
    ))
    analysis_timeout_s: float = field(default_factory=lambda: _env_float("ANALYSIS_TIMEOUT_S", 30.0))

    # ── Ingestion ───────────────────────────────────────────────
    news_feed_url: str = field(default_factory=lambda: os.getenv("NEWS_FEED_URL", DEFAULT_FEED_URL))
    feed_timeout_s: float = field(default_factory=lambda: _env_float("FEED_TIMEOUT_S", 10.0))

    # ── State ───────────────────────────────────────────────────
    sqlite_path: str = field(default_factory=lambda: os.getenv("GEORISK_DB_PATH", "georisk.db"))

    # ── Backfill ────────────────────────────────────────────────
    # Backfill runs only while the store holds fewer than backfill_floor
    # records, and analyses at most backfill_limit feed items.
    backfill_floor: int = field(default_factory=lambda: _env_int("BACKFILL_FLOOR", 5))
    backfill_limit: int = field(default_factory=lambda: _env_int("BACKFILL_LIMIT", 5))

    # ── Aggregation windows ─────────────────────────────────────
    risk_index_window: int = field(default_factory=lambda: _env_int("RISK_INDEX_WINDOW", 15))
    snapshot_limit: int = field(default_factory=lambda: _env_int("SNAPSHOT_LIMIT", 50))
    critical_threshold: float = field(default_factory=lambda: _env_float("CRITICAL_THRESHOLD", 7.0))
    critical_limit: int = field(default_factory=lambda: _env_int("CRITICAL_LIMIT", 5))

    # ── Derived helpers ─────────────────────────────────────────

    @property
    def has_analyzer(self) -> bool:
        """True when an analysis engine key is configured."""
        return bool(self.gemini_api_key)


def load_env_file(env_path: Path) -> None:
    """Load KEY=VALUE pairs from *env_path* into the process env.

    Variables already set in the environment win over the file.
    """
    if not env_path.exists():
        return
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Cannot read %s: %s", env_path, exc)
        return
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            os.environ.setdefault(key, value)
