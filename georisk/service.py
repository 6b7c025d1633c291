"""Read/write API used by the dashboard and the CLI.

Holds the process-wide store, feed adapter and analyzer (reused across
Streamlit reruns) and exposes thin functions over them.  Nothing here
caches news lists or aggregates: each call reads the store or the feed
again, so callers always see current data.
"""

from __future__ import annotations

import logging
import os
import threading

from .aggregate import Snapshot, build_snapshot
from .analyzer_gemini import GeminiAnalyzer
from .backfill import BackfillReport, run_backfill
from .cache import CacheGatedAnalyzer
from .common_types import AnalysisRecord, NewsItem, RiskAssessment
from .config import Config
from .ingest_rss import RssAdapter
from .store_sqlite import AnalysisStore

logger = logging.getLogger(__name__)

# ── Module-level singletons (reused across Streamlit reruns) ──
_lock = threading.Lock()
_store: AnalysisStore | None = None
_feed: RssAdapter | None = None
_cache: CacheGatedAnalyzer | None = None


def get_store(cfg: Config) -> AnalysisStore:
    global _store
    with _lock:
        if _store is None:
            os.makedirs(os.path.dirname(cfg.sqlite_path) or ".", exist_ok=True)
            _store = AnalysisStore(cfg.sqlite_path)
        return _store


def get_feed(cfg: Config) -> RssAdapter:
    global _feed
    with _lock:
        if _feed is None:
            _feed = RssAdapter(cfg.news_feed_url, timeout=cfg.feed_timeout_s)
        return _feed


def get_cache(cfg: Config) -> CacheGatedAnalyzer:
    """Cache-gated analyzer; raises ``ConfigError`` without an API key."""
    global _cache
    store = get_store(cfg)
    with _lock:
        if _cache is None:
            analyzer = GeminiAnalyzer(
                cfg.gemini_api_key,
                model=cfg.gemini_model,
                base_url=cfg.gemini_base_url,
                timeout=cfg.analysis_timeout_s,
            )
            _cache = CacheGatedAnalyzer(store, analyzer)
        return _cache


def reset() -> None:
    """Close and drop all singletons (tests, settings changes)."""
    global _store, _feed, _cache
    with _lock:
        if _cache is not None and hasattr(_cache.analyzer, "close"):
            _cache.analyzer.close()
        if _feed is not None:
            _feed.close()
        if _store is not None:
            _store.close()
        _store = _feed = _cache = None


# ── News ────────────────────────────────────────────────────────


def fetch_news(cfg: Config) -> list[NewsItem]:
    return get_feed(cfg).fetch()


# ── Cached analyses ─────────────────────────────────────────────


def list_recent(cfg: Config, limit: int | None = None) -> list[AnalysisRecord]:
    return get_store(cfg).list_recent(cfg.snapshot_limit if limit is None else limit)


def get_analysis(cfg: Config, identity: str) -> AnalysisRecord | None:
    return get_store(cfg).get(identity)


def put_analysis(
    cfg: Config,
    identity: str,
    headline: str,
    assessment: RiskAssessment,
) -> AnalysisRecord:
    """Store an externally produced assessment under *identity*."""
    record = AnalysisRecord.from_assessment(identity, headline, assessment)
    get_store(cfg).put(record)
    return record


def analyze_headline(cfg: Config, item: NewsItem) -> RiskAssessment:
    return get_cache(cfg).analyze_or_reuse(item.identity, item.headline)


def analyze_custom(cfg: Config, headline: str) -> tuple[str, RiskAssessment]:
    return get_cache(cfg).analyze_custom(headline)


# ── Aggregates ──────────────────────────────────────────────────


def dashboard_snapshot(cfg: Config) -> Snapshot:
    return build_snapshot(
        get_store(cfg),
        limit=cfg.snapshot_limit,
        index_window=cfg.risk_index_window,
        critical_threshold=cfg.critical_threshold,
        critical_limit=cfg.critical_limit,
    )


def bootstrap(cfg: Config) -> BackfillReport:
    """Run the startup backfill against the live feed."""
    return run_backfill(cfg, get_cache(cfg), lambda: fetch_news(cfg))
