"""Startup backfill: seed a sparse cache from the live feed.

When the store holds fewer than ``floor`` analyses, the first ``limit``
feed items are pushed through the cache-gated analyzer one at a time
(never more than one engine call in flight).  A failing item is logged
and skipped; the remaining items still run.  The store is re-read at
the end so the returned snapshot reflects what was written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .aggregate import Snapshot, build_snapshot
from .cache import CacheGatedAnalyzer
from .common_types import NewsItem
from .config import Config
from .errors import AnalysisFailure, IngestionError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    """Outcome of one backfill run."""

    store_count: int
    candidates: int
    skipped: bool  # True when the store already met the floor
    analyzed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    snapshot: Snapshot | None = None

    @property
    def attempted(self) -> int:
        return len(self.analyzed) + len(self.failed)


def run_backfill(
    cfg: Config,
    cache: CacheGatedAnalyzer,
    fetch_candidates: Callable[[], list[NewsItem]],
) -> BackfillReport:
    """Seed the cache if it is below ``cfg.backfill_floor`` records.

    *fetch_candidates* is the ingestion call; an ``IngestionError`` is
    logged and treated as an empty feed.
    """
    store = cache.store
    try:
        candidates = [it for it in fetch_candidates() if it.is_valid]
    except IngestionError as exc:
        logger.error("Backfill: candidate fetch failed: %s", exc)
        candidates = []

    count = store.count()
    report = BackfillReport(store_count=count, candidates=len(candidates), skipped=count >= cfg.backfill_floor)

    if not report.skipped:
        batch = candidates[:max(cfg.backfill_limit, 0)]
        logger.info(
            "Backfill: store has %d/%d records, analysing %d of %d candidates",
            count, cfg.backfill_floor, len(batch), len(candidates),
        )
        for item in batch:
            try:
                cache.analyze_or_reuse(item.identity, item.headline)
            except (AnalysisFailure, PersistenceError) as exc:
                logger.warning("Backfill: skipping %s (%s): %s", item.identity, type(exc).__name__, exc)
                report.failed.append(item.identity)
                continue
            report.analyzed.append(item.identity)
    else:
        logger.info("Backfill: store has %d records (floor %d), nothing to do", count, cfg.backfill_floor)

    report.snapshot = build_snapshot(
        store,
        limit=cfg.snapshot_limit,
        index_window=cfg.risk_index_window,
        critical_threshold=cfg.critical_threshold,
        critical_limit=cfg.critical_limit,
    )
    return report
