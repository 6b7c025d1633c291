"""Aggregate indicators over cached analyses.

Every function here is a pure function of a list of
:class:`AnalysisRecord` and is cheap enough to recompute on each read;
nothing is carried between calls.  Record lists are taken newest-first
(the order :meth:`AnalysisStore.list_recent` returns) and re-sorted
stably where an operation depends on recency, so ties keep store order.

Indicators:
- Global risk index: rolling mean score of the newest N records + band
- Trend series: (timestamp, score) points, oldest first
- Critical events: newest records scoring at or above the threshold
- Sector impact: per-sector record counts with consequence excerpts
- Map overlay: one (region, score) point per record
"""

from __future__ import annotations

import statistics
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from .common_types import AnalysisRecord
from .store_sqlite import AnalysisStore

RISK_INDEX_WINDOW = 15
CRITICAL_THRESHOLD = 7.0
CRITICAL_LIMIT = 5
SNAPSHOT_LIMIT = 50
MAX_SECTOR_EXCERPTS = 2

SECTORS: tuple[str, ...] = (
    "Energy",
    "Defense",
    "Semiconductors",
    "Shipping",
    "Banking",
    "Technology",
)

# (lower bound, band, display label), highest first; lower bounds inclusive
RISK_BANDS: list[tuple[float, str, str]] = [
    (7.0, "Elevated", "Elevated Geopolitical Risk"),
    (4.0, "Moderate", "Moderate Geopolitical Tension"),
    (float("-inf"), "Low", "Low Geopolitical Risk"),
]


@dataclass(frozen=True)
class TrendPoint:
    timestamp: float
    score: float


@dataclass(frozen=True)
class CriticalEvent:
    identity: str
    headline: str
    score: float
    analysis: dict[str, Any]


@dataclass
class SectorImpact:
    sector: str
    count: int = 0
    excerpts: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RegionScore:
    region: str
    score: float


def _recent_first(records: Iterable[AnalysisRecord]) -> list[AnalysisRecord]:
    return sorted(records, key=lambda r: -r.created_at)


# ── Global risk index ───────────────────────────────────────────


def risk_index(records: Iterable[AnalysisRecord], window: int = RISK_INDEX_WINDOW) -> float:
    """Mean score of the *window* newest records; 0.0 if none.

    The mean is not rounded; use :func:`display_index` for the
    one-decimal figure shown to users.
    """
    recent = _recent_first(records)[:max(window, 0)]
    if not recent:
        return 0.0
    return float(statistics.mean(r.risk_score for r in recent))


def display_index(index: float) -> float:
    """Index rounded to one decimal, the precision bands are judged at."""
    return round(index, 1)


def classify_risk(index: float) -> str:
    """``Elevated`` (>= 7), ``Moderate`` (>= 4) or ``Low``."""
    for lower, band, _label in RISK_BANDS:
        if index >= lower:
            return band
    return RISK_BANDS[-1][1]


def risk_label(index: float) -> str:
    band = classify_risk(index)
    return next(label for _lower, b, label in RISK_BANDS if b == band)


# ── Trend / critical / map ──────────────────────────────────────


def trend_series(records: Iterable[AnalysisRecord]) -> list[TrendPoint]:
    """All (created_at, score) points sorted oldest first.

    The sort is stable: records sharing a timestamp keep input order.
    """
    ordered = sorted(records, key=lambda r: r.created_at)
    return [TrendPoint(r.created_at, r.risk_score) for r in ordered]


def critical_events(
    records: Iterable[AnalysisRecord],
    threshold: float = CRITICAL_THRESHOLD,
    limit: int = CRITICAL_LIMIT,
) -> list[CriticalEvent]:
    """Newest records scoring >= *threshold*, at most *limit* of them."""
    out: list[CriticalEvent] = []
    for r in _recent_first(records):
        if len(out) >= limit:
            break
        if r.risk_score >= threshold:
            out.append(CriticalEvent(r.identity, r.headline, r.risk_score, dict(r.analysis)))
    return out


def map_overlay(records: Iterable[AnalysisRecord]) -> list[RegionScore]:
    """One point per record; regions are not merged."""
    return [
        RegionScore(str(r.analysis.get("region") or ""), r.risk_score)
        for r in records
    ]


# ── Sector impact ───────────────────────────────────────────────


def _sector_key(sector: str) -> str:
    # "Semiconductors" must match "Semiconductor manufacturing"
    key = sector.lower()
    return key[:-1] if key.endswith("s") else key


def sector_impacts(
    records: Iterable[AnalysisRecord],
    max_excerpts: int = MAX_SECTOR_EXCERPTS,
) -> list[SectorImpact]:
    """Count records per sector and keep the first consequence excerpts.

    A record counts once for a sector when any of its industries
    contains the sector name (case-insensitive); one industry string
    may count for several sectors.  Sectors without matches are left
    out; the rest keep the order of :data:`SECTORS`.
    """
    impacts = {s: SectorImpact(s) for s in SECTORS}
    keys = {s: _sector_key(s) for s in SECTORS}

    for r in records:
        industries = r.analysis.get("industries")
        if not isinstance(industries, list):
            continue
        lowered = [ind.lower() for ind in industries if isinstance(ind, str)]
        consequence = r.analysis.get("consequences")
        for sector in SECTORS:
            if not any(keys[sector] in ind for ind in lowered):
                continue
            impact = impacts[sector]
            impact.count += 1
            if isinstance(consequence, str) and consequence and len(impact.excerpts) < max_excerpts:
                impact.excerpts.append(consequence)

    return [impacts[s] for s in SECTORS if impacts[s].count > 0]


# ── Snapshot ────────────────────────────────────────────────────


@dataclass
class Snapshot:
    """All aggregate indicators computed from one store read."""

    record_count: int
    window_size: int
    risk_index: float
    risk_index_display: float
    risk_band: str
    risk_label: str
    trend: list[TrendPoint]
    critical: list[CriticalEvent]
    sectors: list[SectorImpact]
    map_points: list[RegionScore]
    records: list[AnalysisRecord] = field(default_factory=list, repr=False)
    generated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["records"] = [r.to_dict() for r in self.records]
        return d


def summarize(
    records: list[AnalysisRecord],
    *,
    record_count: int | None = None,
    index_window: int = RISK_INDEX_WINDOW,
    critical_threshold: float = CRITICAL_THRESHOLD,
    critical_limit: int = CRITICAL_LIMIT,
) -> Snapshot:
    """Compute every indicator over *records* (newest first)."""
    index = risk_index(records, index_window)
    shown = display_index(index)
    return Snapshot(
        record_count=len(records) if record_count is None else record_count,
        window_size=len(records),
        risk_index=index,
        risk_index_display=shown,
        risk_band=classify_risk(shown),
        risk_label=risk_label(shown),
        trend=trend_series(records),
        critical=critical_events(records, critical_threshold, critical_limit),
        sectors=sector_impacts(records),
        map_points=map_overlay(records),
        records=list(records),
    )


def build_snapshot(
    store: AnalysisStore,
    *,
    limit: int = SNAPSHOT_LIMIT,
    index_window: int = RISK_INDEX_WINDOW,
    critical_threshold: float = CRITICAL_THRESHOLD,
    critical_limit: int = CRITICAL_LIMIT,
) -> Snapshot:
    """Read the newest *limit* records and summarise them."""
    records = store.list_recent(limit)
    return summarize(
        records,
        record_count=store.count(),
        index_window=index_window,
        critical_threshold=critical_threshold,
        critical_limit=critical_limit,
    )
