"""Pure helper functions for streamlit_georisk.py.

Every function here is free of Streamlit / session-state side-effects
and can be tested in regular pytest without launching a Streamlit app.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import pandas as pd

from georisk.aggregate import RegionScore, SectorImpact, Snapshot, TrendPoint
from georisk.errors import GeoRiskError

logger = logging.getLogger(__name__)

# ── Colour maps ─────────────────────────────────────────────────

BAND_COLORS: dict[str, str] = {
    "Elevated": "red",
    "Moderate": "orange",
    "Low": "green",
}

# Map fill thresholds: < 3 green, 3-7 amber, >= 7 red
MAP_COLORS: list[tuple[float, str]] = [
    (7.0, "#ef4444"),
    (3.0, "#f59e0b"),
    (float("-inf"), "#10b981"),
]

LEVEL_EMOJI: dict[str, str] = {
    "high": "🔴",
    "medium": "🟠",
    "low": "🟢",
}


# ── Formatting helpers ──────────────────────────────────────────


def format_index_badge(snap: Snapshot) -> str:
    """Streamlit-markdown badge such as ``:red[**7.4 / 10**]``."""
    color = BAND_COLORS.get(snap.risk_band, "gray")
    return f":{color}[**{snap.risk_index_display:.1f} / 10**]"


def map_color(score: float) -> str:
    for lower, color in MAP_COLORS:
        if score >= lower:
            return color
    return MAP_COLORS[-1][1]


def level_emoji(risk_level: str) -> str:
    return LEVEL_EMOJI.get((risk_level or "").strip().lower(), "⚪")


def format_age_string(published_ts: float | None, *, now: float | None = None) -> str:
    """Human-readable age such as ``3h 12m``, or ``?``."""
    if published_ts is None or published_ts <= 0:
        return "?"
    if now is None:
        now = time.time()
    mins = int(max(now - published_ts, 0.0) // 60)
    if mins < 60:
        return f"{mins}m"
    hours, mins = divmod(mins, 60)
    if hours < 24:
        return f"{hours}h {mins:02d}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h"


def safe_markdown_text(text: str) -> str:
    """Escape square brackets for safe Streamlit markdown rendering."""
    return text.replace("[", "\\[").replace("]", "\\]")


def safe_url(url: str | None) -> str:
    """Allow only http(s) links; escape parentheses for markdown."""
    if not url:
        return ""
    stripped = url.strip()
    if not stripped.lower().startswith(("http://", "https://")):
        return ""
    return stripped.replace("(", "%28").replace(")", "%29")


# ── Analysis actions ────────────────────────────────────────────


def run_analysis(call: Callable[[], Any]) -> tuple[Any, str | None]:
    """Run *call*, returning ``(result, None)`` or ``(None, message)``.

    Any ``GeoRiskError``, store faults included, becomes a message the
    page keeps in session state, so it outlives the following rerun.
    Other exceptions propagate.
    """
    try:
        return call(), None
    except GeoRiskError as exc:
        logger.warning("Dashboard analysis failed: %s", exc)
        return None, f"Analysis failed: {exc}"


# ── Frames for charts / tables ──────────────────────────────────


def trend_frame(points: Iterable[TrendPoint]) -> pd.DataFrame:
    """Trend points as a time-indexed frame with a ``score`` column."""
    rows = [
        {"time": datetime.fromtimestamp(p.timestamp, tz=timezone.utc), "score": p.score}
        for p in points
    ]
    df = pd.DataFrame(rows, columns=["time", "score"])
    return df.set_index("time")


def sector_frame(sectors: Iterable[SectorImpact]) -> pd.DataFrame:
    rows = [{"sector": s.sector, "count": s.count} for s in sectors]
    return pd.DataFrame(rows, columns=["sector", "count"]).set_index("sector")


def most_severe_by_region(points: Iterable[RegionScore]) -> list[RegionScore]:
    """Resolve overlapping map points: the highest score per region wins.

    Region names are compared case-insensitively; output keeps the
    order in which regions first appear.
    """
    best: dict[str, RegionScore] = {}
    for p in points:
        if not p.region:
            continue
        key = p.region.strip().lower()
        cur = best.get(key)
        if cur is None or p.score > cur.score:
            best[key] = p
    return list(best.values())


def map_frame(points: Iterable[RegionScore]) -> pd.DataFrame:
    rows = [
        {"region": p.region, "score": p.score, "color": map_color(p.score)}
        for p in most_severe_by_region(points)
    ]
    df = pd.DataFrame(rows, columns=["region", "score", "color"])
    return df.sort_values("score", ascending=False, kind="stable").reset_index(drop=True)


def news_rows(
    news: Iterable[dict[str, Any]],
    cached_ids: set[str],
    *,
    now: float | None = None,
) -> list[dict[str, Any]]:
    """Feed rows for display, flagged when an analysis is already cached.

    Repeated identities keep only their first row. ``item`` is the
    source dict, passed back when the row is analysed.
    """
    out: list[dict[str, Any]] = []
    seen: set[str] = set()
    for d in news:
        ident = d.get("identity", "")
        if ident in seen:
            continue
        seen.add(ident)
        out.append({
            "identity": ident,
            "headline": d.get("headline", ""),
            "source": d.get("source", ""),
            "age": format_age_string(d.get("published_ts"), now=now),
            "link": safe_url(d.get("link")),
            "cached": ident in cached_ids,
            "item": d,
        })
    return out
