"""GeoRisk: Geopolitical Risk Intelligence Dashboard.

Features:
- Live geopolitical headlines (Google News RSS)
- One-click LLM risk assessment per headline, cached by identity
- Custom headline analysis
- Global risk index, trend chart, critical events, sector impact, region table

Run with::

    streamlit run streamlit_georisk.py

Requires ``GEMINI_API_KEY`` in ``.env`` or environment.

Aggregates are re-read from the analysis store on every rerun; the
session only remembers the selected assessment and the last analysis
error, so a failure message outlives the rerun that follows it.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import streamlit as st

# ── Path setup ──────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from georisk.config import Config, load_env_file  # noqa: E402

load_env_file(PROJECT_ROOT / ".env")

from dashboard_helpers import (  # noqa: E402
    format_index_badge,
    level_emoji,
    map_frame,
    news_rows,
    run_analysis,
    safe_markdown_text,
    sector_frame,
    trend_frame,
)
from georisk import service  # noqa: E402
from georisk.common_types import NewsItem, RiskAssessment  # noqa: E402
from georisk.errors import GeoRiskError, IngestionError  # noqa: E402

logger = logging.getLogger(__name__)

# ── Page config ─────────────────────────────────────────────────

st.set_page_config(
    page_title="GeoRisk AI",
    page_icon="🛡️",
    layout="wide",
    initial_sidebar_state="expanded",
)

if "cfg" not in st.session_state:
    st.session_state.cfg = Config()
if "selected" not in st.session_state:
    st.session_state.selected = None  # (headline, assessment dict)
if "bootstrapped" not in st.session_state:
    st.session_state.bootstrapped = False
if "analysis_error" not in st.session_state:
    st.session_state.analysis_error = None

cfg: Config = st.session_state.cfg


@st.cache_data(ttl=120, show_spinner=False)
def _cached_news(feed_url: str) -> list[dict[str, Any]]:
    """Feed fetch, cached briefly so reruns don't hammer the feed."""
    return [it.to_dict() for it in service.fetch_news(cfg)]


def _select(headline: str, assessment: RiskAssessment) -> None:
    st.session_state.selected = (headline, assessment.to_dict())


def _analyze_item(d: dict[str, Any]) -> None:
    """Analyse a feed row; a failure message is kept for the next run."""
    item = NewsItem(
        identity=d["identity"],
        headline=d["headline"],
        source=d.get("source", ""),
        published=d.get("published", ""),
        published_ts=d.get("published_ts") or 0.0,
        link=d.get("link"),
    )
    with st.spinner("Analysing headline…"):
        assessment, error = run_analysis(lambda: service.analyze_headline(cfg, item))
    st.session_state.analysis_error = error
    if assessment is not None:
        _select(item.headline, assessment)


# ── Startup backfill (once per session) ─────────────────────────

if not st.session_state.bootstrapped:
    st.session_state.bootstrapped = True
    if cfg.has_analyzer:
        with st.spinner("Initializing GeoRisk intelligence network…"):
            try:
                report = service.bootstrap(cfg)
                if report.failed:
                    st.toast(f"Backfill: {len(report.failed)} headline(s) could not be analysed.")
            except GeoRiskError as exc:
                logger.error("Backfill failed: %s", exc)
                st.warning(f"Startup backfill failed: {exc}")

# ── Sidebar ─────────────────────────────────────────────────────

with st.sidebar:
    st.title("🛡️ GeoRisk AI")
    st.caption("Geopolitical Risk Intelligence Dashboard")
    if not cfg.has_analyzer:
        st.warning("Set `GEMINI_API_KEY` in `.env` to enable analysis.")

    custom = st.text_area("Custom headline", placeholder="Paste a custom geopolitical headline…")
    if st.button("Analyze", disabled=not custom.strip() or not cfg.has_analyzer, width="stretch"):
        with st.spinner("Analysing headline…"):
            result, error = run_analysis(lambda: service.analyze_custom(cfg, custom.strip()))
        st.session_state.analysis_error = error
        if result is not None:
            _select(custom.strip(), result[1])

if st.session_state.analysis_error:
    st.error(st.session_state.analysis_error)

# ── Snapshot (read-through on every rerun) ──────────────────────

snap = service.dashboard_snapshot(cfg)

h1, h2, h3 = st.columns([2, 1, 1])
with h1:
    st.markdown(f"### Global Risk Index {format_index_badge(snap)}")
    st.caption(snap.risk_label)
h2.metric("Analyses cached", snap.record_count)
h3.metric("Critical events", len(snap.critical))

left, right = st.columns([3, 2])

with left:
    st.subheader("📈 Risk Trend")
    if snap.trend:
        st.line_chart(trend_frame(snap.trend), y="score")
    else:
        st.info("No analyses yet.")

    st.subheader("🗺️ Regions")
    regions = map_frame(snap.map_points)
    if regions.empty:
        st.caption("No regions analysed yet.")
    else:
        st.dataframe(regions[["region", "score"]], hide_index=True, width="stretch")

with right:
    st.subheader("⚠️ Critical Events")
    if not snap.critical:
        st.caption("No critical events.")
    for ev in snap.critical:
        if st.button(f"{ev.score:.0f}  {ev.headline}", key=f"crit_{ev.identity}", width="stretch"):
            st.session_state.selected = (ev.headline, ev.analysis)

    st.subheader("🏭 Sector Impact")
    if not snap.sectors:
        st.caption("No sector signals.")
    else:
        st.bar_chart(sector_frame(snap.sectors))
        for sec in snap.sectors:
            with st.expander(f"**{sec.sector}** · {sec.count} event(s)"):
                for ex in sec.excerpts:
                    st.markdown(f"- {safe_markdown_text(ex)}")

# ── Selected assessment ─────────────────────────────────────────

if st.session_state.selected:
    headline, a = st.session_state.selected
    st.divider()
    st.subheader(safe_markdown_text(headline))
    c1, c2, c3 = st.columns(3)
    c1.metric("Risk score", f"{a.get('riskScore', '?')} / 10")
    c2.metric("Risk level", f"{level_emoji(a.get('riskLevel', ''))} {a.get('riskLevel', '?')}")
    c3.metric("Region", a.get("region", "?"))
    st.markdown(f"**Consequences.** {safe_markdown_text(a.get('consequences', ''))}")
    st.markdown(f"**Reasoning.** {safe_markdown_text(a.get('reasoning', ''))}")
    impact = a.get("marketImpact") or {}
    b1, b2 = st.columns(2)
    b1.markdown("**Bullish**\n\n" + "\n".join(f"- {x}" for x in impact.get("bullish", [])))
    b2.markdown("**Bearish**\n\n" + "\n".join(f"- {x}" for x in impact.get("bearish", [])))
    sc = a.get("scenarios") or {}
    s1, s2, s3 = st.columns(3)
    s1.markdown(f"**Best case**\n\n{sc.get('bestCase', '')}")
    s2.markdown(f"**Base case**\n\n{sc.get('baseCase', '')}")
    s3.markdown(f"**Worst case**\n\n{sc.get('worstCase', '')}")
    st.caption("Entities: " + ", ".join(a.get("entities", [])))

# ── Live feed ───────────────────────────────────────────────────

st.divider()
st.subheader("📡 Live Headlines")
try:
    news = _cached_news(cfg.news_feed_url)
except IngestionError as exc:
    st.error(f"Failed to fetch news: {exc}")
    news = []

cached_ids = {r.identity for r in snap.records}
for row in news_rows(news, cached_ids):
    cols = st.columns([7, 2, 1, 1])
    title = safe_markdown_text(row["headline"])
    cols[0].markdown(f"[{title}]({row['link']})" if row["link"] else title)
    cols[1].caption(f"{row['source']} · {row['age']}")
    cols[2].caption("✅ cached" if row["cached"] else "")
    if cols[3].button("Analyze", key=f"an_{row['identity']}", disabled=not cfg.has_analyzer):
        _analyze_item(row["item"])
        st.rerun()
