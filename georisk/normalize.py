"""Normalisation: parsed RSS entries → NewsItem.

The normaliser is **schema-tolerant**: it tries several field names so
feeds that differ slightly from Google News still produce items.

Google News RSS (as parsed by feedparser):
    id (from <guid>), title, link, published, source.title
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Mapping

from dateutil import parser as dtparser

from .common_types import NewsItem

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "Google News"

# Shortest valid format: "YYYYMMDD" = 8 chars.  Shorter strings like "5"
# are ambiguously parsed by dateutil (e.g. "5" → the 5th of this month).
_MIN_DATE_LEN = 8


def _to_epoch(s: str) -> float:
    """Parse a date/time string to epoch seconds.

    Returns ``0.0`` for empty, too-short, or unparseable strings.
    Naive datetimes are assumed UTC.
    """
    if not s:
        return 0.0
    s_stripped = s.strip()
    if len(s_stripped) < _MIN_DATE_LEN:
        logger.warning("Date string too short (%d chars): %r, returning epoch 0.", len(s_stripped), s_stripped)
        return 0.0
    try:
        dt = dtparser.parse(s_stripped)
    except (ValueError, OverflowError):
        logger.warning("Unparseable date %r, returning epoch 0.", s_stripped[:80])
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _first_str(entry: Mapping[str, Any], *keys: str) -> str:
    for k in keys:
        v = entry.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return ""


def _source_name(entry: Mapping[str, Any]) -> str:
    src = entry.get("source")
    if isinstance(src, Mapping):
        name = src.get("title") or ""
        if isinstance(name, str) and name.strip():
            return name.strip()
    if isinstance(src, str) and src.strip():
        return src.strip()
    return DEFAULT_SOURCE


def normalize_rss(entry: Mapping[str, Any]) -> NewsItem:
    """Turn one feedparser entry into a :class:`NewsItem`.

    The identity is the entry GUID, falling back to its link.
    """
    link = _first_str(entry, "link") or None
    identity = _first_str(entry, "id", "guid") or (link or "")
    published = _first_str(entry, "published", "updated", "pubDate")
    return NewsItem(
        identity=identity,
        headline=_first_str(entry, "title"),
        source=_source_name(entry),
        published=published,
        published_ts=_to_epoch(published),
        link=link,
        raw=dict(entry),
    )
