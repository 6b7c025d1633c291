"""Synchronous RSS ingestion adapter (Google News search feed by default).

Uses httpx synchronously so the adapter can be called from Streamlit
refresh cycles and the CLI without asyncio.  The XML is parsed with
feedparser and normalised through :func:`georisk.normalize.normalize_rss`.

Returns ``List[NewsItem]`` in feed order.
"""

from __future__ import annotations

import logging
from typing import List

import feedparser
import httpx

from .common_types import NewsItem
from .errors import IngestionError, retry
from .log_redaction import sanitize_url
from .normalize import normalize_rss

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = frozenset({429, 500, 502, 503, 504})


def _retry_after(value: str | None) -> float:
    """Delay-seconds form of a ``Retry-After`` header; 0 when absent or a date."""
    try:
        return max(float(value or 0), 0.0)
    except ValueError:
        return 0.0


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, url: str, retry_after: float = 0.0) -> None:
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(f"HTTP {status_code} from {sanitize_url(url)}")


class RssAdapter:
    """Fetch and normalise an RSS feed of candidate headlines."""

    def __init__(
        self,
        feed_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not feed_url:
            raise IngestionError("NEWS_FEED_URL missing")
        self.feed_url = feed_url
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    @retry(
        attempts=3,
        retryable_exceptions=(_RetryableStatus, httpx.ConnectError, httpx.ReadTimeout),
    )
    def _get(self) -> httpx.Response:
        r = self.client.get(self.feed_url)
        if r.status_code in _RETRYABLE_CODES:
            raise _RetryableStatus(
                r.status_code, str(r.url), _retry_after(r.headers.get("retry-after")),
            )
        return r

    def fetch(self) -> List[NewsItem]:
        """GET the feed and return valid items in feed order.

        Raises :class:`IngestionError` when the feed cannot be fetched
        or is not parseable as RSS/Atom.
        """
        url = sanitize_url(self.feed_url)
        try:
            r = self._get()
            r.raise_for_status()
        except _RetryableStatus as exc:
            raise IngestionError(str(exc), url=url) from None
        except httpx.HTTPStatusError as exc:
            raise IngestionError(
                f"HTTP {exc.response.status_code} from {url}", url=url,
            ) from None
        except httpx.HTTPError as exc:
            raise IngestionError(
                f"feed request failed ({type(exc).__name__}) for {url}", url=url,
            ) from None

        parsed = feedparser.parse(r.content)
        if parsed.bozo and not parsed.entries:
            raise IngestionError(
                f"unparseable feed from {url}: {parsed.get('bozo_exception')}", url=url,
            )

        items: List[NewsItem] = []
        for entry in parsed.entries:
            item = normalize_rss(entry)
            if not item.is_valid:
                logger.debug("Dropping feed entry without identity/title: %r", entry.get("title"))
                continue
            items.append(item)
        logger.info("Fetched %d headlines from %s", len(items), url)
        return items

    def close(self) -> None:
        self.client.close()
