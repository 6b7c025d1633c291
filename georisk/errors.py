"""Structured error taxonomy and retry decorator for georisk.

Provides:
  - A custom exception hierarchy so callers can tell a storage fault
    (fatal to the current operation) from an analysis failure
    (recoverable by asking again later).
  - A ``@retry()`` decorator with exponential backoff, jitter and
    exception-type filtering, used at the HTTP ingestion boundary.
"""
from __future__ import annotations

import functools
import logging
import random
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------

class GeoRiskError(Exception):
    """Base error for all georisk subsystems."""
    pass


class PersistenceError(GeoRiskError):
    """The analysis store could not read or write a record."""

    def __init__(self, message: str, *, identity: str = ""):
        self.identity = identity
        super().__init__(message)


class AnalysisFailure(GeoRiskError):
    """The analysis engine was unreachable, rate-limited or errored.

    Never cached: the next request for the same identity retries.
    """

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponse(AnalysisFailure):
    """The analysis engine answered with a structurally invalid payload."""

    def __init__(self, message: str, *, field: str = ""):
        self.field = field
        super().__init__(message)


class IngestionError(GeoRiskError):
    """The news feed could not be fetched or parsed."""

    def __init__(self, message: str, *, url: str = ""):
        self.url = url
        super().__init__(message)


class ConfigError(GeoRiskError):
    """Invalid or missing configuration value."""
    pass


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------

def _server_hint(exc: BaseException) -> float:
    """Seconds the server asked us to wait (``exc.retry_after``), else 0."""
    hint = getattr(exc, "retry_after", None)
    if isinstance(hint, (int, float)) and hint > 0:
        return float(hint)
    return 0.0


def retry(
    attempts: int = 3,
    backoff: float = 2.0,
    max_delay: float = 30.0,
    jitter_pct: float = 0.10,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[..., Any] | None = None,
):
    """Decorator: retry a call with exponential backoff and jitter.

    The first retry waits about one second, each further one *backoff*
    times longer, never more than *max_delay*.  When the raised
    exception carries a ``retry_after`` attribute (seconds, e.g. from an
    HTTP ``Retry-After`` header) the wait is at least that long, still
    capped at *max_delay*.

    ``on_retry(attempt, exc)`` runs before each sleep.  Exceptions not
    listed in *retryable_exceptions*, and the last failure, propagate.
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            delay = 1.0
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except retryable_exceptions as exc:
                    if attempt >= attempts:
                        raise
                    if on_retry is not None:
                        on_retry(attempt, exc)
                    jitter = delay * jitter_pct * (2 * random.random() - 1)
                    wait = min(max(delay + jitter, _server_hint(exc)), max_delay)
                    logger.warning(
                        "retry %d/%d for %s in %.1fs (%s)",
                        attempt, attempts, fn.__qualname__, wait, exc,
                    )
                    time.sleep(max(wait, 0.0))
                    delay = min(delay * backoff, max_delay)
                    attempt += 1
        return wrapper
    return decorator
