"""Cache-gated analysis: analyse a headline at most once per identity.

``analyze_or_reuse()`` looks the identity up in the store first and only
calls the analysis engine on a miss.  A successful miss writes exactly
one record; a hit or a failure writes nothing, so failures are retried
on the next request instead of being cached.

Two concurrent misses for the same new identity may both reach the
engine; the later ``put`` replaces the earlier record.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from .common_types import AnalysisRecord, RiskAssessment, new_custom_identity
from .errors import AnalysisFailure, MalformedResponse, PersistenceError
from .store_sqlite import AnalysisStore

logger = logging.getLogger(__name__)


class Analyzer(Protocol):
    def analyze(self, headline: str) -> RiskAssessment: ...


class CacheGatedAnalyzer:
    """Store-first wrapper around an :class:`Analyzer`."""

    def __init__(self, store: AnalysisStore, analyzer: Analyzer) -> None:
        self.store = store
        self.analyzer = analyzer
        self._stats_lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "failures": 0}

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def stats(self) -> dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)

    def analyze_or_reuse(self, identity: str, headline: str) -> RiskAssessment:
        """Return the cached assessment for *identity*, analysing on a miss.

        On a hit *headline* is ignored.  Raises :class:`AnalysisFailure`
        (or :class:`MalformedResponse`) when the engine fails and
        :class:`PersistenceError` when the store does.
        """
        cached = self.store.get(identity)
        if cached is not None:
            self._bump("hits")
            logger.debug("Cache hit for %s", identity)
            try:
                return cached.assessment()
            except MalformedResponse as exc:
                raise PersistenceError(
                    f"cached analysis is unreadable: {exc}", identity=identity,
                ) from exc

        self._bump("misses")
        try:
            assessment = self.analyzer.analyze(headline)
        except AnalysisFailure as exc:
            self._bump("failures")
            logger.warning("Analysis failed for %s: %s", identity, exc)
            raise

        self.store.put(AnalysisRecord.from_assessment(identity, headline, assessment))
        logger.info(
            "Analysed %s: score=%.1f region=%s", identity, assessment.risk_score, assessment.region,
        )
        return assessment

    def analyze_custom(self, headline: str) -> tuple[str, RiskAssessment]:
        """Analyse a manually entered headline under a fresh identity."""
        identity = new_custom_identity()
        return identity, self.analyze_or_reuse(identity, headline)
