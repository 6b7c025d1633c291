"""Tests for the startup backfill driver."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from georisk.analyzer_gemini import GeminiAnalyzer
from georisk.backfill import run_backfill
from georisk.cache import CacheGatedAnalyzer
from georisk.common_types import NewsItem, RiskAssessment
from georisk.config import Config
from georisk.errors import AnalysisFailure, IngestionError
from georisk.store_sqlite import AnalysisStore
from tests.factories import FakeAnalyzer, make_assessment, make_payload, make_record


def _item(n: int, **kw) -> NewsItem:
    defaults = dict(
        identity=f"guid-{n}",
        headline=f"Headline {n}",
        source="Reuters",
        published="Mon, 06 Jan 2025 10:00:00 GMT",
        published_ts=1736157600.0,
        link=f"https://example.com/{n}",
    )
    defaults.update(kw)
    return NewsItem(**defaults)


@pytest.fixture
def store(tmp_path: Path) -> AnalysisStore:
    s = AnalysisStore(str(tmp_path / "backfill.db"))
    yield s
    s.close()


@pytest.fixture
def cfg() -> Config:
    with patch.dict(os.environ, {"BACKFILL_FLOOR": "5", "BACKFILL_LIMIT": "5"}):
        return Config()


class _FlakyAnalyzer:
    """Fails for headlines listed in *bad*, succeeds otherwise."""

    def __init__(self, bad: set[str]) -> None:
        self.bad = bad
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def analyze(self, headline: str) -> RiskAssessment:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append(headline)
            if headline in self.bad:
                raise AnalysisFailure("engine unavailable", status_code=503)
            return make_assessment(6)
        finally:
            self.in_flight -= 1


class TestRunBackfill:
    def test_empty_store_analyses_first_five_in_order(self, store, cfg) -> None:
        fake = FakeAnalyzer()
        cache = CacheGatedAnalyzer(store, fake)
        items = [_item(i) for i in range(8)]
        report = run_backfill(cfg, cache, lambda: items)
        assert not report.skipped
        assert fake.calls == [f"Headline {i}" for i in range(5)]
        assert report.analyzed == [f"guid-{i}" for i in range(5)]
        assert store.count() == 5
        assert report.snapshot is not None
        assert report.snapshot.record_count == 5

    def test_fewer_candidates_than_limit(self, store, cfg) -> None:
        fake = FakeAnalyzer()
        report = run_backfill(cfg, CacheGatedAnalyzer(store, fake), lambda: [_item(1), _item(2)])
        assert len(fake.calls) == 2
        assert report.attempted == 2

    def test_skipped_when_store_at_floor(self, store, cfg) -> None:
        for i in range(5):
            store.put(make_record(f"pre{i}", 4, float(i)))
        fake = FakeAnalyzer()
        report = run_backfill(cfg, CacheGatedAnalyzer(store, fake), lambda: [_item(1)])
        assert report.skipped
        assert fake.calls == []
        assert report.candidates == 1
        assert report.snapshot.record_count == 5

    def test_failures_do_not_abort_remaining_items(self, store, cfg) -> None:
        flaky = _FlakyAnalyzer(bad={"Headline 1", "Headline 3"})
        items = [_item(i) for i in range(5)]
        report = run_backfill(cfg, CacheGatedAnalyzer(store, flaky), lambda: items)
        assert len(flaky.calls) == 5
        assert report.failed == ["guid-1", "guid-3"]
        assert report.analyzed == ["guid-0", "guid-2", "guid-4"]
        assert store.get("guid-1") is None
        assert store.count() == 3

    def test_sequential_one_call_in_flight(self, store, cfg) -> None:
        flaky = _FlakyAnalyzer(bad=set())
        run_backfill(cfg, CacheGatedAnalyzer(store, flaky), lambda: [_item(i) for i in range(5)])
        assert flaky.max_in_flight == 1

    def test_already_cached_candidates_are_reused(self, store, cfg) -> None:
        store.put(make_record("guid-0", 9, 1.0))
        fake = FakeAnalyzer()
        report = run_backfill(cfg, CacheGatedAnalyzer(store, fake), lambda: [_item(0), _item(1)])
        assert fake.calls == ["Headline 1"]
        assert report.analyzed == ["guid-0", "guid-1"]

    def test_ingestion_error_is_logged_not_raised(self, store, cfg) -> None:
        def boom() -> list[NewsItem]:
            raise IngestionError("feed down")

        fake = FakeAnalyzer()
        report = run_backfill(cfg, CacheGatedAnalyzer(store, fake), boom)
        assert report.candidates == 0
        assert fake.calls == []
        assert report.snapshot is not None

    def test_invalid_items_are_ignored(self, store, cfg) -> None:
        fake = FakeAnalyzer()
        items = [_item(0, headline=""), _item(1, identity=""), _item(2)]
        report = run_backfill(cfg, CacheGatedAnalyzer(store, fake), lambda: items)
        assert fake.calls == ["Headline 2"]
        assert report.candidates == 1

    def test_odd_engine_payload_fails_only_its_item(self, store, cfg) -> None:
        bodies = [
            {"promptFeedback": ["blocked"]},
            {"candidates": [{"content": {"parts": [{"text": json.dumps(make_payload(6))}]}}]},
            {"candidates": [{"content": {"parts": [{"text": json.dumps(make_payload(3))}]}}]},
        ]
        client = httpx.Client(transport=httpx.MockTransport(lambda req: httpx.Response(200, json=bodies.pop(0))))
        engine = GeminiAnalyzer("test-key", client=client)
        report = run_backfill(cfg, CacheGatedAnalyzer(store, engine), lambda: [_item(i) for i in range(3)])
        assert report.failed == ["guid-0"]
        assert report.analyzed == ["guid-1", "guid-2"]
        assert store.count() == 2
