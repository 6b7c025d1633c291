"""Tests for the error taxonomy, the retry decorator and log redaction."""

from __future__ import annotations

import logging
import unittest
from unittest.mock import patch

from georisk.errors import (
    AnalysisFailure,
    GeoRiskError,
    MalformedResponse,
    PersistenceError,
    retry,
)
from georisk.log_redaction import LogRedactionFilter, redact_secrets, sanitize_url


class TestTaxonomy(unittest.TestCase):

    def test_malformed_is_an_analysis_failure(self):
        exc = MalformedResponse("missing field 'region'", field="region")
        self.assertIsInstance(exc, AnalysisFailure)
        self.assertIsInstance(exc, GeoRiskError)
        self.assertEqual(exc.field, "region")
        self.assertIsNone(exc.status_code)

    def test_persistence_is_not_an_analysis_failure(self):
        exc = PersistenceError("disk full", identity="x")
        self.assertNotIsInstance(exc, AnalysisFailure)
        self.assertEqual(exc.identity, "x")


def _flaky(outcomes: list):
    """Callable that raises or returns the next item of *outcomes*."""
    calls = []

    def fn():
        calls.append(1)
        result = outcomes.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    return fn, calls


class TestRetry(unittest.TestCase):

    @patch("georisk.errors.time.sleep")
    def test_succeeds_after_transient_failures(self, mock_sleep):
        fn, calls = _flaky([ConnectionError("a"), ConnectionError("b"), "ok"])
        wrapped = retry(attempts=3, retryable_exceptions=(ConnectionError,))(fn)
        self.assertEqual(wrapped(), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(mock_sleep.call_count, 2)

    @patch("georisk.errors.time.sleep")
    def test_reraises_after_last_attempt(self, mock_sleep):
        fn, calls = _flaky([ConnectionError("down"), ConnectionError("down")])
        wrapped = retry(attempts=2, retryable_exceptions=(ConnectionError,))(fn)
        with self.assertRaises(ConnectionError):
            wrapped()
        self.assertEqual(len(calls), 2)

    @patch("georisk.errors.time.sleep")
    def test_non_retryable_raises_immediately(self, mock_sleep):
        fn, calls = _flaky([ValueError("bad")])
        wrapped = retry(attempts=3, retryable_exceptions=(ConnectionError,))(fn)
        with self.assertRaises(ValueError):
            wrapped()
        self.assertEqual(len(calls), 1)
        mock_sleep.assert_not_called()

    @patch("georisk.errors.time.sleep")
    def test_delay_capped_and_on_retry_called(self, mock_sleep):
        seen = []
        fn, _ = _flaky([OSError("x")] * 4 + ["ok"])
        wrapped = retry(
            attempts=5, backoff=10.0, max_delay=5.0, jitter_pct=0.0,
            retryable_exceptions=(OSError,),
            on_retry=lambda attempt, exc: seen.append(attempt),
        )(fn)
        self.assertEqual(wrapped(), "ok")
        self.assertEqual(seen, [1, 2, 3, 4])
        delays = [c.args[0] for c in mock_sleep.call_args_list]
        self.assertEqual(delays, [1.0, 5.0, 5.0, 5.0])

    @patch("georisk.errors.time.sleep")
    def test_server_retry_after_raises_the_wait(self, mock_sleep):
        hinted = ConnectionError("slow down")
        hinted.retry_after = 4.0
        fn, _ = _flaky([hinted, "ok"])
        wrapped = retry(attempts=2, jitter_pct=0.0, retryable_exceptions=(ConnectionError,))(fn)
        self.assertEqual(wrapped(), "ok")
        mock_sleep.assert_called_once_with(4.0)

    @patch("georisk.errors.time.sleep")
    def test_retry_after_capped_by_max_delay(self, mock_sleep):
        hinted = ConnectionError("slow down")
        hinted.retry_after = 600
        fn, _ = _flaky([hinted, "ok"])
        wrapped = retry(attempts=2, max_delay=10.0, retryable_exceptions=(ConnectionError,))(fn)
        wrapped()
        mock_sleep.assert_called_once_with(10.0)


class TestRedaction(unittest.TestCase):

    def test_google_key_redacted(self):
        key = "AIza" + "A" * 35
        self.assertNotIn(key, redact_secrets(f"calling with {key} now"))

    def test_goog_header_redacted(self):
        out = redact_secrets("headers: x-goog-api-key: abc123def")
        self.assertNotIn("abc123def", out)

    def test_key_value_token_redacted(self):
        out = redact_secrets("api_key=SECRETVALUE&q=1")
        self.assertNotIn("SECRETVALUE", out)

    def test_sanitize_url_keeps_param_names(self):
        self.assertEqual(
            sanitize_url("https://x.test/feed?key=SECRET&q=1"),
            "https://x.test/feed?key=***&q=1",
        )

    def test_plain_text_untouched(self):
        msg = "Fetched 12 headlines from feed"
        self.assertEqual(redact_secrets(msg), msg)

    def test_authorization_header_redacted(self):
        out = redact_secrets("sent Authorization: Bearer abcdef123456xyz")
        self.assertNotIn("abcdef123456xyz", out)
        self.assertNotIn("Bearer", out)

    def test_bare_bearer_token_redacted(self):
        out = redact_secrets("retrying with Bearer eyJhbGciOiJIUzI1NiJ9.e30.sig")
        self.assertNotIn("eyJhbGciOiJIUzI1NiJ9", out)

    def test_authorization_prose_untouched(self):
        for msg in ("Authorization failed for feed", "Bearer bonds slide on sanctions news"):
            self.assertEqual(redact_secrets(msg), msg)

    def test_filter_redacts_args(self):
        record = logging.LogRecord(
            "georisk", logging.WARNING, __file__, 1,
            "request failed: %s", ("token=abcdef",), None,
        )
        self.assertTrue(LogRedactionFilter().filter(record))
        self.assertNotIn("abcdef", record.getMessage())


if __name__ == "__main__":
    unittest.main()
