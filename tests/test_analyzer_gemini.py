"""Tests for the Gemini analysis adapter (httpx MockTransport, no network)."""

from __future__ import annotations

import json

import httpx
import pytest

from georisk.analyzer_gemini import (
    RESPONSE_SCHEMA,
    GeminiAnalyzer,
    build_request,
    extract_payload,
)
from georisk.errors import AnalysisFailure, ConfigError, MalformedResponse
from tests.factories import make_payload


def _gemini_body(text: str) -> dict:
    return {
        "candidates": [
            {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"},
        ],
    }


def _analyzer(handler) -> GeminiAnalyzer:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiAnalyzer("test-key", model="gemini-test", base_url="https://gemini.test/v1beta", client=client)


class TestBuildRequest:
    def test_prompt_embeds_headline(self) -> None:
        body = build_request("Border clash reported")
        text = body["contents"][0]["parts"][0]["text"]
        assert '"Border clash reported"' in text

    def test_schema_requires_every_field(self) -> None:
        body = build_request("x")
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert set(RESPONSE_SCHEMA["required"]) == set(make_payload().keys())


class TestExtractPayload:
    def test_plain_json(self) -> None:
        assert extract_payload(_gemini_body('{"a": 1}')) == {"a": 1}

    def test_code_fence_stripped(self) -> None:
        assert extract_payload(_gemini_body('```json\n{"a": 1}\n```')) == {"a": 1}

    def test_blocked_prompt_is_analysis_failure(self) -> None:
        with pytest.raises(AnalysisFailure, match="SAFETY") as excinfo:
            extract_payload({"promptFeedback": {"blockReason": "SAFETY"}})
        assert not isinstance(excinfo.value, MalformedResponse)

    @pytest.mark.parametrize(
        "body",
        [
            [],
            {},
            {"candidates": [{"content": {}}]},
            _gemini_body(""),
            _gemini_body("not json"),
            {"promptFeedback": ["blocked"]},
            {"promptFeedback": "SAFETY"},
        ],
    )
    def test_bad_shapes_are_malformed(self, body) -> None:
        with pytest.raises(MalformedResponse):
            extract_payload(body)


class TestGeminiAnalyzer:
    def test_missing_key_is_config_error(self) -> None:
        with pytest.raises(ConfigError):
            GeminiAnalyzer("")

    def test_success_returns_validated_assessment(self) -> None:
        seen: list[httpx.Request] = []

        def handler(req: httpx.Request) -> httpx.Response:
            seen.append(req)
            return httpx.Response(200, json=_gemini_body(json.dumps(make_payload(8))))

        result = _analyzer(handler).analyze("Strait closed")
        assert result.risk_score == 8
        assert result.region == "Middle East"
        assert result.market_impact.bullish == ["Crude oil"]
        assert result.scenarios.worst_case == "Open conflict."
        req = seen[0]
        assert req.url.path == "/v1beta/models/gemini-test:generateContent"
        assert req.headers["x-goog-api-key"] == "test-key"
        assert "key=" not in str(req.url)

    def test_extra_fields_survive(self) -> None:
        payload = make_payload(5)
        payload["confidence"] = "medium"
        result = _analyzer(
            lambda req: httpx.Response(200, json=_gemini_body(json.dumps(payload))),
        ).analyze("h")
        assert result.to_dict()["confidence"] == "medium"

    def test_non_object_prompt_feedback_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse) as excinfo:
            _analyzer(lambda req: httpx.Response(200, json={"promptFeedback": ["blocked"]})).analyze("h")
        assert excinfo.value.field == "promptFeedback"

    @pytest.mark.parametrize("status", [400, 429, 500, 503])
    def test_http_error_status_is_analysis_failure(self, status: int) -> None:
        with pytest.raises(AnalysisFailure) as excinfo:
            _analyzer(lambda req: httpx.Response(status, json={"error": {}})).analyze("h")
        assert excinfo.value.status_code == status
        assert not isinstance(excinfo.value, MalformedResponse)

    def test_timeout_is_analysis_failure(self) -> None:
        def handler(req: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=req)

        with pytest.raises(AnalysisFailure, match="timed out"):
            _analyzer(handler).analyze("h")

    def test_connect_error_is_analysis_failure(self) -> None:
        def handler(req: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=req)

        with pytest.raises(AnalysisFailure):
            _analyzer(handler).analyze("h")

    def test_non_json_body_is_malformed(self) -> None:
        with pytest.raises(MalformedResponse):
            _analyzer(lambda req: httpx.Response(200, text="<html>oops</html>")).analyze("h")

    def test_missing_field_is_malformed(self) -> None:
        payload = make_payload(5)
        del payload["scenarios"]
        with pytest.raises(MalformedResponse) as excinfo:
            _analyzer(lambda req: httpx.Response(200, json=_gemini_body(json.dumps(payload)))).analyze("h")
        assert excinfo.value.field == "scenarios"

    @pytest.mark.parametrize("score", [0, 11, -3, 10.5])
    def test_score_out_of_range_is_malformed(self, score) -> None:
        payload = make_payload(5)
        payload["riskScore"] = score
        with pytest.raises(MalformedResponse) as excinfo:
            _analyzer(lambda req: httpx.Response(200, json=_gemini_body(json.dumps(payload)))).analyze("h")
        assert excinfo.value.field == "riskScore"

    def test_boolean_score_is_malformed(self) -> None:
        payload = make_payload(5)
        payload["riskScore"] = True
        with pytest.raises(MalformedResponse):
            _analyzer(lambda req: httpx.Response(200, json=_gemini_body(json.dumps(payload)))).analyze("h")

    def test_wrong_list_type_is_malformed(self) -> None:
        payload = make_payload(5)
        payload["marketImpact"]["bullish"] = "Gold"
        with pytest.raises(MalformedResponse) as excinfo:
            _analyzer(lambda req: httpx.Response(200, json=_gemini_body(json.dumps(payload)))).analyze("h")
        assert excinfo.value.field == "marketImpact.bullish"
