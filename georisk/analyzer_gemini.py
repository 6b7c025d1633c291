"""Gemini analysis adapter: headline → structured RiskAssessment.

Calls the ``generateContent`` REST endpoint with a JSON response schema
so the model answers with the documented assessment fields only.

The module uses **httpx** (already a project dependency) instead of a
Google SDK to avoid an extra install.  Every failure is mapped onto the
georisk taxonomy: transport/HTTP problems raise ``AnalysisFailure``,
payloads of the wrong shape raise ``MalformedResponse``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from .common_types import RiskAssessment
from .errors import AnalysisFailure, ConfigError, MalformedResponse
from .log_redaction import redact_secrets, sanitize_url

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_DEFAULT_MODEL = "gemini-3-flash-preview"
_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
_API_TIMEOUT = 30.0  # seconds

_PROMPT = (
    "Analyze the following geopolitical news headline and provide a structured "
    "risk assessment, market impact signals, and scenario outlooks: \"{headline}\""
)


def _str_array(description: str) -> dict[str, Any]:
    return {"type": "ARRAY", "items": {"type": "STRING"}, "description": description}


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "riskScore": {"type": "NUMBER", "description": "Risk Score from 1 to 10"},
        "riskLevel": {"type": "STRING", "description": "Risk Level (Low / Medium / High)"},
        "region": {"type": "STRING", "description": "Region or country affected"},
        "entities": _str_array("Key entities mentioned (countries, organizations, leaders)"),
        "industries": _str_array("Affected industries or sectors"),
        "consequences": {"type": "STRING", "description": "Possible economic or market consequences"},
        "reasoning": {"type": "STRING", "description": "Detailed explanation of the reasoning"},
        "marketImpact": {
            "type": "OBJECT",
            "properties": {
                "bullish": _str_array("Assets or sectors that might benefit"),
                "bearish": _str_array("Assets or sectors that might be negatively impacted"),
            },
            "required": ["bullish", "bearish"],
        },
        "scenarios": {
            "type": "OBJECT",
            "properties": {
                "bestCase": {"type": "STRING", "description": "Optimistic outcome"},
                "baseCase": {"type": "STRING", "description": "Most likely outcome"},
                "worstCase": {"type": "STRING", "description": "Pessimistic outcome"},
            },
            "required": ["bestCase", "baseCase", "worstCase"],
        },
    },
    "required": [
        "riskScore", "riskLevel", "region", "entities", "industries",
        "consequences", "reasoning", "marketImpact", "scenarios",
    ],
}


def build_request(headline: str) -> dict[str, Any]:
    """Request body for one headline."""
    return {
        "contents": [
            {"role": "user", "parts": [{"text": _PROMPT.format(headline=headline)}]},
        ],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def extract_payload(data: Any) -> Any:
    """Pull the JSON answer out of a ``generateContent`` response body."""
    if not isinstance(data, dict):
        raise MalformedResponse("response body is not an object")
    candidates = data.get("candidates")
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        if not isinstance(feedback, dict):
            raise MalformedResponse("promptFeedback is not an object", field="promptFeedback")
        reason = feedback.get("blockReason")
        if reason:
            raise AnalysisFailure(f"prompt blocked by engine: {reason}")
        raise MalformedResponse("response has no candidates", field="candidates")
    try:
        parts = candidates[0]["content"]["parts"]
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    except (KeyError, IndexError, TypeError):
        raise MalformedResponse("candidate has no content parts", field="candidates") from None
    text = _FENCE_RE.sub("", text.strip())
    if not text:
        raise MalformedResponse("candidate text is empty", field="candidates")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"candidate text is not JSON: {exc.msg}") from None


class GeminiAnalyzer:
    """Synchronous Gemini client that returns validated assessments."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = _DEFAULT_MODEL,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = _API_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("GEMINI_API_KEY is not set")
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self.client = client or httpx.Client(timeout=timeout)

    def analyze(self, headline: str) -> RiskAssessment:
        """Ask the engine for a risk assessment of *headline*.

        No retries here: a failure surfaces to the caller, and since
        nothing is cached the next request for the headline asks again.
        """
        try:
            resp = self.client.post(
                self.url,
                headers={
                    "x-goog-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                json=build_request(headline),
            )
        except httpx.TimeoutException as exc:
            raise AnalysisFailure(f"analysis timed out ({type(exc).__name__})") from None
        except httpx.HTTPError as exc:
            _safe = redact_secrets(sanitize_url(str(exc)))
            logger.warning("Gemini request failed: %s", _safe)
            raise AnalysisFailure(f"analysis request failed: {_safe}") from None

        if resp.status_code >= 400:
            logger.warning("Gemini API error %d for model %s", resp.status_code, self.model)
            raise AnalysisFailure(
                f"Gemini API error: {resp.status_code}", status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError):
            raise MalformedResponse(
                f"non-JSON response (content-type={resp.headers.get('content-type', '')!r})",
            ) from None

        return RiskAssessment.from_dict(extract_payload(data))

    def close(self) -> None:
        self.client.close()
