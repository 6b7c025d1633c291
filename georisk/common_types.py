"""Shared records: feed items, risk assessments and stored analyses.

``NewsItem`` is what the ingestion adapter produces, ``RiskAssessment``
is what the analysis engine returns, and ``AnalysisRecord`` is the unit
the store persists (one per headline identity).
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

from .errors import MalformedResponse

CUSTOM_ID_PREFIX = "custom-"

_custom_lock = threading.Lock()
_last_custom_ms = 0


def new_custom_identity(now: float | None = None) -> str:
    """Mint a ``custom-<epoch ms>`` identity for a manually entered headline.

    The millisecond component is strictly increasing within the process,
    so two submissions of the same text never share an identity.
    """
    global _last_custom_ms
    ms = int((time.time() if now is None else now) * 1000)
    with _custom_lock:
        if ms <= _last_custom_ms:
            ms = _last_custom_ms + 1
        _last_custom_ms = ms
    return f"{CUSTOM_ID_PREFIX}{ms}"


@dataclass
class NewsItem:
    """Candidate headline from the ingestion feed."""

    identity: str  # feed GUID, or the link when the feed has none
    headline: str
    source: str
    published: str  # date string as supplied by the feed
    published_ts: float  # epoch seconds, 0.0 when unparseable
    link: str | None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """Minimal sanity check before the item may be analysed."""
        return bool(self.identity and self.headline)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "headline": self.headline,
            "source": self.source,
            "published": self.published,
            "published_ts": self.published_ts,
            "link": self.link,
        }


# ── Risk assessment payload ─────────────────────────────────────

# Top-level fields of the analysis payload and the JSON types they must have.
REQUIRED_FIELDS: dict[str, type | tuple[type, ...]] = {
    "riskScore": (int, float),
    "riskLevel": str,
    "region": str,
    "entities": list,
    "industries": list,
    "consequences": str,
    "reasoning": str,
    "marketImpact": dict,
    "scenarios": dict,
}
SCENARIO_FIELDS = ("bestCase", "baseCase", "worstCase")
MIN_RISK_SCORE = 1.0
MAX_RISK_SCORE = 10.0


def _str_list(payload: dict[str, Any], key: str, path: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedResponse(f"{path} must be a list of strings", field=path)
    return list(value)


@dataclass(frozen=True)
class MarketImpact:
    bullish: list[str]
    bearish: list[str]


@dataclass(frozen=True)
class Scenarios:
    best_case: str
    base_case: str
    worst_case: str


@dataclass
class RiskAssessment:
    """Structured risk assessment of one headline.

    ``raw`` keeps the payload exactly as the engine returned it; it is
    what gets stored and what ``to_dict()`` hands back, so fields the
    engine adds beyond the documented ones survive a cache round trip.
    """

    risk_score: float
    risk_level: str
    region: str
    entities: list[str]
    industries: list[str]
    consequences: str
    reasoning: str
    market_impact: MarketImpact
    scenarios: Scenarios
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, payload: Any) -> RiskAssessment:
        """Validate the payload structure and build an assessment.

        Raises :class:`MalformedResponse` naming the first offending
        field.  ``riskLevel`` is not checked against ``riskScore``.
        """
        if not isinstance(payload, dict):
            raise MalformedResponse(
                f"analysis payload must be an object, got {type(payload).__name__}",
            )
        for key, expected in REQUIRED_FIELDS.items():
            if key not in payload:
                raise MalformedResponse(f"missing field {key!r}", field=key)
            value = payload[key]
            # bool is an int subclass but never a valid score
            if not isinstance(value, expected) or isinstance(value, bool):
                raise MalformedResponse(
                    f"field {key!r} has type {type(value).__name__}", field=key,
                )

        score = float(payload["riskScore"])
        if not MIN_RISK_SCORE <= score <= MAX_RISK_SCORE:
            raise MalformedResponse(
                f"riskScore {score} outside {MIN_RISK_SCORE:g}-{MAX_RISK_SCORE:g}",
                field="riskScore",
            )

        impact = payload["marketImpact"]
        scenarios = payload["scenarios"]
        for key in SCENARIO_FIELDS:
            if not isinstance(scenarios.get(key), str):
                raise MalformedResponse(
                    f"scenarios.{key} must be a string", field=f"scenarios.{key}",
                )

        return cls(
            risk_score=score,
            risk_level=payload["riskLevel"],
            region=payload["region"],
            entities=_str_list(payload, "entities", "entities"),
            industries=_str_list(payload, "industries", "industries"),
            consequences=payload["consequences"],
            reasoning=payload["reasoning"],
            market_impact=MarketImpact(
                bullish=_str_list(impact, "bullish", "marketImpact.bullish"),
                bearish=_str_list(impact, "bearish", "marketImpact.bearish"),
            ),
            scenarios=Scenarios(
                best_case=scenarios["bestCase"],
                base_case=scenarios["baseCase"],
                worst_case=scenarios["worstCase"],
            ),
            raw=dict(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        return {
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "region": self.region,
            "entities": list(self.entities),
            "industries": list(self.industries),
            "consequences": self.consequences,
            "reasoning": self.reasoning,
            "marketImpact": {
                "bullish": list(self.market_impact.bullish),
                "bearish": list(self.market_impact.bearish),
            },
            "scenarios": {
                "bestCase": self.scenarios.best_case,
                "baseCase": self.scenarios.base_case,
                "worstCase": self.scenarios.worst_case,
            },
        }


# ── Stored record ───────────────────────────────────────────────


@dataclass
class AnalysisRecord:
    """One cached analysis, keyed by headline identity.

    ``analysis`` is opaque to the store; ``risk_score`` is duplicated
    out of it so the store can sort and filter without decoding.
    """

    identity: str
    headline: str
    analysis: dict[str, Any]
    risk_score: float
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_assessment(
        cls,
        identity: str,
        headline: str,
        assessment: RiskAssessment,
        created_at: float | None = None,
    ) -> AnalysisRecord:
        return cls(
            identity=identity,
            headline=headline,
            analysis=assessment.to_dict(),
            risk_score=assessment.risk_score,
            created_at=time.time() if created_at is None else created_at,
        )

    def assessment(self) -> RiskAssessment:
        return RiskAssessment.from_dict(self.analysis)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "headline": self.headline,
            "analysis": dict(self.analysis),
            "risk_score": self.risk_score,
            "created_at": self.created_at,
        }
