"""
Data models for the content moderation engine.

Confidence starts at 1.0 and loses a fixed penalty per detected problem; it
is never an average of analysis scores.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

PENALTY_PRICE_ANOMALY = 0.3
PENALTY_NON_PRODUCT_IMAGE = 0.4
PENALTY_IMAGE_MISMATCH = 0.3
PENALTY_PROHIBITED_CONTENT = 0.5
PENALTY_LANGUAGE_COMPLIANCE = 0.2
PENALTY_NEGATIVE_SENTIMENT = 0.2

PRICE_DEVIATION_THRESHOLD = 0.20
PRICE_WINDOW_DAYS = 30
NEGATIVE_SENTIMENT_PENALTY_BELOW = -1

FALLBACK_CONFIDENCE = 0.3
FALLBACK_ISSUE = "Automated screening failed - requires human review"


class IssueKind(str, Enum):
    PRICE_ANOMALY = "price_anomaly"
    NON_PRODUCT_IMAGE = "non_product_image"
    IMAGE_MISMATCH = "image_mismatch"
    PROHIBITED_CONTENT = "prohibited_content"
    LANGUAGE_COMPLIANCE = "language_compliance"
    NEGATIVE_SENTIMENT = "negative_sentiment"
    ANALYSIS_UNAVAILABLE = "analysis_unavailable"


@dataclass
class FlaggedIssue:
    kind: IssueKind
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class PriceAnalysis:
    detected: bool
    market_price: float | None
    """Median comparable price; None when there were no comparables."""
    deviation: float = 0.0
    comparables: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "market_price": self.market_price,
            "deviation": round(self.deviation, 4),
            "comparables": self.comparables,
        }


@dataclass
class ImageAnalysis:
    is_product_image: bool
    matches_description: bool
    quality_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_product_image": self.is_product_image,
            "matches_description": self.matches_description,
            "quality_score": round(self.quality_score, 4),
        }


@dataclass
class TextAnalysis:
    prohibited_terms: list[str] = field(default_factory=list)
    language_compliant: bool = True
    sentiment_score: int = 0
    """Positive minus negative curated terms."""

    @property
    def has_prohibited_terms(self) -> bool:
        return bool(self.prohibited_terms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "prohibited_terms": list(self.prohibited_terms),
            "language_compliant": self.language_compliant,
            "sentiment_score": self.sentiment_score,
        }


@dataclass
class ModerationConfig:
    price_deviation_threshold: float = PRICE_DEVIATION_THRESHOLD
    price_window_days: int = PRICE_WINDOW_DAYS
    signal_timeout_sec: float = 2.0
    max_workers: int = 8


@dataclass
class ModerationVerdict:
    """Output of score_content."""

    confidence: float
    flagged_issues: list[FlaggedIssue] = field(default_factory=list)
    price_anomaly: PriceAnalysis | None = None
    image_analysis: ImageAnalysis | None = None
    text_analysis: TextAnalysis | None = None
    degraded_analyses: list[str] = field(default_factory=list)
    fallback: bool = False
    """True when the engine could not analyse anything and returned the default verdict."""

    @classmethod
    def screening_failed(cls, degraded: list[str] | None = None) -> ModerationVerdict:
        return cls(
            confidence=FALLBACK_CONFIDENCE,
            flagged_issues=[FlaggedIssue(IssueKind.ANALYSIS_UNAVAILABLE, FALLBACK_ISSUE)],
            degraded_analyses=list(degraded or []),
            fallback=True,
        )

    @property
    def issue_messages(self) -> list[str]:
        return [issue.message for issue in self.flagged_issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "confidence": round(self.confidence, 4),
            "flagged_issues": [i.to_dict() for i in self.flagged_issues],
            "price_anomaly": self.price_anomaly.to_dict() if self.price_anomaly else None,
            "image_analysis": self.image_analysis.to_dict() if self.image_analysis else None,
            "text_analysis": self.text_analysis.to_dict() if self.text_analysis else None,
            "degraded_analyses": list(self.degraded_analyses),
            "fallback": self.fallback,
        }
