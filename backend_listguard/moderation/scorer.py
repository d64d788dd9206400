"""
Moderation confidence and flagged issues from the three analyses.

Fixed-penalty subtraction from 1.0, floored at 0.0. A missing analysis
(skipped or degraded) contributes no penalty.
"""

from __future__ import annotations

from backend_listguard.moderation.models import (
    NEGATIVE_SENTIMENT_PENALTY_BELOW,
    PENALTY_IMAGE_MISMATCH,
    PENALTY_LANGUAGE_COMPLIANCE,
    PENALTY_NEGATIVE_SENTIMENT,
    PENALTY_NON_PRODUCT_IMAGE,
    PENALTY_PRICE_ANOMALY,
    PENALTY_PROHIBITED_CONTENT,
    FlaggedIssue,
    ImageAnalysis,
    IssueKind,
    PriceAnalysis,
    TextAnalysis,
)


def compute_confidence(
    price: PriceAnalysis | None,
    image: ImageAnalysis | None,
    text: TextAnalysis | None,
) -> float:
    confidence = 1.0
    if price is not None and price.detected:
        confidence -= PENALTY_PRICE_ANOMALY
    if image is not None and not image.is_product_image:
        confidence -= PENALTY_NON_PRODUCT_IMAGE
    if image is not None and not image.matches_description:
        confidence -= PENALTY_IMAGE_MISMATCH
    if text is not None:
        if text.has_prohibited_terms:
            confidence -= PENALTY_PROHIBITED_CONTENT
        if not text.language_compliant:
            confidence -= PENALTY_LANGUAGE_COMPLIANCE
        if text.sentiment_score < NEGATIVE_SENTIMENT_PENALTY_BELOW:
            confidence -= PENALTY_NEGATIVE_SENTIMENT
    return max(0.0, min(1.0, confidence))


def collect_issues(
    price: PriceAnalysis | None,
    image: ImageAnalysis | None,
    text: TextAnalysis | None,
) -> list[FlaggedIssue]:
    issues: list[FlaggedIssue] = []
    if price is not None and price.detected:
        direction = "too high" if price.deviation > 0 else "too low"
        issues.append(
            FlaggedIssue(IssueKind.PRICE_ANOMALY, f"Price {direction} by {abs(price.deviation) * 100:.1f}%")
        )
    if image is not None and not image.is_product_image:
        issues.append(FlaggedIssue(IssueKind.NON_PRODUCT_IMAGE, "Image does not appear to be a product photo"))
    if image is not None and not image.matches_description:
        issues.append(FlaggedIssue(IssueKind.IMAGE_MISMATCH, "Image does not match product description"))
    if text is not None:
        if text.has_prohibited_terms:
            terms = ", ".join(text.prohibited_terms)
            issues.append(
                FlaggedIssue(IssueKind.PROHIBITED_CONTENT, f"Contains prohibited words, possibly illegal ({terms})")
            )
        if not text.language_compliant:
            issues.append(FlaggedIssue(IssueKind.LANGUAGE_COMPLIANCE, "Contains unsupported characters"))
        if text.sentiment_score < 0:
            issues.append(FlaggedIssue(IssueKind.NEGATIVE_SENTIMENT, "Negative sentiment in description"))
    return issues
