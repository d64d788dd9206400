"""
Content moderation engine: price anomaly, image and text analyses fused into a
confidence score with flagged issues.
"""

from backend_listguard.moderation.capabilities import ImageClassifier, PriceHistoryLookup, TextAnalyzer
from backend_listguard.moderation.engine import ModerationEngine, score_content
from backend_listguard.moderation.models import (
    FlaggedIssue,
    IssueKind,
    ModerationConfig,
    ModerationVerdict,
)

__all__ = [
    "FlaggedIssue",
    "ImageClassifier",
    "IssueKind",
    "ModerationConfig",
    "ModerationEngine",
    "ModerationVerdict",
    "PriceHistoryLookup",
    "TextAnalyzer",
    "score_content",
]
