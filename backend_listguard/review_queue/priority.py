"""
Queue priority at entry creation.

high: any flagged issue mentions a fraud/illegal marker, or confidence < 0.5.
medium: more than 2 flagged issues.
low: otherwise.
"""

from __future__ import annotations

from typing import Any

from backend_listguard.moderation.models import ModerationVerdict
from backend_listguard.review_queue.models import QueueConfig, QueuePriority


def compute_priority(issues: list[str], confidence: float, config: QueueConfig | None = None) -> QueuePriority:
    cfg = config or QueueConfig()
    lowered = [issue.lower() for issue in issues]
    if any(marker in issue for issue in lowered for marker in cfg.fraud_markers):
        return QueuePriority.HIGH
    if confidence < cfg.high_priority_confidence_below:
        return QueuePriority.HIGH
    if len(issues) > cfg.medium_priority_issues_above:
        return QueuePriority.MEDIUM
    return QueuePriority.LOW


def priority_for_verdict(verdict: ModerationVerdict, config: QueueConfig | None = None) -> QueuePriority:
    return compute_priority(verdict.issue_messages, verdict.confidence, config)


def priority_from_snapshot(moderation_snapshot: dict[str, Any], config: QueueConfig | None = None) -> QueuePriority:
    """Priority from a stored ModerationVerdict.to_dict(); missing snapshot -> low."""
    if not moderation_snapshot:
        return QueuePriority.LOW
    issues = [i.get("message", "") for i in moderation_snapshot.get("flagged_issues") or []]
    confidence = float(moderation_snapshot.get("confidence", 1.0))
    return compute_priority(issues, confidence, config)
