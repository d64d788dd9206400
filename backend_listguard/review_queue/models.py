"""
Review queue models: priorities, statuses and thresholds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from backend_listguard.database.models import CommunityReportRecord, RewardRecord

FRAUD_MARKERS = ("fraud", "illegal")
HIGH_PRIORITY_CONFIDENCE_BELOW = 0.5
MEDIUM_PRIORITY_ISSUES_ABOVE = 2

REPORT_ESCALATION_COUNT = 3
REPORT_ESCALATION_WINDOW_SEC = 86400
REPORT_REWARD_AMOUNT = 50
REPORT_REWARD_TYPE = "airtime"


class QueuePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QueueStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class ReportStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass
class QueueConfig:
    fraud_markers: tuple[str, ...] = FRAUD_MARKERS
    high_priority_confidence_below: float = HIGH_PRIORITY_CONFIDENCE_BELOW
    medium_priority_issues_above: int = MEDIUM_PRIORITY_ISSUES_ABOVE
    escalation_count: int = REPORT_ESCALATION_COUNT
    escalation_window_sec: int = REPORT_ESCALATION_WINDOW_SEC
    reward_amount: int = REPORT_REWARD_AMOUNT
    reward_type: str = REPORT_REWARD_TYPE


@dataclass
class ReportOutcome:
    """Result of submit_report: the stored report and what it changed."""

    report: CommunityReportRecord
    reflagged: bool = False
    escalated: bool = False
    queue_entry_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "reflagged": self.reflagged,
            "escalated": self.escalated,
            "queue_entry_id": self.queue_entry_id,
        }


@dataclass
class ReportValidation:
    report: CommunityReportRecord
    reward: RewardRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "reward": self.reward.to_dict() if self.reward else None,
        }
