"""
Admission data models: listing lifecycle, upload policy, admission result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from backend_listguard.database.models import QueueEntryRecord
from backend_listguard.moderation.models import ModerationVerdict
from backend_listguard.risk_engine.models import RiskVerdict

AUTO_APPROVE_THRESHOLD = 0.85
HIGH_VALUE_THRESHOLD = 10_000.0
REVIEW_CULTURAL_TAGS = ("maasai", "refugee")
BASE_REVIEW_MINUTES = 30
REVIEW_MINUTES_PER_ISSUE = 10
HIGH_VALUE_REVIEW_FACTOR = 0.5

SECURITY_BLOCK_MESSAGE = "Upload blocked due to security concerns"


class ListingStatus(str, Enum):
    """created is transient and never persisted; approved/pending/rejected are."""

    CREATED = "created"
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


@dataclass
class UploadPolicy:
    """
    Account-level upload policy. daily_limit / max_listing_value None means
    unlimited.
    """

    can_upload: bool
    reason_if_denied: str | None = None
    daily_limit: int | None = None
    max_listing_value: float | None = None
    mandatory_review: bool = False
    bulk_allowed: bool = False
    role: str | None = None

    @classmethod
    def denied(cls, reason: str, role: str | None = None) -> UploadPolicy:
        return cls(can_upload=False, reason_if_denied=reason, daily_limit=0, max_listing_value=0.0, role=role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_upload": self.can_upload,
            "reason_if_denied": self.reason_if_denied,
            "daily_limit": self.daily_limit,
            "max_listing_value": self.max_listing_value,
            "mandatory_review": self.mandatory_review,
            "bulk_allowed": self.bulk_allowed,
            "role": self.role,
        }


@dataclass
class AdmissionConfig:
    auto_approve_threshold: float = AUTO_APPROVE_THRESHOLD
    high_value_threshold: float = HIGH_VALUE_THRESHOLD
    review_cultural_tags: tuple[str, ...] = REVIEW_CULTURAL_TAGS
    base_review_minutes: int = BASE_REVIEW_MINUTES
    review_minutes_per_issue: int = REVIEW_MINUTES_PER_ISSUE
    high_value_review_factor: float = HIGH_VALUE_REVIEW_FACTOR


@dataclass
class AdmissionResult:
    """
    Outcome of admit(). reason is the PolicyDenied text (shown verbatim) or the
    generic security-block message; block reasons are never exposed here.
    """

    status: ListingStatus
    risk_verdict: RiskVerdict | None = None
    moderation_verdict: ModerationVerdict | None = None
    listing_id: int | None = None
    queue_entry: QueueEntryRecord | None = None
    estimated_review_minutes: int | None = None
    blocked: bool = False
    policy_denied: bool = False
    reason: str | None = None
    review_triggers: list[str] = field(default_factory=list)

    @property
    def queue_entry_id(self) -> int | None:
        return self.queue_entry.id if self.queue_entry else None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "status": self.status.value,
            "listing_id": self.listing_id,
            "blocked": self.blocked,
            "reason": self.reason,
            "risk_verdict": None,
            "moderation_verdict": self.moderation_verdict.to_dict() if self.moderation_verdict else None,
            "queue_entry_id": self.queue_entry_id,
            "estimated_review_minutes": self.estimated_review_minutes,
        }
        if self.risk_verdict is not None and not self.blocked:
            out["risk_verdict"] = {
                "risk_level": self.risk_verdict.risk_level.value,
                "risk_score": round(self.risk_verdict.risk_score, 4),
                "reasons": list(self.risk_verdict.reasons),
                "block": self.risk_verdict.block,
            }
        elif self.risk_verdict is not None:
            out["risk_verdict"] = {"risk_level": self.risk_verdict.risk_level.value, "block": True}
        return out
