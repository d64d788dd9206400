"""
Domain records for database entities.

Accounts, listings, queue entries, community reports and rewards, plus the
activity history read by the risk engine. Plain dataclasses returned by the
backend; no ORM objects escape the database package.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class AccountRecord:
    """Marketplace account as seen by the policy provider and risk engine."""

    id: str
    role: str
    created_at: int
    """Unix timestamp (seconds) of account creation."""
    phone_number: str | None = None
    phone_verified_at: int | None = None
    """Unix timestamp when the phone number was verified; None if never."""
    verification_level: str = "basic"


@dataclass
class LocationRecord:
    account_id: str
    lat: float
    lng: float
    recorded_at: int
    accuracy: float | None = None


@dataclass
class ListingImageRecord:
    id: int | None
    listing_id: int
    url: str
    labels: list[str] = field(default_factory=list)


@dataclass
class ListingRecord:
    """Persisted listing. status is one of approved / pending / rejected."""

    id: int
    submitter_id: str
    name: str
    price: float
    unit: str
    category: str
    channel: str
    status: str
    blocked: bool = False
    description: str | None = None
    cultural_tag: str | None = None
    risk_snapshot_json: str | None = None
    moderation_snapshot_json: str | None = None
    created_at: int | None = None
    updated_at: int | None = None
    images: list[ListingImageRecord] = field(default_factory=list)

    @property
    def moderation_snapshot(self) -> dict[str, Any]:
        return json.loads(self.moderation_snapshot_json) if self.moderation_snapshot_json else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "submitter_id": self.submitter_id,
            "name": self.name,
            "price": self.price,
            "unit": self.unit,
            "category": self.category,
            "channel": self.channel,
            "status": self.status,
            "blocked": self.blocked,
            "description": self.description,
            "cultural_tag": self.cultural_tag,
            "created_at": self.created_at,
            "images": [img.url for img in self.images],
        }


@dataclass
class CommunityReportRecord:
    id: int
    listing_id: int
    reporter_id: str
    reason_code: str
    description: str
    status: str
    created_at: int
    evidence: str | None = None
    validated_at: int | None = None
    moderator_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "reporter_id": self.reporter_id,
            "reason_code": self.reason_code,
            "description": self.description,
            "evidence": self.evidence,
            "status": self.status,
            "created_at": self.created_at,
            "validated_at": self.validated_at,
            "moderator_id": self.moderator_id,
        }


@dataclass
class QueueEntryRecord:
    """
    Review work item. At most one open entry per listing; an open entry
    always references a pending listing.
    """

    id: int
    listing_id: int
    priority: str
    status: str
    created_at: int
    risk_snapshot_json: str | None = None
    """JSON of the RiskVerdict at the time the entry was opened."""
    moderation_snapshot_json: str | None = None
    """JSON of the ModerationVerdict at the time the entry was opened."""
    resolved_at: int | None = None
    resolution: str | None = None
    moderator_id: str | None = None
    notes: str | None = None
    reports: list[CommunityReportRecord] = field(default_factory=list)

    @property
    def risk_snapshot(self) -> dict[str, Any]:
        return json.loads(self.risk_snapshot_json) if self.risk_snapshot_json else {}

    @property
    def moderation_snapshot(self) -> dict[str, Any]:
        return json.loads(self.moderation_snapshot_json) if self.moderation_snapshot_json else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "priority": self.priority,
            "status": self.status,
            "created_at": self.created_at,
            "risk_snapshot": self.risk_snapshot,
            "moderation_snapshot": self.moderation_snapshot,
            "resolved_at": self.resolved_at,
            "resolution": self.resolution,
            "moderator_id": self.moderator_id,
            "notes": self.notes,
            "reports": [r.to_dict() for r in self.reports],
        }


@dataclass
class RewardRecord:
    id: int
    report_id: int
    reporter_id: str
    amount: int
    reward_type: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "report_id": self.report_id,
            "reporter_id": self.reporter_id,
            "amount": self.amount,
            "reward_type": self.reward_type,
            "created_at": self.created_at,
        }


@dataclass
class IntakeSessionRecord:
    """Text-menu session state. data holds the fields collected so far."""

    session_id: str
    phone_number: str
    kind: str
    step: str
    status: str
    created_at: int
    expires_at: int
    data: dict[str, Any] = field(default_factory=dict)
    captcha_answer: str | None = None
    captcha_attempts: int = 0
