"""
Data models for the fraud risk engine.

RiskProfile is ephemeral (built per submission, never stored); RiskVerdict is
what admission consumes and what the audit trail records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# Signal weights; sum to 1.0
WEIGHT_IDENTITY_AGE = 0.20
WEIGHT_PAYMENT_HISTORY = 0.15
WEIGHT_PRIOR_REPORTS = 0.20
WEIGHT_UPLOAD_VELOCITY = 0.10
WEIGHT_DUPLICATE_IMAGE = 0.15
WEIGHT_LOCATION = 0.10
WEIGHT_BEHAVIOR = 0.05
WEIGHT_NETWORK = 0.05

MIN_IDENTITY_AGE_DAYS = 90
MIN_PAYMENT_HISTORY_MONTHS = 3
PRIOR_REPORTS_SATURATION = 3
MAX_DAILY_UPLOADS = 50

MEDIUM_RISK_THRESHOLD = 0.4
HIGH_RISK_THRESHOLD = 0.7

# Location consistency
LOCATION_HISTORY_LIMIT = 10
LOCATION_FULL_CONSISTENCY_KM = 100.0
LOCATION_MAX_AVG_DISTANCE_KM = 200.0
MAX_PLAUSIBLE_SPEED_KMH = 120.0
MOVEMENT_MIN_DISTANCE_KM = 1.0
LOW_GPS_ACCURACY_M = 1000.0

# Behavior
BEHAVIOR_WINDOW_SEC = 7 * 86400
BEHAVIOR_MIN_ACTIVITIES = 3
BEHAVIOR_REGULARITY_CV = 0.1
BEHAVIOR_REGULARITY_POINTS = 0.3
BEHAVIOR_RAPID_UPLOAD_POINTS = 0.4
BEHAVIOR_SUSPICIOUS_SCORE = 0.5

# Network
NETWORK_WINDOW_SEC = 86400
NETWORK_SHARED_IP_MIN_OTHERS = 5
NETWORK_POINTS_PER_OTHER_ACCOUNT = 0.1
NETWORK_SUSPICIOUS_SCORE = 0.4

SYSTEM_ERROR_REASON = "system error"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class RiskConfig:
    """Thresholds for the risk engine. Defaults reproduce the production weights."""

    min_identity_age_days: int = MIN_IDENTITY_AGE_DAYS
    min_payment_history_months: int = MIN_PAYMENT_HISTORY_MONTHS
    prior_reports_saturation: int = PRIOR_REPORTS_SATURATION
    max_daily_uploads: int = MAX_DAILY_UPLOADS
    medium_threshold: float = MEDIUM_RISK_THRESHOLD
    high_threshold: float = HIGH_RISK_THRESHOLD
    signal_timeout_sec: float = 2.0
    max_workers: int = 8
    location_history_limit: int = LOCATION_HISTORY_LIMIT
    max_plausible_speed_kmh: float = MAX_PLAUSIBLE_SPEED_KMH
    low_gps_accuracy_m: float = LOW_GPS_ACCURACY_M


@dataclass
class DuplicateImageCheck:
    found: bool = False
    similarity: float = 0.0


@dataclass
class LocationCheck:
    valid: bool = True
    consistency: float = 1.0
    notes: list[str] = field(default_factory=list)
    """Extra reasons (movement impossibility, low GPS accuracy)."""


@dataclass
class BehaviorCheck:
    suspicious: bool = False
    score: float = 0.0


@dataclass
class NetworkCheck:
    suspicious: bool = False
    score: float = 0.0
    shared_ips: int = 0


@dataclass
class RiskProfile:
    """
    Per-submission snapshot of account signals. A None field means that
    signal degraded; the scorer skips it.
    """

    submitter_id: str
    identity_age_days: int | None = None
    payment_history_months: int | None = None
    prior_confirmed_reports: int | None = None
    uploads_last_24h: int | None = None
    duplicate_image: DuplicateImageCheck | None = None
    location: LocationCheck | None = None
    behavior: BehaviorCheck | None = None
    network: NetworkCheck | None = None
    looked_up: list[str] = field(default_factory=list)
    degraded_signals: list[str] = field(default_factory=list)


@dataclass
class RiskVerdict:
    """Output of score_risk. block is true iff risk_level is high."""

    risk_level: RiskLevel
    risk_score: float
    reasons: list[str] = field(default_factory=list)
    block: bool = False
    degraded_signals: list[str] = field(default_factory=list)
    """Names of sub-signals that failed or timed out. Audit only."""

    @classmethod
    def system_error(cls, degraded: list[str] | None = None) -> RiskVerdict:
        return cls(
            risk_level=RiskLevel.MEDIUM,
            risk_score=0.5,
            reasons=[SYSTEM_ERROR_REASON],
            block=False,
            degraded_signals=list(degraded or []),
        )

    @property
    def is_system_error(self) -> bool:
        return self.reasons == [SYSTEM_ERROR_REASON]

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "risk_score": round(self.risk_score, 4),
            "reasons": list(self.reasons),
            "block": self.block,
            "degraded_signals": list(self.degraded_signals),
        }
