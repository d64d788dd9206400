"""
Risk score computation: weighted sum of sub-signal contributions.

Pure functions over a RiskProfile; no store access. Degraded signals (None
fields) contribute zero and produce no reason.
"""

from __future__ import annotations

from backend_listguard.risk_engine.models import (
    WEIGHT_BEHAVIOR,
    WEIGHT_DUPLICATE_IMAGE,
    WEIGHT_IDENTITY_AGE,
    WEIGHT_LOCATION,
    WEIGHT_NETWORK,
    WEIGHT_PAYMENT_HISTORY,
    WEIGHT_PRIOR_REPORTS,
    WEIGHT_UPLOAD_VELOCITY,
    RiskConfig,
    RiskLevel,
    RiskProfile,
    RiskVerdict,
)


def risk_level_for_score(score: float, config: RiskConfig | None = None) -> RiskLevel:
    cfg = config or RiskConfig()
    if score >= cfg.high_threshold:
        return RiskLevel.HIGH
    if score >= cfg.medium_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def compute_risk_score(profile: RiskProfile, config: RiskConfig | None = None) -> tuple[float, list[str]]:
    """
    Weighted risk score in [0, 1] plus human-readable reasons in signal order.

    Args:
        profile: Signals gathered for one submission.
        config: Thresholds; defaults to RiskConfig().

    Returns:
        (score, reasons)
    """
    cfg = config or RiskConfig()
    score = 0.0
    reasons: list[str] = []

    age = profile.identity_age_days
    if age is not None and age < cfg.min_identity_age_days:
        score += WEIGHT_IDENTITY_AGE * (1 - age / cfg.min_identity_age_days)
        reasons.append(f"Account identity too new ({age} days, minimum {cfg.min_identity_age_days})")

    months = profile.payment_history_months
    if months is not None and months < cfg.min_payment_history_months:
        score += WEIGHT_PAYMENT_HISTORY * (1 - months / cfg.min_payment_history_months)
        reasons.append(f"Insufficient payment history ({months} months, minimum {cfg.min_payment_history_months})")

    reports = profile.prior_confirmed_reports
    if reports:
        score += WEIGHT_PRIOR_REPORTS * min(1.0, reports / cfg.prior_reports_saturation)
        reasons.append(f"{reports} previous confirmed community reports")

    uploads = profile.uploads_last_24h
    if uploads is not None and uploads > cfg.max_daily_uploads:
        score += WEIGHT_UPLOAD_VELOCITY
        reasons.append(f"High upload frequency ({uploads} in the last 24 hours)")

    dup = profile.duplicate_image
    if dup is not None and dup.found:
        score += WEIGHT_DUPLICATE_IMAGE * dup.similarity
        reasons.append("Duplicate images detected")

    loc = profile.location
    if loc is not None:
        if not loc.valid:
            score += WEIGHT_LOCATION * (1 - loc.consistency)
            reasons.append("Location inconsistency detected")
        reasons.extend(loc.notes)

    behavior = profile.behavior
    if behavior is not None and behavior.suspicious:
        score += WEIGHT_BEHAVIOR * behavior.score
        reasons.append("Suspicious behavior patterns")

    network = profile.network
    if network is not None and network.suspicious:
        score += WEIGHT_NETWORK * network.score
        reasons.append("Suspicious network activity")

    return max(0.0, min(1.0, score)), reasons


def build_verdict(profile: RiskProfile, config: RiskConfig | None = None) -> RiskVerdict:
    """Score a profile and bucket it. block iff level is high."""
    score, reasons = compute_risk_score(profile, config)
    level = risk_level_for_score(score, config)
    return RiskVerdict(
        risk_level=level,
        risk_score=score,
        reasons=reasons,
        block=level == RiskLevel.HIGH,
        degraded_signals=list(profile.degraded_signals),
    )
