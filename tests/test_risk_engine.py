"""
Tests for the fraud risk engine: scorer arithmetic, store-backed signals,
degraded and failed sub-signals.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from backend_listguard.database import LocationRecord
from backend_listguard.risk_engine import RiskEngine, RiskLevel, RiskProfile, compute_risk_score, risk_level_for_score
from backend_listguard.risk_engine.models import DuplicateImageCheck, LocationCheck, RiskConfig
from backend_listguard.risk_engine.signals import check_location, haversine_km, payment_history_months
from conftest import DAY, NAIROBI, NOW, fraud_submission, make_submission, seed_account, seed_fraud_history


class _UnavailableStore:
    """Every store call fails."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise RuntimeError("store unavailable")

        return _fail


def test_new_account_without_payments_scores_low():
    """10-day identity and no payments: 0.2 * (1 - 10/90) + 0.15 ~= 0.3278 -> low."""
    profile = RiskProfile(submitter_id="s", identity_age_days=10, payment_history_months=0)
    score, reasons = compute_risk_score(profile)
    assert score == pytest.approx(0.32778, abs=1e-4)
    assert risk_level_for_score(score) == RiskLevel.LOW
    assert reasons[0].startswith("Account identity too new (10 days")
    assert reasons[1].startswith("Insufficient payment history (0 months")


def test_level_boundaries():
    assert risk_level_for_score(0.39) == RiskLevel.LOW
    assert risk_level_for_score(0.4) == RiskLevel.MEDIUM
    assert risk_level_for_score(0.69) == RiskLevel.MEDIUM
    assert risk_level_for_score(0.7) == RiskLevel.HIGH


def test_degraded_fields_contribute_nothing():
    score, reasons = compute_risk_score(RiskProfile(submitter_id="s"))
    assert score == 0.0
    assert reasons == []


def test_prior_reports_saturate_and_duplicates_add_weight():
    profile = RiskProfile(
        submitter_id="s",
        identity_age_days=400,
        payment_history_months=12,
        prior_confirmed_reports=7,
        duplicate_image=DuplicateImageCheck(found=True, similarity=1.0),
    )
    score, reasons = compute_risk_score(profile)
    assert score == pytest.approx(0.35)
    assert "7 previous confirmed community reports" in reasons
    assert "Duplicate images detected" in reasons


def test_location_notes_are_reasons_even_when_valid():
    profile = RiskProfile(
        submitter_id="s",
        location=LocationCheck(valid=True, consistency=0.9, notes=["Very low GPS accuracy (5000 m)"]),
    )
    score, reasons = compute_risk_score(profile)
    assert score == 0.0
    assert reasons == ["Very low GPS accuracy (5000 m)"]


def test_payment_months_counts_oldest_payment_in_window(db):
    seed_account(db, "pay-1", payment_history=False)
    db.record_payment("pay-1", 100.0, NOW - 65 * DAY)
    db.record_payment("pay-1", 100.0, NOW - 5 * DAY)
    db.record_payment("pay-1", 100.0, NOW - 400 * DAY)  # outside the lookback
    assert payment_history_months(db, "pay-1", NOW, RiskConfig()) == 2


def test_impossible_movement_invalidates_location(db):
    seed_account(db, "mover")
    db.record_location(LocationRecord("mover", NAIROBI[0], NAIROBI[1], recorded_at=NOW - 600))
    submission = make_submission("mover", location={"lat": -4.0435, "lng": 39.6682})
    check = check_location(db, submission, NOW, RiskConfig())
    assert check.valid is False
    assert check.consistency == 0.0
    assert any(note.startswith("Impossible movement") for note in check.notes)


def test_small_jitter_is_not_movement(db):
    seed_account(db, "still")
    db.record_location(LocationRecord("still", NAIROBI[0], NAIROBI[1], recorded_at=NOW - 5))
    submission = make_submission("still", location={"lat": NAIROBI[0] + 0.001, "lng": NAIROBI[1]})
    check = check_location(db, submission, NOW, RiskConfig())
    assert check.valid is True
    assert check.notes == []


def test_haversine_nairobi_mombasa():
    assert 400 < haversine_km(NAIROBI[0], NAIROBI[1], -4.0435, 39.6682) < 480


def test_established_supplier_scores_low(db, accounts, risk_engine):
    verdict = risk_engine.score_risk(make_submission("sup-1"), now_ts=NOW)
    assert verdict.risk_level == RiskLevel.LOW
    assert verdict.risk_score == 0.0
    assert verdict.block is False
    assert verdict.degraded_signals == []


def test_fraud_history_blocks(db, accounts, risk_engine):
    """identity 0.2 + payments 0.15 + reports 0.2 + duplicate 0.15 + movement 0.1 = 0.8."""
    seed_fraud_history(db, "basic-new")
    verdict = risk_engine.score_risk(fraud_submission("basic-new"), now_ts=NOW)
    assert verdict.risk_score == pytest.approx(0.8)
    assert verdict.risk_level == RiskLevel.HIGH
    assert verdict.block is True
    assert "Duplicate images detected" in verdict.reasons
    assert "3 previous confirmed community reports" in verdict.reasons


def test_failed_signal_is_skipped(db, accounts, signal_pool):
    store = MagicMock(wraps=db)
    store.get_account.side_effect = RuntimeError("accounts table locked")
    engine = RiskEngine(store, executor=signal_pool)
    verdict = engine.score_risk(make_submission("sup-1"), now_ts=NOW)
    assert verdict.degraded_signals == ["identity_age"]
    assert verdict.risk_level == RiskLevel.LOW
    assert not verdict.is_system_error


def test_total_failure_returns_system_error(signal_pool):
    engine = RiskEngine(_UnavailableStore(), executor=signal_pool)
    submission = make_submission("sup-1", images=["https://img.example.com/a.jpg"], location={"lat": 0.0, "lng": 37.0})
    verdict = engine.score_risk(submission, now_ts=NOW)
    assert verdict.is_system_error
    assert verdict.risk_level == RiskLevel.MEDIUM
    assert verdict.risk_score == 0.5
    assert verdict.block is False
    assert len(verdict.degraded_signals) == 8


def test_store_outage_without_images_or_location_is_system_error(signal_pool):
    engine = RiskEngine(_UnavailableStore(), executor=signal_pool)
    verdict = engine.score_risk(make_submission("sup-1"), now_ts=NOW)
    assert verdict.is_system_error
    assert verdict.risk_level == RiskLevel.MEDIUM
    assert verdict.risk_score == 0.5
    assert sorted(verdict.degraded_signals) == [
        "behavior",
        "identity_age",
        "network",
        "payment_history",
        "prior_reports",
        "upload_velocity",
    ]


def test_score_is_audited(db, accounts, signal_pool):
    store = MagicMock(wraps=db)
    RiskEngine(store, executor=signal_pool).score_risk(make_submission("sup-1"), now_ts=NOW)
    store.insert_risk_check.assert_called_once()
    args = store.insert_risk_check.call_args.args
    assert args[0] == "sup-1"
    assert args[1] == "low"


def test_scoring_is_repeatable(db, accounts, risk_engine):
    seed_fraud_history(db, "basic-new")
    first = risk_engine.score_risk(fraud_submission("basic-new"), now_ts=NOW)
    second = risk_engine.score_risk(fraud_submission("basic-new"), now_ts=NOW)
    assert first.to_dict() == second.to_dict()
