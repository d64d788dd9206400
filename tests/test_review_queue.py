"""
Tests for the review queue and community reports: ordering, single decision
per listing, notifications, re-flagging, escalation and rewards.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend_listguard.core.exceptions import (
    DuplicateReport,
    ListingNotFound,
    ListingNotPending,
    ReportAlreadyResolved,
    ReportNotFound,
)
from backend_listguard.intake.models import Channel
from backend_listguard.review_queue import QueuePriority, compute_priority
from conftest import NOW, make_submission

CLEAN_SNAPSHOT = {"confidence": 1.0, "flagged_issues": []}


def _pending(db, priority="low", *, created=NOW, **overrides):
    listing, entry = db.create_listing(
        make_submission(**overrides),
        status="pending",
        moderation_snapshot=CLEAN_SNAPSHOT,
        queue_priority=priority,
        now_ts=created,
    )
    return listing, entry


def _approved(db, **overrides):
    listing, _ = db.create_listing(
        make_submission(**overrides), status="approved", moderation_snapshot=CLEAN_SNAPSHOT, now_ts=NOW - 3600
    )
    return listing


def test_priority_rules():
    assert compute_priority(["Contains prohibited words, possibly illegal (bangi)"], 0.5) == QueuePriority.HIGH
    assert compute_priority(["Suspected FRAUD ring"], 0.9) == QueuePriority.HIGH
    assert compute_priority([], 0.49) == QueuePriority.HIGH
    assert compute_priority(["a", "b", "c"], 0.6) == QueuePriority.MEDIUM
    assert compute_priority(["a", "b"], 0.6) == QueuePriority.LOW


def test_queue_orders_by_priority_then_age(db, review_queue):
    low_old, _ = _pending(db, "low", created=NOW - 300)
    high_new, _ = _pending(db, "high", created=NOW - 10)
    medium, _ = _pending(db, "medium", created=NOW - 100)
    high_old, _ = _pending(db, "high", created=NOW - 200)

    order = [e.listing_id for e in review_queue.list_queue()]
    assert order == [high_old.id, high_new.id, medium.id, low_old.id]
    assert [e.listing_id for e in review_queue.list_queue(QueuePriority.HIGH)] == [high_old.id, high_new.id]


def test_approve_resolves_entry_and_notifies(db, accounts, review_queue):
    listing, _ = _pending(db)
    approved = review_queue.approve(listing.id, "mod-1", notes="looks fine")
    assert approved.status == "approved"
    assert db.list_open_queue() == []

    notes = db.list_notifications("sup-1")
    assert len(notes) == 1
    assert notes[0]["delivery"] == "in_app"
    assert "approved" in notes[0]["message"]


def test_second_decision_fails(db, accounts, review_queue):
    listing, _ = _pending(db)
    review_queue.reject(listing.id, "mod-1", reason="Blurry photo")
    with pytest.raises(ListingNotPending):
        review_queue.approve(listing.id, "mod-2")
    assert db.get_listing(listing.id).status == "rejected"


def test_decision_on_unknown_listing(review_queue):
    with pytest.raises(ListingNotFound):
        review_queue.approve(999, "mod-1")


def test_session_listings_are_notified_by_sms(db, accounts, review_queue):
    listing, _ = _pending(db, channel=Channel.SESSION)
    review_queue.reject(listing.id, "mod-1", reason="Price too high")
    notes = db.list_notifications("sup-1")
    assert notes[0]["delivery"] == "sms"
    assert notes[0]["message"].endswith("Reason: Price too high")


def test_report_on_approved_listing_reflags_it(db, report_service):
    listing = _approved(db)
    outcome = report_service.submit_report(listing.id, "buyer-1", "fake_product", "Not real unga")
    assert outcome.reflagged is True
    assert outcome.escalated is False
    assert db.get_listing(listing.id).status == "pending"

    entry = db.get_open_queue_entry(listing.id)
    assert entry.id == outcome.queue_entry_id
    assert entry.priority == "low"
    assert [r.reporter_id for r in entry.reports] == ["buyer-1"]


def test_report_on_pending_listing_does_not_open_second_entry(db, report_service):
    listing, entry = _pending(db)
    outcome = report_service.submit_report(listing.id, "buyer-1", "fake_product")
    assert outcome.reflagged is False
    assert outcome.queue_entry_id == entry.id
    assert len(db.list_open_queue()) == 1


def test_three_reports_in_a_day_escalate_once(db, report_service):
    listing, _ = _pending(db, "low")
    outcomes = [
        report_service.submit_report(listing.id, f"buyer-{i}", "fraud", now_ts=NOW + i) for i in range(4)
    ]
    assert [o.escalated for o in outcomes] == [False, False, True, False]
    assert db.get_open_queue_entry(listing.id).priority == "high"


def test_concurrent_reports_escalate_exactly_once(db, report_service):
    listing, _ = _pending(db, "low")
    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(
            pool.map(lambda i: report_service.submit_report(listing.id, f"buyer-{i}", "fraud", now_ts=NOW), range(6))
        )
    assert sum(o.escalated for o in outcomes) == 1
    assert db.get_open_queue_entry(listing.id).priority == "high"
    assert len(db.list_open_queue()) == 1


def test_old_reports_do_not_count_towards_escalation(db, report_service):
    listing, _ = _pending(db, "low")
    report_service.submit_report(listing.id, "buyer-0", "fraud", now_ts=NOW - 2 * 86400)
    report_service.submit_report(listing.id, "buyer-1", "fraud", now_ts=NOW)
    outcome = report_service.submit_report(listing.id, "buyer-2", "fraud", now_ts=NOW)
    assert outcome.escalated is False


def test_duplicate_report_rejected(db, report_service):
    listing = _approved(db)
    report_service.submit_report(listing.id, "buyer-1", "fraud")
    with pytest.raises(DuplicateReport):
        report_service.submit_report(listing.id, "buyer-1", "fraud")


def test_report_unknown_listing(report_service):
    with pytest.raises(ListingNotFound):
        report_service.submit_report(12345, "buyer-1", "fraud")


def test_confirmed_report_rewards_once(db, report_service):
    listing = _approved(db)
    report = report_service.submit_report(listing.id, "buyer-1", "fraud").report

    validation = report_service.validate_report(report.id, "mod-1", confirmed=True)
    assert validation.report.status == "confirmed"
    assert validation.reward.amount == 50
    assert validation.reward.reward_type == "airtime"

    with pytest.raises(ReportAlreadyResolved):
        report_service.validate_report(report.id, "mod-2", confirmed=True)
    assert len(db.get_rewards("buyer-1")) == 1


def test_rejected_report_earns_nothing(db, report_service):
    listing = _approved(db)
    report = report_service.submit_report(listing.id, "buyer-1", "other").report
    validation = report_service.validate_report(report.id, "mod-1", confirmed=False)
    assert validation.report.status == "rejected"
    assert validation.reward is None
    assert db.get_rewards("buyer-1") == []


def test_validate_unknown_report(report_service):
    with pytest.raises(ReportNotFound):
        report_service.validate_report(77, "mod-1", confirmed=True)
