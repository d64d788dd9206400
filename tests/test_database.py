"""
Tests for the SQLAlchemy store: atomic counters, queue invariants and intake
session uniqueness.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend_listguard.core.exceptions import SessionError
from backend_listguard.database import IntakeSessionRecord
from conftest import NOW, make_submission, seed_account


def _session_record(session_id, phone="+254700000001", *, created=NOW, ttl=300):
    return IntakeSessionRecord(
        session_id=session_id,
        phone_number=phone,
        kind="submission",
        step="main_menu",
        status="active",
        created_at=created,
        expires_at=created + ttl,
        data={"account_id": "sup-1"},
    )


def test_counter_stops_at_limit(db):
    results = [db.try_increment_counter("acct", "listing", "2025-06-15", 2) for _ in range(3)]
    assert results == [True, True, False]
    assert db.get_counter("acct", "listing", "2025-06-15") == 2
    # New day, new counter
    assert db.try_increment_counter("acct", "listing", "2025-06-16", 2) is True


def test_unlimited_counter(db):
    assert all(db.try_increment_counter("acct", "listing", "2025-06-15", None) for _ in range(5))
    assert db.get_counter("acct", "listing", "2025-06-15") == 5


def test_concurrent_increments_never_exceed_limit(db):
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: db.try_increment_counter("acct", "listing", "2025-06-15", 5), range(20)))
    assert sum(results) == 5
    assert db.get_counter("acct", "listing", "2025-06-15") == 5


def test_account_lookup_by_phone(db):
    seed_account(db, "sup-1", phone="+254700000001")
    assert db.get_account_by_phone("+254700000001").id == "sup-1"
    assert db.get_account_by_phone("+254799999999") is None


def test_queue_entry_requires_pending_listing(db):
    with pytest.raises(ValueError):
        db.create_listing(make_submission(), status="approved", queue_priority="low")


def test_reflag_only_applies_to_approved(db):
    pending, entry = db.create_listing(make_submission(), status="pending", queue_priority="low", now_ts=NOW)
    assert db.reflag_listing(pending.id, "high", now_ts=NOW) is None
    assert [e.id for e in db.list_open_queue()] == [entry.id]


def test_listing_images_persisted_in_order(db):
    listing, _ = db.create_listing(
        make_submission(images=["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"]),
        status="approved",
        now_ts=NOW,
    )
    loaded = db.get_listing(listing.id)
    assert [img.url for img in loaded.images] == ["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"]
    assert db.any_image_exists(["https://img.example.com/2.jpg"]) is True
    assert db.any_image_exists(["https://img.example.com/3.jpg"]) is False


def test_listings_by_submitter_newest_first(db):
    for i in range(7):
        db.create_listing(make_submission(name=f"Item {i}"), status="approved", now_ts=NOW + i)
    names = [listing.name for listing in db.list_listings_by_submitter("sup-1")]
    assert names == ["Item 6", "Item 5", "Item 4", "Item 3", "Item 2"]


def test_one_active_session_per_phone(db):
    db.create_intake_session(_session_record("sess_a"))
    with pytest.raises(SessionError):
        db.create_intake_session(_session_record("sess_b", created=NOW + 10))


def test_finished_session_frees_the_phone(db):
    db.create_intake_session(_session_record("sess_a"))
    assert db.finish_intake_session("sess_a", "completed") is True
    assert db.finish_intake_session("sess_a", "cancelled") is False
    db.create_intake_session(_session_record("sess_b", created=NOW + 10))
    assert db.get_intake_session("sess_a").status == "completed"


def test_stale_session_is_expired_on_new_start(db):
    db.create_intake_session(_session_record("sess_a"))
    db.create_intake_session(_session_record("sess_b", created=NOW + 600))
    assert db.get_intake_session("sess_a").status == "expired"
    assert db.get_intake_session("sess_b").status == "active"


def test_session_state_round_trip(db):
    record = db.create_intake_session(_session_record("sess_a"))
    record.step = "product_price"
    record.data["name"] = "UNGA PEMBE"
    record.captcha_attempts = 2
    db.save_intake_session(record)
    loaded = db.get_intake_session("sess_a")
    assert loaded.step == "product_price"
    assert loaded.data == {"account_id": "sup-1", "name": "UNGA PEMBE"}
    assert loaded.captcha_attempts == 2
