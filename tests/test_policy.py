"""
Tests for role-based upload policy and daily slot consumption.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend_listguard.admission.policy import COUNTER_BULK, consume_daily_slot, day_key
from backend_listguard.core.exceptions import DailyLimitExceeded
from conftest import DAY, NOW, seed_account


@pytest.mark.parametrize(
    "account_id, daily_limit, max_value, mandatory_review, bulk_allowed",
    [
        ("sup-1", 100, 100_000, False, False),
        ("agg-1", 1000, 500_000, False, True),
        ("basic-1", 5, 10_000, True, False),
    ],
)
def test_role_matrix(accounts, policies, account_id, daily_limit, max_value, mandatory_review, bulk_allowed):
    policy = policies.policy_for(account_id, now_ts=NOW)
    assert policy.can_upload is True
    assert policy.daily_limit == daily_limit
    assert policy.max_listing_value == max_value
    assert policy.mandatory_review is mandatory_review
    assert policy.bulk_allowed is bulk_allowed


def test_admin_is_unlimited(db, policies):
    seed_account(db, "admin-1", "admin")
    policy = policies.policy_for("admin-1", now_ts=NOW)
    assert policy.can_upload is True
    assert policy.daily_limit is None
    assert policy.max_listing_value is None


def test_moderator_cannot_upload(accounts, policies):
    policy = policies.policy_for("mod-1", now_ts=NOW)
    assert policy.can_upload is False
    assert policy.reason_if_denied == "User role does not have product upload permissions"
    assert policy.daily_limit == 0


def test_unknown_account(policies):
    assert policies.policy_for("ghost", now_ts=NOW).reason_if_denied == "User not found"


def test_unknown_role(db, policies):
    seed_account(db, "odd-1", "wizard")
    assert policies.policy_for("odd-1", now_ts=NOW).reason_if_denied == "Unknown role type"


def test_basic_supplier_needs_verified_phone(db, policies):
    seed_account(db, "basic-unverified", "basic_supplier", phone_verified=False)
    assert policies.policy_for("basic-unverified", now_ts=NOW).reason_if_denied == "Phone number not verified"


def test_basic_supplier_needs_a_day_of_age(accounts, policies):
    policy = policies.policy_for("basic-new", now_ts=NOW)
    assert policy.can_upload is False
    assert policy.reason_if_denied == "Account too new (must be at least 24 hours old)"
    assert policies.policy_for("basic-new", now_ts=NOW + DAY).can_upload is True


def test_exhausted_daily_limit_is_reported(accounts, policies, db):
    for _ in range(5):
        consume_daily_slot(db, "basic-1", 5, NOW)
    with pytest.raises(DailyLimitExceeded) as excinfo:
        consume_daily_slot(db, "basic-1", 5, NOW)
    assert excinfo.value.details == {"kind": "listing", "limit": 5}
    policy = policies.policy_for("basic-1", now_ts=NOW)
    assert policy.can_upload is False
    assert policy.reason_if_denied == "Daily upload limit reached (5/5)"


def test_bulk_counter_is_separate(db):
    consume_daily_slot(db, "agg-1", 1, NOW, kind=COUNTER_BULK)
    consume_daily_slot(db, "agg-1", 1, NOW)
    assert db.get_counter("agg-1", COUNTER_BULK, day_key(NOW)) == 1


def test_racing_uploads_lose_with_daily_limit_exceeded(db):
    def _take(_):
        try:
            consume_daily_slot(db, "basic-1", 3, NOW)
            return True
        except DailyLimitExceeded:
            return False

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(_take, range(10)))
    assert results.count(True) == 3
    assert db.get_counter("basic-1", "listing", day_key(NOW)) == 3


def test_day_key_is_utc():
    assert day_key(NOW) == "2025-06-15"
