"""
Tests for the text-menu session channel: full submission flow, captcha
lockout, expiry, one live session per phone and the admin menu.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from backend_listguard.admission import AdmissionResult, ListingStatus
from backend_listguard.core.exceptions import PolicyDenied, SessionError
from backend_listguard.intake.models import Channel
from backend_listguard.intake.session import (
    CAPTCHA_FAILED,
    MAIN_MENU,
    NOT_REGISTERED,
    SESSION_EXPIRED,
    SUBMIT_FAILED,
    UNAUTHORIZED,
    Captcha,
    SessionHandler,
    SessionKind,
)
from conftest import NOW, make_submission

PHONE = "+254700000001"
MOD_PHONE = "+254700000009"


class FakeClock:
    def __init__(self, now=NOW):
        self.now = float(now)

    def __call__(self):
        return self.now


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def on_submit():
    return Mock(return_value=AdmissionResult(status=ListingStatus.PENDING, listing_id=42))


@pytest.fixture
def handler(db, accounts, on_submit, fake_clock):
    return SessionHandler(db, on_submit, captchas=[Captcha("Miguu mingapi ina kuku?\n1. Miwili\n2. Minne", "1")], clock=fake_clock)


def _to_captcha(handler, session_id):
    for key in ("1", "1", "unga pembe", "120", "1", "2"):
        response = handler.handle(session_id, key)
        assert not response.ended
    return response


def test_full_submission_flow(db, handler, on_submit):
    start = handler.start(PHONE)
    assert start.message == MAIN_MENU
    sid = start.session_id

    captcha = _to_captcha(handler, sid)
    assert "Miguu mingapi ina kuku?" in captcha.message
    confirm = handler.handle(sid, "1")
    assert "Jina: UNGA PEMBE" in confirm.message
    assert "Kipimo: kg" in confirm.message

    receipt = handler.handle(sid, "1")
    assert receipt.ended
    assert "Hali: Inasubiri uhakiki" in receipt.message
    assert "Kumbuka: SAV000042" in receipt.message

    on_submit.assert_called_once()
    submission = on_submit.call_args.args[0]
    assert submission.name == "UNGA PEMBE"
    assert submission.price == 120.0
    assert submission.unit == "kg"
    assert submission.submitter_id == "sup-1"
    assert submission.channel == Channel.SESSION

    assert db.get_intake_session(sid).status == "completed"
    with pytest.raises(SessionError):
        handler.handle(sid, "1")
    on_submit.assert_called_once()


def test_custom_unit_and_price_validation(handler):
    sid = handler.start(PHONE).session_id
    handler.handle(sid, "1")
    handler.handle(sid, "1")
    handler.handle(sid, "Mkaa")
    assert handler.handle(sid, "abc").message.startswith("Bei si sahihi")
    assert handler.handle(sid, "250000").message.startswith("Bei ni kubwa mno")
    handler.handle(sid, "1,500")
    handler.handle(sid, "4")
    handler.handle(sid, "Gunia")
    handler.handle(sid, "2")
    confirm = handler.handle(sid, "1")
    assert "Bei: 1500 KSh" in confirm.message
    assert "Kipimo: gunia" in confirm.message


def test_captcha_lockout_after_three_failures(db, handler, on_submit):
    sid = handler.start(PHONE).session_id
    _to_captcha(handler, sid)
    assert not handler.handle(sid, "2").ended
    assert "(2/3)" in handler.handle(sid, "2").message
    final = handler.handle(sid, "2")
    assert final.ended
    assert final.message == CAPTCHA_FAILED
    assert db.get_intake_session(sid).status == "terminated"
    on_submit.assert_not_called()


def test_session_expires_after_idle_timeout(db, handler, fake_clock):
    sid = handler.start(PHONE).session_id
    fake_clock.now += 299
    assert not handler.handle(sid, "3").ended
    fake_clock.now += 299
    assert not handler.handle(sid, "1").ended
    fake_clock.now += 301
    expired = handler.handle(sid, "1")
    assert expired.ended
    assert expired.message == SESSION_EXPIRED
    assert db.get_intake_session(sid).status == "expired"


def test_one_live_session_per_phone(handler):
    handler.start(PHONE)
    with pytest.raises(SessionError):
        handler.start(PHONE)


def test_unregistered_phone(handler):
    response = handler.start("+254711111111")
    assert response.ended
    assert response.message == NOT_REGISTERED


def test_cancel_at_confirmation(db, handler, on_submit):
    sid = handler.start(PHONE).session_id
    _to_captcha(handler, sid)
    handler.handle(sid, "1")
    assert handler.handle(sid, "3").ended
    assert db.get_intake_session(sid).status == "cancelled"
    on_submit.assert_not_called()


def test_rejected_admission_is_reported(db, accounts, fake_clock):
    rejected = AdmissionResult(status=ListingStatus.REJECTED, policy_denied=True, reason="Daily upload limit reached")
    handler = SessionHandler(db, Mock(return_value=rejected), captchas=[Captcha("q", "1")], clock=fake_clock)
    sid = handler.start(PHONE).session_id
    _to_captcha(handler, sid)
    handler.handle(sid, "1")
    receipt = handler.handle(sid, "1")
    assert receipt.ended
    assert receipt.message == "Bidhaa haikukubaliwa.\n\nDaily upload limit reached"


def test_admission_error_ends_session(db, accounts, fake_clock):
    handler = SessionHandler(db, Mock(side_effect=PolicyDenied("User not found")), captchas=[Captcha("q", "1")], clock=fake_clock)
    sid = handler.start(PHONE).session_id
    _to_captcha(handler, sid)
    handler.handle(sid, "1")
    response = handler.handle(sid, "1")
    assert response.message == SUBMIT_FAILED
    assert db.get_intake_session(sid).status == "completed"


def test_my_products_lists_recent(db, handler):
    db.create_listing(make_submission(name="UNGA PEMBE", channel=Channel.SESSION), status="approved", now_ts=NOW)
    sid = handler.start(PHONE).session_id
    message = handler.handle(sid, "2").message
    assert "1. UNGA PEMBE - 120 KSh (approved)" in message


def test_admin_session_requires_admin_role(handler):
    response = handler.start(PHONE, kind=SessionKind.ADMIN)
    assert response.ended
    assert response.message == UNAUTHORIZED


def test_admin_queue_summary(db, handler):
    start = handler.start(MOD_PHONE, kind=SessionKind.ADMIN)
    assert not start.ended
    summary = handler.handle(start.session_id, "1")
    assert summary.message.startswith("REVIEW QUEUE (0 open)")
    assert handler.handle(start.session_id, "0").ended
