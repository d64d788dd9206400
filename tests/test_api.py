"""
Tests for the FastAPI server: admission endpoints, error mapping, reports,
review queue, menu sessions and CSV bulk import.

Services are rebuilt per test against a temporary SQLite DB (see api_env).
"""

from __future__ import annotations

import time

from conftest import fraud_submission, seed_account, seed_fraud_history

LISTING = {"submitter_id": "sup-1", "name": "Unga Pembe", "price": 120, "unit": "KILO"}


def _create_listing(client, **overrides):
    body = dict(LISTING)
    body.update(overrides)
    return client.post("/listings", json=body)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_create_listing_approved(client, api_env):
    r = _create_listing(client)
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "approved"
    assert data["risk_verdict"]["risk_level"] == "low"
    assert data["moderation_verdict"]["confidence"] == 1.0
    assert api_env.db.get_listing(data["listing_id"]).unit == "kg"


def test_create_listing_pending_for_cultural_tag(client):
    r = _create_listing(client, cultural_tag="maasai", description="Shuka ya Kimaasai")
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "pending"
    assert data["queue_entry_id"] is not None
    assert data["estimated_review_minutes"] == 30


def test_policy_denied_is_403(client):
    r = _create_listing(client, submitter_id="mod-1")
    assert r.status_code == 403
    assert r.json() == {"detail": "User role does not have product upload permissions", "code": "policy_denied"}


def test_security_block_is_403_without_reasons(client, api_env):
    now = int(time.time())
    seed_account(api_env.db, "new-1", now=now, age_days=0, payment_history=False)
    seed_fraud_history(api_env.db, "new-1", now=now)
    submission = fraud_submission("new-1")
    body = {
        "submitter_id": "new-1",
        "name": submission.name,
        "price": submission.price,
        "unit": submission.unit,
        "images": [{"url": url} for url in submission.image_urls],
        "location": submission.location.to_dict(),
    }
    r = client.post("/listings", json=body)
    assert r.status_code == 403
    assert r.json() == {"detail": "Upload blocked due to security concerns", "code": "security_block"}


def test_invalid_submission_is_422(client):
    r = _create_listing(client, name="A")
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_submission"


def test_non_finite_or_non_positive_price_is_422(client, api_env):
    body = '{"submitter_id": "sup-1", "name": "Unga Pembe", "price": NaN}'
    r = client.post("/listings", content=body, headers={"Content-Type": "application/json"})
    assert r.status_code == 422
    assert _create_listing(client, price=0).status_code == 422
    messaging = client.post(
        "/listings/messaging",
        content='{"phone": "+254700000001", "parsed": {"name": "Nyanya", "price": Infinity}}',
        headers={"Content-Type": "application/json"},
    )
    assert messaging.status_code == 422
    assert api_env.db.get_counter("sup-1", "listing", time.strftime("%Y-%m-%d", time.gmtime())) == 0


def test_messaging_listing(client):
    r = client.post(
        "/listings/messaging",
        json={"phone": "+254700000001", "images": [], "parsed": {"name": "Nyanya", "price": 80}},
    )
    assert r.status_code == 201
    assert r.json()["status"] == "approved"


def test_messaging_unknown_phone(client):
    r = client.post("/listings/messaging", json={"phone": "+254700999999", "parsed": {"name": "Nyanya", "price": 80}})
    assert r.status_code == 403
    assert r.json()["detail"] == "User not found"


def test_report_reflag_validate_and_approve(client):
    listing_id = _create_listing(client).json()["listing_id"]

    r = client.post("/reports", json={"listing_id": listing_id, "reporter_id": "buyer-1", "reason_code": "fake_product"})
    assert r.status_code == 201
    report = r.json()
    assert report["reflagged"] is True
    assert report["queue_entry_id"] is not None

    dup = client.post("/reports", json={"listing_id": listing_id, "reporter_id": "buyer-1", "reason_code": "fraud"})
    assert dup.status_code == 409
    assert dup.json()["code"] == "duplicate_report"

    queue = client.get("/queue").json()
    assert [e["listing_id"] for e in queue] == [listing_id]
    assert queue[0]["reports"][0]["reporter_id"] == "buyer-1"

    report_id = report["report"]["id"]
    v = client.post(f"/reports/{report_id}/validate", json={"moderator_id": "mod-1", "confirmed": True})
    assert v.status_code == 200
    assert v.json()["reward"]["amount"] == 50
    again = client.post(f"/reports/{report_id}/validate", json={"moderator_id": "mod-1", "confirmed": True})
    assert again.status_code == 409

    a = client.post(f"/queue/{listing_id}/approve", json={"moderator_id": "mod-1"})
    assert a.status_code == 200
    assert a.json()["status"] == "approved"
    assert client.get("/queue").json() == []
    second = client.post(f"/queue/{listing_id}/reject", json={"moderator_id": "mod-1", "reason": "late"})
    assert second.status_code == 409
    assert second.json()["code"] == "listing_not_pending"


def test_queue_filter_and_unknown_listing(client):
    _create_listing(client, cultural_tag="maasai")
    assert client.get("/queue", params={"priority": "high"}).json() == []
    assert len(client.get("/queue", params={"priority": "low"}).json()) == 1
    r = client.post("/queue/999/approve", json={"moderator_id": "mod-1"})
    assert r.status_code == 404


def test_report_unknown_listing_is_404(client):
    r = client.post("/reports", json={"listing_id": 999, "reporter_id": "buyer-1", "reason_code": "fraud"})
    assert r.status_code == 404


def test_session_endpoint(client):
    start = client.post("/session", json={"phone_number": "+254700000001"})
    assert start.status_code == 200
    data = start.json()
    assert data["message"].startswith("Karibu Savannah!")
    assert data["action"] == "continue"

    nxt = client.post("/session", json={"session_id": data["session_id"], "input": "1"})
    assert nxt.status_code == 200
    assert nxt.json()["step"] == "add_product_menu"

    dup = client.post("/session", json={"phone_number": "+254700000001"})
    assert dup.status_code == 409


def test_session_requires_phone_or_id(client):
    assert client.post("/session", json={"input": "1"}).status_code == 400
    assert client.post("/session", json={"session_id": "sess_missing", "input": "1"}).status_code == 409


def test_bulk_upload(client):
    csv_bytes = b"name,price,unit\nUnga Pembe,120,kg\nX,10,kg\n"
    r = client.post(
        "/listings/bulk",
        params={"account_id": "agg-1"},
        files={"file": ("listings.csv", csv_bytes, "text/csv")},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["success"] == 1
    assert data["failed"] == 1
    assert data["errors"] == ["Row 3: Product name must be at least 2 characters"]


def test_bulk_upload_requires_permission(client):
    r = client.post(
        "/listings/bulk",
        params={"account_id": "sup-1"},
        files={"file": ("listings.csv", b"Unga,120,kg\n", "text/csv")},
    )
    assert r.status_code == 403
