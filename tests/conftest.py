"""
Pytest fixtures for Listguard tests. Every test gets a temporary SQLite
store, a fixed clock and seeded accounts.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from backend_listguard.admission import AdmissionPipeline, PolicyProvider
from backend_listguard.database import AccountRecord, Database, LocationRecord, get_database
from backend_listguard.intake.normalizer import build_submission
from backend_listguard.moderation import ModerationEngine
from backend_listguard.review_queue import DatabaseNotifier, ReportService, ReviewQueue
from backend_listguard.risk_engine import RiskEngine

NOW = 1_750_000_000
DAY = 86400
STOLEN_IMAGE = "https://img.example.com/stolen-unga.jpg"
NAIROBI = (-1.2921, 36.8219)
MOMBASA = (-4.0435, 39.6682)


def seed_account(
    db: Database,
    account_id: str,
    role: str = "verified_supplier",
    *,
    now: int = NOW,
    age_days: int = 200,
    phone: str | None = None,
    phone_verified: bool = True,
    payment_history: bool = True,
) -> AccountRecord:
    """Account aged age_days; payment_history seeds a payment 90 days back (3 full months)."""
    created = now - age_days * DAY
    account = AccountRecord(
        id=account_id,
        role=role,
        created_at=created,
        phone_number=phone,
        phone_verified_at=created if phone_verified else None,
    )
    db.upsert_account(account)
    if payment_history:
        db.record_payment(account_id, 500.0, now - 90 * DAY)
    return account


def make_submission(submitter_id: str = "sup-1", **overrides):
    fields = {
        "name": "Unga Pembe",
        "price": 120,
        "unit": "kg",
        "submitter_id": submitter_id,
    }
    fields.update(overrides)
    return build_submission(**fields)


def seed_fraud_history(db: Database, submitter_id: str, *, now: int = NOW) -> None:
    """
    Three older listings with confirmed community reports (one of them using
    STOLEN_IMAGE) and a location fix in Nairobi ten minutes before now.
    """
    for i in range(3):
        listing, _ = db.create_listing(
            make_submission(submitter_id, name=f"Old stock {i}", images=[STOLEN_IMAGE] if i == 0 else ()),
            status="approved",
            now_ts=now - 10 * DAY,
        )
        report = db.insert_report(listing.id, f"buyer-{i}", "fraud", "never delivered", now_ts=now - 9 * DAY)
        db.validate_report(report.id, "confirmed", moderator_id="mod-1", now_ts=now - 8 * DAY)
    db.record_location(LocationRecord(submitter_id, NAIROBI[0], NAIROBI[1], recorded_at=now - 600))


def fraud_submission(submitter_id: str):
    """Reuses STOLEN_IMAGE and claims Mombasa, about 440 km from the last fix."""
    return make_submission(
        submitter_id,
        images=[STOLEN_IMAGE],
        location={"lat": MOMBASA[0], "lng": MOMBASA[1], "accuracy": 20.0},
    )


@pytest.fixture
def db(tmp_path):
    database = get_database(str(tmp_path / "listguard.db"))
    yield database
    database.dispose()


@pytest.fixture
def clock():
    return lambda: float(NOW)


@pytest.fixture
def accounts(db):
    """Established supplier, aggregator, basic supplier, new basic supplier, moderator."""
    return {
        "supplier": seed_account(db, "sup-1", phone="+254700000001"),
        "aggregator": seed_account(db, "agg-1", "aggregator", phone="+254700000002"),
        "basic": seed_account(db, "basic-1", "basic_supplier", phone="+254700000003"),
        "new_basic": seed_account(db, "basic-new", "basic_supplier", age_days=0, payment_history=False),
        "moderator": seed_account(db, "mod-1", "moderator", phone="+254700000009"),
    }


@pytest.fixture
def signal_pool():
    pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="test-signal")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def risk_engine(db, signal_pool, clock):
    return RiskEngine(db, executor=signal_pool, clock=clock)


@pytest.fixture
def moderation_engine(db, signal_pool, clock):
    return ModerationEngine(db, executor=signal_pool, clock=clock)


@pytest.fixture
def pipeline(db, risk_engine, moderation_engine, clock):
    return AdmissionPipeline(db, risk_engine, moderation_engine, clock=clock)


@pytest.fixture
def policies(db, clock):
    return PolicyProvider(db, clock=clock)


@pytest.fixture
def review_queue(db, clock):
    return ReviewQueue(db, DatabaseNotifier(db), clock=clock)


@pytest.fixture
def report_service(db, clock):
    return ReportService(db, clock=clock)


@pytest.fixture
def api_env(tmp_path, monkeypatch):
    """Point the API at a temporary SQLite DB; services are rebuilt per test."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("LISTGUARD_DB_PATH", str(tmp_path / "api.db"))

    from backend_listguard.api_server.server import get_services, reset_services_for_test

    reset_services_for_test()
    services = get_services()
    now = int(time.time())
    seed_account(services.db, "sup-1", now=now, phone="+254700000001")
    seed_account(services.db, "agg-1", "aggregator", now=now, phone="+254700000002")
    seed_account(services.db, "mod-1", "moderator", now=now, phone="+254700000009")
    yield services
    reset_services_for_test()


@pytest.fixture
def client(api_env):
    """FastAPI TestClient. Depends on api_env so the temp DB is set before the app runs."""
    from fastapi.testclient import TestClient

    from backend_listguard.api_server.server import app

    return TestClient(app)
