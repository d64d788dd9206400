"""
Risk sub-signals: one function per signal, each reading the store.

Each function is independent so the engine can run them concurrently and
isolate failures. None of them catch store errors; the engine does.
"""

from __future__ import annotations

import math
import statistics

from backend_listguard.database import Database
from backend_listguard.intake.models import Submission
from backend_listguard.risk_engine.models import (
    BEHAVIOR_MIN_ACTIVITIES,
    BEHAVIOR_RAPID_UPLOAD_POINTS,
    BEHAVIOR_REGULARITY_CV,
    BEHAVIOR_REGULARITY_POINTS,
    BEHAVIOR_SUSPICIOUS_SCORE,
    BEHAVIOR_WINDOW_SEC,
    LOCATION_FULL_CONSISTENCY_KM,
    LOCATION_MAX_AVG_DISTANCE_KM,
    MOVEMENT_MIN_DISTANCE_KM,
    NETWORK_POINTS_PER_OTHER_ACCOUNT,
    NETWORK_SHARED_IP_MIN_OTHERS,
    NETWORK_SUSPICIOUS_SCORE,
    NETWORK_WINDOW_SEC,
    BehaviorCheck,
    DuplicateImageCheck,
    LocationCheck,
    NetworkCheck,
    RiskConfig,
)

SECONDS_PER_DAY = 86400
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY
EARTH_RADIUS_KM = 6371.0
UPLOAD_ACTIVITY = "product_upload"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def identity_age_days(db: Database, submitter_id: str, now_ts: int) -> int:
    """Days since phone verification (fallback: account creation). Unknown account -> 0."""
    account = db.get_account(submitter_id)
    if account is None:
        return 0
    since = account.phone_verified_at or account.created_at
    return max(0, (now_ts - since) // SECONDS_PER_DAY)


def payment_history_months(db: Database, submitter_id: str, now_ts: int, config: RiskConfig) -> int:
    """Whole 30-day months since the oldest payment in the lookback window."""
    lookback = config.min_payment_history_months * SECONDS_PER_MONTH
    oldest = db.get_oldest_payment_ts(submitter_id, now_ts - lookback)
    if oldest is None:
        return 0
    return max(0, (now_ts - oldest) // SECONDS_PER_MONTH)


def prior_confirmed_reports(db: Database, submitter_id: str) -> int:
    return db.count_confirmed_reports_against(submitter_id)


def uploads_last_24h(db: Database, submitter_id: str, now_ts: int) -> int:
    return db.count_listings_since(submitter_id, now_ts - SECONDS_PER_DAY)


def check_duplicate_images(db: Database, submission: Submission) -> DuplicateImageCheck:
    """
    Exact-match lookup on image URL. Re-encoded or cropped copies are not
    detected; similarity is 1.0 or 0.0.
    """
    urls = submission.image_urls
    if not urls:
        return DuplicateImageCheck()
    found = db.any_image_exists(urls)
    return DuplicateImageCheck(found=found, similarity=1.0 if found else 0.0)


def check_location(db: Database, submission: Submission, now_ts: int, config: RiskConfig) -> LocationCheck:
    location = submission.location
    if location is None:
        return LocationCheck(valid=True, consistency=1.0)

    notes: list[str] = []
    if location.accuracy is not None and location.accuracy > config.low_gps_accuracy_m:
        notes.append(f"Very low GPS accuracy ({location.accuracy:.0f} m)")

    history = db.get_recent_locations(submission.submitter_id, limit=config.location_history_limit)
    if not history:
        return LocationCheck(valid=True, consistency=0.5, notes=notes)

    distances = [haversine_km(location.lat, location.lng, h.lat, h.lng) for h in history]
    avg_distance = sum(distances) / len(distances)
    consistency = max(0.0, 1.0 - avg_distance / LOCATION_FULL_CONSISTENCY_KM)
    valid = avg_distance < LOCATION_MAX_AVG_DISTANCE_KM

    # Movement impossibility against the most recent fix
    latest = history[0]
    jump_km = distances[0]
    elapsed_h = max(now_ts - latest.recorded_at, 1) / 3600.0
    speed_kmh = jump_km / elapsed_h
    if jump_km > MOVEMENT_MIN_DISTANCE_KM and speed_kmh > config.max_plausible_speed_kmh:
        notes.append(f"Impossible movement ({jump_km:.0f} km in {elapsed_h:.1f} h)")
        return LocationCheck(valid=False, consistency=0.0, notes=notes)

    return LocationCheck(valid=valid, consistency=consistency, notes=notes)


def check_behavior(db: Database, submitter_id: str, now_ts: int, config: RiskConfig) -> BehaviorCheck:
    activities = db.get_activities(submitter_id, now_ts - BEHAVIOR_WINDOW_SEC)
    score = 0.0

    if len(activities) >= BEHAVIOR_MIN_ACTIVITIES:
        stamps = [ts for ts, _ in activities]
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        mean = statistics.mean(intervals)
        if mean > 0 and statistics.pstdev(intervals) / mean < BEHAVIOR_REGULARITY_CV:
            score += BEHAVIOR_REGULARITY_POINTS

    uploads = sum(1 for _, kind in activities if kind == UPLOAD_ACTIVITY)
    if uploads > config.max_daily_uploads / 7:
        score += BEHAVIOR_RAPID_UPLOAD_POINTS

    return BehaviorCheck(suspicious=score > BEHAVIOR_SUSPICIOUS_SCORE, score=score)


def check_network(db: Database, submitter_id: str, now_ts: int) -> NetworkCheck:
    since = now_ts - NETWORK_WINDOW_SEC
    score = 0.0
    shared = 0
    for ip in db.get_recent_ips(submitter_id, since):
        others = db.count_other_accounts_on_ip(ip, submitter_id, since)
        if others > NETWORK_SHARED_IP_MIN_OTHERS:
            shared += 1
            score += NETWORK_POINTS_PER_OTHER_ACCOUNT * others
    score = min(1.0, score)
    return NetworkCheck(suspicious=score > NETWORK_SUSPICIOUS_SCORE, score=score, shared_ips=shared)
