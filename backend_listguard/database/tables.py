"""
SQLAlchemy models for the listing store.

One declarative Base for every table; the backend creates them with
Base.metadata.create_all. Timestamps are Unix seconds (Integer).
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# -----------------------------------------------------------------------------
# Accounts and activity history (read by the risk engine)
# -----------------------------------------------------------------------------


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True)
    role = Column(String(32), nullable=False, index=True)
    verification_level = Column(String(32), nullable=False, default="basic")
    phone_number = Column(String(32), nullable=True, index=True)
    created_at = Column(Integer, nullable=False)
    phone_verified_at = Column(Integer, nullable=True)


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(Integer, nullable=False, index=True)


class AccountLocation(Base):
    __tablename__ = "account_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    recorded_at = Column(Integer, nullable=False, index=True)


class AccountActivity(Base):
    __tablename__ = "account_activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    activity_type = Column(String(64), nullable=False)
    created_at = Column(Integer, nullable=False, index=True)


class AccountSession(Base):
    """Network session: which IP an account was seen on."""

    __tablename__ = "account_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False, index=True)
    created_at = Column(Integer, nullable=False, index=True)


class UploadCounter(Base):
    """Per-account per-day counter; incremented with a conditional UPDATE."""

    __tablename__ = "upload_counters"
    __table_args__ = (UniqueConstraint("account_id", "kind", "day", name="uq_upload_counter"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False)
    kind = Column(String(32), nullable=False)
    day = Column(String(10), nullable=False)  # YYYY-MM-DD (UTC)
    count = Column(Integer, nullable=False, default=0)


# -----------------------------------------------------------------------------
# Listings and review
# -----------------------------------------------------------------------------


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submitter_id = Column(String(64), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    price = Column(Float, nullable=False)
    unit = Column(String(32), nullable=False)
    category = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    channel = Column(String(16), nullable=False)
    cultural_tag = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, index=True)
    blocked = Column(Boolean, nullable=False, default=False)
    risk_snapshot_json = Column(Text, nullable=True)
    moderation_snapshot_json = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)
    updated_at = Column(Integer, nullable=False)


Index("ix_listings_category_unit_status", Listing.category, Listing.unit, Listing.status)


class ListingImage(Base):
    __tablename__ = "listing_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    url = Column(String(1024), nullable=False, index=True)
    labels_json = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False)


class QueueEntry(Base):
    __tablename__ = "queue_entries"
    __table_args__ = (
        # At most one open entry per listing.
        Index(
            "uq_queue_entries_open_listing",
            "listing_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    priority = Column(String(16), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="open", index=True)
    risk_snapshot_json = Column(Text, nullable=True)
    moderation_snapshot_json = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)
    resolved_at = Column(Integer, nullable=True)
    resolution = Column(String(16), nullable=True)
    moderator_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)


class CommunityReport(Base):
    __tablename__ = "community_reports"
    __table_args__ = (UniqueConstraint("listing_id", "reporter_id", name="uq_report_listing_reporter"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    reporter_id = Column(String(64), nullable=False, index=True)
    reason_code = Column(String(64), nullable=False)
    description = Column(Text, nullable=False, default="")
    evidence = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    created_at = Column(Integer, nullable=False, index=True)
    validated_at = Column(Integer, nullable=True)
    moderator_id = Column(String(64), nullable=True)


class CommunityReward(Base):
    __tablename__ = "community_rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("community_reports.id"), nullable=False, unique=True)
    reporter_id = Column(String(64), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reward_type = Column(String(32), nullable=False, default="airtime")
    created_at = Column(Integer, nullable=False)


# -----------------------------------------------------------------------------
# Audit trail
# -----------------------------------------------------------------------------


class RiskCheck(Base):
    """One row per risk verdict; the RiskProfile itself is never stored."""

    __tablename__ = "risk_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submitter_id = Column(String(64), nullable=False, index=True)
    risk_level = Column(String(16), nullable=False)
    risk_score = Column(Float, nullable=False)
    reasons_json = Column(Text, nullable=True)
    degraded_json = Column(Text, nullable=True)
    blocked = Column(Boolean, nullable=False, default=False)
    created_at = Column(Integer, nullable=False, index=True)


class ModerationLog(Base):
    __tablename__ = "moderation_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submitter_id = Column(String(64), nullable=False, index=True)
    product_name = Column(String(256), nullable=False)
    channel = Column(String(16), nullable=False)
    confidence = Column(Float, nullable=False)
    issues_json = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)


class SecurityEvent(Base):
    __tablename__ = "security_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False)
    details_json = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    delivery = Column(String(16), nullable=False)  # sms | in_app
    message = Column(Text, nullable=False)
    created_at = Column(Integer, nullable=False)


class IntakeSession(Base):
    __tablename__ = "intake_sessions"
    __table_args__ = (
        Index(
            "uq_intake_sessions_active_phone",
            "phone_number",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    session_id = Column(String(128), primary_key=True)
    phone_number = Column(String(32), nullable=False, index=True)
    kind = Column(String(16), nullable=False, default="submission")
    step = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="active")
    data_json = Column(Text, nullable=True)
    captcha_answer = Column(String(32), nullable=True)
    captcha_attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False, index=True)
