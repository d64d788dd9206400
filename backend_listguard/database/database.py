"""
Database abstraction layer for accounts, listings, review queue and reports.

Defaults to SQLite; any SQLAlchemy URL works (DATABASE_URL). All access goes
through the abstract DatabaseBackend interface and the Database facade, so the
scoring engines and the review queue never see ORM objects.

Concurrency rules live here:
- daily counters use INSERT-if-missing then UPDATE ... WHERE count < limit;
- status transitions are conditional UPDATEs checked by rowcount;
- one open queue entry per listing and one report per reporter per listing
  are enforced by unique indexes.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from sqlalchemy import case, create_engine, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from backend_listguard.config.env import get_database_url
from backend_listguard.core.exceptions import (
    DuplicateReport,
    ListingNotFound,
    ListingNotPending,
    ReportAlreadyResolved,
    ReportNotFound,
    SessionError,
)
from backend_listguard.database.models import (
    AccountRecord,
    CommunityReportRecord,
    IntakeSessionRecord,
    ListingImageRecord,
    ListingRecord,
    LocationRecord,
    QueueEntryRecord,
    RewardRecord,
)
from backend_listguard.database.tables import (
    Account,
    AccountActivity,
    AccountLocation,
    AccountSession,
    Base,
    CommunityReport,
    CommunityReward,
    IntakeSession,
    Listing,
    ListingImage,
    ModerationLog,
    Notification,
    PaymentTransaction,
    QueueEntry,
    RiskCheck,
    SecurityEvent,
    UploadCounter,
)
from backend_listguard.listguard_logging import get_logger

if TYPE_CHECKING:
    from backend_listguard.intake.models import Submission

logger = get_logger(__name__)

QUEUE_OPEN = "open"
QUEUE_RESOLVED = "resolved"
LISTING_PENDING = "pending"
LISTING_APPROVED = "approved"
REPORT_PENDING = "pending"


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract interface for persistence; implement for another store if needed."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    def dispose(self) -> None:
        """Release pooled connections."""

    # --- Accounts and history ---

    @abstractmethod
    def upsert_account(self, account: AccountRecord) -> None:
        ...

    @abstractmethod
    def get_account(self, account_id: str) -> AccountRecord | None:
        ...

    @abstractmethod
    def get_account_by_phone(self, phone_number: str) -> AccountRecord | None:
        """Account registered with phone_number (session and messaging channels)."""
        ...

    @abstractmethod
    def record_payment(self, account_id: str, amount: float, created_at: int) -> None:
        ...

    @abstractmethod
    def record_location(self, location: LocationRecord) -> None:
        ...

    @abstractmethod
    def record_activity(self, account_id: str, activity_type: str, created_at: int) -> None:
        ...

    @abstractmethod
    def record_network_session(self, account_id: str, ip_address: str, created_at: int) -> None:
        ...

    @abstractmethod
    def get_oldest_payment_ts(self, account_id: str, since_ts: int) -> int | None:
        """Oldest payment timestamp at or after since_ts; None if no payments."""
        ...

    @abstractmethod
    def count_confirmed_reports_against(self, submitter_id: str) -> int:
        """Confirmed community reports against any listing owned by submitter_id."""
        ...

    @abstractmethod
    def count_listings_since(self, submitter_id: str, since_ts: int) -> int:
        ...

    @abstractmethod
    def any_image_exists(self, urls: list[str]) -> bool:
        """True if any url already belongs to a stored listing (exact match)."""
        ...

    @abstractmethod
    def get_recent_locations(self, account_id: str, *, limit: int = 10) -> list[LocationRecord]:
        """Most recent locations first."""
        ...

    @abstractmethod
    def get_activities(self, account_id: str, since_ts: int) -> list[tuple[int, str]]:
        """(created_at, activity_type) pairs since since_ts, oldest first."""
        ...

    @abstractmethod
    def get_recent_ips(self, account_id: str, since_ts: int) -> list[str]:
        ...

    @abstractmethod
    def count_other_accounts_on_ip(self, ip_address: str, account_id: str, since_ts: int) -> int:
        ...

    # --- Counters ---

    @abstractmethod
    def try_increment_counter(self, account_id: str, kind: str, day: str, limit: int | None) -> bool:
        """
        Atomically increment the (account, kind, day) counter if it is below limit.
        Returns False when the limit is already reached. limit None means unlimited.
        """
        ...

    @abstractmethod
    def get_counter(self, account_id: str, kind: str, day: str) -> int:
        ...

    # --- Listings and queue ---

    @abstractmethod
    def create_listing(
        self,
        submission: "Submission",
        *,
        status: str,
        blocked: bool = False,
        risk_snapshot: dict[str, Any] | None = None,
        moderation_snapshot: dict[str, Any] | None = None,
        queue_priority: str | None = None,
        now_ts: int | None = None,
    ) -> tuple[ListingRecord, QueueEntryRecord | None]:
        """
        Insert a listing with its images. When queue_priority is given the
        listing must be pending and an open queue entry is created in the
        same transaction.
        """
        ...

    @abstractmethod
    def get_listing(self, listing_id: int) -> ListingRecord | None:
        ...

    @abstractmethod
    def list_listings_by_submitter(self, submitter_id: str, *, limit: int = 5) -> list[ListingRecord]:
        """Newest first."""
        ...

    @abstractmethod
    def get_comparable_prices(self, category: str, unit: str, since_ts: int) -> list[float]:
        """Prices of approved listings with the same category and unit created since since_ts."""
        ...

    @abstractmethod
    def list_open_queue(self, *, priority: str | None = None, limit: int = 500) -> list[QueueEntryRecord]:
        """Open entries, high before medium before low, then oldest first."""
        ...

    @abstractmethod
    def get_open_queue_entry(self, listing_id: int) -> QueueEntryRecord | None:
        ...

    @abstractmethod
    def resolve_listing(
        self,
        listing_id: int,
        new_status: str,
        *,
        moderator_id: str,
        notes: str | None = None,
        now_ts: int | None = None,
    ) -> tuple[ListingRecord, QueueEntryRecord | None]:
        """Move a pending listing to new_status and resolve its open queue entry."""
        ...

    @abstractmethod
    def reflag_listing(self, listing_id: int, priority: str, *, now_ts: int | None = None) -> QueueEntryRecord | None:
        """approved -> pending with a new open queue entry. None if the listing was not approved."""
        ...

    @abstractmethod
    def escalate_open_entry(self, listing_id: int, priority: str) -> bool:
        """Set the open entry's priority unless it already has it. True if this call changed it."""
        ...

    # --- Reports and rewards ---

    @abstractmethod
    def insert_report(
        self,
        listing_id: int,
        reporter_id: str,
        reason_code: str,
        description: str,
        *,
        evidence: str | None = None,
        now_ts: int | None = None,
    ) -> CommunityReportRecord:
        ...

    @abstractmethod
    def get_report(self, report_id: int) -> CommunityReportRecord | None:
        ...

    @abstractmethod
    def count_pending_reports_since(self, listing_id: int, since_ts: int) -> int:
        ...

    @abstractmethod
    def validate_report(
        self,
        report_id: int,
        new_status: str,
        *,
        moderator_id: str,
        reward_amount: int | None = None,
        reward_type: str = "airtime",
        now_ts: int | None = None,
    ) -> tuple[CommunityReportRecord, RewardRecord | None]:
        """pending -> new_status; a reward row is written in the same transaction when reward_amount is set."""
        ...

    @abstractmethod
    def get_rewards(self, reporter_id: str) -> list[RewardRecord]:
        ...

    # --- Audit ---

    @abstractmethod
    def insert_risk_check(
        self,
        submitter_id: str,
        risk_level: str,
        risk_score: float,
        reasons: list[str],
        blocked: bool,
        degraded_signals: list[str],
        created_at: int,
    ) -> int:
        ...

    @abstractmethod
    def insert_moderation_log(
        self,
        submitter_id: str,
        product_name: str,
        channel: str,
        confidence: float,
        issues: list[dict[str, Any]],
        created_at: int,
    ) -> int:
        ...

    @abstractmethod
    def insert_security_event(
        self,
        account_id: str,
        event_type: str,
        severity: str,
        details: dict[str, Any],
        created_at: int,
    ) -> int:
        ...

    @abstractmethod
    def list_security_events(self, account_id: str) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def insert_notification(self, account_id: str, delivery: str, message: str, created_at: int) -> int:
        ...

    @abstractmethod
    def list_notifications(self, account_id: str) -> list[dict[str, Any]]:
        ...

    # --- Intake sessions ---

    @abstractmethod
    def create_intake_session(self, record: IntakeSessionRecord) -> IntakeSessionRecord:
        """Insert a new active session; stale sessions for the phone are expired first."""
        ...

    @abstractmethod
    def get_intake_session(self, session_id: str) -> IntakeSessionRecord | None:
        ...

    @abstractmethod
    def save_intake_session(self, record: IntakeSessionRecord) -> None:
        ...

    @abstractmethod
    def finish_intake_session(self, session_id: str, status: str) -> bool:
        """active -> status. False if the session was no longer active."""
        ...


# -----------------------------------------------------------------------------
# Row conversion
# -----------------------------------------------------------------------------


def _account_to_record(row: Account) -> AccountRecord:
    return AccountRecord(
        id=row.id,
        role=row.role,
        created_at=row.created_at,
        phone_number=row.phone_number,
        phone_verified_at=row.phone_verified_at,
        verification_level=row.verification_level,
    )


def _listing_to_record(row: Listing, images: list[ListingImage]) -> ListingRecord:
    return ListingRecord(
        id=row.id,
        submitter_id=row.submitter_id,
        name=row.name,
        price=row.price,
        unit=row.unit,
        category=row.category,
        channel=row.channel,
        status=row.status,
        blocked=bool(row.blocked),
        description=row.description,
        cultural_tag=row.cultural_tag,
        risk_snapshot_json=row.risk_snapshot_json,
        moderation_snapshot_json=row.moderation_snapshot_json,
        created_at=row.created_at,
        updated_at=row.updated_at,
        images=[
            ListingImageRecord(
                id=img.id,
                listing_id=img.listing_id,
                url=img.url,
                labels=json.loads(img.labels_json) if img.labels_json else [],
            )
            for img in images
        ],
    )


def _entry_to_record(row: QueueEntry, reports: list[CommunityReport] | None = None) -> QueueEntryRecord:
    return QueueEntryRecord(
        id=row.id,
        listing_id=row.listing_id,
        priority=row.priority,
        status=row.status,
        created_at=row.created_at,
        risk_snapshot_json=row.risk_snapshot_json,
        moderation_snapshot_json=row.moderation_snapshot_json,
        resolved_at=row.resolved_at,
        resolution=row.resolution,
        moderator_id=row.moderator_id,
        notes=row.notes,
        reports=[_report_to_record(r) for r in (reports or [])],
    )


def _report_to_record(row: CommunityReport) -> CommunityReportRecord:
    return CommunityReportRecord(
        id=row.id,
        listing_id=row.listing_id,
        reporter_id=row.reporter_id,
        reason_code=row.reason_code,
        description=row.description or "",
        status=row.status,
        created_at=row.created_at,
        evidence=row.evidence,
        validated_at=row.validated_at,
        moderator_id=row.moderator_id,
    )


def _reward_to_record(row: CommunityReward) -> RewardRecord:
    return RewardRecord(
        id=row.id,
        report_id=row.report_id,
        reporter_id=row.reporter_id,
        amount=row.amount,
        reward_type=row.reward_type,
        created_at=row.created_at,
    )


def _session_to_record(row: IntakeSession) -> IntakeSessionRecord:
    return IntakeSessionRecord(
        session_id=row.session_id,
        phone_number=row.phone_number,
        kind=row.kind,
        step=row.step,
        status=row.status,
        created_at=row.created_at,
        expires_at=row.expires_at,
        data=json.loads(row.data_json) if row.data_json else {},
        captcha_answer=row.captcha_answer,
        captcha_attempts=row.captcha_attempts or 0,
    )


# -----------------------------------------------------------------------------
# SQLAlchemy backend
# -----------------------------------------------------------------------------


class SQLAlchemyBackend(DatabaseBackend):
    """SQLAlchemy implementation; SQLite file by default, PostgreSQL via URL."""

    def __init__(self, url: str, *, timeout_sec: float = 30.0) -> None:
        self._url = url
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout_sec
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("listguard_db_engine", url=url.split("?")[0].split("//")[-1])

    @property
    def url(self) -> str:
        return self._url

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # --- Accounts and history ---

    def upsert_account(self, account: AccountRecord) -> None:
        with self._session_scope() as session:
            row = session.get(Account, account.id)
            if row is None:
                row = Account(id=account.id)
                session.add(row)
            row.role = account.role
            row.created_at = account.created_at
            row.phone_number = account.phone_number
            row.phone_verified_at = account.phone_verified_at
            row.verification_level = account.verification_level

    def get_account(self, account_id: str) -> AccountRecord | None:
        with self._session_scope() as session:
            row = session.get(Account, account_id)
            return _account_to_record(row) if row is not None else None

    def get_account_by_phone(self, phone_number: str) -> AccountRecord | None:
        with self._session_scope() as session:
            row = (
                session.query(Account)
                .filter(Account.phone_number == phone_number)
                .order_by(Account.created_at.asc())
                .first()
            )
            return _account_to_record(row) if row is not None else None

    def record_payment(self, account_id: str, amount: float, created_at: int) -> None:
        with self._session_scope() as session:
            session.add(PaymentTransaction(account_id=account_id, amount=amount, created_at=created_at))

    def record_location(self, location: LocationRecord) -> None:
        with self._session_scope() as session:
            session.add(
                AccountLocation(
                    account_id=location.account_id,
                    lat=location.lat,
                    lng=location.lng,
                    accuracy=location.accuracy,
                    recorded_at=location.recorded_at,
                )
            )

    def record_activity(self, account_id: str, activity_type: str, created_at: int) -> None:
        with self._session_scope() as session:
            session.add(AccountActivity(account_id=account_id, activity_type=activity_type, created_at=created_at))

    def record_network_session(self, account_id: str, ip_address: str, created_at: int) -> None:
        with self._session_scope() as session:
            session.add(AccountSession(account_id=account_id, ip_address=ip_address, created_at=created_at))

    def get_oldest_payment_ts(self, account_id: str, since_ts: int) -> int | None:
        with self._session_scope() as session:
            return (
                session.query(func.min(PaymentTransaction.created_at))
                .filter(PaymentTransaction.account_id == account_id, PaymentTransaction.created_at >= since_ts)
                .scalar()
            )

    def count_confirmed_reports_against(self, submitter_id: str) -> int:
        with self._session_scope() as session:
            return (
                session.query(func.count(CommunityReport.id))
                .join(Listing, Listing.id == CommunityReport.listing_id)
                .filter(Listing.submitter_id == submitter_id, CommunityReport.status == "confirmed")
                .scalar()
                or 0
            )

    def count_listings_since(self, submitter_id: str, since_ts: int) -> int:
        with self._session_scope() as session:
            return (
                session.query(func.count(Listing.id))
                .filter(Listing.submitter_id == submitter_id, Listing.created_at >= since_ts)
                .scalar()
                or 0
            )

    def any_image_exists(self, urls: list[str]) -> bool:
        if not urls:
            return False
        with self._session_scope() as session:
            return session.query(ListingImage.id).filter(ListingImage.url.in_(urls)).first() is not None

    def get_recent_locations(self, account_id: str, *, limit: int = 10) -> list[LocationRecord]:
        with self._session_scope() as session:
            rows = (
                session.query(AccountLocation)
                .filter(AccountLocation.account_id == account_id)
                .order_by(AccountLocation.recorded_at.desc(), AccountLocation.id.desc())
                .limit(limit)
                .all()
            )
            return [
                LocationRecord(
                    account_id=r.account_id,
                    lat=r.lat,
                    lng=r.lng,
                    recorded_at=r.recorded_at,
                    accuracy=r.accuracy,
                )
                for r in rows
            ]

    def get_activities(self, account_id: str, since_ts: int) -> list[tuple[int, str]]:
        with self._session_scope() as session:
            rows = (
                session.query(AccountActivity.created_at, AccountActivity.activity_type)
                .filter(AccountActivity.account_id == account_id, AccountActivity.created_at >= since_ts)
                .order_by(AccountActivity.created_at.asc())
                .all()
            )
            return [(r[0], r[1]) for r in rows]

    def get_recent_ips(self, account_id: str, since_ts: int) -> list[str]:
        with self._session_scope() as session:
            rows = (
                session.query(AccountSession.ip_address)
                .filter(AccountSession.account_id == account_id, AccountSession.created_at >= since_ts)
                .distinct()
                .all()
            )
            return [r[0] for r in rows]

    def count_other_accounts_on_ip(self, ip_address: str, account_id: str, since_ts: int) -> int:
        with self._session_scope() as session:
            return (
                session.query(func.count(func.distinct(AccountSession.account_id)))
                .filter(
                    AccountSession.ip_address == ip_address,
                    AccountSession.account_id != account_id,
                    AccountSession.created_at >= since_ts,
                )
                .scalar()
                or 0
            )

    # --- Counters ---

    def try_increment_counter(self, account_id: str, kind: str, day: str, limit: int | None) -> bool:
        try:
            with self._session_scope() as session:
                session.add(UploadCounter(account_id=account_id, kind=kind, day=day, count=0))
        except IntegrityError:
            # Row for (account, kind, day) already exists
            pass
        with self._session_scope() as session:
            query = session.query(UploadCounter).filter(
                UploadCounter.account_id == account_id,
                UploadCounter.kind == kind,
                UploadCounter.day == day,
            )
            if limit is not None:
                query = query.filter(UploadCounter.count < limit)
            updated = query.update({UploadCounter.count: UploadCounter.count + 1}, synchronize_session=False)
        return updated == 1

    def get_counter(self, account_id: str, kind: str, day: str) -> int:
        with self._session_scope() as session:
            value = (
                session.query(UploadCounter.count)
                .filter(UploadCounter.account_id == account_id, UploadCounter.kind == kind, UploadCounter.day == day)
                .scalar()
            )
            return int(value or 0)

    # --- Listings and queue ---

    def _load_listing(self, session: Session, listing_id: int) -> ListingRecord | None:
        row = session.get(Listing, listing_id)
        if row is None:
            return None
        images = (
            session.query(ListingImage)
            .filter(ListingImage.listing_id == listing_id)
            .order_by(ListingImage.id.asc())
            .all()
        )
        return _listing_to_record(row, images)

    def _reports_for(self, session: Session, listing_id: int) -> list[CommunityReport]:
        return (
            session.query(CommunityReport)
            .filter(CommunityReport.listing_id == listing_id)
            .order_by(CommunityReport.created_at.asc(), CommunityReport.id.asc())
            .all()
        )

    def create_listing(
        self,
        submission: "Submission",
        *,
        status: str,
        blocked: bool = False,
        risk_snapshot: dict[str, Any] | None = None,
        moderation_snapshot: dict[str, Any] | None = None,
        queue_priority: str | None = None,
        now_ts: int | None = None,
    ) -> tuple[ListingRecord, QueueEntryRecord | None]:
        if queue_priority is not None and status != LISTING_PENDING:
            raise ValueError("queue entries reference pending listings only")
        now = now_ts if now_ts is not None else int(time.time())
        risk_json = json.dumps(risk_snapshot) if risk_snapshot is not None else None
        mod_json = json.dumps(moderation_snapshot) if moderation_snapshot is not None else None
        with self._session_scope() as session:
            row = Listing(
                submitter_id=submission.submitter_id,
                name=submission.name,
                price=float(submission.price),
                unit=submission.unit,
                category=submission.category,
                description=submission.description,
                channel=submission.channel.value,
                cultural_tag=submission.cultural_tag,
                status=status,
                blocked=blocked,
                risk_snapshot_json=risk_json,
                moderation_snapshot_json=mod_json,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            for img in submission.images:
                session.add(
                    ListingImage(
                        listing_id=row.id,
                        url=img.url,
                        labels_json=json.dumps(list(img.labels)) if img.labels else None,
                        created_at=now,
                    )
                )
            entry_record = None
            if queue_priority is not None:
                entry = QueueEntry(
                    listing_id=row.id,
                    priority=queue_priority,
                    status=QUEUE_OPEN,
                    risk_snapshot_json=risk_json,
                    moderation_snapshot_json=mod_json,
                    created_at=now,
                )
                session.add(entry)
                session.flush()
                entry_record = _entry_to_record(entry)
            session.flush()
            listing_record = self._load_listing(session, row.id)
        return listing_record, entry_record

    def get_listing(self, listing_id: int) -> ListingRecord | None:
        with self._session_scope() as session:
            return self._load_listing(session, listing_id)

    def list_listings_by_submitter(self, submitter_id: str, *, limit: int = 5) -> list[ListingRecord]:
        with self._session_scope() as session:
            ids = [
                r.id
                for r in session.query(Listing.id)
                .filter(Listing.submitter_id == submitter_id)
                .order_by(Listing.created_at.desc(), Listing.id.desc())
                .limit(limit)
                .all()
            ]
            return [self._load_listing(session, listing_id) for listing_id in ids]

    def get_comparable_prices(self, category: str, unit: str, since_ts: int) -> list[float]:
        with self._session_scope() as session:
            rows = (
                session.query(Listing.price)
                .filter(
                    Listing.category == category,
                    Listing.unit == unit,
                    Listing.status == LISTING_APPROVED,
                    Listing.created_at >= since_ts,
                )
                .all()
            )
            return [float(r[0]) for r in rows]

    def list_open_queue(self, *, priority: str | None = None, limit: int = 500) -> list[QueueEntryRecord]:
        rank = case((QueueEntry.priority == "high", 0), (QueueEntry.priority == "medium", 1), else_=2)
        with self._session_scope() as session:
            query = session.query(QueueEntry).filter(QueueEntry.status == QUEUE_OPEN)
            if priority is not None:
                query = query.filter(QueueEntry.priority == priority)
            rows = query.order_by(rank.asc(), QueueEntry.created_at.asc(), QueueEntry.id.asc()).limit(limit).all()
            return [_entry_to_record(r, self._reports_for(session, r.listing_id)) for r in rows]

    def get_open_queue_entry(self, listing_id: int) -> QueueEntryRecord | None:
        with self._session_scope() as session:
            row = (
                session.query(QueueEntry)
                .filter(QueueEntry.listing_id == listing_id, QueueEntry.status == QUEUE_OPEN)
                .first()
            )
            if row is None:
                return None
            return _entry_to_record(row, self._reports_for(session, listing_id))

    def resolve_listing(
        self,
        listing_id: int,
        new_status: str,
        *,
        moderator_id: str,
        notes: str | None = None,
        now_ts: int | None = None,
    ) -> tuple[ListingRecord, QueueEntryRecord | None]:
        now = now_ts if now_ts is not None else int(time.time())
        with self._session_scope() as session:
            updated = (
                session.query(Listing)
                .filter(Listing.id == listing_id, Listing.status == LISTING_PENDING)
                .update({Listing.status: new_status, Listing.updated_at: now}, synchronize_session=False)
            )
            if updated != 1:
                if session.get(Listing, listing_id) is None:
                    raise ListingNotFound(f"Listing {listing_id} not found")
                raise ListingNotPending(f"Listing {listing_id} is not pending review")
            entry = (
                session.query(QueueEntry)
                .filter(QueueEntry.listing_id == listing_id, QueueEntry.status == QUEUE_OPEN)
                .first()
            )
            entry_record = None
            if entry is not None:
                entry.status = QUEUE_RESOLVED
                entry.resolved_at = now
                entry.resolution = new_status
                entry.moderator_id = moderator_id
                entry.notes = notes
                session.flush()
                entry_record = _entry_to_record(entry, self._reports_for(session, listing_id))
            listing_record = self._load_listing(session, listing_id)
        return listing_record, entry_record

    def reflag_listing(self, listing_id: int, priority: str, *, now_ts: int | None = None) -> QueueEntryRecord | None:
        now = now_ts if now_ts is not None else int(time.time())
        with self._session_scope() as session:
            updated = (
                session.query(Listing)
                .filter(Listing.id == listing_id, Listing.status == LISTING_APPROVED)
                .update({Listing.status: LISTING_PENDING, Listing.updated_at: now}, synchronize_session=False)
            )
            if updated != 1:
                return None
            listing = session.get(Listing, listing_id)
            entry = QueueEntry(
                listing_id=listing_id,
                priority=priority,
                status=QUEUE_OPEN,
                risk_snapshot_json=listing.risk_snapshot_json,
                moderation_snapshot_json=listing.moderation_snapshot_json,
                created_at=now,
            )
            session.add(entry)
            session.flush()
            return _entry_to_record(entry, self._reports_for(session, listing_id))

    def escalate_open_entry(self, listing_id: int, priority: str) -> bool:
        with self._session_scope() as session:
            updated = (
                session.query(QueueEntry)
                .filter(
                    QueueEntry.listing_id == listing_id,
                    QueueEntry.status == QUEUE_OPEN,
                    QueueEntry.priority != priority,
                )
                .update({QueueEntry.priority: priority}, synchronize_session=False)
            )
        return updated == 1

    # --- Reports and rewards ---

    def insert_report(
        self,
        listing_id: int,
        reporter_id: str,
        reason_code: str,
        description: str,
        *,
        evidence: str | None = None,
        now_ts: int | None = None,
    ) -> CommunityReportRecord:
        now = now_ts if now_ts is not None else int(time.time())
        try:
            with self._session_scope() as session:
                if session.get(Listing, listing_id) is None:
                    raise ListingNotFound(f"Listing {listing_id} not found")
                row = CommunityReport(
                    listing_id=listing_id,
                    reporter_id=reporter_id,
                    reason_code=reason_code,
                    description=description or "",
                    evidence=evidence,
                    status=REPORT_PENDING,
                    created_at=now,
                )
                session.add(row)
                session.flush()
                return _report_to_record(row)
        except IntegrityError as e:
            raise DuplicateReport(f"Reporter {reporter_id} already reported listing {listing_id}") from e

    def get_report(self, report_id: int) -> CommunityReportRecord | None:
        with self._session_scope() as session:
            row = session.get(CommunityReport, report_id)
            return _report_to_record(row) if row is not None else None

    def count_pending_reports_since(self, listing_id: int, since_ts: int) -> int:
        with self._session_scope() as session:
            return (
                session.query(func.count(CommunityReport.id))
                .filter(
                    CommunityReport.listing_id == listing_id,
                    CommunityReport.status == REPORT_PENDING,
                    CommunityReport.created_at >= since_ts,
                )
                .scalar()
                or 0
            )

    def validate_report(
        self,
        report_id: int,
        new_status: str,
        *,
        moderator_id: str,
        reward_amount: int | None = None,
        reward_type: str = "airtime",
        now_ts: int | None = None,
    ) -> tuple[CommunityReportRecord, RewardRecord | None]:
        now = now_ts if now_ts is not None else int(time.time())
        with self._session_scope() as session:
            updated = (
                session.query(CommunityReport)
                .filter(CommunityReport.id == report_id, CommunityReport.status == REPORT_PENDING)
                .update(
                    {
                        CommunityReport.status: new_status,
                        CommunityReport.validated_at: now,
                        CommunityReport.moderator_id: moderator_id,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                if session.get(CommunityReport, report_id) is None:
                    raise ReportNotFound(f"Report {report_id} not found")
                raise ReportAlreadyResolved(f"Report {report_id} has already been validated")
            report = session.get(CommunityReport, report_id)
            reward_record = None
            if reward_amount is not None:
                reward = CommunityReward(
                    report_id=report_id,
                    reporter_id=report.reporter_id,
                    amount=reward_amount,
                    reward_type=reward_type,
                    created_at=now,
                )
                session.add(reward)
                session.flush()
                reward_record = _reward_to_record(reward)
            return _report_to_record(report), reward_record

    def get_rewards(self, reporter_id: str) -> list[RewardRecord]:
        with self._session_scope() as session:
            rows = (
                session.query(CommunityReward)
                .filter(CommunityReward.reporter_id == reporter_id)
                .order_by(CommunityReward.id.asc())
                .all()
            )
            return [_reward_to_record(r) for r in rows]

    # --- Audit ---

    def insert_risk_check(
        self,
        submitter_id: str,
        risk_level: str,
        risk_score: float,
        reasons: list[str],
        blocked: bool,
        degraded_signals: list[str],
        created_at: int,
    ) -> int:
        with self._session_scope() as session:
            row = RiskCheck(
                submitter_id=submitter_id,
                risk_level=risk_level,
                risk_score=risk_score,
                reasons_json=json.dumps(reasons),
                degraded_json=json.dumps(degraded_signals) if degraded_signals else None,
                blocked=blocked,
                created_at=created_at,
            )
            session.add(row)
            session.flush()
            return row.id

    def insert_moderation_log(
        self,
        submitter_id: str,
        product_name: str,
        channel: str,
        confidence: float,
        issues: list[dict[str, Any]],
        created_at: int,
    ) -> int:
        with self._session_scope() as session:
            row = ModerationLog(
                submitter_id=submitter_id,
                product_name=product_name,
                channel=channel,
                confidence=confidence,
                issues_json=json.dumps(issues),
                created_at=created_at,
            )
            session.add(row)
            session.flush()
            return row.id

    def insert_security_event(
        self,
        account_id: str,
        event_type: str,
        severity: str,
        details: dict[str, Any],
        created_at: int,
    ) -> int:
        with self._session_scope() as session:
            row = SecurityEvent(
                account_id=account_id,
                event_type=event_type,
                severity=severity,
                details_json=json.dumps(details, default=str),
                created_at=created_at,
            )
            session.add(row)
            session.flush()
            return row.id

    def list_security_events(self, account_id: str) -> list[dict[str, Any]]:
        with self._session_scope() as session:
            rows = (
                session.query(SecurityEvent)
                .filter(SecurityEvent.account_id == account_id)
                .order_by(SecurityEvent.id.asc())
                .all()
            )
            return [
                {
                    "id": r.id,
                    "account_id": r.account_id,
                    "event_type": r.event_type,
                    "severity": r.severity,
                    "details": json.loads(r.details_json) if r.details_json else {},
                    "created_at": r.created_at,
                }
                for r in rows
            ]

    def insert_notification(self, account_id: str, delivery: str, message: str, created_at: int) -> int:
        with self._session_scope() as session:
            row = Notification(account_id=account_id, delivery=delivery, message=message, created_at=created_at)
            session.add(row)
            session.flush()
            return row.id

    def list_notifications(self, account_id: str) -> list[dict[str, Any]]:
        with self._session_scope() as session:
            rows = (
                session.query(Notification)
                .filter(Notification.account_id == account_id)
                .order_by(Notification.id.asc())
                .all()
            )
            return [
                {"id": r.id, "delivery": r.delivery, "message": r.message, "created_at": r.created_at}
                for r in rows
            ]

    # --- Intake sessions ---

    def create_intake_session(self, record: IntakeSessionRecord) -> IntakeSessionRecord:
        with self._session_scope() as session:
            session.query(IntakeSession).filter(
                IntakeSession.phone_number == record.phone_number,
                IntakeSession.status == "active",
                IntakeSession.expires_at <= record.created_at,
            ).update({IntakeSession.status: "expired"}, synchronize_session=False)
        try:
            with self._session_scope() as session:
                session.add(
                    IntakeSession(
                        session_id=record.session_id,
                        phone_number=record.phone_number,
                        kind=record.kind,
                        step=record.step,
                        status=record.status,
                        data_json=json.dumps(record.data),
                        captcha_answer=record.captcha_answer,
                        captcha_attempts=record.captcha_attempts,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                    )
                )
        except IntegrityError as e:
            raise SessionError("An active session already exists for this phone number") from e
        return record

    def get_intake_session(self, session_id: str) -> IntakeSessionRecord | None:
        with self._session_scope() as session:
            row = session.get(IntakeSession, session_id)
            return _session_to_record(row) if row is not None else None

    def save_intake_session(self, record: IntakeSessionRecord) -> None:
        with self._session_scope() as session:
            row = session.get(IntakeSession, record.session_id)
            if row is None:
                raise SessionError(f"Unknown session {record.session_id}")
            row.step = record.step
            row.status = record.status
            row.data_json = json.dumps(record.data)
            row.captcha_answer = record.captcha_answer
            row.captcha_attempts = record.captcha_attempts
            row.expires_at = record.expires_at

    def finish_intake_session(self, session_id: str, status: str) -> bool:
        with self._session_scope() as session:
            updated = (
                session.query(IntakeSession)
                .filter(IntakeSession.session_id == session_id, IntakeSession.status == "active")
                .update({IntakeSession.status: status}, synchronize_session=False)
            )
        return updated == 1


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Database abstraction: accounts, listings, review queue, reports, audit.

    Uses a Backend (SQLAlchemy by default); every component receives this
    facade, never the backend directly.
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> DatabaseBackend:
        return self._backend

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        self._backend.ensure_schema()

    def dispose(self) -> None:
        self._backend.dispose()

    # --- Accounts and history ---

    def upsert_account(self, account: AccountRecord) -> None:
        self._backend.upsert_account(account)

    def get_account(self, account_id: str) -> AccountRecord | None:
        return self._backend.get_account(account_id)

    def get_account_by_phone(self, phone_number: str) -> AccountRecord | None:
        return self._backend.get_account_by_phone(phone_number)

    def record_payment(self, account_id: str, amount: float, created_at: int) -> None:
        self._backend.record_payment(account_id, amount, created_at)

    def record_location(self, location: LocationRecord) -> None:
        self._backend.record_location(location)

    def record_activity(self, account_id: str, activity_type: str, created_at: int) -> None:
        self._backend.record_activity(account_id, activity_type, created_at)

    def record_network_session(self, account_id: str, ip_address: str, created_at: int) -> None:
        self._backend.record_network_session(account_id, ip_address, created_at)

    def get_oldest_payment_ts(self, account_id: str, since_ts: int) -> int | None:
        return self._backend.get_oldest_payment_ts(account_id, since_ts)

    def count_confirmed_reports_against(self, submitter_id: str) -> int:
        return self._backend.count_confirmed_reports_against(submitter_id)

    def count_listings_since(self, submitter_id: str, since_ts: int) -> int:
        return self._backend.count_listings_since(submitter_id, since_ts)

    def any_image_exists(self, urls: list[str]) -> bool:
        return self._backend.any_image_exists(urls)

    def get_recent_locations(self, account_id: str, *, limit: int = 10) -> list[LocationRecord]:
        return self._backend.get_recent_locations(account_id, limit=limit)

    def get_activities(self, account_id: str, since_ts: int) -> list[tuple[int, str]]:
        return self._backend.get_activities(account_id, since_ts)

    def get_recent_ips(self, account_id: str, since_ts: int) -> list[str]:
        return self._backend.get_recent_ips(account_id, since_ts)

    def count_other_accounts_on_ip(self, ip_address: str, account_id: str, since_ts: int) -> int:
        return self._backend.count_other_accounts_on_ip(ip_address, account_id, since_ts)

    # --- Counters ---

    def try_increment_counter(self, account_id: str, kind: str, day: str, limit: int | None) -> bool:
        return self._backend.try_increment_counter(account_id, kind, day, limit)

    def get_counter(self, account_id: str, kind: str, day: str) -> int:
        return self._backend.get_counter(account_id, kind, day)

    # --- Listings and queue ---

    def create_listing(self, submission: "Submission", **kwargs: Any) -> tuple[ListingRecord, QueueEntryRecord | None]:
        """Insert listing (+ images, + open queue entry when queue_priority is set)."""
        return self._backend.create_listing(submission, **kwargs)

    def get_listing(self, listing_id: int) -> ListingRecord | None:
        return self._backend.get_listing(listing_id)

    def list_listings_by_submitter(self, submitter_id: str, *, limit: int = 5) -> list[ListingRecord]:
        return self._backend.list_listings_by_submitter(submitter_id, limit=limit)

    def get_comparable_prices(self, category: str, unit: str, since_ts: int) -> list[float]:
        return self._backend.get_comparable_prices(category, unit, since_ts)

    def list_open_queue(self, *, priority: str | None = None, limit: int = 500) -> list[QueueEntryRecord]:
        return self._backend.list_open_queue(priority=priority, limit=limit)

    def get_open_queue_entry(self, listing_id: int) -> QueueEntryRecord | None:
        return self._backend.get_open_queue_entry(listing_id)

    def resolve_listing(self, listing_id: int, new_status: str, **kwargs: Any) -> tuple[ListingRecord, QueueEntryRecord | None]:
        return self._backend.resolve_listing(listing_id, new_status, **kwargs)

    def reflag_listing(self, listing_id: int, priority: str, *, now_ts: int | None = None) -> QueueEntryRecord | None:
        return self._backend.reflag_listing(listing_id, priority, now_ts=now_ts)

    def escalate_open_entry(self, listing_id: int, priority: str) -> bool:
        return self._backend.escalate_open_entry(listing_id, priority)

    # --- Reports and rewards ---

    def insert_report(self, listing_id: int, reporter_id: str, reason_code: str, description: str, **kwargs: Any) -> CommunityReportRecord:
        return self._backend.insert_report(listing_id, reporter_id, reason_code, description, **kwargs)

    def get_report(self, report_id: int) -> CommunityReportRecord | None:
        return self._backend.get_report(report_id)

    def count_pending_reports_since(self, listing_id: int, since_ts: int) -> int:
        return self._backend.count_pending_reports_since(listing_id, since_ts)

    def validate_report(self, report_id: int, new_status: str, **kwargs: Any) -> tuple[CommunityReportRecord, RewardRecord | None]:
        return self._backend.validate_report(report_id, new_status, **kwargs)

    def get_rewards(self, reporter_id: str) -> list[RewardRecord]:
        return self._backend.get_rewards(reporter_id)

    # --- Audit ---

    def insert_risk_check(self, *args: Any, **kwargs: Any) -> int:
        return self._backend.insert_risk_check(*args, **kwargs)

    def insert_moderation_log(self, *args: Any, **kwargs: Any) -> int:
        return self._backend.insert_moderation_log(*args, **kwargs)

    def insert_security_event(self, *args: Any, **kwargs: Any) -> int:
        return self._backend.insert_security_event(*args, **kwargs)

    def list_security_events(self, account_id: str) -> list[dict[str, Any]]:
        return self._backend.list_security_events(account_id)

    def insert_notification(self, account_id: str, delivery: str, message: str, created_at: int) -> int:
        return self._backend.insert_notification(account_id, delivery, message, created_at)

    def list_notifications(self, account_id: str) -> list[dict[str, Any]]:
        return self._backend.list_notifications(account_id)

    # --- Intake sessions ---

    def create_intake_session(self, record: IntakeSessionRecord) -> IntakeSessionRecord:
        return self._backend.create_intake_session(record)

    def get_intake_session(self, session_id: str) -> IntakeSessionRecord | None:
        return self._backend.get_intake_session(session_id)

    def save_intake_session(self, record: IntakeSessionRecord) -> None:
        self._backend.save_intake_session(record)

    def finish_intake_session(self, session_id: str, status: str) -> bool:
        return self._backend.finish_intake_session(session_id, status)


def get_database(url_or_path: str | None = None) -> Database:
    """
    Return a Database with schema ensured.

    url_or_path: SQLAlchemy URL, or a filesystem path for SQLite. Defaults to
    DATABASE_URL / LISTGUARD_DB_PATH from the environment.
    """
    if url_or_path is None:
        url = get_database_url()
    elif "://" in str(url_or_path):
        url = str(url_or_path)
    else:
        url = f"sqlite:///{url_or_path}"
    db = Database(SQLAlchemyBackend(url))
    db.ensure_schema()
    return db
