"""
Community reports: ingestion with re-flag and escalation, moderator validation
with a one-time reward.

Escalation: when pending reports for a listing in the trailing window reach
the threshold (3 in 24 h), the open entry is forced to high. The update is
conditional, so concurrent reporters race safely and only one logs it.
"""

from __future__ import annotations

import time
from typing import Callable

from backend_listguard.admission.models import ListingStatus
from backend_listguard.core.exceptions import ListingNotFound
from backend_listguard.database import Database
from backend_listguard.listguard_logging import get_logger
from backend_listguard.review_queue.models import (
    QueueConfig,
    QueuePriority,
    ReportOutcome,
    ReportStatus,
    ReportValidation,
)
from backend_listguard.review_queue.priority import priority_from_snapshot

logger = get_logger(__name__)


class ReportService:
    def __init__(
        self,
        db: Database,
        config: QueueConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._config = config or QueueConfig()
        self._clock = clock

    def submit_report(
        self,
        listing_id: int,
        reporter_id: str,
        reason_code: str,
        description: str = "",
        *,
        evidence: str | None = None,
        now_ts: int | None = None,
    ) -> ReportOutcome:
        """
        Store a report and apply its effects.

        Raises:
            ListingNotFound: listing does not exist.
            DuplicateReport: this reporter already reported this listing.
        """
        now = now_ts if now_ts is not None else int(self._clock())
        report = self._db.insert_report(
            listing_id, reporter_id, reason_code, description, evidence=evidence, now_ts=now
        )
        logger.info("community_report_received", listing_id=listing_id, report_id=report.id, reason_code=reason_code)

        listing = self._db.get_listing(listing_id)
        if listing is None:
            raise ListingNotFound(f"Listing {listing_id} not found")

        outcome = ReportOutcome(report=report)
        if listing.status == ListingStatus.APPROVED.value:
            priority = priority_from_snapshot(listing.moderation_snapshot, self._config)
            entry = self._db.reflag_listing(listing_id, priority.value, now_ts=now)
            if entry is not None:
                outcome.reflagged = True
                logger.info("listing_reflagged", listing_id=listing_id, queue_entry_id=entry.id, priority=priority.value)

        pending = self._db.count_pending_reports_since(listing_id, now - self._config.escalation_window_sec)
        if pending >= self._config.escalation_count:
            if self._db.escalate_open_entry(listing_id, QueuePriority.HIGH.value):
                outcome.escalated = True
                logger.warning("queue_entry_escalated", listing_id=listing_id, pending_reports=pending)

        entry = self._db.get_open_queue_entry(listing_id)
        outcome.queue_entry_id = entry.id if entry else None
        return outcome

    def validate_report(
        self,
        report_id: int,
        moderator_id: str,
        *,
        confirmed: bool,
        now_ts: int | None = None,
    ) -> ReportValidation:
        """
        Resolve a pending report. Confirmed reports earn the reporter the fixed
        reward, written in the same transaction as the status change.

        Raises:
            ReportNotFound: unknown report.
            ReportAlreadyResolved: the report was already validated.
        """
        now = now_ts if now_ts is not None else int(self._clock())
        status = ReportStatus.CONFIRMED if confirmed else ReportStatus.REJECTED
        report, reward = self._db.validate_report(
            report_id,
            status.value,
            moderator_id=moderator_id,
            reward_amount=self._config.reward_amount if confirmed else None,
            reward_type=self._config.reward_type,
            now_ts=now,
        )
        logger.info("community_report_validated", report_id=report_id, status=status.value, moderator_id=moderator_id)
        if reward is not None:
            logger.info("community_reward_issued", report_id=report_id, reporter_id=reward.reporter_id, amount=reward.amount)
        return ReportValidation(report=report, reward=reward)
