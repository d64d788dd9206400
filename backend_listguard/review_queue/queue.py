"""
Moderator worklist: list open entries, approve or reject pending listings.

Approve/reject is the only way a listing leaves pending. Both are a single
conditional transition in the store; a second decision on the same listing
fails with ListingNotPending.
"""

from __future__ import annotations

import time
from typing import Callable

from backend_listguard.admission.models import ListingStatus
from backend_listguard.database import Database, ListingRecord, QueueEntryRecord
from backend_listguard.listguard_logging import get_logger
from backend_listguard.review_queue.models import QueuePriority
from backend_listguard.review_queue.notifications import Notifier

logger = get_logger(__name__)


class ReviewQueue:
    def __init__(
        self,
        db: Database,
        notifier: Notifier | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._clock = clock

    def list_queue(self, priority: QueuePriority | None = None, *, limit: int = 500) -> list[QueueEntryRecord]:
        """Open entries: high, then medium, then low; oldest first within a priority."""
        return self._db.list_open_queue(priority=priority.value if priority else None, limit=limit)

    def approve(self, listing_id: int, moderator_id: str, *, notes: str | None = None) -> ListingRecord:
        listing = self._resolve(listing_id, ListingStatus.APPROVED, moderator_id, notes)
        self._notify(listing, f"Your product '{listing.name}' has been approved and is now live.")
        return listing

    def reject(self, listing_id: int, moderator_id: str, *, reason: str) -> ListingRecord:
        listing = self._resolve(listing_id, ListingStatus.REJECTED, moderator_id, reason)
        self._notify(listing, f"Your product '{listing.name}' was not approved. Reason: {reason}")
        return listing

    def _resolve(self, listing_id: int, status: ListingStatus, moderator_id: str, notes: str | None) -> ListingRecord:
        listing, entry = self._db.resolve_listing(
            listing_id,
            status.value,
            moderator_id=moderator_id,
            notes=notes,
            now_ts=int(self._clock()),
        )
        logger.info(
            "queue_entry_resolved",
            listing_id=listing_id,
            queue_entry_id=entry.id if entry else None,
            status=status.value,
            moderator_id=moderator_id,
        )
        return listing

    def _notify(self, listing: ListingRecord, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(listing.submitter_id, message, channel=listing.channel)
        except Exception as e:
            # Decision is already committed; delivery is retried out of band
            logger.warning(
                "supplier_notification_failed",
                listing_id=listing.id,
                submitter_id=listing.submitter_id,
                error=str(e),
                exc_info=True,
            )
