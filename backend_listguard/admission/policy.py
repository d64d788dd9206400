"""
Role-based upload policy and the atomic daily counters that enforce it.

PolicyProvider turns an account's role into an UploadPolicy. The daily limit
is reported here for a friendly message, but enforcement happens at
admission time through consume_daily_slot (compare-and-increment in the
store), so two concurrent uploads can never both take the last slot.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from backend_listguard.admission.models import UploadPolicy
from backend_listguard.core.exceptions import DailyLimitExceeded
from backend_listguard.database import Database
from backend_listguard.listguard_logging import get_logger

logger = get_logger(__name__)

COUNTER_LISTING = "listing"
COUNTER_BULK = "bulk_import"
MAX_BULK_IMPORTS_PER_DAY = 10
MIN_BASIC_ACCOUNT_AGE_SEC = 24 * 3600


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    can_create_listings: bool
    daily_products: int | None
    """None means unlimited."""
    max_value: float | None
    requires_approval: bool
    bulk_allowed: bool
    requires_verification: bool = False
    """Phone verified and account at least 24 h old."""


ROLE_DEFINITIONS: dict[str, RoleDefinition] = {
    "admin": RoleDefinition("admin", True, None, None, False, True),
    "verified_supplier": RoleDefinition("verified_supplier", True, 100, 100_000, False, False),
    "aggregator": RoleDefinition("aggregator", True, 1000, 500_000, False, True),
    "basic_supplier": RoleDefinition("basic_supplier", True, 5, 10_000, True, False, requires_verification=True),
    "maasai_artisan": RoleDefinition("maasai_artisan", True, 20, 50_000, False, False),
    "refugee_entrepreneur": RoleDefinition("refugee_entrepreneur", True, 15, 25_000, False, False),
    "moderator": RoleDefinition("moderator", False, 0, 0, False, False),
}


def day_key(now_ts: int) -> str:
    """UTC calendar day for counters."""
    return datetime.fromtimestamp(now_ts, tz=timezone.utc).strftime("%Y-%m-%d")


def consume_daily_slot(db: Database, account_id: str, limit: int | None, now_ts: int, *, kind: str = COUNTER_LISTING) -> None:
    """
    Take one slot of today's quota.

    Raises:
        DailyLimitExceeded: the quota is exhausted (or the last slot went to a
            concurrent upload).
    """
    if not db.try_increment_counter(account_id, kind, day_key(now_ts), limit):
        logger.info("daily_limit_reached", account_id=account_id, kind=kind, limit=limit)
        raise DailyLimitExceeded(f"Daily {kind} limit reached", kind=kind, limit=limit)


class PolicyProvider:
    """Builds UploadPolicy records from the account store and the role table."""

    def __init__(
        self,
        db: Database,
        roles: dict[str, RoleDefinition] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._roles = roles or ROLE_DEFINITIONS
        self._clock = clock

    def policy_for(self, account_id: str, *, now_ts: int | None = None) -> UploadPolicy:
        now = now_ts if now_ts is not None else int(self._clock())
        account = self._db.get_account(account_id)
        if account is None:
            return UploadPolicy.denied("User not found")
        role = self._roles.get(account.role)
        if role is None:
            return UploadPolicy.denied("Unknown role type", role=account.role)
        if not role.can_create_listings:
            return UploadPolicy.denied("User role does not have product upload permissions", role=role.name)

        if role.requires_verification:
            if not account.phone_verified_at:
                return UploadPolicy.denied("Phone number not verified", role=role.name)
            if now - account.created_at < MIN_BASIC_ACCOUNT_AGE_SEC:
                return UploadPolicy.denied("Account too new (must be at least 24 hours old)", role=role.name)

        if role.daily_products is not None:
            used = self._db.get_counter(account_id, COUNTER_LISTING, day_key(now))
            if used >= role.daily_products:
                return UploadPolicy.denied(
                    f"Daily upload limit reached ({used}/{role.daily_products})", role=role.name
                )

        return UploadPolicy(
            can_upload=True,
            daily_limit=role.daily_products,
            max_listing_value=role.max_value,
            mandatory_review=role.requires_approval,
            bulk_allowed=role.bulk_allowed,
            role=role.name,
        )
