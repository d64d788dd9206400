"""
Database abstraction layer: accounts, listings, review queue, reports, audit trail.

SQLite by default via Database and get_database(); any SQLAlchemy URL works.
"""

from backend_listguard.database.database import (
    Database,
    DatabaseBackend,
    SQLAlchemyBackend,
    get_database,
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

__all__ = [
    "Database",
    "DatabaseBackend",
    "SQLAlchemyBackend",
    "get_database",
    "AccountRecord",
    "CommunityReportRecord",
    "IntakeSessionRecord",
    "ListingImageRecord",
    "ListingRecord",
    "LocationRecord",
    "QueueEntryRecord",
    "RewardRecord",
]
