"""Core domain exceptions shared by every component."""

from backend_listguard.core.exceptions import (
    ConcurrencyConflict,
    DailyLimitExceeded,
    DuplicateReport,
    InvalidSubmission,
    InvalidTransition,
    ListguardError,
    ListingNotFound,
    ListingNotPending,
    NotFound,
    PolicyDenied,
    ReportAlreadyResolved,
    ReportNotFound,
    SecurityBlock,
    SessionError,
    TotalEngineFailure,
    TransientSignalFailure,
)

__all__ = [
    "ConcurrencyConflict",
    "DailyLimitExceeded",
    "DuplicateReport",
    "InvalidSubmission",
    "InvalidTransition",
    "ListguardError",
    "ListingNotFound",
    "ListingNotPending",
    "NotFound",
    "PolicyDenied",
    "ReportAlreadyResolved",
    "ReportNotFound",
    "SecurityBlock",
    "SessionError",
    "TotalEngineFailure",
    "TransientSignalFailure",
]
