"""
Application-level exceptions.

Every error carries a stable ``code`` used in API responses and log events.
PolicyDenied and SecurityBlock are usually returned as rejected admission
results; the API-facing helpers raise them.
"""

from __future__ import annotations

from typing import Any


class ListguardError(Exception):
    """Base class for all domain errors."""

    code = "listguard_error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class PolicyDenied(ListguardError):
    """Account not permitted to upload (role, daily limit or value cap). Shown verbatim."""

    code = "policy_denied"


class SecurityBlock(ListguardError):
    """Risk engine judged the upload high risk. Reasons are logged, never shown."""

    code = "security_block"
    public_message = "Upload blocked due to security concerns"

    def __init__(self, reasons: list[str] | None = None) -> None:
        super().__init__(self.public_message)
        self.reasons = list(reasons or [])


class TransientSignalFailure(ListguardError):
    """One sub-signal or analysis lookup failed or timed out."""

    code = "transient_signal_failure"

    def __init__(self, signal: str, cause: str = "") -> None:
        super().__init__(f"Signal {signal} unavailable: {cause}" if cause else f"Signal {signal} unavailable")
        self.signal = signal


class TotalEngineFailure(ListguardError):
    """A scoring engine could not produce a verdict at all."""

    code = "total_engine_failure"


class ConcurrencyConflict(ListguardError):
    """A rate-limit or report-threshold race was lost. Safe to retry."""

    code = "concurrency_conflict"


class DailyLimitExceeded(ConcurrencyConflict):
    code = "daily_limit_exceeded"


class DuplicateReport(ConcurrencyConflict):
    code = "duplicate_report"


class NotFound(ListguardError):
    code = "not_found"


class ListingNotFound(NotFound):
    code = "listing_not_found"


class ReportNotFound(NotFound):
    code = "report_not_found"


class InvalidTransition(ListguardError):
    """A status change that the lifecycle does not allow."""

    code = "invalid_transition"


class ListingNotPending(InvalidTransition):
    code = "listing_not_pending"


class ReportAlreadyResolved(InvalidTransition):
    code = "report_already_resolved"


class InvalidSubmission(ListguardError):
    """A channel produced a submission that fails basic validation."""

    code = "invalid_submission"


class SessionError(ListguardError):
    """Session-protocol channel errors (expired, duplicate, unknown)."""

    code = "session_error"
