"""
Review queue: prioritized moderator worklist, community reports with
escalation, report validation with rewards, supplier notifications.
"""

from backend_listguard.review_queue.models import (
    QueueConfig,
    QueuePriority,
    QueueStatus,
    ReportOutcome,
    ReportStatus,
    ReportValidation,
)
from backend_listguard.review_queue.notifications import DatabaseNotifier, Notifier
from backend_listguard.review_queue.priority import compute_priority, priority_for_verdict
from backend_listguard.review_queue.queue import ReviewQueue
from backend_listguard.review_queue.reports import ReportService

__all__ = [
    "DatabaseNotifier",
    "Notifier",
    "QueueConfig",
    "QueuePriority",
    "QueueStatus",
    "ReportOutcome",
    "ReportService",
    "ReportStatus",
    "ReportValidation",
    "ReviewQueue",
    "compute_priority",
    "priority_for_verdict",
]
