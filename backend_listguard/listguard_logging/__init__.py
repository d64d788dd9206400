"""
Structured logging for the listing intake backend.

JSON logs with timestamp, event_type and listing/account context.
"""

from backend_listguard.listguard_logging.logger import bind_submitter, get_logger, mask_phone, submission_context

__all__ = ["bind_submitter", "get_logger", "mask_phone", "submission_context"]
