"""
Structured logging for listing intake and moderation.

Every record carries event_type, level, timestamp and service, plus whatever
context the caller passes (listing_id, submitter_id, channel, ...). Phone
numbers are masked before rendering: the menu and messaging channels key
accounts by phone, and those numbers must not reach log storage in clear.

Modules call get_logger(__name__). Work done on behalf of one supplier binds
submitter_id once via bind_submitter() or submission_context().

Depends only on stdlib logging and structlog so every backend_listguard
module can import it without cycles.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import structlog

SERVICE_NAME = "backend_listguard"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
# json (default) or console
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

PHONE_KEYS = frozenset({"phone", "phone_number", "msisdn"})
_PHONE_VISIBLE_DIGITS = 3


def mask_phone(value: Any) -> str:
    """'+254700000123' -> '+254******123'; short values are fully masked."""
    text = str(value or "")
    if len(text) <= 4 + _PHONE_VISIBLE_DIGITS:
        return "*" * len(text)
    return text[:4] + "*" * (len(text) - 4 - _PHONE_VISIBLE_DIGITS) + text[-_PHONE_VISIBLE_DIGITS:]


def _mask_phones(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in PHONE_KEYS.intersection(event_dict):
        event_dict[key] = mask_phone(event_dict[key])
    return event_dict


def _stamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """event -> event_type; add UTC timestamp and service name."""
    if "event" in event_dict:
        event_dict.setdefault("event_type", event_dict.pop("event"))
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_structlog(fmt: str | None = None, level: int | None = None) -> None:
    """Configure structlog; called once on first import, callable again from tests or main."""
    renderer: Any
    if (fmt or LOG_FORMAT) == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _mask_phones,
            _stamp,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level if level is not None else LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Structured logger for a module.

        logger = get_logger(__name__)
        logger.info("admission_decided", listing_id=42, status="pending")
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_submitter(submitter_id: str) -> structlog.BoundLogger:
    """Logger with submitter_id bound to every call."""
    return get_logger(SERVICE_NAME).bind(submitter_id=submitter_id)


@contextmanager
def submission_context(submitter_id: str, channel: str) -> Iterator[None]:
    """Bind submitter_id and channel to every log call in this thread/task until exit."""
    with structlog.contextvars.bound_contextvars(submitter_id=submitter_id, channel=channel):
        yield
