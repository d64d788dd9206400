"""
Supplier notifications for moderator decisions.

Listings that came in over the text-menu session or messaging channels are
notified by SMS; everything else gets an in-app notification.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

from backend_listguard.database import Database
from backend_listguard.intake.models import Channel
from backend_listguard.listguard_logging import get_logger

logger = get_logger(__name__)

DELIVERY_SMS = "sms"
DELIVERY_IN_APP = "in_app"
_SMS_CHANNELS = (Channel.SESSION.value, Channel.MESSAGING.value)


def delivery_for_channel(channel: str) -> str:
    return DELIVERY_SMS if channel in _SMS_CHANNELS else DELIVERY_IN_APP


class Notifier(ABC):
    @abstractmethod
    def notify(self, account_id: str, message: str, *, channel: str) -> None:
        """Deliver message to account_id; channel is the listing's intake channel."""
        ...


class DatabaseNotifier(Notifier):
    """Writes a notification row for the delivery workers and logs it."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def notify(self, account_id: str, message: str, *, channel: str) -> None:
        delivery = delivery_for_channel(channel)
        self._db.insert_notification(account_id, delivery, message, int(time.time()))
        logger.info("supplier_notified", account_id=account_id, delivery=delivery)
