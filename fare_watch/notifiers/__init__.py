"""Notification backends."""

import logging

from fare_watch.notifiers.email import send_email_message
from fare_watch.notifiers.telegram import send_telegram_message

logger = logging.getLogger(__name__)


def notify(message: str) -> bool:
    """Deliver ``message`` on every configured channel; True if any accepted it."""
    sent = False
    for send in (send_telegram_message, send_email_message):
        if send(message):
            sent = True
    if not sent:
        logger.warning("Notification not delivered on any channel")
    return sent


__all__ = ["notify", "send_email_message", "send_telegram_message"]
