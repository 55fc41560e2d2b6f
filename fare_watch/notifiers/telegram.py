"""Telegram push notification."""

import logging
import os

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"
MAX_MESSAGE_CHARS = 4096


def notify_timeout() -> float:
    """Upper bound in seconds for one notification round-trip."""
    try:
        return float(os.environ.get("NOTIFY_TIMEOUT_SECONDS", "10"))
    except ValueError:
        return 10.0


def split_message(message: str, limit: int = MAX_MESSAGE_CHARS) -> list[str]:
    """Break a long report on line boundaries into Bot API sized chunks."""
    chunks: list[str] = []
    current = ""
    for line in message.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current or not chunks:
        chunks.append(current)
    return chunks


def send_telegram_message(message: str) -> bool:
    """
    Send a plain-text message via Telegram Bot API.

    Requires TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID. Long messages go out
    in several parts. Never raises.
    """
    token = os.environ.get("TELEGRAM_BOT_TOKEN")
    chat_id = os.environ.get("TELEGRAM_CHAT_ID")
    if not token or not chat_id:
        logger.warning("Telegram: TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID not set")
        return False

    url = TELEGRAM_API.format(token=token)
    parts = split_message(message)
    try:
        for i, part in enumerate(parts, start=1):
            resp = requests.post(
                url,
                json={"chat_id": chat_id, "text": part, "disable_web_page_preview": True},
                timeout=notify_timeout(),
            )
            if resp.status_code != 200:
                logger.error("Telegram API error (status %d, part %d/%d): %s", resp.status_code, i, len(parts), resp.text)
            resp.raise_for_status()
        logger.info("Telegram: message sent (%d part(s))", len(parts))
        return True
    except requests.exceptions.RequestException as e:
        logger.error("Telegram request failed: %s", e)
        return False
