"""Email notification via SMTP."""

import logging
import os
import smtplib
from email.mime.text import MIMEText

from fare_watch.notifiers.telegram import notify_timeout

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "Fare Watch"


def build_email(message: str, sender: str, recipient: str) -> MIMEText:
    """Plain-text UTF-8 mail whose subject is the first report line."""
    first_line = message.strip().splitlines()[0] if message.strip() else "Fare alert"
    msg = MIMEText(message.strip(), "plain", "utf-8")
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = f"{SUBJECT_PREFIX}: {first_line[:80]}"
    return msg


def send_email_message(message: str) -> bool:
    """
    Send a fare alert email.

    Uses SMTP_USER and SMTP_PASS; SMTP_TO defaults to SMTP_USER, SMTP_HOST to
    smtp.gmail.com and SMTP_PORT to 587 (STARTTLS). Never raises.
    """
    user = os.environ.get("SMTP_USER")
    password = os.environ.get("SMTP_PASS")
    if not user or not password:
        logger.warning("Email: SMTP_USER or SMTP_PASS not set")
        return False

    to_addr = os.environ.get("SMTP_TO") or user
    host = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    try:
        port = int(os.environ.get("SMTP_PORT", "587"))
    except ValueError:
        logger.error("Email: SMTP_PORT must be an integer")
        return False

    try:
        with smtplib.SMTP(host, port, timeout=notify_timeout()) as server:
            server.starttls()
            server.login(user, password)
            server.send_message(build_email(message, user, to_addr))
    except smtplib.SMTPAuthenticationError as e:
        logger.error("Email authentication failed: %s", e)
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email delivery to %s failed: %s", to_addr, e)
        return False
    logger.info("Email: alert sent to %s", to_addr)
    return True
