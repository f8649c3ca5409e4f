# core/emailer.py
import os
import smtplib
from email.mime.text import MIMEText

from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .logger import get_logger
from .models import InventoryChanges
from .report import build_alert_report, build_plaintext_report, notification_subject

logger = get_logger(__name__)

EMAIL_FROM = os.getenv("EMAIL_FROM", "").strip()
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "").strip()
SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
SMTP_MAX_ATTEMPTS = int(os.getenv("SMTP_MAX_ATTEMPTS", "3"))

# Global default recipients (comma or semicolon separated)
_EMAIL_TO_RAW = os.getenv("EMAIL_TO", "").strip()


class EmailError(Exception):
    """Raised when an email could not be delivered."""


def get_global_recipients() -> list[str]:
    if not _EMAIL_TO_RAW:
        return []
    parts = [p.strip() for p in _EMAIL_TO_RAW.replace(";", ",").split(",")]
    return [p for p in parts if p]


@retry(
    retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
    wait=wait_exponential_jitter(initial=1, max=30),
    stop=stop_after_attempt(SMTP_MAX_ATTEMPTS),
)
def _deliver(msg: MIMEText, recipients: list[str]) -> None:
    if SMTP_USE_SSL:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=30)
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)

    try:
        if not SMTP_USE_SSL:
            server.starttls()
        if SMTP_USER:
            server.login(SMTP_USER, SMTP_PASS)
        server.sendmail(EMAIL_FROM, recipients, msg.as_string())
    finally:
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            pass


def send_email(subject: str, text_body: str, recipients: list[str]) -> bool:
    """
    Send a plain-text email. Returns False when email is not configured.
    Raises EmailError when delivery keeps failing after retries.
    """
    if not recipients:
        logger.warning(
            "No recipients provided for email '%s'; skipping send.", subject
        )
        return False

    if not (EMAIL_FROM and SMTP_HOST):
        logger.warning(
            "Email not fully configured (EMAIL_FROM/SMTP_HOST); skipping email: %s",
            subject,
        )
        return False

    msg = MIMEText(text_body, "plain", "utf-8")
    msg["From"] = EMAIL_FROM
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject

    try:
        _deliver(msg, recipients)
    except RetryError as e:
        raise EmailError(f"Failed to send '{subject}' after retries: {e}") from e

    logger.info("Email sent to %s: %s", recipients, subject)
    return True


def send_notification(changes: InventoryChanges) -> bool:
    return send_email(
        notification_subject(changes),
        build_plaintext_report(changes),
        get_global_recipients(),
    )


def send_alert_email(error: str, categories: list[str], throttle_hours: int) -> bool:
    return send_email(
        "[Outlet Monitor] Scraper alert",
        build_alert_report(error, categories, throttle_hours),
        get_global_recipients(),
    )
