from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

SMTPS_PORT = 465


class EmailNotConfiguredError(RuntimeError):
    """Raised when SMTP host or credentials are missing."""


def _open_connection() -> smtplib.SMTP:
    if not settings.email_configured:
        raise EmailNotConfiguredError("Email service not configured")

    if settings.SMTP_PORT == SMTPS_PORT:
        server: smtplib.SMTP = smtplib.SMTP_SSL(
            settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT
        )
    else:
        server = smtplib.SMTP(
            settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT
        )
        server.starttls()
    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD.get_secret_value())
    return server


def _send_email_sync(message: EmailMessage) -> None:
    with _open_connection() as server:
        server.send_message(message)


async def send_email(
    message: EmailMessage,
    retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> None:
    retries = settings.EMAIL_SEND_RETRIES if retries is None else retries
    retry_delay = settings.EMAIL_RETRY_DELAY if retry_delay is None else retry_delay

    last_error: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            await asyncio.to_thread(_send_email_sync, message)
            return
        except EmailNotConfiguredError:
            raise
        except Exception as exc:
            last_error = exc
            logger.warning("Email send attempt %s failed: %s", attempt + 1, exc)
            if attempt < retries:
                await asyncio.sleep(retry_delay)

    if last_error:
        raise last_error


def verify_transport() -> bool:
    """Open and close an authenticated SMTP session; used at startup."""
    if not settings.email_configured:
        logger.warning("Email configuration missing. Email service disabled.")
        return False
    try:
        with _open_connection() as server:
            server.noop()
    except Exception as exc:
        logger.error("Email transport verification failed: %s", exc)
        return False
    logger.info("Email transport verified host=%s", settings.SMTP_HOST)
    return True
