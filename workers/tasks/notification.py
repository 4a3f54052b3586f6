from typing import Any, Dict, Optional

from celery import shared_task
from celery.utils.log import get_task_logger

from app.core.config import settings
from app.core.email import _send_email_sync
from app.core.sanitizer import mask_email
from app.services.notification_service import (
    build_admin_notification_message,
    build_confirmation_message,
)

logger = get_task_logger(__name__)

SKIPPED = "skipped"
SENT = "sent"


@shared_task(
    bind=True,
    name="workers.tasks.notification.send_confirmation_email",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True,
    ignore_result=True,
)
def send_confirmation_email_task(
    self, request_id: str, recipient: str, name: str, form: Dict[str, Any]
) -> str:
    """
    Send the sender's confirmation email.
    Payloads are plain dicts so the task stays JSON-serializable.
    """
    if not settings.email_configured:
        logger.warning("Email not configured; confirmation skipped request_id=%s", request_id)
        return SKIPPED

    message = build_confirmation_message(recipient, name, form)
    _send_email_sync(message)

    logger.info(
        "Confirmation sent request_id=%s to=%s", request_id, mask_email(recipient)
    )
    return SENT


@shared_task(
    bind=True,
    name="workers.tasks.notification.send_admin_notification",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True,
    ignore_result=True,
)
def send_admin_notification_task(
    self, request_id: str, form: Dict[str, Any], ip_address: Optional[str] = None
) -> str:
    """Notify the site owner about a new submission."""
    if not settings.email_configured or not settings.admin_recipient:
        logger.warning("Email not configured; admin notification skipped request_id=%s", request_id)
        return SKIPPED

    message = build_admin_notification_message(form, ip_address)
    _send_email_sync(message)

    logger.info("Admin notification sent request_id=%s", request_id)
    return SENT
