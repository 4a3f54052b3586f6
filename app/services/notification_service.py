"""
Contact notification emails.

Two messages per accepted (non-spam) submission: a confirmation to the
sender and a notification to the site owner. Both are multipart with a
plain-text body and an HTML alternative whose user content is escaped.

send_* never raise; failures come back as EmailResult(success=False).
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Mapping, Optional

from app.core.config import settings
from app.core.email import EmailNotConfiguredError, send_email
from app.core.sanitizer import mask_email

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Email service not configured"
CONFIRMATION_SUBJECT = "Thank you for contacting us!"


@dataclass(frozen=True)
class EmailResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


def _field(form: Mapping[str, Any], key: str, default: str = "") -> str:
    value = form.get(key)
    return value if isinstance(value, str) and value else default


def _escape_multiline(value: str) -> str:
    return html.escape(value).replace("\n", "<br>")


def _html_page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8">'
        f"<title>{html.escape(title)}</title></head>\n"
        '<body style="font-family: Arial, sans-serif; line-height: 1.6; '
        'color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">\n'
        f"{body}\n"
        "</body></html>"
    )


def _new_message(to: str, subject: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((settings.EMAIL_FROM_NAME, settings.sender_address or ""))
    msg["To"] = to
    msg["Subject"] = subject
    domain = (settings.sender_address or "localhost").rpartition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)
    return msg


def build_confirmation_message(
    recipient: str, name: str, form: Mapping[str, Any]
) -> EmailMessage:
    subject = _field(form, "subject")
    message = _field(form, "message")
    team = settings.EMAIL_FROM_NAME

    text_body = "\n".join(
        [
            f"Dear {name},",
            "",
            "Thank you for getting in touch. We have received your message.",
            "",
            "Your message:",
            f"Subject: {subject}",
            message,
            "",
            "We usually reply within 24-48 hours on business days.",
            "",
            "Best regards,",
            team,
            "",
            "This is an automated confirmation. Please do not reply.",
        ]
    )

    html_body = _html_page(
        CONFIRMATION_SUBJECT,
        f"<h2>Thank you for reaching out!</h2>"
        f"<p>Dear <strong>{html.escape(name)}</strong>,</p>"
        "<p>Thank you for getting in touch. We have received your message.</p>"
        '<div style="background: #f8f9fa; padding: 16px; '
        'border-left: 4px solid #667eea;">'
        f"<p><strong>Subject:</strong> {html.escape(subject)}</p>"
        f"<p>{_escape_multiline(message)}</p>"
        "</div>"
        "<p>We usually reply within 24-48 hours on business days.</p>"
        f"<p>Best regards,<br><strong>{html.escape(team)}</strong></p>"
        f'<p style="color: #666; font-size: 13px;">'
        f"&copy; {datetime.now(timezone.utc).year} {html.escape(team)}. "
        "This is an automated confirmation. Please do not reply.</p>",
    )

    msg = _new_message(recipient, CONFIRMATION_SUBJECT)
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


def build_admin_notification_message(
    form: Mapping[str, Any], ip_address: Optional[str]
) -> EmailMessage:
    name = _field(form, "name")
    email = _field(form, "email")
    subject = _field(form, "subject", "No Subject")
    message = _field(form, "message")
    ip_display = ip_address or "Unknown"
    received_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    text_body = "\n".join(
        [
            "New contact form submission",
            "",
            f"Name: {name}",
            f"Email: {email}",
            f"Subject: {subject}",
            f"IP address: {ip_display}",
            f"Received: {received_at}",
            "",
            "Message:",
            message,
        ]
    )

    html_body = _html_page(
        "New contact form submission",
        "<h2>New contact form submission</h2>"
        "<table>"
        f"<tr><td><strong>Name</strong></td><td>{html.escape(name)}</td></tr>"
        f"<tr><td><strong>Email</strong></td><td>{html.escape(email)}</td></tr>"
        f"<tr><td><strong>Subject</strong></td><td>{html.escape(subject)}</td></tr>"
        f"<tr><td><strong>IP address</strong></td>"
        f"<td>{html.escape(ip_display)}</td></tr>"
        f"<tr><td><strong>Received</strong></td><td>{received_at}</td></tr>"
        "</table>"
        f"<h3>Message</h3><p>{_escape_multiline(message)}</p>",
    )

    msg = _new_message(settings.admin_recipient or "", f"New Contact: {subject}")
    if email:
        msg["Reply-To"] = email
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


async def _deliver(msg: EmailMessage, kind: str) -> EmailResult:
    try:
        await send_email(msg)
    except EmailNotConfiguredError:
        logger.warning(
            "Skipping %s email: %s",
            kind,
            NOT_CONFIGURED,
            extra={"event": "email_not_configured"},
        )
        return EmailResult(success=False, error=NOT_CONFIGURED)
    except Exception as exc:
        logger.error(
            "Failed to send %s email: %s",
            kind,
            exc,
            extra={"event": "email_failed"},
        )
        return EmailResult(success=False, error=str(exc))

    logger.info(
        "Sent %s email to=%s",
        kind,
        mask_email(msg["To"]),
        extra={"event": "email_sent"},
    )
    return EmailResult(success=True, message_id=msg["Message-ID"])


async def send_confirmation(
    recipient: Optional[str], name: Optional[str], form: Optional[Mapping[str, Any]]
) -> EmailResult:
    if not settings.email_configured:
        return EmailResult(success=False, error=NOT_CONFIGURED)
    if not recipient or not name or not form:
        return EmailResult(success=False, error="Missing required parameters")
    return await _deliver(build_confirmation_message(recipient, name, form), "confirmation")


async def send_admin_notification(
    form: Optional[Mapping[str, Any]], ip_address: Optional[str]
) -> EmailResult:
    if not settings.email_configured:
        return EmailResult(success=False, error=NOT_CONFIGURED)
    if not form or not _field(form, "email"):
        return EmailResult(success=False, error="Missing form data")
    if not settings.admin_recipient:
        return EmailResult(success=False, error="No admin email configured")
    return await _deliver(
        build_admin_notification_message(form, ip_address), "admin notification"
    )
