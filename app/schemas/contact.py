from __future__ import annotations

import ipaddress
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from app.core.config import settings

# Letters from any script plus space, hyphen, apostrophe and period
_NAME_RE = re.compile(r"^[^\W\d_](?:[^\W\d_]|[\s\-'.])*$")
_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(value: str) -> str:
    return _TAG_RE.sub("", value)


def _check_length(label: str, value: str, min_length: int, max_length: int) -> str:
    if not value:
        raise ValueError(f"{label} is required")
    if len(value) < min_length or len(value) > max_length:
        raise ValueError(
            f"{label} must be between {min_length} and {max_length} characters"
        )
    return value


def _check_email(value: str) -> str:
    if len(value) > settings.CONTACT_EMAIL_MAX_LENGTH:
        raise ValueError("Email is too long")
    domain = value.rpartition("@")[2].lower()
    if domain in settings.DISPOSABLE_EMAIL_DOMAINS:
        raise ValueError("Disposable email addresses are not allowed")
    return value


def validate_public_ip(value: str) -> str:
    """Parse an IP address and reject private, loopback and reserved ranges."""
    try:
        addr = ipaddress.ip_address(value.strip())
    except ValueError:
        raise ValueError("Valid IP address is required")
    if (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_unspecified
    ):
        raise ValueError("Private IP addresses are not allowed")
    return str(addr)


class ContactRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str
    email: EmailStr
    subject: str
    message: str
    honeypot: Optional[str] = None
    timestamp: Optional[int] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if not v:
                raise ValueError("Email is required")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _check_email(v.lower())

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = _check_length(
            "Name",
            v,
            settings.CONTACT_NAME_MIN_LENGTH,
            settings.CONTACT_NAME_MAX_LENGTH,
        )
        if not _NAME_RE.match(v):
            raise ValueError(
                "Name can only contain letters, spaces, hyphens, apostrophes and periods"
            )
        return v

    @field_validator("subject")
    @classmethod
    def check_subject(cls, v: str) -> str:
        return _check_length(
            "Subject", strip_tags(v).strip(), 1, settings.CONTACT_SUBJECT_MAX_LENGTH
        )

    @field_validator("message")
    @classmethod
    def check_message(cls, v: str) -> str:
        return _check_length(
            "Message",
            strip_tags(v).strip(),
            settings.CONTACT_MESSAGE_MIN_LENGTH,
            settings.CONTACT_MESSAGE_MAX_LENGTH,
        )

    @field_validator("honeypot", mode="before")
    @classmethod
    def coerce_honeypot(cls, v: Any) -> Optional[str]:
        # Bots fill the trap with anything; any non-empty value counts as filled
        if not v:
            return None
        return v if isinstance(v, str) else str(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Optional[int]:
        # Unusable timestamps only disable the timing check
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return None
        try:
            return int(float(v.strip()) if isinstance(v, str) else v)
        except (ValueError, OverflowError):
            return None

    def form_fields(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
        }


class ContactResponse(BaseModel):
    success: bool = True
    message: str
    request_id: Optional[str] = None


class SubmissionStatsResponse(BaseModel):
    success: bool = True
    email_count: int
    ip_count: int
    remaining: int


class ContactHealthResponse(BaseModel):
    success: bool
    service: str = "contact"
    status: str
    database: str
    email: str
    timestamp: datetime


class ContactAnalyticsResponse(BaseModel):
    success: bool = True
    period_hours: int
    total_submissions: int
    spam_submissions: int
    blocked_submissions: int
    spam_rate: float
    unique_emails: int
    unique_ips: int


class FailedNotificationsResponse(BaseModel):
    success: bool = True
    count: int
    failures: List[Dict[str, Any]]
