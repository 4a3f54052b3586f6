"""
Submission limiter.

Decides whether a new contact submission from an (email, IP) pair is
accepted, based on what that identity sent during a trailing window.
Counts come from a SubmissionCounter; the limiter itself never writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional, Protocol

from app.core.config import settings
from app.core.sanitizer import mask_email, mask_ip

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=24)
UNAVAILABLE_MESSAGE = "System temporarily unavailable"
MISSING_IDENTITY_MESSAGE = "No email or IP address to check"

FailureMode = Literal["open", "closed"]


@dataclass(frozen=True)
class LimitPolicy:
    max_per_email: int = 3
    max_per_ip: int = 5
    max_recent_spam: int = 2
    use_spam_signal: bool = True
    failure_mode: FailureMode = "closed"

    @classmethod
    def from_settings(cls) -> "LimitPolicy":
        return cls(
            max_per_email=settings.MAX_SUBMISSIONS_PER_EMAIL,
            max_per_ip=settings.MAX_SUBMISSIONS_PER_IP,
            max_recent_spam=settings.MAX_RECENT_SPAM,
            use_spam_signal=settings.USE_RECENT_SPAM_SIGNAL,
            failure_mode=settings.LIMITER_FAILURE_MODE,
        )

    def limits(self) -> dict:
        return {
            "max_per_email": self.max_per_email,
            "max_per_ip": self.max_per_ip,
            "max_recent_spam": self.max_recent_spam,
        }


DEFAULT_LIMIT_POLICY = LimitPolicy()


@dataclass(frozen=True)
class RecentCountQuery:
    """
    Records created at or after `since`.

    email and ip_address match with OR when both are set. spam=False keeps
    non-spam records only, spam=True spam records only, None both.
    """

    since: datetime
    email: Optional[str] = None
    ip_address: Optional[str] = None
    spam: Optional[bool] = None


class SubmissionCounter(Protocol):
    async def count_recent(self, query: RecentCountQuery) -> int: ...


@dataclass(frozen=True)
class LimitResult:
    email_count: int
    ip_count: int
    recent_spam_count: int
    is_over_limit: bool
    limits: dict = field(default_factory=dict)
    error: Optional[str] = None


def failure_result(
    policy: LimitPolicy = DEFAULT_LIMIT_POLICY,
    reason: str = UNAVAILABLE_MESSAGE,
) -> LimitResult:
    """Degraded result: blocks under fail-closed, admits under fail-open."""
    return LimitResult(
        email_count=0,
        ip_count=0,
        recent_spam_count=0,
        is_over_limit=policy.failure_mode == "closed",
        limits=policy.limits(),
        error=reason,
    )


async def _zero() -> int:
    return 0


async def check_limit(
    email: Optional[str],
    ip_address: Optional[str],
    counter: SubmissionCounter,
    *,
    window: timedelta = DEFAULT_WINDOW,
    policy: LimitPolicy = DEFAULT_LIMIT_POLICY,
    now: Optional[datetime] = None,
) -> LimitResult:
    """
    Count recent submissions for the identity and compare with the policy.

    The email, IP and recent-spam counts are issued concurrently and all of
    them are awaited before a verdict. Never raises: collaborator errors
    produce failure_result() under the configured failure mode.
    """
    email = (email or "").strip().lower() or None
    ip_address = (ip_address or "").strip() or None

    if email is None and ip_address is None:
        logger.warning(
            "Limiter called without identity",
            extra={"event": "limiter_missing_identity"},
        )
        return failure_result(policy, MISSING_IDENTITY_MESSAGE)

    now = now or datetime.now(timezone.utc)
    since = now - window

    email_query = (
        counter.count_recent(RecentCountQuery(since=since, email=email, spam=False))
        if email
        else _zero()
    )
    ip_query = (
        counter.count_recent(
            RecentCountQuery(since=since, ip_address=ip_address, spam=False)
        )
        if ip_address
        else _zero()
    )
    spam_query = (
        counter.count_recent(
            RecentCountQuery(
                since=since, email=email, ip_address=ip_address, spam=True
            )
        )
        if policy.use_spam_signal
        else _zero()
    )

    # return_exceptions lets every count settle before a verdict
    results = await asyncio.gather(
        email_query, ip_query, spam_query, return_exceptions=True
    )
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        logger.error(
            "Limiter counts failed (mode=%s): %s",
            policy.failure_mode,
            errors[0],
            extra={"event": "limiter_unavailable"},
        )
        return failure_result(policy)

    email_count, ip_count, recent_spam_count = (int(r) for r in results)

    is_over_limit = (
        email_count >= policy.max_per_email
        or ip_count >= policy.max_per_ip
        or (policy.use_spam_signal and recent_spam_count >= policy.max_recent_spam)
    )

    if is_over_limit:
        logger.info(
            "Submission limit reached email=%s ip=%s counts=%s/%s/%s",
            mask_email(email),
            mask_ip(ip_address),
            email_count,
            ip_count,
            recent_spam_count,
            extra={"event": "limiter_over_limit"},
        )

    return LimitResult(
        email_count=email_count,
        ip_count=ip_count,
        recent_spam_count=recent_spam_count,
        is_over_limit=is_over_limit,
        limits=policy.limits(),
    )
