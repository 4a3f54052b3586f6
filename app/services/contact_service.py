from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import BackgroundTasks

from app.core.config import settings
from app.core.sanitizer import mask_email, mask_ip
from app.models.contact import ContactSubmission
from app.schemas.contact import ContactRequest
from app.services.contact_repository import (
    ContactRepository,
    NewSubmission,
    SubmissionStats,
)
from app.services.notification_service import (
    send_admin_notification,
    send_confirmation,
)
from app.services.spam_scorer import ScoreResult, SpamPolicy, score_submission
from app.services.submission_limiter import (
    LimitPolicy,
    LimitResult,
    check_limit,
    failure_result,
)
from workers.tasks.notification import (
    send_admin_notification_task,
    send_confirmation_email_task,
)

logger = logging.getLogger(__name__)

DELIVERY_QUEUE = "celery_queue"
DELIVERY_FALLBACK = "background_smtp"


@dataclass(frozen=True)
class SubmissionOutcome:
    record: ContactSubmission
    score: ScoreResult
    delivery_path: Optional[str]


class ContactService:
    """Contact submission workflow: screening, limits, scoring, storage, mail."""

    def __init__(
        self,
        repository: ContactRepository,
        spam_policy: Optional[SpamPolicy] = None,
        limit_policy: Optional[LimitPolicy] = None,
    ):
        self.repository = repository
        self.spam_policy = spam_policy or SpamPolicy.from_settings()
        self.limit_policy = limit_policy or LimitPolicy.from_settings()

    # ------------------------------------------------------------------
    # Anti-automation
    # ------------------------------------------------------------------

    @staticmethod
    def is_honeypot_filled(request: ContactRequest) -> bool:
        return bool(request.honeypot and request.honeypot.strip())

    @staticmethod
    def is_too_fast(request: ContactRequest, now_ms: Optional[int] = None) -> bool:
        """True when the form came back faster than a person could fill it."""
        if not settings.TIMING_CHECK_ENABLED or request.timestamp is None:
            return False
        if request.timestamp <= 0:
            return False
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        return now_ms - request.timestamp < settings.MIN_FORM_FILL_MS

    # ------------------------------------------------------------------
    # Limits and scoring
    # ------------------------------------------------------------------

    async def check_limit(self, email: str, ip_address: str) -> LimitResult:
        try:
            return await asyncio.wait_for(
                check_limit(
                    email,
                    ip_address,
                    self.repository,
                    window=timedelta(seconds=settings.SUBMISSION_WINDOW_SECONDS),
                    policy=self.limit_policy,
                ),
                timeout=settings.LIMITER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Limiter timed out after %ss (mode=%s)",
                settings.LIMITER_TIMEOUT_SECONDS,
                self.limit_policy.failure_mode,
                extra={"event": "limiter_timeout"},
            )
            return failure_result(self.limit_policy)

    def score(self, request: ContactRequest) -> ScoreResult:
        return score_submission(request.form_fields(), self.spam_policy)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        request_id: str,
        request: ContactRequest,
        ip_address: str,
        user_agent: Optional[str],
        background_tasks: BackgroundTasks,
    ) -> SubmissionOutcome:
        """Score, persist and notify. Save errors propagate to the caller."""
        result = self.score(request)

        record = await self.repository.save(
            NewSubmission(
                name=request.name,
                email=request.email,
                subject=request.subject,
                message=request.message,
                ip_address=ip_address,
                user_agent=(user_agent or "")[: settings.USER_AGENT_MAX_LENGTH] or None,
                spam_score=result.score,
                is_spam=result.is_spam,
                submission_type=result.submission_type,
            )
        )

        logger.info(
            "AUDIT: Contact submission stored id=%s score=%s type=%s email=%s ip=%s",
            record.id,
            result.score,
            result.submission_type,
            mask_email(request.email),
            mask_ip(ip_address),
            extra={
                "event": "contact_submission_stored",
                "request_id": request_id,
                "spam_score": result.score,
                "is_spam": result.is_spam,
                "submission_type": result.submission_type,
                "flags": list(result.flags),
            },
        )

        delivery_path = None
        if not result.is_spam:
            delivery_path = self.dispatch_notifications(
                request_id, request, ip_address, background_tasks
            )

        return SubmissionOutcome(record=record, score=result, delivery_path=delivery_path)

    def dispatch_notifications(
        self,
        request_id: str,
        request: ContactRequest,
        ip_address: str,
        background_tasks: BackgroundTasks,
    ) -> str:
        """Queue both emails; fall back to in-process delivery if the broker is down."""
        form = request.form_fields()
        confirmation_queued = False
        try:
            send_confirmation_email_task.delay(
                request_id=request_id,
                recipient=request.email,
                name=request.name,
                form=form,
            )
            confirmation_queued = True
            send_admin_notification_task.delay(
                request_id=request_id,
                form=form,
                ip_address=ip_address,
            )
            return DELIVERY_QUEUE
        except Exception as enqueue_exc:
            logger.warning(
                "Notification enqueue failed id=%s error=%s",
                request_id,
                enqueue_exc,
                extra={
                    "event": "contact_enqueue_failed",
                    "request_id": request_id,
                },
            )

        # Each email goes out once, whichever path picked it up
        if not confirmation_queued:
            background_tasks.add_task(
                send_confirmation, request.email, request.name, form
            )
        background_tasks.add_task(send_admin_notification, form, ip_address)
        return DELIVERY_FALLBACK

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def stats_for(self, email: str, ip_address: str) -> LimitResult:
        return await self.check_limit(email, ip_address)

    def remaining(self, limit: LimitResult) -> int:
        return max(0, self.limit_policy.max_per_email - limit.email_count)

    async def analytics(
        self, hours: int, now: Optional[datetime] = None
    ) -> SubmissionStats:
        now = now or datetime.now(timezone.utc)
        return await self.repository.submission_stats(now - timedelta(hours=hours))

    async def database_ok(self) -> bool:
        return await self.repository.ping()
