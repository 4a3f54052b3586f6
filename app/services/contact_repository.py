from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import case, func, or_, select, text
from sqlalchemy.orm import Session

from app.models.contact import TYPE_BLOCKED, ContactSubmission
from app.services.submission_limiter import RecentCountQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewSubmission:
    name: str
    email: str
    subject: str
    message: str
    ip_address: str
    user_agent: Optional[str]
    spam_score: int
    is_spam: bool
    submission_type: str


@dataclass(frozen=True)
class SubmissionStats:
    total_submissions: int
    spam_submissions: int
    blocked_submissions: int
    unique_emails: int
    unique_ips: int

    @property
    def spam_rate(self) -> float:
        if not self.total_submissions:
            return 0.0
        return round(self.spam_submissions / self.total_submissions * 100, 2)


class ContactRepository:
    """
    SQLAlchemy access to contact_submissions.

    Each call opens its own session from the factory and runs in a worker
    thread, so concurrent counts never share a session.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _count_recent_sync(self, query: RecentCountQuery) -> int:
        stmt = select(func.count(ContactSubmission.id)).where(
            ContactSubmission.created_at >= query.since
        )

        identity = []
        if query.email:
            identity.append(ContactSubmission.email == query.email.lower())
        if query.ip_address:
            identity.append(ContactSubmission.ip_address == query.ip_address)
        if identity:
            stmt = stmt.where(or_(*identity))

        if query.spam is not None:
            stmt = stmt.where(ContactSubmission.is_spam.is_(query.spam))

        with self.session_factory() as db:
            return int(db.execute(stmt).scalar_one())

    async def count_recent(self, query: RecentCountQuery) -> int:
        return await asyncio.to_thread(self._count_recent_sync, query)

    def _stats_sync(self, since: datetime) -> SubmissionStats:
        stmt = select(
            func.count(ContactSubmission.id),
            func.coalesce(
                func.sum(case((ContactSubmission.is_spam.is_(True), 1), else_=0)), 0
            ),
            func.coalesce(
                func.sum(
                    case(
                        (ContactSubmission.submission_type == TYPE_BLOCKED, 1),
                        else_=0,
                    )
                ),
                0,
            ),
            func.count(func.distinct(ContactSubmission.email)),
            func.count(func.distinct(ContactSubmission.ip_address)),
        ).where(ContactSubmission.created_at >= since)

        with self.session_factory() as db:
            total, spam, blocked, emails, ips = db.execute(stmt).one()

        return SubmissionStats(
            total_submissions=int(total or 0),
            spam_submissions=int(spam or 0),
            blocked_submissions=int(blocked or 0),
            unique_emails=int(emails or 0),
            unique_ips=int(ips or 0),
        )

    async def submission_stats(self, since: datetime) -> SubmissionStats:
        return await asyncio.to_thread(self._stats_sync, since)

    def _ping_sync(self) -> bool:
        with self.session_factory() as db:
            db.execute(text("SELECT 1"))
        return True

    async def ping(self) -> bool:
        try:
            return await asyncio.to_thread(self._ping_sync)
        except Exception as exc:
            logger.error("Database ping failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _save_sync(self, submission: NewSubmission) -> ContactSubmission:
        record = ContactSubmission(
            name=submission.name,
            email=submission.email.lower(),
            subject=submission.subject,
            message=submission.message,
            ip_address=submission.ip_address,
            user_agent=submission.user_agent,
            spam_score=submission.spam_score,
            is_spam=submission.is_spam,
            submission_type=submission.submission_type,
        )
        with self.session_factory() as db:
            try:
                db.add(record)
                db.commit()
                db.refresh(record)
                db.expunge(record)
            except Exception:
                db.rollback()
                raise
        return record

    async def save(self, submission: NewSubmission) -> ContactSubmission:
        """Insert one pending submission; errors propagate to the caller."""
        return await asyncio.to_thread(self._save_sync, submission)
