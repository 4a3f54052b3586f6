from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.models.contact import STATUS_PENDING, ContactSubmission
from app.services.contact_repository import ContactRepository, NewSubmission
from app.services.submission_limiter import RecentCountQuery


def _submission(email="jane@example.com", ip="8.8.8.8", spam=False, score=0, kind="normal"):
    return NewSubmission(
        name="Jane Doe",
        email=email,
        subject="Hello",
        message="I would like to talk about a project.",
        ip_address=ip,
        user_agent="pytest",
        spam_score=score,
        is_spam=spam,
        submission_type=kind,
    )


def _add_old(db_session, email, ip, hours_ago, spam=False):
    db_session.add(
        ContactSubmission(
            name="Old Sender",
            email=email,
            subject="Old",
            message="An older message that is outside the window.",
            ip_address=ip,
            spam_score=6 if spam else 0,
            is_spam=spam,
            submission_type="suspicious" if spam else "normal",
            created_at=datetime.now(timezone.utc) - timedelta(hours=hours_ago),
        )
    )
    db_session.commit()


@pytest.fixture
def repository(session_factory):
    return ContactRepository(session_factory)


@pytest.mark.asyncio
async def test_save_stores_pending_record_with_lowercased_email(repository, db_session):
    record = await repository.save(_submission(email="Jane@Example.com"))

    assert record.id is not None
    assert record.status == STATUS_PENDING
    assert record.created_at is not None

    stored = db_session.get(ContactSubmission, record.id)
    assert stored.email == "jane@example.com"
    assert stored.user_agent == "pytest"


@pytest.mark.asyncio
async def test_count_recent_filters_by_identity_spam_and_window(repository, db_session):
    await repository.save(_submission())
    await repository.save(_submission(ip="1.1.1.1"))
    await repository.save(_submission(email="other@example.com"))
    await repository.save(_submission(spam=True, score=7, kind="suspicious"))
    _add_old(db_session, "jane@example.com", "8.8.8.8", hours_ago=30)

    since = datetime.now(timezone.utc) - timedelta(hours=24)

    assert await repository.count_recent(
        RecentCountQuery(since=since, email="JANE@example.com", spam=False)
    ) == 2
    assert await repository.count_recent(
        RecentCountQuery(since=since, ip_address="8.8.8.8", spam=False)
    ) == 2
    assert await repository.count_recent(
        RecentCountQuery(since=since, email="jane@example.com", spam=True)
    ) == 1
    assert await repository.count_recent(RecentCountQuery(since=since)) == 4


@pytest.mark.asyncio
async def test_spam_count_matches_email_or_ip(repository):
    await repository.save(_submission(email="a@example.com", ip="9.9.9.9", spam=True, score=6, kind="suspicious"))
    await repository.save(_submission(email="b@example.com", ip="8.8.8.8", spam=True, score=9, kind="blocked"))
    await repository.save(_submission(email="c@example.com", ip="7.7.7.7", spam=True, score=6, kind="suspicious"))

    since = datetime.now(timezone.utc) - timedelta(hours=1)
    count = await repository.count_recent(
        RecentCountQuery(since=since, email="a@example.com", ip_address="8.8.8.8", spam=True)
    )

    assert count == 2


@pytest.mark.asyncio
async def test_submission_stats(repository, db_session):
    await repository.save(_submission())
    await repository.save(_submission(email="b@example.com", ip="1.1.1.1"))
    await repository.save(_submission(spam=True, score=9, kind="blocked"))
    await repository.save(_submission(email="c@example.com", spam=True, score=5, kind="suspicious"))
    _add_old(db_session, "old@example.com", "2.2.2.2", hours_ago=48)

    stats = await repository.submission_stats(
        datetime.now(timezone.utc) - timedelta(hours=24)
    )

    assert stats.total_submissions == 4
    assert stats.spam_submissions == 2
    assert stats.blocked_submissions == 1
    assert stats.unique_emails == 3
    assert stats.unique_ips == 2
    assert stats.spam_rate == 50.0


@pytest.mark.asyncio
async def test_stats_on_empty_table(repository):
    stats = await repository.submission_stats(datetime.now(timezone.utc))

    assert stats.total_submissions == 0
    assert stats.spam_rate == 0.0


@pytest.mark.asyncio
async def test_ping(repository):
    assert await repository.ping() is True


@pytest.mark.asyncio
async def test_ping_reports_unreachable_database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nope.db'}")
    repository = ContactRepository(sessionmaker(bind=engine))

    assert await repository.ping() is False


@pytest.mark.asyncio
async def test_count_recent_propagates_errors(tmp_path):
    # No tables created in this database
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    repository = ContactRepository(sessionmaker(bind=engine))

    with pytest.raises(Exception):
        await repository.count_recent(
            RecentCountQuery(since=datetime.now(timezone.utc), email="a@example.com")
        )
