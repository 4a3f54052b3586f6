import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.api.v1 import contact as contact_routes
from app.core.config import settings
from app.models.contact import ContactSubmission
from app.services import contact_service
from app.services.contact_repository import ContactRepository

SUBMIT_URL = "/api/contact/submit"

VALID_FORM = {
    "name": "Jane Doe",
    "email": "jane.doe@example.com",
    "subject": "Project inquiry",
    "message": "Hi, I'd like to discuss a freelance web project, budget around $2000.",
}

SPAM_FORM = {
    "name": "Jane Doe",
    "email": "jane.doe@example.com",
    "subject": "Hello",
    "message": "FREE MONEY CLICK HERE http://x.com http://y.com http://z.com",
}


@pytest.fixture(autouse=True)
def tasks(monkeypatch):
    """Replace both Celery tasks; returns their .delay mocks."""
    confirmation_task = MagicMock()
    admin_task = MagicMock()
    monkeypatch.setattr(contact_service, "send_confirmation_email_task", confirmation_task)
    monkeypatch.setattr(contact_service, "send_admin_notification_task", admin_task)
    return confirmation_task.delay, admin_task.delay


def _stored(db_session):
    db_session.expire_all()
    return db_session.query(ContactSubmission).all()


def _seed(db_session, count, email="jane.doe@example.com", ip="testclient", spam=False):
    for i in range(count):
        db_session.add(
            ContactSubmission(
                name="Earlier Sender",
                email=email if email else f"sender{i}@example.com",
                subject="Earlier",
                message="An earlier message from the same sender.",
                ip_address=ip,
                spam_score=6 if spam else 0,
                is_spam=spam,
                submission_type="suspicious" if spam else "normal",
                created_at=datetime.now(timezone.utc),
            )
        )
    db_session.commit()


class TestSubmit:
    def test_valid_submission_is_stored_and_notified(self, client, db_session, tasks, caplog):
        caplog.set_level("INFO")

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["request_id"]

        records = _stored(db_session)
        assert len(records) == 1
        assert records[0].status == "pending"
        assert records[0].is_spam is False
        assert records[0].submission_type == "normal"
        assert records[0].ip_address == "testclient"

        confirmation, admin = tasks
        confirmation.assert_called_once()
        admin.assert_called_once()
        assert confirmation.call_args.kwargs["recipient"] == "jane.doe@example.com"
        assert "jane.doe@example.com" not in caplog.text

    def test_spam_is_stored_silently_without_email(self, client, db_session, tasks):
        response = client.post(SUBMIT_URL, json=SPAM_FORM)
        normal = client.post(SUBMIT_URL, json=dict(VALID_FORM, email="other@example.com"))

        assert response.status_code == 200
        assert response.json()["message"] == normal.json()["message"]

        spam_record = next(r for r in _stored(db_session) if r.is_spam)
        assert spam_record.spam_score == 10
        assert spam_record.submission_type == "blocked"

        confirmation, admin = tasks
        # Only the normal submission was notified
        assert confirmation.call_count == 1
        assert admin.call_count == 1

    def test_honeypot_returns_success_and_stores_nothing(self, client, db_session, tasks):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, honeypot="http://bot"))

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert _stored(db_session) == []
        tasks[0].assert_not_called()

    @pytest.mark.parametrize("honeypot", [1, True, {"url": "http://bot"}, ["x"]])
    def test_non_string_honeypot_is_treated_as_filled(self, client, db_session, tasks, honeypot):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, honeypot=honeypot))

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert _stored(db_session) == []
        tasks[0].assert_not_called()

    @pytest.mark.parametrize("honeypot", [None, "", "   ", 0, False])
    def test_empty_honeypot_is_not_filled(self, client, db_session, honeypot):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, honeypot=honeypot))

        assert response.status_code == 200
        assert len(_stored(db_session)) == 1

    def test_too_fast_returns_success_and_stores_nothing(self, client, db_session):
        now_ms = int(time.time() * 1000)

        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, timestamp=now_ms))

        assert response.status_code == 200
        assert _stored(db_session) == []

    def test_slow_enough_form_is_accepted(self, client, db_session):
        opened_ms = int(time.time() * 1000) - 20_000

        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, timestamp=opened_ms))

        assert response.status_code == 200
        assert len(_stored(db_session)) == 1

    def test_invalid_timestamp_skips_timing_check(self, client, db_session):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, timestamp="not-a-number"))

        assert response.status_code == 200
        assert len(_stored(db_session)) == 1

    def test_timing_check_can_be_disabled(self, client, db_session, monkeypatch):
        monkeypatch.setattr(settings, "TIMING_CHECK_ENABLED", False)
        now_ms = int(time.time() * 1000)

        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, timestamp=now_ms))

        assert response.status_code == 200
        assert len(_stored(db_session)) == 1

    def test_html_is_stripped_before_storage(self, client, db_session):
        form = dict(
            VALID_FORM,
            subject="<i>Project</i> inquiry",
            message="<b>Hello</b> there, I want to talk about a new project.",
        )

        response = client.post(SUBMIT_URL, json=form)

        assert response.status_code == 200
        record = _stored(db_session)[0]
        assert record.subject == "Project inquiry"
        assert record.message == "Hello there, I want to talk about a new project."


class TestLimits:
    def test_email_limit_returns_429(self, client, db_session):
        _seed(db_session, 3, ip="9.9.9.9")

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 429
        assert response.json()["success"] is False
        assert len(_stored(db_session)) == 3

    def test_ip_limit_returns_429(self, client, db_session):
        _seed(db_session, 5, email=None, ip="testclient")

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 429

    def test_recent_spam_returns_429(self, client, db_session):
        _seed(db_session, 2, ip="9.9.9.9", spam=True)

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 429

    def test_limiter_failure_is_closed_by_default(self, client, monkeypatch):
        async def _broken_count(self, query):
            raise RuntimeError("database down")

        monkeypatch.setattr(ContactRepository, "count_recent", _broken_count)

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 429

    def test_limiter_failure_open_mode_accepts(self, client, db_session, monkeypatch):
        async def _broken_count(self, query):
            raise RuntimeError("database down")

        monkeypatch.setattr(ContactRepository, "count_recent", _broken_count)
        monkeypatch.setattr(settings, "LIMITER_FAILURE_MODE", "open")

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 200
        assert len(_stored(db_session)) == 1

    def test_request_throttle(self, client, monkeypatch):
        monkeypatch.setattr(settings, "REQUEST_THROTTLE_LIMIT", 3)
        form = dict(VALID_FORM, honeypot="filled")

        statuses = [client.post(SUBMIT_URL, json=form).status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]


class TestFailures:
    def test_save_failure_returns_500(self, client, monkeypatch, tasks):
        async def _broken_save(self, submission):
            raise RuntimeError("disk full")

        monkeypatch.setattr(ContactRepository, "save", _broken_save)

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 500
        assert "disk full" not in response.text
        tasks[0].assert_not_called()

    def test_enqueue_failure_falls_back_to_background_smtp(self, client, monkeypatch, tasks):
        sent = []
        tasks[0].side_effect = RuntimeError("redis unavailable")

        async def _fake_confirmation(recipient, name, form):
            sent.append(("confirmation", recipient))

        async def _fake_admin(form, ip_address):
            sent.append(("admin", ip_address))

        monkeypatch.setattr(contact_service, "send_confirmation", _fake_confirmation)
        monkeypatch.setattr(contact_service, "send_admin_notification", _fake_admin)

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 200
        assert sent == [
            ("confirmation", "jane.doe@example.com"),
            ("admin", "testclient"),
        ]

    def test_partial_enqueue_does_not_send_twice(self, client, monkeypatch, tasks):
        sent = []
        tasks[1].side_effect = RuntimeError("redis unavailable")

        async def _fake_confirmation(recipient, name, form):
            sent.append("confirmation")

        async def _fake_admin(form, ip_address):
            sent.append("admin")

        monkeypatch.setattr(contact_service, "send_confirmation", _fake_confirmation)
        monkeypatch.setattr(contact_service, "send_admin_notification", _fake_admin)

        response = client.post(SUBMIT_URL, json=VALID_FORM)

        assert response.status_code == 200
        tasks[0].assert_called_once()
        assert sent == ["admin"]


class TestValidation:
    def test_missing_field_returns_400(self, client):
        form = {k: v for k, v in VALID_FORM.items() if k != "email"}

        response = client.post(SUBMIT_URL, json=form)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["detail"]
        assert body["errors"][0]["field"] == "email"

    @pytest.mark.parametrize(
        "field,value,fragment",
        [
            ("name", "J", "Name must be between"),
            ("name", "Jane99", "Name can only contain"),
            ("email", "not-an-email", "email"),
            ("email", "jane@mailinator.com", "Disposable"),
            ("subject", "   ", "Subject is required"),
            ("message", "too short", "Message must be between"),
            ("message", "x" * 2001, "Message must be between"),
        ],
    )
    def test_invalid_fields(self, client, field, value, fragment):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, **{field: value}))

        assert response.status_code == 400
        assert fragment.lower() in response.json()["detail"].lower()

    def test_accented_names_are_accepted(self, client):
        response = client.post(SUBMIT_URL, json=dict(VALID_FORM, name="José O'Neil-Núñez"))
        assert response.status_code == 200


class TestStats:
    def test_stats_counts_and_remaining(self, client, db_session):
        _seed(db_session, 1, ip="8.8.8.8")

        response = client.get(
            "/api/contact/stats",
            params={"email": "Jane.Doe@example.com", "ip_address": "8.8.8.8"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "email_count": 1,
            "ip_count": 1,
            "remaining": 2,
        }

    @pytest.mark.parametrize(
        "params",
        [
            {"email": "jane@example.com", "ip_address": "192.168.1.10"},
            {"email": "jane@example.com", "ip_address": "127.0.0.1"},
            {"email": "jane@example.com", "ip_address": "999.1.1.1"},
            {"email": "nope", "ip_address": "8.8.8.8"},
            {"email": "jane@example.com"},
        ],
    )
    def test_stats_rejects_bad_input(self, client, params):
        response = client.get("/api/contact/stats", params=params)
        assert response.status_code == 400


class TestHealthAndAdmin:
    def test_contact_health(self, client):
        response = client.get("/api/contact/health")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["database"] == "connected"

    def test_service_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_liveness_probe(self, client):
        response = client.get("/api/health/live")

        assert response.status_code == 200
        assert response.json()["alive"] is True

    def test_analytics_requires_admin_key(self, client):
        response = client.get("/api/admin/contact/analytics")
        assert response.status_code == 403

        response = client.get(
            "/api/admin/contact/analytics", headers={"X-API-Key": "wrong"}
        )
        assert response.status_code == 403

    def test_analytics(self, admin_client, db_session):
        _seed(db_session, 2, email=None, ip="8.8.8.8")
        _seed(db_session, 1, email="bot@example.com", ip="9.9.9.9", spam=True)

        response = admin_client.get("/api/admin/contact/analytics", params={"hours": 24})

        assert response.status_code == 200
        body = response.json()
        assert body["period_hours"] == 24
        assert body["total_submissions"] == 3
        assert body["spam_submissions"] == 1
        assert body["unique_ips"] == 2
        assert body["spam_rate"] == pytest.approx(33.33)

    def test_failed_notifications_requires_admin_key(self, client):
        response = client.get("/api/admin/contact/failed-notifications")
        assert response.status_code == 403

    def test_failed_notifications(self, admin_client, monkeypatch):
        limits = []

        def _peek(limit):
            limits.append(limit)
            return [{"task_id": "task-1", "error_type": "ConnectionError"}]

        monkeypatch.setattr(contact_routes, "peek_failures", _peek)

        response = admin_client.get(
            "/api/admin/contact/failed-notifications", params={"limit": 5}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["failures"][0]["task_id"] == "task-1"
        assert limits == [5]

    def test_failed_notifications_without_redis_returns_503(self, admin_client, monkeypatch):
        def _peek(limit):
            raise ConnectionError("redis down")

        monkeypatch.setattr(contact_routes, "peek_failures", _peek)

        response = admin_client.get("/api/admin/contact/failed-notifications")

        assert response.status_code == 503
