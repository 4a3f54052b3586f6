import pytest

from app.api.routes import health as health_module
from app.core.config import settings


class _HealthyRedisClient:
    def __init__(self, dead_lettered=0):
        self.dead_lettered = dead_lettered

    def ping(self):
        return True

    def llen(self, key):
        return self.dead_lettered


def test_celery_health_returns_503_when_broker_is_unreachable(client, monkeypatch):
    def _raise_connection_error(*args, **kwargs):
        raise OSError("getaddrinfo failed")

    monkeypatch.setattr(
        health_module,
        "resolve_celery_broker_url",
        lambda: "redis://invalid-host:6379/0",
    )
    monkeypatch.setattr(health_module.redis, "from_url", _raise_connection_error)

    response = client.get("/api/health/celery")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert "Redis unavailable" in payload["message"]


def test_celery_health_reports_dead_letter_depth(client, monkeypatch):
    monkeypatch.setattr(
        health_module.redis,
        "from_url",
        lambda *args, **kwargs: _HealthyRedisClient(dead_lettered=4),
    )

    response = client.get("/api/health/celery")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["message"].startswith("4 notification")


def test_detailed_health_degrades_without_broker(client, monkeypatch):
    def _raise_connection_error(*args, **kwargs):
        raise ConnectionError("connection refused")

    monkeypatch.setattr(health_module.redis, "from_url", _raise_connection_error)

    response = client.get("/api/health/detailed")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["services"]["database"]["status"] == "healthy"
    assert payload["services"]["redis"]["status"] == "degraded"
    assert set(payload["services"]) == {"database", "redis", "email"}


def test_detailed_health_with_everything_up(client, monkeypatch):
    monkeypatch.setattr(
        health_module.redis, "from_url", lambda *args, **kwargs: _HealthyRedisClient()
    )
    monkeypatch.setattr(
        health_module, "check_email", lambda: health_module.ServiceHealth(status="healthy")
    )

    assert client.get("/api/health/detailed").json()["status"] == "healthy"


def test_readiness_and_db_probes(client):
    assert client.get("/api/health/ready").json() == {"ready": True}

    response = client.get("/api/health/db")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.parametrize("path", ["/api/health", "/health"])
def test_service_status(client, path):
    response = client.get(path)

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["version"] == settings.VERSION
    assert payload["environment"] == settings.ENVIRONMENT
