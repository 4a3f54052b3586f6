import os
import tempfile

# Settings are read at import time; configure before importing the app
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_ON_STARTUP", "false")
os.environ.setdefault("ADMIN_API_KEY", "admin-test-key")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "contact-api-test-logs"))

from typing import Generator  # noqa: E402

import fastapi.testclient as fastapi_testclient  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.api import deps as api_deps  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.rate_limiter import reset_rate_limiter_state  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
import app.models as _models  # noqa: E402,F401

# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """
    Dedicated SQLite database file per test.

    A file (not :memory:) so worker threads used by the repository see
    the same data.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'contact_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# -----------------------------------------------------------------------------
# Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="function")
def client(session_factory, monkeypatch):
    """
    TestClient with the database dependencies pointed at the test SQLite file.
    """

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[api_deps.get_db] = override_get_db
    app.dependency_overrides[api_deps.get_session_factory] = lambda: session_factory

    # Startup must not reach a real SMTP server
    monkeypatch.setattr("app.main.verify_transport", lambda: False)
    reset_rate_limiter_state()

    # Using 'with' context manager to trigger lifespan events (startup/shutdown)
    with fastapi_testclient.TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    reset_rate_limiter_state()


@pytest.fixture(scope="function")
def admin_client(client):
    """
    Client carrying the admin API key.
    """
    key = (
        settings.ADMIN_API_KEY.get_secret_value()
        if settings.ADMIN_API_KEY
        else "admin-test-key"
    )
    client.headers.update({"X-API-Key": key})
    return client
