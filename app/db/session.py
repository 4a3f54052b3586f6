import logging
import time
from typing import Any, Callable, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.base import Base

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Request handlers and to_thread workers share the connection pool
        return {"connect_args": {"check_same_thread": False}, "echo": False}
    return {
        "pool_pre_ping": settings.DB_POOL_PRE_PING,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "echo": settings.DEBUG,
    }


# Create engine with connection pooling
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

# Session factory; objects stay readable after commit for response building
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI endpoints.

    Usage:
        @router.get("/stats")
        def stats(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Dependency returning the session factory itself.

    The submission limiter runs its counts concurrently, one session per
    count, so it needs the factory rather than a single request session.
    """
    return SessionLocal


def init_db(
    retries: int | None = None,
    delay: float | None = None,
    bind=None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Create tables, retrying while the database is still coming up.

    Returns False once every attempt has failed; the caller decides
    whether that is fatal.
    """
    # Register models on Base.metadata
    import app.models  # noqa: F401

    retries = settings.DB_CONNECT_RETRIES if retries is None else retries
    delay = settings.DB_CONNECT_RETRY_DELAY if delay is None else delay
    target = engine if bind is None else bind

    for attempt in range(1, retries + 1):
        try:
            Base.metadata.create_all(bind=target)
            logger.info(
                "Database ready",
                extra={"event": "db_ready", "attempt": attempt},
            )
            return True
        except Exception as exc:
            logger.warning(
                "Database connection attempt %s/%s failed: %s",
                attempt,
                retries,
                exc,
                extra={"event": "db_connect_retry"},
            )
            if attempt < retries:
                sleep(delay)

    logger.error(
        "Database unavailable after %s attempts",
        retries,
        extra={"event": "db_unavailable"},
    )
    return False
