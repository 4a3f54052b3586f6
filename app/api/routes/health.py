"""
Health probes for the contact API.

- "" - service metadata
- /detailed - database, notification broker and mail transport status
- /ready - readiness (database reachable)
- /live - liveness
- /db - database only
- /celery - notification broker only, with dead-letter depth
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api import deps
from app.core.celery_runtime import resolve_celery_broker_url
from app.core.config import settings

router = APIRouter(tags=["health"])

Status = Literal["healthy", "degraded", "unhealthy"]


class ServiceHealth(BaseModel):
    status: Status
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class DetailedHealthResponse(BaseModel):
    status: Status
    version: str
    environment: str
    timestamp: datetime
    services: Dict[str, ServiceHealth]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def check_database(db: Session) -> ServiceHealth:
    """Submissions cannot be stored or limited without the database."""
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        return ServiceHealth(status="unhealthy", message=str(e)[:100])
    return ServiceHealth(status="healthy", latency_ms=_elapsed_ms(start))


def check_redis() -> ServiceHealth:
    """Broker check. A down broker only moves email delivery in-process."""
    start = time.perf_counter()
    try:
        client = redis.from_url(resolve_celery_broker_url(), socket_timeout=2)
        client.ping()
        dead_lettered = client.llen(settings.NOTIFICATION_DLQ_KEY)
    except Exception as e:
        return ServiceHealth(
            status="degraded", message=f"Redis unavailable: {str(e)[:50]}"
        )
    return ServiceHealth(
        status="healthy",
        latency_ms=_elapsed_ms(start),
        message=f"{dead_lettered} notification(s) in dead-letter queue",
    )


def check_email() -> ServiceHealth:
    # Configuration only; the transport itself is verified once at startup
    if settings.email_configured and settings.admin_recipient:
        return ServiceHealth(status="healthy")
    return ServiceHealth(status="degraded", message="SMTP not configured")


def _overall(services: Dict[str, ServiceHealth]) -> Status:
    statuses = {s.status for s in services.values()}
    for level in ("unhealthy", "degraded"):
        if level in statuses:
            return level
    return "healthy"


def _probe_response(result: ServiceHealth) -> JSONResponse:
    status_code = 200 if result.status == "healthy" else 503
    return JSONResponse(content=result.model_dump(), status_code=status_code)


@router.get("", summary="Service status")
async def service_status() -> Dict[str, Any]:
    """Service metadata for load balancers and uptime checks."""
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
)
def detailed_health_check(
    db: Session = Depends(deps.get_db),
) -> DetailedHealthResponse:
    services = {
        "database": check_database(db),
        "redis": check_redis(),
        "email": check_email(),
    }
    return DetailedHealthResponse(
        status=_overall(services),
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc),
        services=services,
    )


@router.get("/ready", summary="Readiness probe")
def readiness_probe(db: Session = Depends(deps.get_db)) -> Dict[str, Any]:
    return {"ready": check_database(db).status == "healthy"}


@router.get("/live", summary="Liveness probe")
async def liveness_probe() -> Dict[str, Any]:
    return {"alive": True, "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/db", summary="Database health check")
def db_health_check(db: Session = Depends(deps.get_db)):
    return _probe_response(check_database(db))


@router.get("/celery", summary="Notification broker health check")
def celery_health_check():
    return _probe_response(check_redis())
