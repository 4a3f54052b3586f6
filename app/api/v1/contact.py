"""
Contact form endpoints.

Public endpoints receive and inspect submissions; the admin endpoints
(analytics, dead-lettered notifications) are for the site owner and require
the admin API key.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
from pydantic import EmailStr, TypeAdapter, ValidationError

from app.api.deps import get_contact_service
from app.core.config import settings
from app.core.rate_limiter import check_request_throttle, get_client_ip
from app.core.sanitizer import mask_email, mask_ip
from app.core.security import require_admin
from app.schemas.contact import (
    ContactAnalyticsResponse,
    ContactHealthResponse,
    ContactRequest,
    ContactResponse,
    FailedNotificationsResponse,
    SubmissionStatsResponse,
    validate_public_ip,
)
from app.services.contact_service import ContactService
from app.workers.dlq import peek_failures

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()

SUCCESS_MESSAGE = "Thank you for your message! We'll get back to you soon."
RATE_LIMIT_MESSAGE = (
    "Too many submissions. Please wait before sending another message."
)
SAVE_FAILED_MESSAGE = "Something went wrong. Please try again later."

_email_adapter = TypeAdapter(EmailStr)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or uuid4().hex


@router.post(
    "/submit",
    response_model=ContactResponse,
    summary="Submit the contact form",
    dependencies=[Depends(check_request_throttle)],
)
async def submit_contact(
    payload: ContactRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: ContactService = Depends(get_contact_service),
) -> ContactResponse:
    """Screen, rate-limit, score and store a contact submission."""
    request_id = _request_id(request)
    client_ip = get_client_ip(request)

    # Bots get the same answer as people so they learn nothing
    if service.is_honeypot_filled(payload):
        logger.warning(
            "Honeypot triggered ip=%s",
            mask_ip(client_ip),
            extra={"event": "contact_honeypot", "request_id": request_id},
        )
        return ContactResponse(message=SUCCESS_MESSAGE, request_id=request_id)

    if service.is_too_fast(payload):
        logger.warning(
            "Form submitted too fast ip=%s",
            mask_ip(client_ip),
            extra={"event": "contact_too_fast", "request_id": request_id},
        )
        return ContactResponse(message=SUCCESS_MESSAGE, request_id=request_id)

    limit = await service.check_limit(payload.email, client_ip)
    if limit.is_over_limit:
        logger.warning(
            "Contact submission rejected by limiter email=%s ip=%s error=%s",
            mask_email(payload.email),
            mask_ip(client_ip),
            limit.error,
            extra={"event": "contact_rate_limited", "request_id": request_id},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=RATE_LIMIT_MESSAGE,
        )

    try:
        outcome = await service.submit(
            request_id,
            payload,
            client_ip,
            request.headers.get("user-agent"),
            background_tasks,
        )
    except Exception as exc:
        logger.error(
            "Contact submission save failed id=%s error=%s",
            request_id,
            exc,
            extra={"event": "contact_save_failed", "request_id": request_id},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SAVE_FAILED_MESSAGE,
        ) from exc

    logger.info(
        "AUDIT: Contact request accepted id=%s spam=%s delivery_path=%s",
        request_id,
        outcome.score.is_spam,
        outcome.delivery_path,
        extra={
            "event": "contact_request_accepted",
            "request_id": request_id,
            "delivery_path": outcome.delivery_path,
        },
    )

    return ContactResponse(message=SUCCESS_MESSAGE, request_id=request_id)


@router.get(
    "/stats",
    response_model=SubmissionStatsResponse,
    summary="Submission counts for an email and IP",
    dependencies=[Depends(check_request_throttle)],
)
async def submission_stats(
    email: str = Query(..., max_length=255),
    ip_address: str = Query(..., max_length=45),
    service: ContactService = Depends(get_contact_service),
) -> SubmissionStatsResponse:
    try:
        email = _email_adapter.validate_python(email.strip().lower())
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Valid email is required",
        )
    try:
        ip_address = validate_public_ip(ip_address)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    limit = await service.stats_for(email, ip_address)
    if limit.error:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to retrieve submission statistics",
        )

    return SubmissionStatsResponse(
        email_count=limit.email_count,
        ip_count=limit.ip_count,
        remaining=service.remaining(limit),
    )


@router.get(
    "/health",
    response_model=ContactHealthResponse,
    summary="Contact service health",
)
async def contact_health(
    service: ContactService = Depends(get_contact_service),
) -> ContactHealthResponse:
    database_ok = await service.database_ok()
    return ContactHealthResponse(
        success=database_ok,
        status="healthy" if database_ok else "degraded",
        database="connected" if database_ok else "disconnected",
        email="configured" if settings.email_configured else "not_configured",
        timestamp=datetime.now(timezone.utc),
    )


@admin_router.get(
    "/analytics",
    response_model=ContactAnalyticsResponse,
    summary="Submission analytics",
    dependencies=[Depends(require_admin)],
)
async def contact_analytics(
    hours: int = Query(24, ge=1, le=24 * 30),
    service: ContactService = Depends(get_contact_service),
) -> ContactAnalyticsResponse:
    """Totals, spam and blocked counts, and distinct senders over the period."""
    try:
        stats = await service.analytics(hours)
    except Exception as exc:
        logger.error("Contact analytics failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to retrieve analytics",
        ) from exc

    return ContactAnalyticsResponse(
        period_hours=hours,
        total_submissions=stats.total_submissions,
        spam_submissions=stats.spam_submissions,
        blocked_submissions=stats.blocked_submissions,
        spam_rate=stats.spam_rate,
        unique_emails=stats.unique_emails,
        unique_ips=stats.unique_ips,
    )


@admin_router.get(
    "/failed-notifications",
    response_model=FailedNotificationsResponse,
    summary="Dead-lettered notification emails",
    dependencies=[Depends(require_admin)],
)
def failed_notifications(
    limit: int = Query(20, ge=1, le=100),
) -> FailedNotificationsResponse:
    """Most recent notification tasks that exhausted their retries, newest first."""
    try:
        failures = peek_failures(limit)
    except Exception as exc:
        logger.error("Reading the notification dead-letter queue failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dead-letter queue unavailable",
        ) from exc

    return FailedNotificationsResponse(count=len(failures), failures=failures)
