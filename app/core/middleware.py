import logging
import time
import uuid
from typing import Iterable, List

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("contact_api.http")

# Max latency budgets per endpoint, in seconds
SLO_THRESHOLDS = {
    "/api/contact/submit": 2.000,
    "/api/contact/stats": 0.500,
    "/api/health": 0.200,
}


def expand_origin_variants(origins: Iterable[str]) -> List[str]:
    """Allow both the bare and the www. form of every https origin."""
    expanded: List[str] = []
    for origin in origins:
        candidates = [origin]
        if origin.startswith("https://www."):
            candidates.append(origin.replace("https://www.", "https://", 1))
        elif origin.startswith("https://"):
            candidates.append(origin.replace("https://", "https://www.", 1))
        for candidate in candidates:
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body exceeds max_body_bytes."""

    def __init__(self, app, max_body_bytes: int = 10 * 1024):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"detail": "Invalid Content-Length header."},
                )
            if declared > self.max_body_bytes:
                logger.warning(
                    "BODY_TOO_LARGE | path=%s | bytes=%d | limit=%d",
                    request.url.path,
                    declared,
                    self.max_body_bytes,
                )
                return JSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={"detail": "Request body too large."},
                )
        return await call_next(request)


class LatencyMonitorMiddleware(BaseHTTPMiddleware):
    """
    Logs a warning when a request exceeds its latency budget.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        budget = SLO_THRESHOLDS.get(request.url.path.rstrip("/"))
        if budget and process_time > budget:
            logger.warning(
                f"SLO_BREACH | Endpoint: {request.url.path} | Duration: {process_time:.4f}s | Budget: {budget:.3f}s"
            )

        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add X-Request-ID header for request tracing.

    If the client sends X-Request-ID, it is preserved.
    Otherwise, a new UUID is generated.

    The request ID is:
    - Available in request.state.request_id for logging
    - Returned in response headers for client correlation
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        logger.info(
            f"REQUEST | id={request_id} | method={request.method} | path={request.url.path}"
        )

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        return response
