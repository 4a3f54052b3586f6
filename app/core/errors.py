"""
Global exception handlers for secure, user-friendly error responses.

- Unhandled exceptions are logged with their traceback server-side and
  answered with a sanitized 500.
- HTTP errors keep their status and carry {"success": false, "detail"}.
- Request validation errors are answered with a 400 carrying the first
  failure message, plus the full list outside production.

Usage:
    # In main.py
    from app.core.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
import traceback
from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings

logger = logging.getLogger(__name__)


def _first_validation_message(errors: List[Dict[str, Any]]) -> str:
    if not errors:
        return "Invalid request"
    message = str(errors[0].get("msg") or "Invalid request")
    # pydantic prefixes custom ValueError messages
    return message.removeprefix("Value error, ")


def _public_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": _first_validation_message([error]),
        }
        for error in errors
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        errors = list(exc.errors())
        logger.warning(
            "Validation failed on %s %s fields=%s",
            request.method,
            request.url.path,
            [".".join(str(p) for p in e.get("loc", ())[1:]) for e in errors],
            extra={"event": "validation_failed"},
        )
        content: Dict[str, Any] = {
            "success": False,
            "detail": _first_validation_message(errors),
        }
        if settings.ENVIRONMENT != "production":
            content["errors"] = _public_errors(errors)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}:\n"
            f"{traceback.format_exc()}"
        )

        if settings.DEBUG:
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "detail": "Internal Server Error",
                    "error_type": type(exc).__name__,
                    "message": str(exc),
                    "path": request.url.path,
                },
            )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "detail": "Internal Server Error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )
