"""
Admin API key authentication.

The public contact endpoints are anonymous; only the analytics endpoints
require the admin key.

Usage:
    from app.core.security import require_admin

    @router.get("/admin-only", dependencies=[Depends(require_admin)])
    def admin_endpoint(): ...
"""

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader
from pydantic import SecretStr

from app.core.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,
    description="Admin API key for analytics endpoints",
)


def _get_secret_value(secret: Optional[SecretStr]) -> Optional[str]:
    """Extract the string from a SecretStr, dropping stray .env quotes."""
    if secret is None:
        return None
    value = secret.get_secret_value()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


async def require_admin(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency that ensures the request carries the admin API key.

    Raises:
        HTTPException: 403 if the key is missing, invalid, or no admin key
        is configured.
    """
    if not api_key:
        logger.warning("Admin request without API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API Key. Include 'X-API-Key' header.",
        )

    admin_key = _get_secret_value(settings.ADMIN_API_KEY)
    if admin_key and secrets.compare_digest(api_key, admin_key):
        return api_key

    logger.warning(f"Invalid API key attempt: {api_key[:4]}...")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required"
    )
