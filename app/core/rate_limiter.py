"""
=============================================================================
REQUEST THROTTLE
=============================================================================
Per-IP sliding-window throttle in front of the contact endpoints.

This complements the persisted submission limiter in
app.services.submission_limiter: the throttle is cheap, in-memory and
per-process, and stops bursts before any database work happens.

Features:
- Sliding window (default 10 requests / 15 minutes per IP)
- Trusted-proxy validation for X-Forwarded-For

Usage:
    from app.core.rate_limiter import check_request_throttle

    @router.post("/endpoint", dependencies=[Depends(check_request_throttle)])
    def endpoint():
        ...
=============================================================================
"""

import ipaddress
import logging
import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, List

from fastapi import HTTPException, Request, status

from app.core.config import settings
from app.core.sanitizer import mask_ip

logger = logging.getLogger(__name__)

# Parsed trusted proxy networks (built once at import)
_trusted_networks: List[ipaddress.IPv4Network | ipaddress.IPv6Network] = []


def _build_trusted_networks() -> None:
    """Parse TRUSTED_PROXIES setting into network objects."""
    global _trusted_networks
    nets = []
    for entry in settings.TRUSTED_PROXIES:
        try:
            nets.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Invalid TRUSTED_PROXIES entry ignored: %s", entry)
    _trusted_networks = nets


_build_trusted_networks()

_throttle_lock = Lock()
_throttle_windows: Dict[str, Deque[float]] = {}
_last_sweep = 0.0


def _is_trusted_proxy(ip_str: str) -> bool:
    """Check if an IP belongs to the configured trusted proxy ranges."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in net for net in _trusted_networks)


def get_client_ip(request: Request) -> str:
    """Extract client IP, trusting X-Forwarded-For only from trusted proxies."""
    direct_ip = request.client.host if request.client else "unknown"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and _is_trusted_proxy(direct_ip):
        parts = [p.strip() for p in forwarded.split(",") if p.strip()]
        # Rightmost untrusted IP is the real client
        for ip in reversed(parts):
            if not _is_trusted_proxy(ip):
                return ip
        if parts:
            return parts[0]

    return direct_ip


def _sweep_expired(window_start: float) -> None:
    """Drop every key whose newest request has left the window. Lock held."""
    stale = [key for key, window in _throttle_windows.items() if window[-1] <= window_start]
    for key in stale:
        del _throttle_windows[key]


def register_request(
    key: str,
    limit: int,
    window_seconds: float,
    now: float | None = None,
) -> bool:
    """Record one request for key; False when the window is already full."""
    global _last_sweep

    now = time.time() if now is None else now
    window_start = now - window_seconds

    with _throttle_lock:
        # Clients that never come back would otherwise keep their entry
        if now - _last_sweep >= window_seconds:
            _sweep_expired(window_start)
            _last_sweep = now

        window = _throttle_windows.pop(key, None) or deque()
        while window and window[0] <= window_start:
            window.popleft()

        allowed = len(window) < limit
        if allowed:
            window.append(now)
        if window:
            _throttle_windows[key] = window
        return allowed


async def check_request_throttle(request: Request) -> None:
    """Dependency applying the per-IP sliding window to the contact routes."""
    client_ip = get_client_ip(request)
    allowed = register_request(
        f"ip:{client_ip}",
        settings.REQUEST_THROTTLE_LIMIT,
        settings.REQUEST_THROTTLE_WINDOW_SECONDS,
    )
    if not allowed:
        logger.warning(
            "Request throttle hit ip=%s",
            mask_ip(client_ip),
            extra={"event": "request_throttled"},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
        )


def reset_rate_limiter_state() -> None:
    """Clear throttle state. Intended for tests."""
    global _last_sweep

    with _throttle_lock:
        _throttle_windows.clear()
        _last_sweep = 0.0

