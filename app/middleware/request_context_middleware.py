# =====================================================
# FILE: app/middleware/request_context_middleware.py
# Resolves client IP / user agent once per request
# =====================================================

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import time
import logging
from typing import Callable

logger = logging.getLogger(__name__)


def normalize_ip(ip: str) -> str:
    """Strip the IPv4-mapped IPv6 prefix (::ffff:1.2.3.4 -> 1.2.3.4)"""
    ip = ip.strip()
    if ip.lower().startswith("::ffff:"):
        return ip[7:]
    return ip


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request
    """
    # Check for forwarded IP
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return normalize_ip(forwarded.split(",")[0])

    # Check for real IP
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return normalize_ip(real_ip)

    # Cloudflare
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return normalize_ip(cf_ip)

    # Fall back to direct connection
    if request.client:
        return normalize_ip(request.client.host)

    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Stores `client_ip` and `user_agent` on request.state for the audit trail
    """

    EXCLUDED_ENDPOINTS = [
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()

        request.state.client_ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent", "")
        request.state.user_agent = user_agent[:500] if user_agent else None  # Limit length

        response = await call_next(request)

        if not any(request.url.path.startswith(p) for p in self.EXCLUDED_ENDPOINTS):
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({round((time.time() - start_time) * 1000, 2)} ms, {request.state.client_ip})"
            )
        return response
