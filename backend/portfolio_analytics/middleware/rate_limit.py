# backend/portfolio_analytics/middleware/rate_limit.py
"""
Rate limiting for the performance API.

Report requests are the expensive ones: a cold cache can fan out into one
Yahoo Finance fetch per ticker. slowapi limits them per caller:

- Key: "user:<X-User-Id>" when the header is present, else the client IP
  (X-Forwarded-For / X-Real-IP only from trusted proxies)
- Storage: in-memory (single instance); pass storage_uri for Redis
- Limits: services/constants.py (RATE_LIMIT_*)

Usage:
    from portfolio_analytics.middleware.rate_limit import limiter, RATE_LIMIT_ANALYTICS

    @router.get("/reports")
    @limiter.limit(RATE_LIMIT_ANALYTICS)
    def get_report(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from portfolio_analytics.config import settings
from portfolio_analytics.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_ANALYTICS,
)

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
DEFAULT_RETRY_AFTER_SECONDS = 60


def _is_trusted_proxy(request: Request) -> bool:
    """True when forwarded headers on this request may be believed."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Client address, honouring proxy headers only from trusted proxies.

    Prevents a client from picking its own rate-limit bucket by setting
    X-Forwarded-For.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # First entry is the original client
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return get_remote_address(request)


def _rate_limit_key(request: Request) -> str:
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if user_id.isdigit():
        return f"user:{user_id}"
    return f"ip:{_get_client_ip(request)}"


# =============================================================================
# LIMITER INSTANCE
# =============================================================================

limiter = Limiter(
    key_func=_rate_limit_key,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=not settings.is_test,
)


# =============================================================================
# RATE LIMIT EXCEEDED HANDLER
# =============================================================================

def _retry_after(exc: RateLimitExceeded) -> int:
    """Window length of the exceeded limit, in seconds."""
    limit = getattr(exc, "limit", None)
    item = getattr(limit, "limit", None)
    if item is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    return int(item.get_expiry())


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """
    429 response in the API's ErrorDetail shape, with Retry-After.
    """
    retry_after = _retry_after(exc)
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(f"Rate limit exceeded for {_rate_limit_key(request)}: {limit_info}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {
                "retry_after": retry_after,
            },
        },
        headers={
            "Retry-After": str(retry_after),
        },
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_ANALYTICS",
]
