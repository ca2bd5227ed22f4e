# backend/portfolio_analytics/middleware/__init__.py
"""
Middleware components for the portfolio performance API.

This package contains ASGI middleware for:
- Correlation ID tracking for request tracing
- Rate limiting for API protection

Usage:
    from portfolio_analytics.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from portfolio_analytics.middleware.correlation import CorrelationIdMiddleware
from portfolio_analytics.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_ANALYTICS,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_ANALYTICS",
]
