# backend/portfolio_analytics/routers/__init__.py
"""
API routers for the portfolio performance API.

- performance: Performance reports, current state and option vocabularies
"""

from portfolio_analytics.routers.performance import router as performance_router

__all__ = [
    "performance_router",
]
