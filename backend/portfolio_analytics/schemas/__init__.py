# backend/portfolio_analytics/schemas/__init__.py
"""
Pydantic schemas for API responses.

- errors: Error response formats
- performance: Performance reports, portfolio state, option vocabularies

Usage:
    from portfolio_analytics.schemas import PerformanceReportResponse
    from portfolio_analytics.schemas import ErrorDetail
"""

from portfolio_analytics.schemas.errors import (
    ErrorDetail,
    RequestValidationErrorDetail,
)
from portfolio_analytics.schemas.performance import (
    BenchmarkPointResponse,
    LensOptionsResponse,
    PerformanceReportResponse,
    PortfolioStateResponse,
    ReturnPointResponse,
    StateReportResponse,
    TotalsResponse,
)

__all__ = [
    # Errors
    "ErrorDetail",
    "RequestValidationErrorDetail",
    # Performance
    "BenchmarkPointResponse",
    "LensOptionsResponse",
    "PerformanceReportResponse",
    "PortfolioStateResponse",
    "ReturnPointResponse",
    "StateReportResponse",
    "TotalsResponse",
]
