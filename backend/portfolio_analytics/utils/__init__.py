# backend/portfolio_analytics/utils/__init__.py
"""
Cross-cutting utilities for the portfolio performance API.

- logging: Logging configuration with request context
- context: Correlation ID and caller user ID storage
- date_utils: Month arithmetic and date grids

Usage:
    from portfolio_analytics.utils import setup_logging, get_logger
    from portfolio_analytics.utils import get_correlation_id, set_correlation_id
    from portfolio_analytics.utils.date_utils import month_ends_between
"""

from portfolio_analytics.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    get_current_user_id,
    set_current_user_id,
    clear_current_user_id,
)
from portfolio_analytics.utils.logging import setup_logging, get_logger

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "get_current_user_id",
    "set_current_user_id",
    "clear_current_user_id",
]
