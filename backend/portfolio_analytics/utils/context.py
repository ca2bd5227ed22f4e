# backend/portfolio_analytics/utils/context.py
"""
Request-scoped context for the portfolio performance API.

Two values travel with every request:
- the correlation ID (set by CorrelationIdMiddleware, read by the log filter)
- the caller's user ID (set by the user-context dependency, read by
  services that want to tag their log lines)

Both live in ContextVars, so they follow the request across await points
and worker threads started with contextvars.copy_context().

Usage:
    from portfolio_analytics.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")
    get_correlation_id()  # "abc-123"
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_user_id_var: ContextVar[int | None] = ContextVar("user_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, or None outside a request."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current request.

    Called by middleware at the start of each request.
    """
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID at the end of a request."""
    _correlation_id_var.set(None)


# =============================================================================
# USER ID
# =============================================================================

def get_current_user_id() -> int | None:
    return _user_id_var.get()


def set_current_user_id(user_id: int) -> None:
    _user_id_var.set(user_id)


def clear_current_user_id() -> None:
    _user_id_var.set(None)
