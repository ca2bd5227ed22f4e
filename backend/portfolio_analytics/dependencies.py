# backend/portfolio_analytics/dependencies.py
"""
Dependency injection module for FastAPI services.

This module provides singleton service instances that are shared across
all requests. The performance engine keeps no per-request state on these
objects, so sharing them is safe; sharing the provider also shares its
circuit breaker, so one outage trips the breaker for every request.

Services are lazily initialized on first use to avoid import-time side effects.

Usage in routers:
    from portfolio_analytics.dependencies import (
        get_performance_service,
        get_current_user,
    )

    @router.get("/")
    def read_report(
        service: PerformanceService = Depends(get_performance_service),
        current_user: User = Depends(get_current_user),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from portfolio_analytics.database import get_db
from portfolio_analytics.models import User
from portfolio_analytics.services.exceptions import AuthenticationError
from portfolio_analytics.services.ledger_store import SqlLedgerStore
from portfolio_analytics.services.market_data.price_store import CachedPriceStore
from portfolio_analytics.services.market_data.yahoo import YahooFinanceProvider
from portfolio_analytics.services.performance.service import PerformanceService

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_market_data_provider (no deps)
# 2. get_price_store (depends on provider)
# 3. get_ledger_store (no deps)
# 4. get_performance_service (depends on both stores)


@lru_cache(maxsize=1)
def get_market_data_provider() -> YahooFinanceProvider:
    """
    Get the singleton market data provider instance.

    Shares the provider (and its circuit breaker) across all requests,
    so rate limits and outages are tracked globally.
    """
    logger.debug("Initializing singleton YahooFinanceProvider")
    return YahooFinanceProvider()


@lru_cache(maxsize=1)
def get_price_store() -> CachedPriceStore:
    logger.debug("Initializing singleton CachedPriceStore")
    return CachedPriceStore(provider=get_market_data_provider())


@lru_cache(maxsize=1)
def get_ledger_store() -> SqlLedgerStore:
    logger.debug("Initializing singleton SqlLedgerStore")
    return SqlLedgerStore()


@lru_cache(maxsize=1)
def get_performance_service() -> PerformanceService:
    """
    Get the singleton PerformanceService instance.

    Wires the SQLAlchemy ledger store and the cached price store.
    """
    logger.debug("Initializing singleton PerformanceService")
    return PerformanceService(
        ledger_store=get_ledger_store(),
        price_store=get_price_store(),
    )


# =============================================================================
# USER CONTEXT
# =============================================================================


def get_current_user(
    x_user_id: Annotated[str | None, Header()] = None,
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the requesting user from the X-User-Id header.

    Authentication itself happens upstream (gateway); this service only
    trusts the forwarded user id.

    Raises:
        AuthenticationError: Header missing or malformed, unknown or
            inactive user (mapped to 401 in main.py)
    """
    if x_user_id is None or not x_user_id.strip():
        raise AuthenticationError("Missing X-User-Id header")

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise AuthenticationError(f"Invalid X-User-Id header: '{x_user_id}'") from None

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    return user


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Clear all service caches.

    Useful for testing or when you need to reset state.
    """
    get_market_data_provider.cache_clear()
    get_price_store.cache_clear()
    get_ledger_store.cache_clear()
    get_performance_service.cache_clear()
    logger.info("Cleared all service singleton caches")
