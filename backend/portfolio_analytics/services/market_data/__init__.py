# backend/portfolio_analytics/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Abstract interface for market data providers (base.py)
- Yahoo Finance implementation (yahoo.py)
- Database-cached price store used by the performance engine (price_store.py)

Usage:
    # Provider interface and data classes
    from portfolio_analytics.services.market_data import (
        MarketDataProvider,
        DailyClose,
        HistoricalPricesResult,
    )

    # Yahoo Finance provider
    from portfolio_analytics.services.market_data import YahooFinanceProvider

    # Price store (PriceStoreProtocol)
    from portfolio_analytics.services.market_data import CachedPriceStore

Architecture:
    MarketDataProvider (ABC)
    └── YahooFinanceProvider (concrete, circuit breaker + retries)

    CachedPriceStore
    └── Reads historical_prices first
    └── Fetches misses through the provider on a worker pool
"""

# Base provider interface and data classes
from portfolio_analytics.services.market_data.base import (
    MarketDataProvider,
    DailyClose,
    HistoricalPricesResult,
)
# Price store
from portfolio_analytics.services.market_data.price_store import CachedPriceStore
# Concrete implementations
from portfolio_analytics.services.market_data.yahoo import YahooFinanceProvider

__all__ = [
    # Abstract interface
    "MarketDataProvider",
    # Data classes
    "DailyClose",
    "HistoricalPricesResult",
    # Concrete implementations
    "YahooFinanceProvider",
    # Price store
    "CachedPriceStore",
]
