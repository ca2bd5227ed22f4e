# backend/portfolio_analytics/services/market_data/yahoo.py
"""
Yahoo Finance market data provider implementation.

Implements the MarketDataProvider interface using the yfinance library.
Yahoo Finance is a free data source suitable for personal use.

Key features:
- Daily closes as pandas DataFrames, converted to DailyClose records
- Latest quote from the most recent daily bar
- Error classification (not found / rate limited / unavailable)
- Retry mechanism inherited from base class
- Circuit breaker so a Yahoo outage fails fast instead of timing out on
  every ticker of every report

Limitations:
- Rate limits (not officially documented, but exist)
- Quotes may be delayed (15-20 minutes for some markets)
"""

import logging
import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import pandas as pd
import yfinance as yf

from portfolio_analytics.services.circuit_breaker import CircuitBreaker
from portfolio_analytics.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    EXTERNAL_API_TIMEOUT_SECONDS,
)
from portfolio_analytics.services.exceptions import (
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
)
from portfolio_analytics.services.market_data.base import (
    MarketDataProvider,
    DailyClose,
    HistoricalPricesResult,
)

logger = logging.getLogger(__name__)


class YahooFinanceProvider(MarketDataProvider):
    """
    Yahoo Finance implementation of MarketDataProvider.

    Configuration:
        timeout: API request timeout in seconds (default: 10)
        circuit_breaker: Breaker guarding Yahoo calls (a default one is built)

    Retry Behavior (inherited from MarketDataProvider):
        - Retries on ProviderUnavailableError and RateLimitError
        - Does NOT retry on TickerNotFoundError or CircuitBreakerOpen
        - Uses exponential backoff: 1s -> 2s -> 4s
        - Maximum 3 attempts

    Every attempt passes through the breaker, so repeated outages open it
    and later attempts are rejected immediately.

    Example:
        provider = YahooFinanceProvider(timeout=15)

        result = provider.get_historical_prices("SPY", date(2024, 1, 1), date(2024, 12, 31))
        print(f"Fetched {result.days_fetched} days of data")

        provider.get_latest_price("SPY")  # Decimal("...")
    """

    def __init__(
            self,
            timeout: int = EXTERNAL_API_TIMEOUT_SECONDS,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        """
        Initialize the Yahoo Finance provider.

        Args:
            timeout: Request timeout in seconds
            circuit_breaker: Optional breaker (tests inject their own)
        """
        self._timeout = timeout
        self._breaker = circuit_breaker or CircuitBreaker(
            name="yahoo-finance",
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
            excluded_exceptions=(TickerNotFoundError,),
        )
        logger.info(f"YahooFinanceProvider initialized (timeout={timeout}s)")

    @property
    def name(self) -> str:
        return "yahoo"

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    # =========================================================================
    # HISTORICAL PRICE METHODS
    # =========================================================================

    def get_historical_prices(
            self,
            ticker: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        """
        Fetch daily closes from Yahoo Finance.

        Args:
            ticker: Trading symbol (e.g., "SPY")
            start_date: Start date (inclusive)
            end_date: End date (inclusive)

        Returns:
            HistoricalPricesResult (empty prices if Yahoo has no bars in range)

        Raises:
            TickerNotFoundError: If ticker not found
            ProviderUnavailableError: If Yahoo Finance unavailable
            RateLimitError: If Yahoo rate-limits us
            CircuitBreakerOpen: If the circuit is open
        """
        return self._execute_with_retry(
            self._guarded,
            self._fetch_historical_prices,
            ticker,
            start_date,
            end_date,
        )

    def _guarded(self, func, *args: Any) -> Any:
        """Run one attempt through the circuit breaker."""
        with self._breaker:
            return func(*args)

    def _fetch_historical_prices(
            self,
            ticker: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        """Internal method to fetch historical closes (one attempt)."""
        ticker = ticker.strip().upper()

        logger.debug(f"Fetching historical prices for {ticker}: {start_date} to {end_date}")

        result = HistoricalPricesResult(
            ticker=ticker,
            from_date=start_date,
            to_date=end_date,
        )

        try:
            yf_ticker = yf.Ticker(ticker)

            # Yahoo Finance end date is exclusive, so add 1 day
            yahoo_end = end_date + timedelta(days=1)

            df = yf_ticker.history(
                start=start_date.isoformat(),
                end=yahoo_end.isoformat(),
                interval="1d",
                auto_adjust=False,  # Raw closes; dividends are ledger transactions
                timeout=self._timeout,
            )

            if df.empty:
                if not self._has_any_history(yf_ticker):
                    raise TickerNotFoundError(ticker=ticker, provider=self.name)

                logger.warning(f"No price data for {ticker} between {start_date} and {end_date}")
                return result

            prices = self._dataframe_to_closes(df)
            result.prices = prices

            if prices:
                result.actual_from_date = prices[0].date
                result.actual_to_date = prices[-1].date

            logger.debug(f"Fetched {len(prices)} days for {ticker}")
            return result

        except MarketDataError:
            raise
        except Exception as e:
            raise self._classify_error(ticker, e) from e

    # =========================================================================
    # CURRENT PRICE
    # =========================================================================

    def get_latest_price(self, ticker: str) -> Decimal | None:
        """
        Latest close (or intraday last) from the most recent daily bar.

        Raises:
            Same as get_historical_prices
        """
        return self._execute_with_retry(
            self._guarded,
            self._fetch_latest_price,
            ticker,
        )

    def _fetch_latest_price(self, ticker: str) -> Decimal | None:
        ticker = ticker.strip().upper()

        try:
            df = yf.Ticker(ticker).history(period="5d", interval="1d", timeout=self._timeout)
        except Exception as e:
            raise self._classify_error(ticker, e) from e

        if df.empty:
            raise TickerNotFoundError(ticker=ticker, provider=self.name)

        closes = self._dataframe_to_closes(df)
        if not closes:
            return None
        return closes[-1].close

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _has_any_history(self, yf_ticker: Any) -> bool:
        """An empty range is only "not found" when the ticker has no bars at all."""
        probe = yf_ticker.history(period="1mo", interval="1d", timeout=self._timeout)
        return not probe.empty

    def _classify_error(self, ticker: str, error: Exception) -> MarketDataError:
        error_str = str(error).lower()

        if "not found" in error_str or "no data" in error_str or "delisted" in error_str:
            return TickerNotFoundError(ticker=ticker, provider=self.name)

        if "rate limit" in error_str or "too many requests" in error_str:
            return RateLimitError(provider=self.name)

        logger.error(f"Yahoo Finance error for {ticker}: {error}")
        return ProviderUnavailableError(provider=self.name, reason=str(error))

    def _dataframe_to_closes(self, df: pd.DataFrame) -> list[DailyClose]:
        """
        Convert a yfinance history DataFrame into DailyClose records.

        Args:
            df: DataFrame indexed by Timestamp with Close / Adj Close columns

        Returns:
            Closes in date order, rows without a usable close skipped
        """
        closes = []

        for idx, row in df.sort_index().iterrows():
            price_date = idx.date() if hasattr(idx, "date") else idx
            close_price = self._to_decimal(row.get("Close"))

            if close_price is None or close_price <= 0:
                logger.warning(f"Skipping {price_date}: missing close price")
                continue

            closes.append(DailyClose(
                date=price_date,
                close=close_price,
                adjusted_close=self._to_decimal(row.get("Adj Close")),
            ))

        return closes

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return Decimal(str(value)).quantize(Decimal("0.00000001"))
        except (TypeError, ValueError):
            return None
