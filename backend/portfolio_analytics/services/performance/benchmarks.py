# backend/portfolio_analytics/services/performance/benchmarks.py
"""
Benchmark overlay.

Benchmarks are plotted next to the portfolio as normalized percentage
returns on the report's own date grid:

    value_pct_i = (price_i / price_0 - 1) x 100

Simple benchmarks are proxied by an ETF (sp500 -> SPY, ...). Composite
benchmarks (6040 = 60% sp500 + 40% tlt) weight the normalized returns of
their components (weights apply to returns, not prices).

Prices go through the same forward-fill resolver as the portfolio, so a
benchmark without prices yields zeros and shows up in missing_prices.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from portfolio_analytics.services.constants import (
    BENCHMARK_TICKERS,
    COMPOSITE_BENCHMARKS,
    HUNDRED,
    ZERO,
)
from portfolio_analytics.services.exceptions import UnknownBenchmarkError
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.types import BenchmarkPoint

logger = logging.getLogger(__name__)


def valid_benchmarks() -> list[str]:
    return [*BENCHMARK_TICKERS.keys(), *COMPOSITE_BENCHMARKS.keys()]


def parse_benchmarks(identifiers: Iterable[str] | None) -> list[str]:
    """
    Normalize benchmark identifiers (case-insensitive, duplicates dropped).

    Raises:
        UnknownBenchmarkError: On the first unknown identifier
    """
    parsed: list[str] = []
    for raw in identifiers or []:
        identifier = raw.strip().lower()
        if not identifier:
            continue
        if identifier not in BENCHMARK_TICKERS and identifier not in COMPOSITE_BENCHMARKS:
            raise UnknownBenchmarkError(raw, valid_benchmarks())
        if identifier not in parsed:
            parsed.append(identifier)
    return parsed


def benchmark_tickers(identifiers: Iterable[str]) -> list[str]:
    """Proxy tickers needed to draw the given benchmarks, sorted."""
    tickers: set[str] = set()
    for identifier in identifiers:
        if identifier in COMPOSITE_BENCHMARKS:
            tickers.update(BENCHMARK_TICKERS[part] for part in COMPOSITE_BENCHMARKS[identifier])
        else:
            tickers.add(BENCHMARK_TICKERS[identifier])
    return sorted(tickers)


def _normalized_returns(ticker: str, grid: Sequence[date], resolver: PriceResolver) -> list[Decimal]:
    prices = [resolver.resolve(ticker, d) for d in grid]
    base = prices[0] if prices else None

    if base is None or base <= 0:
        return [ZERO for _ in grid]

    return [
        (price / base - 1) * HUNDRED if price is not None else ZERO
        for price in prices
    ]


def benchmark_series(
        identifier: str,
        grid: Sequence[date],
        resolver: PriceResolver,
) -> list[BenchmarkPoint]:
    """
    Normalized return series of one benchmark on the grid.

    Args:
        identifier: Parsed benchmark identifier
        grid: Report dates
        resolver: Price lookup holding the proxy tickers' prices

    Returns:
        One BenchmarkPoint per grid date
    """
    if identifier in COMPOSITE_BENCHMARKS:
        values = [ZERO for _ in grid]
        for part, weight in COMPOSITE_BENCHMARKS[identifier].items():
            component = _normalized_returns(BENCHMARK_TICKERS[part], grid, resolver)
            values = [total + weight * value for total, value in zip(values, component)]
    else:
        values = _normalized_returns(BENCHMARK_TICKERS[identifier], grid, resolver)

    return [BenchmarkPoint(date=d, value_pct=v) for d, v in zip(grid, values)]


def build_benchmarks(
        identifiers: Iterable[str],
        grid: Sequence[date],
        resolver: PriceResolver,
) -> dict[str, list[BenchmarkPoint]]:
    """benchmark id -> series, in request order."""
    series = {identifier: benchmark_series(identifier, grid, resolver) for identifier in identifiers}
    if series:
        logger.debug(f"Built {len(series)} benchmark series over {len(grid)} dates")
    return series
