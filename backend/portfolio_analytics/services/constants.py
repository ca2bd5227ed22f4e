# backend/portfolio_analytics/services/constants.py
"""
Centralized constants for the performance engine and its collaborators.

Single source of truth for numeric tolerances, calendar conventions,
request vocabularies (periods, granularities, benchmarks) and rate limits.
Deployment knobs (defaults a user may want to change per environment)
live in config.Settings instead.

Usage:
    from portfolio_analytics.services.constants import (
        DAYS_PER_YEAR,
        IRR_MAX_NEWTON_ITERATIONS,
        BENCHMARK_TICKERS,
    )
"""

from decimal import Decimal


# =============================================================================
# CALENDAR CONSTANTS
# =============================================================================

# Average Gregorian year length, used to convert day counts to years for IRR
# and return annualization
DAYS_PER_YEAR: float = 365.25

# Period "ALL" starts this many years back when the ledger has no transactions
ALL_PERIOD_FALLBACK_YEARS: int = 10


# =============================================================================
# IRR SOLVER SETTINGS
# =============================================================================

# Newton-Raphson: iteration cap and convergence threshold on |NPV|
IRR_MAX_NEWTON_ITERATIONS: int = 1000
IRR_NPV_TOLERANCE: float = 1e-8

# Newton is abandoned when |dNPV/drate| falls below this (division by ~0)
IRR_MIN_DERIVATIVE: float = 1e-12

# Newton guesses must stay strictly inside this band
IRR_NEWTON_LOWER_BOUND: float = -0.99
IRR_NEWTON_UPPER_BOUND: float = 50.0

# Bisection fallback bracket and iteration cap
IRR_BISECTION_LOWER_BOUND: float = -0.99
IRR_BISECTION_UPPER_BOUND: float = 20.0
IRR_MAX_BISECTION_ITERATIONS: int = 200

# Starting guess when the flow-ratio heuristic is undefined
IRR_DEFAULT_GUESS: float = 0.1


# =============================================================================
# DECIMAL PRECISION
# =============================================================================

ZERO: Decimal = Decimal("0")
HUNDRED: Decimal = Decimal("100")

# Output quantization: money to cents, percentages to basis points / 100
MONEY_QUANTUM: Decimal = Decimal("0.01")
PERCENT_QUANTUM: Decimal = Decimal("0.01")

# Quantities below this are treated as closed positions (float dust from imports)
QUANTITY_EPSILON: Decimal = Decimal("0.00000001")


# =============================================================================
# GROUP LABELS
# =============================================================================

TOTAL_GROUP_LABEL: str = "Total"
PORTFOLIO_GROUP_LABEL: str = "Portfolio"
UNTAGGED_GROUP_LABEL: str = "Untagged"


# =============================================================================
# REQUEST VOCABULARIES
# =============================================================================

# Named periods -> months to go back from the end date.
# "YTD" and "ALL" are resolved specially by the service.
PERIOD_MONTHS: dict[str, int] = {
    "1M": 1,
    "3M": 3,
    "6M": 6,
    "1Y": 12,
    "3Y": 36,
    "5Y": 60,
}
PERIOD_ALIASES: dict[str, str] = {
    "INCEPTION": "ALL",
    "MAX": "ALL",
}
VALID_PERIODS: list[str] = [*PERIOD_MONTHS.keys(), "YTD", "ALL"]


# =============================================================================
# BENCHMARKS
# =============================================================================

# Benchmark identifier -> ETF ticker used as its price proxy
BENCHMARK_TICKERS: dict[str, str] = {
    "sp500": "SPY",
    "nasdaq": "QQQ",
    "tlt": "TLT",
    "vxus": "VXUS",
}

# Composite benchmarks: identifier -> {component identifier: weight}
# Weights apply to normalized returns, not to prices
COMPOSITE_BENCHMARKS: dict[str, dict[str, Decimal]] = {
    "6040": {"sp500": Decimal("0.6"), "tlt": Decimal("0.4")},
}


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Failures before the provider circuit opens
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds before a half-open probe is allowed
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Probe calls allowed while half-open
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3

# Sliding window (seconds) for counting failures, 0 counts all
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# EXTERNAL API TIMEOUT SETTINGS
# =============================================================================

EXTERNAL_API_TIMEOUT_SECONDS: int = 10


# =============================================================================
# RATE LIMITS (slowapi syntax: "<count>/<period>")
# =============================================================================

RATE_LIMIT_DEFAULT: str = "120/minute"
RATE_LIMIT_ANALYTICS: str = "30/minute"
RATE_LIMIT_HEALTH: str = "60/minute"
