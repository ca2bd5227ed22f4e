# backend/portfolio_analytics/services/performance/service.py
"""
Performance Service orchestrator.

Main entry point of the performance engine. For one request it:
1. Validates the options (lens, period, granularity, benchmarks, policies)
2. Loads the user's ledger up to the end date (LedgerStoreProtocol)
3. Resolves the date range and builds the date grid
4. Partitions the ledger by lens
5. Loads the prices every group and benchmark needs (PriceStoreProtocol)
6. Builds one series per group, the "Portfolio" aggregate and, in
   non-aggregate mode, the per-asset breakdown
7. Overlays the benchmarks and collects warnings / missing prices

Architecture:
    PerformanceService
        ├── uses → LedgerStoreProtocol (SqlLedgerStore)
        ├── uses → PriceStoreProtocol (CachedPriceStore)
        ├── uses → grouping (Lens, group, union_slices, group_assets)
        ├── uses → TimeSeriesBuilder (FIFO + valuation + returns)
        └── uses → benchmarks (normalized overlay)

Nothing is cached here: every call builds its own resolver, slices and
FIFO state, so the service instance is safe to share across requests.

Usage:
    from portfolio_analytics.services.performance import PerformanceService

    service = PerformanceService(ledger_store, price_store)
    report = service.get_report(db, user_id=1, request=PerformanceRequest(lens="account"))
"""

import logging
from collections.abc import Iterable
from datetime import date, timedelta

from sqlalchemy.orm import Session

from portfolio_analytics.config import Settings, settings as default_settings
from portfolio_analytics.services.constants import (
    ALL_PERIOD_FALLBACK_YEARS,
    PERIOD_ALIASES,
    PERIOD_MONTHS,
    PORTFOLIO_GROUP_LABEL,
    VALID_PERIODS,
)
from portfolio_analytics.services.exceptions import (
    InvalidDateRangeError,
    InvalidGranularityError,
    InvalidPeriodError,
    ValidationError,
)
from portfolio_analytics.services.performance.benchmarks import (
    benchmark_tickers,
    build_benchmarks,
    parse_benchmarks,
)
from portfolio_analytics.services.performance.grouping import (
    Lens,
    available_keys,
    group,
    group_assets,
    union_slices,
)
from portfolio_analytics.services.performance.positions import (
    PositionReconstructor,
    reconcile_lots,
)
from portfolio_analytics.services.performance.prices import PriceResolver
from portfolio_analytics.services.performance.time_series import (
    TimeSeriesBuilder,
    build_date_grid,
    dedupe_warnings,
    totals_from_series,
)
from portfolio_analytics.services.performance.types import (
    ExternalBuyFlow,
    FlowScope,
    Granularity,
    GroupSlice,
    Ledger,
    PerformanceReport,
    PerformanceRequest,
    PortfolioState,
    StateReport,
)
from portfolio_analytics.services.performance.valuation import ValuationEngine
from portfolio_analytics.services.protocols import LedgerStoreProtocol, PriceStoreProtocol
from portfolio_analytics.utils.date_utils import shift_months, shift_years

logger = logging.getLogger(__name__)


# =============================================================================
# OPTION PARSING
# =============================================================================

def parse_period(period: str) -> str:
    """
    Canonical period name (upper case, aliases resolved).

    Raises:
        InvalidPeriodError: If the period is not recognized
    """
    normalized = period.strip().upper()
    normalized = PERIOD_ALIASES.get(normalized, normalized)
    if normalized not in VALID_PERIODS:
        raise InvalidPeriodError(period, VALID_PERIODS + list(PERIOD_ALIASES))
    return normalized


def parse_granularity(granularity: str) -> Granularity:
    try:
        return Granularity(granularity.strip().lower())
    except ValueError:
        raise InvalidGranularityError(granularity) from None


def parse_external_buy_flow(value: str) -> ExternalBuyFlow:
    try:
        return ExternalBuyFlow(value.strip().lower())
    except ValueError:
        valid = [option.value for option in ExternalBuyFlow]
        raise ValidationError(
            f"Invalid external_buy_flow: '{value}'. Valid options: {', '.join(valid)}",
            field="external_buy_flow",
            valid_options=valid,
        ) from None


def period_start(period: str, end_date: date, ledger: Ledger) -> date:
    """
    First date of a named period ending at end_date.

    YTD starts on January 1st of the end date's year. ALL starts at the
    earliest transaction (10 years back for an empty ledger).
    """
    if period == "YTD":
        return date(end_date.year, 1, 1)

    if period == "ALL":
        dates = [tx.date for tx in ledger.transactions]
        if dates:
            return min(dates)
        return shift_years(end_date, -ALL_PERIOD_FALLBACK_YEARS)

    return shift_months(end_date, -PERIOD_MONTHS[period])


class PerformanceService:
    """
    Builds performance reports and current-state snapshots.

    Attributes:
        _ledger_store: Reads transactions, lots, assets and accounts
        _price_store: Reads historical and current prices
        _settings: Engine defaults and policies
    """

    def __init__(
            self,
            ledger_store: LedgerStoreProtocol,
            price_store: PriceStoreProtocol,
            settings: Settings | None = None,
    ) -> None:
        self._ledger_store = ledger_store
        self._price_store = price_store
        self._settings = settings or default_settings

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve_date_range(
            self,
            ledger: Ledger,
            period: str | None = None,
            start_date: date | None = None,
            end_date: date | None = None,
            today: date | None = None,
    ) -> tuple[date, date]:
        """
        Resolve explicit dates / named period into (start, end).

        An explicit start_date wins over the period; end defaults to today.

        Raises:
            InvalidPeriodError: If the period is not recognized
            InvalidDateRangeError: If start is after end
        """
        end = end_date or today or date.today()

        if start_date is not None:
            start = start_date
        else:
            start = period_start(parse_period(period or self._settings.default_period), end, ledger)

        if start > end:
            raise InvalidDateRangeError(start, end)

        return start, end

    def get_report(
            self,
            db: Session,
            user_id: int,
            request: PerformanceRequest,
            today: date | None = None,
    ) -> PerformanceReport:
        """
        Build the full performance report for one request.

        Args:
            db: Database session
            user_id: Owner of the ledger
            request: Raw request options
            today: Reference date (defaults to date.today())

        Returns:
            PerformanceReport with series, totals, benchmarks, breakdowns,
            missing prices and warnings

        Raises:
            ValidationError: (and subclasses) for invalid options
            MarketDataError / CircuitBreakerOpen: When live prices are needed
                and the provider fails
        """
        today = today or date.today()

        # Step 1: Validate everything before touching the stores
        lens = Lens.parse(request.lens)
        granularity = parse_granularity(request.granularity or self._settings.default_granularity)
        external_buy_flow = parse_external_buy_flow(
            request.external_buy_flow or self._settings.external_buy_flow
        )
        benchmark_ids = parse_benchmarks(request.benchmarks)
        if request.start_date is None and request.period is not None:
            parse_period(request.period)
        if request.start_date and request.end_date and request.start_date > request.end_date:
            raise InvalidDateRangeError(request.start_date, request.end_date)

        end_date = request.end_date or today

        logger.info(
            f"Performance report requested: user={user_id}, lens={lens.value}, "
            f"period={request.period}, start={request.start_date}, end={end_date}, "
            f"granularity={granularity.value}, aggregate={request.aggregate}"
        )

        # Step 2: Ledger up to the end date
        ledger = self._ledger_store.load_ledger(db, user_id, end_date)

        # Step 3: Range and grid
        start_date, end_date = self.resolve_date_range(
            ledger,
            period=request.period,
            start_date=request.start_date,
            end_date=end_date,
            today=today,
        )
        grid = build_date_grid(start_date, end_date, granularity)

        # Step 4: Groups
        slices = group(ledger.transactions, ledger.lots, lens, request.selected_values, ledger)

        # Step 5: Prices for every asset in a selected group, plus benchmarks
        tickers = self._tickers_for(slices.values(), ledger)
        tickers.update(benchmark_tickers(benchmark_ids))
        resolver = self._load_prices(db, sorted(tickers), start_date, end_date, today)

        # Step 6: Series
        builder = TimeSeriesBuilder(
            tickers=self._ticker_map(ledger),
            external_buy_flow=external_buy_flow,
            irr_fallback=self._settings.irr_fallback,
        )

        report = PerformanceReport(
            lens=lens.value,
            aggregate=request.aggregate,
            start_date=start_date,
            end_date=end_date,
            granularity=granularity,
            dates=grid,
        )

        for label, slice_ in slices.items():
            report.series[label] = builder.build(slice_, lens.scope, grid, resolver)
            report.totals[label] = totals_from_series(report.series[label])

        if request.aggregate:
            if request.include_portfolio and len(slices) >= 2:
                portfolio = union_slices(slices.values())
                report.series[PORTFOLIO_GROUP_LABEL] = builder.build(portfolio, lens.scope, grid, resolver)
                report.totals[PORTFOLIO_GROUP_LABEL] = totals_from_series(report.series[PORTFOLIO_GROUP_LABEL])
        else:
            for label, slice_ in slices.items():
                asset_series = {}
                asset_totals = {}
                for ticker, asset_slice in group_assets(slice_, ledger).items():
                    asset_series[ticker] = builder.build(asset_slice, FlowScope.SLEEVE, grid, resolver)
                    asset_totals[ticker] = totals_from_series(asset_series[ticker])
                report.asset_series[label] = asset_series
                report.asset_totals[label] = asset_totals

        # Step 7: Benchmarks, reconciliation, diagnostics
        report.benchmarks = build_benchmarks(benchmark_ids, grid, resolver)

        warnings = list(builder.warnings)
        if end_date >= today and ledger.lots:
            warnings.extend(self._reconcile(ledger))

        report.warnings = dedupe_warnings(warnings)
        report.missing_prices = resolver.missing_tickers

        logger.info(
            f"Performance report built: user={user_id}, lens={lens.value}, "
            f"groups={len(slices)}, dates={len(grid)}, "
            f"missing_prices={len(report.missing_prices)}, warnings={len(report.warnings)}"
        )
        return report

    def get_current_state(
            self,
            db: Session,
            user_id: int,
            lens: str = "total",
            selected_values: list[str] | None = None,
            as_of: date | None = None,
            today: date | None = None,
    ) -> StateReport:
        """
        Instantaneous PortfolioState per group at as_of (default today).

        Uses the current-price feed when as_of is today and
        Settings.use_current_prices is on.
        """
        today = today or date.today()
        as_of = as_of or today
        parsed_lens = Lens.parse(lens)

        logger.info(f"Portfolio state requested: user={user_id}, lens={parsed_lens.value}, as_of={as_of}")

        ledger = self._ledger_store.load_ledger(db, user_id, as_of)
        slices = group(ledger.transactions, ledger.lots, parsed_lens, selected_values, ledger)

        tickers = self._tickers_for(slices.values(), ledger)
        resolver = self._load_prices(db, sorted(tickers), as_of, as_of, today)

        reconstructor = PositionReconstructor()
        engine = ValuationEngine(self._ticker_map(ledger), reconstructor)

        report = StateReport(lens=parsed_lens.value, as_of=as_of)
        for label, slice_ in slices.items():
            if slice_.is_empty:
                report.states[label] = PortfolioState.empty(as_of)
                continue
            report.states[label] = engine.value_at(as_of, slice_.transactions, parsed_lens.scope, resolver)

        warnings: list[str] = []
        if as_of >= today and ledger.lots:
            warnings.extend(self._reconcile(ledger))
        report.warnings = dedupe_warnings(warnings)
        report.missing_prices = resolver.missing_tickers
        return report

    def get_lens_values(
            self,
            db: Session,
            user_id: int,
            lens: str,
            today: date | None = None,
    ) -> list[str]:
        """
        Group keys the lens produces for the user's ledger (selection choices).

        Raises:
            InvalidLensError: If the lens is not recognized
        """
        parsed_lens = Lens.parse(lens)
        ledger = self._ledger_store.load_ledger(db, user_id, today or date.today())
        return available_keys(parsed_lens, ledger)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _ticker_map(ledger: Ledger) -> dict[int, str]:
        return {asset_id: asset.ticker for asset_id, asset in ledger.assets.items()}

    @staticmethod
    def _tickers_for(slices: Iterable[GroupSlice], ledger: Ledger) -> set[str]:
        tickers: set[str] = set()
        for slice_ in slices:
            for tx in slice_.transactions:
                ticker = ledger.ticker_for(tx.asset_id)
                if ticker:
                    tickers.add(ticker)
        return tickers

    def _load_prices(
            self,
            db: Session,
            tickers: list[str],
            start_date: date,
            end_date: date,
            today: date,
    ) -> PriceResolver:
        """
        Fetch what the resolver needs for [start_date, end_date].

        The range is widened by PRICE_LOOKBACK_DAYS so the first grid dates
        can forward fill across weekends and holidays. Tickers with no close
        at or before start_date inside that window are seeded with their
        latest earlier close, however old.
        """
        if not tickers:
            return PriceResolver({}, today=today)

        lookback_start = start_date - timedelta(days=self._settings.price_lookback_days)
        series = self._price_store.get_price_series(db, tickers, lookback_start, end_date)

        unseeded = [
            ticker for ticker in tickers
            if not any(p.date <= start_date for p in series.get(ticker, []))
        ]
        if unseeded:
            seeds = self._price_store.get_latest_on_or_before(db, unseeded, start_date)
            for ticker, seed in seeds.items():
                series[ticker] = [seed, *series.get(ticker, [])]
            logger.debug(f"Seeded {len(seeds)}/{len(unseeded)} sparse series before {start_date}")

        current_prices = {}
        if self._settings.use_current_prices and end_date >= today:
            current_prices = self._price_store.get_current_prices(db, tickers)

        logger.debug(
            f"Loaded prices for {len(series)}/{len(tickers)} tickers "
            f"({lookback_start} to {end_date}), {len(current_prices)} current quotes"
        )
        return PriceResolver(series, current_prices=current_prices, today=today)

    @staticmethod
    def _reconcile(ledger: Ledger) -> list[str]:
        """Cross-check a full replay against the ledger's current lots."""
        reconstructor = PositionReconstructor()
        replayed = reconstructor.reconstruct(ledger.transactions)
        return reconcile_lots(replayed, ledger.lots)
