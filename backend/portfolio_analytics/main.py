# backend/portfolio_analytics/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers (service exceptions -> HTTP)
- Registers the performance router
- Defines global endpoints (health checks)
"""

import logging

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session

from portfolio_analytics.config import settings
from portfolio_analytics.database import get_db, check_database_health
from portfolio_analytics.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from portfolio_analytics.routers import performance_router
from portfolio_analytics.schemas.errors import ErrorDetail, RequestValidationErrorDetail
from portfolio_analytics.services.exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    AuthenticationError,
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    CircuitBreakerOpen,
)
from portfolio_analytics.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Portfolio performance engine: FIFO-replayed valuations, IRR and TWR by lens",
    version="0.1.0",
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)

# Outermost, so every log line of the request carries the id
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Starlette picks the handler of the most specific class in the exception's
# MRO, so subclasses registered here win over ServiceError / MarketDataError.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle invalid request options (400)."""
    logger.warning(f"Validation error: {exc}")
    details = {}
    if exc.field:
        details["field"] = exc.field
    if exc.valid_options:
        details["valid_options"] = exc.valid_options
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details or None,
        ).model_dump(),
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Handle missing or unknown user context (401)."""
    logger.warning(f"Authentication error: {exc}")
    return JSONResponse(
        status_code=401,
        content=ErrorDetail(
            error="AuthenticationError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.warning(f"Not found: {exc}")
    details = None
    if exc.resource_type:
        details = {"resource_type": exc.resource_type, "resource_id": exc.resource_id}
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error="NotFoundError",
            message=str(exc),
            details=details,
        ).model_dump(),
    )


@app.exception_handler(TickerNotFoundError)
async def ticker_not_found_handler(request: Request, exc: TickerNotFoundError) -> JSONResponse:
    """Handle ticker not found on market data provider (404)."""
    logger.warning(f"Ticker not found on provider: {exc.ticker}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error="TickerNotFoundError",
            message=str(exc),
            details={"ticker": exc.ticker},
        ).model_dump(),
    )


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
    """Handle market data provider unavailable (503)."""
    logger.error(f"Provider unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="ProviderUnavailableError",
            message=str(exc),
            details={"provider": exc.provider} if exc.provider else None,
        ).model_dump(),
    )


@app.exception_handler(RateLimitError)
async def provider_rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Handle provider rate limit (429)."""
    logger.warning(f"Provider rate limit exceeded: {exc}")
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=429,
        content=ErrorDetail(
            error="RateLimitError",
            message=str(exc),
            details={"retry_after": exc.retry_after} if exc.retry_after else None,
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={
                "breaker_name": exc.breaker_name,
                "retry_after": retry_after,
            },
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Handle generic market data errors (500)."""
    logger.error(f"Market data error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="MarketDataError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="ServiceError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert FastAPI's {"detail": ...} body to the ErrorDetail format."""
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_types.get(exc.status_code, "HTTPError"),
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query parameters (422), e.g. start_date=yesterday."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=RequestValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(performance_router)  # /performance/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

def _provider_check() -> dict:
    """Circuit-breaker view of the market data provider (non-critical)."""
    from portfolio_analytics.dependencies import get_market_data_provider

    provider = get_market_data_provider()
    breaker = provider.circuit_breaker
    if breaker is None:
        return {"status": "healthy", "critical": False, "provider": provider.name}

    stats = breaker.stats
    return {
        "status": "unhealthy" if breaker.is_open else "healthy",
        "critical": False,
        "provider": provider.name,
        "circuit_breaker_state": breaker.state.value,
        "total_calls": stats.total_calls,
        "failed_calls": stats.failed_calls,
        "rejected_calls": stats.rejected_calls,
    }


@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Comprehensive health check endpoint.

    **Response Status Codes:**
    - 200: healthy, or degraded when the market data circuit is open
    - 503: database unhealthy
    """
    database = check_database_health(db)
    checks = {"database": {**database, "critical": True}}

    try:
        checks["market_data"] = _provider_check()
    except Exception as e:
        logger.warning(f"Market data health check failed: {e}")
        checks["market_data"] = {"status": "unknown", "critical": False, "error": str(e)}

    if database["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "unhealthy", "checks": checks})

    overall_status = "healthy" if checks["market_data"]["status"] == "healthy" else "degraded"
    return {"status": overall_status, "checks": checks}


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """
    Liveness probe: 200 whenever the process is running.

    Does NOT check dependencies; use /health/ready for that.
    """
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """
    Readiness probe.

    503 when the database is unreachable. An open market data circuit does
    not make the instance unready (cached prices still serve reports) but
    is reported.
    """
    database = check_database_health(db)
    if database["status"] != "healthy":
        logger.error(f"Readiness check failed: {database.get('error')}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": "Database unavailable",
            },
        )

    return {"status": "ready", "market_data": _provider_check()["status"]}
