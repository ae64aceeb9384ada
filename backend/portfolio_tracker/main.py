# backend/portfolio_tracker/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines health endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from portfolio_tracker.config import settings
from portfolio_tracker.database import check_database_health
from portfolio_tracker.dependencies import clear_service_caches, get_db_engine, get_valuation_engine
from portfolio_tracker.middleware import CorrelationIdMiddleware
from portfolio_tracker.routers import holdings_router, portfolio_router, stocks_router
from portfolio_tracker.schemas.errors import ErrorDetail, ValidationErrorDetail
from portfolio_tracker.services.exceptions import (
    FetchError,
    NotFoundError,
    ServiceError,
    StorageError,
    UnreachableError,
    UpstreamError,
    ValidationError,
)
from portfolio_tracker.services.valuation import ValuationEngine
from portfolio_tracker.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    clear_service_caches()


app = FastAPI(
    title=settings.app_name,
    description="Portfolio valuation API: holdings, refresh, performance history",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Last added = first executed; correlation ID wraps everything
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions carry no HTTP knowledge; these handlers map them
# to status codes and the ErrorDetail body.
# =============================================================================

def _error_response(status_code: int, exc: ServiceError, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle domain validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(400, exc, {"field": exc.field} if exc.field else None)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.warning(f"{exc.resource_type or 'Resource'} not found: {exc.resource_id}")
    return _error_response(404, exc, {"resource_id": exc.resource_id})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """Handle unusable provider responses (502)."""
    logger.error(f"Upstream error: {exc}")
    return _error_response(502, exc, {"provider": exc.provider, "status_code": exc.status_code})


@app.exception_handler(UnreachableError)
async def unreachable_error_handler(request: Request, exc: UnreachableError) -> JSONResponse:
    """Handle unreachable providers (503)."""
    logger.error(f"Provider unreachable: {exc}")
    return _error_response(503, exc, {"provider": exc.provider})


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    """Handle other fetch failures (502)."""
    logger.error(f"Fetch error: {exc}")
    return _error_response(502, exc, {"provider": exc.provider})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Handle storage failures that reached the API (500)."""
    logger.error(f"Storage error: {exc}")
    return _error_response(500, exc, {"operation": exc.operation})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Catch-all for service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, exc)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPExceptions (including routing 404/405) in the ErrorDetail format."""
    error_types = {
        400: "BadRequestError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        422: "ValidationError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_types.get(exc.status_code, "HTTPError"),
            message=str(exc.detail) if exc.detail else "An error occurred",
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors (422) in a flat format."""
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
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(holdings_router)  # /holdings/*
app.include_router(portfolio_router)  # /portfolio/*
app.include_router(stocks_router)  # /stocks/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
def root():
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
def health_check(engine: ValuationEngine = Depends(get_valuation_engine)):
    """
    Health check.

    - 200 "healthy": database reachable, last refresh clean
    - 200 "degraded": database reachable, last refresh used fallbacks
    - 503 "unhealthy": database unreachable
    """
    database = check_database_health(get_db_engine())
    refresh_status = engine.status()

    checks = {
        "database": {**database, "critical": True},
        "quotes": {
            "status": "degraded" if refresh_status.degraded else "healthy",
            "critical": False,
            "exchange_rate_source": refresh_status.exchange_rate_source.value,
            "failed_symbols": list(refresh_status.failed_symbols),
        },
    }

    if database["status"] != "healthy":
        return JSONResponse(status_code=503, content={"status": "unhealthy", "checks": checks})

    overall = "degraded" if refresh_status.degraded else "healthy"
    return {"status": overall, "checks": checks}
