"""
Finance Analytics Service

A FastAPI-based service that turns a user's transaction history and bank
account balances into financial health analyses:

1. Alternative credit score (300-850) from payment history, income
   stability, financial behavior and account health
2. Fraud risk score (0-100) with alerts for high-risk merchants and
   unusually large amounts
3. Spending insights and recommended actions
4. A six-month balance forecast

Data lives in a document store behind a REST gateway. The service fetches a
fresh snapshot per request, analyzes it in memory and persists nothing.

Error Model:
------------
- Missing or malformed data is never an error: engines degrade to neutral
  outputs ("no data yet").
- Repository failures are the only real errors. They surface as a single
  502 "Analysis unavailable" response; retrying is up to the caller.
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from finance_analytics import metrics as service_metrics
from finance_analytics.api import router
from finance_analytics.config import settings
from finance_analytics.services.repository_client import RepositoryError
from finance_analytics.logging import (
    configure_logging,
    get_logger,
    set_request_context,
    clear_request_context,
    generate_request_id,
)

# Configure structured logging
configure_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "service_starting",
        service_name=settings.service_name,
        repository_api_base=settings.repository_api_base,
    )

    yield

    logger.info("service_stopping", service_name=settings.service_name)


app = FastAPI(
    title="Finance Analytics Service",
    description="Credit scoring, fraud detection, spending insights and balance forecasting",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request tracing, logging, and metrics.

    Sets up request context with:
    - request_id: Unique identifier for tracing
    - Timing for duration_ms calculation
    - Prometheus metrics collection
    """
    method = request.method
    path = request.url.path

    # Skip logging/metrics for health and metrics endpoints
    if path in ("/health", "/metrics"):
        return await call_next(request)

    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_context(request_id)
    request.state.request_id = request_id

    start_time = time.perf_counter()

    logger.info("request_received", method=method, path=path)

    try:
        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        endpoint = _route_template(request)
        service_metrics.HTTP_REQUESTS.labels(
            method=method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()

        service_metrics.HTTP_REQUEST_LATENCY.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_ms / 1000)

        response.headers["X-Request-ID"] = request_id

        return response

    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.error(
            "request_failed",
            method=method,
            path=path,
            duration_ms=round(duration_ms, 2),
            error=str(e),
        )

        service_metrics.HTTP_REQUESTS.labels(
            method=method,
            endpoint=_route_template(request),
            status=500
        ).inc()

        raise

    finally:
        clear_request_context()


def _route_template(request: Request) -> str:
    """Route path with placeholders, so user ids don't explode label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError):
    """Report repository failures as a single summarized 502."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "repository_error",
        status_code=exc.status_code,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=502,
        content={"detail": f"Analysis unavailable: {exc.detail}"},
        headers={"X-Request-ID": request_id},
    )


# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok", "service": settings.service_name}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
