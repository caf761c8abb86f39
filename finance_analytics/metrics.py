"""
Prometheus Metrics for the Finance Analytics Service.

This module defines all metrics exposed at the /metrics endpoint.
Metrics are categorized into:

1. Analysis Metrics - For Product/Risk teams
   - Analyses by engine, credit score and risk score distributions, alerts

2. Technical Metrics - For Engineering/SRE teams
   - Latencies, repository error rates, HTTP traffic
"""
from typing import Optional

from prometheus_client import Counter, Histogram, Info

# =============================================================================
# SERVICE INFO
# =============================================================================

SERVICE_INFO = Info(
    "finance_analytics_service",
    "Service information"
)
SERVICE_INFO.info({
    "version": "0.1.0",
    "service": "finance-analytics",
})

# =============================================================================
# ANALYSIS METRICS
# =============================================================================

# Counter: Analyses run by engine and outcome
ANALYSIS_TOTAL = Counter(
    "finance_analysis_total",
    "Total analyses run",
    ["engine", "outcome"]  # engine: credit, fraud, insights, forecast, snapshot, loan_readiness, report. outcome: success/error
)

# Histogram: Credit score distribution
CREDIT_SCORE = Histogram(
    "finance_credit_score",
    "Distribution of computed credit scores",
    buckets=[300, 400, 500, 600, 650, 700, 750, 800, 850]
)

# Counter: Credit scores by rating
CREDIT_RATING = Counter(
    "finance_credit_rating_total",
    "Credit scores grouped by rating",
    ["rating"]  # excellent, good, fair, poor
)

# Histogram: Fraud risk score distribution
RISK_SCORE = Histogram(
    "finance_risk_score",
    "Distribution of fraud risk scores (100 = nothing suspicious)",
    buckets=[10, 25, 50, 60, 70, 80, 90, 95, 100]
)

# Counter: Fraud alerts raised by risk level
FRAUD_ALERTS = Counter(
    "finance_fraud_alerts_total",
    "Fraud alerts raised",
    ["risk"]  # High, Medium
)

# Counter: Forecast outlooks
FORECAST_OUTLOOK = Counter(
    "finance_forecast_outlook_total",
    "Forecasts grouped by outlook",
    ["outlook"]  # excellent, improvable, negative
)

# =============================================================================
# TECHNICAL METRICS
# =============================================================================

# Histogram: Analysis latency (fetch + compute)
ANALYSIS_LATENCY = Histogram(
    "finance_analysis_latency_seconds",
    "Time to run an analysis end-to-end",
    ["engine"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Histogram: Repository fetch latency
REPOSITORY_FETCH_LATENCY = Histogram(
    "finance_repository_fetch_latency_seconds",
    "Time to fetch documents from the repository",
    ["resource"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Counter: Repository failures
REPOSITORY_FETCH_FAILURES = Counter(
    "finance_repository_fetch_failures_total",
    "Total repository fetch failures",
    ["resource", "error_type"]  # timeout, connection_error, http_error, invalid_payload
)

# Counter: Repository successes
REPOSITORY_FETCH_SUCCESS = Counter(
    "finance_repository_fetch_success_total",
    "Total successful repository fetches",
    ["resource"]
)

# =============================================================================
# HTTP METRICS (Standard)
# =============================================================================

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

HTTP_REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def record_analysis(engine: str, success: bool, latency_seconds: float) -> None:
    """Record the outcome and latency of one analysis."""
    outcome = "success" if success else "error"
    ANALYSIS_TOTAL.labels(engine=engine, outcome=outcome).inc()
    ANALYSIS_LATENCY.labels(engine=engine).observe(latency_seconds)


def record_credit_score(score: int, rating: str) -> None:
    CREDIT_SCORE.observe(score)
    CREDIT_RATING.labels(rating=rating).inc()


def record_fraud_analysis(risk_score: float, alert_risks: list[str]) -> None:
    """
    Record a fraud analysis result.

    Args:
        risk_score: The 0-100 risk score
        alert_risks: Risk level of each alert raised ("High" or "Medium")
    """
    RISK_SCORE.observe(risk_score)
    for risk in alert_risks:
        FRAUD_ALERTS.labels(risk=risk).inc()


def record_forecast(outlook: str) -> None:
    FORECAST_OUTLOOK.labels(outlook=outlook).inc()


def record_repository_fetch(
    resource: str,
    success: bool,
    latency_seconds: float,
    error_type: Optional[str] = None,
) -> None:
    """Record repository fetch metrics."""
    REPOSITORY_FETCH_LATENCY.labels(resource=resource).observe(latency_seconds)

    if success:
        REPOSITORY_FETCH_SUCCESS.labels(resource=resource).inc()
    else:
        REPOSITORY_FETCH_FAILURES.labels(resource=resource, error_type=error_type or "unknown").inc()
