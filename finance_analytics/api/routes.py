"""API route handlers for the finance analytics service."""
from fastapi import APIRouter, Request

from finance_analytics.logging import get_logger, set_request_context
from finance_analytics.schemas import (
    CreditScoreResponse,
    ForecastResponse,
    FraudAnalysisResponse,
    FullReportResponse,
    InsightsResponse,
    LoanReadinessResponse,
    SnapshotResponse,
)
from finance_analytics.services.analysis import AnalysisService

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["analysis"])


def _bind_user(request: Request, user_id: str) -> None:
    request_id = getattr(request.state, "request_id", "unknown")
    set_request_context(request_id, user_id=user_id)


@router.get("/users/{user_id}/credit-score", response_model=CreditScoreResponse)
async def get_credit_score(user_id: str, request: Request):
    """
    Calculate the user's alternative credit score.

    Scores run from 300 to 850 and combine payment history, income
    stability, financial behavior and account health. Returns the factor
    breakdown and recommendations ranked by potential impact.
    """
    _bind_user(request, user_id)
    logger.info("credit_score_requested", user_id=user_id)

    result = await AnalysisService().credit_score(user_id)
    return CreditScoreResponse.from_result(user_id, result)


@router.get("/users/{user_id}/fraud-analysis", response_model=FraudAnalysisResponse)
async def get_fraud_analysis(user_id: str, request: Request):
    """
    Scan the user's transactions for fraud signals.

    Returns a 0-100 risk score (100 means nothing suspicious), any alerts
    raised and the location/merchant/time patterns observed.
    """
    _bind_user(request, user_id)
    logger.info("fraud_analysis_requested", user_id=user_id)

    result = await AnalysisService().fraud_analysis(user_id)
    return FraudAnalysisResponse.from_result(user_id, result)


@router.get("/users/{user_id}/forecast", response_model=ForecastResponse)
async def get_forecast(user_id: str, request: Request):
    """Project the user's balance for the next six months."""
    _bind_user(request, user_id)
    logger.info("forecast_requested", user_id=user_id)

    result = await AnalysisService().forecast(user_id)
    return ForecastResponse.from_result(user_id, result)


@router.get("/users/{user_id}/insights", response_model=InsightsResponse)
async def get_insights(user_id: str, request: Request):
    """Top spending insights and recommended actions, with the metrics behind them."""
    _bind_user(request, user_id)
    logger.info("insights_requested", user_id=user_id)

    result = await AnalysisService().insights(user_id)
    return InsightsResponse.from_result(user_id, result)


@router.get("/users/{user_id}/loan-readiness", response_model=LoanReadinessResponse)
async def get_loan_readiness(user_id: str, request: Request):
    """
    Assess readiness for a new loan.

    Returns a 300-850 readiness score, its four component scores and the
    monthly payment the user can afford under the 36% debt-service rule.
    """
    _bind_user(request, user_id)
    logger.info("loan_readiness_requested", user_id=user_id)

    result = await AnalysisService().loan_readiness(user_id)
    return LoanReadinessResponse.from_result(user_id, result)


@router.get("/users/{user_id}/snapshot", response_model=SnapshotResponse)
async def get_snapshot(user_id: str, request: Request):
    _bind_user(request, user_id)
    logger.info("snapshot_requested", user_id=user_id)

    result = await AnalysisService().snapshot(user_id)
    return SnapshotResponse.from_result(user_id, result)


@router.get("/users/{user_id}/report", response_model=FullReportResponse)
async def get_full_report(user_id: str, request: Request):
    """Run every analysis over a single fetch of the user's data."""
    _bind_user(request, user_id)
    logger.info("report_requested", user_id=user_id)

    report = await AnalysisService().full_report(user_id)
    return FullReportResponse(
        user_id=user_id,
        credit_score=CreditScoreResponse.from_result(user_id, report.credit_score),
        fraud_analysis=FraudAnalysisResponse.from_result(user_id, report.fraud_analysis),
        insights=InsightsResponse.from_result(user_id, report.insights),
        forecast=ForecastResponse.from_result(user_id, report.forecast),
    )
