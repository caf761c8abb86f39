"""Pydantic schemas for API responses."""
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from finance_analytics.scoring.credit import CreditScoreResult
from finance_analytics.scoring.forecast import ForecastResult
from finance_analytics.scoring.fraud import FraudAnalysisResult
from finance_analytics.scoring.insights import InsightResult, MonthlySnapshot
from finance_analytics.scoring.loan_readiness import LoanReadinessResult


class CreditRecommendationSchema(BaseModel):
    factor: str
    action: str
    impact_points: float
    details: dict = Field(default_factory=dict)


class CreditScoreResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/credit-score."""
    model_config = ConfigDict(protected_namespaces=())

    user_id: str
    score: int = Field(..., ge=300, le=850, description="Credit score (300-850)")
    rating: str
    model_version: str
    weighted_scores: dict[str, float]
    factors: dict = Field(..., description="Per-factor breakdown")
    recommendations: list[CreditRecommendationSchema]

    @classmethod
    def from_result(cls, user_id: str, result: CreditScoreResult) -> "CreditScoreResponse":
        data = asdict(result)
        return cls(user_id=user_id, **data)


class FraudAlertSchema(BaseModel):
    transaction_id: Optional[str]
    date: Optional[datetime]
    kind: str
    description: str
    risk: str
    amount: float
    status: str


class FraudPatternsSchema(BaseModel):
    locations: list[str]
    merchants: list[str]
    time_distribution: list[int]
    location_diversity: int
    merchant_diversity: int
    time_variance: float
    amount_variance: float


class SecurityRecommendationSchema(BaseModel):
    kind: str
    priority: str


class FraudAnalysisResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/fraud-analysis."""
    user_id: str
    risk_score: float = Field(..., ge=0, le=100, description="100 means nothing suspicious")
    alerts: list[FraudAlertSchema]
    patterns: FraudPatternsSchema
    security_recommendations: list[SecurityRecommendationSchema]

    @classmethod
    def from_result(cls, user_id: str, result: FraudAnalysisResult) -> "FraudAnalysisResponse":
        data = asdict(result)
        # Raw amounts stay internal
        data["patterns"].pop("amounts", None)
        return cls(user_id=user_id, **data)


class ForecastMonthSchema(BaseModel):
    month: int = Field(..., ge=1, le=12)
    month_name: str
    year: int
    income: float
    expenses: float
    savings: float
    balance: float


class ForecastResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/forecast."""
    user_id: str
    months: list[ForecastMonthSchema]
    cash_flow: dict
    summary: dict

    @classmethod
    def from_result(cls, user_id: str, result: ForecastResult) -> "ForecastResponse":
        return cls(user_id=user_id, **asdict(result))


class InsightSchema(BaseModel):
    kind: str
    type: str
    data: dict = Field(default_factory=dict)


class ActionSchema(BaseModel):
    kind: str
    difficulty: str
    data: dict = Field(default_factory=dict)


class InsightsResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/insights."""
    user_id: str
    insights: list[InsightSchema]
    actions: list[ActionSchema]
    metrics: dict

    @classmethod
    def from_result(cls, user_id: str, result: InsightResult) -> "InsightsResponse":
        return cls(user_id=user_id, **asdict(result))


class CategoryShareSchema(BaseModel):
    category: str
    amount: float
    percentage: float


class LargeExpenseSchema(BaseModel):
    id: Optional[str]
    name: Optional[str]
    category: Optional[str]
    amount: float
    date: Optional[datetime]


class SnapshotResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/snapshot."""
    user_id: str
    total_balance: float
    account_count: int
    monthly_income: float
    monthly_expenses: float
    expense_categories: list[CategoryShareSchema]
    large_expenses: list[LargeExpenseSchema]
    has_only_accounts: bool

    @classmethod
    def from_result(cls, user_id: str, result: MonthlySnapshot) -> "SnapshotResponse":
        data = asdict(result)
        data["large_expenses"] = [
            {
                "id": t.id,
                "name": t.name,
                "category": t.category,
                "amount": t.cost,
                "date": t.date,
            }
            for t in result.large_expenses
        ]
        return cls(user_id=user_id, **data)


class RepaymentCapacitySchema(BaseModel):
    monthly_income: float
    income_from_profile: bool
    monthly_expenses: float
    debt_to_income: float
    monthly_loan_payments: float
    max_monthly_payment: float = Field(..., ge=0)
    available_credit: float = Field(..., ge=0)


class LoanReadinessResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/loan-readiness."""
    user_id: str
    score: int = Field(..., ge=300, le=850)
    readiness: float = Field(..., ge=0, le=100)
    status: str
    components: dict[str, float]
    income: dict
    expenses: dict
    credit: dict
    cash_flow: dict
    capacity: RepaymentCapacitySchema

    @classmethod
    def from_result(cls, user_id: str, result: LoanReadinessResult) -> "LoanReadinessResponse":
        return cls(user_id=user_id, **asdict(result))


class FullReportResponse(BaseModel):
    """Response body for GET /v1/users/{user_id}/report."""
    user_id: str
    credit_score: CreditScoreResponse
    fraud_analysis: FraudAnalysisResponse
    insights: InsightsResponse
    forecast: ForecastResponse
