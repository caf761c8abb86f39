"""Analysis service: fetch, normalize, run an engine, record the outcome."""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from finance_analytics import metrics
from finance_analytics.logging import TimedOperation, get_logger, log_analysis
from finance_analytics.scoring import (
    DEFAULT_CREDIT_CONFIG,
    DEFAULT_FORECAST_CONFIG,
    DEFAULT_FRAUD_CONFIG,
    DEFAULT_INSIGHT_CONFIG,
    DEFAULT_LOAN_READINESS_CONFIG,
    BankAccount,
    CreditModelConfig,
    CreditScoreResult,
    ForecastConfig,
    ForecastResult,
    FraudAnalysisResult,
    FraudDetectionConfig,
    InsightConfig,
    InsightResult,
    LoanReadinessConfig,
    LoanReadinessResult,
    MonthlySnapshot,
    Transaction,
    UserFinancialProfile,
    analyze_fraud_patterns,
    analyze_loan_readiness,
    calculate_credit_score,
    generate_forecast,
    generate_spending_insights,
    normalize_accounts,
    normalize_profile,
    normalize_transactions,
    summarize_current_month,
)
from finance_analytics.services.repository_client import RepositoryClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserSnapshot:
    """Everything fetched for one user for one analysis call."""
    user_id: str
    transactions: list[Transaction]
    accounts: list[BankAccount]
    profile: UserFinancialProfile


@dataclass(frozen=True)
class FullReport:
    user_id: str
    credit_score: CreditScoreResult
    fraud_analysis: FraudAnalysisResult
    insights: InsightResult
    forecast: ForecastResult


class AnalysisService:
    """
    Service for running financial analyses for a user.

    This service orchestrates:
    1. Fetching transactions, accounts and the profile from the repository
    2. Normalizing raw documents into typed records
    3. Running the requested engine with its configuration
    4. Logging and recording metrics for the outcome

    Every call works on its own freshly fetched snapshot. Nothing is cached
    or shared between calls.
    """

    def __init__(
        self,
        repository_client: Optional[RepositoryClient] = None,
        credit_config: CreditModelConfig = DEFAULT_CREDIT_CONFIG,
        fraud_config: FraudDetectionConfig = DEFAULT_FRAUD_CONFIG,
        insight_config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
        forecast_config: ForecastConfig = DEFAULT_FORECAST_CONFIG,
        loan_readiness_config: LoanReadinessConfig = DEFAULT_LOAN_READINESS_CONFIG,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the analysis service.

        Args:
            repository_client: Repository client (defaults to new instance)
            credit_config: Credit model weights and thresholds
            fraud_config: Fraud alert rules and penalties
            insight_config: Insight and action thresholds
            forecast_config: Forecast horizon and outlook thresholds
            loan_readiness_config: Loan readiness weights and repayment rules
            clock: Source of "today" for date-relative analyses
        """
        self.repository_client = repository_client or RepositoryClient()
        self.credit_config = credit_config
        self.fraud_config = fraud_config
        self.insight_config = insight_config
        self.forecast_config = forecast_config
        self.loan_readiness_config = loan_readiness_config
        self.clock = clock

    async def load_snapshot(self, user_id: str, include_profile: bool = True) -> UserSnapshot:
        """
        Fetch and normalize a user's data.

        Raises:
            RepositoryError: If any fetch fails
        """
        fetches = [
            self.repository_client.fetch_transactions(user_id),
            self.repository_client.fetch_accounts(user_id),
        ]
        if include_profile:
            fetches.append(self.repository_client.fetch_user_profile(user_id))

        results = await asyncio.gather(*fetches)
        raw_profile = results[2] if include_profile else None

        return UserSnapshot(
            user_id=user_id,
            transactions=normalize_transactions(results[0]),
            accounts=normalize_accounts(results[1]),
            profile=normalize_profile(raw_profile),
        )

    async def credit_score(self, user_id: str) -> CreditScoreResult:
        with self._analysis("credit", user_id) as op:
            snapshot = await self.load_snapshot(user_id, include_profile=False)
            result = calculate_credit_score(
                snapshot.transactions, snapshot.accounts, self.credit_config, today=self.clock()
            )

        metrics.record_credit_score(result.score, result.rating)
        self._log(op, snapshot, "credit", score=result.score, rating=result.rating)
        return result

    async def fraud_analysis(self, user_id: str) -> FraudAnalysisResult:
        with self._analysis("fraud", user_id) as op:
            snapshot = await self.load_snapshot(user_id, include_profile=False)
            # Repository order (most recent first) is the stable order the analyzer expects
            result = analyze_fraud_patterns(snapshot.transactions, self.fraud_config)

        metrics.record_fraud_analysis(result.risk_score, [a.risk for a in result.alerts])
        self._log(op, snapshot, "fraud", risk_score=round(result.risk_score, 2), alert_count=len(result.alerts))
        return result

    async def insights(self, user_id: str) -> InsightResult:
        with self._analysis("insights", user_id) as op:
            snapshot = await self.load_snapshot(user_id)
            result = generate_spending_insights(
                snapshot.transactions,
                snapshot.profile,
                snapshot.accounts,
                self.insight_config,
                today=self.clock(),
            )

        self._log(op, snapshot, "insights", insight_count=len(result.insights), action_count=len(result.actions))
        return result

    async def forecast(self, user_id: str) -> ForecastResult:
        with self._analysis("forecast", user_id) as op:
            snapshot = await self.load_snapshot(user_id)
            result = generate_forecast(
                snapshot.transactions,
                snapshot.accounts,
                snapshot.profile.monthly_income,
                self.forecast_config,
                today=self.clock(),
            )

        metrics.record_forecast(result.summary.outlook)
        self._log(op, snapshot, "forecast", outlook=result.summary.outlook)
        return result

    async def loan_readiness(self, user_id: str) -> LoanReadinessResult:
        with self._analysis("loan_readiness", user_id) as op:
            snapshot = await self.load_snapshot(user_id)
            result = analyze_loan_readiness(
                snapshot.transactions,
                snapshot.accounts,
                snapshot.profile,
                self.loan_readiness_config,
                today=self.clock(),
            )

        self._log(
            op,
            snapshot,
            "loan_readiness",
            score=result.score,
            max_monthly_payment=round(result.capacity.max_monthly_payment, 2),
        )
        return result

    async def snapshot(self, user_id: str) -> MonthlySnapshot:
        with self._analysis("snapshot", user_id) as op:
            snapshot = await self.load_snapshot(user_id, include_profile=False)
            result = summarize_current_month(snapshot.transactions, snapshot.accounts, today=self.clock())

        self._log(op, snapshot, "snapshot", large_expense_count=len(result.large_expenses))
        return result

    async def full_report(self, user_id: str) -> FullReport:
        """Run every engine over a single fetched snapshot."""
        with self._analysis("report", user_id) as op:
            snapshot = await self.load_snapshot(user_id)
            today = self.clock()
            report = FullReport(
                user_id=user_id,
                credit_score=calculate_credit_score(
                    snapshot.transactions, snapshot.accounts, self.credit_config, today=today
                ),
                fraud_analysis=analyze_fraud_patterns(snapshot.transactions, self.fraud_config),
                insights=generate_spending_insights(
                    snapshot.transactions, snapshot.profile, snapshot.accounts, self.insight_config, today=today
                ),
                forecast=generate_forecast(
                    snapshot.transactions,
                    snapshot.accounts,
                    snapshot.profile.monthly_income,
                    self.forecast_config,
                    today=today,
                ),
            )

        metrics.record_credit_score(report.credit_score.score, report.credit_score.rating)
        metrics.record_fraud_analysis(
            report.fraud_analysis.risk_score, [a.risk for a in report.fraud_analysis.alerts]
        )
        metrics.record_forecast(report.forecast.summary.outlook)
        self._log(
            op,
            snapshot,
            "report",
            score=report.credit_score.score,
            risk_score=round(report.fraud_analysis.risk_score, 2),
            outlook=report.forecast.summary.outlook,
        )
        return report

    def _analysis(self, engine: str, user_id: str) -> "_AnalysisTimer":
        return _AnalysisTimer(engine, user_id)

    @staticmethod
    def _log(op: TimedOperation, snapshot: UserSnapshot, engine: str, **result_fields) -> None:
        log_analysis(
            logger=logger,
            user_id=snapshot.user_id,
            engine=engine,
            transaction_count=len(snapshot.transactions),
            account_count=len(snapshot.accounts),
            duration_ms=op.duration_ms,
            **result_fields,
        )


class _AnalysisTimer(TimedOperation):
    """TimedOperation that also records analysis metrics on exit."""

    def __init__(self, engine: str, user_id: str):
        super().__init__(f"{engine}_analysis", logger, user_id=user_id)
        self.engine = engine

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        super().__exit__(exc_type, exc_val, exc_tb)
        metrics.record_analysis(
            self.engine, success=exc_type is None, latency_seconds=self.duration_seconds
        )
