"""
Fraud and account-risk analysis.

Single pass over a user's transactions that collects location, merchant,
hour-of-day and amount patterns and raises alerts for high-risk merchant
categories and unusually large amounts. The resulting score runs from 0
(very risky) to 100 (nothing suspicious).

ORDER SENSITIVITY:
------------------
The large-amount check compares each transaction against the running mean
of every amount seen so far, the current one included. Results therefore
depend on the order transactions are supplied in. The analyzer never
reorders its input: callers that want reproducible results must pass a
stable order (the repository serves most recent first).

An empty history scores 100. A new account is not penalized for having no
data.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from finance_analytics.logging import get_logger
from finance_analytics.scoring.aggregation import standard_deviation
from finance_analytics.scoring.records import Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class FraudDetectionConfig:
    """Alert rules and score penalties."""
    high_risk_categories: frozenset[str] = frozenset({
        "gambling",
        "cryptocurrency",
        "foreign_exchange",
        "unregistered_business",
    })
    suspicious_multiplier: float = 3.0
    alert_penalty: float = 5.0
    location_allowance: int = 5
    location_penalty: float = 2.0
    amount_spread_divisor: float = 1000.0
    # Security recommendation triggers
    enhanced_security_below: float = 80.0
    location_review_above: int = 3


DEFAULT_FRAUD_CONFIG = FraudDetectionConfig()


@dataclass(frozen=True)
class FraudAlert:
    transaction_id: Optional[str]
    date: Optional[datetime]
    kind: str  # high_risk_category or unusual_amount
    description: str
    risk: str  # High or Medium
    amount: float
    status: str  # Flagged or Reviewed


@dataclass(frozen=True)
class FraudPatterns:
    locations: tuple[str, ...] = ()
    merchants: tuple[str, ...] = ()
    time_distribution: tuple[int, ...] = (0,) * 24
    amounts: tuple[float, ...] = ()
    location_diversity: int = 0
    merchant_diversity: int = 0
    time_variance: float = 0.0
    amount_variance: float = 0.0


@dataclass(frozen=True)
class SecurityRecommendation:
    kind: str
    priority: str


@dataclass(frozen=True)
class FraudAnalysisResult:
    risk_score: float
    alerts: tuple[FraudAlert, ...] = ()
    patterns: FraudPatterns = field(default_factory=FraudPatterns)
    security_recommendations: tuple[SecurityRecommendation, ...] = ()


class FraudAnalyzer:
    """Scans transactions for fraud signals and scores overall account risk."""

    def __init__(self, config: FraudDetectionConfig = DEFAULT_FRAUD_CONFIG):
        self.config = config

    def analyze(self, transactions: Sequence[Transaction]) -> FraudAnalysisResult:
        """
        Analyze transactions in the order given.

        Args:
            transactions: Normalized transactions, in a stable order

        Returns:
            FraudAnalysisResult with a 0-100 risk score, alerts and patterns
        """
        if not transactions:
            logger.info("fraud_analysis_no_transactions")
            return FraudAnalysisResult(risk_score=100.0)

        locations: dict[str, None] = {}
        merchants: dict[str, None] = {}
        hours = [0] * 24
        amounts: list[float] = []
        alerts: list[FraudAlert] = []

        for txn in transactions:
            if txn.location:
                locations.setdefault(txn.location, None)
            if txn.merchant:
                merchants.setdefault(txn.merchant, None)
            if txn.date is not None:
                hours[txn.date.hour] += 1

            amount = txn.cost
            amounts.append(amount)

            if txn.category and txn.category.lower() in self.config.high_risk_categories:
                alerts.append(FraudAlert(
                    transaction_id=txn.id,
                    date=txn.date,
                    kind="high_risk_category",
                    description=f"High-risk merchant category: {txn.category}",
                    risk="High",
                    amount=amount,
                    status="Flagged",
                ))

            running_average = sum(amounts) / len(amounts)
            if amount > running_average * self.config.suspicious_multiplier:
                alerts.append(FraudAlert(
                    transaction_id=txn.id,
                    date=txn.date,
                    kind="unusual_amount",
                    description="Unusually large transaction amount",
                    risk="Medium",
                    amount=amount,
                    status="Reviewed",
                ))

        patterns = FraudPatterns(
            locations=tuple(locations),
            merchants=tuple(merchants),
            time_distribution=tuple(hours),
            amounts=tuple(amounts),
            location_diversity=len(locations),
            merchant_diversity=len(merchants),
            time_variance=standard_deviation(hours),
            amount_variance=standard_deviation(amounts),
        )
        risk_score = self._risk_score(patterns, len(alerts))

        logger.info(
            "fraud_analysis_completed",
            risk_score=round(risk_score, 2),
            alert_count=len(alerts),
            high_risk_alerts=sum(1 for a in alerts if a.risk == "High"),
            location_diversity=patterns.location_diversity,
            merchant_diversity=patterns.merchant_diversity,
            transaction_count=len(amounts),
        )

        return FraudAnalysisResult(
            risk_score=risk_score,
            alerts=tuple(alerts),
            patterns=patterns,
            security_recommendations=tuple(self._security_recommendations(risk_score, patterns)),
        )

    def _risk_score(self, patterns: FraudPatterns, alert_count: int) -> float:
        """
        Start at 100 and deduct:
        - a fixed penalty per alert
        - a penalty per distinct location beyond the allowance
        - the spread of amounts scaled down by the divisor
        """
        score = 100.0
        score -= alert_count * self.config.alert_penalty
        score -= max(0, patterns.location_diversity - self.config.location_allowance) * self.config.location_penalty
        score -= max(0.0, patterns.amount_variance / self.config.amount_spread_divisor)
        return max(0.0, min(100.0, score))

    def _security_recommendations(
        self, risk_score: float, patterns: FraudPatterns
    ) -> list[SecurityRecommendation]:
        recommendations = []
        if risk_score < self.config.enhanced_security_below:
            recommendations.append(SecurityRecommendation("enable_enhanced_security", "high"))
        if patterns.location_diversity > self.config.location_review_above:
            recommendations.append(SecurityRecommendation("review_location_activity", "medium"))
        return recommendations


def analyze_fraud_patterns(
    transactions: Sequence[Transaction],
    config: FraudDetectionConfig = DEFAULT_FRAUD_CONFIG,
) -> FraudAnalysisResult:
    """Functional entry point around FraudAnalyzer."""
    return FraudAnalyzer(config).analyze(transactions)

