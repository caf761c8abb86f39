"""
Alternative Credit Score Calculator

Builds a 300-850 credit score from a user's own transaction and account
records, for users who have little or no bureau history.

SCORING METHODOLOGY:
--------------------
Four factors, each scored 0-100, are combined with fixed weights:

1. Payment History (35%)
   Share of bill, loan and utility payments in the trailing 6 months that
   were paid on or before the 15th of the month. The 15th is a policy
   stand-in for real due dates, which the store does not record.

2. Income Stability (25%)
   ``100 - stddev/mean*100`` over monthly income totals. Also reports the
   payers that show up at least twice, ranked by reliability.

3. Financial Behavior (20%)
   Mean of four behaviors: saving habits, spending consistency, budget
   adherence (0.6 spending + 0.4 saving) and risk behavior (penalties for
   large purchases, busy days and outlier transactions).

4. Account Health (20%)
   Emergency-fund runway (up to 40 points), balance-to-income (up to 30) and
   number of accounts (up to 30), clamped to 0-100.

The weighted 0-100 base score maps linearly onto 300-850. With no
transactions every factor is 0 and the score sits at the 300 floor.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from finance_analytics.logging import get_logger
from finance_analytics.scoring.aggregation import (
    CategoryShare,
    category_breakdown,
    coefficient_score,
    group_by_day,
    group_by_month,
    mean,
    monthly_totals,
    round_half_up,
    safe_divide,
    shift_months,
    standard_deviation,
    status_from_score,
)
from finance_analytics.scoring.records import BankAccount, Transaction

logger = get_logger(__name__)

PAYMENT_HISTORY = "payment_history"
INCOME_STABILITY = "income_stability"
FINANCIAL_BEHAVIOR = "financial_behavior"
ACCOUNT_HEALTH = "account_health"


@dataclass(frozen=True)
class CreditModelConfig:
    """Weights and thresholds of the credit model."""
    version: str = "2.0"
    weights: Mapping[str, float] = field(default_factory=lambda: {
        PAYMENT_HISTORY: 0.35,
        INCOME_STABILITY: 0.25,
        FINANCIAL_BEHAVIOR: 0.20,
        ACCOUNT_HEALTH: 0.20,
    })
    # Inclusive lower bounds, checked in order
    rating_thresholds: tuple[tuple[int, str], ...] = (
        (750, "excellent"),
        (700, "good"),
        (650, "fair"),
    )
    recommendation_thresholds: Mapping[str, float] = field(default_factory=lambda: {
        PAYMENT_HISTORY: 90,
        INCOME_STABILITY: 80,
        FINANCIAL_BEHAVIOR: 85,
        ACCOUNT_HEALTH: 70,
    })
    bill_categories: frozenset[str] = frozenset({"bills", "loans", "utilities"})
    recurring_bill_categories: frozenset[str] = frozenset({"bills", "utilities"})
    payment_window_months: int = 6
    on_time_day: int = 15
    min_score: int = 300
    max_score: int = 850
    target_runway_months: float = 6.0

    def __post_init__(self):
        # Read-only views, so a shared config cannot be edited in place
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        object.__setattr__(
            self, "recommendation_thresholds", MappingProxyType(dict(self.recommendation_thresholds))
        )


DEFAULT_CREDIT_CONFIG = CreditModelConfig()


@dataclass(frozen=True)
class PaymentHistory:
    score: float
    on_time_payments: int
    total_payments: int
    monthly_average: float
    status: str


@dataclass(frozen=True)
class IncomeSource:
    name: str
    frequency: str  # weekly, bi-weekly, monthly or irregular
    average_amount: float
    occurrences: int
    reliability: float


@dataclass(frozen=True)
class IncomeStability:
    score: float
    average_income: float
    monthly_variation: float
    consistent_sources: tuple[IncomeSource, ...]
    status: str


@dataclass(frozen=True)
class SavingHabits:
    score: float
    average_monthly_savings: float
    savings_rate: float
    months_analyzed: int


@dataclass(frozen=True)
class SpendingPatterns:
    score: float
    average_monthly_expense: float
    monthly_variation: float
    categories: tuple[CategoryShare, ...]
    status: str


@dataclass(frozen=True)
class BudgetAdherence:
    score: float
    status: str


@dataclass(frozen=True)
class RiskBehavior:
    score: float
    large_purchases: float
    frequent_transactions: float
    unusual_activity: float
    status: str


@dataclass(frozen=True)
class FinancialBehavior:
    score: float
    saving_habits: SavingHabits
    spending_patterns: SpendingPatterns
    budget_adherence: BudgetAdherence
    risk_behavior: RiskBehavior
    status: str


@dataclass(frozen=True)
class AccountHealth:
    score: float
    total_balance: float
    average_balance: float
    months_of_runway: float
    account_diversity: int
    status: str


@dataclass(frozen=True)
class CreditFactors:
    payment_history: PaymentHistory
    income_stability: IncomeStability
    financial_behavior: FinancialBehavior
    account_health: AccountHealth


@dataclass(frozen=True)
class RecurringBill:
    name: str
    category: Optional[str]
    average_amount: float
    due_day: int
    missed_months: int
    impact: int


@dataclass(frozen=True)
class CreditRecommendation:
    """A structured recommendation; wording is left to the presentation layer."""
    factor: str
    action: str
    impact_points: float
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CreditScoreResult:
    score: int
    rating: str
    factors: CreditFactors
    weighted_scores: dict[str, float]
    recommendations: tuple[CreditRecommendation, ...]
    model_version: str


class CreditScoreCalculator:
    """Computes the alternative credit score from transactions and accounts."""

    def __init__(self, config: CreditModelConfig = DEFAULT_CREDIT_CONFIG):
        self.config = config

    def calculate(
        self,
        transactions: Sequence[Transaction],
        accounts: Sequence[BankAccount],
        today: Optional[datetime] = None,
    ) -> CreditScoreResult:
        """
        Calculate the credit score.

        Args:
            transactions: Normalized transactions for one user
            accounts: Normalized bank accounts for the same user
            today: Reference date for the payment window (defaults to now)

        Returns:
            CreditScoreResult with the 300-850 score, factor breakdowns and
            recommendations
        """
        today = today or datetime.now()
        transactions = list(transactions)
        accounts = list(accounts)

        if not transactions:
            logger.warning("credit_score_no_transactions", account_count=len(accounts))
            factors = self._empty_factors(accounts)
        else:
            factors = CreditFactors(
                payment_history=self._analyze_payment_history(transactions, today),
                income_stability=self._analyze_income_stability(transactions),
                financial_behavior=self._analyze_financial_behavior(transactions),
                account_health=self._analyze_account_health(transactions, accounts),
            )

        weights = self.config.weights
        weighted_scores = {
            PAYMENT_HISTORY: factors.payment_history.score * weights[PAYMENT_HISTORY],
            INCOME_STABILITY: factors.income_stability.score * weights[INCOME_STABILITY],
            FINANCIAL_BEHAVIOR: factors.financial_behavior.score * weights[FINANCIAL_BEHAVIOR],
            ACCOUNT_HEALTH: factors.account_health.score * weights[ACCOUNT_HEALTH],
        }
        base_score = sum(weighted_scores.values())
        score = self._to_credit_range(base_score)
        rating = self._rating(score)
        recommendations = self._recommendations(factors, transactions)

        logger.info(
            "credit_score_calculated",
            score=score,
            rating=rating,
            base_score=round(base_score, 2),
            payment_history=round(factors.payment_history.score, 2),
            income_stability=round(factors.income_stability.score, 2),
            financial_behavior=round(factors.financial_behavior.score, 2),
            account_health=round(factors.account_health.score, 2),
            recommendation_count=len(recommendations),
            transaction_count=len(transactions),
        )

        return CreditScoreResult(
            score=score,
            rating=rating,
            factors=factors,
            weighted_scores=weighted_scores,
            recommendations=tuple(recommendations),
            model_version=self.config.version,
        )

    # ------------------------------------------------------------------
    # Payment history
    # ------------------------------------------------------------------

    def _bills(self, transactions: Sequence[Transaction], categories: frozenset[str]) -> list[Transaction]:
        return [
            t for t in transactions
            if t.is_expense and t.category is not None and t.category.lower() in categories
        ]

    def _analyze_payment_history(
        self, transactions: Sequence[Transaction], today: datetime
    ) -> PaymentHistory:
        """
        Score on-time bill payments over the trailing window.

        A payment counts as on time when it was made on or before the
        configured day of the month.
        """
        window_start = shift_months(today, -self.config.payment_window_months)
        bills = [
            t for t in self._bills(transactions, self.config.bill_categories)
            if t.date is not None and t.date >= window_start
        ]

        total = len(bills)
        on_time = sum(1 for t in bills if t.date.day <= self.config.on_time_day)
        score = safe_divide(on_time, total) * 100

        return PaymentHistory(
            score=score,
            on_time_payments=on_time,
            total_payments=total,
            monthly_average=total / self.config.payment_window_months,
            status=status_from_score(score),
        )

    # ------------------------------------------------------------------
    # Income stability
    # ------------------------------------------------------------------

    def _analyze_income_stability(self, transactions: Sequence[Transaction]) -> IncomeStability:
        income = [t for t in transactions if t.is_income]
        amounts = list(monthly_totals(income).values())
        score = coefficient_score(amounts)

        return IncomeStability(
            score=score,
            average_income=mean(amounts),
            monthly_variation=standard_deviation(amounts),
            consistent_sources=tuple(identify_consistent_income_sources(income)),
            status=status_from_score(score),
        )

    # ------------------------------------------------------------------
    # Financial behavior
    # ------------------------------------------------------------------

    def _analyze_financial_behavior(self, transactions: Sequence[Transaction]) -> FinancialBehavior:
        saving = self._analyze_saving_habits(transactions)
        spending = self._analyze_spending_patterns(transactions)
        budget_score = spending.score * 0.6 + saving.score * 0.4
        budget = BudgetAdherence(score=budget_score, status=status_from_score(budget_score))
        risk = self._analyze_risk_behavior(transactions)

        score = (saving.score + spending.score + budget.score + risk.score) / 4

        return FinancialBehavior(
            score=score,
            saving_habits=saving,
            spending_patterns=spending,
            budget_adherence=budget,
            risk_behavior=risk,
            status=status_from_score(score),
        )

    def _analyze_saving_habits(self, transactions: Sequence[Transaction]) -> SavingHabits:
        """Average positive monthly savings relative to average monthly income."""
        total_savings = 0.0
        months_analyzed = 0

        for month in group_by_month(transactions).values():
            income = sum(t.cost for t in month if t.is_income)
            expenses = sum(t.cost for t in month if t.is_expense)
            if income > 0:
                total_savings += max(0.0, income - expenses)
                months_analyzed += 1

        average_savings = safe_divide(total_savings, months_analyzed)
        average_income = mean(list(monthly_totals(transactions, lambda t: t.is_income).values()))
        savings_rate = safe_divide(average_savings, average_income) * 100

        return SavingHabits(
            score=min(savings_rate * 2, 100.0),
            average_monthly_savings=average_savings,
            savings_rate=savings_rate,
            months_analyzed=months_analyzed,
        )

    def _analyze_spending_patterns(self, transactions: Sequence[Transaction]) -> SpendingPatterns:
        expenses = [t for t in transactions if t.is_expense]
        totals = list(monthly_totals(expenses).values())
        score = coefficient_score(totals)

        return SpendingPatterns(
            score=score,
            average_monthly_expense=mean(totals),
            monthly_variation=standard_deviation(totals),
            categories=tuple(category_breakdown(expenses, default_category="uncategorized")),
            status=status_from_score(score),
        )

    def _analyze_risk_behavior(self, transactions: Sequence[Transaction]) -> RiskBehavior:
        """
        Start from 100 and subtract penalties:
        - large purchases: expenses above 3x the average transaction, 10 each, max 40
        - frequency: busiest single day, 5 per transaction, max 30
        - unusual activity: amounts beyond 2 standard deviations, 10 each, max 30
        """
        amounts = [t.cost for t in transactions]
        average = mean(amounts)
        spread = standard_deviation(amounts)

        large_count = sum(1 for t in transactions if t.is_expense and t.cost > average * 3)
        large_purchases = min(large_count * 10, 40)

        daily = group_by_day(transactions)
        busiest_day = max((len(day) for day in daily.values()), default=0)
        frequent_transactions = min(busiest_day * 5, 30)

        unusual_count = sum(1 for amount in amounts if abs(amount - average) > spread * 2)
        unusual_activity = min(unusual_count * 10, 30)

        score = 100 - (large_purchases + frequent_transactions + unusual_activity)

        return RiskBehavior(
            score=score,
            large_purchases=large_purchases,
            frequent_transactions=frequent_transactions,
            unusual_activity=unusual_activity,
            status=status_from_score(score),
        )

    # ------------------------------------------------------------------
    # Account health
    # ------------------------------------------------------------------

    def _analyze_account_health(
        self, transactions: Sequence[Transaction], accounts: Sequence[BankAccount]
    ) -> AccountHealth:
        total_balance = sum(a.balance for a in accounts)
        average_balance = safe_divide(total_balance, len(accounts))

        monthly_expenses = mean(list(monthly_totals(transactions, lambda t: t.is_expense).values()))
        monthly_income = mean(list(monthly_totals(transactions, lambda t: t.is_income).values()))
        runway = safe_divide(total_balance, monthly_expenses)

        score = (
            self._runway_points(runway)
            + min(safe_divide(total_balance, monthly_income) * 10, 30)
            + min(len(accounts) * 10, 30)
        )
        score = max(0.0, min(100.0, score))

        return AccountHealth(
            score=score,
            total_balance=total_balance,
            average_balance=average_balance,
            months_of_runway=max(runway, 0.0),
            account_diversity=len(accounts),
            status=status_from_score(score),
        )

    @staticmethod
    def _runway_points(months: float) -> float:
        """
        Emergency fund points (0-40).

        - 6+ months: 40
        - 3-6 months: 20-40
        - 1-3 months: 10-20
        - under 1 month: 0-10
        """
        if months >= 6:
            return 40.0
        if months >= 3:
            return 20 + ((months - 3) / 3) * 20
        if months >= 1:
            return 10 + ((months - 1) / 2) * 10
        return min(months * 10, 10.0)

    def _empty_factors(self, accounts: Sequence[BankAccount]) -> CreditFactors:
        total_balance = sum(a.balance for a in accounts)
        return CreditFactors(
            payment_history=PaymentHistory(0.0, 0, 0, 0.0, "poor"),
            income_stability=IncomeStability(0.0, 0.0, 0.0, (), "poor"),
            financial_behavior=FinancialBehavior(
                score=0.0,
                saving_habits=SavingHabits(0.0, 0.0, 0.0, 0),
                spending_patterns=SpendingPatterns(0.0, 0.0, 0.0, (), "poor"),
                budget_adherence=BudgetAdherence(0.0, "poor"),
                risk_behavior=RiskBehavior(0.0, 0, 0, 0, "poor"),
                status="poor",
            ),
            account_health=AccountHealth(
                score=0.0,
                total_balance=total_balance,
                average_balance=safe_divide(total_balance, len(accounts)),
                months_of_runway=0.0,
                account_diversity=len(accounts),
                status="poor",
            ),
        )

    # ------------------------------------------------------------------
    # Composite score
    # ------------------------------------------------------------------

    def _to_credit_range(self, base_score: float) -> int:
        """Map a 0-100 base score onto the configured credit range."""
        span = self.config.max_score - self.config.min_score
        score = int(round_half_up(self.config.min_score + (base_score / 100) * span))
        return max(self.config.min_score, min(self.config.max_score, score))

    def _rating(self, score: int) -> str:
        for threshold, rating in self.config.rating_thresholds:
            if score >= threshold:
                return rating
        return "poor"

    def _impact(self, factor: str, score: float) -> float:
        points = self.config.weights[factor] * 100
        return round(points * (1 - score / 100), 2)

    def _recommendations(
        self, factors: CreditFactors, transactions: Sequence[Transaction]
    ) -> list[CreditRecommendation]:
        thresholds = self.config.recommendation_thresholds
        recommendations = []

        payment = factors.payment_history
        if payment.score < thresholds[PAYMENT_HISTORY]:
            bills = self._bills(transactions, self.config.recurring_bill_categories)
            recommendations.append(CreditRecommendation(
                factor=PAYMENT_HISTORY,
                action="setup_automatic_payments",
                impact_points=self._impact(PAYMENT_HISTORY, payment.score),
                details={
                    "missed_payments": payment.total_payments - payment.on_time_payments,
                    "recurring_bills": identify_recurring_bills(bills),
                },
            ))

        income = factors.income_stability
        if income.score < thresholds[INCOME_STABILITY]:
            variation = safe_divide(income.monthly_variation, income.average_income) * 100
            recommendations.append(CreditRecommendation(
                factor=INCOME_STABILITY,
                action="diversify_income",
                impact_points=self._impact(INCOME_STABILITY, income.score),
                details={"variation_percent": round_half_up(variation)},
            ))

        behavior = factors.financial_behavior
        if behavior.score < thresholds[FINANCIAL_BEHAVIOR]:
            recommendations.append(CreditRecommendation(
                factor=FINANCIAL_BEHAVIOR,
                action="create_smart_budget",
                impact_points=self._impact(FINANCIAL_BEHAVIOR, behavior.score),
                details={"weakest_area": _weakest_behavior(behavior)},
            ))

        health = factors.account_health
        if health.score < thresholds[ACCOUNT_HEALTH]:
            target = self.config.target_runway_months
            recommendations.append(CreditRecommendation(
                factor=ACCOUNT_HEALTH,
                action="build_savings_plan",
                impact_points=self._impact(ACCOUNT_HEALTH, health.score),
                details={
                    "current_months": round(health.months_of_runway, 1),
                    "target_months": target,
                    "months_needed": round(max(0.0, target - health.months_of_runway), 1),
                    **savings_goal(transactions, health.total_balance, target),
                },
            ))

        return recommendations


def savings_goal(
    transactions: Sequence[Transaction], current_savings: float, target_months: float
) -> dict:
    """
    Emergency fund target and how long the current surplus takes to reach it.

    The target is ``target_months`` of average monthly expenses. The monthly
    contribution is the average monthly surplus; ``months_to_target`` is
    None when there is no surplus to save from.
    """
    monthly_expenses = mean(list(monthly_totals(transactions, lambda t: t.is_expense).values()))
    monthly_income = mean(list(monthly_totals(transactions, lambda t: t.is_income).values()))
    target_amount = monthly_expenses * target_months
    remaining = max(0.0, target_amount - current_savings)
    contribution = max(0.0, monthly_income - monthly_expenses)

    if remaining == 0:
        months_to_target: Optional[int] = 0
    elif contribution > 0:
        months_to_target = math.ceil(remaining / contribution)
    else:
        months_to_target = None

    return {
        "target_amount": round(target_amount, 2),
        "monthly_contribution": round(contribution, 2),
        "months_to_target": months_to_target,
    }


def _weakest_behavior(behavior: FinancialBehavior) -> str:
    weakest_area = "budgeting"
    weakest_score = behavior.budget_adherence.score
    if behavior.saving_habits.score < weakest_score:
        weakest_area = "saving"
        weakest_score = behavior.saving_habits.score
    if behavior.spending_patterns.score < weakest_score:
        weakest_area = "spending"
    return weakest_area


def _classify_gap(days: float) -> Optional[str]:
    if 28 <= days <= 31:
        return "monthly"
    if 13 <= days <= 15:
        return "bi-weekly"
    if 6 <= days <= 8:
        return "weekly"
    return None


def identify_consistent_income_sources(
    income: Sequence[Transaction], min_occurrences: int = 2
) -> list[IncomeSource]:
    """
    Group income by payer and classify how often each one pays.

    Gaps are measured between consecutive payments in date order; the last
    gap that falls into a known band decides the frequency. Payers seen fewer
    than ``min_occurrences`` times are dropped.
    """
    by_source: dict[str, list[Transaction]] = {}
    for txn in income:
        by_source.setdefault(txn.name or "Unknown", []).append(txn)

    sources = []
    for name, payments in by_source.items():
        if len(payments) < min_occurrences:
            continue

        frequency = "irregular"
        dates = sorted(t.date for t in payments if t.date is not None)
        for previous, current in zip(dates, dates[1:]):
            gap = (current - previous).total_seconds() / 86400
            frequency = _classify_gap(gap) or frequency

        count = len(payments)
        sources.append(IncomeSource(
            name=name,
            frequency=frequency,
            average_amount=sum(t.cost for t in payments) / count,
            occurrences=count,
            reliability=min(count / 6 * 100, 100.0),
        ))

    return sorted(sources, key=lambda s: s.reliability, reverse=True)


def identify_recurring_bills(bills: Sequence[Transaction], lookback_months: int = 6) -> list[RecurringBill]:
    """
    Find bills paid in at least three distinct months.

    Bills are grouped by payee (case-insensitive). ``missed_months`` counts
    the calendar months skipped between consecutive payments and ``impact``
    scales it to a 0-10 estimate over the lookback window.
    """
    by_payee: dict[str, list[Transaction]] = {}
    for bill in bills:
        if bill.date is None:
            continue
        key = (bill.name or "unknown").lower()
        by_payee.setdefault(key, []).append(bill)

    recurring = []
    for payments in by_payee.values():
        if len(payments) < 2:
            continue
        payments = sorted(payments, key=lambda t: t.date)

        day_counts: dict[int, int] = {}
        for payment in payments:
            day_counts[payment.date.day] = day_counts.get(payment.date.day, 0) + 1
        due_day = max(day_counts, key=day_counts.get)

        month_indexes = [p.date.year * 12 + p.date.month - 1 for p in payments]
        if len(set(month_indexes)) < 3:
            continue
        missed = sum(
            current - previous - 1
            for previous, current in zip(month_indexes, month_indexes[1:])
            if current - previous > 1
        )
        on_time_rate = (lookback_months - missed) / lookback_months

        recurring.append(RecurringBill(
            name=payments[0].name or "Unknown",
            category=payments[0].category,
            average_amount=sum(p.cost for p in payments) / len(payments),
            due_day=due_day,
            missed_months=missed,
            impact=int(round_half_up((1 - on_time_rate) * 10)),
        ))

    return sorted(recurring, key=lambda b: b.impact, reverse=True)


def calculate_credit_score(
    transactions: Sequence[Transaction],
    accounts: Sequence[BankAccount],
    config: CreditModelConfig = DEFAULT_CREDIT_CONFIG,
    today: Optional[datetime] = None,
) -> CreditScoreResult:
    """Functional entry point around CreditScoreCalculator."""
    return CreditScoreCalculator(config).calculate(transactions, accounts, today=today)
