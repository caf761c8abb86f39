"""
Loan Readiness Analyzer

Estimates how ready a user is to take on a new loan and how much they can
afford to repay, from the same transaction and account snapshot the other
engines use.

SCORING METHODOLOGY:
--------------------
Four components, each scored 0-100, are combined with fixed weights:

1. Income Stability (30%)
   ``100 - stddev/mean*100`` over monthly income totals.

2. Expense Patterns (25%)
   Starts at 100. Minus 20 when discretionary spending exceeds 40% of
   expenses, minus 15 for more than 5 unusual expenses and minus 10 for more
   than 10 recurring expenses.

3. Credit Behavior (25%)
   Starts at 100. Minus 30 for any loan payment made after the 15th, minus 20
   when credit utilization exceeds 70% and minus 15 for more than 3 active
   loans.

4. Transaction Patterns (20%)
   Starts at 100. Minus 20 when income stability is under 70, minus 15 when
   cash-flow volatility exceeds 0.3 and minus 10 with fewer than 3 recurring
   expenses.

The weighted 0-100 readiness maps linearly onto 300-850, the same range as
the credit score. With no transactions every component is 0.

REPAYMENT CAPACITY:
-------------------
Up to 36% of monthly income may go to loan payments, less what existing
loans already take (their average over the last 3 months). Available credit
is that payment over a 24-month term.
"""
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from finance_analytics.logging import get_logger
from finance_analytics.scoring.aggregation import (
    coefficient_score,
    linear_trend,
    mean,
    month_key,
    monthly_totals,
    round_half_up,
    safe_divide,
    shift_months,
    sorted_month_keys,
    standard_deviation,
    start_of_month,
    status_from_score,
)
from finance_analytics.scoring.records import BankAccount, Transaction, UserFinancialProfile

logger = get_logger(__name__)

INCOME_STABILITY = "income_stability"
EXPENSE_PATTERNS = "expense_patterns"
CREDIT_BEHAVIOR = "credit_behavior"
TRANSACTION_PATTERNS = "transaction_patterns"


@dataclass(frozen=True)
class LoanReadinessConfig:
    """Weights and thresholds of the loan readiness model."""
    weights: Mapping[str, float] = field(default_factory=lambda: {
        INCOME_STABILITY: 0.30,
        EXPENSE_PATTERNS: 0.25,
        CREDIT_BEHAVIOR: 0.25,
        TRANSACTION_PATTERNS: 0.20,
    })
    essential_categories: frozenset[str] = frozenset({
        "rent", "utilities", "groceries", "healthcare", "transportation",
    })
    loan_categories: frozenset[str] = frozenset({"loans"})
    history_months: int = 12
    projection_months: int = 3
    loan_lookback_months: int = 3
    on_time_day: int = 15
    unusual_expense_deviations: float = 2.0
    # Share of the history window a payment must recur in
    recurring_month_share: float = 0.8
    category_trend_percent: float = 5.0
    max_discretionary_ratio: float = 0.4
    max_unusual_expenses: int = 5
    max_recurring_expenses: int = 10
    max_utilization: float = 0.7
    max_active_loans: int = 3
    min_income_stability: float = 70.0
    max_cash_flow_volatility: float = 0.3
    min_recurring_expenses: int = 3
    # Used when the user has no credit lines at all
    default_utilization: float = 0.3
    limit_multiplier: float = 3.0
    min_estimated_limit: float = 50000.0
    debt_service_ratio: float = 0.36
    credit_term_months: int = 24
    min_score: int = 300
    max_score: int = 850

    def __post_init__(self):
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


DEFAULT_LOAN_READINESS_CONFIG = LoanReadinessConfig()


@dataclass(frozen=True)
class IncomeSourceSummary:
    category: str
    total: float
    count: int
    average: float
    reliability: float  # 0-1


@dataclass(frozen=True)
class IncomeAnalysis:
    monthly_average: float
    stability_score: float
    growth_percent: float
    sources: tuple[IncomeSourceSummary, ...]


@dataclass(frozen=True)
class CategoryTrend:
    category: str
    total: float
    trend: str  # increasing, decreasing, stable or insufficient_data


@dataclass(frozen=True)
class RecurringPayment:
    category: Optional[str]
    amount: float
    months: int
    confidence: float


@dataclass(frozen=True)
class ExpenseAnalysis:
    monthly_average: float
    essential: float
    discretionary: float
    discretionary_ratio: float
    categories: tuple[CategoryTrend, ...]
    recurring: tuple[RecurringPayment, ...]
    unusual_count: int


@dataclass(frozen=True)
class LoanSummary:
    name: str
    payments: int
    total: float


@dataclass(frozen=True)
class CreditBehavior:
    loans: tuple[LoanSummary, ...]
    active_loans: int
    total_loan_payments: float
    on_time_payments: int
    late_payments: int
    utilization: float
    utilization_estimated: bool


@dataclass(frozen=True)
class CashFlowMonth:
    month: str
    income: float
    expenses: float
    net: float
    balance: float


@dataclass(frozen=True)
class CashFlowProjection:
    months_ahead: int
    expected: float
    low: float
    high: float
    confidence: float


@dataclass(frozen=True)
class CashFlowHealth:
    months: tuple[CashFlowMonth, ...]
    trend: float
    volatility: float
    projections: tuple[CashFlowProjection, ...]


@dataclass(frozen=True)
class RepaymentCapacity:
    monthly_income: float
    income_from_profile: bool
    monthly_expenses: float
    debt_to_income: float
    monthly_loan_payments: float
    max_monthly_payment: float
    available_credit: float


@dataclass(frozen=True)
class LoanReadinessResult:
    score: int
    readiness: float
    status: str
    components: dict[str, float]
    income: IncomeAnalysis
    expenses: ExpenseAnalysis
    credit: CreditBehavior
    cash_flow: CashFlowHealth
    capacity: RepaymentCapacity


class LoanReadinessAnalyzer:
    """Scores loan readiness and repayment capacity for one user."""

    def __init__(self, config: LoanReadinessConfig = DEFAULT_LOAN_READINESS_CONFIG):
        self.config = config

    def analyze(
        self,
        transactions: Sequence[Transaction],
        accounts: Sequence[BankAccount],
        profile: Optional[UserFinancialProfile] = None,
        today: Optional[datetime] = None,
    ) -> LoanReadinessResult:
        """
        Analyze loan readiness.

        Args:
            transactions: Normalized transactions for one user
            accounts: Normalized bank accounts for the same user
            profile: Financial profile; a declared monthly income takes
                precedence over observed income for repayment capacity
            today: Reference date for the monthly windows (defaults to now)

        Returns:
            LoanReadinessResult with the 300-850 score, component scores and
            the analyses behind them
        """
        today = today or datetime.now()
        transactions = list(transactions)
        accounts = list(accounts)
        profile = profile or UserFinancialProfile()

        income = self._analyze_income(transactions)
        expenses = self._analyze_expenses(transactions)
        credit = self._analyze_credit_behavior(transactions, accounts)
        cash_flow = self._analyze_cash_flow(transactions, accounts, today)
        capacity = self._repayment_capacity(transactions, profile, today)

        if transactions:
            components = {
                INCOME_STABILITY: income.stability_score,
                EXPENSE_PATTERNS: self._expense_pattern_score(expenses),
                CREDIT_BEHAVIOR: self._credit_behavior_score(credit),
                TRANSACTION_PATTERNS: self._transaction_pattern_score(income, expenses, cash_flow),
            }
        else:
            logger.warning("loan_readiness_no_transactions", account_count=len(accounts))
            components = {key: 0.0 for key in self.config.weights}

        readiness = sum(components[key] * weight for key, weight in self.config.weights.items())
        readiness = max(0.0, min(100.0, readiness))
        span = self.config.max_score - self.config.min_score
        score = int(round_half_up(self.config.min_score + readiness / 100 * span))
        score = max(self.config.min_score, min(self.config.max_score, score))

        logger.info(
            "loan_readiness_calculated",
            score=score,
            readiness=round(readiness, 2),
            active_loans=credit.active_loans,
            utilization=round(credit.utilization, 3),
            max_monthly_payment=round(capacity.max_monthly_payment, 2),
            transaction_count=len(transactions),
        )

        return LoanReadinessResult(
            score=score,
            readiness=readiness,
            status=status_from_score(readiness),
            components=components,
            income=income,
            expenses=expenses,
            credit=credit,
            cash_flow=cash_flow,
            capacity=capacity,
        )

    # ------------------------------------------------------------------
    # Income
    # ------------------------------------------------------------------

    def _analyze_income(self, transactions: Sequence[Transaction]) -> IncomeAnalysis:
        income = [t for t in transactions if t.is_income]
        totals = monthly_totals(income)
        amounts = list(totals.values())

        return IncomeAnalysis(
            monthly_average=mean(amounts),
            stability_score=coefficient_score(amounts),
            growth_percent=income_growth_percent(totals),
            sources=tuple(summarize_income_sources(income)),
        )

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def _analyze_expenses(self, transactions: Sequence[Transaction]) -> ExpenseAnalysis:
        expenses = [t for t in transactions if t.is_expense]

        essential = 0.0
        discretionary = 0.0
        for txn in expenses:
            if (txn.category or "").lower() in self.config.essential_categories:
                essential += txn.cost
            else:
                discretionary += txn.cost

        return ExpenseAnalysis(
            monthly_average=mean(list(monthly_totals(expenses).values())),
            essential=essential,
            discretionary=discretionary,
            discretionary_ratio=safe_divide(discretionary, essential + discretionary),
            categories=tuple(self._category_trends(expenses)),
            recurring=tuple(self._recurring_payments(expenses)),
            unusual_count=len(find_unusual_amounts(expenses, self.config.unusual_expense_deviations)),
        )

    def _category_trends(self, expenses: Sequence[Transaction]) -> list[CategoryTrend]:
        """
        Direction of each category's monthly spending.

        The mean month-over-month change decides the label; categories seen in
        fewer than 3 months are ``insufficient_data``.
        """
        by_category: dict[str, list[Transaction]] = {}
        for txn in expenses:
            by_category.setdefault(txn.category or "uncategorized", []).append(txn)

        threshold = self.config.category_trend_percent
        trends = []
        for category, txns in by_category.items():
            totals = monthly_totals(txns)
            values = [totals[key] for key in sorted_month_keys(totals)]
            if len(values) < 3:
                trend = "insufficient_data"
            else:
                changes = [
                    safe_divide(current - previous, previous) * 100
                    for previous, current in zip(values, values[1:])
                ]
                average_change = mean(changes)
                if average_change > threshold:
                    trend = "increasing"
                elif average_change < -threshold:
                    trend = "decreasing"
                else:
                    trend = "stable"
            trends.append(CategoryTrend(category=category, total=sum(t.cost for t in txns), trend=trend))

        return sorted(trends, key=lambda c: c.total, reverse=True)

    def _recurring_payments(self, expenses: Sequence[Transaction]) -> list[RecurringPayment]:
        """Same category and amount, paid in most months of the history window."""
        months_by_key: dict[tuple[str, float], set[str]] = {}
        categories: dict[tuple[str, float], Optional[str]] = {}
        for txn in expenses:
            if txn.date is None:
                continue
            key = ((txn.category or "").lower(), txn.cost)
            months_by_key.setdefault(key, set()).add(month_key(txn.date))
            categories.setdefault(key, txn.category)

        recurring = []
        for key, months in months_by_key.items():
            confidence = len(months) / self.config.history_months
            if confidence >= self.config.recurring_month_share:
                recurring.append(RecurringPayment(
                    category=categories[key],
                    amount=key[1],
                    months=len(months),
                    confidence=min(confidence, 1.0),
                ))
        return sorted(recurring, key=lambda r: r.amount, reverse=True)

    # ------------------------------------------------------------------
    # Credit behavior
    # ------------------------------------------------------------------

    def _loan_payments(self, transactions: Sequence[Transaction]) -> list[Transaction]:
        return [
            t for t in transactions
            if t.is_expense and (
                (t.category or "").lower() in self.config.loan_categories
                or "loan" in (t.name or "").lower()
            )
        ]

    def _analyze_credit_behavior(
        self, transactions: Sequence[Transaction], accounts: Sequence[BankAccount]
    ) -> CreditBehavior:
        payments = self._loan_payments(transactions)

        by_loan: dict[str, list[Transaction]] = {}
        for payment in payments:
            by_loan.setdefault((payment.name or "unknown").lower(), []).append(payment)
        loans = tuple(
            LoanSummary(name=group[0].name or "Unknown", payments=len(group), total=sum(t.cost for t in group))
            for group in by_loan.values()
        )

        dated = [p for p in payments if p.date is not None]
        on_time = sum(1 for p in dated if p.date.day <= self.config.on_time_day)
        utilization, estimated = self._credit_utilization(transactions, accounts)

        return CreditBehavior(
            loans=loans,
            active_loans=len(loans),
            total_loan_payments=sum(p.cost for p in payments),
            on_time_payments=on_time,
            late_payments=len(dated) - on_time,
            utilization=utilization,
            utilization_estimated=estimated,
        )

    def _credit_utilization(
        self, transactions: Sequence[Transaction], accounts: Sequence[BankAccount]
    ) -> tuple[float, bool]:
        """
        Balance over limit across credit lines, capped at 1.

        A line without a recorded limit gets an estimate: 3x its balance or 3x
        its largest transaction, but never below the configured minimum.
        Returns the default utilization, flagged as estimated, when the user
        has no credit lines.
        """
        credit_lines = [a for a in accounts if a.is_credit]
        if not credit_lines:
            return self.config.default_utilization, True

        total_balance = 0.0
        total_limit = 0.0
        estimated = False
        for account in credit_lines:
            balance = abs(account.balance)
            limit = account.credit_limit
            if limit is None:
                estimated = True
                largest = max(
                    (t.cost for t in transactions if account.id and t.account_id == account.id),
                    default=0.0,
                )
                multiplier = self.config.limit_multiplier
                limit = max(balance * multiplier, largest * multiplier, self.config.min_estimated_limit)
            total_balance += balance
            total_limit += limit

        return min(safe_divide(total_balance, total_limit), 1.0), estimated

    # ------------------------------------------------------------------
    # Cash flow
    # ------------------------------------------------------------------

    def _analyze_cash_flow(
        self, transactions: Sequence[Transaction], accounts: Sequence[BankAccount], today: datetime
    ) -> CashFlowHealth:
        """
        Monthly cash flow over the history window, oldest month first.

        Balances are reconstructed backwards from today's total balance by
        undoing each later month's net flow.
        """
        current = start_of_month(today)
        keys = [month_key(shift_months(current, -offset)) for offset in range(self.config.history_months)]
        income = monthly_totals(transactions, lambda t: t.is_income)
        expenses = monthly_totals(transactions, lambda t: t.is_expense)

        months = []
        balance = sum(a.balance for a in accounts)
        for key in keys:
            month_income = income.get(key, 0.0)
            month_expenses = expenses.get(key, 0.0)
            net = month_income - month_expenses
            months.append(CashFlowMonth(
                month=key,
                income=month_income,
                expenses=month_expenses,
                net=net,
                balance=balance,
            ))
            balance -= net
        months.reverse()

        nets = [m.net for m in months]
        trend = linear_trend(nets)
        volatility = safe_divide(standard_deviation(nets), abs(mean(nets)))

        return CashFlowHealth(
            months=tuple(months),
            trend=trend,
            volatility=volatility,
            projections=tuple(self._project_cash_flow(nets, trend, volatility)),
        )

    def _project_cash_flow(
        self, nets: Sequence[float], trend: float, volatility: float
    ) -> list[CashFlowProjection]:
        """Extend the fitted line; the band widens and confidence drops each month."""
        average = mean(nets)
        x_mean = (len(nets) - 1) / 2
        projections = []
        for ahead in range(1, self.config.projection_months + 1):
            expected = average + trend * (len(nets) - 1 + ahead - x_mean)
            spread = abs(expected) * volatility
            projections.append(CashFlowProjection(
                months_ahead=ahead,
                expected=expected,
                low=expected - spread,
                high=expected + spread,
                confidence=max(0.0, 1 - volatility * ahead * 0.2),
            ))
        return projections

    # ------------------------------------------------------------------
    # Repayment capacity
    # ------------------------------------------------------------------

    def _repayment_capacity(
        self, transactions: Sequence[Transaction], profile: UserFinancialProfile, today: datetime
    ) -> RepaymentCapacity:
        current = start_of_month(today)
        this_month = [t for t in transactions if t.date is not None and t.date >= current]
        observed_income = sum(t.cost for t in this_month if t.is_income)
        monthly_income = profile.monthly_income or observed_income
        monthly_expenses = sum(t.cost for t in this_month if t.is_expense)

        lookback = self.config.loan_lookback_months
        lookback_start = shift_months(current, -lookback)
        recent_loans = [
            t for t in self._loan_payments(transactions)
            if t.date is not None and t.date >= lookback_start
        ]
        loan_payments = sum(t.cost for t in recent_loans) / lookback

        max_payment = max(0.0, monthly_income * self.config.debt_service_ratio - loan_payments)

        return RepaymentCapacity(
            monthly_income=monthly_income,
            income_from_profile=profile.monthly_income is not None,
            monthly_expenses=monthly_expenses,
            debt_to_income=safe_divide(monthly_expenses, monthly_income, default=1.0),
            monthly_loan_payments=loan_payments,
            max_monthly_payment=max_payment,
            available_credit=max_payment * self.config.credit_term_months,
        )

    # ------------------------------------------------------------------
    # Component scores
    # ------------------------------------------------------------------

    def _expense_pattern_score(self, expenses: ExpenseAnalysis) -> float:
        score = 100.0
        if expenses.discretionary_ratio > self.config.max_discretionary_ratio:
            score -= 20
        if expenses.unusual_count > self.config.max_unusual_expenses:
            score -= 15
        if len(expenses.recurring) > self.config.max_recurring_expenses:
            score -= 10
        return max(0.0, score)

    def _credit_behavior_score(self, credit: CreditBehavior) -> float:
        score = 100.0
        if credit.late_payments > 0:
            score -= 30
        if credit.utilization > self.config.max_utilization:
            score -= 20
        if credit.active_loans > self.config.max_active_loans:
            score -= 15
        return max(0.0, score)

    def _transaction_pattern_score(
        self, income: IncomeAnalysis, expenses: ExpenseAnalysis, cash_flow: CashFlowHealth
    ) -> float:
        score = 100.0
        if income.stability_score < self.config.min_income_stability:
            score -= 20
        if cash_flow.volatility > self.config.max_cash_flow_volatility:
            score -= 15
        if len(expenses.recurring) < self.config.min_recurring_expenses:
            score -= 10
        return max(0.0, score)


def income_growth_percent(monthly_income: Mapping[str, float]) -> float:
    """Percent change from the first to the last month with income; 0 for fewer than 2 months."""
    keys = sorted_month_keys(monthly_income)
    if len(keys) < 2:
        return 0.0
    first = monthly_income[keys[0]]
    last = monthly_income[keys[-1]]
    return safe_divide(last - first, first) * 100


def summarize_income_sources(income: Sequence[Transaction]) -> list[IncomeSourceSummary]:
    """
    Group income by category.

    Reliability averages a frequency score (up to one payment a month over a
    year) with how little any single payment dominates the total.
    """
    by_category: dict[str, list[float]] = {}
    for txn in income:
        by_category.setdefault(txn.category or "uncategorized", []).append(txn.cost)

    sources = []
    for category, amounts in by_category.items():
        total = sum(amounts)
        count = len(amounts)
        average = total / count
        frequency = min(count / 12, 1.0)
        consistency = 1 - safe_divide(average, total, default=1.0)
        sources.append(IncomeSourceSummary(
            category=category,
            total=total,
            count=count,
            average=average,
            reliability=(frequency + consistency) / 2,
        ))
    return sorted(sources, key=lambda s: s.total, reverse=True)


def find_unusual_amounts(transactions: Sequence[Transaction], deviations: float = 2.0) -> list[Transaction]:
    """Transactions whose amount lies more than ``deviations`` standard deviations from the mean."""
    amounts = [t.cost for t in transactions]
    average = mean(amounts)
    spread = standard_deviation(amounts)
    return [t for t in transactions if abs(t.cost - average) > spread * deviations]


def analyze_loan_readiness(
    transactions: Sequence[Transaction],
    accounts: Sequence[BankAccount],
    profile: Optional[UserFinancialProfile] = None,
    config: LoanReadinessConfig = DEFAULT_LOAN_READINESS_CONFIG,
    today: Optional[datetime] = None,
) -> LoanReadinessResult:
    """Functional entry point around LoanReadinessAnalyzer."""
    return LoanReadinessAnalyzer(config).analyze(transactions, accounts, profile, today=today)
