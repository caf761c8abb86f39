"""
Six-month balance forecast.

Two steps:

1. Cash-flow analysis: bucket transactions by calendar month and derive the
   average monthly income and expenses plus a linear trend for each,
   ``(last_month - first_month) / (month_count - 1)``.

   When the user set a profile income and there is too little history
   (fewer than 2 months, or no income observed at all), the profile income
   is used directly with flat trends and the most recent month's expenses.
   With enough history, a profile income above the observed average
   replaces the average.

2. Projection: starting from the summed account balances, each month adds
   ``(income + income_trend*i) - (expenses + expense_trend*i)``. Months
   advance from the current calendar month with year rollover.
"""
import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from finance_analytics.logging import get_logger
from finance_analytics.scoring.aggregation import (
    mean,
    monthly_totals,
    safe_divide,
    sorted_month_keys,
)
from finance_analytics.scoring.records import BankAccount, Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class ForecastConfig:
    horizon_months: int = 6
    min_history_months: int = 2
    excellent_savings_ratio: float = 20.0


DEFAULT_FORECAST_CONFIG = ForecastConfig()


@dataclass(frozen=True)
class CashFlowAnalysis:
    average_income: float
    average_expenses: float
    income_trend: float
    expense_trend: float
    months_analyzed: int
    using_profile_income: bool


@dataclass(frozen=True)
class ForecastMonth:
    month: int  # 1-12
    month_name: str
    year: int
    income: float
    expenses: float
    savings: float
    balance: float


@dataclass(frozen=True)
class ForecastSummary:
    starting_balance: float
    balance_change: float
    balance_change_percent: float
    total_savings: float
    average_savings: float
    savings_ratio: float
    outlook: str  # excellent, improvable or negative
    using_profile_income: bool


@dataclass(frozen=True)
class ForecastResult:
    months: tuple[ForecastMonth, ...]
    cash_flow: CashFlowAnalysis
    summary: ForecastSummary


def analyze_cash_flow(
    transactions: Sequence[Transaction],
    profile_monthly_income: Optional[float] = None,
    config: ForecastConfig = DEFAULT_FORECAST_CONFIG,
) -> CashFlowAnalysis:
    """Average monthly income/expenses and their linear trends."""
    income_by_month = monthly_totals(transactions, lambda t: t.is_income)
    expenses_by_month = monthly_totals(transactions, lambda t: t.is_expense)
    months = sorted_month_keys(set(income_by_month) | set(expenses_by_month))

    incomes = [income_by_month.get(key, 0.0) for key in months]
    expenses = [expenses_by_month.get(key, 0.0) for key in months]
    profile_income = profile_monthly_income if profile_monthly_income and profile_monthly_income > 0 else None

    if profile_income is not None and (len(months) < config.min_history_months or mean(incomes) == 0):
        return CashFlowAnalysis(
            average_income=profile_income,
            average_expenses=expenses[-1] if expenses else 0.0,
            income_trend=0.0,
            expense_trend=0.0,
            months_analyzed=len(months),
            using_profile_income=True,
        )

    if len(months) < config.min_history_months:
        return CashFlowAnalysis(
            average_income=incomes[0] if incomes else 0.0,
            average_expenses=expenses[0] if expenses else 0.0,
            income_trend=0.0,
            expense_trend=0.0,
            months_analyzed=len(months),
            using_profile_income=False,
        )

    average_income = mean(incomes)
    using_profile = False
    if profile_income is not None and profile_income > average_income:
        average_income = profile_income
        using_profile = True

    span = len(months) - 1
    return CashFlowAnalysis(
        average_income=average_income,
        average_expenses=mean(expenses),
        income_trend=(incomes[-1] - incomes[0]) / span,
        expense_trend=(expenses[-1] - expenses[0]) / span,
        months_analyzed=len(months),
        using_profile_income=using_profile,
    )


def project_balances(
    analysis: CashFlowAnalysis,
    accounts: Sequence[BankAccount],
    config: ForecastConfig = DEFAULT_FORECAST_CONFIG,
    today: Optional[datetime] = None,
) -> tuple[ForecastMonth, ...]:
    """Project balances month by month from the current calendar month."""
    today = today or datetime.now()
    running_balance = sum(a.balance for a in accounts)

    months = []
    for i in range(config.horizon_months):
        year, month_index = divmod(today.month - 1 + i, 12)
        month = month_index + 1

        income = analysis.average_income + analysis.income_trend * i
        expenses = analysis.average_expenses + analysis.expense_trend * i
        savings = income - expenses
        running_balance += savings

        months.append(ForecastMonth(
            month=month,
            month_name=calendar.month_abbr[month],
            year=today.year + year,
            income=income,
            expenses=expenses,
            savings=savings,
            balance=running_balance,
        ))

    return tuple(months)


def summarize_forecast(
    months: Sequence[ForecastMonth],
    starting_balance: float,
    using_profile_income: bool,
    config: ForecastConfig = DEFAULT_FORECAST_CONFIG,
) -> ForecastSummary:
    if not months:
        return ForecastSummary(starting_balance, 0.0, 0.0, 0.0, 0.0, 0.0, "negative", using_profile_income)

    first, last = months[0], months[-1]
    balance_change = last.balance - first.balance
    total_savings = sum(m.savings for m in months)
    average_savings = total_savings / len(months)
    savings_ratio = safe_divide(average_savings, last.income) * 100

    if savings_ratio > config.excellent_savings_ratio:
        outlook = "excellent"
    elif savings_ratio > 0:
        outlook = "improvable"
    else:
        outlook = "negative"

    return ForecastSummary(
        starting_balance=starting_balance,
        balance_change=balance_change,
        balance_change_percent=safe_divide(balance_change, abs(first.balance)) * 100,
        total_savings=total_savings,
        average_savings=average_savings,
        savings_ratio=savings_ratio,
        outlook=outlook,
        using_profile_income=using_profile_income,
    )


def generate_forecast(
    transactions: Sequence[Transaction],
    accounts: Sequence[BankAccount],
    profile_monthly_income: Optional[float] = None,
    config: ForecastConfig = DEFAULT_FORECAST_CONFIG,
    today: Optional[datetime] = None,
) -> ForecastResult:
    """
    Forecast balances for the next ``config.horizon_months`` months.

    Always returns exactly ``horizon_months`` entries, empty input included.
    """
    analysis = analyze_cash_flow(transactions, profile_monthly_income, config)
    months = project_balances(analysis, accounts, config, today)
    summary = summarize_forecast(
        months,
        starting_balance=sum(a.balance for a in accounts),
        using_profile_income=analysis.using_profile_income,
        config=config,
    )

    logger.info(
        "forecast_generated",
        months_analyzed=analysis.months_analyzed,
        using_profile_income=analysis.using_profile_income,
        average_income=round(analysis.average_income, 2),
        average_expenses=round(analysis.average_expenses, 2),
        final_balance=round(months[-1].balance, 2) if months else None,
        outlook=summary.outlook,
    )

    return ForecastResult(months=months, cash_flow=analysis, summary=summary)
