"""
Spending insights and recommended actions.

Derives spending metrics from a user's transactions, profile and account
balances, then walks a fixed list of threshold checks to pick insights and
actions. Each check that fires emits one candidate; the first three
candidates are kept in generation order (no re-ranking by severity).

Records are structured (kind, tag, numbers). Turning them into sentences is
the presentation layer's job.

Income used by the checks is the profile's monthly income when the user set
one, otherwise an estimate from income transactions:
``total_income / max(1, days_spanned / 30 + 1)``.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from finance_analytics.logging import get_logger
from finance_analytics.scoring.aggregation import (
    CategoryShare,
    category_breakdown,
    mean,
    percentage_of_total,
    round_half_up,
    safe_divide,
    shift_months,
    start_of_month,
    weekday_totals,
)
from finance_analytics.scoring.records import BankAccount, Transaction, UserFinancialProfile

logger = get_logger(__name__)

POSITIVE = "positive"
WARNING = "warning"
NEUTRAL = "neutral"

EASY = "easy"
MEDIUM = "medium"
HARD = "hard"


@dataclass(frozen=True)
class InsightConfig:
    """Thresholds for insight and action selection."""
    max_insights: int = 3
    max_actions: int = 3
    overspending_ratio: float = 1.0
    limited_buffer_ratio: float = 0.9
    strong_saving_ratio: float = 0.5
    unbalanced_category_percent: float = 50.0
    category_reduction_percent: float = 40.0
    emergency_fund_low_months: float = 3.0
    emergency_fund_target_months: float = 6.0
    recurring_income_share: float = 0.4
    trend_review_percent: float = 10.0
    low_savings_rate: float = 10.0
    good_savings_rate: float = 20.0
    essentials_income_below: float = 20000.0
    tax_advantaged_income_from: float = 50000.0
    unusual_expense_multiplier: float = 1.5
    # Upper bounds for the income levels, in order
    income_levels: tuple[tuple[float, str], ...] = (
        (15000, "low"),
        (30000, "lower-middle"),
        (60000, "middle"),
        (120000, "upper-middle"),
    )


DEFAULT_INSIGHT_CONFIG = InsightConfig()


@dataclass(frozen=True)
class RecurringExpense:
    name: str
    category: Optional[str]
    count: int
    average_amount: float


@dataclass(frozen=True)
class WeekdaySpending:
    highest_day: Optional[str]
    highest_amount: float
    highest_percentage: float
    breakdown: dict[str, float]


@dataclass(frozen=True)
class MerchantActivity:
    name: str
    count: int
    total: float


@dataclass(frozen=True)
class UnusualExpense:
    name: str
    amount: float
    average: float
    percent_higher: float
    date: Optional[datetime]


@dataclass(frozen=True)
class PotentialSavings:
    category: str  # subscriptions, small_purchases or dining_out
    amount: float
    average_transaction: Optional[float] = None


@dataclass(frozen=True)
class SpendingMetrics:
    total_spending: float
    spending_trend_percent: float
    average_transaction: float
    top_category: Optional[str]
    category_breakdown: tuple[CategoryShare, ...]
    estimated_monthly_income: float
    monthly_income: float
    income_from_profile: bool
    savings_rate_percent: float
    recurring_expenses: tuple[RecurringExpense, ...]
    total_recurring: float
    total_balance: float
    emergency_fund_months: float
    weekday_spending: WeekdaySpending
    frequent_merchants: tuple[MerchantActivity, ...]
    unusual_expense: Optional[UnusualExpense]
    potential_savings: Optional[PotentialSavings]
    income_level: str


@dataclass(frozen=True)
class Insight:
    kind: str
    type: str  # positive, warning or neutral
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RecommendedAction:
    kind: str
    difficulty: str  # easy, medium or hard
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class InsightResult:
    insights: tuple[Insight, ...]
    actions: tuple[RecommendedAction, ...]
    metrics: SpendingMetrics


@dataclass(frozen=True)
class MonthlySnapshot:
    """Current-month totals used by the dashboard's health widget."""
    total_balance: float
    account_count: int
    monthly_income: float
    monthly_expenses: float
    expense_categories: tuple[CategoryShare, ...]
    large_expenses: tuple[Transaction, ...]
    has_only_accounts: bool


# ----------------------------------------------------------------------
# Metrics
# ----------------------------------------------------------------------

def _expenses(transactions: Sequence[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.is_expense]


def calculate_total_spending(transactions: Sequence[Transaction]) -> float:
    return sum(t.cost for t in transactions if t.is_expense)


def calculate_spending_trend(transactions: Sequence[Transaction], today: datetime) -> float:
    """
    Percent change of recent spending against the month before it.

    "Recent" runs from the first day of last month up to ``today``; the
    comparison window is the calendar month before that. Returns 0 when the
    comparison window has no spending.
    """
    last_month_start = shift_months(start_of_month(today), -1)
    previous_month_start = shift_months(start_of_month(today), -2)

    recent = 0.0
    previous = 0.0
    for txn in _expenses(transactions):
        if txn.date is None:
            continue
        if last_month_start <= txn.date < today:
            recent += txn.cost
        elif previous_month_start <= txn.date < last_month_start:
            previous += txn.cost

    if previous == 0:
        return 0.0
    return round_half_up((recent - previous) / previous * 100)


def calculate_estimated_monthly_income(transactions: Sequence[Transaction]) -> float:
    """Average monthly income over the span of dated income transactions."""
    income = [t for t in transactions if t.is_income]
    if not income:
        return 0.0

    total = sum(t.cost for t in income)
    dates = [t.date for t in income if t.date is not None]
    if not dates:
        return total
    months = (max(dates) - min(dates)).total_seconds() / (30 * 86400) + 1
    return total / max(1.0, months)


def identify_recurring_expenses(transactions: Sequence[Transaction]) -> list[RecurringExpense]:
    """
    Expenses sharing a payee and category at least twice.

    Grouping ignores case; the first spelling seen is reported. Sorted by
    ``count * average_amount`` descending.
    """
    groups: dict[tuple[str, str], list[Transaction]] = {}
    for txn in _expenses(transactions):
        key = ((txn.name or "").lower(), (txn.category or "").lower())
        groups.setdefault(key, []).append(txn)

    recurring = []
    for group in groups.values():
        if len(group) < 2:
            continue
        recurring.append(RecurringExpense(
            name=group[0].name or "Unknown",
            category=group[0].category,
            count=len(group),
            average_amount=sum(t.cost for t in group) / len(group),
        ))

    return sorted(recurring, key=lambda r: r.count * r.average_amount, reverse=True)


def analyze_weekday_spending(transactions: Sequence[Transaction]) -> WeekdaySpending:
    totals = weekday_totals(transactions, lambda t: t.is_expense)

    highest_day = None
    highest_amount = 0.0
    for day, amount in totals.items():
        if amount > highest_amount:
            highest_day = day
            highest_amount = amount

    return WeekdaySpending(
        highest_day=highest_day,
        highest_amount=highest_amount,
        highest_percentage=percentage_of_total(highest_amount, sum(totals.values())),
        breakdown=totals,
    )


def identify_frequent_merchants(transactions: Sequence[Transaction], limit: int = 3) -> list[MerchantActivity]:
    merchants: dict[str, list[float]] = {}
    for txn in _expenses(transactions):
        if txn.name:
            merchants.setdefault(txn.name, []).append(txn.cost)

    activity = [
        MerchantActivity(name=name, count=len(amounts), total=sum(amounts))
        for name, amounts in merchants.items()
    ]
    activity.sort(key=lambda m: (m.count, m.total), reverse=True)
    return activity[:limit]


def find_unusual_expense(
    transactions: Sequence[Transaction],
    config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
) -> Optional[UnusualExpense]:
    """
    The payee whose latest charge exceeds its earlier average by the widest
    margin, when that margin is above the configured multiplier.
    """
    by_payee: dict[str, list[Transaction]] = {}
    for txn in _expenses(transactions):
        if txn.date is not None:
            by_payee.setdefault(txn.name or "Unknown", []).append(txn)

    highest = None
    for name, charges in by_payee.items():
        if len(charges) < 2:
            continue
        charges = sorted(charges, key=lambda t: t.date, reverse=True)
        latest = charges[0]
        earlier_average = mean([t.cost for t in charges[1:]])
        if earlier_average <= 0 or latest.cost <= earlier_average * config.unusual_expense_multiplier:
            continue

        candidate = UnusualExpense(
            name=name,
            amount=latest.cost,
            average=earlier_average,
            percent_higher=round_half_up((latest.cost / earlier_average - 1) * 100),
            date=latest.date,
        )
        if highest is None or candidate.percent_higher > highest.percent_higher:
            highest = candidate

    return highest


def identify_potential_savings(
    transactions: Sequence[Transaction],
    recurring: Sequence[RecurringExpense],
) -> Optional[PotentialSavings]:
    """
    First matching savings opportunity, checked in order:
    subscriptions (30%), frequent small purchases (40%), dining out (35%).
    """
    subscription_words = ("subscription", "streaming", "membership")
    subscriptions = [
        r for r in recurring
        if any(word in r.name.lower() for word in subscription_words)
    ]
    if subscriptions:
        total = sum(r.average_amount for r in subscriptions)
        return PotentialSavings(category="subscriptions", amount=total * 0.3)

    expenses = _expenses(transactions)
    small = [t for t in expenses if 50 < t.cost < 500]
    if len(small) > 10:
        total = sum(t.cost for t in small)
        return PotentialSavings(
            category="small_purchases",
            amount=total * 0.4,
            average_transaction=total / len(small),
        )

    dining = [
        t for t in expenses
        if t.category in ("Dining", "Restaurants")
        or (t.name and ("restaurant" in t.name.lower() or "cafe" in t.name.lower()))
    ]
    if len(dining) > 3:
        return PotentialSavings(category="dining_out", amount=sum(t.cost for t in dining) * 0.35)

    return None


def determine_income_level(monthly_income: float, config: InsightConfig = DEFAULT_INSIGHT_CONFIG) -> str:
    if not monthly_income or monthly_income <= 0:
        return "unknown"
    for upper_bound, level in config.income_levels:
        if monthly_income < upper_bound:
            return level
    return "high"


def _emergency_fund_months(total_balance: float, total_spending: float, monthly_income: float) -> Optional[float]:
    """Runway against spending, falling back to income; None when both are 0."""
    denominator = total_spending if total_spending > 0 else monthly_income
    if denominator <= 0:
        return None
    return total_balance / denominator


def compute_spending_metrics(
    transactions: Sequence[Transaction],
    profile: Optional[UserFinancialProfile] = None,
    accounts: Sequence[BankAccount] = (),
    config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
    today: Optional[datetime] = None,
) -> SpendingMetrics:
    """Derive every spending metric the insight checks use."""
    today = today or datetime.now()
    expenses = _expenses(transactions)

    estimated_income = calculate_estimated_monthly_income(transactions)
    profile_income = profile.monthly_income if profile else None
    monthly_income = profile_income or estimated_income

    total_spending = calculate_total_spending(transactions)
    total_balance = sum(a.balance for a in accounts)
    categories = category_breakdown(expenses)
    recurring = identify_recurring_expenses(transactions)

    savings_rate = 0.0
    if monthly_income > 0:
        savings_rate = max(0.0, round_half_up((monthly_income - total_spending) / monthly_income * 100))

    runway = _emergency_fund_months(total_balance, total_spending, monthly_income)

    return SpendingMetrics(
        total_spending=total_spending,
        spending_trend_percent=calculate_spending_trend(transactions, today),
        average_transaction=mean([t.cost for t in expenses]),
        top_category=categories[0].category if categories else None,
        category_breakdown=tuple(categories),
        estimated_monthly_income=estimated_income,
        monthly_income=monthly_income,
        income_from_profile=bool(profile_income),
        savings_rate_percent=savings_rate,
        recurring_expenses=tuple(recurring),
        total_recurring=sum(r.average_amount for r in recurring),
        total_balance=total_balance,
        emergency_fund_months=runway if runway is not None else 0.0,
        weekday_spending=analyze_weekday_spending(transactions),
        frequent_merchants=tuple(identify_frequent_merchants(transactions)),
        unusual_expense=find_unusual_expense(transactions, config),
        potential_savings=identify_potential_savings(transactions, recurring),
        income_level=determine_income_level(monthly_income, config),
    )


# ----------------------------------------------------------------------
# Insight and action selection
# ----------------------------------------------------------------------

def _share_band(percentage: float) -> str:
    if percentage > 50:
        return "high"
    if percentage > 30:
        return "substantial"
    if percentage > 15:
        return "moderate"
    return "small"


def _income_share_band(percentage: float) -> str:
    if percentage > 30:
        return "significantly_high"
    if percentage > 20:
        return "moderately_high"
    if percentage > 10:
        return "reasonable"
    return "well_managed"


def select_insights(
    metrics: SpendingMetrics,
    has_transactions: bool,
    config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
) -> list[Insight]:
    """Run the insight checks in order and keep the first few that fire."""
    insights = []
    income = metrics.monthly_income
    spending = metrics.total_spending
    ratio = safe_divide(spending, income, default=1.0)

    if income > 0:
        if ratio > config.overspending_ratio:
            insights.append(Insight("spending_exceeds_income", WARNING, {
                "shortfall": spending - income,
                "expense_ratio": ratio,
            }))
        elif ratio > config.limited_buffer_ratio:
            insights.append(Insight("limited_financial_buffer", WARNING, {
                "expense_percent": round_half_up(ratio * 100),
            }))
        elif ratio < config.strong_saving_ratio:
            insights.append(Insight("strong_saving_potential", POSITIVE, {
                "expense_percent": round_half_up(ratio * 100),
            }))

    if metrics.category_breakdown:
        top = metrics.category_breakdown[0]
        if top.percentage > config.unbalanced_category_percent:
            insights.append(Insight("unbalanced_spending", WARNING, {
                "category": top.category,
                "percentage": top.percentage,
            }))
        insights.append(Insight("top_category_analysis", NEUTRAL, {
            "category": top.category,
            "percentage": top.percentage,
            "band": _share_band(top.percentage),
        }))

    runway = _emergency_fund_months(metrics.total_balance, spending, income)
    if runway is not None:
        if runway < config.emergency_fund_low_months:
            insights.append(Insight("emergency_fund_low", WARNING, {"months": runway}))
        elif runway < config.emergency_fund_target_months:
            insights.append(Insight("emergency_fund_building", NEUTRAL, {"months": runway}))

    trend = metrics.spending_trend_percent
    if trend != 0:
        insights.append(Insight("spending_trend", WARNING if trend > 0 else POSITIVE, {
            "percent": trend,
            "direction": "increased" if trend > 0 else "decreased",
            "review_budget": trend > config.trend_review_percent,
        }))

    if metrics.recurring_expenses and metrics.total_recurring > income * config.recurring_income_share:
        insights.append(Insight("high_recurring_expenses", WARNING, {
            "total_recurring": metrics.total_recurring,
            "income_percent": round_half_up(percentage_of_total(metrics.total_recurring, income)),
        }))

    if not insights:
        if has_transactions:
            insights.append(Insight("financial_overview", NEUTRAL, {
                "total_spending": spending,
                "expense_percent": round_half_up(ratio * 100) if income > 0 else None,
            }))
        else:
            insights.append(Insight("getting_started", NEUTRAL))

    return insights[:config.max_insights]


def select_actions(
    metrics: SpendingMetrics,
    config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
) -> list[RecommendedAction]:
    """Run the action checks in order and keep the first few that fire."""
    actions = []
    income = metrics.monthly_income
    spending = metrics.total_spending
    savings_rate = safe_divide(income - spending, income) * 100
    expense_ratio = safe_divide(spending, income, default=1.0)

    if savings_rate < config.low_savings_rate:
        actions.append(RecommendedAction("increase_savings_rate", MEDIUM, {"savings_rate": savings_rate}))
    elif savings_rate < config.good_savings_rate:
        actions.append(RecommendedAction("build_emergency_fund_from_savings", EASY, {"savings_rate": savings_rate}))
    else:
        actions.append(RecommendedAction("consider_investing", MEDIUM, {"savings_rate": savings_rate}))

    if metrics.category_breakdown:
        top = metrics.category_breakdown[0]
        if top.percentage > config.category_reduction_percent:
            income_percent = round_half_up(percentage_of_total(top.amount, income))
            actions.append(RecommendedAction("reduce_category_expenses", MEDIUM, {
                "category": top.category,
                "amount": top.amount,
                "income_percent": income_percent,
                "band": _income_share_band(income_percent),
            }))

    if income > 0 and expense_ratio > config.limited_buffer_ratio:
        actions.append(RecommendedAction("reduce_expense_ratio", HARD, {
            "expense_percent": round_half_up(expense_ratio * 100),
        }))

    if metrics.recurring_expenses and metrics.total_recurring > income * config.recurring_income_share:
        largest = metrics.recurring_expenses[0]
        actions.append(RecommendedAction("review_recurring_expenses", EASY, {
            "income_percent": round_half_up(percentage_of_total(metrics.total_recurring, income)),
            "name": largest.name,
            "average_amount": largest.average_amount,
        }))

    savings = metrics.potential_savings
    if savings is not None and savings.amount > 0:
        actions.append(RecommendedAction("capture_potential_savings", MEDIUM, {
            "category": savings.category,
            "amount": savings.amount,
        }))

    if metrics.weekday_spending.highest_day:
        actions.append(RecommendedAction("plan_spending_days", EASY, {
            "day": metrics.weekday_spending.highest_day,
        }))

    if income > 0:
        if income < config.essentials_income_below:
            actions.append(RecommendedAction("focus_on_essentials", MEDIUM, {"income_level": metrics.income_level}))
        elif income >= config.tax_advantaged_income_from:
            actions.append(RecommendedAction("maximize_tax_advantages", MEDIUM, {"income_level": metrics.income_level}))

    runway = _emergency_fund_months(metrics.total_balance, spending, income)
    if runway is not None and runway < config.emergency_fund_low_months:
        actions.append(RecommendedAction("build_emergency_fund", HARD, {
            "months": runway,
            "monthly_target": (config.emergency_fund_low_months - runway) * spending / 6,
        }))

    if not actions:
        actions.append(RecommendedAction("track_expenses", EASY))

    return actions[:config.max_actions]


def generate_spending_insights(
    transactions: Sequence[Transaction],
    profile: Optional[UserFinancialProfile] = None,
    accounts: Sequence[BankAccount] = (),
    config: InsightConfig = DEFAULT_INSIGHT_CONFIG,
    today: Optional[datetime] = None,
) -> InsightResult:
    """
    Compute spending metrics and pick the top insights and actions.

    Args:
        transactions: Normalized transactions for one user
        profile: The user's financial profile, if any
        accounts: Normalized bank accounts for the emergency-fund checks
        config: Selection thresholds
        today: Reference date for the spending trend (defaults to now)
    """
    metrics = compute_spending_metrics(transactions, profile, accounts, config, today)
    insights = select_insights(metrics, bool(transactions), config)
    actions = select_actions(metrics, config)

    logger.info(
        "spending_insights_generated",
        insight_kinds=[i.kind for i in insights],
        action_kinds=[a.kind for a in actions],
        total_spending=round(metrics.total_spending, 2),
        savings_rate_percent=metrics.savings_rate_percent,
        recurring_count=len(metrics.recurring_expenses),
        transaction_count=len(transactions),
    )

    return InsightResult(insights=tuple(insights), actions=tuple(actions), metrics=metrics)


def summarize_current_month(
    transactions: Sequence[Transaction],
    accounts: Sequence[BankAccount],
    today: Optional[datetime] = None,
    large_expense_share: float = 0.1,
    large_expense_days: int = 7,
) -> MonthlySnapshot:
    """
    Totals for the current calendar month.

    Large expenses are charges from the last ``large_expense_days`` days
    above ``large_expense_share`` of this month's income, largest first,
    at most three.
    """
    today = today or datetime.now()
    total_balance = sum(a.balance for a in accounts)

    if not transactions:
        return MonthlySnapshot(
            total_balance=total_balance,
            account_count=len(accounts),
            monthly_income=0.0,
            monthly_expenses=0.0,
            expense_categories=(),
            large_expenses=(),
            has_only_accounts=True,
        )

    month_start = start_of_month(today)
    this_month = [t for t in transactions if t.date is not None and t.date >= month_start]
    income = sum(t.cost for t in this_month if t.is_income)
    expenses = _expenses(this_month)

    week_ago = today - timedelta(days=large_expense_days)
    recent_large = sorted(
        (
            t for t in transactions
            if t.is_expense and t.date is not None and t.date >= week_ago
            and t.cost > income * large_expense_share
        ),
        key=lambda t: t.cost,
        reverse=True,
    )

    return MonthlySnapshot(
        total_balance=total_balance,
        account_count=len(accounts),
        monthly_income=income,
        monthly_expenses=sum(t.cost for t in expenses),
        expense_categories=tuple(category_breakdown(expenses, default_category="other")),
        large_expenses=tuple(recent_large[:3]),
        has_only_accounts=False,
    )
