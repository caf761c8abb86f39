"""
Aggregation utilities shared by every analysis engine.

Bucketing (by month, day, weekday, category) and the small statistics the
scoring formulas are built from. Every function here is total: empty input
and zero denominators resolve to 0 rather than raising or producing NaN.
"""
import calendar
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from finance_analytics.scoring.records import Transaction

TransactionPredicate = Callable[[Transaction], bool]

WEEKDAY_NAMES = (
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
)


@dataclass(frozen=True)
class CategoryShare:
    """Amount spent in a category and its share of the total."""
    category: str
    amount: float
    percentage: float


def month_key(dt: datetime) -> str:
    """Bucket key for a date, e.g. ``2025-3`` (month is not zero-padded)."""
    return f"{dt.year}-{dt.month}"


def month_sort_key(key: str) -> tuple[int, int]:
    year, month = key.split("-")
    return int(year), int(month)


def sorted_month_keys(keys: Iterable[str]) -> list[str]:
    """Order month keys chronologically."""
    return sorted(keys, key=month_sort_key)


def group_by_month(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    """
    Group transactions by calendar month.

    Undated transactions are left out. Within a bucket, input order is kept.
    """
    buckets: dict[str, list[Transaction]] = {}
    for txn in transactions:
        if txn.date is None:
            continue
        buckets.setdefault(month_key(txn.date), []).append(txn)
    return buckets


def monthly_totals(
    transactions: Iterable[Transaction],
    predicate: Optional[TransactionPredicate] = None,
) -> dict[str, float]:
    """Sum ``abs(amount)`` per month for transactions matching ``predicate``."""
    totals: dict[str, float] = {}
    for txn in transactions:
        if txn.date is None:
            continue
        if predicate is not None and not predicate(txn):
            continue
        key = month_key(txn.date)
        totals[key] = totals.get(key, 0.0) + txn.cost
    return totals


def group_by_day(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    buckets: dict[str, list[Transaction]] = {}
    for txn in transactions:
        if txn.date is None:
            continue
        buckets.setdefault(txn.date.strftime("%Y-%m-%d"), []).append(txn)
    return buckets


def weekday_totals(
    transactions: Iterable[Transaction],
    predicate: Optional[TransactionPredicate] = None,
) -> dict[str, float]:
    """Sum ``abs(amount)`` per day of week, Sunday first, every day present."""
    totals = {day: 0.0 for day in WEEKDAY_NAMES}
    for txn in transactions:
        if txn.date is None:
            continue
        if predicate is not None and not predicate(txn):
            continue
        # datetime.weekday() is Monday=0; shift so Sunday=0
        day = WEEKDAY_NAMES[(txn.date.weekday() + 1) % 7]
        totals[day] += txn.cost
    return totals


def category_breakdown(
    transactions: Iterable[Transaction],
    default_category: str = "Uncategorized",
) -> list[CategoryShare]:
    """Spending per category, sorted by amount descending."""
    amounts: dict[str, float] = {}
    for txn in transactions:
        category = txn.category or default_category
        amounts[category] = amounts.get(category, 0.0) + txn.cost

    total = sum(amounts.values())
    shares = [
        CategoryShare(
            category=category,
            amount=amount,
            percentage=percentage_of_total(amount, total),
        )
        for category, amount in amounts.items()
    ]
    return sorted(shares, key=lambda share: share.amount, reverse=True)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def variance(values: Sequence[float]) -> float:
    """Population variance."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return sum((value - avg) ** 2 for value in values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation, ``sqrt(E[(x - mean)^2])``."""
    return math.sqrt(variance(values))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0:
        return default
    return numerator / denominator


def percentage_of_total(part: float, whole: float) -> float:
    return safe_divide(part, whole) * 100


def coefficient_score(values: Sequence[float]) -> float:
    """
    Consistency score ``max(0, 100 - stddev/mean*100)`` over a series.

    Used for income stability and spending consistency. A series with a
    zero mean scores 0.
    """
    avg = mean(values)
    if avg == 0:
        return 0.0
    return max(0.0, 100 - standard_deviation(values) / avg * 100)


def linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of a series against its index; 0 for fewer than 2 points."""
    if len(values) < 2:
        return 0.0
    x_mean = (len(values) - 1) / 2
    y_mean = mean(values)
    numerator = sum((x - x_mean) * (y - y_mean) for x, y in enumerate(values))
    denominator = sum((x - x_mean) ** 2 for x in range(len(values)))
    return safe_divide(numerator, denominator)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves toward positive infinity, so -33.5 becomes -33 and 2.5 becomes 3."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def shift_months(dt: datetime, months: int) -> datetime:
    """Move a date by whole calendar months, clamping the day of month."""
    index = dt.year * 12 + (dt.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def start_of_month(dt: datetime) -> datetime:
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def status_from_score(score: float) -> str:
    """Qualitative label for a 0-100 factor score."""
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"
