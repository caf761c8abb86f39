"""
Tests for spending metrics, insight selection and recommended actions.

Insights and actions are kept in generation order and capped at three, so
several tests assert on exact kind sequences.
"""
from datetime import datetime, timedelta

import pytest

from finance_analytics.scoring.insights import (
    InsightConfig,
    calculate_estimated_monthly_income,
    calculate_spending_trend,
    compute_spending_metrics,
    determine_income_level,
    find_unusual_expense,
    generate_spending_insights,
    identify_frequent_merchants,
    identify_potential_savings,
    identify_recurring_expenses,
    summarize_current_month,
)
from finance_analytics.scoring.records import BankAccount, Transaction, UserFinancialProfile

TODAY = datetime(2025, 3, 20, 12, 0)


def _make_transaction(
    date: datetime,
    amount: float,
    type: str = "expense",
    category: str = None,
    name: str = None,
) -> Transaction:
    return Transaction(
        id=f"txn-{date:%Y%m%d}-{name}-{amount}",
        user_id="user-1",
        type=type,
        amount=amount,
        date=date,
        category=category,
        name=name,
    )


def _account(balance: float) -> BankAccount:
    return BankAccount(id=None, user_id="user-1", balance=balance)


class TestSpendingMetrics:

    def test_savings_rate_from_single_month(self):
        """50,000 income and a 10,000 bill leave an 80% savings rate."""
        txns = [
            _make_transaction(datetime(2025, 3, 1), 50000, type="income", name="Payroll"),
            _make_transaction(datetime(2025, 3, 5), 10000, category="bills", name="Electric"),
        ]
        metrics = compute_spending_metrics(txns, today=TODAY)

        assert metrics.monthly_income == 50000
        assert metrics.total_spending == 10000
        assert metrics.savings_rate_percent == 80

    def test_emergency_fund_months(self):
        """Balances of 10,000 and 0 against 5,000 of spending cover 2 months."""
        txns = [_make_transaction(datetime(2025, 3, 2), 5000, category="Food")]
        metrics = compute_spending_metrics(txns, accounts=[_account(10000), _account(0)], today=TODAY)
        assert metrics.emergency_fund_months == 2.0

    def test_savings_rate_never_negative(self):
        txns = [_make_transaction(datetime(2025, 3, 2), 9000)]
        metrics = compute_spending_metrics(txns, profile=UserFinancialProfile(monthly_income=5000), today=TODAY)
        assert metrics.savings_rate_percent == 0

    def test_profile_income_preferred_over_estimate(self):
        txns = [_make_transaction(datetime(2025, 3, 1), 20000, type="income")]
        metrics = compute_spending_metrics(txns, profile=UserFinancialProfile(monthly_income=45000), today=TODAY)
        assert metrics.monthly_income == 45000
        assert metrics.estimated_monthly_income == 20000
        assert metrics.income_from_profile

    def test_empty_input_is_neutral(self):
        metrics = compute_spending_metrics([], today=TODAY)
        assert metrics.total_spending == 0
        assert metrics.savings_rate_percent == 0
        assert metrics.emergency_fund_months == 0
        assert metrics.top_category is None
        assert metrics.income_level == "unknown"

    def test_monotonic_in_expense_amount(self):
        """Raising one expense never raises the savings rate or lowers spending."""
        base = [
            _make_transaction(datetime(2025, 3, 1), 40000, type="income"),
            _make_transaction(datetime(2025, 3, 3), 8000, category="Rent"),
            _make_transaction(datetime(2025, 3, 4), 2000, category="Food"),
        ]
        previous = compute_spending_metrics(base, today=TODAY)
        for amount in (4000, 12000, 30000, 60000):
            bumped = base[:2] + [_make_transaction(datetime(2025, 3, 4), amount, category="Food")]
            current = compute_spending_metrics(bumped, today=TODAY)
            assert current.savings_rate_percent <= previous.savings_rate_percent
            assert current.total_spending >= previous.total_spending
            previous = current


class TestEstimatedIncome:

    def test_spread_over_months_spanned(self):
        txns = [
            _make_transaction(datetime(2025, 1, 1), 30000, type="income"),
            _make_transaction(datetime(2025, 1, 31), 30000, type="income"),
        ]
        # 30 days spanned -> 2 months
        assert calculate_estimated_monthly_income(txns) == pytest.approx(30000)

    def test_no_income(self):
        assert calculate_estimated_monthly_income([_make_transaction(TODAY, 100)]) == 0


class TestSpendingTrend:

    def test_increase_against_prior_month(self):
        txns = [
            _make_transaction(datetime(2025, 2, 10), 2000),
            _make_transaction(datetime(2025, 1, 10), 1000),
        ]
        assert calculate_spending_trend(txns, TODAY) == 100

    def test_falling_trend_rounds_half_toward_positive(self):
        txns = [
            _make_transaction(datetime(2025, 2, 10), 1750),
            _make_transaction(datetime(2025, 1, 10), 2000),
        ]
        # -12.5% reports as -12
        assert calculate_spending_trend(txns, TODAY) == -12

    def test_zero_prior_month_is_zero(self):
        assert calculate_spending_trend([_make_transaction(datetime(2025, 2, 10), 2000)], TODAY) == 0


class TestRecurringExpenses:

    def test_netflix_three_months(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 549, category="Entertainment", name="Netflix"),
            _make_transaction(datetime(2025, 2, 5), 549, category="Entertainment", name="Netflix"),
            _make_transaction(datetime(2025, 3, 5), 549, category="Entertainment", name="Netflix"),
        ]
        recurring = identify_recurring_expenses(txns)

        assert len(recurring) == 1
        assert recurring[0].name == "Netflix"
        assert recurring[0].count == 3
        assert recurring[0].average_amount == pytest.approx(549)

    def test_grouping_ignores_case(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 100, category="Food", name="Jollibee"),
            _make_transaction(datetime(2025, 1, 6), 100, category="food", name="JOLLIBEE"),
        ]
        recurring = identify_recurring_expenses(txns)
        assert len(recurring) == 1
        assert recurring[0].name == "Jollibee"

    def test_sorted_by_total_weight(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 100, name="Small"),
            _make_transaction(datetime(2025, 2, 5), 100, name="Small"),
            _make_transaction(datetime(2025, 1, 6), 1000, name="Big"),
            _make_transaction(datetime(2025, 2, 6), 1000, name="Big"),
        ]
        assert [r.name for r in identify_recurring_expenses(txns)] == ["Big", "Small"]

    def test_single_occurrence_not_recurring(self):
        assert identify_recurring_expenses([_make_transaction(TODAY, 100, name="Once")]) == []


class TestSupplementaryMetrics:

    def test_frequent_merchants_top_three(self):
        txns = []
        for name, count in (("A", 1), ("B", 4), ("C", 2), ("D", 3)):
            txns.extend(_make_transaction(TODAY, 10, name=name) for _ in range(count))
        assert [m.name for m in identify_frequent_merchants(txns)] == ["B", "D", "C"]

    def test_unusual_expense(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 1000, name="Meralco"),
            _make_transaction(datetime(2025, 2, 5), 1000, name="Meralco"),
            _make_transaction(datetime(2025, 3, 5), 2500, name="Meralco"),
        ]
        unusual = find_unusual_expense(txns)
        assert unusual is not None
        assert unusual.name == "Meralco"
        assert unusual.percent_higher == 150

    def test_no_unusual_expense_below_multiplier(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 1000, name="Meralco"),
            _make_transaction(datetime(2025, 2, 5), 1400, name="Meralco"),
        ]
        assert find_unusual_expense(txns) is None

    def test_subscription_savings(self):
        txns = [
            _make_transaction(datetime(2025, 1, 5), 300, name="Spotify Subscription"),
            _make_transaction(datetime(2025, 2, 5), 300, name="Spotify Subscription"),
        ]
        savings = identify_potential_savings(txns, identify_recurring_expenses(txns))
        assert savings.category == "subscriptions"
        assert savings.amount == pytest.approx(90)

    def test_dining_savings(self):
        txns = [_make_transaction(TODAY, 1000, category="Dining") for _ in range(4)]
        savings = identify_potential_savings(txns, [])
        assert savings.category == "dining_out"
        assert savings.amount == pytest.approx(1400)

    @pytest.mark.parametrize("income,level", [
        (0, "unknown"),
        (10000, "low"),
        (15000, "lower-middle"),
        (45000, "middle"),
        (100000, "upper-middle"),
        (120000, "high"),
    ])
    def test_income_level(self, income, level):
        assert determine_income_level(income) == level


class TestInsightSelection:

    def test_getting_started_without_data(self):
        result = generate_spending_insights([], today=TODAY)
        assert [i.kind for i in result.insights] == ["getting_started"]
        assert result.actions[0].kind == "increase_savings_rate"

    def test_overspending_order_and_cap(self):
        """Checks fire in fixed order and only the first three survive."""
        txns = [
            _make_transaction(datetime(2025, 3, 2), 12000, category="Shopping"),
            _make_transaction(datetime(2025, 2, 2), 1000, category="Shopping"),
            _make_transaction(datetime(2025, 1, 2), 500, category="Shopping"),
        ]
        result = generate_spending_insights(
            txns,
            profile=UserFinancialProfile(monthly_income=10000),
            accounts=[_account(1000)],
            today=TODAY,
        )

        assert [i.kind for i in result.insights] == [
            "spending_exceeds_income",
            "unbalanced_spending",
            "top_category_analysis",
        ]
        assert result.insights[0].type == "warning"
        assert result.insights[2].data["band"] == "high"

    def test_strong_saver(self):
        txns = [
            _make_transaction(datetime(2025, 3, 2), 5000, category="Food"),
            _make_transaction(datetime(2025, 3, 3), 5000, category="Transport"),
        ]
        result = generate_spending_insights(
            txns,
            profile=UserFinancialProfile(monthly_income=100000),
            accounts=[_account(100000)],
            today=TODAY,
        )
        kinds = [i.kind for i in result.insights]

        assert kinds[0] == "strong_saving_potential"
        assert result.insights[0].type == "positive"
        assert kinds[1] == "top_category_analysis"
        assert "unbalanced_spending" not in kinds

    def test_emergency_fund_warning(self):
        txns = [
            _make_transaction(datetime(2025, 3, 2), 3000, category="Food"),
            _make_transaction(datetime(2025, 3, 2), 3000, category="Rent"),
        ]
        result = generate_spending_insights(
            txns,
            profile=UserFinancialProfile(monthly_income=20000),
            accounts=[_account(6000)],
            today=TODAY,
        )
        low = [i for i in result.insights if i.kind == "emergency_fund_low"]
        assert low and low[0].data["months"] == pytest.approx(1.0)

    def test_actions_capped_and_tagged(self):
        txns = [
            _make_transaction(datetime(2025, 3, 3), 9500, category="Shopping"),
            _make_transaction(datetime(2025, 3, 4), 500, category="Food"),
        ]
        result = generate_spending_insights(
            txns,
            profile=UserFinancialProfile(monthly_income=10000),
            today=TODAY,
        )
        kinds = [a.kind for a in result.actions]

        assert len(result.actions) == 3
        assert kinds == ["increase_savings_rate", "reduce_category_expenses", "reduce_expense_ratio"]
        assert [a.difficulty for a in result.actions] == ["medium", "medium", "hard"]

    def test_investing_for_high_savers(self):
        txns = [_make_transaction(datetime(2025, 3, 3), 1000, category="Food")]
        result = generate_spending_insights(txns, profile=UserFinancialProfile(monthly_income=60000), today=TODAY)
        assert result.actions[0].kind == "consider_investing"

    def test_custom_caps(self):
        config = InsightConfig(max_insights=1, max_actions=1)
        txns = [_make_transaction(datetime(2025, 3, 3), 1000, category="Food")]
        result = generate_spending_insights(txns, profile=UserFinancialProfile(monthly_income=1000), config=config, today=TODAY)
        assert len(result.insights) == 1
        assert len(result.actions) == 1

    def test_idempotent(self):
        txns = [
            _make_transaction(datetime(2025, 2, 3), 1000, category="Food", name="Cafe"),
            _make_transaction(datetime(2025, 3, 3), 1500, category="Food", name="Cafe"),
        ]
        profile = UserFinancialProfile(monthly_income=30000)
        first = generate_spending_insights(txns, profile, [_account(5000)], today=TODAY)
        second = generate_spending_insights(txns, profile, [_account(5000)], today=TODAY)
        assert first == second


class TestMonthlySnapshot:

    def test_current_month_totals(self):
        txns = [
            _make_transaction(datetime(2025, 3, 1), 40000, type="income"),
            _make_transaction(TODAY - timedelta(days=2), 8000, category="Rent", name="Landlord"),
            _make_transaction(TODAY - timedelta(days=3), 500, category="Food", name="Grocer"),
            _make_transaction(datetime(2025, 2, 20), 9000, category="Rent"),
        ]
        snapshot = summarize_current_month(txns, [_account(12000), _account(3000)], today=TODAY)

        assert snapshot.total_balance == 15000
        assert snapshot.account_count == 2
        assert snapshot.monthly_income == 40000
        assert snapshot.monthly_expenses == 8500
        assert snapshot.expense_categories[0].category == "Rent"
        assert [t.name for t in snapshot.large_expenses] == ["Landlord"]
        assert not snapshot.has_only_accounts

    def test_accounts_only(self):
        snapshot = summarize_current_month([], [_account(100)], today=TODAY)
        assert snapshot.has_only_accounts
        assert snapshot.monthly_expenses == 0
