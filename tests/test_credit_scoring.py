"""
Tests for the alternative credit score.

Covers the zero-data floor, the 300-850 bounds, each factor in isolation
and weight substitution through CreditModelConfig.
"""
from datetime import datetime, timedelta

import pytest

from finance_analytics.scoring.credit import (
    ACCOUNT_HEALTH,
    DEFAULT_CREDIT_CONFIG,
    FINANCIAL_BEHAVIOR,
    INCOME_STABILITY,
    PAYMENT_HISTORY,
    CreditModelConfig,
    CreditScoreCalculator,
    calculate_credit_score,
    identify_consistent_income_sources,
    identify_recurring_bills,
    savings_goal,
)
from finance_analytics.scoring.records import BankAccount, Transaction

TODAY = datetime(2025, 3, 20)


class TestCreditScore:
    """End-to-end credit score behavior."""

    def setup_method(self):
        self.calculator = CreditScoreCalculator()

    def _make_transaction(
        self,
        date: datetime,
        amount: float,
        type: str = "expense",
        category: str = None,
        name: str = None,
    ) -> Transaction:
        return Transaction(
            id=f"txn-{date:%Y%m%d}-{amount}",
            user_id="user-1",
            type=type,
            amount=amount,
            date=date,
            category=category,
            name=name,
        )

    def _make_account(self, balance: float, id: str = "acct-1") -> BankAccount:
        return BankAccount(id=id, user_id="user-1", balance=balance)

    def test_no_data_scores_floor(self):
        """No transactions and no accounts resolve to exactly 300."""
        result = self.calculator.calculate([], [], today=TODAY)
        assert result.score == 300
        assert result.rating == "poor"
        assert result.factors.payment_history.score == 0
        assert result.factors.account_health.score == 0

    def test_accounts_without_transactions_still_floor(self):
        result = self.calculator.calculate([], [self._make_account(50000)], today=TODAY)
        assert result.score == 300
        assert result.factors.account_health.total_balance == 50000

    def test_on_time_bill_scores_full_payment_history(self):
        """Income of 50,000 and a bill paid on the 5th: payment history is 100."""
        txns = [
            self._make_transaction(datetime(2025, 3, 1), 50000, type="income", name="Payroll"),
            self._make_transaction(datetime(2025, 3, 5), 10000, category="bills", name="Electric"),
        ]
        result = self.calculator.calculate(txns, [], today=TODAY)

        payment = result.factors.payment_history
        assert payment.score == 100
        assert payment.on_time_payments == 1
        assert payment.total_payments == 1

    def test_late_bill_is_not_on_time(self):
        txns = [
            self._make_transaction(datetime(2025, 2, 5), 1000, category="Utilities"),
            self._make_transaction(datetime(2025, 2, 20), 1000, category="loans"),
        ]
        result = self.calculator.calculate(txns, [], today=TODAY)
        assert result.factors.payment_history.score == 50

    def test_bills_outside_window_ignored(self):
        txns = [self._make_transaction(TODAY - timedelta(days=250), 1000, category="bills")]
        result = self.calculator.calculate(txns, [], today=TODAY)
        assert result.factors.payment_history.total_payments == 0
        assert result.factors.payment_history.score == 0

    def test_score_within_bounds(self):
        """Any mix of activity stays within 300-850."""
        txns = []
        for month in range(1, 4):
            txns.append(self._make_transaction(datetime(2025, month, 1), 80000, type="income", name="Payroll"))
            txns.append(self._make_transaction(datetime(2025, month, 3), 5000, category="bills", name="Rent"))
            txns.append(self._make_transaction(datetime(2025, month, 10), 12000 * month, category="Shopping"))
        result = self.calculator.calculate(txns, [self._make_account(500000)], today=TODAY)

        assert 300 <= result.score <= 850
        assert result.rating in ("excellent", "good", "fair", "poor")

    def test_deterministic(self):
        txns = [
            self._make_transaction(datetime(2025, 1, 1), 40000, type="income"),
            self._make_transaction(datetime(2025, 2, 1), 42000, type="income"),
            self._make_transaction(datetime(2025, 2, 9), 9000, category="bills"),
        ]
        accounts = [self._make_account(20000)]
        first = self.calculator.calculate(txns, accounts, today=TODAY)
        second = self.calculator.calculate(txns, accounts, today=TODAY)
        assert first == second

    def test_weight_substitution(self):
        """All weight on payment history maps a perfect payer to 850."""
        config = CreditModelConfig(weights={
            PAYMENT_HISTORY: 1.0,
            INCOME_STABILITY: 0.0,
            FINANCIAL_BEHAVIOR: 0.0,
            ACCOUNT_HEALTH: 0.0,
        })
        txns = [self._make_transaction(datetime(2025, 3, 5), 10000, category="bills")]
        result = calculate_credit_score(txns, [], config=config, today=TODAY)
        assert result.score == 850
        assert result.rating == "excellent"

    def test_weighted_scores_sum_to_base(self):
        txns = [
            self._make_transaction(datetime(2025, 3, 1), 50000, type="income"),
            self._make_transaction(datetime(2025, 3, 5), 10000, category="bills"),
        ]
        result = self.calculator.calculate(txns, [self._make_account(10000)], today=TODAY)
        base = sum(result.weighted_scores.values())
        assert result.score == int(300 + base / 100 * 550 + 0.5)


class TestAccountHealth:

    def setup_method(self):
        self.calculator = CreditScoreCalculator()

    def test_zero_expenses_gives_zero_runway(self):
        """A zero denominator resolves to 0, never infinity."""
        txns = [Transaction("t1", "u", "income", 1000.0, datetime(2025, 3, 1))]
        result = self.calculator.calculate(txns, [BankAccount("a", "u", 5000.0)], today=TODAY)
        health = result.factors.account_health
        assert health.months_of_runway == 0
        assert 0 <= health.score <= 100

    def test_six_months_runway_earns_full_runway_points(self):
        assert CreditScoreCalculator._runway_points(6) == 40
        assert CreditScoreCalculator._runway_points(3) == 20
        assert CreditScoreCalculator._runway_points(1) == 10
        assert CreditScoreCalculator._runway_points(0.5) == 5

    def test_account_diversity_capped(self):
        txns = [Transaction("t1", "u", "expense", 100.0, datetime(2025, 3, 1))]
        accounts = [BankAccount(str(i), "u", 0.0) for i in range(5)]
        result = self.calculator.calculate(txns, accounts, today=TODAY)
        assert result.factors.account_health.score == 30


class TestRecommendations:

    def test_poor_factors_produce_recommendations(self):
        txns = [
            Transaction("t1", "u", "income", 1000.0, datetime(2025, 1, 1)),
            Transaction("t2", "u", "income", 9000.0, datetime(2025, 2, 1)),
            Transaction("t3", "u", "expense", 500.0, datetime(2025, 2, 25), category="bills"),
        ]
        result = calculate_credit_score(txns, [], today=TODAY)
        actions = [r.action for r in result.recommendations]

        assert "setup_automatic_payments" in actions
        assert "diversify_income" in actions
        assert "build_savings_plan" in actions
        for rec in result.recommendations:
            assert rec.impact_points >= 0

    def test_savings_plan_carries_goal(self):
        txns = [Transaction("e1", "u", "expense", 900.0, datetime(2025, 3, 2))]
        result = calculate_credit_score(txns, [], today=TODAY)
        plan = next(r for r in result.recommendations if r.action == "build_savings_plan")

        assert plan.details["target_amount"] == 5400
        assert plan.details["months_to_target"] is None

    def test_impact_points_formula(self):
        calculator = CreditScoreCalculator()
        # 35 weight points, half earned
        assert calculator._impact(PAYMENT_HISTORY, 50) == 17.5


class TestIncomeSources:

    def test_monthly_payer(self):
        income = [
            Transaction("t1", "u", "income", 30000.0, datetime(2025, 1, 1), name="Acme Payroll"),
            Transaction("t2", "u", "income", 30000.0, datetime(2025, 1, 31), name="Acme Payroll"),
            Transaction("t3", "u", "income", 500.0, datetime(2025, 1, 20), name="One-off"),
        ]
        sources = identify_consistent_income_sources(income)

        assert len(sources) == 1
        assert sources[0].name == "Acme Payroll"
        assert sources[0].frequency == "monthly"
        assert sources[0].reliability == pytest.approx(2 / 6 * 100)

    def test_gaps_measured_in_date_order(self):
        income = [
            Transaction("t2", "u", "income", 1000.0, datetime(2025, 1, 15), name="Gig"),
            Transaction("t1", "u", "income", 1000.0, datetime(2025, 1, 1), name="Gig"),
        ]
        assert identify_consistent_income_sources(income)[0].frequency == "bi-weekly"


class TestRecurringBills:

    def test_missed_month_counted(self):
        bills = [
            Transaction("b1", "u", "expense", 2000.0, datetime(2025, 1, 10), category="utilities", name="Electric Co"),
            Transaction("b2", "u", "expense", 2100.0, datetime(2025, 2, 10), category="utilities", name="electric co"),
            Transaction("b3", "u", "expense", 1900.0, datetime(2025, 4, 10), category="utilities", name="Electric Co"),
        ]
        recurring = identify_recurring_bills(bills)

        assert len(recurring) == 1
        bill = recurring[0]
        assert bill.due_day == 10
        assert bill.missed_months == 1
        assert bill.impact == 2
        assert bill.average_amount == pytest.approx(2000.0)

    def test_fewer_than_three_months_skipped(self):
        bills = [
            Transaction("b1", "u", "expense", 2000.0, datetime(2025, 1, 10), category="bills", name="Water"),
            Transaction("b2", "u", "expense", 2000.0, datetime(2025, 2, 10), category="bills", name="Water"),
        ]
        assert identify_recurring_bills(bills) == []


class TestModelConfig:

    def test_default_weights_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_CREDIT_CONFIG.weights[PAYMENT_HISTORY] = 1.0
        with pytest.raises(TypeError):
            DEFAULT_CREDIT_CONFIG.recommendation_thresholds[ACCOUNT_HEALTH] = 0
        assert DEFAULT_CREDIT_CONFIG.weights[PAYMENT_HISTORY] == 0.35

    def test_config_copies_caller_weights(self):
        weights = {
            PAYMENT_HISTORY: 1.0,
            INCOME_STABILITY: 0.0,
            FINANCIAL_BEHAVIOR: 0.0,
            ACCOUNT_HEALTH: 0.0,
        }
        config = CreditModelConfig(weights=weights)
        weights[PAYMENT_HISTORY] = 0.0

        assert config.weights[PAYMENT_HISTORY] == 1.0

    def test_default_scoring_unchanged_across_calls(self):
        txns = [Transaction("t1", "u", "expense", 10000.0, datetime(2025, 3, 5), category="bills")]
        first = calculate_credit_score(txns, [], today=TODAY)
        second = calculate_credit_score(txns, [], today=TODAY)
        assert first.score == second.score


class TestRiskBehavior:
    """Penalties subtracted from 100 for large, bunched and outlying amounts."""

    def setup_method(self):
        self.calculator = CreditScoreCalculator()

    def _spread(self, amounts, start=datetime(2025, 1, 1)):
        """One expense per day, so the busiest day holds a single transaction."""
        return [
            Transaction(f"t{i}", "u", "expense", float(amount), start + timedelta(days=i))
            for i, amount in enumerate(amounts)
        ]

    def test_single_outlier(self):
        # mean 100, std ~284.6: 1000 is above 3x the mean and beyond 2 std
        risk = self.calculator._analyze_risk_behavior(self._spread([10] * 10 + [1000]))

        assert risk.large_purchases == 10
        assert risk.frequent_transactions == 5
        assert risk.unusual_activity == 10
        assert risk.score == 75

    def test_large_purchase_penalty_capped_at_40(self):
        # mean ~238.5: six purchases above 3x the mean, none beyond 2 std (~834)
        risk = self.calculator._analyze_risk_behavior(self._spread([10] * 20 + [1000] * 6))

        assert risk.large_purchases == 40
        assert risk.unusual_activity == 0
        assert risk.score == 55

    def test_unusual_activity_penalty_capped_at_30(self):
        # mean 50, std ~196: four amounts of 1010 sit beyond 2 std
        risk = self.calculator._analyze_risk_behavior(self._spread([10] * 96 + [1010] * 4))

        assert risk.unusual_activity == 30
        assert risk.large_purchases == 40
        assert risk.score == 25

    def test_busiest_day_penalty(self):
        day = datetime(2025, 2, 3)
        txns = [Transaction(f"t{i}", "u", "expense", 100.0, day) for i in range(3)]
        risk = self.calculator._analyze_risk_behavior(txns)

        assert risk.frequent_transactions == 15
        assert risk.large_purchases == 0
        assert risk.unusual_activity == 0
        assert risk.score == 85

    def test_busiest_day_penalty_capped_at_30(self):
        day = datetime(2025, 2, 3)
        txns = [Transaction(f"t{i}", "u", "expense", 100.0, day) for i in range(7)]
        assert self.calculator._analyze_risk_behavior(txns).frequent_transactions == 30


class TestFinancialBehavior:

    def setup_method(self):
        self.calculator = CreditScoreCalculator()
        # Jan saves 200 of 1000, Feb saves 100 of 1000
        self.txns = [
            Transaction("i1", "u", "income", 1000.0, datetime(2025, 1, 1)),
            Transaction("e1", "u", "expense", 800.0, datetime(2025, 1, 5)),
            Transaction("i2", "u", "income", 1000.0, datetime(2025, 2, 1)),
            Transaction("e2", "u", "expense", 900.0, datetime(2025, 2, 5)),
        ]

    def test_saving_habits(self):
        saving = self.calculator._analyze_saving_habits(self.txns)

        assert saving.average_monthly_savings == pytest.approx(150)
        assert saving.savings_rate == pytest.approx(15)
        assert saving.score == pytest.approx(30)
        assert saving.months_analyzed == 2

    def test_saving_habits_capped_at_100(self):
        txns = [Transaction("i1", "u", "income", 1000.0, datetime(2025, 1, 1))]
        assert self.calculator._analyze_saving_habits(txns).score == 100

    def test_overspent_month_counts_as_zero_savings(self):
        txns = [
            Transaction("i1", "u", "income", 1000.0, datetime(2025, 1, 1)),
            Transaction("e1", "u", "expense", 1500.0, datetime(2025, 1, 5)),
        ]
        saving = self.calculator._analyze_saving_habits(txns)
        assert saving.average_monthly_savings == 0
        assert saving.score == 0

    def test_spending_patterns(self):
        spending = self.calculator._analyze_spending_patterns(self.txns)

        # mean 850, std 50
        assert spending.average_monthly_expense == pytest.approx(850)
        assert spending.monthly_variation == pytest.approx(50)
        assert spending.score == pytest.approx(100 - 50 / 850 * 100)

    def test_budget_adherence_and_overall(self):
        behavior = self.calculator._analyze_financial_behavior(self.txns)
        spending_score = 100 - 50 / 850 * 100

        assert behavior.budget_adherence.score == pytest.approx(0.6 * spending_score + 0.4 * 30)
        # amounts 1000/800/1000/900 on separate days: only the frequency penalty
        assert behavior.risk_behavior.score == 95
        assert behavior.score == pytest.approx(
            (30 + spending_score + behavior.budget_adherence.score + 95) / 4
        )


class TestIncomeStability:

    def setup_method(self):
        self.calculator = CreditScoreCalculator()

    def test_coefficient_of_variation(self):
        # mean 1250, std 250
        txns = [
            Transaction("i1", "u", "income", 1000.0, datetime(2025, 1, 1)),
            Transaction("i2", "u", "income", 1500.0, datetime(2025, 2, 1)),
        ]
        stability = self.calculator._analyze_income_stability(txns)

        assert stability.average_income == pytest.approx(1250)
        assert stability.monthly_variation == pytest.approx(250)
        assert stability.score == pytest.approx(80)
        assert stability.status == "good"

    def test_floor_at_zero(self):
        # std ~471 exceeds the mean of 334
        txns = [
            Transaction("i1", "u", "income", 1.0, datetime(2025, 1, 1)),
            Transaction("i2", "u", "income", 1.0, datetime(2025, 2, 1)),
            Transaction("i3", "u", "income", 1000.0, datetime(2025, 3, 1)),
        ]
        assert self.calculator._analyze_income_stability(txns).score == 0

    def test_no_income_scores_zero(self):
        txns = [Transaction("e1", "u", "expense", 100.0, datetime(2025, 1, 1))]
        assert self.calculator._analyze_income_stability(txns).score == 0


class TestSavingsGoal:

    def setup_method(self):
        # Average monthly income 1000 and expenses 850
        self.txns = [
            Transaction("i1", "u", "income", 1000.0, datetime(2025, 1, 1)),
            Transaction("e1", "u", "expense", 800.0, datetime(2025, 1, 5)),
            Transaction("i2", "u", "income", 1000.0, datetime(2025, 2, 1)),
            Transaction("e2", "u", "expense", 900.0, datetime(2025, 2, 5)),
        ]

    def test_months_to_target(self):
        goal = savings_goal(self.txns, current_savings=600, target_months=6)

        assert goal["target_amount"] == 5100
        assert goal["monthly_contribution"] == 150
        # 4500 remaining at 150 a month
        assert goal["months_to_target"] == 30

    def test_partial_month_rounds_up(self):
        assert savings_goal(self.txns, current_savings=610, target_months=6)["months_to_target"] == 30
        assert savings_goal(self.txns, current_savings=590, target_months=6)["months_to_target"] == 31

    def test_target_already_met(self):
        assert savings_goal(self.txns, current_savings=10000, target_months=6)["months_to_target"] == 0

    def test_no_surplus(self):
        txns = [Transaction("e1", "u", "expense", 500.0, datetime(2025, 1, 5))]
        goal = savings_goal(txns, current_savings=0, target_months=6)
        assert goal["monthly_contribution"] == 0
        assert goal["months_to_target"] is None
