"""
Tests for the read-side aggregates.

All figures are derived from a small fixed ledger dated around
Saturday 15 June 2024.
"""

import pytest
import pytest_asyncio
from datetime import date
from decimal import Decimal

from conftest import make_goal, make_liability
from finledger.dates import add_months, month_bounds, period_window, shift_months
from finledger.models import Budget, BudgetPeriod, Transaction, TransactionType
from finledger.queries import LedgerQueries


TODAY = date(2024, 6, 15)


def _txn(type_, amount, category, on, description="", parent=None):
    return Transaction(
        type=type_,
        amount=Decimal(amount),
        category=category,
        description=description,
        transaction_date=on,
        parent_transaction_id=parent,
    )


@pytest_asyncio.fixture
async def ledger(storage):
    """
    June: salary 3000, a 100 split (Food 70 / Shopping 30), Food 20.
    May: salary 1000, Food 50.
    """
    income, expense = TransactionType.INCOME, TransactionType.EXPENSE

    parent = _txn(expense, "100", "Split Transaction", date(2024, 6, 3), "Supermarket")
    for txn in (
        _txn(income, "3000", "Salary", date(2024, 6, 1), "June pay"),
        _txn(income, "1000", "Salary", date(2024, 5, 1), "May pay"),
        parent,
        _txn(expense, "70", "Food", date(2024, 6, 3), "Supermarket", parent=parent.id),
        _txn(expense, "30", "Shopping", date(2024, 6, 3), "Kitchen towels", parent=parent.id),
        _txn(expense, "20", "Food", date(2024, 6, 12), "Lunch"),
        _txn(expense, "50", "Food", date(2024, 5, 20), "Takeaway"),
    ):
        await storage.create_transaction(txn)

    await storage.create_goal(make_goal(current="150"))
    await storage.create_liability(make_liability(remaining="400", total="1000"))
    await storage.create_budget(Budget(category="Food", amount=Decimal("200")))
    return storage


class TestCalendar:
    """Date helpers."""

    def test_period_windows(self):
        """Test weekly, monthly and yearly windows."""
        assert period_window(BudgetPeriod.WEEKLY, TODAY) == (date(2024, 6, 10), date(2024, 6, 16))
        assert period_window(BudgetPeriod.MONTHLY, TODAY) == (date(2024, 6, 1), date(2024, 6, 30))
        assert period_window(BudgetPeriod.YEARLY, TODAY) == (date(2024, 1, 1), date(2024, 12, 31))

    @pytest.mark.parametrize("base,months,expected", [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2024, 3, 15), -3, date(2023, 12, 15)),
    ])
    def test_add_months_clamps_day(self, base, months, expected):
        """Test month arithmetic never overflows the month."""
        assert add_months(base, months) == expected

    def test_month_helpers(self):
        assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
        assert shift_months(date(2024, 1, 15), -1) == date(2023, 12, 1)


class TestBudgets:
    """Budget spending is derived, never stored."""

    @pytest.mark.asyncio
    async def test_spent_counts_split_parts_not_parent(self, ledger):
        """Test the Food split part counts and May spending doesn't."""
        queries = LedgerQueries(ledger)
        [status] = await queries.budget_statuses(today=TODAY)

        assert status.spent == Decimal("90")
        assert status.remaining == Decimal("110")
        assert status.period_start == date(2024, 6, 1)

    @pytest.mark.asyncio
    async def test_weekly_budget_window(self, ledger):
        """Test a weekly budget only sees this week's expenses."""
        queries = LedgerQueries(ledger)
        weekly = Budget(category="Food", amount=Decimal("50"), period=BudgetPeriod.WEEKLY)
        assert await queries.budget_spent(weekly, today=TODAY) == Decimal("20")

    @pytest.mark.asyncio
    async def test_utilization_without_budgets(self, storage):
        """Test utilization is zero when nothing is budgeted."""
        assert await LedgerQueries(storage).budget_utilization(today=TODAY) == 0.0


class TestDashboard:
    """Dashboard totals and trends."""

    @pytest.mark.asyncio
    async def test_dashboard_stats(self, ledger):
        """Test split parts are not double counted in totals."""
        stats = await LedgerQueries(ledger).dashboard_stats(today=TODAY)

        assert stats.total_income == Decimal("4000")
        assert stats.total_expenses == Decimal("170")
        assert stats.monthly_income == Decimal("3000")
        assert stats.monthly_expenses == Decimal("120")
        assert stats.total_savings == Decimal("150")
        assert stats.total_liabilities == Decimal("400")
        assert stats.budget_utilization == pytest.approx(45.0)

    @pytest.mark.asyncio
    async def test_monthly_trends_oldest_first(self, ledger):
        """Test one entry per month, including empty months."""
        trends = await LedgerQueries(ledger).monthly_trends(months=3, today=TODAY)

        assert [t.month for t in trends] == [date(2024, 4, 1), date(2024, 5, 1), date(2024, 6, 1)]
        assert [(t.income, t.expenses) for t in trends] == [
            (Decimal("0"), Decimal("0")),
            (Decimal("1000"), Decimal("50")),
            (Decimal("3000"), Decimal("120")),
        ]

    @pytest.mark.asyncio
    async def test_category_breakdown(self, ledger):
        """Test split parts appear under their own categories."""
        breakdown = await LedgerQueries(ledger).category_breakdown(today=TODAY)

        assert [(b.category, b.amount) for b in breakdown] == [
            ("Food", Decimal("90")),
            ("Shopping", Decimal("30")),
        ]
        assert breakdown[0].percentage == pytest.approx(75.0)

    @pytest.mark.asyncio
    async def test_forecast_metrics(self, ledger):
        """Test the ratios handed to the forecast."""
        metrics = await LedgerQueries(ledger).forecast_metrics(today=TODAY)

        assert metrics.savings_rate == pytest.approx(96.0)
        assert metrics.debt_to_income_ratio == pytest.approx(400 / 36000)
        assert metrics.net_worth == pytest.approx(3430.0)
        assert (metrics.goals_count, metrics.liabilities_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_forecast_metrics_without_income(self, storage):
        """Test ratios stay at zero with no income this month."""
        metrics = await LedgerQueries(storage).forecast_metrics(today=TODAY)
        assert metrics.savings_rate == 0.0
        assert metrics.debt_to_income_ratio == 0.0

    @pytest.mark.asyncio
    async def test_net_worth_can_go_negative(self, storage):
        """Test expenses and debt beyond income give a negative net worth."""
        await storage.create_transaction(
            _txn(TransactionType.INCOME, "100", "Salary", date(2024, 6, 1))
        )
        await storage.create_transaction(
            _txn(TransactionType.EXPENSE, "250", "Food", date(2024, 6, 2))
        )
        await storage.create_liability(make_liability(remaining="300"))

        metrics = await LedgerQueries(storage).forecast_metrics(today=TODAY)
        assert metrics.net_worth == pytest.approx(-450.0)


class TestSearch:
    @pytest.mark.asyncio
    async def test_matches_description_or_category(self, ledger):
        """Test case-insensitive search over both fields."""
        queries = LedgerQueries(ledger)

        assert len(await queries.search("SALARY")) == 2
        assert {t.description for t in await queries.search("towels")} == {"Kitchen towels"}
        assert len(await queries.search("")) == 7

    @pytest.mark.asyncio
    async def test_split_parts_of_parent(self, ledger):
        """Test split parts are found through their parent."""
        queries = LedgerQueries(ledger)
        [parent] = await queries.search("split transaction")

        parts = await queries.get_split_transactions(parent.id)
        assert sorted(t.category for t in parts) == ["Food", "Shopping"]
