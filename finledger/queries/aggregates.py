"""
Ledger Queries

DESIGN DECISION: Everything here is READ-ONLY and DERIVED.
Budget spending, dashboard totals and trends are recomputed from the
transaction log on every call. Nothing computed here is ever written back,
so it can never drift from the transactions it summarizes.

Split transactions are counted once:
- Totals and trends count the parent (the real cash movement).
- Budgets and category breakdowns count the children (the real categories).
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finledger.dates import month_bounds, period_window, shift_months
from finledger.models.insights import (
    BudgetStatus,
    CategoryBreakdown,
    DashboardStats,
    DebtRepaymentMethod,
    DebtRepaymentStrategy,
    FinancialMetrics,
    MonthlyTrend,
)
from finledger.models.ledger import (
    Budget,
    SystemCategory,
    Transaction,
    TransactionType,
)
from finledger.queries.debt import calculate_debt_repayment_strategy
from finledger.services.storage import LedgerStorageInterface


ZERO = Decimal("0")


# =============================================================================
# HELPERS
# =============================================================================

def _total(transactions: list[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def _balance(transactions: list[Transaction]) -> Decimal:
    """Income minus expenses."""
    return sum((t.signed_amount for t in transactions), ZERO)


def _is_split_child(transaction: Transaction) -> bool:
    return transaction.parent_transaction_id is not None


def _is_split_parent(transaction: Transaction) -> bool:
    return transaction.category == SystemCategory.SPLIT_TRANSACTION.value


class LedgerQueries:
    """
    Read-side aggregates over the ledger.

    All methods take an optional `today` so results are reproducible.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    # ===== BUDGETS =====

    async def budget_spent(self, budget: Budget, today: Optional[date] = None) -> Decimal:
        """Expenses in the budget's category inside its current window."""
        start, end = period_window(budget.period, today or date.today())
        expenses = await self._storage.list_transactions(
            type=TransactionType.EXPENSE,
            category=budget.category,
            date_from=start,
            date_to=end,
        )
        return _total([t for t in expenses if not _is_split_parent(t)])

    async def budget_statuses(self, today: Optional[date] = None) -> list[BudgetStatus]:
        today = today or date.today()
        statuses = []
        for budget in await self._storage.list_budgets():
            start, end = period_window(budget.period, today)
            spent = await self.budget_spent(budget, today)
            statuses.append(BudgetStatus(
                budget=budget,
                period_start=start,
                period_end=end,
                spent=spent,
                remaining=budget.amount - spent,
            ))
        return statuses

    async def budget_utilization(self, today: Optional[date] = None) -> float:
        """Total spent over total budgeted, in percent. 0 without budgets."""
        statuses = await self.budget_statuses(today)
        budgeted = sum((s.budget.amount for s in statuses), ZERO)
        if budgeted == 0:
            return 0.0
        spent = sum((s.spent for s in statuses), ZERO)
        return float(spent / budgeted * 100)

    # ===== DASHBOARD =====

    async def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        today = today or date.today()
        month_start, month_end = month_bounds(today)

        transactions = [
            t for t in await self._storage.list_transactions()
            if not _is_split_child(t)
        ]
        income = [t for t in transactions if t.type == TransactionType.INCOME]
        expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]

        def in_month(t: Transaction) -> bool:
            return month_start <= t.transaction_date <= month_end

        goals = await self._storage.list_goals()
        liabilities = await self._storage.list_liabilities()

        return DashboardStats(
            total_income=_total(income),
            total_expenses=_total(expenses),
            total_savings=sum((g.current_amount for g in goals), ZERO),
            total_liabilities=sum((l.remaining_amount for l in liabilities), ZERO),
            monthly_income=_total([t for t in income if in_month(t)]),
            monthly_expenses=_total([t for t in expenses if in_month(t)]),
            budget_utilization=await self.budget_utilization(today),
        )

    async def monthly_trends(
        self,
        months: int = 6,
        today: Optional[date] = None,
    ) -> list[MonthlyTrend]:
        """Income and expenses per month, oldest first, ending with this month."""
        today = today or date.today()
        first = shift_months(today, -(months - 1))
        _, last = month_bounds(today)

        transactions = [
            t for t in await self._storage.list_transactions(date_from=first, date_to=last)
            if not _is_split_child(t)
        ]

        trends = []
        for offset in range(months):
            start, end = month_bounds(shift_months(first, offset))
            in_month = [t for t in transactions if start <= t.transaction_date <= end]
            trends.append(MonthlyTrend(
                month=start,
                income=_total([t for t in in_month if t.type == TransactionType.INCOME]),
                expenses=_total([t for t in in_month if t.type == TransactionType.EXPENSE]),
            ))
        return trends

    async def category_breakdown(
        self,
        type: TransactionType = TransactionType.EXPENSE,
        months: int = 1,
        today: Optional[date] = None,
    ) -> list[CategoryBreakdown]:
        """Per-category totals over the last `months` months, largest first."""
        today = today or date.today()
        first = shift_months(today, -(months - 1))
        _, last = month_bounds(today)

        transactions = [
            t for t in await self._storage.list_transactions(
                type=type, date_from=first, date_to=last,
            )
            if not _is_split_parent(t)
        ]

        by_category: dict[str, Decimal] = {}
        for t in transactions:
            by_category[t.category] = by_category.get(t.category, ZERO) + t.amount

        grand_total = sum(by_category.values(), ZERO)
        breakdown = [
            CategoryBreakdown(
                category=category,
                amount=amount,
                percentage=float(amount / grand_total * 100) if grand_total else 0.0,
            )
            for category, amount in by_category.items()
        ]
        breakdown.sort(key=lambda b: (-b.amount, b.category))
        return breakdown

    # ===== TRANSACTIONS =====

    async def search(self, text: str) -> list[Transaction]:
        """
        Transactions whose description or category contains `text`.

        Case-insensitive. Empty text returns every transaction.
        """
        transactions = await self._storage.list_transactions()
        if not text:
            return transactions

        needle = text.lower()
        return [
            t for t in transactions
            if needle in t.description.lower() or needle in t.category.lower()
        ]

    async def get_split_transactions(self, parent_id: UUID) -> list[Transaction]:
        return await self._storage.list_transactions(parent_transaction_id=parent_id)

    # ===== FORECAST INPUTS =====

    async def forecast_metrics(self, today: Optional[date] = None) -> FinancialMetrics:
        """Ratios fed to the forecast agent."""
        stats = await self.dashboard_stats(today)

        monthly_income = float(stats.monthly_income)
        monthly_expenses = float(stats.monthly_expenses)
        total_liabilities = float(stats.total_liabilities)

        savings_rate = 0.0
        debt_to_income = 0.0
        if monthly_income > 0:
            savings_rate = (monthly_income - monthly_expenses) / monthly_income * 100
            debt_to_income = total_liabilities / (monthly_income * 12)

        goals = await self._storage.list_goals()
        liabilities = await self._storage.list_liabilities()
        balance = _balance([
            t for t in await self._storage.list_transactions()
            if not _is_split_child(t)
        ])

        return FinancialMetrics(
            monthly_income=monthly_income,
            monthly_expenses=monthly_expenses,
            total_savings=float(stats.total_savings),
            total_liabilities=total_liabilities,
            savings_rate=savings_rate,
            debt_to_income_ratio=debt_to_income,
            budget_utilization=stats.budget_utilization,
            net_worth=float(balance - stats.total_liabilities),
            goals_count=len(goals),
            liabilities_count=len(liabilities),
        )

    # ===== DEBT =====

    async def debt_repayment_strategy(
        self,
        method: DebtRepaymentMethod = DebtRepaymentMethod.AVALANCHE,
        extra_payment: Decimal = ZERO,
        today: Optional[date] = None,
    ) -> DebtRepaymentStrategy:
        liabilities = await self._storage.list_liabilities()
        return calculate_debt_repayment_strategy(
            liabilities,
            method=method,
            extra_payment=extra_payment,
            start_date=today or date.today(),
        )
