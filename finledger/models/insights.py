"""
Advisory and Analytics Models

Read-side shapes: dashboard figures, forecast inputs and outputs,
categorization suggestions and debt repayment projections.

None of these are persisted. Projections and ratios are floats; figures
summed straight from the ledger stay Decimal.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from finledger.models.ledger import Budget, TransactionType


# =============================================================================
# CATEGORIZATION
# =============================================================================

class CategorySuggestion(BaseModel):
    """
    Suggested type and category for a free-text description.

    Advisory only: a suggestion never blocks submitting a transaction.
    """

    type: TransactionType
    category: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    fallback: bool = Field(
        default=False,
        description="True when produced by the local keyword rules"
    )


# =============================================================================
# READ-SIDE AGGREGATES
# =============================================================================

class BudgetStatus(BaseModel):
    """A budget together with what has been spent in its current window."""

    budget: Budget
    period_start: date
    period_end: date
    spent: Decimal
    remaining: Decimal

    @property
    def utilization(self) -> float:
        """Percent of the budget consumed."""
        if self.budget.amount == 0:
            return 0.0
        return float(self.spent / self.budget.amount * 100)

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.budget.amount


class DashboardStats(BaseModel):
    """Headline numbers for the whole ledger."""

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    total_savings: Decimal = Field(
        default=Decimal("0"),
        description="Sum of goal balances"
    )
    total_liabilities: Decimal = Field(
        default=Decimal("0"),
        description="Sum of remaining liability balances"
    )
    monthly_income: Decimal = Decimal("0")
    monthly_expenses: Decimal = Decimal("0")
    budget_utilization: float = Field(
        default=0.0,
        description="Total spent over total budgeted, in percent"
    )


class MonthlyTrend(BaseModel):
    """Income and expenses for one calendar month."""

    month: date = Field(..., description="First day of the month")
    income: Decimal
    expenses: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


class CategoryBreakdown(BaseModel):
    """Share of one category in a type's total."""

    category: str
    amount: Decimal
    percentage: float


# =============================================================================
# FORECAST
# =============================================================================

class FinancialMetrics(BaseModel):
    """Inputs of the financial health forecast."""

    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    total_savings: float = 0.0
    total_liabilities: float = 0.0
    savings_rate: float = Field(
        default=0.0,
        description="Percent of monthly income left after expenses"
    )
    debt_to_income_ratio: float = Field(
        default=0.0,
        description="Liabilities over yearly income"
    )
    budget_utilization: float = 0.0
    net_worth: float = 0.0
    goals_count: int = 0
    liabilities_count: int = 0


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Recommendation(BaseModel):
    """One actionable recommendation."""

    title: str
    description: str
    priority: RecommendationPriority = RecommendationPriority.MEDIUM


class FinancialForecast(BaseModel):
    """Health assessment and outlook produced by the forecast agent."""

    summary: str
    forecast: str
    recommendations: list[Recommendation] = Field(default_factory=list, max_length=3)
    health_score: int = Field(..., ge=0, le=100)
    fallback: bool = False


# =============================================================================
# DEBT REPAYMENT
# =============================================================================

class DebtRepaymentMethod(str, Enum):
    """
    Order in which extra money is thrown at debts.

    AVALANCHE: highest interest rate first.
    SNOWBALL: smallest balance first.
    """
    AVALANCHE = "avalanche"
    SNOWBALL = "snowball"


class ScheduledPayment(BaseModel):
    payment_date: date
    payment: float
    principal: float
    interest: float
    remaining_balance: float


class DebtPaymentPlan(BaseModel):
    """Projected payoff of one liability."""

    liability_id: UUID
    name: str
    starting_balance: float
    interest_rate: float
    monthly_payment: float
    payoff_date: Optional[date] = Field(
        default=None,
        description="None when the debt is not paid off within the horizon"
    )
    total_interest: float = 0.0
    payments: list[ScheduledPayment] = Field(default_factory=list)


class DebtRepaymentStrategy(BaseModel):
    """Projection for all active liabilities under one method."""

    method: DebtRepaymentMethod
    extra_payment: float = 0.0
    total_months: int = 0
    total_interest_paid: float = 0.0
    total_paid: float = 0.0
    payoff_date: Optional[date] = None
    debt_plans: list[DebtPaymentPlan] = Field(default_factory=list)

    @property
    def is_fully_paid_off(self) -> bool:
        return all(plan.payoff_date is not None for plan in self.debt_plans)
