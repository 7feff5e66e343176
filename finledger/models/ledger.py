"""
Core Ledger Models

These models define the strict schemas for every record the ledger keeps.
They are designed to:
1. Enforce the balance invariants at runtime (a Goal can never hold more
   than its target, a Liability can never owe more than it started with)
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is always Decimal. Floats only appear in the
advisory/analytics layer where the numbers are presented, never persisted.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of cash movement."""
    INCOME = "income"
    EXPENSE = "expense"


class LiabilityType(str, Enum):
    """
    Kinds of debt a user can track.

    PURCHASE is special: the cash was already spent on something, so
    creating the liability never records incoming money.
    """
    LOAN = "loan"
    CREDIT_CARD = "credit_card"
    MORTGAGE = "mortgage"
    PURCHASE = "purchase"
    OTHER = "other"


class BudgetPeriod(str, Enum):
    """Window a budget amount applies to."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurrenceFrequency(str, Enum):
    """How often a recurring template materializes."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SystemCategory(str, Enum):
    """
    Categories the reconciliation engine writes on its own.

    User categories are free text; these are the ones with a fixed meaning.
    """
    SAVINGS = "Savings"
    GOAL_WITHDRAWAL = "Goal Withdrawal"
    INTERNAL_TRANSFER = "Internal Transfer"
    DEBT_PAYMENT = "Debt Payment"
    LOAN = "Loan"
    SPLIT_TRANSACTION = "Split Transaction"
    OTHER = "Other"


# Categories whose transactions are usually the cash side of a goal or
# liability mutation. Editing/deleting them leaves that mutation in place.
COUNTERPART_CATEGORIES = frozenset({
    SystemCategory.SAVINGS.value,
    SystemCategory.GOAL_WITHDRAWAL.value,
    SystemCategory.INTERNAL_TRANSFER.value,
    SystemCategory.DEBT_PAYMENT.value,
    SystemCategory.LOAN.value,
})


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    One entry in the transaction log.

    Amounts are always positive; `type` carries the direction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    transaction_date: date = Field(
        default_factory=date.today,
        description="Date the money moved"
    )
    recurring_transaction_id: Optional[UUID] = Field(
        default=None,
        description="Recurring template this transaction was materialized from"
    )
    parent_transaction_id: Optional[UUID] = Field(
        default=None,
        description="Parent of a split transaction"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount with income positive and expense negative."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


class Goal(BaseModel):
    """
    A savings goal.

    CRITICAL: `current_amount` is a running balance. It is only moved by the
    reconciliation engine and must stay inside [0, target_amount].
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    target_amount: Decimal = Field(..., gt=0, decimal_places=2)
    current_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        decimal_places=2,
    )
    target_date: date
    category: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_balance(self) -> 'Goal':
        if self.current_amount > self.target_amount:
            raise ValueError("Goal balance cannot exceed its target amount")
        return self

    @property
    def remaining_to_target(self) -> Decimal:
        return self.target_amount - self.current_amount

    def is_emergency_fund(self, emergency_category: str = "Emergency") -> bool:
        return self.category.strip().lower() == emergency_category.strip().lower()


class Liability(BaseModel):
    """
    A debt being paid down.

    `remaining_amount` only ever decreases through payments and stays inside
    [0, total_amount].
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    type: LiabilityType
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    remaining_amount: Decimal = Field(..., ge=0, decimal_places=2)
    interest_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Annual interest rate in percent"
    )
    monthly_payment: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: date
    start_date: date = Field(default_factory=date.today)
    linked_purchase_id: Optional[UUID] = Field(
        default=None,
        description="Expense transaction this purchase debt paid for"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_balance(self) -> 'Liability':
        if self.remaining_amount > self.total_amount:
            raise ValueError("Remaining amount cannot exceed the total amount")
        if self.linked_purchase_id and self.type != LiabilityType.PURCHASE:
            raise ValueError("Only purchase liabilities can link a purchase transaction")
        return self

    @property
    def is_paid_off(self) -> bool:
        return self.remaining_amount == 0


class Budget(BaseModel):
    """
    Spending limit for one category.

    There is deliberately no `spent` field: spending is derived from the
    transaction log (see finledger.queries).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RecurringTransaction(BaseModel):
    """Template that periodically materializes into a Transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    next_occurrence_date: date
    last_processed_date: Optional[date] = None
    is_active: bool = True
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    max_occurrences: Optional[int] = Field(default=None, ge=1)
    current_occurrences: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurringTransaction':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'not_found', 'invalid_value', 'insufficient_funds')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of validating one action against the current ledger state."""

    action_kind: str
    validated_at: datetime = Field(default_factory=datetime.utcnow)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
