"""
Ledger Actions

An action is one user intent that moves money: recording a transaction,
moving money in or out of a goal, paying a debt, taking on a debt, or
editing the transaction log.

Actions form a tagged union discriminated by `kind`. Every action model
validates its own shape (positive amounts, required references) so the
reconciliation engine only has to validate against the stored ledger.

DESIGN DECISION: Actions carry ids, never entity snapshots. The engine
loads the current state itself so a stale UI copy can never be written back.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_validator,
)

from finledger.models.ledger import LiabilityType, TransactionType


# =============================================================================
# ENUMS
# =============================================================================

class ActionKind(str, Enum):
    """Discriminator values for ledger actions."""
    ADD_TRANSACTION = "add_transaction"
    GOAL_TRANSFER = "goal_transfer"
    LIABILITY_PAYMENT = "liability_payment"
    ADD_LIABILITY = "add_liability"
    EDIT_TRANSACTION = "edit_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    ADD_SPLIT_TRANSACTION = "add_split_transaction"


class TransferDirection(str, Enum):
    """Whether money goes into or comes out of a goal."""
    ADD = "add"
    WITHDRAW = "withdraw"


class TransferSource(str, Enum):
    """
    Where the counterpart of a goal transfer lives.

    MANUAL means the user's cash balance; EMERGENCY_FUND means the goal
    designated as emergency fund, which makes the transfer internal.
    """
    MANUAL = "manual"
    EMERGENCY_FUND = "emergency_fund"


# =============================================================================
# ACTIONS
# =============================================================================

class _ActionBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class AddTransactionAction(_ActionBase):
    """
    Record a transaction, optionally tagging a goal or a liability.

    A goal tag adds the amount to the goal; a liability tag pays the
    liability down. Tags only make sense on expenses.
    """
    kind: Literal["add_transaction"] = "add_transaction"
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    transaction_date: date = Field(default_factory=date.today)
    goal_id: Optional[UUID] = None
    liability_id: Optional[UUID] = None
    recurring_transaction_id: Optional[UUID] = None


class GoalTransferAction(_ActionBase):
    """Move money into or out of a savings goal."""
    kind: Literal["goal_transfer"] = "goal_transfer"
    goal_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    direction: TransferDirection
    source: TransferSource = TransferSource.MANUAL
    deduct_from_balance: bool = Field(
        default=True,
        description="For manual additions: record the money as spent from the balance"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: date = Field(default_factory=date.today)


class LiabilityPaymentAction(_ActionBase):
    """Pay down a liability."""
    kind: Literal["liability_payment"] = "liability_payment"
    liability_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    create_transaction: bool = True
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: date = Field(default_factory=date.today)


class AddLiabilityAction(_ActionBase):
    """
    Start tracking a new liability.

    For loans and similar debts the borrowed money can be recorded as
    income. A purchase debt never does: the money was already spent, and
    the purchase may instead be linked to its existing expense.
    """
    kind: Literal["add_liability"] = "add_liability"
    name: str = Field(..., min_length=1, max_length=200)
    type: LiabilityType
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    remaining_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        decimal_places=2,
        description="Defaults to the total amount"
    )
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_payment: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: date
    start_date: date = Field(default_factory=date.today)
    add_as_income: bool = True
    linked_purchase_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_amounts(self) -> 'AddLiabilityAction':
        if self.remaining_amount is not None and self.remaining_amount > self.total_amount:
            raise ValueError("Remaining amount cannot exceed the total amount")
        if self.linked_purchase_id and self.type != LiabilityType.PURCHASE:
            raise ValueError("Only purchase liabilities can link a purchase transaction")
        return self

    @property
    def opening_balance(self) -> Decimal:
        if self.remaining_amount is None:
            return self.total_amount
        return self.remaining_amount


class TransactionChanges(_ActionBase):
    """Fields of a transaction that may be edited. Unset fields stay as they are."""
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: Optional[date] = None

    def as_update(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class EditTransactionAction(_ActionBase):
    """Edit a transaction in place. Does not touch goals or liabilities."""
    kind: Literal["edit_transaction"] = "edit_transaction"
    transaction_id: UUID
    changes: TransactionChanges

    @model_validator(mode='after')
    def validate_changes(self) -> 'EditTransactionAction':
        if not self.changes.as_update():
            raise ValueError("Edit must change at least one field")
        return self


class DeleteTransactionAction(_ActionBase):
    """Remove a transaction. Does not touch goals or liabilities."""
    kind: Literal["delete_transaction"] = "delete_transaction"
    transaction_id: UUID


class SplitPart(_ActionBase):
    """One categorized share of a split transaction."""
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class AddSplitTransactionAction(_ActionBase):
    """
    Record one payment that spans several categories.

    The parent keeps the full amount under "Split Transaction"; each part
    becomes a child expense pointing back at the parent.
    """
    kind: Literal["add_split_transaction"] = "add_split_transaction"
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(default="", max_length=500)
    transaction_date: date = Field(default_factory=date.today)
    splits: list[SplitPart] = Field(..., min_length=1)

    @property
    def splits_total(self) -> Decimal:
        return sum((part.amount for part in self.splits), Decimal("0"))


LedgerAction = Annotated[
    Union[
        AddTransactionAction,
        GoalTransferAction,
        LiabilityPaymentAction,
        AddLiabilityAction,
        EditTransactionAction,
        DeleteTransactionAction,
        AddSplitTransactionAction,
    ],
    Field(discriminator="kind"),
]

_action_adapter = TypeAdapter(LedgerAction)


def parse_action(data: dict[str, Any]) -> LedgerAction:
    """
    Parse a raw dict (e.g. a submitted form) into a typed action.

    Raises pydantic.ValidationError if the shape is invalid or `kind`
    is unknown.
    """
    return _action_adapter.validate_python(data)
