"""
Reconciliation Plan Models

A plan is the ordered list of writes one action turns into. It is computed
without touching storage, so callers can inspect it (or show it to the
user) before anything is persisted.

DESIGN DECISION: Each step carries the exact values to write. Clamping
happens while planning; executing a plan never recomputes anything.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from finledger.models.ledger import Goal, Liability, Transaction


class LedgerSnapshot(BaseModel):
    """
    The stored records one action touches, loaded before planning.

    `transaction` is the edit/delete target, or the linked purchase of a
    new purchase liability.
    """

    goal: Optional[Goal] = None
    emergency_fund: Optional[Goal] = None
    liability: Optional[Liability] = None
    transaction: Optional[Transaction] = None
    today: date = Field(default_factory=date.today)


class StepOperation(str, Enum):
    """Storage operation a plan step performs."""
    CREATE_TRANSACTION = "create_transaction"
    UPDATE_TRANSACTION = "update_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    UPDATE_GOAL = "update_goal"
    CREATE_LIABILITY = "create_liability"
    UPDATE_LIABILITY = "update_liability"


class PlannedStep(BaseModel):
    """
    One write in a reconciliation plan.

    Create steps carry the full `record`; update steps carry `changes`.
    Balance updates also carry the value before and after, for auditing.
    """

    operation: StepOperation
    entity_type: str = Field(
        ...,
        description="'transaction', 'goal' or 'liability'"
    )
    entity_id: UUID
    record: Optional[Union[Transaction, Liability]] = None
    changes: dict[str, Any] = Field(default_factory=dict)
    previous_value: Optional[Decimal] = None
    new_value: Optional[Decimal] = None
    description: str = ""

    @property
    def creates_transaction(self) -> bool:
        return self.operation == StepOperation.CREATE_TRANSACTION


class ReconciliationPlan(BaseModel):
    """Ordered side effects for one action."""

    action_kind: str
    steps: list[PlannedStep] = Field(default_factory=list)

    # Liability payments: what was asked versus what will be paid
    requested_amount: Optional[Decimal] = None
    actual_amount: Optional[Decimal] = None

    requires_confirmation: bool = Field(
        default=False,
        description="True when the user must approve before the plan runs"
    )
    confirmation_prompt: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def transaction_count(self) -> int:
        return sum(1 for step in self.steps if step.creates_transaction)

    @property
    def is_tracking_only(self) -> bool:
        """True when balances move but no cash movement is recorded."""
        return bool(self.steps) and self.transaction_count == 0


class AppliedStep(BaseModel):
    """A plan step that was persisted, with what storage returned."""

    step: PlannedStep
    result: Optional[Union[Transaction, Goal, Liability]] = None
    applied_at: datetime = Field(default_factory=datetime.utcnow)


class ReconciliationResult(BaseModel):
    """Outcome of a fully applied plan."""

    action_kind: str
    correlation_id: UUID
    plan: ReconciliationPlan
    applied_steps: list[AppliedStep] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def transactions(self) -> list[Transaction]:
        """Transactions created by this action, in creation order."""
        return [
            applied.result
            for applied in self.applied_steps
            if applied.step.creates_transaction and isinstance(applied.result, Transaction)
        ]

    @property
    def goals(self) -> list[Goal]:
        return [a.result for a in self.applied_steps if isinstance(a.result, Goal)]

    @property
    def liabilities(self) -> list[Liability]:
        return [a.result for a in self.applied_steps if isinstance(a.result, Liability)]
