"""
Reconciliation Planners

Pure functions that turn one validated action plus the records it touches
into an ordered ReconciliationPlan. Nothing here performs I/O.

Ordering rules (the engine applies steps in list order):
- add_transaction: transaction, then goal, then liability
- goal_transfer: goal, then emergency fund, then transaction
- liability_payment: transaction, then liability
- add_liability: liability, then income transaction
- add_split_transaction: parent, then each child

Balances are always clamped here, before anything is written:
goals stay inside [0, target], liabilities never drop below 0.
"""

from decimal import Decimal
from typing import Callable

from finledger.models.actions import (
    ActionKind,
    AddLiabilityAction,
    AddSplitTransactionAction,
    AddTransactionAction,
    DeleteTransactionAction,
    EditTransactionAction,
    GoalTransferAction,
    LedgerAction,
    LiabilityPaymentAction,
    TransferDirection,
    TransferSource,
)
from finledger.models.ledger import (
    Goal,
    Liability,
    LiabilityType,
    SystemCategory,
    Transaction,
    TransactionType,
)
from finledger.models.reconciliation import (
    LedgerSnapshot,
    PlannedStep,
    ReconciliationPlan,
    StepOperation,
)


ZERO = Decimal("0")


# =============================================================================
# CLAMPING
# =============================================================================

def clamp_goal_amount(current: Decimal, delta: Decimal, target: Decimal) -> Decimal:
    """New goal balance after applying a signed delta, kept inside [0, target]."""
    return min(max(current + delta, ZERO), target)


def reduce_remaining(remaining: Decimal, payment: Decimal) -> Decimal:
    """New liability balance after a payment, never below zero."""
    return max(ZERO, remaining - payment)


def actual_payment(requested: Decimal, remaining: Decimal) -> Decimal:
    """The part of a requested payment that can actually be applied."""
    return min(requested, remaining)


# =============================================================================
# STEP BUILDERS
# =============================================================================

def _create_transaction_step(transaction: Transaction) -> PlannedStep:
    return PlannedStep(
        operation=StepOperation.CREATE_TRANSACTION,
        entity_type="transaction",
        entity_id=transaction.id,
        record=transaction,
        new_value=transaction.amount,
        description=f"Record {transaction.type.value} '{transaction.category}' of {transaction.amount}",
    )


def _goal_step(goal: Goal, delta: Decimal) -> PlannedStep:
    new_amount = clamp_goal_amount(goal.current_amount, delta, goal.target_amount)
    return PlannedStep(
        operation=StepOperation.UPDATE_GOAL,
        entity_type="goal",
        entity_id=goal.id,
        changes={"current_amount": new_amount},
        previous_value=goal.current_amount,
        new_value=new_amount,
        description=f"Goal '{goal.title}': {goal.current_amount} -> {new_amount}",
    )


def _liability_step(liability: Liability, payment: Decimal) -> PlannedStep:
    new_remaining = reduce_remaining(liability.remaining_amount, payment)
    return PlannedStep(
        operation=StepOperation.UPDATE_LIABILITY,
        entity_type="liability",
        entity_id=liability.id,
        changes={"remaining_amount": new_remaining},
        previous_value=liability.remaining_amount,
        new_value=new_remaining,
        description=f"Liability '{liability.name}': {liability.remaining_amount} -> {new_remaining}",
    )


# =============================================================================
# PLANNERS
# =============================================================================

def plan_add_transaction(
    action: AddTransactionAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    transaction = Transaction(
        type=action.type,
        amount=action.amount,
        category=action.category,
        description=action.description,
        transaction_date=action.transaction_date,
        recurring_transaction_id=action.recurring_transaction_id,
    )
    steps = [_create_transaction_step(transaction)]

    # Tags only apply to expenses; the validator rejects them on income
    if action.type == TransactionType.EXPENSE:
        if snapshot.goal is not None:
            steps.append(_goal_step(snapshot.goal, action.amount))
        if snapshot.liability is not None:
            steps.append(_liability_step(snapshot.liability, action.amount))

    return ReconciliationPlan(action_kind=action.kind, steps=steps)


def plan_goal_transfer(
    action: GoalTransferAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    goal = snapshot.goal
    adding = action.direction == TransferDirection.ADD
    delta = action.amount if adding else -action.amount

    steps = [_goal_step(goal, delta)]

    description = action.description or (
        f"Added to {goal.title}" if adding else f"Withdrawn from {goal.title}"
    )

    if action.source == TransferSource.EMERGENCY_FUND:
        steps.append(_goal_step(snapshot.emergency_fund, -delta))
        suffix = "(from Emergency Fund)" if adding else "(to Emergency Fund)"
        transaction = Transaction(
            type=TransactionType.EXPENSE if adding else TransactionType.INCOME,
            amount=action.amount,
            category=SystemCategory.INTERNAL_TRANSFER.value,
            description=f"{description} {suffix}",
            transaction_date=action.transaction_date,
        )
        steps.append(_create_transaction_step(transaction))
    elif not adding:
        transaction = Transaction(
            type=TransactionType.INCOME,
            amount=action.amount,
            category=SystemCategory.GOAL_WITHDRAWAL.value,
            description=description,
            transaction_date=action.transaction_date,
        )
        steps.append(_create_transaction_step(transaction))
    elif action.deduct_from_balance:
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            amount=action.amount,
            category=SystemCategory.SAVINGS.value,
            description=description,
            transaction_date=action.transaction_date,
        )
        steps.append(_create_transaction_step(transaction))
    # add without deduct: tracking only, no transaction

    return ReconciliationPlan(action_kind=action.kind, steps=steps)


def plan_liability_payment(
    action: LiabilityPaymentAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    liability = snapshot.liability
    actual = actual_payment(action.amount, liability.remaining_amount)
    overpaying = action.amount > liability.remaining_amount

    steps = []
    if action.create_transaction:
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            amount=actual,
            category=SystemCategory.DEBT_PAYMENT.value,
            description=action.description or f"Payment for {liability.name}",
            transaction_date=action.transaction_date,
        )
        steps.append(_create_transaction_step(transaction))
    steps.append(_liability_step(liability, actual))

    prompt = None
    if overpaying:
        prompt = (
            f"The payment of {action.amount} is more than the remaining "
            f"{liability.remaining_amount} on '{liability.name}'. "
            f"Pay {actual} and mark it as paid off?"
        )

    return ReconciliationPlan(
        action_kind=action.kind,
        steps=steps,
        requested_amount=action.amount,
        actual_amount=actual,
        requires_confirmation=overpaying,
        confirmation_prompt=prompt,
    )


def plan_add_liability(
    action: AddLiabilityAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    liability = Liability(
        name=action.name,
        type=action.type,
        total_amount=action.total_amount,
        remaining_amount=action.opening_balance,
        interest_rate=action.interest_rate,
        monthly_payment=action.monthly_payment,
        due_date=action.due_date,
        start_date=action.start_date,
        linked_purchase_id=action.linked_purchase_id,
    )
    steps = [PlannedStep(
        operation=StepOperation.CREATE_LIABILITY,
        entity_type="liability",
        entity_id=liability.id,
        record=liability,
        new_value=liability.remaining_amount,
        description=f"Track {liability.type.value} '{liability.name}' of {liability.total_amount}",
    )]

    if action.type != LiabilityType.PURCHASE and action.add_as_income:
        transaction = Transaction(
            type=TransactionType.INCOME,
            amount=action.total_amount,
            category=SystemCategory.LOAN.value,
            description=f"Loan received: {action.name}",
            transaction_date=action.start_date,
        )
        steps.append(_create_transaction_step(transaction))

    return ReconciliationPlan(action_kind=action.kind, steps=steps)


def plan_edit_transaction(
    action: EditTransactionAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    changes = action.changes.as_update()
    return ReconciliationPlan(
        action_kind=action.kind,
        steps=[PlannedStep(
            operation=StepOperation.UPDATE_TRANSACTION,
            entity_type="transaction",
            entity_id=action.transaction_id,
            changes=changes,
            previous_value=snapshot.transaction.amount if "amount" in changes else None,
            new_value=changes.get("amount"),
            description=f"Edit transaction: {', '.join(sorted(changes))}",
        )],
    )


def plan_delete_transaction(
    action: DeleteTransactionAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    return ReconciliationPlan(
        action_kind=action.kind,
        steps=[PlannedStep(
            operation=StepOperation.DELETE_TRANSACTION,
            entity_type="transaction",
            entity_id=action.transaction_id,
            previous_value=snapshot.transaction.amount,
            description="Delete transaction",
        )],
    )


def plan_add_split_transaction(
    action: AddSplitTransactionAction,
    snapshot: LedgerSnapshot,
) -> ReconciliationPlan:
    parent = Transaction(
        type=TransactionType.EXPENSE,
        amount=action.amount,
        category=SystemCategory.SPLIT_TRANSACTION.value,
        description=action.description,
        transaction_date=action.transaction_date,
    )
    steps = [_create_transaction_step(parent)]

    for part in action.splits:
        child = Transaction(
            type=TransactionType.EXPENSE,
            amount=part.amount,
            category=part.category,
            description=part.description or action.description,
            transaction_date=action.transaction_date,
            parent_transaction_id=parent.id,
        )
        steps.append(_create_transaction_step(child))

    return ReconciliationPlan(action_kind=action.kind, steps=steps)


PLANNERS: dict[str, Callable[..., ReconciliationPlan]] = {
    ActionKind.ADD_TRANSACTION.value: plan_add_transaction,
    ActionKind.GOAL_TRANSFER.value: plan_goal_transfer,
    ActionKind.LIABILITY_PAYMENT.value: plan_liability_payment,
    ActionKind.ADD_LIABILITY.value: plan_add_liability,
    ActionKind.EDIT_TRANSACTION.value: plan_edit_transaction,
    ActionKind.DELETE_TRANSACTION.value: plan_delete_transaction,
    ActionKind.ADD_SPLIT_TRANSACTION.value: plan_add_split_transaction,
}


def plan_action(action: LedgerAction, snapshot: LedgerSnapshot) -> ReconciliationPlan:
    """Build the ordered plan for any action. The action must already be validated."""
    return PLANNERS[action.kind](action, snapshot)
