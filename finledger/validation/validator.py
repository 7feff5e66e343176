"""
Two-Stage Action Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - REFERENCE VALIDATION:
- Every id the action names exists in the loaded snapshot
- The emergency fund exists when the action moves money through it
- This catches stale UI state (a goal deleted in another tab)

STAGE 2 - LEDGER VALIDATION:
- Balance checks (enough money to withdraw, headroom to add)
- Tags that make no sense (goal tag on income)
- Split parts that don't add up
- Suspicious amounts and dates (warnings only)

Stage 2 only runs if stage 1 passes: there is nothing to check a balance
against when the record is missing.

Shape validation (positive amounts, required fields) already happened when
the action model was built, so it is not repeated here.

IMPORTANT: Validation NEVER silently fixes issues. Clamping that the
planner will apply is reported as a warning so the caller can show it.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from finledger.config import LedgerSettings, get_settings
from finledger.models.actions import (
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
    COUNTERPART_CATEGORIES,
    LiabilityType,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from finledger.models.reconciliation import LedgerSnapshot


class ActionValidator:
    """
    Validates a ledger action against the records it touches.

    Pure: works on an already loaded LedgerSnapshot and never calls storage.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # ===== STAGE 1 =====

    def _validate_references(
        self,
        action: LedgerAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        issues = []

        def missing(field: str, what: str, entity_id) -> None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="not_found",
                message=f"{what} {entity_id} does not exist",
                severity="error",
                suggested_fix="Reload the ledger and try again",
            ))

        if isinstance(action, AddTransactionAction):
            if action.goal_id and snapshot.goal is None:
                missing("goal_id", "Goal", action.goal_id)
            if action.liability_id and snapshot.liability is None:
                missing("liability_id", "Liability", action.liability_id)

        elif isinstance(action, GoalTransferAction):
            if snapshot.goal is None:
                missing("goal_id", "Goal", action.goal_id)
            if (
                action.source == TransferSource.EMERGENCY_FUND
                and snapshot.emergency_fund is None
            ):
                issues.append(ValidationIssue(
                    field="source",
                    issue_type="no_emergency_fund",
                    message=(
                        f"No goal with category '{self._settings.emergency_fund_category}' "
                        "exists to act as emergency fund"
                    ),
                    severity="error",
                    suggested_fix="Create an emergency fund goal or transfer manually",
                ))

        elif isinstance(action, LiabilityPaymentAction):
            if snapshot.liability is None:
                missing("liability_id", "Liability", action.liability_id)

        elif isinstance(action, AddLiabilityAction):
            if action.linked_purchase_id and snapshot.transaction is None:
                missing("linked_purchase_id", "Transaction", action.linked_purchase_id)

        elif isinstance(action, (EditTransactionAction, DeleteTransactionAction)):
            if snapshot.transaction is None:
                missing("transaction_id", "Transaction", action.transaction_id)

        return issues

    # ===== STAGE 2 =====

    def _validate_common(
        self,
        amount: Optional[Decimal],
        on_date,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        """Sanity warnings shared by every action that moves money."""
        issues = []

        if amount is not None and amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        max_future_date = snapshot.today + timedelta(
            days=self._settings.future_date_tolerance_days
        )
        if on_date is not None and on_date > max_future_date:
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="future_date",
                message=f"Date ({on_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        return issues

    def _validate_add_transaction(
        self,
        action: AddTransactionAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        issues = []

        if action.type == TransactionType.INCOME and (action.goal_id or action.liability_id):
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message="Only expenses can be tagged to a goal or liability",
                severity="error",
                suggested_fix="Record the transaction as an expense or remove the tag",
            ))
            return issues

        goal = snapshot.goal
        if goal is not None and action.amount > goal.remaining_to_target:
            issues.append(ValidationIssue(
                field="goal_id",
                issue_type="clamped",
                message=(
                    f"Goal '{goal.title}' only needs {goal.remaining_to_target}; "
                    f"its balance will stop at the target of {goal.target_amount}"
                ),
                severity="warning",
            ))

        liability = snapshot.liability
        if liability is not None:
            if liability.is_paid_off:
                issues.append(ValidationIssue(
                    field="liability_id",
                    issue_type="already_paid_off",
                    message=f"Liability '{liability.name}' is already paid off",
                    severity="warning",
                ))
            elif action.amount > liability.remaining_amount:
                issues.append(ValidationIssue(
                    field="liability_id",
                    issue_type="clamped",
                    message=(
                        f"Liability '{liability.name}' only has {liability.remaining_amount} "
                        "remaining; it will be marked as paid off"
                    ),
                    severity="warning",
                ))

        return issues

    def _validate_goal_transfer(
        self,
        action: GoalTransferAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        issues = []
        goal = snapshot.goal
        adding = action.direction == TransferDirection.ADD

        if action.source == TransferSource.EMERGENCY_FUND:
            fund = snapshot.emergency_fund
            if fund.id == goal.id:
                issues.append(ValidationIssue(
                    field="goal_id",
                    issue_type="invalid_value",
                    message="The emergency fund cannot transfer to itself",
                    severity="error",
                ))
                return issues

            # Internal transfers must land exactly, otherwise money appears or vanishes
            source, destination = (fund, goal) if adding else (goal, fund)
            if action.amount > source.current_amount:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="insufficient_funds",
                    message=(
                        f"'{source.title}' only holds {source.current_amount}, "
                        f"cannot move {action.amount}"
                    ),
                    severity="error",
                    suggested_fix=f"Transfer at most {source.current_amount}",
                ))
            if action.amount > destination.remaining_to_target:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="exceeds_target",
                    message=(
                        f"'{destination.title}' can only take {destination.remaining_to_target} "
                        "more before reaching its target"
                    ),
                    severity="error",
                    suggested_fix=f"Transfer at most {destination.remaining_to_target}",
                ))
            return issues

        if adding and action.amount > goal.remaining_to_target:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="clamped",
                message=(
                    f"Goal '{goal.title}' will stop at its target of {goal.target_amount}; "
                    f"the full {action.amount} is still recorded"
                ),
                severity="warning",
            ))
        elif not adding and action.amount > goal.current_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="insufficient_funds",
                message=(
                    f"Goal '{goal.title}' only holds {goal.current_amount}, "
                    f"cannot withdraw {action.amount}"
                ),
                severity="error",
                suggested_fix=f"Withdraw at most {goal.current_amount}",
            ))

        if adding and not action.deduct_from_balance:
            issues.append(ValidationIssue(
                field="deduct_from_balance",
                issue_type="tracking_only",
                message="Goal balance changes without recording a transaction",
                severity="info",
            ))

        return issues

    def _validate_liability_payment(
        self,
        action: LiabilityPaymentAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        issues = []
        liability = snapshot.liability

        if liability.is_paid_off:
            issues.append(ValidationIssue(
                field="liability_id",
                issue_type="already_paid_off",
                message=f"Liability '{liability.name}' is already paid off",
                severity="error",
            ))
            return issues

        if action.amount > liability.remaining_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="overpayment",
                message=(
                    f"Payment of {action.amount} exceeds the remaining "
                    f"{liability.remaining_amount}; only the remaining amount will be paid"
                ),
                severity="info",
            ))

        if not action.create_transaction:
            issues.append(ValidationIssue(
                field="create_transaction",
                issue_type="tracking_only",
                message="Liability balance changes without recording a transaction",
                severity="info",
            ))

        return issues

    def _validate_add_liability(
        self,
        action: AddLiabilityAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        issues = []

        if action.type == LiabilityType.PURCHASE and action.add_as_income:
            issues.append(ValidationIssue(
                field="add_as_income",
                issue_type="ignored",
                message="Purchase liabilities are never recorded as income",
                severity="info",
            ))

        purchase = snapshot.transaction
        if action.linked_purchase_id and purchase is not None:
            if purchase.type != TransactionType.EXPENSE:
                issues.append(ValidationIssue(
                    field="linked_purchase_id",
                    issue_type="invalid_value",
                    message="A purchase can only be linked to an expense transaction",
                    severity="error",
                ))

        if action.due_date < action.start_date:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="inconsistent",
                message="Due date is before start date",
                severity="warning",
                suggested_fix="Please verify both dates",
            ))

        return issues

    def _validate_log_edit(
        self,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        """Edits and deletes leave paired goal/liability balances untouched."""
        transaction = snapshot.transaction
        if transaction.category in COUNTERPART_CATEGORIES:
            return [ValidationIssue(
                field="transaction_id",
                issue_type="balance_not_reversed",
                message=(
                    f"'{transaction.category}' transactions usually moved a goal or "
                    "liability balance; that balance will not be adjusted"
                ),
                severity="warning",
                suggested_fix="Adjust the goal or liability separately if needed",
            )]
        return []

    def _validate_split(
        self,
        action: AddSplitTransactionAction,
    ) -> list[ValidationIssue]:
        difference = abs(action.splits_total - action.amount)
        if difference > self._settings.split_tolerance:
            return [ValidationIssue(
                field="splits",
                issue_type="inconsistent",
                message=(
                    f"Split parts add up to {action.splits_total}, "
                    f"not the total of {action.amount}"
                ),
                severity="error",
                suggested_fix="Adjust the parts so they add up to the total",
            )]
        return []

    def _validate_ledger(
        self,
        action: LedgerAction,
        snapshot: LedgerSnapshot,
    ) -> list[ValidationIssue]:
        if isinstance(action, AddTransactionAction):
            issues = self._validate_add_transaction(action, snapshot)
        elif isinstance(action, GoalTransferAction):
            issues = self._validate_goal_transfer(action, snapshot)
        elif isinstance(action, LiabilityPaymentAction):
            issues = self._validate_liability_payment(action, snapshot)
        elif isinstance(action, AddLiabilityAction):
            issues = self._validate_add_liability(action, snapshot)
        elif isinstance(action, (EditTransactionAction, DeleteTransactionAction)):
            issues = self._validate_log_edit(snapshot)
        elif isinstance(action, AddSplitTransactionAction):
            issues = self._validate_split(action)
        else:
            issues = []

        if isinstance(action, AddLiabilityAction):
            amount, on_date = action.total_amount, None
        elif isinstance(action, EditTransactionAction):
            amount, on_date = action.changes.amount, action.changes.transaction_date
        elif isinstance(action, DeleteTransactionAction):
            amount, on_date = None, None
        else:
            amount, on_date = action.amount, action.transaction_date

        return issues + self._validate_common(amount, on_date, snapshot)

    def validate(
        self,
        action: LedgerAction,
        snapshot: LedgerSnapshot,
    ) -> ValidationResult:
        """
        Run full two-stage validation.

        Returns:
            ValidationResult with all issues found. The action may proceed
            when it has no error-severity issues.
        """
        all_issues = self._validate_references(action, snapshot)

        # Only run stage 2 if stage 1 passes
        if not any(issue.severity == "error" for issue in all_issues):
            all_issues.extend(self._validate_ledger(action, snapshot))

        return ValidationResult(
            action_kind=action.kind,
            is_valid=not any(issue.severity == "error" for issue in all_issues),
            issues=all_issues,
        )
