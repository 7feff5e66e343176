"""
Ledger Reconciliation Engine

Ties together snapshot loading, validation, planning, confirmation and
sequential execution for one ledger action.

Flow:
1. Load → fetch the records the action names (goal, emergency fund,
   liability, transaction)
2. Validate → two-stage validation; any error aborts before a write
3. Plan → pure, ordered list of clamped writes
4. Confirm → overpayments need the caller's explicit approval
5. Apply → each step awaited in order, each step audited

DESIGN DECISION: There is no rollback. A storage failure halfway through a
plan raises ReconciliationFailedError naming what was already written and
what failed, so the caller (or the user) can repair it. Retrying transient
failures is the storage backend's job, not the engine's.
"""

import inspect
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from finledger.audit import AuditLogger, create_correlation_id
from finledger.config import LedgerSettings, get_settings
from finledger.models.actions import (
    AddLiabilityAction,
    AddTransactionAction,
    DeleteTransactionAction,
    EditTransactionAction,
    GoalTransferAction,
    LedgerAction,
    LiabilityPaymentAction,
    TransferSource,
    parse_action,
)
from finledger.models.audit import AuditEventBuilder
from finledger.models.ledger import Goal, ValidationIssue
from finledger.models.reconciliation import (
    AppliedStep,
    LedgerSnapshot,
    PlannedStep,
    ReconciliationPlan,
    ReconciliationResult,
    StepOperation,
)
from finledger.reconciliation.planner import plan_action
from finledger.services.storage import LedgerStorageInterface
from finledger.validation import ActionValidator


logger = structlog.get_logger(__name__)

# Receives the confirmation prompt, returns (or resolves to) the user's answer
ConfirmCallback = Callable[[str], Union[bool, Awaitable[bool]]]


def _parse(raw: dict) -> LedgerAction:
    """Parse a raw action, reporting shape errors as a LedgerValidationError."""
    try:
        return parse_action(raw)
    except ValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in error["loc"]) or "action",
                issue_type="invalid_value",
                message=error["msg"],
                severity="error",
            )
            for error in e.errors()
        ]
        raise LedgerValidationError(str(raw.get("kind", "unknown")), issues) from e


class LedgerReconciler:
    """
    Applies ledger actions so balances stay consistent with the
    transaction log.

    The engine holds no state between calls; every reconcile loads what it
    needs fresh from storage.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[ActionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().ledger
        self._validator = validator or ActionValidator(self._settings)
        self._audit_logger = audit_logger

    # ===== LOADING =====

    async def find_emergency_fund(self) -> Optional[Goal]:
        """The goal whose category marks it as emergency fund, if any."""
        category = self._settings.emergency_fund_category
        for goal in await self._storage.list_goals():
            if goal.is_emergency_fund(category):
                return goal
        return None

    async def load_snapshot(self, action: LedgerAction) -> LedgerSnapshot:
        """Fetch the stored records an action touches."""
        snapshot = LedgerSnapshot()

        if isinstance(action, AddTransactionAction):
            if action.goal_id:
                snapshot.goal = await self._storage.get_goal(action.goal_id)
            if action.liability_id:
                snapshot.liability = await self._storage.get_liability(action.liability_id)

        elif isinstance(action, GoalTransferAction):
            snapshot.goal = await self._storage.get_goal(action.goal_id)
            if action.source == TransferSource.EMERGENCY_FUND:
                snapshot.emergency_fund = await self.find_emergency_fund()

        elif isinstance(action, LiabilityPaymentAction):
            snapshot.liability = await self._storage.get_liability(action.liability_id)

        elif isinstance(action, AddLiabilityAction):
            if action.linked_purchase_id:
                snapshot.transaction = await self._storage.get_transaction(
                    action.linked_purchase_id
                )

        elif isinstance(action, (EditTransactionAction, DeleteTransactionAction)):
            snapshot.transaction = await self._storage.get_transaction(action.transaction_id)

        return snapshot

    # ===== PLANNING =====

    def _build_plan(
        self,
        action: LedgerAction,
        snapshot: LedgerSnapshot,
    ) -> tuple[Optional[ReconciliationPlan], list[ValidationIssue]]:
        result = self._validator.validate(action, snapshot)
        if not result.is_valid:
            return None, result.issues

        plan = plan_action(action, snapshot)
        plan.warnings = result.warnings
        return plan, result.issues

    async def plan(self, action: Union[LedgerAction, dict]) -> ReconciliationPlan:
        """
        Compute the plan for an action without writing anything.

        Raises:
            LedgerValidationError: If the action is invalid against the ledger
        """
        if isinstance(action, dict):
            action = _parse(action)

        snapshot = await self.load_snapshot(action)
        plan, issues = self._build_plan(action, snapshot)
        if plan is None:
            raise LedgerValidationError(action.kind, issues)
        return plan

    # ===== EXECUTION =====

    async def reconcile(
        self,
        action: Union[LedgerAction, dict],
        confirm: Optional[ConfirmCallback] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationResult:
        """
        Validate, plan and apply one action.

        Args:
            action: A typed action, or a raw dict with a `kind` key
            confirm: Called with a prompt when the plan needs approval
                     (liability overpayment). May be sync or async.
            correlation_id: Shared by every audit event of this call

        Returns:
            ReconciliationResult with every applied step

        Raises:
            LedgerValidationError: Nothing was written
            OverpaymentNotConfirmedError: Nothing was written
            ReconciliationFailedError: Some steps were written, one failed
        """
        correlation_id = correlation_id or create_correlation_id()

        if isinstance(action, dict):
            try:
                action = _parse(action)
            except LedgerValidationError as e:
                if self._audit_logger:
                    await self._audit_logger.log_validation_failed(
                        action_kind=e.action_kind,
                        issues=[issue.model_dump() for issue in e.issues],
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_started(
                action_kind=action.kind,
                correlation_id=correlation_id,
            )

        snapshot = await self.load_snapshot(action)
        plan, issues = self._build_plan(action, snapshot)

        if plan is None:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    action_kind=action.kind,
                    issues=[issue.model_dump() for issue in issues],
                    correlation_id=correlation_id,
                )
            raise LedgerValidationError(action.kind, issues)

        if plan.requires_confirmation:
            await self._confirm(plan, snapshot, confirm, correlation_id)

        applied = await self._apply(plan, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_completed(
                action_kind=action.kind,
                step_count=len(applied),
                transaction_count=plan.transaction_count,
                correlation_id=correlation_id,
            )

        return ReconciliationResult(
            action_kind=action.kind,
            correlation_id=correlation_id,
            plan=plan,
            applied_steps=applied,
            warnings=plan.warnings,
        )

    async def _confirm(
        self,
        plan: ReconciliationPlan,
        snapshot: LedgerSnapshot,
        confirm: Optional[ConfirmCallback],
        correlation_id: UUID,
    ) -> None:
        confirmed = False
        if confirm is not None:
            answer = confirm(plan.confirmation_prompt)
            if inspect.isawaitable(answer):
                answer = await answer
            confirmed = bool(answer)

        liability_id = snapshot.liability.id
        if self._audit_logger:
            await self._audit_logger.log_overpayment_decision(
                liability_id=liability_id,
                requested=plan.requested_amount,
                actual=plan.actual_amount,
                confirmed=confirmed,
                correlation_id=correlation_id,
            )

        if not confirmed:
            raise OverpaymentNotConfirmedError(
                liability_id=liability_id,
                requested=plan.requested_amount,
                remaining=plan.actual_amount,
            )

    async def _apply(
        self,
        plan: ReconciliationPlan,
        correlation_id: UUID,
    ) -> list[AppliedStep]:
        applied: list[AppliedStep] = []

        for step in plan.steps:
            try:
                result = await self._apply_step(step)
            except Exception as e:
                logger.error(
                    "reconciliation_step_failed",
                    action_kind=plan.action_kind,
                    operation=step.operation.value,
                    entity_id=str(step.entity_id),
                    applied_count=len(applied),
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_reconciliation_failed(
                        action_kind=plan.action_kind,
                        failed_operation=step.operation.value,
                        applied_count=len(applied),
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise ReconciliationFailedError(
                    action_kind=plan.action_kind,
                    applied_steps=applied,
                    failed_step=step,
                    cause=e,
                ) from e

            applied.append(AppliedStep(step=step, result=result))
            await self._audit_step(step, correlation_id)

        return applied

    async def _apply_step(self, step: PlannedStep) -> Any:
        if step.operation == StepOperation.CREATE_TRANSACTION:
            return await self._storage.create_transaction(step.record)
        if step.operation == StepOperation.UPDATE_TRANSACTION:
            return await self._storage.update_transaction(step.entity_id, step.changes)
        if step.operation == StepOperation.DELETE_TRANSACTION:
            await self._storage.delete_transaction(step.entity_id)
            return None
        if step.operation == StepOperation.UPDATE_GOAL:
            return await self._storage.update_goal(step.entity_id, step.changes)
        if step.operation == StepOperation.CREATE_LIABILITY:
            return await self._storage.create_liability(step.record)
        if step.operation == StepOperation.UPDATE_LIABILITY:
            return await self._storage.update_liability(step.entity_id, step.changes)
        raise ValueError(f"Unknown step operation: {step.operation}")

    # ===== AUDIT =====

    async def _audit_step(self, step: PlannedStep, correlation_id: UUID) -> None:
        if not self._audit_logger:
            return

        if step.operation == StepOperation.CREATE_TRANSACTION:
            event = AuditEventBuilder.transaction_recorded(
                transaction_id=step.entity_id,
                transaction_type=step.record.type.value,
                category=step.record.category,
                amount=step.record.amount,
                correlation_id=correlation_id,
            )
        elif step.operation == StepOperation.UPDATE_TRANSACTION:
            event = AuditEventBuilder.transaction_updated(
                transaction_id=step.entity_id,
                changed_fields=sorted(step.changes),
                correlation_id=correlation_id,
            )
        elif step.operation == StepOperation.DELETE_TRANSACTION:
            event = AuditEventBuilder.transaction_deleted(
                transaction_id=step.entity_id,
                correlation_id=correlation_id,
            )
        elif step.operation == StepOperation.UPDATE_GOAL:
            event = AuditEventBuilder.goal_balance_updated(
                goal_id=step.entity_id,
                previous=step.previous_value,
                new=step.new_value,
                correlation_id=correlation_id,
            )
        elif step.operation == StepOperation.CREATE_LIABILITY:
            event = AuditEventBuilder.liability_created(
                liability_id=step.entity_id,
                name=step.record.name,
                liability_type=step.record.type.value,
                total_amount=step.record.total_amount,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.liability_balance_updated(
                liability_id=step.entity_id,
                previous=step.previous_value,
                new=step.new_value,
                correlation_id=correlation_id,
            )

        await self._audit_logger.log(event)


class ReconciliationError(Exception):
    """Base exception for reconciliation."""
    pass


class LedgerValidationError(ReconciliationError):
    """Action rejected before any write."""

    def __init__(self, action_kind: str, issues: list[ValidationIssue]):
        self.action_kind = action_kind
        self.issues = issues
        errors = [issue.message for issue in issues if issue.severity == "error"]
        super().__init__(f"{action_kind} rejected: {'; '.join(errors) or 'not confirmed'}")


class OverpaymentNotConfirmedError(LedgerValidationError):
    """The payment exceeds the remaining balance and the user did not approve the cap."""

    def __init__(self, liability_id: UUID, requested: Decimal, remaining: Decimal):
        self.liability_id = liability_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            "liability_payment",
            [ValidationIssue(
                field="amount",
                issue_type="overpayment_not_confirmed",
                message=(
                    f"Payment of {requested} exceeds the remaining {remaining} "
                    "and was not confirmed"
                ),
                severity="error",
                suggested_fix=f"Confirm paying {remaining}, or pay at most {remaining}",
            )],
        )


class ReconciliationFailedError(ReconciliationError):
    """
    A storage write failed partway through a plan.

    Steps in `applied_steps` are persisted; `failed_step` and everything
    after it are not.
    """

    def __init__(
        self,
        action_kind: str,
        applied_steps: list[AppliedStep],
        failed_step: PlannedStep,
        cause: Exception,
    ):
        self.action_kind = action_kind
        self.applied_steps = applied_steps
        self.failed_step = failed_step
        self.cause = cause
        super().__init__(
            f"{action_kind} failed at {failed_step.operation.value} "
            f"after {len(applied_steps)} applied steps: {cause}"
        )
