"""
Recurring Transaction Processing

Turns due recurring templates into real transactions. Each occurrence goes
through the reconciliation engine as an ordinary `add_transaction`, so it
is validated and audited like anything the user enters by hand.

DESIGN DECISION: A template catches up on every missed occurrence up to
`today`, one transaction per occurrence, dated on the occurrence itself.
A template is deactivated (instead of materialized) once its next
occurrence falls after `end_date` or it has reached `max_occurrences`.

Creating the transaction and advancing the template are two separate
writes. If the second one fails the occurrence will be materialized again
on the next run.
"""

from datetime import date, timedelta
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finledger.audit import AuditLogger, create_correlation_id
from finledger.dates import add_months
from finledger.models.actions import AddTransactionAction
from finledger.models.ledger import (
    RecurrenceFrequency,
    RecurringTransaction,
    Transaction,
)
from finledger.reconciliation import LedgerReconciler, ReconciliationError
from finledger.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger("finledger.recurring")

MAX_CATCH_UP = 366


def next_occurrence(template: RecurringTransaction, from_date: date) -> date:
    """
    The occurrence after `from_date`.

    Monthly templates land on `day_of_month` (or the start date's day),
    clamped to the length of the month.
    """
    if template.frequency == RecurrenceFrequency.DAILY:
        return from_date + timedelta(days=1)
    if template.frequency == RecurrenceFrequency.WEEKLY:
        return from_date + timedelta(weeks=1)
    if template.frequency == RecurrenceFrequency.YEARLY:
        return add_months(from_date, 12, desired_day=template.start_date.day)
    return add_months(
        from_date,
        1,
        desired_day=template.day_of_month or template.start_date.day,
    )


def deactivation_reason(template: RecurringTransaction) -> Optional[str]:
    """Why a template must stop before its next occurrence, if it must."""
    if template.end_date and template.next_occurrence_date > template.end_date:
        return "end_date_passed"
    if template.max_occurrences and template.current_occurrences >= template.max_occurrences:
        return "max_occurrences_reached"
    return None


class RecurringRunReport(BaseModel):
    """What one processing run did."""

    created: list[Transaction] = Field(default_factory=list)
    deactivated: list[UUID] = Field(default_factory=list)
    failed: dict[UUID, str] = Field(
        default_factory=dict,
        description="Template id -> error, for templates that stopped early"
    )


class RecurringProcessor:
    """Materializes due recurring templates."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        reconciler: LedgerReconciler,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._reconciler = reconciler
        self._audit_logger = audit_logger

    async def process_due(self, today: Optional[date] = None) -> RecurringRunReport:
        """
        Process every active template whose next occurrence is due.

        A failing template is logged, reported and skipped; the others
        still run.
        """
        today = today or date.today()
        report = RecurringRunReport()

        for template in await self._storage.list_recurring_transactions(active_only=True):
            if template.next_occurrence_date > today:
                continue
            try:
                await self._catch_up(template, today, report)
            except (ReconciliationError, StorageError) as e:
                logger.error(
                    "recurring_processing_failed",
                    template_id=str(template.id),
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"template_id": str(template.id)},
                    )
                report.failed[template.id] = str(e)

        return report

    async def _catch_up(
        self,
        template: RecurringTransaction,
        today: date,
        report: RecurringRunReport,
    ) -> None:
        for _ in range(MAX_CATCH_UP):
            if not template.is_active or template.next_occurrence_date > today:
                return

            reason = deactivation_reason(template)
            if reason:
                template = await self._deactivate(template, reason)
                report.deactivated.append(template.id)
                return

            transaction = await self._materialize(template)
            report.created.append(transaction)

            template = await self._storage.update_recurring_transaction(template.id, {
                "next_occurrence_date": next_occurrence(template, template.next_occurrence_date),
                "last_processed_date": today,
                "current_occurrences": template.current_occurrences + 1,
            })

        logger.warning("recurring_catch_up_limit", template_id=str(template.id))

    async def _materialize(self, template: RecurringTransaction) -> Transaction:
        correlation_id = create_correlation_id()
        action = AddTransactionAction(
            type=template.type,
            amount=template.amount,
            category=template.category,
            description=template.description,
            transaction_date=template.next_occurrence_date,
            recurring_transaction_id=template.id,
        )
        result = await self._reconciler.reconcile(action, correlation_id=correlation_id)
        transaction = result.transactions[0]

        if self._audit_logger:
            await self._audit_logger.log_recurring_materialized(
                template_id=template.id,
                transaction_id=transaction.id,
                occurrence=template.next_occurrence_date.isoformat(),
                correlation_id=correlation_id,
            )
        return transaction

    async def _deactivate(
        self,
        template: RecurringTransaction,
        reason: str,
    ) -> RecurringTransaction:
        logger.info("recurring_deactivated", template_id=str(template.id), reason=reason)
        if self._audit_logger:
            await self._audit_logger.log_recurring_deactivated(
                template_id=template.id,
                reason=reason,
                correlation_id=create_correlation_id(),
            )
        return await self._storage.update_recurring_transaction(
            template.id, {"is_active": False}
        )
