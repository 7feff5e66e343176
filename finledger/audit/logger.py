"""
Audit Logger

DESIGN DECISION: Every balance movement in the ledger is logged.
This provides:
1. Complete traceability
2. Debugging capability when a plan fails halfway
3. User can see how each balance got where it is

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failed audit write never fails a reconcile)
- Supports correlation IDs to trace all steps of one action
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finledger.models.audit import AuditEvent, AuditEventBuilder
from finledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_reconciliation_started(
        self,
        action_kind: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_started(
            action_kind=action_kind,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_reconciliation_completed(
        self,
        action_kind: str,
        step_count: int,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reconciliation_completed(
            action_kind=action_kind,
            step_count=step_count,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_reconciliation_failed(
        self,
        action_kind: str,
        failed_operation: str,
        applied_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a plan that stopped partway through."""
        await self.log(AuditEventBuilder.reconciliation_failed(
            action_kind=action_kind,
            failed_operation=failed_operation,
            applied_count=applied_count,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        action_kind: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            action_kind=action_kind,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_overpayment_decision(
        self,
        liability_id: UUID,
        requested: Decimal,
        actual: Decimal,
        confirmed: bool,
        correlation_id: UUID,
    ) -> None:
        """Log whether the user accepted a capped overpayment."""
        await self.log(AuditEventBuilder.overpayment_decision(
            liability_id=liability_id,
            requested=requested,
            actual=actual,
            confirmed=confirmed,
            correlation_id=correlation_id,
        ))

    async def log_recurring_materialized(
        self,
        template_id: UUID,
        transaction_id: UUID,
        occurrence: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_materialized(
            template_id=template_id,
            transaction_id=transaction_id,
            occurrence=occurrence,
            correlation_id=correlation_id,
        ))

    async def log_recurring_deactivated(
        self,
        template_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_deactivated(
            template_id=template_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_advisory_fallback(
        self,
        agent: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log that an advisory agent answered from local rules."""
        await self.log(AuditEventBuilder.advisory_fallback_used(
            agent=agent,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one goal transfer).
    Pass it through all subsequent operations.
    """
    return uuid4()
