"""
Audit Models for finledger

Every balance movement in the ledger is logged for audit purposes.
This provides:
1. Complete traceability of every reconciliation step
2. Debugging information when a plan fails halfway
3. A way to reconstruct how a goal or liability reached its balance

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every stage of a reconciliation has its own event type.
    """
    # Reconciliation lifecycle
    RECONCILIATION_STARTED = "reconciliation_started"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_FAILED = "reconciliation_failed"
    VALIDATION_FAILED = "validation_failed"

    # User confirmation
    OVERPAYMENT_CONFIRMED = "overpayment_confirmed"
    OVERPAYMENT_DECLINED = "overpayment_declined"

    # Ledger writes
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    GOAL_BALANCE_UPDATED = "goal_balance_updated"
    LIABILITY_CREATED = "liability_created"
    LIABILITY_BALANCE_UPDATED = "liability_balance_updated"

    # Recurring templates
    RECURRING_MATERIALIZED = "recurring_materialized"
    RECURRING_DEACTIVATED = "recurring_deactivated"

    # Advisory agents
    ADVISORY_FALLBACK_USED = "advisory_fallback_used"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'liability')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one reconcile call"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered directly by the user?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Optional[Decimal]) -> Optional[str]:
    # Decimals are kept as strings so details stay JSON-serializable
    return str(value) if value is not None else None


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.reconciliation_started("goal_transfer", correlation_id)
        event = AuditEventBuilder.goal_balance_updated(goal_id, old, new, correlation_id)
    """

    @staticmethod
    def reconciliation_started(
        action_kind: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_STARTED,
            entity_type="action",
            correlation_id=correlation_id,
            description=f"Reconciling action: {action_kind}",
            details={"action_kind": action_kind, **(details or {})},
            is_user_action=True,
        )

    @staticmethod
    def reconciliation_completed(
        action_kind: str,
        step_count: int,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            entity_type="action",
            correlation_id=correlation_id,
            description=f"{action_kind} applied {step_count} steps",
            details={
                "action_kind": action_kind,
                "step_count": step_count,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def reconciliation_failed(
        action_kind: str,
        failed_operation: str,
        applied_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="action",
            correlation_id=correlation_id,
            description=f"{action_kind} failed at {failed_operation} after {applied_count} steps",
            error_message=error_message,
            details={
                "action_kind": action_kind,
                "failed_operation": failed_operation,
                "applied_count": applied_count,
            },
        )

    @staticmethod
    def validation_failed(
        action_kind: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="action",
            correlation_id=correlation_id,
            description=f"{action_kind} rejected with {len(issues)} issues",
            details={
                "action_kind": action_kind,
                "issues": issues,
            },
        )

    @staticmethod
    def overpayment_decision(
        liability_id: UUID,
        requested: Decimal,
        actual: Decimal,
        confirmed: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.OVERPAYMENT_CONFIRMED
                if confirmed
                else AuditEventType.OVERPAYMENT_DECLINED
            ),
            severity=AuditSeverity.INFO if confirmed else AuditSeverity.WARNING,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=(
                f"Overpayment of {requested} {'capped' if confirmed else 'declined'}"
                f" (remaining {actual})"
            ),
            details={
                "requested_amount": _money(requested),
                "actual_amount": _money(actual),
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: UUID,
        transaction_type: str,
        category: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Recorded {transaction_type}: {category} - {amount}",
            details={
                "type": transaction_type,
                "category": category,
                "amount": _money(amount),
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction edited: {', '.join(changed_fields)}",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def goal_balance_updated(
        goal_id: UUID,
        previous: Optional[Decimal],
        new: Optional[Decimal],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_BALANCE_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal balance {previous} -> {new}",
            details={
                "previous_amount": _money(previous),
                "new_amount": _money(new),
            },
        )

    @staticmethod
    def liability_created(
        liability_id: UUID,
        name: str,
        liability_type: str,
        total_amount: Decimal,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIABILITY_CREATED,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Liability created: {name} - {total_amount}",
            details={
                "name": name,
                "type": liability_type,
                "total_amount": _money(total_amount),
            },
        )

    @staticmethod
    def liability_balance_updated(
        liability_id: UUID,
        previous: Optional[Decimal],
        new: Optional[Decimal],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIABILITY_BALANCE_UPDATED,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Liability remaining {previous} -> {new}",
            details={
                "previous_amount": _money(previous),
                "new_amount": _money(new),
            },
        )

    @staticmethod
    def recurring_materialized(
        template_id: UUID,
        transaction_id: UUID,
        occurrence: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            entity_type="recurring_transaction",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction materialized for {occurrence}",
            details={
                "transaction_id": str(transaction_id),
                "occurrence": occurrence,
            },
        )

    @staticmethod
    def recurring_deactivated(
        template_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_DEACTIVATED,
            entity_type="recurring_transaction",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction deactivated: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def advisory_fallback_used(
        agent: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVISORY_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="advisory",
            correlation_id=correlation_id,
            description=f"{agent} fell back to local rules",
            error_message=reason,
            details={"agent": agent},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
