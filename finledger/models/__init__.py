"""
Data Models Package

This package contains all Pydantic models used by finledger.
All data flowing through the ledger must conform to these schemas.
"""

from finledger.models.ledger import (
    COUNTERPART_CATEGORIES,
    Budget,
    BudgetPeriod,
    Goal,
    Liability,
    LiabilityType,
    RecurrenceFrequency,
    RecurringTransaction,
    SystemCategory,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
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
    SplitPart,
    TransactionChanges,
    TransferDirection,
    TransferSource,
    parse_action,
)
from finledger.models.reconciliation import (
    AppliedStep,
    LedgerSnapshot,
    PlannedStep,
    ReconciliationPlan,
    ReconciliationResult,
    StepOperation,
)
from finledger.models.insights import (
    BudgetStatus,
    CategoryBreakdown,
    CategorySuggestion,
    DashboardStats,
    DebtPaymentPlan,
    DebtRepaymentMethod,
    DebtRepaymentStrategy,
    FinancialForecast,
    FinancialMetrics,
    MonthlyTrend,
    Recommendation,
    RecommendationPriority,
    ScheduledPayment,
)
from finledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger records
    "COUNTERPART_CATEGORIES",
    "Budget",
    "BudgetPeriod",
    "Goal",
    "Liability",
    "LiabilityType",
    "RecurrenceFrequency",
    "RecurringTransaction",
    "SystemCategory",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Actions
    "ActionKind",
    "AddLiabilityAction",
    "AddSplitTransactionAction",
    "AddTransactionAction",
    "DeleteTransactionAction",
    "EditTransactionAction",
    "GoalTransferAction",
    "LedgerAction",
    "LiabilityPaymentAction",
    "SplitPart",
    "TransactionChanges",
    "TransferDirection",
    "TransferSource",
    "parse_action",
    # Reconciliation
    "AppliedStep",
    "LedgerSnapshot",
    "PlannedStep",
    "ReconciliationPlan",
    "ReconciliationResult",
    "StepOperation",
    # Insights
    "BudgetStatus",
    "CategoryBreakdown",
    "CategorySuggestion",
    "DashboardStats",
    "DebtPaymentPlan",
    "DebtRepaymentMethod",
    "DebtRepaymentStrategy",
    "FinancialForecast",
    "FinancialMetrics",
    "MonthlyTrend",
    "Recommendation",
    "RecommendationPriority",
    "ScheduledPayment",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
