"""
Ledger reconciliation package.

Turns one ledger action into an ordered, clamped plan and applies it.
"""

from finledger.reconciliation.engine import (
    ConfirmCallback,
    LedgerReconciler,
    LedgerValidationError,
    OverpaymentNotConfirmedError,
    ReconciliationError,
    ReconciliationFailedError,
)
from finledger.reconciliation.planner import (
    actual_payment,
    clamp_goal_amount,
    plan_action,
    reduce_remaining,
)

__all__ = [
    "ConfirmCallback",
    "LedgerReconciler",
    "LedgerValidationError",
    "OverpaymentNotConfirmedError",
    "ReconciliationError",
    "ReconciliationFailedError",
    "actual_payment",
    "clamp_goal_amount",
    "plan_action",
    "reduce_remaining",
]
