"""
finledger - Personal Ledger Reconciliation

Keeps a personal-finance ledger (transactions, savings goals, liabilities,
budgets) consistent when a user moves money between them.

DESIGN PRINCIPLES:
1. One action in, one ordered plan out
2. Validate and clamp before anything is written
3. No silent corrections - surprising behaviour is reported, not hidden
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "finledger maintainers"
