"""Read-side queries and projections."""

from finledger.queries.aggregates import LedgerQueries
from finledger.queries.debt import calculate_debt_repayment_strategy

__all__ = ["LedgerQueries", "calculate_debt_repayment_strategy"]
