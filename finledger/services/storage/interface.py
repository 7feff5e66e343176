"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every call is one await point; implementations need no locking because
the reconciliation engine awaits its writes one at a time.

Updates take a dict of changed fields and return the stored entity after
the change. Implementations must re-validate the merged entity, so the
balance invariants on Goal and Liability hold at the storage boundary too.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional
from uuid import UUID

from finledger.models.ledger import (
    Budget,
    Goal,
    Liability,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from finledger.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # ===== TRANSACTIONS =====

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Returns:
            The stored transaction

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Apply field changes to a transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by id.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters, newest first.

        Args:
            type: Filter by income/expense
            category: Filter by exact category (case-insensitive)
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            parent_transaction_id: Only children of this split transaction
        """
        pass

    # ===== GOALS =====

    @abstractmethod
    async def create_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def list_goals(self) -> list[Goal]:
        pass

    @abstractmethod
    async def update_goal(self, goal_id: UUID, changes: dict[str, Any]) -> Goal:
        """
        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass

    # ===== LIABILITIES =====

    @abstractmethod
    async def create_liability(self, liability: Liability) -> Liability:
        pass

    @abstractmethod
    async def get_liability(self, liability_id: UUID) -> Optional[Liability]:
        pass

    @abstractmethod
    async def list_liabilities(self) -> list[Liability]:
        pass

    @abstractmethod
    async def update_liability(
        self,
        liability_id: UUID,
        changes: dict[str, Any],
    ) -> Liability:
        """
        Raises:
            NotFoundError: If the liability doesn't exist
        """
        pass

    # ===== BUDGETS =====

    @abstractmethod
    async def create_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        pass

    # ===== RECURRING TEMPLATES =====

    @abstractmethod
    async def create_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> RecurringTransaction:
        pass

    @abstractmethod
    async def list_recurring_transactions(
        self,
        active_only: bool = False,
    ) -> list[RecurringTransaction]:
        pass

    @abstractmethod
    async def update_recurring_transaction(
        self,
        recurring_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringTransaction:
        """
        Raises:
            NotFoundError: If the template doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one reconcile call).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AuthenticationError(StorageError):
    """Session expired or permission denied. Never retried."""
    pass


class RecordRejectedError(StorageError):
    """A stored record failed validation on write. Never retried."""
    pass
