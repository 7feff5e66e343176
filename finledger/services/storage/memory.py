"""
In-Memory Storage Implementation

Dict-backed implementation of the storage interfaces. Used for tests and
for running the ledger locally without a spreadsheet.

Entities are copied on the way in and on the way out, so callers can never
mutate stored state by holding on to a returned model.
"""

from datetime import date
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from finledger.models.audit import AuditEvent
from finledger.models.ledger import (
    Budget,
    Goal,
    Liability,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from finledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    RecordRejectedError,
    StorageError,
)


ModelT = TypeVar("ModelT", bound=BaseModel)


def _merge(entity: ModelT, changes: dict[str, Any]) -> ModelT:
    """Apply changes and re-run model validation on the result."""
    if "id" in changes and changes["id"] != getattr(entity, "id"):
        raise StorageError("Entity id cannot be changed")
    try:
        return type(entity).model_validate({**entity.model_dump(), **changes})
    except ValidationError as e:
        raise RecordRejectedError(f"Update rejected: {e}") from e


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage kept in process memory."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._goals: dict[UUID, Goal] = {}
        self._liabilities: dict[UUID, Liability] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._recurring: dict[UUID, RecurringTransaction] = {}

    # ===== helpers =====

    @staticmethod
    def _insert(table: dict, entity: ModelT, entity_type: str) -> ModelT:
        if entity.id in table:
            raise DuplicateError(f"{entity_type} {entity.id} already exists")
        table[entity.id] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)

    @staticmethod
    def _get(table: dict, entity_id: UUID) -> Optional[ModelT]:
        entity = table.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    @staticmethod
    def _update(
        table: dict,
        entity_id: UUID,
        changes: dict[str, Any],
        entity_type: str,
    ) -> ModelT:
        if entity_id not in table:
            raise NotFoundError(f"{entity_type} {entity_id} not found")
        updated = _merge(table[entity_id], changes)
        table[entity_id] = updated
        return updated.model_copy(deep=True)

    # ===== TRANSACTIONS =====

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        return self._insert(self._transactions, transaction, "Transaction")

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._get(self._transactions, transaction_id)

    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
    ) -> Transaction:
        return self._update(self._transactions, transaction_id, changes, "Transaction")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        if transaction_id not in self._transactions:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        del self._transactions[transaction_id]
        return True

    async def list_transactions(
        self,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        results = []
        for txn in self._transactions.values():
            if type and txn.type != type:
                continue
            if category and txn.category.lower() != category.lower():
                continue
            if date_from and txn.transaction_date < date_from:
                continue
            if date_to and txn.transaction_date > date_to:
                continue
            if parent_transaction_id and txn.parent_transaction_id != parent_transaction_id:
                continue
            results.append(txn.model_copy(deep=True))

        results.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return results

    # ===== GOALS =====

    async def create_goal(self, goal: Goal) -> Goal:
        return self._insert(self._goals, goal, "Goal")

    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        return self._get(self._goals, goal_id)

    async def list_goals(self) -> list[Goal]:
        return [g.model_copy(deep=True) for g in self._goals.values()]

    async def update_goal(self, goal_id: UUID, changes: dict[str, Any]) -> Goal:
        return self._update(self._goals, goal_id, changes, "Goal")

    # ===== LIABILITIES =====

    async def create_liability(self, liability: Liability) -> Liability:
        return self._insert(self._liabilities, liability, "Liability")

    async def get_liability(self, liability_id: UUID) -> Optional[Liability]:
        return self._get(self._liabilities, liability_id)

    async def list_liabilities(self) -> list[Liability]:
        return [l.model_copy(deep=True) for l in self._liabilities.values()]

    async def update_liability(
        self,
        liability_id: UUID,
        changes: dict[str, Any],
    ) -> Liability:
        return self._update(self._liabilities, liability_id, changes, "Liability")

    # ===== BUDGETS =====

    async def create_budget(self, budget: Budget) -> Budget:
        return self._insert(self._budgets, budget, "Budget")

    async def list_budgets(self) -> list[Budget]:
        return [b.model_copy(deep=True) for b in self._budgets.values()]

    # ===== RECURRING TEMPLATES =====

    async def create_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> RecurringTransaction:
        return self._insert(self._recurring, recurring, "Recurring transaction")

    async def list_recurring_transactions(
        self,
        active_only: bool = False,
    ) -> list[RecurringTransaction]:
        return [
            r.model_copy(deep=True)
            for r in self._recurring.values()
            if r.is_active or not active_only
        ]

    async def update_recurring_transaction(
        self,
        recurring_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringTransaction:
        return self._update(self._recurring, recurring_id, changes, "Recurring transaction")


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
