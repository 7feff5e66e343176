"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote storage backend because:
1. Users can view and correct their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: a plan that fails halfway leaves earlier rows written,
  which is exactly what ReconciliationFailedError reports
- Limited query capabilities (we filter in Python)

Every entity lives in its own worksheet, one entity per row, with the
column order fixed by the *_COLUMNS lists below. Rows are parsed back
through the pydantic models so invariants are re-checked on read.

Transient API failures are retried with tenacity. Authentication and
permission failures are surfaced immediately as AuthenticationError.
"""

import json
from datetime import date
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

import gspread
import structlog
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finledger.config import get_settings
from finledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    AuthenticationError,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    RecordRejectedError,
    StorageError,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# Column mappings per sheet
TRANSACTION_COLUMNS = [
    "id",
    "type",
    "amount",
    "category",
    "description",
    "transaction_date",
    "recurring_transaction_id",
    "parent_transaction_id",
    "created_at",
]

GOAL_COLUMNS = [
    "id",
    "title",
    "description",
    "target_amount",
    "current_amount",
    "target_date",
    "category",
    "created_at",
]

LIABILITY_COLUMNS = [
    "id",
    "name",
    "type",
    "total_amount",
    "remaining_amount",
    "interest_rate",
    "monthly_payment",
    "due_date",
    "start_date",
    "linked_purchase_id",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "category",
    "amount",
    "period",
    "created_at",
]

RECURRING_COLUMNS = [
    "id",
    "type",
    "amount",
    "category",
    "description",
    "frequency",
    "start_date",
    "end_date",
    "next_occurrence_date",
    "last_processed_date",
    "is_active",
    "day_of_month",
    "max_occurrences",
    "current_occurrences",
    "created_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


# Shared retry policy for remote calls
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(
        (AuthenticationError, NotFoundError, DuplicateError, RecordRejectedError)
    ),
    reraise=True,
)


def _translate_api_error(e: gspread.exceptions.APIError, action: str) -> StorageError:
    """Map a Sheets API error onto the storage error hierarchy."""
    status = getattr(getattr(e, "response", None), "status_code", None)
    if status in (401, 403):
        return AuthenticationError(f"Not allowed to {action}: {e}")
    if status == 404:
        return NotFoundError(f"Sheet resource missing while trying to {action}: {e}")
    return StorageError(f"Failed to {action}: {e}")


def _to_cell(value: Any) -> str:
    """Render a JSON-mode model value as a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Convert a model to a spreadsheet row in column order."""
    data = model.model_dump(mode="json")
    return [_to_cell(data.get(column)) for column in columns]


def row_to_model(row: list, columns: list[str], model_cls: Type[ModelT]) -> ModelT:
    """
    Convert a spreadsheet row back to a model.

    Empty cells are left out so model defaults apply. Missing trailing
    columns (older sheets) are treated as empty.
    """
    data = {
        column: row[index]
        for index, column in enumerate(columns)
        if index < len(row) and row[index] != ""
    }
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(AuthenticationError),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise AuthenticationError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
            except gspread.exceptions.APIError as e:
                raise _translate_api_error(e, "open spreadsheet")
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_goals_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.goals_sheet_name, GOAL_COLUMNS)

    def get_liabilities_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.liabilities_sheet_name, LIABILITY_COLUMNS)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_recurring_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.recurring_sheet_name, RECURRING_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class _SheetTable:
    """
    One worksheet holding one entity type.

    The first column is always the entity id.
    """

    def __init__(self, get_sheet, columns: list[str], model_cls: Type[ModelT], name: str):
        self._get_sheet = get_sheet
        self._columns = columns
        self._model_cls = model_cls
        self._name = name

    def _rows(self) -> list[list]:
        try:
            return self._get_sheet().get_all_values()
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, f"read {self._name} rows")

    def _find(self, entity_id: UUID) -> tuple[int, Optional[list]]:
        """Return (1-based row number, row) for an id, or (0, None)."""
        for idx, row in enumerate(self._rows()[1:], start=2):  # row 1 is header
            if row and row[0] == str(entity_id):
                return idx, row
        return 0, None

    def all(self) -> list:
        entities = []
        for row in self._rows()[1:]:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                entities.append(row_to_model(row, self._columns, self._model_cls))
            except ValidationError as e:
                logger.warning(
                    "sheet_row_skipped",
                    sheet=self._name,
                    row_id=row[0],
                    error=str(e),
                )
        return entities

    def get(self, entity_id: UUID):
        _, row = self._find(entity_id)
        if row is None:
            return None
        return row_to_model(row, self._columns, self._model_cls)

    def insert(self, entity: ModelT) -> ModelT:
        _, existing = self._find(entity.id)
        if existing is not None:
            raise DuplicateError(f"{self._name} {entity.id} already exists")
        try:
            self._get_sheet().append_row(
                model_to_row(entity, self._columns),
                value_input_option="RAW",
            )
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, f"save {self._name}")
        return entity

    def update(self, entity_id: UUID, changes: dict[str, Any]) -> ModelT:
        row_number, row = self._find(entity_id)
        if row is None:
            raise NotFoundError(f"{self._name} not found: {entity_id}")

        current = row_to_model(row, self._columns, self._model_cls)
        try:
            updated = self._model_cls.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise RecordRejectedError(f"Update rejected for {self._name} {entity_id}: {e}") from e

        start = rowcol_to_a1(row_number, 1)
        end = rowcol_to_a1(row_number, len(self._columns))
        try:
            self._get_sheet().batch_update([
                {"range": f"{start}:{end}", "values": [model_to_row(updated, self._columns)]}
            ], value_input_option="RAW")
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, f"update {self._name}")
        return updated

    def delete(self, entity_id: UUID) -> bool:
        row_number, row = self._find(entity_id)
        if row is None:
            raise NotFoundError(f"{self._name} not found: {entity_id}")
        try:
            self._get_sheet().delete_rows(row_number)
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, f"delete {self._name}")
        return True


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Transactions, goals, liabilities, budgets and recurring templates each
    live in their own worksheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._transactions = _SheetTable(
            self._client.get_transactions_sheet, TRANSACTION_COLUMNS, Transaction, "transaction"
        )
        self._goals = _SheetTable(
            self._client.get_goals_sheet, GOAL_COLUMNS, Goal, "goal"
        )
        self._liabilities = _SheetTable(
            self._client.get_liabilities_sheet, LIABILITY_COLUMNS, Liability, "liability"
        )
        self._budgets = _SheetTable(
            self._client.get_budgets_sheet, BUDGET_COLUMNS, Budget, "budget"
        )
        self._recurring = _SheetTable(
            self._client.get_recurring_sheet, RECURRING_COLUMNS, RecurringTransaction,
            "recurring transaction",
        )

    # ===== TRANSACTIONS =====

    @sheets_retry
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        return self._transactions.insert(transaction)

    @sheets_retry
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    @sheets_retry
    async def update_transaction(
        self,
        transaction_id: UUID,
        changes: dict[str, Any],
    ) -> Transaction:
        return self._transactions.update(transaction_id, changes)

    @sheets_retry
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.delete(transaction_id)

    @sheets_retry
    async def list_transactions(
        self,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        transactions = []
        for txn in self._transactions.all():
            # Apply filters
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
            transactions.append(txn)

        # Sort by date descending (newest first)
        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions

    # ===== GOALS =====

    @sheets_retry
    async def create_goal(self, goal: Goal) -> Goal:
        return self._goals.insert(goal)

    @sheets_retry
    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        return self._goals.get(goal_id)

    @sheets_retry
    async def list_goals(self) -> list[Goal]:
        return self._goals.all()

    @sheets_retry
    async def update_goal(self, goal_id: UUID, changes: dict[str, Any]) -> Goal:
        return self._goals.update(goal_id, changes)

    # ===== LIABILITIES =====

    @sheets_retry
    async def create_liability(self, liability: Liability) -> Liability:
        return self._liabilities.insert(liability)

    @sheets_retry
    async def get_liability(self, liability_id: UUID) -> Optional[Liability]:
        return self._liabilities.get(liability_id)

    @sheets_retry
    async def list_liabilities(self) -> list[Liability]:
        return self._liabilities.all()

    @sheets_retry
    async def update_liability(
        self,
        liability_id: UUID,
        changes: dict[str, Any],
    ) -> Liability:
        return self._liabilities.update(liability_id, changes)

    # ===== BUDGETS =====

    @sheets_retry
    async def create_budget(self, budget: Budget) -> Budget:
        return self._budgets.insert(budget)

    @sheets_retry
    async def list_budgets(self) -> list[Budget]:
        return self._budgets.all()

    # ===== RECURRING TEMPLATES =====

    @sheets_retry
    async def create_recurring_transaction(
        self,
        recurring: RecurringTransaction,
    ) -> RecurringTransaction:
        return self._recurring.insert(recurring)

    @sheets_retry
    async def list_recurring_transactions(
        self,
        active_only: bool = False,
    ) -> list[RecurringTransaction]:
        return [r for r in self._recurring.all() if r.is_active or not active_only]

    @sheets_retry
    async def update_recurring_transaction(
        self,
        recurring_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringTransaction:
        return self._recurring.update(recurring_id, changes)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, "read audit events")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError) as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except gspread.exceptions.APIError as e:
            raise _translate_api_error(e, "write audit event")

    @sheets_retry
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID, chronologically."""
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    @sheets_retry
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity, chronologically."""
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    @sheets_retry
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
