"""
Tests for the storage backends.

The Google Sheets backend runs against an in-process fake worksheet.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import gspread
from gspread.utils import a1_to_rowcol
from tenacity import wait_none

from conftest import make_goal, make_liability
from finledger.models import (
    AuditEventBuilder,
    Budget,
    RecurrenceFrequency,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from finledger.services.storage import (
    AuthenticationError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    NotFoundError,
    RecordRejectedError,
    StorageError,
)
from finledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    GOAL_COLUMNS,
    LIABILITY_COLUMNS,
    RECURRING_COLUMNS,
    TRANSACTION_COLUMNS,
    _translate_api_error,
    model_to_row,
    row_to_model,
)


def _txn(amount="10", category="Food", on=date(2024, 12, 15), **kwargs):
    return Transaction(
        type=kwargs.pop("type", TransactionType.EXPENSE),
        amount=Decimal(amount),
        category=category,
        transaction_date=on,
        **kwargs,
    )


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage tables."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def batch_update(self, data, value_input_option=None):
        for item in data:
            start = item["range"].split(":")[0]
            row_number, _ = a1_to_rowcol(start)
            self.rows[row_number - 1] = list(item["values"][0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {
            "transactions": FakeWorksheet(TRANSACTION_COLUMNS),
            "goals": FakeWorksheet(GOAL_COLUMNS),
            "liabilities": FakeWorksheet(LIABILITY_COLUMNS),
            "budgets": FakeWorksheet(BUDGET_COLUMNS),
            "recurring": FakeWorksheet(RECURRING_COLUMNS),
            "audit": FakeWorksheet(AUDIT_COLUMNS),
        }

    def get_transactions_sheet(self):
        return self.sheets["transactions"]

    def get_goals_sheet(self):
        return self.sheets["goals"]

    def get_liabilities_sheet(self):
        return self.sheets["liabilities"]

    def get_budgets_sheet(self):
        return self.sheets["budgets"]

    def get_recurring_sheet(self):
        return self.sheets["recurring"]

    def get_audit_sheet(self):
        return self.sheets["audit"]


class TestInMemoryStorage:
    """Tests for the dict-backed backend."""

    @pytest.mark.asyncio
    async def test_returned_models_are_copies(self, storage):
        """Test callers cannot mutate stored state."""
        goal = await storage.create_goal(make_goal(current="10"))
        goal.current_amount = Decimal("999")
        assert (await storage.get_goal(goal.id)).current_amount == Decimal("10")

    @pytest.mark.asyncio
    async def test_duplicate_insert(self, storage):
        """Test inserting the same id twice."""
        txn = _txn()
        await storage.create_transaction(txn)
        with pytest.raises(DuplicateError):
            await storage.create_transaction(txn)

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, storage):
        """Test updating an unknown id."""
        with pytest.raises(NotFoundError):
            await storage.update_goal(uuid4(), {"current_amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_update_is_revalidated(self, storage):
        """Test an update that breaks an invariant is rejected."""
        goal = await storage.create_goal(make_goal(current="10", target="100"))
        with pytest.raises(RecordRejectedError):
            await storage.update_goal(goal.id, {"current_amount": Decimal("500")})

    @pytest.mark.asyncio
    async def test_list_filters_and_order(self, storage):
        """Test filters combine and results are newest first."""
        await storage.create_transaction(_txn(on=date(2024, 1, 10)))
        await storage.create_transaction(_txn(on=date(2024, 3, 10)))
        await storage.create_transaction(_txn(category="Bills", on=date(2024, 2, 10)))
        await storage.create_transaction(_txn(type=TransactionType.INCOME, category="Salary"))

        food = await storage.list_transactions(
            type=TransactionType.EXPENSE,
            category="food",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 12, 31),
        )
        assert [t.transaction_date for t in food] == [date(2024, 3, 10), date(2024, 1, 10)]

    @pytest.mark.asyncio
    async def test_recurring_active_only(self, storage):
        """Test inactive templates can be filtered out."""
        for active in (True, False):
            await storage.create_recurring_transaction(RecurringTransaction(
                type=TransactionType.EXPENSE,
                amount=Decimal("5"),
                category="Bills",
                frequency=RecurrenceFrequency.MONTHLY,
                start_date=date(2024, 1, 1),
                next_occurrence_date=date(2024, 1, 1),
                is_active=active,
            ))
        assert len(await storage.list_recurring_transactions()) == 2
        assert len(await storage.list_recurring_transactions(active_only=True)) == 1


class TestSheetRows:
    """Row conversion helpers."""

    def test_row_round_trip_keeps_decimals(self):
        """Test a transaction survives being written as a row."""
        txn = _txn(amount="42.50", description="Dinner")
        row = model_to_row(txn, TRANSACTION_COLUMNS)

        assert row[0] == str(txn.id)
        assert row[6] == ""  # no recurring template
        assert row_to_model(row, TRANSACTION_COLUMNS, Transaction) == txn

    def test_short_rows_use_defaults(self):
        """Test rows from older sheets without trailing columns still load."""
        goal = make_goal()
        row = model_to_row(goal, GOAL_COLUMNS)[:7]
        loaded = row_to_model(row, GOAL_COLUMNS, type(goal))
        assert loaded.id == goal.id

    @pytest.mark.parametrize("status,error_type", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, NotFoundError),
        (500, StorageError),
    ])
    def test_api_errors_are_translated(self, status, error_type):
        """Test HTTP statuses map onto the storage errors."""
        error = SimpleNamespace(response=SimpleNamespace(status_code=status))
        assert type(_translate_api_error(error, "read rows")) is error_type


class TestGoogleSheetsStorage:
    """The Sheets backend against a fake worksheet."""

    @pytest.mark.asyncio
    async def test_transaction_lifecycle(self):
        """Test create, update, list and delete."""
        client = FakeSheetsClient()
        storage = GoogleSheetsLedgerStorage(client=client)

        txn = await storage.create_transaction(_txn(amount="20"))
        updated = await storage.update_transaction(txn.id, {"amount": Decimal("25.50")})
        assert updated.amount == Decimal("25.50")
        assert (await storage.get_transaction(txn.id)).amount == Decimal("25.50")

        assert len(await storage.list_transactions(category="FOOD")) == 1
        await storage.delete_transaction(txn.id)
        assert await storage.list_transactions() == []
        assert len(client.sheets["transactions"].rows) == 1  # header only

    @pytest.mark.asyncio
    async def test_goal_and_liability_updates(self):
        """Test balance updates are written back to the right row."""
        storage = GoogleSheetsLedgerStorage(client=FakeSheetsClient())
        first = await storage.create_goal(make_goal(title="First"))
        second = await storage.create_goal(make_goal(title="Second"))
        liability = await storage.create_liability(make_liability(remaining="500"))

        await storage.update_goal(second.id, {"current_amount": Decimal("120")})
        await storage.update_liability(liability.id, {"remaining_amount": Decimal("0")})

        assert (await storage.get_goal(first.id)).current_amount == Decimal("0")
        assert (await storage.get_goal(second.id)).current_amount == Decimal("120")
        assert (await storage.get_liability(liability.id)).is_paid_off

    @pytest.mark.asyncio
    async def test_bad_rows_are_skipped(self):
        """Test a hand-edited invalid row doesn't break listing."""
        client = FakeSheetsClient()
        storage = GoogleSheetsLedgerStorage(client=client)
        await storage.create_budget(Budget(category="Food", amount=Decimal("200")))
        client.sheets["budgets"].rows.append([str(uuid4()), "Food", "not a number", "monthly", ""])

        budgets = await storage.list_budgets()
        assert [b.category for b in budgets] == ["Food"]

    @pytest.mark.asyncio
    async def test_audit_events_round_trip(self):
        """Test audit events are appended and read back by correlation id."""
        audit = GoogleSheetsAuditStorage(client=FakeSheetsClient())
        correlation_id = uuid4()
        event = AuditEventBuilder.goal_balance_updated(
            goal_id=uuid4(),
            previous=Decimal("1"),
            new=Decimal("2"),
            correlation_id=correlation_id,
        )
        await audit.append_event(event)

        [loaded] = await audit.get_events_by_correlation_id(correlation_id)
        assert loaded.event_id == event.event_id
        assert loaded.details["new_amount"] == "2"


class FakeApiResponse:
    """Minimal HTTP response for building gspread API errors."""

    def __init__(self, status_code):
        self.status_code = status_code
        self.text = f"HTTP {status_code}"

    def json(self):
        return {"error": {"code": self.status_code, "message": self.text, "status": "ERROR"}}


class FlakyWorksheet(FakeWorksheet):
    """Fails the first `failures` reads with the given HTTP status."""

    def __init__(self, columns, failures=0, status=500):
        super().__init__(columns)
        self.failures = failures
        self.status = status
        self.reads = 0
        self.writes = 0

    def get_all_values(self):
        self.reads += 1
        if self.reads <= self.failures:
            raise gspread.exceptions.APIError(FakeApiResponse(self.status))
        return super().get_all_values()

    def batch_update(self, data, value_input_option=None):
        self.writes += 1
        super().batch_update(data, value_input_option)


class TestSheetsRetry:
    """The shared retry policy around Sheets calls."""

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        for method in (GoogleSheetsLedgerStorage.list_budgets, GoogleSheetsLedgerStorage.update_goal):
            monkeypatch.setattr(method.retry, "wait", wait_none())

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        """Test two server errors are absorbed by the third attempt."""
        client = FakeSheetsClient()
        sheet = FlakyWorksheet(BUDGET_COLUMNS, failures=2, status=500)
        sheet.rows.append(model_to_row(Budget(category="Food", amount=Decimal("200")), BUDGET_COLUMNS))
        client.sheets["budgets"] = sheet
        storage = GoogleSheetsLedgerStorage(client=client)

        budgets = await storage.list_budgets()

        assert [b.category for b in budgets] == ["Food"]
        assert sheet.reads == 3

    @pytest.mark.asyncio
    async def test_persistent_errors_give_up_after_three_attempts(self):
        """Test the last StorageError is re-raised once attempts run out."""
        client = FakeSheetsClient()
        sheet = FlakyWorksheet(BUDGET_COLUMNS, failures=5, status=503)
        client.sheets["budgets"] = sheet
        storage = GoogleSheetsLedgerStorage(client=client)

        with pytest.raises(StorageError):
            await storage.list_budgets()
        assert sheet.reads == 3

    @pytest.mark.asyncio
    async def test_permission_denied_is_not_retried(self):
        """Test a 403 surfaces immediately as AuthenticationError."""
        client = FakeSheetsClient()
        sheet = FlakyWorksheet(BUDGET_COLUMNS, failures=5, status=403)
        client.sheets["budgets"] = sheet
        storage = GoogleSheetsLedgerStorage(client=client)

        with pytest.raises(AuthenticationError):
            await storage.list_budgets()
        assert sheet.reads == 1

    @pytest.mark.asyncio
    async def test_rejected_update_is_not_retried(self):
        """Test an update that fails model validation is attempted once and never written."""
        client = FakeSheetsClient()
        sheet = FlakyWorksheet(GOAL_COLUMNS)
        client.sheets["goals"] = sheet
        storage = GoogleSheetsLedgerStorage(client=client)
        goal = await storage.create_goal(make_goal(current="100", target="500"))
        reads_before = sheet.reads

        with pytest.raises(RecordRejectedError):
            await storage.update_goal(goal.id, {"current_amount": Decimal("900")})

        assert sheet.reads - reads_before == 1
        assert sheet.writes == 0
        assert (await storage.get_goal(goal.id)).current_amount == Decimal("100")
