"""Tests for the storage backends (in-memory, and Sheets over a fake worksheet)."""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from tenacity import wait_none

from expense_tracker.services.storage import (
    DuplicateError,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    StorageError,
)
from expense_tracker.services.storage.google_sheets import EXPENSE_COLUMNS
from expense_tracker.models.audit import AuditEventBuilder
from expense_tracker.audit import create_correlation_id


class FakeWorksheet:
    """In-memory stand-in for a gspread Worksheet (row 1 is the header)."""

    def __init__(self, rows=None):
        self.rows = [list(EXPENSE_COLUMNS)] + [list(r) for r in rows or []]

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def col_values(self, col):
        return [r[col - 1] if len(r) >= col else "" for r in self.rows]

    def row_values(self, row):
        values = list(self.rows[row - 1])
        while values and values[-1] == "":
            values.pop()
        return values

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        idx = int(range_name.split(":")[0][1:])
        self.rows[idx - 1] = list(values[0])

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:
    def __init__(self, sheet):
        self.sheet = sheet

    def get_expenses_sheet(self):
        return self.sheet


class FlakyAppendWorksheet(FakeWorksheet):
    """Writes the row, then reports a network error the first time."""

    def __init__(self, rows=None):
        super().__init__(rows)
        self.appends = 0

    def append_row(self, row, value_input_option=None):
        super().append_row(row, value_input_option)
        self.appends += 1
        if self.appends == 1:
            raise OSError("connection reset")


class BrokenSheetsClient:
    def get_expenses_sheet(self):
        raise RuntimeError("quota exceeded")


class TestInMemoryExpenseStorage:

    def test_list_newest_first(self, make_expense):
        older = make_expense()
        newer = make_expense()
        storage = InMemoryExpenseStorage([older, newer])

        listed = asyncio.run(storage.list_expenses())
        assert [e.id for e in listed] == [newer.id, older.id]

    def test_create_and_duplicate(self, make_expense):
        storage = InMemoryExpenseStorage()
        expense = make_expense()

        saved = asyncio.run(storage.create_expense(expense))
        assert saved == expense
        with pytest.raises(DuplicateError):
            asyncio.run(storage.create_expense(expense))

    def test_update(self, make_expense):
        expense = make_expense(amount="10")
        storage = InMemoryExpenseStorage([expense])

        changed = expense.model_copy(update={"amount": Decimal("12")})
        asyncio.run(storage.update_expense(changed))
        assert asyncio.run(storage.list_expenses())[0].amount == Decimal("12")

    def test_update_missing_raises(self, make_expense):
        with pytest.raises(NotFoundError):
            asyncio.run(InMemoryExpenseStorage().update_expense(make_expense()))

    def test_delete_absent_is_noop(self, make_expense):
        storage = InMemoryExpenseStorage([make_expense()])
        asyncio.run(storage.delete_expense("nope"))
        assert len(asyncio.run(storage.list_expenses())) == 1

    def test_stored_copies_are_isolated(self, make_expense):
        expense = make_expense(description="original")
        storage = InMemoryExpenseStorage()
        asyncio.run(storage.create_expense(expense))

        listed = asyncio.run(storage.list_expenses())
        listed[0].description = "mutated"
        assert asyncio.run(storage.list_expenses())[0].description == "original"


class TestInMemoryAuditStorage:

    def test_events_by_correlation(self):
        storage = InMemoryAuditStorage()
        cid = create_correlation_id()
        asyncio.run(storage.append_event(AuditEventBuilder.confirmation_requested(cid)))
        asyncio.run(storage.append_event(AuditEventBuilder.expense_deleted("x")))

        assert len(asyncio.run(storage.get_events_by_correlation_id(cid))) == 1
        assert len(asyncio.run(storage.get_recent_events(limit=1))) == 1


class TestGoogleSheetsExpenseStorage:

    def test_create_appends_row(self, make_expense):
        sheet = FakeWorksheet()
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))
        expense = make_expense(amount="35.50", category="餐饮", description="咖啡")

        saved = asyncio.run(storage.create_expense(expense))

        assert saved.id == expense.id
        assert saved.amount == Decimal("35.50")
        assert sheet.rows[1][:6] == [expense.id, "35.50", "CNY", "餐饮", "2024-06-15", "咖啡"]

    def test_create_duplicate(self, make_expense):
        sheet = FakeWorksheet()
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))
        expense = make_expense(amount="10")
        asyncio.run(storage.create_expense(expense))

        with pytest.raises(DuplicateError):
            asyncio.run(storage.create_expense(expense.model_copy(update={"amount": Decimal("11")})))

    def test_create_of_identical_row_is_idempotent(self, make_expense):
        sheet = FakeWorksheet()
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))
        expense = make_expense()
        asyncio.run(storage.create_expense(expense))

        assert asyncio.run(storage.create_expense(expense)).id == expense.id
        assert len(sheet.rows) == 2

    def test_retry_after_landed_append_succeeds(self, make_expense, monkeypatch):
        monkeypatch.setattr(GoogleSheetsExpenseStorage.create_expense.retry, "wait", wait_none())
        sheet = FlakyAppendWorksheet()
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))
        expense = make_expense(description="")

        saved = asyncio.run(storage.create_expense(expense))

        assert saved.id == expense.id
        assert sheet.appends == 1
        assert [r[0] for r in sheet.rows[1:]] == [expense.id]

    def test_list_skips_blank_and_malformed_rows(self, make_expense):
        good = make_expense()
        sheet = FakeWorksheet([
            GoogleSheetsExpenseStorage._expense_to_row(good),
            ["", "", ""],
            ["bad", "not-a-number", "CNY", "餐饮", "2024-01-01", "", "2024-01-01T00:00:00+00:00"],
        ])
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))

        listed = asyncio.run(storage.list_expenses())
        assert [e.id for e in listed] == [good.id]

    def test_naive_timestamps_read_as_utc(self, make_expense):
        aware = make_expense()
        naive_row = ["hand-typed", "5", "CNY", "餐饮", "2024-01-02", "", "2024-01-02T10:00:00"]
        sheet = FakeWorksheet([GoogleSheetsExpenseStorage._expense_to_row(aware), naive_row])
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))

        listed = asyncio.run(storage.list_expenses())

        assert [e.id for e in listed] == ["hand-typed", aware.id]
        assert listed[0].created_at == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)

    def test_update_rewrites_row(self, make_expense):
        expense = make_expense(amount="10")
        sheet = FakeWorksheet([GoogleSheetsExpenseStorage._expense_to_row(expense)])
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))

        changed = expense.model_copy(update={"amount": Decimal("20"), "expense_date": date(2024, 7, 1)})
        saved = asyncio.run(storage.update_expense(changed))

        assert saved.amount == Decimal("20")
        assert sheet.rows[1][1] == "20"
        assert sheet.rows[1][4] == "2024-07-01"

    def test_update_missing(self, make_expense):
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(FakeWorksheet()))
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_expense(make_expense()))

    def test_delete(self, make_expense):
        keep, drop = make_expense(), make_expense()
        sheet = FakeWorksheet([
            GoogleSheetsExpenseStorage._expense_to_row(keep),
            GoogleSheetsExpenseStorage._expense_to_row(drop),
        ])
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient(sheet))

        asyncio.run(storage.delete_expense(drop.id))
        asyncio.run(storage.delete_expense("absent"))

        assert [r[0] for r in sheet.rows[1:]] == [keep.id]

    def test_backend_failure_is_storage_error(self):
        storage = GoogleSheetsExpenseStorage(BrokenSheetsClient())
        with pytest.raises(StorageError, match="quota exceeded"):
            asyncio.run(storage.list_expenses())
