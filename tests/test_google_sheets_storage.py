"""
Tests for the Google Sheets adapter.

No real Google API calls: a fake client hands out in-memory worksheets that
implement the handful of gspread.Worksheet methods the adapter uses.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from tenacity import wait_none

from household_ledger.models import (
    JOINT,
    AuditEventBuilder,
    Competency,
    SavingsDeposit,
    SavingsGoal,
)
from household_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    StorageError,
)
from household_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    CLOSED_MONTH_COLUMNS,
    RECORD_COLUMNS,
)
from household_ledger.services.storage.memory import CLOSED_MONTHS, PERSONS, TRANSACTIONS

from conftest import make_transaction


class FakeWorksheet:
    def __init__(self, header):
        self.rows = [list(header)]
        self.fail_writes = False

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def update(self, values, range_name="A1"):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        values = [list(v) for v in values]
        self.rows = values + self.rows[len(values):]

    def batch_clear(self, ranges):
        for cell_range in ranges:
            first_row = int(cell_range.split(":")[0][1:])
            self.rows = self.rows[:first_row - 1]

    def append_row(self, row, value_input_option=None):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        self.rows.append(list(row))


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}

    def _sheet(self, title, header):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(header)
        return self.sheets[title]

    def get_collection_sheet(self, collection):
        header = CLOSED_MONTH_COLUMNS if collection == CLOSED_MONTHS else RECORD_COLUMNS
        return self._sheet(collection, header)

    def get_audit_sheet(self):
        return self._sheet("AuditLog", AUDIT_COLUMNS)


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(GoogleSheetsLedgerStorage._write_collection.retry, "wait", wait_none())
    monkeypatch.setattr(GoogleSheetsAuditStorage._append_row.retry, "wait", wait_none())


class TestLedgerSheets:
    """Tests for persisting ledger collections."""

    def test_round_trip_through_worksheets(self, client, kaio):
        async def scenario():
            storage = GoogleSheetsLedgerStorage(client)
            await storage.load()
            await storage.save_person(kaio)
            await storage.save_transactions([make_transaction(kaio.ref, value="12.34")])
            await storage.add_closed_month(Competency.parse("02/2024"))

            reloaded = GoogleSheetsLedgerStorage(client)
            await reloaded.load()
            return (
                await reloaded.get_person(kaio.id),
                await reloaded.list_transactions(),
                await reloaded.list_closed_months(),
            )

        person, transactions, closed = asyncio.run(scenario())
        assert person.name == "Kaio"
        assert transactions[0].value == Decimal("12.34")
        assert transactions[0].person == kaio.ref
        assert [str(c) for c in closed] == ["02/2024"]

        sheet = client.sheets[TRANSACTIONS]
        assert sheet.rows[0] == RECORD_COLUMNS
        assert len(sheet.rows) == 2

    def test_shrinking_collection_clears_leftover_rows(self, client):
        async def scenario():
            storage = GoogleSheetsLedgerStorage(client)
            await storage.load()
            stored = await storage.save_transactions([make_transaction(JOINT) for _ in range(3)])
            await storage.delete_transaction(stored[0].id)

        asyncio.run(scenario())
        assert len(client.sheets[TRANSACTIONS].rows) == 3

    def test_failed_flush_rolls_back_memory(self, client, kaio, no_retry_wait):
        async def scenario():
            storage = GoogleSheetsLedgerStorage(client)
            await storage.load()
            await storage.save_person(kaio)

            client.sheets[PERSONS].fail_writes = True
            renamed = kaio.model_copy(update={"name": "Kaio Silva"})
            with pytest.raises(StorageError):
                await storage.save_person(renamed)
            return await storage.get_person(kaio.id)

        assert asyncio.run(scenario()).name == "Kaio"

    def test_deposit_unit_persists_goal_and_deposit(self, client):
        async def scenario():
            storage = GoogleSheetsLedgerStorage(client)
            await storage.load()
            goal = await storage.save_goal(SavingsGoal(name="Casa", target_amount="1000", owner=JOINT))
            deposit = SavingsDeposit(goal_id=goal.id, amount="75.50", date=date(2024, 3, 1))
            await storage.apply_deposit_change(deposit.id, deposit)

            reloaded = GoogleSheetsLedgerStorage(client)
            await reloaded.load()
            return await reloaded.get_goal(goal.id), await reloaded.list_deposits(goal.id)

        goal, deposits = asyncio.run(scenario())
        assert goal.current_amount == Decimal("75.50")
        assert len(deposits) == 1

    def test_corrupt_row_fails_load(self, client):
        client.get_collection_sheet(PERSONS).rows.append([str(uuid4()), "{not json", ""])
        with pytest.raises(StorageError, match="Corrupt row"):
            asyncio.run(GoogleSheetsLedgerStorage(client).load())


class TestAuditSheet:
    """Tests for the append-only audit worksheet."""

    def test_append_and_read_back(self, client):
        correlation_id = uuid4()

        async def scenario():
            audit = GoogleSheetsAuditStorage(client)
            await audit.append_event(AuditEventBuilder.csv_row_skipped(3, "Incomplete line", correlation_id))
            await audit.append_event(AuditEventBuilder.csv_imported(5, 5, 0, 1, correlation_id))
            await audit.append_event(AuditEventBuilder.month_status_changed("03/2024", True))
            return await audit.get_events_by_correlation_id(correlation_id)

        events = asyncio.run(scenario())
        assert len(events) == 2
        assert events[0].details == {"line_number": 3}
        assert events[0].error_message == "Incomplete line"

    def test_failed_append_returns_false(self, client, no_retry_wait):
        client.get_audit_sheet().fail_writes = True
        audit = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.month_status_changed("03/2024", True)
        assert asyncio.run(audit.append_event(event)) is False
