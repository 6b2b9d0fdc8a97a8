"""Tests for row filters and the row sources."""

from datetime import datetime, timezone

import gspread
import pytest

from finmate.models.audit import AuditEvent, AuditEventType
from finmate.services.storage import (
    FetchFailedError,
    GoogleSheetsAuditStorage,
    GoogleSheetsRowSource,
    InMemoryRowSource,
    RowFilter,
    apply_filters,
)


ROWS = [
    {"id": 1, "user_id": "u1", "date": "2024-03-01T00:00:00Z", "amount": 10},
    {"id": 2, "user_id": "u1", "date": "2024-03-15", "amount": "20"},
    {"id": 3, "user_id": "u2", "date": "2024-03-20", "amount": 30},
    {"id": 4, "user_id": "u1", "date": None, "amount": 40},
    {"id": 5, "user_id": "u1", "date": "2024-04-01T00:00:00Z", "amount": 50},
]


class TestRowFilter:
    """Tests for filter semantics."""

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError):
            RowFilter(field="id", op="like", value="x")

    def test_user_scope_and_loose_equality(self):
        rows = apply_filters(ROWS, user_id="u1", filters=[RowFilter.eq("id", "2")])
        assert [r["id"] for r in rows] == [2]

    def test_in_filter(self):
        rows = apply_filters(ROWS, filters=[RowFilter.is_in("id", ["1", 3.0])])
        assert [r["id"] for r in rows] == [1, 3]

    def test_date_range_with_datetimes(self):
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        end = datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
        rows = apply_filters(
            ROWS,
            user_id="u1",
            filters=[RowFilter.gte("date", start), RowFilter.lte("date", end)],
        )
        assert [r["id"] for r in rows] == [1, 2]

    def test_numeric_range_on_strings(self):
        rows = apply_filters(ROWS, filters=[RowFilter.gte("amount", 20)])
        assert [r["id"] for r in rows] == [2, 3, 4, 5]

    def test_oversized_numbers_compare_without_error(self):
        rows = [{"id": 1, "amount": 10**400}, {"id": 2, "amount": 5}]
        assert [r["id"] for r in apply_filters(rows, filters=[RowFilter.gte("amount", 10)])] == [1]
        assert [r["id"] for r in apply_filters(rows, order_by="amount", descending=True)] == [1, 2]

    def test_order_and_limit(self):
        rows = apply_filters(ROWS, user_id="u1", order_by="date", descending=True, limit=3)
        assert [r["id"] for r in rows] == [5, 2, 1]

    def test_rows_without_order_value_go_last(self):
        rows = apply_filters(ROWS, user_id="u1", order_by="date")
        assert [r["id"] for r in rows] == [1, 2, 5, 4]


class TestInMemoryRowSource:
    """Tests for the fixture-backed row source."""

    @pytest.mark.asyncio
    async def test_fetch_returns_copies(self):
        source = InMemoryRowSource({"goals": [{"id": 1, "name": "Car"}]})
        rows = await source.fetch_rows("goals")
        rows[0]["name"] = "Changed"
        again = await source.fetch_rows("goals")
        assert again[0]["name"] == "Car"
        assert source.calls == ["goals", "goals"]

    @pytest.mark.asyncio
    async def test_unknown_table_is_empty(self):
        assert await InMemoryRowSource().fetch_rows("nope") == []

    @pytest.mark.asyncio
    async def test_failing_table_raises(self):
        source = InMemoryRowSource({"goals": []})
        source.fail_table("goals")
        with pytest.raises(FetchFailedError) as exc_info:
            await source.fetch_rows("goals")
        assert exc_info.value.table == "goals"


class FakeWorksheet:
    def __init__(self, records):
        self.records = records
        self.appended = []

    def get_all_records(self):
        return [dict(r) for r in self.records]

    def append_row(self, row, value_input_option=None):
        self.appended.append(row)


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient; no credentials, no network."""

    def __init__(self, sheets):
        self.sheets = sheets
        self.audit_sheet = FakeWorksheet([])

    def get_worksheet(self, name):
        if name not in self.sheets:
            raise gspread.WorksheetNotFound(name)
        return self.sheets[name]

    def get_audit_sheet(self):
        return self.audit_sheet


class TestGoogleSheetsRowSource:
    """Tests for the worksheet-backed row source."""

    @pytest.mark.asyncio
    async def test_blank_cells_become_none_and_filters_apply(self):
        client = FakeSheetsClient({"accounts": FakeWorksheet([
            {"id": 1, "user_id": "u1", "name": "Chase", "currency": ""},
            {"id": 2, "user_id": "u2", "name": "Other", "currency": "USD"},
        ])})
        rows = await GoogleSheetsRowSource(client).fetch_rows("accounts", user_id="u1")
        assert rows == [{"id": 1, "user_id": "u1", "name": "Chase", "currency": None}]

    @pytest.mark.asyncio
    async def test_missing_worksheet_is_fetch_failure(self):
        source = GoogleSheetsRowSource(FakeSheetsClient({}))
        with pytest.raises(FetchFailedError) as exc_info:
            await source.fetch_rows("goals")
        assert exc_info.value.table == "goals"

    @pytest.mark.asyncio
    async def test_audit_events_are_appended(self):
        client = FakeSheetsClient({})
        event = AuditEvent(event_type=AuditEventType.FETCH_FAILED, description="x")
        assert await GoogleSheetsAuditStorage(client).append_event(event) is True
        assert client.audit_sheet.appended[0][2] == "fetch_failed"
