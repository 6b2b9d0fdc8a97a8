"""Tests for the schema normalizer and fuzzy label matching."""

import math
from datetime import date, datetime, timezone

import pytest

from finmate.reconciliation.matching import labels_match, normalize_label
from finmate.reconciliation.normalizer import (
    ParseFailureError,
    first_date_text,
    first_present,
    optional_id,
    parse_numeric,
    parse_timestamp,
    resolve_numeric_batch,
    resolve_numeric_field,
    safe_number,
)


PLANNED_KEYS = ("planned_amount", "amount", "expected_amount")


class TestParseNumeric:
    """Tests for permissive number parsing."""

    def test_numbers_pass_through(self):
        assert parse_numeric(42) == 42.0
        assert parse_numeric(-1.5) == -1.5

    def test_currency_symbols_and_separators_are_stripped(self):
        """Test '$1,234.50' reads as 1234.5."""
        assert parse_numeric("$1,234.50") == 1234.5
        assert parse_numeric(" COP 2.000 ") == 2.0
        assert parse_numeric("-75") == -75.0

    @pytest.mark.parametrize("value", ["abc", "", None, True, float("nan"), float("inf"), [1]])
    def test_unparsable_values_raise(self, value):
        with pytest.raises(ParseFailureError):
            parse_numeric(value, "amount")

    def test_int_beyond_float_range_raises_parse_failure(self):
        with pytest.raises(ParseFailureError) as exc_info:
            parse_numeric(10**400, "amount")
        assert exc_info.value.field == "amount"

    def test_parse_failure_carries_field(self):
        with pytest.raises(ParseFailureError) as exc_info:
            parse_numeric("n/a", "planned_amount")
        assert exc_info.value.field == "planned_amount"

    def test_safe_number_defaults(self):
        assert safe_number("junk") == 0.0
        assert safe_number(None, default=5.0) == 5.0


class TestResolveNumericField:
    """Tests for candidate-key resolution on a single row."""

    def test_first_numeric_candidate_wins(self):
        record = {"amount": "12", "expected_amount": 99}
        assert resolve_numeric_field(record, PLANNED_KEYS) == 12.0

    def test_non_numeric_candidates_are_skipped(self):
        record = {"planned_amount": "tbd", "amount": None, "expected_amount": "7.5"}
        assert resolve_numeric_field(record, PLANNED_KEYS) == 7.5

    @pytest.mark.parametrize("record", [
        {},
        {"planned_amount": None},
        {"planned_amount": "n/a", "amount": float("nan")},
        {"planned_amount": True},
        {"other": 10},
        {"planned_amount": 10**400},
        {"planned_amount": -10**400, "amount": "oops"},
    ])
    def test_never_raises_and_is_finite(self, record):
        """Test totality: any row resolves to a finite number."""
        value = resolve_numeric_field(record, PLANNED_KEYS)
        assert math.isfinite(value)
        assert value == 0.0


class TestResolveNumericBatch:
    """Tests for the first-row sniffing batch policy."""

    def test_first_row_decides_the_column(self):
        records = [
            {"planned_amount": 100, "amount": 1},
            {"planned_amount": "50", "amount": 2},
        ]
        assert resolve_numeric_batch(records, PLANNED_KEYS) == [100.0, 50.0]

    def test_later_rows_with_other_columns_resolve_to_zero(self):
        """Test the column sniffed from row one is applied to every row."""
        records = [
            {"amount": 100},
            {"planned_amount": 70},
        ]
        assert resolve_numeric_batch(records, PLANNED_KEYS) == [100.0, 0.0]

    def test_first_row_without_candidates_resolves_per_row(self):
        records = [
            {"name": "Rent"},
            {"planned_amount": 70},
            {"expected_amount": "30"},
        ]
        assert resolve_numeric_batch(records, PLANNED_KEYS) == [0.0, 70.0, 30.0]

    def test_oversized_ints_resolve_to_zero(self):
        records = [{"planned_amount": 10**400}, {"planned_amount": 25}]
        assert resolve_numeric_batch(records, PLANNED_KEYS) == [0.0, 25.0]
        assert resolve_numeric_batch([{"name": "x"}, {"amount": 10**400}], PLANNED_KEYS) == [0.0, 0.0]

    def test_empty_batch(self):
        assert resolve_numeric_batch([], PLANNED_KEYS) == []


class TestFieldHelpers:
    """Tests for ids and timestamps."""

    def test_optional_id_drops_float_suffix(self):
        assert optional_id(12.0) == "12"
        assert optional_id(" abc ") == "abc"
        assert optional_id("") is None
        assert optional_id(None) is None

    def test_optional_id_keeps_large_int_ids(self):
        assert optional_id(10**400) == "1" + "0" * 400

    def test_parse_timestamp_handles_z_suffix(self):
        parsed = parse_timestamp("2024-03-05T10:00:00Z")
        assert parsed == datetime(2024, 3, 5, 10, tzinfo=timezone.utc)

    def test_parse_timestamp_naive_is_utc(self):
        assert parse_timestamp("2024-03-05").tzinfo is not None
        assert parse_timestamp(date(2024, 3, 5)) == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_parse_timestamp_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(12345) is None

    def test_first_present_skips_blank_values(self):
        record = {"due_date": "  ", "due": None, "deadline": 0, "dueDate": "2024-01-01"}
        assert first_present(record, ("due_date", "due", "deadline", "dueDate")) == ("deadline", 0)
        assert first_present({}, ("due",)) == (None, None)

    def test_first_date_text_accepts_date_cells(self):
        keys = ("due_date", "due")
        assert first_date_text({"due_date": date(2024, 3, 5)}, keys) == "2024-03-05"
        assert first_date_text({"due_date": "", "due": " 2024-03-20 "}, keys) == "2024-03-20"
        assert first_date_text({"due_date": 20240305}, keys) is None
        assert first_date_text({}, keys) is None


class TestLabelMatching:
    """Tests for the shared fuzzy matcher."""

    def test_normalize_label(self):
        assert normalize_label("  Visa   Card ") == "visa card"
        assert normalize_label(None) == ""

    def test_match_is_bidirectional(self):
        assert labels_match("Visa", "visa  card")
        assert labels_match("VISA CARD gold", "Visa Card")

    def test_unrelated_labels_do_not_match(self):
        assert not labels_match("Savings", "Checking")

    def test_empty_labels_never_match(self):
        assert not labels_match("", "Visa")
        assert not labels_match("Visa", "   ")
