"""
Schema Normalizer

Backend tables have drifted over time: the planned amount of a budget item
may live in ``planned_amount``, ``amount`` or ``expected_amount`` depending
on when the row was written. Instead of migrating, every logical quantity has
an ordered list of candidate column names and is read through these helpers.

Batch policy: ``resolve_numeric_batch`` sniffs the column from the FIRST row
and applies it to every row in the batch. If the first row lacks a column
that later rows have, those later values are ignored (they resolve to 0).
This is deliberate, matching how the dashboard has always read its tables;
it is a known sharp edge, not something to "fix" per row.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from finmate.models.records import Record


_NON_NUMERIC = re.compile(r"[^0-9.+\-]")


def _describe(value: Any) -> str:
    try:
        return repr(value)
    except ValueError:
        # ints too long for str()
        return f"<{type(value).__name__}>"


class ParseFailureError(ValueError):
    """A field value could not be read as a number. Never surfaced to users."""

    def __init__(self, field: Optional[str], value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Could not parse {field or 'value'}: {_describe(value)}")


def is_number(value: Any) -> bool:
    """Real numbers only; booleans are flags, not amounts."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_numeric(value: Any, field: Optional[str] = None) -> float:
    """
    Parse a number permissively.

    Numbers pass through. Strings lose every character that is not a digit,
    sign or dot (currency symbols, thousands separators, spaces) and are then
    parsed as a float, so ``"$1,234.50"`` reads as ``1234.5``.

    Raises:
        ParseFailureError: If nothing finite can be read
    """
    if is_number(value):
        try:
            number = float(value)
        except OverflowError:
            # ints past the float range
            raise ParseFailureError(field, value) from None
    elif isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        try:
            number = float(cleaned)
        except ValueError:
            raise ParseFailureError(field, value) from None
    else:
        raise ParseFailureError(field, value)

    if not math.isfinite(number):
        raise ParseFailureError(field, value)
    return number


def safe_number(value: Any, field: Optional[str] = None, default: float = 0.0) -> float:
    """parse_numeric that defaults instead of raising."""
    try:
        return parse_numeric(value, field)
    except ParseFailureError:
        return default


def is_numeric_like(value: Any) -> bool:
    if not (is_number(value) or isinstance(value, str)):
        return False
    try:
        parse_numeric(value)
    except ParseFailureError:
        return False
    return True


def resolve_numeric_field(record: Record, candidate_keys: Sequence[str]) -> float:
    """
    First candidate column holding a number or numeric-looking string.

    Returns 0.0 when no candidate matches. Never raises.
    """
    for key in candidate_keys:
        value = record.get(key)
        if is_numeric_like(value):
            return parse_numeric(value, key)
    return 0.0


def sniff_key(record: Optional[Record], candidate_keys: Sequence[str]) -> Optional[str]:
    """First candidate column whose value is a number or a string."""
    if not record:
        return None
    for key in candidate_keys:
        value = record.get(key)
        if is_number(value) or isinstance(value, str):
            return key
    return None


def resolve_numeric_batch(
    records: Sequence[Record],
    candidate_keys: Sequence[str],
) -> list[float]:
    """
    Read one numeric quantity from every record of a batch.

    The first record decides the column for the whole batch. Only when the
    first record has none of the candidates does each row get resolved on
    its own.
    """
    if not records:
        return []

    key = sniff_key(records[0], candidate_keys)
    if key is None:
        return [resolve_numeric_field(record, candidate_keys) for record in records]
    return [safe_number(record.get(key), key) for record in records]


def first_present(record: Record, keys: Iterable[str]) -> tuple[Optional[str], Any]:
    """First key whose value is not None/empty; (None, None) otherwise."""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return key, value
    return None, None


def first_date_text(record: Record, keys: Iterable[str]) -> Optional[str]:
    """
    First present date-ish field as text.

    Date and datetime cells come back as ISO strings; strings are stripped.
    Other types (numbers, flags) are not dates and yield None.
    """
    _, value = first_present(record, keys)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return None


def first_text(record: Record, keys: Iterable[str]) -> Optional[str]:
    """First key holding a non-empty string, stripped."""
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def text_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def optional_id(value: Any) -> Optional[str]:
    """Row ids as strings; integral floats lose their ``.0``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            value = int(value)
    try:
        text = str(value).strip()
    except ValueError:
        # ints too long for str()
        return None
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp or date into an aware UTC datetime.

    Naive values are taken as UTC. Anything unparsable yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def normalize_currency_code(value: Any, default: str) -> str:
    text = text_or_empty(value).upper()
    return text or default.upper()
