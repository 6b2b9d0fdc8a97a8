"""
Row filters shared by row sources that filter in Python.

Values are compared loosely: ``1`` and ``"1"`` are equal, and range filters
on timestamp-like strings compare as timestamps.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from finmate.models.records import Record


class RowFilter(BaseModel):
    """A single column filter."""
    model_config = ConfigDict(frozen=True)

    field: str
    op: str = Field(default="eq", pattern="^(eq|gte|lte|in)$")
    value: Any = None

    @classmethod
    def eq(cls, field: str, value: Any) -> "RowFilter":
        return cls(field=field, op="eq", value=value)

    @classmethod
    def gte(cls, field: str, value: Any) -> "RowFilter":
        return cls(field=field, op="gte", value=value)

    @classmethod
    def lte(cls, field: str, value: Any) -> "RowFilter":
        return cls(field=field, op="lte", value=value)

    @classmethod
    def is_in(cls, field: str, values: Iterable[Any]) -> "RowFilter":
        return cls(field=field, op="in", value=tuple(values))


def _loose_key(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps in the row store are UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _comparable(value: Any) -> Any:
    """Turn timestamps and numeric strings into something orderable."""
    if isinstance(value, datetime):
        return _as_utc(value).timestamp()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    try:
        return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).timestamp()
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def matches_filter(row: Record, row_filter: RowFilter) -> bool:
    actual = row.get(row_filter.field)

    if row_filter.op == "eq":
        return _loose_key(actual) == _loose_key(row_filter.value)
    if row_filter.op == "in":
        wanted = {_loose_key(v) for v in row_filter.value or ()}
        return _loose_key(actual) in wanted

    if actual is None or actual == "":
        return False
    left, right = _comparable(actual), _comparable(row_filter.value)
    try:
        if row_filter.op == "gte":
            return left >= right
        return left <= right
    except TypeError:
        # Mixed types (e.g. timestamp vs free text) never match a range
        return False


def apply_filters(
    rows: Iterable[Record],
    user_id: Optional[str] = None,
    filters: Iterable[RowFilter] = (),
    limit: Optional[int] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[Record]:
    """Filter, sort and limit rows the way a backend query would."""
    conditions = list(filters)
    if user_id is not None:
        conditions.insert(0, RowFilter.eq("user_id", user_id))

    selected = [
        row for row in rows
        if all(matches_filter(row, condition) for condition in conditions)
    ]

    if order_by:
        present = [r for r in selected if r.get(order_by) not in (None, "")]
        missing = [r for r in selected if r.get(order_by) in (None, "")]
        try:
            present.sort(key=lambda r: _comparable(r[order_by]), reverse=descending)
        except TypeError:
            present.sort(key=lambda r: str(r[order_by]), reverse=descending)
        selected = present + missing

    if limit is not None:
        selected = selected[:limit]
    return selected
