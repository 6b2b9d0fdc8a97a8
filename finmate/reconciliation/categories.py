"""
Category Resolver

Budget items point at their category either through a foreign key
(``category_id`` and friends) or through a free-text label (``category``,
``group``, ...). Resolution prefers the key, falls back to the label, and
buckets everything else as "Uncategorized".

Items resolved by key start out with the key itself as their label. A
second step, ``hydrate_category_labels``, looks the keys up in the category
tables and swaps in the human-readable names.
"""

from typing import Any, Iterable, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict

from finmate.models.records import Record, ResolvedCategory
from finmate.reconciliation.normalizer import first_text, is_number, optional_id
from finmate.services.storage import FetchFailedError, RowFilter, RowSourceInterface


logger = structlog.get_logger(__name__)

CATEGORY_ID_KEYS = ("category_id", "budget_category_id", "categoryId", "category_ref")
CATEGORY_LABEL_KEYS = ("category", "group", "type", "label")
CATEGORY_NAME_KEYS = ("name", "title", "label")

UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_LABEL = "Uncategorized"


class CategoryLookup(BaseModel):
    """One table that can turn category ids into names."""
    model_config = ConfigDict(frozen=True)

    table: str
    id_key: str = "id"
    name_keys: tuple[str, ...] = CATEGORY_NAME_KEYS


def _category_key(value: Any) -> Optional[str]:
    if is_number(value):
        return optional_id(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_category(record: Record) -> ResolvedCategory:
    """
    Map a budget item row to a stable category identity.

    Idempotent: the same row always resolves to the same pair.
    """
    label = first_text(record, CATEGORY_LABEL_KEYS)

    for key in CATEGORY_ID_KEYS:
        raw = record.get(key)
        category_id = _category_key(raw)
        if category_id is not None:
            return ResolvedCategory(
                category_id=category_id,
                label=label or category_id,
                raw_id=raw,
            )

    if label:
        return ResolvedCategory(category_id=label.lower(), label=label)

    return ResolvedCategory(category_id=UNCATEGORIZED_ID, label=UNCATEGORIZED_LABEL)


def normalize_lookup_id(value: Any) -> Any:
    """Numeric-looking ids become ints for the lookup query; others stay trimmed strings."""
    if is_number(value):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return text


def default_lookups(tables: Sequence[str]) -> list[CategoryLookup]:
    return [CategoryLookup(table=table) for table in tables]


async def fetch_category_names(
    raw_ids: Iterable[Any],
    row_source: RowSourceInterface,
    lookups: Sequence[CategoryLookup],
) -> dict[str, str]:
    """
    Map category keys to names using the first lookup that matches anything.

    Lookups are tried in order. A lookup that fails to fetch is logged and
    skipped; one that returns rows but no names also falls through.
    """
    wanted = []
    seen = set()
    for raw in raw_ids:
        normalized = normalize_lookup_id(raw)
        if normalized in ("", None) or normalized in seen:
            continue
        seen.add(normalized)
        wanted.append(normalized)
    if not wanted:
        return {}

    for lookup in lookups:
        try:
            rows = await row_source.fetch_rows(
                lookup.table,
                filters=[RowFilter.is_in(lookup.id_key, wanted)],
            )
        except FetchFailedError as e:
            logger.warning("category_lookup_failed", table=lookup.table, error=str(e))
            continue

        names: dict[str, str] = {}
        for row in rows:
            key = _category_key(row.get(lookup.id_key))
            name = first_text(row, lookup.name_keys)
            if key is not None and name:
                names[key] = name
        if names:
            return names

    return {}


async def hydrate_category_labels(
    resolved: Sequence[ResolvedCategory],
    row_source: RowSourceInterface,
    lookups: Sequence[CategoryLookup],
) -> list[ResolvedCategory]:
    """
    Replace placeholder labels with names from the category tables.

    Returns a new list in the same order; identities (category_id) never change.
    """
    pending = [r.raw_id for r in resolved if r.needs_label]
    names = await fetch_category_names(pending, row_source, lookups)
    if not names:
        return list(resolved)

    return [
        r.model_copy(update={"label": names[r.category_id]})
        if r.needs_label and r.category_id in names
        else r
        for r in resolved
    ]
