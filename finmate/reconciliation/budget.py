"""
Budget summary: budget items rolled up into category aggregates.
"""

import math
from collections import defaultdict
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from finmate.models.records import (
    BudgetDisplay,
    BudgetItem,
    CategoryAggregate,
    Record,
    ResolvedCategory,
)
from finmate.reconciliation.categories import resolve_category
from finmate.reconciliation.currency import CurrencyConverter
from finmate.reconciliation.normalizer import (
    first_date_text,
    first_text,
    optional_id,
    parse_timestamp,
    resolve_numeric_batch,
)
from finmate.reconciliation.payments import PaymentTotals


PLANNED_AMOUNT_KEYS = ("planned_amount", "amount", "expected_amount")
ITEM_NAME_KEYS = ("name", "title", "label")
DUE_DATE_KEYS = ("due_date", "due", "deadline", "dueDate", "due_at")


class BudgetSummary(BaseModel):
    """Category aggregates plus the item breakdown behind each one."""

    categories: list[CategoryAggregate] = Field(default_factory=list)
    items_by_category: dict[str, list[BudgetDisplay]] = Field(default_factory=dict)


def progress_pct(paid: float, planned: float) -> float:
    """paid/planned as a percentage; 0 without a positive plan. Never capped."""
    return (paid / planned) * 100 if planned > 0 else 0.0


def build_budget_items(
    records: Sequence[Record],
    categories: Optional[Sequence[ResolvedCategory]] = None,
    converter: Optional[CurrencyConverter] = None,
) -> list[BudgetItem]:
    """
    Budget items from raw rows.

    ``categories`` are the (possibly hydrated) resolutions for ``records`` in
    the same order; they are resolved here when omitted. Planned amounts are
    taken as reporting currency unless the row names another currency.
    """
    planned = resolve_numeric_batch(records, PLANNED_AMOUNT_KEYS)
    resolved = list(categories) if categories is not None else [
        resolve_category(record) for record in records
    ]

    items = []
    for record, amount, category in zip(records, planned, resolved):
        currency = first_text(record, ("currency",))
        if converter is not None and currency:
            amount = converter.to_reporting_currency(amount, currency)
        items.append(BudgetItem(
            id=optional_id(record.get("id")),
            category_id=category.category_id,
            category_label=category.label,
            name=first_text(record, ITEM_NAME_KEYS) or "Item",
            planned_amount=amount,
            due_date=first_date_text(record, DUE_DATE_KEYS),
        ))
    return items


def item_category_map(items: Sequence[BudgetItem]) -> dict[str, str]:
    """Budget item id -> category id, for items that have an id."""
    return {item.id: item.category_id for item in items if item.id is not None}


def _due_sort_key(due: str) -> float:
    parsed = parse_timestamp(due)
    return parsed.timestamp() if parsed else math.inf


def summarize_budget(
    items: Sequence[BudgetItem],
    totals: Optional[PaymentTotals] = None,
) -> BudgetSummary:
    """
    Roll items up into category aggregates.

    Categories are ordered by progress (highest first), then by planned
    amount. Each category carries its earliest due date. Items inside a
    category are ordered by planned amount, largest first. Without payment
    totals everything shows as unpaid.
    """
    totals = totals or PaymentTotals()

    planned_by_category: dict[str, float] = defaultdict(float)
    label_by_category: dict[str, str] = {}
    due_by_category: dict[str, str] = {}
    items_by_category: dict[str, list[BudgetDisplay]] = defaultdict(list)

    for item in items:
        category_id = item.category_id
        planned_by_category[category_id] += item.planned_amount
        label_by_category.setdefault(category_id, item.category_label)

        if item.due_date:
            previous = due_by_category.get(category_id)
            if previous is None or _due_sort_key(item.due_date) < _due_sort_key(previous):
                due_by_category[category_id] = item.due_date

        if item.id is not None:
            paid = totals.paid_by_item.get(item.id, 0.0)
            items_by_category[category_id].append(BudgetDisplay(
                id=item.id,
                name=item.name,
                category_id=category_id,
                planned=item.planned_amount,
                paid=paid,
                progress_pct=progress_pct(paid, item.planned_amount),
                due_date=item.due_date,
            ))

    aggregates = []
    for category_id, planned in planned_by_category.items():
        paid = totals.paid_by_category.get(category_id, 0.0)
        aggregates.append(CategoryAggregate(
            category_id=category_id,
            label=label_by_category[category_id],
            planned=planned,
            paid=paid,
            progress_pct=progress_pct(paid, planned),
            due_date=due_by_category.get(category_id),
        ))
    aggregates.sort(key=lambda a: (a.progress_pct, a.planned), reverse=True)

    for displays in items_by_category.values():
        displays.sort(key=lambda d: d.planned, reverse=True)

    return BudgetSummary(
        categories=aggregates,
        items_by_category=dict(items_by_category),
    )
