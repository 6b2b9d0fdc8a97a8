"""
Payment Aggregator

Sums this month's payments per budget item, then per category.
"""

import calendar
from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from finmate.models.records import MonthWindow, Payment, Record
from finmate.reconciliation.currency import CurrencyConverter
from finmate.reconciliation.linker import extract_transaction_ref
from finmate.reconciliation.normalizer import (
    normalize_currency_code,
    optional_id,
    parse_timestamp,
    safe_number,
)


PAYMENT_AMOUNT_KEYS = ("amount", "paid_amount", "value")
PAYMENT_DATE_KEY = "date"


class PaymentTotals(BaseModel):
    """Paid amounts (reporting currency) keyed by item id and by category id."""

    paid_by_item: dict[str, float] = Field(default_factory=dict)
    paid_by_category: dict[str, float] = Field(default_factory=dict)


def month_window(now: Optional[datetime] = None) -> MonthWindow:
    """
    The calendar month containing ``now``, in UTC.

    Runs from the 1st at 00:00:00.000 to the last day at 23:59:59.999.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return MonthWindow(start=start, end=end)


def build_payment(record: Record, reporting_currency: str) -> Optional[Payment]:
    """Payment from a raw row; None when the row references no budget item."""
    item_id = optional_id(record.get("budget_item_id"))
    if item_id is None:
        return None

    amount = 0.0
    for key in PAYMENT_AMOUNT_KEYS:
        if record.get(key) is not None:
            amount = safe_number(record.get(key), key)
            break

    return Payment(
        id=optional_id(record.get("id")),
        budget_item_id=item_id,
        amount=amount,
        currency=normalize_currency_code(record.get("currency"), reporting_currency),
        date=parse_timestamp(record.get(PAYMENT_DATE_KEY)),
        transaction_ref=extract_transaction_ref(record),
    )


def payments_in_window(
    records: Iterable[Record],
    window: MonthWindow,
    reporting_currency: str,
) -> list[Payment]:
    """
    Payments dated inside the window.

    The fetch layer may already have filtered by date; this checks again.
    Payments with a missing or unparsable date count as outside the window.
    """
    selected = []
    for record in records:
        payment = build_payment(record, reporting_currency)
        if payment is None or payment.date is None:
            continue
        if window.contains(payment.date):
            selected.append(payment)
    return selected


def aggregate_payments(
    payments: Iterable[Record],
    item_to_category: Mapping[str, str],
    window: MonthWindow,
    converter: CurrencyConverter,
) -> PaymentTotals:
    """
    Sum |amount| per budget item and roll the item sums up to categories.

    Items with no entry in ``item_to_category`` keep their item total but are
    left out of every category total (they are NOT bucketed as uncategorized).
    """
    paid_by_item: dict[str, float] = defaultdict(float)
    for payment in payments_in_window(payments, window, converter.reporting_currency):
        paid_by_item[payment.budget_item_id] += abs(
            converter.to_reporting_currency(payment.amount, payment.currency)
        )

    paid_by_category: dict[str, float] = defaultdict(float)
    for item_id, paid in paid_by_item.items():
        category_id = item_to_category.get(item_id)
        if category_id is None:
            continue
        paid_by_category[category_id] += paid

    return PaymentTotals(
        paid_by_item=dict(paid_by_item),
        paid_by_category=dict(paid_by_category),
    )
