"""
Transaction annotation, filtering and category grouping, plus the
recent-expenses summary shown on the dashboard home.
"""

from collections import defaultdict
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Sequence

from finmate.models.records import ExpenseSummary, Record, TransactionView
from finmate.reconciliation.amounts import compute_amount_meta
from finmate.reconciliation.categories import UNCATEGORIZED_LABEL
from finmate.reconciliation.currency import CurrencyConverter
from finmate.reconciliation.matching import labels_match, normalize_label
from finmate.reconciliation.normalizer import (
    first_text,
    normalize_currency_code,
    optional_id,
    parse_timestamp,
    safe_number,
    text_or_empty,
)


def transaction_label(record: Record) -> str:
    """The account-ish label of a transaction: payment method, else account."""
    return text_or_empty(record.get("payment_method")) or text_or_empty(record.get("account"))


def is_credit_transaction(label: str, credit_names: Iterable[str]) -> bool:
    if not normalize_label(label):
        return False
    return any(labels_match(label, name) for name in credit_names)


def annotate_transaction(
    record: Record,
    credit_names: Iterable[str] = (),
    default_currency: str = "USD",
) -> TransactionView:
    """Sign, intent and credit flag for one transaction row."""
    meta = compute_amount_meta(
        record.get("amount"),
        record.get("entry_type"),
        record.get("transfer_direction"),
    )
    label = transaction_label(record)

    return TransactionView(
        id=optional_id(record.get("id")),
        amount=safe_number(record.get("amount"), "amount"),
        signed_amount=meta.signed,
        currency=normalize_currency_code(record.get("currency"), default_currency),
        entry_type=text_or_empty(record.get("entry_type")).lower(),
        intent=meta.intent,
        display_type=meta.display_type,
        display_sign=meta.display_sign,
        date=parse_timestamp(record.get("date")),
        created_at=parse_timestamp(record.get("created_at")),
        payment_method=label,
        category=text_or_empty(record.get("category")),
        merchant=text_or_empty(record.get("merchant")),
        description=text_or_empty(record.get("description")),
        is_credit=is_credit_transaction(label, credit_names),
    )


def _sort_key(view: TransactionView) -> tuple[float, float]:
    when = view.effective_date
    if when is None:
        day = 0.0
    else:
        day = datetime.combine(when.date(), time(), tzinfo=timezone.utc).timestamp()
    created = view.created_at or when
    return day, created.timestamp() if created else 0.0


def sort_transactions(views: Iterable[TransactionView]) -> list[TransactionView]:
    """Newest day first; within a day, most recently created first."""
    return sorted(views, key=_sort_key, reverse=True)


def annotate_transactions(
    records: Iterable[Record],
    credit_names: Iterable[str] = (),
    default_currency: str = "USD",
) -> list[TransactionView]:
    names = list(credit_names)
    return sort_transactions(
        annotate_transaction(record, names, default_currency) for record in records
    )


def filter_transactions(
    views: Iterable[TransactionView],
    account: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[TransactionView]:
    """
    Narrow annotated transactions by exact account label and an inclusive day range.

    Transactions without any date pass the range check only when no range is set.
    """
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to, time.max, tzinfo=timezone.utc) if date_to else None
    wanted_account = account.strip() if account else None

    selected = []
    for view in views:
        if wanted_account and view.payment_method.strip() != wanted_account:
            continue
        when = view.effective_date
        if (start or end) and when is None:
            continue
        if start and when < start:
            continue
        if end and when > end:
            continue
        selected.append(view)
    return selected


def account_options(views: Iterable[TransactionView]) -> list[str]:
    """Distinct account labels, alphabetically."""
    return sorted({v.payment_method.strip() for v in views if v.payment_method.strip()})


def group_transactions_by_category(
    views: Iterable[TransactionView],
) -> dict[str, list[TransactionView]]:
    groups: dict[str, list[TransactionView]] = defaultdict(list)
    for view in views:
        key = normalize_label(view.category)
        if key:
            groups[key].append(view)
    return dict(groups)


def transactions_for_category(
    groups: dict[str, list[TransactionView]],
    category: str,
) -> list[TransactionView]:
    """
    Transactions for one budget category.

    Exact (normalized) category match first; if that finds nothing, every
    group whose key contains or is contained in the category.
    """
    key = normalize_label(category)
    if not key:
        return []
    direct = groups.get(key)
    if direct:
        return list(direct)

    matched: list[TransactionView] = []
    for group_key, group in groups.items():
        if labels_match(group_key, key):
            matched.extend(group)
    return matched


def transactions_by_id(views: Sequence[TransactionView]) -> dict[str, TransactionView]:
    return {view.id: view for view in views if view.id is not None}


def _created_key(record: Record) -> tuple[bool, float]:
    created = parse_timestamp(record.get("created_at"))
    return created is not None, created.timestamp() if created else 0.0


def summarize_recent_expenses(
    records: Iterable[Record],
    converter: Optional[CurrencyConverter] = None,
    limit: int = 10,
) -> ExpenseSummary:
    """
    Total, count and top category over the ``limit`` newest expense rows.

    Rows are ordered by ``created_at`` (rows without one go last) before the
    limit applies. Amounts keep their stored sign and are converted to the
    reporting currency when a converter is given. Ties for the top category
    go to the category seen first.
    """
    recent = sorted(records, key=_created_key, reverse=True)[:limit]
    if not recent:
        return ExpenseSummary()

    total = 0.0
    by_category: dict[str, float] = {}
    for record in recent:
        amount = safe_number(record.get("amount"), "amount")
        if converter is not None:
            amount = converter.to_reporting_currency(amount, first_text(record, ("currency",)))
        category = text_or_empty(record.get("category")) or UNCATEGORIZED_LABEL
        total += amount
        by_category[category] = by_category.get(category, 0.0) + amount

    return ExpenseSummary(
        total=total,
        count=len(recent),
        top_category=max(by_category, key=by_category.__getitem__),
    )
