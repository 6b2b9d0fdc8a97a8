"""
Transaction Linker

A budget payment may point at the transaction that paid it. The reference
column has gone by several names, so it is read the same way amounts are:
first matching candidate wins.
"""

from collections import defaultdict
from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog

from finmate.models.records import Payment, Record, TransactionView
from finmate.reconciliation.normalizer import is_number, optional_id
from finmate.services.storage import RowFilter, RowSourceInterface


logger = structlog.get_logger(__name__)

TX_ID_KEYS = (
    "transaction_id",
    "tx_id",
    "expense_id",
    "transaction",
    "transaction_ref",
    "transactionId",
    "expenseId",
)


def _usable_ref(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if is_number(value):
        # optional_id drops NaN and infinities
        return optional_id(value)
    return None


def extract_transaction_ref(record: Record) -> Optional[str]:
    """The transaction a payment row references: non-empty string or finite number."""
    for key in TX_ID_KEYS:
        ref = _usable_ref(record.get(key))
        if ref is not None:
            return ref
    return None


def collect_transaction_refs(payments: Iterable[Payment]) -> list[str]:
    """Distinct references, in first-seen order."""
    seen: dict[str, None] = {}
    for payment in payments:
        if payment.transaction_ref is not None:
            seen.setdefault(payment.transaction_ref, None)
    return list(seen)


async def fetch_missing_transactions(
    refs: Sequence[str],
    known: Mapping[str, TransactionView],
    row_source: RowSourceInterface,
    table: str,
    user_id: Optional[str] = None,
) -> list[Record]:
    """
    Rows for referenced transactions that are not already loaded.

    The dashboard only loads recent transactions; older ones referenced by a
    payment are fetched by id here.

    Raises:
        FetchFailedError: If the lookup fails
    """
    missing = [ref for ref in refs if ref not in known]
    if not missing:
        return []
    logger.debug("fetching_linked_transactions", table=table, count=len(missing))
    return await row_source.fetch_rows(
        table,
        user_id=user_id,
        filters=[RowFilter.is_in("id", missing)],
    )


def link_payments_to_transactions(
    payments: Iterable[Payment],
    transactions: Mapping[str, TransactionView],
) -> dict[str, list[TransactionView]]:
    """
    Group referenced transactions by the budget item the payment belongs to.

    References to unknown transactions are skipped. A transaction appears at
    most once per item.
    """
    linked: dict[str, list[TransactionView]] = defaultdict(list)
    seen: set[tuple[str, str]] = set()
    for payment in payments:
        ref = payment.transaction_ref
        if ref is None:
            continue
        view = transactions.get(ref)
        if view is None or (payment.budget_item_id, ref) in seen:
            continue
        seen.add((payment.budget_item_id, ref))
        linked[payment.budget_item_id].append(view)
    return dict(linked)
