"""
Transaction sign and intent.

Transactions store amounts with inconsistent signs; the entry type is what
decides whether money came in or went out. ``compute_amount_meta`` is total:
any input (None, junk strings, NaN) produces a defined AmountMeta.
"""

from typing import Any, Optional

from finmate.models.records import AmountIntent, AmountMeta
from finmate.reconciliation.normalizer import safe_number


_DISPLAY_TYPES = {
    AmountIntent.TRANSFER_IN: "Transfer In",
    AmountIntent.TRANSFER_OUT: "Transfer Out",
    AmountIntent.TRANSFER: "Transfer",
    AmountIntent.INCOME: "Income",
    AmountIntent.EXPENSE: "Expense",
}


def normalize_entry_type(entry_type: Optional[Any]) -> str:
    if entry_type is None:
        return ""
    return str(entry_type).strip().lower()


def normalize_transfer_direction(direction: Optional[Any]) -> str:
    value = normalize_entry_type(direction)
    return value if value in ("in", "out") else ""


def compute_amount_meta(
    amount: Any,
    entry_type: Optional[Any] = None,
    transfer_direction: Optional[Any] = None,
) -> AmountMeta:
    """
    Resolve the signed amount, intent and display convention.

    - income: +|amount|
    - expense: -|amount|
    - transfer*: direction in/out picks the sign; no direction keeps the raw sign
    - anything else: the raw sign decides income (>0) or expense (<0); zero is "other"
    """
    base = safe_number(amount, "amount")
    kind = normalize_entry_type(entry_type)
    direction = normalize_transfer_direction(transfer_direction)

    intent = AmountIntent.OTHER
    signed = base

    if kind == "income":
        signed = abs(base)
        intent = AmountIntent.INCOME
    elif kind == "expense":
        signed = -abs(base)
        intent = AmountIntent.EXPENSE
    elif kind.startswith("transfer"):
        if direction == "in":
            signed = abs(base)
            intent = AmountIntent.TRANSFER_IN
        elif direction == "out":
            signed = -abs(base)
            intent = AmountIntent.TRANSFER_OUT
        else:
            intent = AmountIntent.TRANSFER
    elif base > 0:
        intent = AmountIntent.INCOME
    elif base < 0:
        intent = AmountIntent.EXPENSE

    # -0.0 displays as zero
    if signed == 0:
        signed = 0.0

    display_sign = "+" if signed > 0 else "-" if signed < 0 else ""
    display_type = _DISPLAY_TYPES.get(intent) or ("Income" if signed >= 0 else "Expense")

    return AmountMeta(
        signed=signed,
        abs=abs(signed),
        intent=intent,
        display_type=display_type,
        display_sign=display_sign,
        direction=direction,
    )
