"""
Fuzzy label matching.

Free-text labels ("Visa Card", "visa  card ", "VISA") link rows across tables
that have no foreign keys between them: transactions to accounts by payment
method, transactions to budget categories by category name. Every such link
goes through these two functions so the rules live in one place.
"""

import re
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def normalize_label(value: Any) -> str:
    """Lowercase, trim, collapse runs of whitespace."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().lower()


def labels_match(left: Any, right: Any) -> bool:
    """
    True when either normalized label contains the other.

    Empty labels never match anything.
    """
    a, b = normalize_label(left), normalize_label(right)
    if not a or not b:
        return False
    return a in b or b in a
