"""
Reconciliation engine.

Pure functions (plus a few lookups through a row source) that turn loosely
typed rows into display-ready, currency-converted aggregates.
"""

from finmate.reconciliation.accounts import (
    AccountClassification,
    AccountsSummary,
    classify_accounts,
    compute_net_worth,
    credit_card_names,
    is_credit_card,
    reconcile_accounts,
    sort_accounts,
)
from finmate.reconciliation.amounts import compute_amount_meta
from finmate.reconciliation.budget import (
    BudgetSummary,
    build_budget_items,
    item_category_map,
    progress_pct,
    summarize_budget,
)
from finmate.reconciliation.categories import (
    UNCATEGORIZED_ID,
    UNCATEGORIZED_LABEL,
    CategoryLookup,
    default_lookups,
    fetch_category_names,
    hydrate_category_labels,
    resolve_category,
)
from finmate.reconciliation.currency import CurrencyConverter
from finmate.reconciliation.generations import RequestGenerations
from finmate.reconciliation.goals import (
    build_goal,
    build_goal_displays,
    compute_goal_progress,
)
from finmate.reconciliation.linker import (
    collect_transaction_refs,
    extract_transaction_ref,
    fetch_missing_transactions,
    link_payments_to_transactions,
)
from finmate.reconciliation.matching import labels_match, normalize_label
from finmate.reconciliation.normalizer import (
    ParseFailureError,
    parse_numeric,
    resolve_numeric_batch,
    resolve_numeric_field,
)
from finmate.reconciliation.payments import (
    PaymentTotals,
    aggregate_payments,
    build_payment,
    month_window,
    payments_in_window,
)
from finmate.reconciliation.transactions import (
    account_options,
    annotate_transaction,
    annotate_transactions,
    filter_transactions,
    group_transactions_by_category,
    sort_transactions,
    summarize_recent_expenses,
    transactions_by_id,
    transactions_for_category,
)

__all__ = [
    # Normalizer
    "ParseFailureError",
    "parse_numeric",
    "resolve_numeric_batch",
    "resolve_numeric_field",
    # Matching
    "labels_match",
    "normalize_label",
    # Categories
    "UNCATEGORIZED_ID",
    "UNCATEGORIZED_LABEL",
    "CategoryLookup",
    "default_lookups",
    "fetch_category_names",
    "hydrate_category_labels",
    "resolve_category",
    # Currency
    "CurrencyConverter",
    # Payments and budget
    "PaymentTotals",
    "aggregate_payments",
    "build_payment",
    "month_window",
    "payments_in_window",
    "BudgetSummary",
    "build_budget_items",
    "item_category_map",
    "progress_pct",
    "summarize_budget",
    # Accounts
    "AccountClassification",
    "AccountsSummary",
    "classify_accounts",
    "compute_net_worth",
    "credit_card_names",
    "is_credit_card",
    "reconcile_accounts",
    "sort_accounts",
    # Transactions
    "compute_amount_meta",
    "account_options",
    "annotate_transaction",
    "annotate_transactions",
    "filter_transactions",
    "group_transactions_by_category",
    "sort_transactions",
    "summarize_recent_expenses",
    "transactions_by_id",
    "transactions_for_category",
    # Goals
    "build_goal",
    "build_goal_displays",
    "compute_goal_progress",
    # Linking
    "collect_transaction_refs",
    "extract_transaction_ref",
    "fetch_missing_transactions",
    "link_payments_to_transactions",
    # Request generations
    "RequestGenerations",
]
