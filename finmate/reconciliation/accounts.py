"""
Account Classifier & Net-Worth Aggregator

Accounts split into regular accounts and credit cards. Neither kind is
linked to transactions by key: a transaction belongs to an account when its
payment-method label and the account name fuzzily match (see matching.py).

- Regular accounts: starting balance plus matching signed transactions,
  in the account's own currency.
- Credit cards: matching signed transactions summed in the reporting
  currency; with no matches, the stored balance column instead.

Net worth counts regular accounts only. Card balances are reported next to
it, never subtracted from it.
"""

from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from finmate.models.records import Account, AccountDisplay, Record, TransactionView
from finmate.reconciliation.currency import CurrencyConverter
from finmate.reconciliation.matching import labels_match, normalize_label
from finmate.reconciliation.normalizer import (
    first_text,
    normalize_currency_code,
    optional_id,
    resolve_numeric_field,
    text_or_empty,
)


STARTING_BALANCE_KEYS = ("starting_balance", "initial_balance", "opening_balance", "balance")
CREDIT_BALANCE_KEYS = (
    "current_balance",
    "statement_balance",
    "outstanding_balance",
    "due_amount",
    "balance",
    "starting_balance",
)
CREDIT_FLAG_KEYS = ("is_credit_card", "is_credit")
ACCOUNT_TYPE_KEYS = ("type", "account_type")


class AccountClassification(BaseModel):
    regular: list[Account] = Field(default_factory=list)
    credit_cards: list[Account] = Field(default_factory=list)


class AccountsSummary(BaseModel):
    """Reconciled accounts, sorted for display."""

    accounts: list[AccountDisplay] = Field(default_factory=list)
    credit_cards: list[AccountDisplay] = Field(default_factory=list)
    net_worth: float = 0.0
    credit_card_balance: float = 0.0


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    # Sheets hands booleans back as TRUE/FALSE strings
    return isinstance(value, str) and value.strip().lower() == "true"


def is_credit_card(record: Record) -> bool:
    """
    Credit flag, else a type mentioning credit/card, else a name mentioning card.
    """
    if any(_flag(record.get(key)) for key in CREDIT_FLAG_KEYS):
        return True
    account_type = (first_text(record, ACCOUNT_TYPE_KEYS) or "").lower()
    if "credit" in account_type or "card" in account_type:
        return True
    return "card" in text_or_empty(record.get("name")).lower()


def build_account(record: Record, reporting_currency: str) -> Account:
    credit = is_credit_card(record)
    return Account(
        id=optional_id(record.get("id")),
        name=text_or_empty(record.get("name")),
        native_amount=resolve_numeric_field(
            record, CREDIT_BALANCE_KEYS if credit else STARTING_BALANCE_KEYS
        ),
        currency=normalize_currency_code(record.get("currency"), reporting_currency),
        is_credit_card=credit,
    )


def classify_accounts(
    records: Iterable[Record],
    reporting_currency: str = "COP",
) -> AccountClassification:
    classification = AccountClassification()
    for record in records:
        account = build_account(record, reporting_currency)
        if account.is_credit_card:
            classification.credit_cards.append(account)
        else:
            classification.regular.append(account)
    return classification


def credit_card_names(records: Iterable[Record]) -> set[str]:
    """Normalized names of every credit-card account, for transaction flags."""
    return {
        normalize_label(record.get("name"))
        for record in records
        if is_credit_card(record) and normalize_label(record.get("name"))
    }


def matching_transactions(
    account: Account,
    transactions: Iterable[TransactionView],
) -> list[TransactionView]:
    return [t for t in transactions if labels_match(t.payment_method, account.name)]


def regular_account_display(
    account: Account,
    transactions: Sequence[TransactionView],
    converter: CurrencyConverter,
) -> AccountDisplay:
    matches = matching_transactions(account, transactions)
    native = account.native_amount + sum(
        converter.convert(t.signed_amount, t.currency, account.currency) for t in matches
    )
    return AccountDisplay(
        id=account.id,
        name=account.name,
        currency=account.currency,
        native_balance=native,
        converted_balance=converter.to_reporting_currency(native, account.currency),
        is_credit_card=False,
        matched_transactions=len(matches),
    )


def credit_card_display(
    account: Account,
    transactions: Sequence[TransactionView],
    converter: CurrencyConverter,
) -> AccountDisplay:
    matches = matching_transactions(account, transactions)
    if matches:
        converted = sum(
            converter.to_reporting_currency(t.signed_amount, t.currency) for t in matches
        )
        native = converter.convert(converted, converter.reporting_currency, account.currency)
    else:
        native = account.native_amount
        converted = converter.to_reporting_currency(native, account.currency)
    return AccountDisplay(
        id=account.id,
        name=account.name,
        currency=account.currency,
        native_balance=native,
        converted_balance=converted,
        is_credit_card=True,
        matched_transactions=len(matches),
    )


def compute_net_worth(regular: Iterable[AccountDisplay]) -> float:
    """Sum of converted regular-account balances."""
    return sum(display.converted_balance for display in regular)


def sort_accounts(displays: Iterable[AccountDisplay]) -> list[AccountDisplay]:
    """Largest converted balance first; ties by name, reverse lexicographic."""
    return sorted(displays, key=lambda d: (d.converted_balance, d.name), reverse=True)


def reconcile_accounts(
    records: Sequence[Record],
    transactions: Sequence[TransactionView],
    converter: CurrencyConverter,
) -> AccountsSummary:
    classification = classify_accounts(records, converter.reporting_currency)

    regular = sort_accounts(
        regular_account_display(account, transactions, converter)
        for account in classification.regular
    )
    cards = sort_accounts(
        credit_card_display(account, transactions, converter)
        for account in classification.credit_cards
    )

    return AccountsSummary(
        accounts=regular,
        credit_cards=cards,
        net_worth=compute_net_worth(regular),
        credit_card_balance=sum(card.converted_balance for card in cards),
    )
