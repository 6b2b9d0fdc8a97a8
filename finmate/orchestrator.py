"""
Main Orchestrator for FinMate

This module ties together all the components and defines the end-to-end
reconciliation pass:

    identity → concurrent fetches → normalize → convert → aggregate → snapshot

DESIGN DECISION: The orchestrator enforces the failure boundaries:
- No user, no pass (NotAuthenticatedError)
- Primary tables (budget items, transactions) failing raise the single
  error banner on the snapshot
- Everything else degrades to an empty section plus a warning
- Every soft failure is audited

The reconciliation modules themselves never fetch (category hydration and
linked-transaction lookups aside) and never log; this is the glue that
decides what a failure means for the dashboard.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence
from uuid import UUID

import structlog

from finmate.audit import AuditLogger, configure_logging, create_correlation_id
from finmate.config import ReconciliationSettings, get_settings, validate_all_settings
from finmate.models.records import DashboardSnapshot, MonthWindow, Record, TransactionView
from finmate.reconciliation import (
    CurrencyConverter,
    RequestGenerations,
    annotate_transactions,
    aggregate_payments,
    build_budget_items,
    build_goal_displays,
    collect_transaction_refs,
    credit_card_names,
    default_lookups,
    fetch_missing_transactions,
    filter_transactions,
    group_transactions_by_category,
    hydrate_category_labels,
    item_category_map,
    link_payments_to_transactions,
    month_window,
    payments_in_window,
    reconcile_accounts,
    resolve_category,
    summarize_budget,
    summarize_recent_expenses,
    transactions_by_id,
    transactions_for_category,
)
from finmate.services.fx import ExchangeRateService, RateUnavailableError
from finmate.services.identity import IdentityProviderInterface, NotAuthenticatedError
from finmate.services.storage import (
    FetchFailedError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRowSource,
    InMemoryRowSource,
    RowFilter,
    RowSourceInterface,
)


logger = structlog.get_logger(__name__)

DASHBOARD_KEY = "dashboard"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TableFetch:
    """Rows from one table, or the reason there are none."""
    table: str
    rows: list[Record] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class DashboardReconciler:
    """
    Runs one reconciliation pass for the signed-in user.

    Each pass rebuilds every record from scratch. The only state that
    survives between passes is the FX rate cache inside ``rate_service``.
    """

    def __init__(
        self,
        row_source: RowSourceInterface,
        identity: IdentityProviderInterface,
        rate_service: ExchangeRateService,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ReconciliationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._row_source = row_source
        self._identity = identity
        self._rate_service = rate_service
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().reconciliation
        self._clock = clock or utc_now

    @property
    def row_source(self) -> RowSourceInterface:
        return self._row_source

    @property
    def reporting_currency(self) -> str:
        return self._settings.reporting_currency

    @property
    def primary_tables(self) -> tuple[str, str]:
        return (self._settings.budget_items_table, self._settings.transactions_table)

    def error_snapshot(self, message: str, now: Optional[datetime] = None) -> DashboardSnapshot:
        """An empty snapshot carrying only the error banner."""
        return DashboardSnapshot(
            reporting_currency=self.reporting_currency,
            generated_at=now or self._clock(),
            error_message=message,
        )

    async def reconcile(self, now: Optional[datetime] = None) -> DashboardSnapshot:
        """
        Fetch everything for the current user and reconcile it.

        Raises:
            NotAuthenticatedError: If no user is signed in
        """
        correlation_id = create_correlation_id()
        try:
            user_id = await self._identity.require_user_id()
        except NotAuthenticatedError:
            if self._audit_logger:
                await self._audit_logger.log_not_authenticated(correlation_id=correlation_id)
            raise

        now = now or self._clock()
        window = month_window(now)
        settings = self._settings

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_started(
                user_id=user_id,
                month=window.start.strftime("%Y-%m"),
                correlation_id=correlation_id,
            )

        (
            items_fetch,
            payments_fetch,
            linked_payments_fetch,
            accounts_fetch,
            transactions_fetch,
            goals_fetch,
            contributions_fetch,
            expenses_fetch,
            rate,
        ) = await asyncio.gather(
            self._fetch(settings.budget_items_table, user_id, limit=settings.budget_items_limit),
            self._fetch(settings.budget_payments_table, user_id, limit=settings.payments_limit),
            self._fetch(
                settings.budget_payments_table,
                user_id,
                filters=[RowFilter.gte("date", window.start), RowFilter.lte("date", window.end)],
                limit=settings.linked_payments_limit,
            ),
            self._fetch(settings.accounts_table, user_id),
            self._fetch(settings.transactions_table, user_id, order_by="date", descending=True),
            self._fetch(settings.goals_table, user_id),
            self._fetch(settings.goal_contributions_table, user_id),
            self._fetch(
                settings.expenses_table,
                user_id,
                order_by="created_at",
                descending=True,
                limit=settings.recent_expenses_limit,
            ),
            self._fetch_rate(correlation_id),
        )

        error_message: Optional[str] = None
        warnings: list[str] = []
        for fetch in (
            items_fetch,
            payments_fetch,
            linked_payments_fetch,
            accounts_fetch,
            transactions_fetch,
            goals_fetch,
            contributions_fetch,
            expenses_fetch,
        ):
            if not fetch.failed:
                continue
            primary = fetch.table in self.primary_tables
            warning = f"{fetch.table} unavailable: {fetch.error}"
            if primary:
                error_message = error_message or f"Could not load {fetch.table}: {fetch.error}"
            elif warning not in warnings:
                # budget_payments is read twice; report it once
                warnings.append(warning)
            if self._audit_logger:
                await self._audit_logger.log_fetch_failed(
                    table=fetch.table,
                    error_message=fetch.error,
                    correlation_id=correlation_id,
                    primary=primary,
                )

        converter = CurrencyConverter(
            reporting_currency=self.reporting_currency,
            base_currency=self._rate_service.base_currency,
            rate=rate,
        )
        if rate is None:
            warnings.append(
                f"{self._rate_service.pair_key(self.reporting_currency)} rate unavailable; "
                "amounts are shown unconverted"
            )

        # Budget
        resolved = await hydrate_category_labels(
            [resolve_category(row) for row in items_fetch.rows],
            self._row_source,
            default_lookups(settings.category_lookup_tables_list),
        )
        items = build_budget_items(items_fetch.rows, resolved, converter)
        totals = aggregate_payments(
            payments_fetch.rows, item_category_map(items), window, converter
        )
        budget = summarize_budget(items, totals)

        # Accounts and transactions
        credit_names = credit_card_names(accounts_fetch.rows)
        transactions = annotate_transactions(
            transactions_fetch.rows,
            credit_names,
            settings.default_transaction_currency,
        )
        accounts = reconcile_accounts(accounts_fetch.rows, transactions, converter)

        # Goals
        goals = build_goal_displays(
            goals_fetch.rows, contributions_fetch.rows, self.reporting_currency
        )

        # Dashboard home
        recent_expenses = summarize_recent_expenses(
            expenses_fetch.rows, converter, settings.recent_expenses_limit
        )

        # Payments to transactions
        transactions_by_item = await self._link_transactions(
            linked_payments_fetch.rows,
            window,
            transactions,
            credit_names,
            user_id,
            warnings,
            correlation_id,
        )

        snapshot = DashboardSnapshot(
            user_id=user_id,
            window=window,
            reporting_currency=self.reporting_currency,
            fx_rate=rate,
            generated_at=now,
            categories=budget.categories,
            items_by_category=budget.items_by_category,
            accounts=accounts.accounts,
            credit_cards=accounts.credit_cards,
            net_worth=accounts.net_worth,
            credit_card_balance=accounts.credit_card_balance,
            goals=goals,
            transactions=transactions,
            transactions_by_item=transactions_by_item,
            recent_expenses=recent_expenses,
            error_message=error_message,
            warnings=warnings,
        )

        if self._audit_logger:
            await self._audit_logger.log_reconciliation_completed(
                user_id=user_id,
                counts={
                    "categories": len(snapshot.categories),
                    "accounts": len(snapshot.accounts),
                    "credit_cards": len(snapshot.credit_cards),
                    "goals": len(snapshot.goals),
                    "transactions": len(snapshot.transactions),
                },
                warnings=len(warnings),
                correlation_id=correlation_id,
            )

        return snapshot

    async def _fetch(
        self,
        table: str,
        user_id: str,
        filters: Sequence[RowFilter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> TableFetch:
        try:
            rows = await self._row_source.fetch_rows(
                table,
                user_id=user_id,
                filters=filters,
                limit=limit,
                order_by=order_by,
                descending=descending,
            )
        except FetchFailedError as e:
            logger.warning("table_fetch_failed", table=table, error=str(e))
            return TableFetch(table=table, error=str(e))
        return TableFetch(table=table, rows=rows)

    async def _fetch_rate(self, correlation_id: UUID) -> Optional[float]:
        try:
            return await self._rate_service.get_rate(self.reporting_currency)
        except RateUnavailableError as e:
            if self._audit_logger:
                await self._audit_logger.log_rate_unavailable(
                    pair=e.pair,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return None

    async def _link_transactions(
        self,
        payment_rows: list[Record],
        window: MonthWindow,
        transactions: list[TransactionView],
        credit_names: set[str],
        user_id: str,
        warnings: list[str],
        correlation_id: UUID,
    ) -> dict[str, list[TransactionView]]:
        payments = payments_in_window(payment_rows, window, self.reporting_currency)
        refs = collect_transaction_refs(payments)
        if not refs:
            return {}

        known = transactions_by_id(transactions)
        table = self._settings.transactions_table
        try:
            extra_rows = await fetch_missing_transactions(
                refs, known, self._row_source, table, user_id
            )
        except FetchFailedError as e:
            logger.warning("linked_transactions_failed", table=table, error=str(e))
            warnings.append(f"linked {table} unavailable: {e}")
            if self._audit_logger:
                await self._audit_logger.log_fetch_failed(
                    table=table,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            extra_rows = []

        extra = annotate_transactions(
            extra_rows, credit_names, self._settings.default_transaction_currency
        )
        return link_payments_to_transactions(
            payments, {**known, **transactions_by_id(extra)}
        )


class DashboardSession:
    """
    Holds the latest snapshot for one dashboard and refreshes it.

    Overlapping refreshes are allowed; only the most recently started one
    may replace the snapshot. Older responses are dropped when they land.
    """

    def __init__(
        self,
        reconciler: DashboardReconciler,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._reconciler = reconciler
        self._audit_logger = audit_logger
        self._generations = RequestGenerations()
        self.snapshot: Optional[DashboardSnapshot] = None

    @property
    def reconciler(self) -> DashboardReconciler:
        return self._reconciler

    async def refresh(self, now: Optional[datetime] = None) -> Optional[DashboardSnapshot]:
        """
        Run a reconciliation pass and keep its snapshot if still current.

        Returns the new snapshot, or None when a newer refresh superseded
        this one. Signed-out users get a snapshot carrying only the error.
        """
        token = self._generations.begin(DASHBOARD_KEY)
        try:
            snapshot = await self._reconciler.reconcile(now)
        except NotAuthenticatedError as e:
            snapshot = self._reconciler.error_snapshot(str(e), now)

        if not self._generations.is_current(DASHBOARD_KEY, token):
            current = self._generations.current(DASHBOARD_KEY)
            logger.info("stale_response_discarded", key=DASHBOARD_KEY, token=token, current=current)
            if self._audit_logger:
                await self._audit_logger.log_stale_response_discarded(
                    key=DASHBOARD_KEY,
                    token=token,
                    current=current,
                )
            return None

        self.snapshot = snapshot
        return snapshot

    def invalidate(self) -> None:
        """Drop the snapshot and orphan any refresh in flight (e.g. user switched)."""
        self._generations.invalidate(DASHBOARD_KEY)
        self.snapshot = None

    def transactions(
        self,
        account: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[TransactionView]:
        if self.snapshot is None:
            return []
        return filter_transactions(self.snapshot.transactions, account, date_from, date_to)

    def transactions_for_category(self, category: str) -> list[TransactionView]:
        """Transactions whose category matches a budget category label."""
        if self.snapshot is None:
            return []
        groups = group_transactions_by_category(self.snapshot.transactions)
        return transactions_for_category(groups, category)


def create_app_components(
    identity: IdentityProviderInterface,
    use_storage: bool = True,
) -> tuple[DashboardSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        identity: Where the signed-in user comes from
        use_storage: Whether to connect to Google Sheets.
                    Set to False to run against an empty in-memory store.

    Returns:
        (dashboard_session, sheets_client)
    """
    configure_logging(get_settings().app.log_level)
    checks = validate_all_settings()
    invalid = [name for name, ok in checks.items() if ok is False]
    if invalid:
        logger.warning("settings_invalid", sections=invalid)

    sheets_client = None
    row_source: RowSourceInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            row_source = GoogleSheetsRowSource(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            row_source = InMemoryRowSource()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        row_source = InMemoryRowSource()
        audit_logger = AuditLogger()  # Local-only logging

    reconciler = DashboardReconciler(
        row_source=row_source,
        identity=identity,
        rate_service=ExchangeRateService(),
        audit_logger=audit_logger,
    )
    return DashboardSession(reconciler, audit_logger=audit_logger), sheets_client
