"""
Integration tests for the reconciliation pass.

Storage is in-memory and the FX endpoint is an httpx.MockTransport, so no
test touches the network.
"""

import asyncio
from datetime import date, datetime, timezone

import httpx
import pytest

from finmate.audit import AuditLogger
from finmate.config import ExchangeRateSettings, ReconciliationSettings
from finmate.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finmate.models.records import DashboardSnapshot
from finmate.orchestrator import DashboardReconciler, DashboardSession, create_app_components
from finmate.reconciliation import RequestGenerations
from finmate.services.fx import ExchangeRateService, RateCache
from finmate.services.identity import NotAuthenticatedError, StaticIdentityProvider
from finmate.services.storage import AuditStorageInterface, InMemoryRowSource


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
USER = "user-1"


class RecordingAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]


def fixture_tables() -> dict:
    return {
        "budget_items": [
            {"id": 1, "user_id": USER, "category": "Food", "name": "Groceries", "planned_amount": 100},
            {"id": 2, "user_id": USER, "category": "Food", "name": "Dining", "planned_amount": 50},
            {"id": 3, "user_id": USER, "category_id": 7, "name": "Rent", "planned_amount": 900},
            {"id": 9, "user_id": "someone-else", "category": "Food", "planned_amount": 10000},
        ],
        "budget_payments": [
            {"id": "p1", "user_id": USER, "budget_item_id": 1, "amount": 30,
             "date": "2024-03-05T10:00:00Z", "transaction_id": "t2"},
            {"id": "p2", "user_id": USER, "budget_item_id": 2, "amount": 80, "date": "2024-03-20"},
            {"id": "p3", "user_id": USER, "budget_item_id": 1, "amount": 500, "date": "2024-02-28"},
        ],
        "budget_categories": [{"id": 7, "name": "Housing"}],
        "accounts": [
            {"id": "a1", "user_id": USER, "name": "Chase", "currency": "USD", "starting_balance": 200},
            {"id": "a2", "user_id": USER, "name": "Visa Card", "currency": "COP", "current_balance": 70000},
        ],
        "transactions": [
            {"id": "t1", "user_id": USER, "amount": 50, "entry_type": "expense", "currency": "USD",
             "payment_method": "Chase", "category": "Dining", "date": "2024-03-10"},
            {"id": "t2", "user_id": USER, "amount": 30, "entry_type": "expense", "currency": "COP",
             "payment_method": "Cash", "category": "Food", "date": "2024-03-05"},
        ],
        "goals": [
            {"id": "g1", "user_id": USER, "name": "Emergency", "target_amount": 1000, "currency": "COP"},
        ],
        "goal_contributions": [
            {"goal_id": "g1", "user_id": USER, "amount": 300, "currency": "COP"},
            {"goal_id": "g1", "user_id": USER, "amount": 900, "currency": "COP"},
        ],
        "expenses": [
            {"id": "e1", "user_id": USER, "amount": 20, "currency": "USD", "category": "Food",
             "created_at": "2024-03-14T09:00:00Z"},
            {"id": "e2", "user_id": USER, "amount": "15,000", "currency": "COP", "category": "Transport",
             "created_at": "2024-03-13T09:00:00Z"},
            {"id": "e3", "user_id": USER, "amount": 5000, "currency": "COP", "category": "Food",
             "created_at": "2024-03-12"},
            {"id": "e9", "user_id": "someone-else", "amount": 999999, "category": "Travel",
             "created_at": "2024-03-14T10:00:00Z"},
        ],
    }


def rate_handler(rate=4000):
    def handler(request):
        return httpx.Response(200, json={"result": "success", "rates": {"COP": rate}})
    return handler


def failing_handler(request):
    return httpx.Response(503)


def make_reconciler(
    source=None,
    identity=None,
    handler=None,
    audit_storage=None,
) -> DashboardReconciler:
    rate_service = ExchangeRateService(
        settings=ExchangeRateSettings(
            endpoint_url="https://rates.test/latest/USD",
            retry_backoff_seconds=0,
        ),
        cache=RateCache(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler or rate_handler())),
    )
    return DashboardReconciler(
        row_source=source or InMemoryRowSource(fixture_tables()),
        identity=identity or StaticIdentityProvider(USER),
        rate_service=rate_service,
        audit_logger=AuditLogger(audit_storage) if audit_storage is not None else None,
        settings=ReconciliationSettings(reporting_currency="COP"),
        clock=lambda: NOW,
    )


class TestReconcile:
    """End-to-end reconciliation passes."""

    @pytest.mark.asyncio
    async def test_full_pass(self):
        snapshot = await make_reconciler().reconcile()

        assert snapshot.user_id == USER
        assert snapshot.error_message is None
        assert snapshot.warnings == []
        assert snapshot.fx_rate == 4000
        assert snapshot.window.start == datetime(2024, 3, 1, tzinfo=timezone.utc)

        by_id = {c.category_id: c for c in snapshot.categories}
        food = by_id["food"]
        assert food.planned == 150
        assert food.paid == 110
        assert food.progress_pct == pytest.approx(73.33, abs=0.01)

        housing = by_id["7"]
        assert housing.label == "Housing"
        assert housing.paid == 0

        [chase] = snapshot.accounts
        assert chase.native_balance == 150
        assert chase.converted_balance == 600000
        assert snapshot.net_worth == 600000

        [visa] = snapshot.credit_cards
        assert visa.converted_balance == 70000
        assert snapshot.credit_card_balance == 70000

        [goal] = snapshot.goals
        assert goal.contributed == 1200
        assert goal.progress_pct == 100
        assert goal.status == "completed"

        assert [t.id for t in snapshot.transactions] == ["t1", "t2"]
        assert [t.id for t in snapshot.transactions_by_item["1"]] == ["t2"]

        assert snapshot.recent_expenses.count == 3
        assert snapshot.recent_expenses.total == 100000
        assert snapshot.recent_expenses.top_category == "Food"

    @pytest.mark.asyncio
    async def test_other_users_rows_are_ignored(self):
        snapshot = await make_reconciler().reconcile()
        food = next(c for c in snapshot.categories if c.category_id == "food")
        assert food.planned == 150

    @pytest.mark.asyncio
    async def test_not_authenticated_aborts(self):
        storage = RecordingAuditStorage()
        reconciler = make_reconciler(
            identity=StaticIdentityProvider(None),
            audit_storage=storage,
        )
        with pytest.raises(NotAuthenticatedError):
            await reconciler.reconcile()
        assert storage.of_type(AuditEventType.NOT_AUTHENTICATED)

    @pytest.mark.asyncio
    async def test_identity_not_ready_aborts(self):
        reconciler = make_reconciler(identity=StaticIdentityProvider(USER, ready=False))
        with pytest.raises(NotAuthenticatedError):
            await reconciler.reconcile()

    @pytest.mark.asyncio
    async def test_primary_table_failure_sets_banner(self):
        storage = RecordingAuditStorage()
        source = InMemoryRowSource(fixture_tables(), failing_tables=["budget_items"])
        snapshot = await make_reconciler(source=source, audit_storage=storage).reconcile()

        assert snapshot.has_error
        assert "budget_items" in snapshot.error_message
        assert snapshot.categories == []
        # Other sections still render
        assert snapshot.net_worth == 600000
        assert len(snapshot.goals) == 1

        [failed] = storage.of_type(AuditEventType.FETCH_FAILED)
        assert failed.severity == AuditSeverity.ERROR

    @pytest.mark.asyncio
    async def test_secondary_failure_degrades_to_warning(self):
        storage = RecordingAuditStorage()
        source = InMemoryRowSource(fixture_tables(), failing_tables=["goals"])
        snapshot = await make_reconciler(source=source, audit_storage=storage).reconcile()

        assert snapshot.error_message is None
        assert snapshot.goals == []
        assert len(snapshot.warnings) == 1
        assert "goals" in snapshot.warnings[0]
        [failed] = storage.of_type(AuditEventType.FETCH_FAILED)
        assert failed.severity == AuditSeverity.WARNING

    @pytest.mark.asyncio
    async def test_expenses_failure_leaves_empty_summary(self):
        source = InMemoryRowSource(fixture_tables(), failing_tables=["expenses"])
        snapshot = await make_reconciler(source=source).reconcile()

        assert snapshot.error_message is None
        assert snapshot.recent_expenses.count == 0
        assert snapshot.recent_expenses.top_category == "N/A"
        assert len(snapshot.warnings) == 1
        assert snapshot.warnings[0].startswith("expenses unavailable")

    @pytest.mark.asyncio
    async def test_payments_failure_keeps_planned_totals(self):
        source = InMemoryRowSource(fixture_tables(), failing_tables=["budget_payments"])
        snapshot = await make_reconciler(source=source).reconcile()

        food = next(c for c in snapshot.categories if c.category_id == "food")
        assert food.planned == 150
        assert food.paid == 0
        assert snapshot.transactions_by_item == {}
        # Both payment reads failed but the warning is reported once
        assert len(snapshot.warnings) == 1

    @pytest.mark.asyncio
    async def test_category_lookup_failure_keeps_ids_as_labels(self):
        source = InMemoryRowSource(
            fixture_tables(),
            failing_tables=["budget_categories", "categories"],
        )
        snapshot = await make_reconciler(source=source).reconcile()
        housing = next(c for c in snapshot.categories if c.category_id == "7")
        assert housing.label == "7"
        assert snapshot.error_message is None

    @pytest.mark.asyncio
    async def test_rate_unavailable_leaves_amounts_unconverted(self):
        storage = RecordingAuditStorage()
        snapshot = await make_reconciler(
            handler=failing_handler,
            audit_storage=storage,
        ).reconcile()

        assert snapshot.fx_rate is None
        assert snapshot.net_worth == 150
        assert any("rate unavailable" in w for w in snapshot.warnings)
        assert storage.of_type(AuditEventType.RATE_UNAVAILABLE)

    @pytest.mark.asyncio
    async def test_pass_is_audited(self):
        storage = RecordingAuditStorage()
        await make_reconciler(audit_storage=storage).reconcile()

        [started] = storage.of_type(AuditEventType.RECONCILIATION_STARTED)
        [completed] = storage.of_type(AuditEventType.RECONCILIATION_COMPLETED)
        assert started.details["month"] == "2024-03"
        assert started.correlation_id == completed.correlation_id
        assert completed.details["counts"]["goals"] == 1

    @pytest.mark.asyncio
    async def test_unknown_linked_transaction_is_looked_up_then_skipped(self):
        tables = fixture_tables()
        tables["budget_payments"][1]["tx_id"] = "t-old"
        source = InMemoryRowSource(tables)
        snapshot = await make_reconciler(source=source).reconcile()
        # Unknown references are skipped without failing the pass
        assert "2" not in snapshot.transactions_by_item
        assert source.calls.count("transactions") == 2


class SlowReconciler:
    """Stand-in reconciler whose passes finish when the test says so."""

    def __init__(self):
        self.gates: list[asyncio.Event] = []

    async def reconcile(self, now=None) -> DashboardSnapshot:
        gate = asyncio.Event()
        self.gates.append(gate)
        call = len(self.gates)
        await gate.wait()
        return DashboardSnapshot(
            user_id=f"pass-{call}",
            reporting_currency="COP",
            generated_at=NOW,
        )

    def error_snapshot(self, message, now=None) -> DashboardSnapshot:
        return DashboardSnapshot(reporting_currency="COP", generated_at=NOW, error_message=message)


class TestDashboardSession:
    """Tests for refresh, stale-response handling and views."""

    @pytest.mark.asyncio
    async def test_refresh_keeps_snapshot(self):
        session = DashboardSession(make_reconciler())
        snapshot = await session.refresh()
        assert session.snapshot is snapshot
        assert snapshot.net_worth == 600000

    @pytest.mark.asyncio
    async def test_signed_out_refresh_yields_error_snapshot(self):
        session = DashboardSession(make_reconciler(identity=StaticIdentityProvider(None)))
        snapshot = await session.refresh()
        assert snapshot.has_error
        assert snapshot.categories == []

    @pytest.mark.asyncio
    async def test_stale_refresh_is_discarded(self):
        storage = RecordingAuditStorage()
        reconciler = SlowReconciler()
        session = DashboardSession(reconciler, audit_logger=AuditLogger(storage))

        first = asyncio.ensure_future(session.refresh())
        await asyncio.sleep(0)
        second = asyncio.ensure_future(session.refresh())
        await asyncio.sleep(0)

        reconciler.gates[1].set()
        assert (await second).user_id == "pass-2"
        reconciler.gates[0].set()
        assert await first is None

        assert session.snapshot.user_id == "pass-2"
        assert storage.of_type(AuditEventType.STALE_RESPONSE_DISCARDED)

    @pytest.mark.asyncio
    async def test_invalidate_orphans_in_flight_refresh(self):
        reconciler = SlowReconciler()
        session = DashboardSession(reconciler)

        pending = asyncio.ensure_future(session.refresh())
        await asyncio.sleep(0)
        session.invalidate()
        reconciler.gates[0].set()

        assert await pending is None
        assert session.snapshot is None

    @pytest.mark.asyncio
    async def test_user_switch_then_invalidate_reloads_for_new_user(self):
        identity = StaticIdentityProvider(USER)
        session = DashboardSession(make_reconciler(identity=identity))
        await session.refresh()
        assert session.snapshot.user_id == USER

        identity.switch_user("someone-else")
        session.invalidate()
        assert session.snapshot is None

        snapshot = await session.refresh()
        assert snapshot.user_id == "someone-else"
        [food] = snapshot.categories
        assert food.planned == 10000
        assert snapshot.accounts == []

        identity.switch_user(None)
        session.invalidate()
        assert (await session.refresh()).has_error

    @pytest.mark.asyncio
    async def test_transaction_views(self):
        session = DashboardSession(make_reconciler())
        assert session.transactions() == []
        await session.refresh()

        assert [t.id for t in session.transactions(account="Chase")] == ["t1"]
        assert [t.id for t in session.transactions(date_from=date(2024, 3, 6))] == ["t1"]
        assert [t.id for t in session.transactions_for_category("food")] == ["t2"]


class TestRequestGenerations:
    """Tests for generation tokens."""

    def test_newer_generation_makes_older_stale(self):
        generations = RequestGenerations()
        first = generations.begin("dashboard")
        second = generations.begin("dashboard")
        assert not generations.is_current("dashboard", first)
        assert generations.is_current("dashboard", second)

    def test_keys_are_independent(self):
        generations = RequestGenerations()
        token = generations.begin("dashboard")
        generations.begin("transactions")
        assert generations.is_current("dashboard", token)

    def test_invalidate(self):
        generations = RequestGenerations()
        token = generations.begin("dashboard")
        generations.invalidate("dashboard")
        assert not generations.is_current("dashboard", token)


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_without_storage_uses_in_memory_rows(self):
        session, sheets_client = create_app_components(
            StaticIdentityProvider(USER), use_storage=False
        )
        assert sheets_client is None
        assert session.snapshot is None
        assert isinstance(session.reconciler.row_source, InMemoryRowSource)
