"""
Tests para el módulo de Caja

Cubren:
- Arqueo por denominaciones
- Verificación de transferencias
- Máquina de estados de la sesión (apertura, cierre, expiración, reinicio)
- Precondiciones de cierre y reconciliación en centavos
- Concurrencia de aperturas
- Endpoints HTTP
"""

import random
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.common.money import Money
from app.common.validators import utcnow
from app.database.database import Base, build_engine
from app.modules.caja.denominations import DenominationCounter
from app.modules.caja.exceptions import (
    CashNotCounted, InvalidAmount, InvalidDenomination, InvalidDenominationCount, InvalidOpeningFloat,
    JustificationRequired, NoActiveSession, SessionAlreadyClosed, SessionAlreadyOpen,
    SessionNotFound, UnknownSale, UnverifiedTransfers
)
from app.modules.caja.models import (
    CashSession, CashSessionStatus, ClosureKind, TransferStatus, TransferVerification
)
from app.modules.caja.services import CajaSessionManager
from app.modules.caja.tasks import expire_stale_sessions
from app.modules.sales.models import PaymentMethod, SaleStatus


def count_for(manager, **counts):
    """Aplica un arqueo usando claves como q100=1, q0_25=4"""
    raw = {key[1:].replace("_", "."): value for key, value in counts.items()}
    count, breakdown = manager.apply_count(raw, counted_by="cajero-1")
    return breakdown.total


def open_sessions(db):
    return db.query(CashSession).filter(CashSession.status == CashSessionStatus.OPEN).count()


# ===== ARQUEO =====

class TestDenominationCounter:

    def test_total_is_exact(self):
        counter = DenominationCounter()
        total = counter.total({"100": 1, "50": 1, "20": 1, "10": 1, "0.25": 1})
        assert total == Money.from_decimal("180.25")

    def test_coins_add_up_in_cents(self):
        counter = DenominationCounter()
        assert counter.total({"0.25": 3, "0.50": 1}) == Money(125)

    def test_empty_count_is_zero(self):
        assert DenominationCounter().total({}) == Money.zero()

    def test_unknown_denomination(self):
        with pytest.raises(InvalidDenomination):
            DenominationCounter().parse({"200": 1})
        with pytest.raises(InvalidDenomination):
            DenominationCounter().parse({"billete": 1})

    def test_negative_count(self):
        with pytest.raises(InvalidDenominationCount):
            DenominationCounter().parse({"100": -1})

    def test_non_integer_count(self):
        with pytest.raises(InvalidDenominationCount):
            DenominationCounter().parse({"100": 1.5})
        with pytest.raises(InvalidDenominationCount):
            DenominationCounter().parse({"100": True})

    def test_equivalent_keys_are_rejected_as_duplicates(self):
        with pytest.raises(InvalidDenomination):
            DenominationCounter().parse({"0.5": 1, "0.50": 2})

    def test_numeric_keys(self):
        breakdown = DenominationCounter().parse({100: 2, 0.25: 4})
        assert breakdown.total == Money.from_decimal("201.00")
        assert breakdown.as_dict() == {"100.00": 2, "0.25": 4}

    def test_custom_denomination_set(self):
        counter = DenominationCounter(["1", "0.10"])
        assert counter.total({"0.10": 7}) == Money(70)
        with pytest.raises(InvalidDenomination):
            counter.parse({"100": 1})

    def test_lines_sorted_by_denomination(self):
        breakdown = DenominationCounter().parse({"0.25": 2, "100": 1})
        values = [value for value, _, _ in breakdown.lines()]
        assert values == [Money(10000), Money(25)]
        assert breakdown.lines()[1][2] == Money(50)

    def test_overflowing_denomination_key(self):
        with pytest.raises(InvalidDenomination):
            DenominationCounter().parse({"1e999999999": 1})

    def test_count_beyond_range(self):
        with pytest.raises(InvalidDenominationCount):
            DenominationCounter().parse({"200": 10 ** 18})


# ===== APERTURA =====

class TestOpenSession:

    def test_open_session(self, manager):
        session = manager.open_session(Decimal("100.00"), opened_by="cajero-1")
        assert session.id is not None
        assert session.status == CashSessionStatus.OPEN
        assert session.opening_float == Money(10000)
        assert session.closed_at is None
        assert session.closed_by is None
        assert session.auto_closed is False

    def test_zero_float_is_valid(self, manager):
        assert manager.open_session(0, opened_by="cajero-1").opening_float.is_zero()

    def test_negative_float_rejected(self, manager, db_session):
        with pytest.raises(InvalidOpeningFloat):
            manager.open_session(Decimal("-0.01"), opened_by="cajero-1")
        assert open_sessions(db_session) == 0

    def test_oversized_float_rejected(self, manager, db_session):
        for amount in (Decimal("100000000000000000000"), Decimal("1e999999999"), "1e999999999"):
            with pytest.raises(InvalidOpeningFloat):
                manager.open_session(amount, opened_by="cajero-1")
        assert open_sessions(db_session) == 0

    def test_second_open_rejected(self, manager, db_session):
        manager.open_session(Decimal("100"), opened_by="cajero-1")
        with pytest.raises(SessionAlreadyOpen):
            manager.open_session(Decimal("50"), opened_by="cajero-2")
        assert open_sessions(db_session) == 1

    def test_database_index_allows_single_open_row(self, db_session, clock):
        db_session.add(CashSession(status=CashSessionStatus.OPEN, opened_by="a", opened_at=clock(), opening_float=Money(0)))
        db_session.commit()
        db_session.add(CashSession(status=CashSessionStatus.OPEN, opened_by="b", opened_at=clock(), opening_float=Money(0)))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestConcurrentOpen:

    def test_exactly_one_winner(self, tmp_path, clock):
        engine = build_engine(f"sqlite:///{tmp_path / 'caja.db'}")
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker(index):
            db = factory()
            try:
                barrier.wait()
                manager = CajaSessionManager(db, clock=clock)
                try:
                    manager.open_session(Decimal("10"), opened_by=f"cajero-{index}")
                    outcome = "opened"
                except SessionAlreadyOpen:
                    outcome = "rejected"
                with results_lock:
                    results.append(outcome)
            finally:
                db.close()

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("opened") == 1
        assert results.count("rejected") == 7

        db = factory()
        try:
            assert open_sessions(db) == 1
        finally:
            db.close()
            engine.dispose()


# ===== CIERRE =====

class TestCloseSession:

    def test_close_without_open_session(self, manager):
        with pytest.raises(NoActiveSession):
            manager.close_session("cajero-1", Decimal("0"))

    def test_oversized_closing_count(self, manager):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        with pytest.raises(InvalidAmount):
            manager.close_session("cajero-1", Decimal("1e999999999"))
        with pytest.raises(InvalidAmount):
            manager.close_session("cajero-1", Decimal("100000000000000000000"))
        assert manager.current_state().open

    def test_close_without_count(self, manager, db_session):
        manager.open_session(Decimal("100"), opened_by="cajero-1")
        with pytest.raises(CashNotCounted):
            manager.close_session("cajero-1", Decimal("100"))
        assert open_sessions(db_session) == 1

    def test_manual_amount_must_match_applied_count(self, manager, db_session):
        manager.open_session(Decimal("100"), opened_by="cajero-1")
        count_for(manager, q100=1)
        with pytest.raises(CashNotCounted):
            manager.close_session("cajero-1", Decimal("99.75"))
        assert open_sessions(db_session) == 1

    def test_latest_count_wins(self, manager):
        manager.open_session(Decimal("100"), opened_by="cajero-1")
        count_for(manager, q50=1)
        count_for(manager, q100=1)
        session = manager.close_session("cajero-1", Decimal("100"))
        assert session.status == CashSessionStatus.CLOSED

    def test_scenario_balanced_close(self, manager, add_sale, clock):
        manager.open_session(Decimal("100.00"), opened_by="cajero-1")
        clock.advance(minutes=5)
        add_sale("50.00", "cash")
        clock.advance(minutes=5)
        add_sale("30.25", "cash")
        clock.advance(hours=1)

        counted = count_for(manager, q100=1, q50=1, q20=1, q10=1, q0_25=1)
        assert counted == Money.from_decimal("180.25")

        session = manager.close_session("cajero-2", Decimal("180.25"))
        result = session.reconciliation
        assert session.status == CashSessionStatus.CLOSED
        assert session.closure_kind == ClosureKind.MANUAL
        assert session.closed_by == "cajero-2"
        assert session.closed_at == clock()
        assert result.expected_cash == Money.from_decimal("180.25")
        assert result.counted_cash == Money.from_decimal("180.25")
        assert result.difference == Money.zero()
        assert result.requires_justification is False
        assert session.notes is None

    def test_scenario_shortage_requires_notes(self, manager, add_sale, clock, db_session):
        manager.open_session(Decimal("100.00"), opened_by="cajero-1")
        clock.advance(minutes=5)
        add_sale("50.00", "cash")
        add_sale("30.25", "cash")
        clock.advance(hours=1)
        count_for(manager, q100=1, q50=1, q20=1, q5=1)

        with pytest.raises(JustificationRequired) as exc_info:
            manager.close_session("cajero-1", Decimal("175.00"))
        assert exc_info.value.detail["difference"] == "-5.25"
        assert open_sessions(db_session) == 1

        with pytest.raises(JustificationRequired):
            manager.close_session("cajero-1", Decimal("175.00"), notes="   ")

        session = manager.close_session("cajero-1", Decimal("175.00"), notes="faltante investigado")
        assert session.difference == Money.from_decimal("-5.25")
        assert session.reconciliation.requires_justification is True
        assert session.notes == "faltante investigado"

    def test_overage_is_valid_with_notes(self, manager, add_sale, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        add_sale("9.75", "cash")
        clock.advance(minutes=1)
        count_for(manager, q10=1)
        session = manager.close_session("cajero-1", Decimal("10"), notes="sobrante de vuelto")
        assert session.difference == Money(25)

    def test_scenario_pending_transfer_blocks_close(self, manager, add_sale, clock, db_session):
        manager.open_session(Decimal("100.00"), opened_by="cajero-1")
        clock.advance(minutes=5)
        transfer = add_sale("40.00", "transfer")
        clock.advance(hours=1)
        count_for(manager, q100=1)

        with pytest.raises(UnverifiedTransfers) as exc_info:
            manager.close_session("cajero-1", Decimal("100"))
        assert exc_info.value.detail["sale_ids"] == [transfer.id]

        session = manager.get_open_session()
        assert session.status == CashSessionStatus.OPEN
        assert session.closed_at is None

        manager.set_transfer_status(transfer.id, TransferStatus.RECEIVED)
        session = manager.close_session("cajero-1", Decimal("100"))
        result = session.reconciliation
        assert result.expected_transfers == Money(4000)
        assert result.verified_transfers == Money(4000)
        assert result.expected_cash == Money(10000)
        assert db_session.query(TransferVerification).count() == 0

    def test_sales_outside_window_are_ignored(self, manager, add_sale, clock):
        add_sale("999.00", "cash", created_at=clock() - timedelta(minutes=1))
        manager.open_session(Decimal("10"), opened_by="cajero-1")
        clock.advance(minutes=30)
        add_sale("5.00", "cash")
        add_sale("7.00", "cash", status=SaleStatus.VOIDED.value)
        add_sale("12.00", "card")
        clock.advance(minutes=30)
        count_for(manager, q10=1, q5=1)
        # Una venta en el mismo instante del cierre no pertenece a la sesión
        add_sale("3.00", "cash", created_at=clock())

        session = manager.close_session("cajero-1", Decimal("15"))
        assert session.expected_cash == Money(1500)
        assert session.difference == Money.zero()

    def test_named_session_already_ended(self, manager, clock):
        first = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(hours=12)
        with pytest.raises(SessionAlreadyClosed) as exc_info:
            manager.close_session("cajero-1", Decimal("0"), session_id=first.id)
        assert exc_info.value.detail["status"] == "expired"

        second = manager.open_session(Decimal("0"), opened_by="cajero-1")
        count_for(manager, q1=0)
        with pytest.raises(SessionAlreadyClosed):
            manager.close_session("cajero-1", Decimal("0"), session_id=first.id)
        closed = manager.close_session("cajero-1", Decimal("0"), session_id=second.id)
        assert closed.status == CashSessionStatus.CLOSED

    def test_close_releases_slot(self, manager, clock):
        manager.open_session(Decimal("1"), opened_by="cajero-1")
        count_for(manager, q1=1)
        manager.close_session("cajero-1", Decimal("1"))
        clock.advance(minutes=1)
        second = manager.open_session(Decimal("2"), opened_by="cajero-1")
        assert second.status == CashSessionStatus.OPEN

    def test_conservation_over_many_sales(self, manager, add_sale, clock):
        rng = random.Random(7)
        manager.open_session(Decimal("250.50"), opened_by="cajero-1")
        clock.advance(minutes=1)
        cents = [rng.randint(1, 50_000) for _ in range(200)]
        for value in cents:
            add_sale(Decimal(value) / 100, "cash")
        clock.advance(minutes=1)

        session = manager.get_open_session()
        result = manager.reconcile(session, clock(), None, Money.zero())
        assert result.expected_cash.cents == 25050 + sum(cents)


# ===== TRANSFERENCIAS =====

class TestTransferVerificationTracker:

    def test_list_materializes_awaiting(self, manager, add_sale, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        first = add_sale("40.00", "transfer", bank_reference="REF-001", bank_name="Banrural")
        add_sale("10.00", "cash")
        add_sale("15.00", "Transferencia")
        add_sale("20.00", "transfer", status=SaleStatus.VOIDED.value)
        clock.advance(minutes=1)

        session = manager.get_open_session()
        verifications = manager.list_transfers(session.id)
        assert len(verifications) == 2
        assert all(v.status == TransferStatus.AWAITING for v in verifications)
        assert verifications[0].sale_id == first.id
        assert verifications[0].bank_reference == "REF-001"
        assert verifications[0].bank_name == "Banrural"

        totals = manager.transfers.totals(verifications)
        assert totals.expected == Money(5500)
        assert totals.verified == Money.zero()
        assert len(totals.pending_sale_ids) == 2

    def test_listing_twice_does_not_duplicate(self, manager, add_sale, clock, db_session):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        add_sale("40.00", "transfer")
        clock.advance(minutes=1)
        manager.list_transfers(session.id)
        manager.list_transfers(session.id)
        assert db_session.query(TransferVerification).count() == 1

    def test_mark_received_is_idempotent(self, manager, add_sale, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        sale = add_sale("40.00", "transfer")
        clock.advance(minutes=1)

        once = manager.set_transfer_status(sale.id, TransferStatus.RECEIVED)
        twice = manager.set_transfer_status(sale.id, TransferStatus.RECEIVED)
        assert once.id == twice.id
        assert twice.status == TransferStatus.RECEIVED

        back = manager.set_transfer_status(sale.id, TransferStatus.AWAITING)
        assert back.status == TransferStatus.AWAITING

    def test_update_reference_keeps_status(self, manager, add_sale, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        sale = add_sale("40.00", "transfer")
        clock.advance(minutes=1)
        manager.set_transfer_status(sale.id, TransferStatus.RECEIVED)

        verification = manager.update_transfer_reference(sale.id, " 778899 ", "Banco Industrial")
        assert verification.bank_reference == "778899"
        assert verification.bank_name == "Banco Industrial"
        assert verification.status == TransferStatus.RECEIVED

    def test_unknown_sale(self, manager, add_sale, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        cash_sale = add_sale("10.00", "cash")
        with pytest.raises(UnknownSale):
            manager.set_transfer_status(cash_sale.id, TransferStatus.RECEIVED)
        with pytest.raises(UnknownSale):
            manager.update_transfer_reference(424242, "1234", None)

    def test_mutations_need_open_session(self, manager):
        with pytest.raises(NoActiveSession):
            manager.set_transfer_status(1, TransferStatus.RECEIVED)


# ===== EXPIRACIÓN =====

class TestExpirySweep:

    def test_boundary(self, manager, add_sale, clock):
        t0 = clock()
        session = manager.open_session(Decimal("100"), opened_by="cajero-1")
        clock.advance(hours=1)
        add_sale("20.00", "cash")

        clock.now = t0 + timedelta(hours=12) - timedelta(seconds=1)
        assert manager.expire_stale_sessions() == []
        assert manager.get_open_session().id == session.id

        clock.now = t0 + timedelta(hours=12)
        expired = manager.expire_stale_sessions()
        assert [s.id for s in expired] == [session.id]

        session = manager.get_session(session.id)
        assert session.status == CashSessionStatus.EXPIRED
        assert session.auto_closed is True
        assert session.closure_kind == ClosureKind.EXPIRED
        assert session.closed_at == t0 + timedelta(hours=12)
        assert session.closed_by == "cajero-1"
        assert session.expected_cash == Money(12000)
        assert session.closing_count == session.expected_cash
        assert session.difference == Money.zero()

    def test_sweep_is_idempotent(self, manager, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(hours=13)
        assert len(manager.expire_stale_sessions()) == 1
        assert manager.expire_stale_sessions() == []

    def test_state_reports_expiry(self, manager, clock):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(hours=12)

        state = manager.current_state()
        assert state.open is False
        assert state.expired is True
        assert state.session.id == session.id
        assert state.session.status == CashSessionStatus.EXPIRED

        manager.open_session(Decimal("0"), opened_by="cajero-1")
        state = manager.current_state()
        assert state.open is True
        assert state.expired is False

    def test_open_discovers_stale_session(self, manager, clock, db_session):
        first = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(hours=20)
        second = manager.open_session(Decimal("0"), opened_by="cajero-2")
        assert second.id != first.id
        assert manager.get_session(first.id).status == CashSessionStatus.EXPIRED
        assert open_sessions(db_session) == 1

    def test_close_after_expiry_fails_cleanly(self, manager, clock):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        count_for(manager, q1=0)
        clock.advance(hours=12)
        with pytest.raises(NoActiveSession):
            manager.close_session("cajero-1", Decimal("0"))
        assert manager.get_session(session.id).status == CashSessionStatus.EXPIRED

    def test_celery_task_expires_sessions(self, db_session):
        stale = CashSession(
            status=CashSessionStatus.OPEN,
            opened_by="cajero-1",
            opened_at=utcnow() - timedelta(days=3),
            opening_float=Money(5000)
        )
        db_session.add(stale)
        db_session.commit()

        result = expire_stale_sessions()
        assert result == {"status": "completed", "expired": [stale.id]}

        db_session.expire_all()
        assert db_session.get(CashSession, stale.id).status == CashSessionStatus.EXPIRED


# ===== REINICIO FORZADO =====

class TestForceReset:

    def test_force_reset_closes_without_preconditions(self, manager, add_sale, clock):
        session = manager.open_session(Decimal("100"), opened_by="cajero-1")
        clock.advance(minutes=1)
        add_sale("40.00", "transfer")
        add_sale("10.00", "cash")
        clock.advance(minutes=1)

        reset = manager.force_reset("admin-1")
        assert reset.id == session.id
        assert reset.status == CashSessionStatus.CLOSED
        assert reset.auto_closed is True
        assert reset.closure_kind == ClosureKind.FORCED
        assert reset.closed_by == "admin-1"
        assert reset.closing_count is None
        assert reset.expected_cash == Money(11000)
        assert reset.expected_transfers == Money(4000)
        assert reset.verified_transfers == Money.zero()

    def test_force_reset_is_noop_without_open_session(self, manager):
        assert manager.force_reset("admin-1") is None
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        assert manager.force_reset("admin-1") is not None
        assert manager.force_reset("admin-1") is None


# ===== INVARIANTE =====

class TestSingleOpenInvariant:

    def test_random_operation_sequences(self, manager, clock, db_session):
        rng = random.Random(42)
        for _ in range(120):
            action = rng.choice(["open", "close", "expire", "reset", "tick"])
            try:
                if action == "open":
                    manager.open_session(Decimal(rng.randint(0, 500)), opened_by="cajero-1")
                elif action == "close":
                    total = count_for(manager, q1=rng.randint(0, 5))
                    manager.close_session("cajero-1", total.to_decimal(), notes="cierre de prueba")
                elif action == "expire":
                    manager.expire_stale_sessions()
                elif action == "reset":
                    manager.force_reset("admin-1")
                else:
                    clock.advance(hours=rng.randint(1, 8))
            except (SessionAlreadyOpen, NoActiveSession):
                pass
            assert open_sessions(db_session) <= 1


# ===== RESUMEN E HISTORIAL =====

class TestSummaryAndHistory:

    def test_sales_summary_by_method(self, manager, add_sale, clock):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        add_sale("10.00", "cash")
        add_sale("2.50", "Efectivo")
        add_sale("40.00", "transfer")
        add_sale("12.00", "card")
        clock.advance(minutes=1)

        summary = manager.sales_summary(session.id)
        assert summary.by_method[PaymentMethod.CASH].total == Money(1250)
        assert summary.by_method[PaymentMethod.CASH].count == 2
        assert summary.by_method[PaymentMethod.TRANSFER].total == Money(4000)
        assert summary.by_method[PaymentMethod.CARD].count == 1
        assert summary.total == Money(6450)
        assert summary.count == 4

    def test_summary_of_closed_session_uses_closed_at(self, manager, add_sale, clock):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=1)
        add_sale("10.00", "cash")
        clock.advance(minutes=1)
        count_for(manager, q10=1)
        manager.close_session("cajero-1", Decimal("10"))
        clock.advance(minutes=1)
        add_sale("99.00", "cash")

        summary = manager.sales_summary(session.id)
        assert summary.total == Money(1000)

    def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFound):
            manager.sales_summary(999)

    def test_list_sessions_newest_first(self, manager, clock):
        first = manager.open_session(Decimal("0"), opened_by="cajero-1")
        manager.force_reset("admin-1")
        clock.advance(hours=1)
        second = manager.open_session(Decimal("0"), opened_by="cajero-1")

        result = manager.list_sessions()
        assert result["total"] == 2
        assert [s.id for s in result["sessions"]] == [second.id, first.id]

        closed = manager.list_sessions(status=CashSessionStatus.CLOSED)
        assert [s.id for s in closed["sessions"]] == [first.id]


# ===== ENDPOINTS =====

class TestCajaAPI:

    def test_requires_authentication(self, client):
        response = client.get("/api/v1/caja/state")
        assert response.status_code in (401, 403)

    def test_full_flow(self, client, cashier_headers, add_sale, clock):
        response = client.get("/api/v1/caja/state", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json() == {"open": False, "session": None, "expired": False}

        response = client.post("/api/v1/caja/open", json={"opening_float": "100.00"}, headers=cashier_headers)
        assert response.status_code == 201
        session = response.json()
        assert session["status"] == "open"
        assert session["opened_by"] == "cajero-1"

        clock.advance(minutes=10)
        add_sale("50.00", "cash")
        add_sale("30.25", "cash")
        clock.advance(minutes=10)

        count = {"denominations": {"100": 1, "50": 1, "20": 1, "10": 1, "0.25": 1}}
        preview = client.post("/api/v1/caja/count/preview", json=count, headers=cashier_headers)
        assert preview.status_code == 200
        assert Decimal(str(preview.json()["total"])) == Decimal("180.25")
        assert preview.json()["formatted_total"] == "Q180.25"
        assert preview.json()["id"] is None

        applied = client.post("/api/v1/caja/count", json=count, headers=cashier_headers)
        assert applied.status_code == 201
        assert applied.json()["session_id"] == session["id"]

        response = client.post("/api/v1/caja/close", json={"closing_count": "180.25"}, headers=cashier_headers)
        assert response.status_code == 200
        closed = response.json()
        assert closed["status"] == "closed"
        assert closed["closure_kind"] == "manual"
        assert Decimal(str(closed["reconciliation"]["expected_cash"])) == Decimal("180.25")
        assert Decimal(str(closed["reconciliation"]["difference"])) == Decimal("0")
        assert closed["reconciliation"]["requires_justification"] is False

        summary = client.get(f"/api/v1/caja/sessions/{session['id']}/sales-summary", headers=cashier_headers)
        assert summary.status_code == 200
        assert summary.json()["cash"]["count"] == 2
        assert Decimal(str(summary.json()["total"])) == Decimal("80.25")

    def test_open_errors(self, client, cashier_headers):
        response = client.post("/api/v1/caja/open", json={"opening_float": "-1"}, headers=cashier_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_opening_float"

        assert client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers).status_code == 201
        response = client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "session_already_open"

    def test_close_errors(self, client, cashier_headers, add_sale, clock):
        response = client.post("/api/v1/caja/close", json={"closing_count": "0"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "no_active_session"

        client.post("/api/v1/caja/open", json={"opening_float": "100.00"}, headers=cashier_headers)
        clock.advance(minutes=1)
        transfer = add_sale("40.00", "transfer")
        clock.advance(minutes=1)

        response = client.post("/api/v1/caja/close", json={"closing_count": "100"}, headers=cashier_headers)
        assert response.json()["detail"]["code"] == "cash_not_counted"

        client.post("/api/v1/caja/count", json={"denominations": {"50": 1, "20": 2, "5": 1}}, headers=cashier_headers)
        response = client.post("/api/v1/caja/close", json={"closing_count": "95"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "unverified_transfers"
        assert response.json()["detail"]["sale_ids"] == [transfer.id]

        response = client.post(f"/api/v1/caja/transfers/{transfer.id}/status", json={"status": "received"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "received"

        response = client.post("/api/v1/caja/close", json={"closing_count": "95"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "justification_required"
        assert response.json()["detail"]["difference"] == "-5.00"

        response = client.post("/api/v1/caja/close", json={"closing_count": "95", "notes": "faltante investigado"}, headers=cashier_headers)
        assert response.status_code == 200
        assert Decimal(str(response.json()["reconciliation"]["difference"])) == Decimal("-5.00")

    def test_invalid_denomination(self, client, cashier_headers):
        response = client.post("/api/v1/caja/count/preview", json={"denominations": {"3": 1}}, headers=cashier_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_denomination"

    def test_oversized_amounts_are_validation_errors(self, client, cashier_headers):
        response = client.post("/api/v1/caja/count/preview", json={"denominations": {"1e999999999": 1}}, headers=cashier_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_denomination"

        response = client.post("/api/v1/caja/count/preview", json={"denominations": {"200": 10 ** 18}}, headers=cashier_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_denomination_count"

        response = client.post("/api/v1/caja/open", json={"opening_float": "1e999999999"}, headers=cashier_headers)
        assert response.status_code == 422

        response = client.post("/api/v1/caja/open", json={"opening_float": "100000000000000000000"}, headers=cashier_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_opening_float"
        assert client.get("/api/v1/caja/state", headers=cashier_headers).json()["open"] is False

    def test_transfers_endpoints(self, client, cashier_headers, add_sale, clock):
        session = client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers).json()
        clock.advance(minutes=1)
        sale = add_sale("40.00", "transfer")
        clock.advance(minutes=1)

        response = client.get(f"/api/v1/caja/sessions/{session['id']}/transfers", headers=cashier_headers)
        assert response.status_code == 200
        body = response.json()
        assert [t["sale_id"] for t in body["transfers"]] == [sale.id]
        assert body["pending_sale_ids"] == [sale.id]

        response = client.post(
            f"/api/v1/caja/transfers/{sale.id}/reference",
            json={"bank_reference": "AB-1234", "bank_name": "Banco G&T"},
            headers=cashier_headers
        )
        assert response.status_code == 200
        assert response.json()["bank_reference"] == "AB-1234"
        assert response.json()["status"] == "awaiting"

        response = client.post("/api/v1/caja/transfers/987654/status", json={"status": "received"}, headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "unknown_sale"

    def test_force_reset_requires_supervisor(self, client, cashier_headers, admin_headers):
        client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)

        assert client.post("/api/v1/caja/force-reset", headers=cashier_headers).status_code == 403

        response = client.post("/api/v1/caja/force-reset", json={"reason": "caja trabada"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["reset"] is True
        assert response.json()["session"]["closure_kind"] == "forced"
        assert response.json()["session"]["notes"] == "caja trabada"

        response = client.post("/api/v1/caja/force-reset", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"reset": False, "session": None}

    def test_state_after_expiry(self, client, cashier_headers, clock):
        client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)
        clock.advance(hours=12)
        body = client.get("/api/v1/caja/state", headers=cashier_headers).json()
        assert body["open"] is False
        assert body["expired"] is True
        assert body["session"]["status"] == "expired"
        assert body["session"]["auto_closed"] is True

    def test_sessions_history(self, client, cashier_headers, admin_headers):
        client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)
        client.post("/api/v1/caja/force-reset", headers=admin_headers)

        response = client.get("/api/v1/caja/sessions", params={"status": "closed"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        session_id = response.json()["sessions"][0]["id"]
        assert client.get(f"/api/v1/caja/sessions/{session_id}", headers=cashier_headers).status_code == 200
        response = client.get("/api/v1/caja/sessions/9999", headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "session_not_found"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "ok"
