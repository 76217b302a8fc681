"""
Tests para el libro de ventas y la entrada de ventas

Cubren:
- Ventana [inicio, fin) y filtrado por método de pago
- Etiquetas de método de pago en español
- Registros corruptos
- Bloqueo de ventas con la caja cerrada
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.common.money import Money
from app.modules.caja.exceptions import CajaClosedForSales, InvalidAmount
from app.modules.sales.ledger import InvalidLedgerRecord, SalesLedgerView
from app.modules.sales.models import PaymentMethod, SaleStatus
from app.modules.sales.schemas import SaleCreate
from app.modules.sales.service import SaleGuard, SaleService


# ===== MÉTODOS DE PAGO =====

class TestPaymentMethod:

    def test_canonical_values(self):
        assert PaymentMethod.parse("cash") == PaymentMethod.CASH
        assert PaymentMethod.parse(" CARD ") == PaymentMethod.CARD

    def test_spanish_labels(self):
        assert PaymentMethod.parse("Efectivo") == PaymentMethod.CASH
        assert PaymentMethod.parse("transferencia") == PaymentMethod.TRANSFER
        assert PaymentMethod.parse("Tarjeta") == PaymentMethod.CARD

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            PaymentMethod.parse("cheque")


# ===== LIBRO DE VENTAS =====

class TestSalesLedgerView:

    def test_window_is_half_open(self, db_session, add_sale, clock):
        start = clock()
        end = start + timedelta(hours=1)
        add_sale("1.00", created_at=start - timedelta(seconds=1))
        first = add_sale("2.00", created_at=start)
        last = add_sale("3.00", created_at=end - timedelta(seconds=1))
        add_sale("4.00", created_at=end)

        sales = SalesLedgerView(db_session).sales_in_window(start, end)
        assert [sale.sale_id for sale in sales] == [first.id, last.id]
        assert sales[0].amount == Money(200)

    def test_open_ended_window(self, db_session, add_sale, clock):
        add_sale("2.00", created_at=clock() + timedelta(days=2))
        assert len(SalesLedgerView(db_session).sales_in_window(clock())) == 1

    def test_only_confirmed_sales(self, db_session, add_sale, clock):
        add_sale("2.00")
        add_sale("3.00", status=SaleStatus.VOIDED.value)
        sales = SalesLedgerView(db_session).sales_in_window(clock() - timedelta(minutes=1))
        assert [sale.amount for sale in sales] == [Money(200)]

    def test_transfers_in_window(self, db_session, add_sale, clock):
        add_sale("2.00", "cash")
        transfer = add_sale("40.00", "Transferencia", bank_reference="998877", bank_name="BAM")
        add_sale("7.00", "tarjeta")

        transfers = SalesLedgerView(db_session).transfers_in_window(clock() - timedelta(minutes=1))
        assert len(transfers) == 1
        assert transfers[0].sale_id == transfer.id
        assert transfers[0].payment_method == PaymentMethod.TRANSFER
        assert transfers[0].bank_reference == "998877"

    def test_unknown_method_is_reported(self, db_session, add_sale, clock):
        bad = add_sale("2.00", "cheque")
        with pytest.raises(InvalidLedgerRecord) as exc_info:
            SalesLedgerView(db_session).sales_in_window(clock() - timedelta(minutes=1))
        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["sale_id"] == bad.id


# ===== GUARDA DE VENTAS =====

class TestSaleGuard:

    def test_every_method_needs_open_caja(self, manager):
        guard = SaleGuard(manager)
        for method in PaymentMethod:
            with pytest.raises(CajaClosedForSales):
                guard.require_open_session(method)

    def test_card_needs_open_caja(self, manager):
        with pytest.raises(CajaClosedForSales):
            SaleGuard(manager).require_open_session(PaymentMethod.CARD)
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        assert SaleGuard(manager).require_open_session(PaymentMethod.CARD).id == session.id

    def test_open_caja_allows_sales(self, manager):
        session = manager.open_session(Decimal("0"), opened_by="cajero-1")
        assert SaleGuard(manager).require_open_session(PaymentMethod.CASH).id == session.id

    def test_expired_caja_blocks_sales(self, manager, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(hours=12)
        with pytest.raises(CajaClosedForSales) as exc_info:
            SaleGuard(manager).require_open_session(PaymentMethod.CASH)
        assert exc_info.value.detail["expired"] is True


class TestSaleService:

    def test_register_sale_uses_caja_clock(self, db_session, manager, clock):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        clock.advance(minutes=3)
        sale = SaleService(db_session, manager).register_sale(
            SaleCreate(total=Decimal("30.25"), payment_method="efectivo"), created_by="cajero-1"
        )
        assert sale.total == Money(3025)
        assert sale.payment_method == "cash"
        assert sale.created_at == clock()

    def test_bank_data_only_for_transfers(self, db_session, manager):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        sale = SaleService(db_session, manager).register_sale(
            SaleCreate(total=Decimal("5.00"), payment_method="cash", bank_reference="1234"),
            created_by="cajero-1"
        )
        assert sale.bank_reference is None

    def test_total_beyond_range(self, db_session, manager):
        manager.open_session(Decimal("0"), opened_by="cajero-1")
        data = SaleCreate(total=Decimal("100000000000000000000"), payment_method="cash")
        with pytest.raises(InvalidAmount):
            SaleService(db_session, manager).register_sale(data, created_by="cajero-1")

    def test_non_positive_total(self, db_session, manager):
        data = SaleCreate.model_construct(total=Decimal("0"), payment_method=PaymentMethod.CARD)
        with pytest.raises(InvalidAmount):
            SaleService(db_session, manager).register_sale(data, created_by="cajero-1")


# ===== ENDPOINTS =====

class TestSalesAPI:

    def test_cash_sale_rejected_with_closed_caja(self, client, cashier_headers):
        response = client.post("/api/v1/sales/", json={"total": "10.00", "payment_method": "cash"}, headers=cashier_headers)
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "caja_closed"
        assert response.json()["detail"]["message"] == "Debes abrir la caja antes de registrar ventas."

    def test_card_sale_rejected_with_closed_caja(self, client, cashier_headers):
        response = client.post("/api/v1/sales/", json={"total": "12.00", "payment_method": "tarjeta"}, headers=cashier_headers)
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "caja_closed"

    def test_card_sale_accepted_with_open_caja(self, client, cashier_headers):
        client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)
        response = client.post("/api/v1/sales/", json={"total": "12.00", "payment_method": "tarjeta"}, headers=cashier_headers)
        assert response.status_code == 201
        assert response.json()["payment_method"] == "card"

    def test_oversized_total_is_a_validation_error(self, client, cashier_headers):
        client.post("/api/v1/caja/open", json={"opening_float": "0"}, headers=cashier_headers)
        for total in ("1e999999999", "100000000000000000000"):
            response = client.post("/api/v1/sales/", json={"total": total, "payment_method": "cash"}, headers=cashier_headers)
            assert response.status_code == 422

    def test_sales_flow_into_open_session(self, client, cashier_headers, clock):
        session = client.post("/api/v1/caja/open", json={"opening_float": "20.00"}, headers=cashier_headers).json()
        clock.advance(minutes=1)

        response = client.post(
            "/api/v1/sales/",
            json={"total": "40.00", "payment_method": "transfer", "bank_reference": "REF-55", "bank_name": "BI"},
            headers=cashier_headers
        )
        assert response.status_code == 201
        sale_id = response.json()["id"]
        clock.advance(minutes=1)

        transfers = client.get(f"/api/v1/caja/sessions/{session['id']}/transfers", headers=cashier_headers).json()
        assert transfers["pending_sale_ids"] == [sale_id]
        assert transfers["transfers"][0]["bank_reference"] == "REF-55"

    def test_invalid_payload(self, client, cashier_headers):
        response = client.post("/api/v1/sales/", json={"total": "-1", "payment_method": "cash"}, headers=cashier_headers)
        assert response.status_code == 422
