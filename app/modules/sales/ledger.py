"""
Vista de solo lectura del libro de ventas

SalesLedgerView es el único punto por el que la caja consulta ventas. Los
registros se validan aquí: un método de pago desconocido es un dato corrupto
y se reporta en lugar de ignorarse.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional
import logging

from fastapi import status
from sqlalchemy.orm import Session

from app.common.exceptions import DomainError
from app.common.money import Money
from app.modules.sales.models import Sale, SaleStatus, PaymentMethod

logger = logging.getLogger(__name__)


class InvalidLedgerRecord(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "invalid_ledger_record"
    message = "El libro de ventas contiene un registro inválido"


@dataclass(frozen=True)
class LedgerSale:
    """Venta confirmada tal como la ve la caja"""
    sale_id: int
    amount: Money
    payment_method: PaymentMethod
    created_at: datetime
    bank_reference: Optional[str] = None
    bank_name: Optional[str] = None


class SalesLedgerView:
    """Consulta ventas confirmadas en una ventana [start, end)"""

    def __init__(self, db: Session):
        self.db = db

    def sales_in_window(self, start: datetime, end: Optional[datetime] = None,
                        methods: Optional[Iterable[PaymentMethod]] = None) -> List[LedgerSale]:
        query = self.db.query(Sale).filter(
            Sale.status == SaleStatus.CONFIRMED.value,
            Sale.created_at >= start
        )
        if end is not None:
            query = query.filter(Sale.created_at < end)

        wanted = set(methods) if methods is not None else None
        result = []
        for sale in query.order_by(Sale.created_at, Sale.id).all():
            ledger_sale = self._to_ledger_sale(sale)
            if wanted is None or ledger_sale.payment_method in wanted:
                result.append(ledger_sale)
        return result

    def transfers_in_window(self, start: datetime, end: Optional[datetime] = None) -> List[LedgerSale]:
        return self.sales_in_window(start, end, methods=[PaymentMethod.TRANSFER])

    def _to_ledger_sale(self, sale: Sale) -> LedgerSale:
        try:
            method = PaymentMethod.parse(sale.payment_method)
        except ValueError:
            logger.error(f"Sale {sale.id} has unknown payment method {sale.payment_method!r}")
            raise InvalidLedgerRecord(
                f"La venta {sale.id} tiene un método de pago desconocido",
                sale_id=sale.id
            )
        return LedgerSale(
            sale_id=sale.id,
            amount=sale.total,
            payment_method=method,
            created_at=sale.created_at,
            bank_reference=sale.bank_reference,
            bank_name=sale.bank_name
        )
