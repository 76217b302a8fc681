"""
Registro de ventas con validación de caja abierta

Toda venta, sea en efectivo, por transferencia o con tarjeta, requiere una
sesión de caja abierta. La tarjeta no entra al efectivo esperado.
"""

from typing import Optional
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.money import Money
from app.common.validators import normalize_optional_text
from app.modules.caja.exceptions import CajaClosedForSales, InvalidAmount
from app.modules.caja.models import CashSession
from app.modules.caja.services import CajaSessionManager
from app.modules.sales.models import Sale, SaleStatus, PaymentMethod
from app.modules.sales.schemas import SaleCreate

logger = logging.getLogger(__name__)

METHODS_REQUIRING_CAJA = set(PaymentMethod)


class SaleGuard:
    """Consulta a la caja antes de aceptar una venta"""

    def __init__(self, manager: CajaSessionManager):
        self.manager = manager

    def require_open_session(self, payment_method: PaymentMethod) -> Optional[CashSession]:
        if payment_method not in METHODS_REQUIRING_CAJA:
            return None
        state = self.manager.current_state()
        if not state.open:
            raise CajaClosedForSales(expired=state.expired)
        return state.session


class SaleService:
    """Servicio mínimo de entrada de ventas"""

    def __init__(self, db: Session, manager: Optional[CajaSessionManager] = None):
        self.db = db
        self.manager = manager or CajaSessionManager(db)
        self.guard = SaleGuard(self.manager)

    def register_sale(self, sale_data: SaleCreate, created_by: str) -> Sale:
        """Registrar venta confirmada"""
        try:
            total = Money.from_decimal(sale_data.total)
        except (TypeError, ValueError) as e:
            raise InvalidAmount(str(e))
        if total.cents <= 0:
            raise InvalidAmount("El total de la venta debe ser mayor a cero")

        self.guard.require_open_session(sale_data.payment_method)

        is_transfer = sale_data.payment_method == PaymentMethod.TRANSFER
        try:
            sale = Sale(
                total=total,
                payment_method=sale_data.payment_method.value,
                status=SaleStatus.CONFIRMED.value,
                customer_name=normalize_optional_text(sale_data.customer_name),
                bank_reference=normalize_optional_text(sale_data.bank_reference) if is_transfer else None,
                bank_name=normalize_optional_text(sale_data.bank_name) if is_transfer else None,
                created_by=str(created_by),
                created_at=self.manager.clock()
            )
            self.db.add(sale)
            self.db.commit()
            self.db.refresh(sale)

            logger.info(f"Sale {sale.id} registered ({sale_data.payment_method.value}) by {created_by}")
            return sale

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while registering sale: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error interno del servidor al registrar la venta"
            )
