"""
Modelos SQLAlchemy del libro de ventas

La tabla `sales` pertenece al módulo de ventas; el motor de caja solo la lee
a través de SalesLedgerView. El método de pago se guarda como texto tal como
lo escribe el punto de venta y se valida al leerlo.
"""

from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, Index
from app.common.validators import utcnow
from app.common.mixins import MoneyType
import enum


class PaymentMethod(str, enum.Enum):
    """Métodos de pago reconocidos por la caja"""
    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"

    @classmethod
    def parse(cls, raw: str) -> "PaymentMethod":
        """Convierte el texto almacenado (incluidas etiquetas en español) al enum."""
        if raw is None:
            raise ValueError("Método de pago vacío")
        key = raw.strip().lower()
        if key in PAYMENT_METHOD_ALIASES:
            return PAYMENT_METHOD_ALIASES[key]
        return cls(key)


PAYMENT_METHOD_ALIASES = {
    "efectivo": PaymentMethod.CASH,
    "transferencia": PaymentMethod.TRANSFER,
    "tarjeta": PaymentMethod.CARD,
}


class SaleStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    VOIDED = "voided"


class Sale(Base):
    """Venta registrada por el punto de venta"""
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    total = Column(MoneyType, nullable=False)
    payment_method = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=SaleStatus.CONFIRMED.value, index=True)
    customer_name = Column(String(200), nullable=True)

    # Datos del depósito para pagos con transferencia
    bank_reference = Column(String(100), nullable=True)
    bank_name = Column(String(100), nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("idx_sales_status_created_at", "status", "created_at"),
    )
