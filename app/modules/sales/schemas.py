"""
Esquemas Pydantic para la entrada de ventas
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional
from datetime import datetime

from app.modules.sales.models import PaymentMethod


class SaleCreate(BaseModel):
    """Esquema para registrar una venta"""
    total: Decimal = Field(..., gt=0, decimal_places=2, description="Total de la venta")
    payment_method: PaymentMethod = Field(..., description="Método de pago (cash, transfer, card)")
    customer_name: Optional[str] = Field(None, max_length=200, description="Nombre del cliente")
    bank_reference: Optional[str] = Field(None, max_length=100, description="Referencia del depósito")
    bank_name: Optional[str] = Field(None, max_length=100, description="Banco del depósito")

    @field_validator('payment_method', mode='before')
    @classmethod
    def parse_payment_method(cls, v):
        if isinstance(v, str):
            return PaymentMethod.parse(v)
        return v


class SaleOut(BaseModel):
    """Esquema de salida para venta"""
    id: int
    total: Decimal
    payment_method: PaymentMethod
    status: str
    customer_name: Optional[str] = None
    bank_reference: Optional[str] = None
    bank_name: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_sale(cls, sale) -> "SaleOut":
        return cls(
            id=sale.id,
            total=sale.total.to_decimal(),
            payment_method=PaymentMethod.parse(sale.payment_method),
            status=sale.status,
            customer_name=sale.customer_name,
            bank_reference=sale.bank_reference,
            bank_name=sale.bank_name,
            created_by=sale.created_by,
            created_at=sale.created_at
        )
