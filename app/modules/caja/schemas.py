"""
Esquemas Pydantic para la caja

Los montos viajan como Decimal con dos decimales; internamente se convierten
a Money (centavos enteros) antes de cualquier cálculo.
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict
from datetime import datetime

from app.common.money import Money
from app.common.validators import is_blank, validate_bank_reference
from app.modules.caja.models import (
    CashSession, CashSessionStatus, ClosureKind, TransferStatus, TransferVerification
)


def _dec(value: Optional[Money]) -> Optional[Decimal]:
    return value.to_decimal() if value is not None else None


# ===== ENTRADA =====

class CashSessionOpen(BaseModel):
    """Esquema para abrir caja"""
    opening_float: Decimal = Field(..., decimal_places=2, description="Monto inicial en caja")


class CashCountRequest(BaseModel):
    """Conteo de billetes y monedas por denominación"""
    denominations: Dict[str, int] = Field(
        ..., description="Denominación -> cantidad, ej. {\"100\": 1, \"0.25\": 4}"
    )


class CashSessionClose(BaseModel):
    """Esquema para cerrar caja"""
    closing_count: Decimal = Field(..., decimal_places=2, description="Efectivo contado (total del arqueo)")
    notes: Optional[str] = Field(None, max_length=1000, description="Observaciones; obligatorias si hay diferencia")
    session_id: Optional[int] = Field(None, description="Sesión que se quiere cerrar; si ya terminó se responde session_already_closed")


class ForceResetRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Motivo del reinicio")


class TransferStatusUpdate(BaseModel):
    status: TransferStatus = Field(..., description="awaiting | received")


class TransferReferenceUpdate(BaseModel):
    bank_reference: Optional[str] = Field(None, max_length=100, description="Número de referencia")
    bank_name: Optional[str] = Field(None, max_length=100, description="Banco")

    @field_validator('bank_reference')
    @classmethod
    def validate_reference(cls, v):
        if is_blank(v):
            return None
        if not validate_bank_reference(v):
            raise ValueError('Referencia inválida: use entre 4 y 40 letras, números o guiones')
        return v.strip()


# ===== SALIDA =====

class ReconciliationOut(BaseModel):
    expected_cash: Decimal
    counted_cash: Optional[Decimal] = None
    expected_transfers: Decimal
    verified_transfers: Decimal
    difference: Optional[Decimal] = None
    requires_justification: bool


class CashSessionOut(BaseModel):
    """Esquema de salida para sesión de caja"""
    id: int = Field(description="ID de la sesión")
    status: CashSessionStatus = Field(description="Estado de la sesión")
    opened_by: str = Field(description="Operador que abrió")
    closed_by: Optional[str] = Field(None, description="Operador que cerró")
    opened_at: datetime = Field(description="Fecha y hora de apertura")
    closed_at: Optional[datetime] = Field(None, description="Fecha y hora de cierre")
    opening_float: Decimal = Field(description="Monto inicial")
    closing_count: Optional[Decimal] = Field(None, description="Efectivo contado al cierre")
    notes: Optional[str] = Field(None, description="Observaciones")
    auto_closed: bool = Field(description="Cerrada por expiración o reinicio forzado")
    closure_kind: Optional[ClosureKind] = Field(None, description="manual | expired | forced")
    reconciliation: Optional[ReconciliationOut] = Field(None, description="Resultado del arqueo")

    @classmethod
    def from_session(cls, session: CashSession) -> "CashSessionOut":
        result = session.reconciliation
        reconciliation = None
        if result is not None:
            reconciliation = ReconciliationOut(
                expected_cash=result.expected_cash.to_decimal(),
                counted_cash=_dec(result.counted_cash),
                expected_transfers=result.expected_transfers.to_decimal(),
                verified_transfers=result.verified_transfers.to_decimal(),
                difference=_dec(result.difference),
                requires_justification=result.requires_justification
            )
        return cls(
            id=session.id,
            status=session.status,
            opened_by=session.opened_by,
            closed_by=session.closed_by,
            opened_at=session.opened_at,
            closed_at=session.closed_at,
            opening_float=session.opening_float.to_decimal(),
            closing_count=_dec(session.closing_count),
            notes=session.notes,
            auto_closed=session.auto_closed,
            closure_kind=session.closure_kind,
            reconciliation=reconciliation
        )


class CajaStateOut(BaseModel):
    open: bool
    session: Optional[CashSessionOut] = None
    expired: bool = False


class CashSessionList(BaseModel):
    sessions: List[CashSessionOut]
    total: int
    limit: int
    offset: int


class DenominationLine(BaseModel):
    denomination: Decimal
    count: int
    subtotal: Decimal


class CashCountOut(BaseModel):
    """Resultado del arqueo (vista previa o aplicado)"""
    id: Optional[int] = Field(None, description="ID del arqueo aplicado")
    session_id: Optional[int] = None
    lines: List[DenominationLine]
    total: Decimal
    formatted_total: str


class ForceResetOut(BaseModel):
    reset: bool
    session: Optional[CashSessionOut] = None


class MethodTotalsOut(BaseModel):
    total: Decimal
    count: int


class SalesSummaryOut(BaseModel):
    session_id: int
    start: datetime
    end: datetime
    cash: MethodTotalsOut
    transfer: MethodTotalsOut
    card: MethodTotalsOut
    total: Decimal
    count: int


class TransferVerificationOut(BaseModel):
    sale_id: int
    amount: Decimal
    status: TransferStatus
    bank_reference: Optional[str] = None
    bank_name: Optional[str] = None

    @classmethod
    def from_verification(cls, verification: TransferVerification) -> "TransferVerificationOut":
        return cls(
            sale_id=verification.sale_id,
            amount=verification.amount.to_decimal(),
            status=verification.status,
            bank_reference=verification.bank_reference,
            bank_name=verification.bank_name
        )


class TransferList(BaseModel):
    session_id: int
    transfers: List[TransferVerificationOut]
    expected_total: Decimal
    verified_total: Decimal
    pending_sale_ids: List[int]
