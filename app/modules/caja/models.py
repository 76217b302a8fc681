"""
Modelos SQLAlchemy para la caja

- CashSession: un periodo de caja abierta, desde la apertura hasta el cierre
  manual, la expiración automática o el reinicio forzado.
- TransferVerification: verificación de cada venta por transferencia dentro
  de la ventana de la sesión.
- CashCount: arqueo aplicado a la sesión (auditoría del conteo).

Solo puede existir una sesión abierta a la vez; el índice parcial
`uq_cash_sessions_single_open` lo garantiza a nivel de base de datos.
"""

from dataclasses import dataclass
from typing import Optional

from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Text, JSON,
    UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from app.common.mixins import MoneyType, TimestampMixin
from app.common.money import Money
from app.common.validators import utcnow
import enum


# ===== ENUMS =====

class CashSessionStatus(str, enum.Enum):
    """Estados de la sesión de caja"""
    OPEN = "open"         # Caja abierta
    CLOSED = "closed"     # Cerrada por el operador o por reinicio forzado
    EXPIRED = "expired"   # Cerrada automáticamente por antigüedad


class ClosureKind(str, enum.Enum):
    MANUAL = "manual"
    EXPIRED = "expired"
    FORCED = "forced"


class TransferStatus(str, enum.Enum):
    AWAITING = "awaiting"
    RECEIVED = "received"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ===== RECONCILIACIÓN =====

@dataclass(frozen=True)
class ReconciliationResult:
    """Resultado del arqueo calculado al cerrar la sesión"""
    expected_cash: Money
    counted_cash: Optional[Money]
    expected_transfers: Money
    verified_transfers: Money

    @property
    def difference(self) -> Optional[Money]:
        if self.counted_cash is None:
            return None
        return self.counted_cash - self.expected_cash

    @property
    def requires_justification(self) -> bool:
        difference = self.difference
        return difference is not None and not difference.is_zero()


# ===== MODELOS =====

class CashSession(Base, TimestampMixin):
    """Sesión de caja"""
    __tablename__ = "cash_sessions"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(
        Enum(CashSessionStatus, name="cash_session_status",
             values_callable=_enum_values, native_enum=False),
        nullable=False, default=CashSessionStatus.OPEN, index=True
    )

    opened_by = Column(String(100), nullable=False)
    closed_by = Column(String(100), nullable=True)
    opened_at = Column(DateTime, nullable=False, default=utcnow)
    closed_at = Column(DateTime, nullable=True)

    opening_float = Column(MoneyType, nullable=False)
    closing_count = Column(MoneyType, nullable=True)
    notes = Column(Text, nullable=True)

    auto_closed = Column(Boolean, nullable=False, default=False)
    closure_kind = Column(
        Enum(ClosureKind, name="cash_session_closure_kind",
             values_callable=_enum_values, native_enum=False),
        nullable=True
    )

    # Reconciliación embebida (solo se llena al terminar la sesión)
    expected_cash = Column(MoneyType, nullable=True)
    expected_transfers = Column(MoneyType, nullable=True)
    verified_transfers = Column(MoneyType, nullable=True)
    difference = Column(MoneyType, nullable=True)

    transfers = relationship(
        "TransferVerification", back_populates="session",
        cascade="all, delete-orphan", order_by="TransferVerification.sale_id"
    )
    counts = relationship(
        "CashCount", back_populates="session",
        cascade="all, delete-orphan", order_by="CashCount.id"
    )

    __table_args__ = (
        Index(
            "uq_cash_sessions_single_open", "status", unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'")
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status == CashSessionStatus.OPEN

    @property
    def last_count(self) -> Optional["CashCount"]:
        return self.counts[-1] if self.counts else None

    @property
    def reconciliation(self) -> Optional[ReconciliationResult]:
        if self.expected_cash is None:
            return None
        return ReconciliationResult(
            expected_cash=self.expected_cash,
            counted_cash=self.closing_count,
            expected_transfers=self.expected_transfers or Money.zero(),
            verified_transfers=self.verified_transfers or Money.zero()
        )

    def apply_reconciliation(self, result: ReconciliationResult) -> None:
        self.expected_cash = result.expected_cash
        self.closing_count = result.counted_cash
        self.expected_transfers = result.expected_transfers
        self.verified_transfers = result.verified_transfers
        self.difference = result.difference


class TransferVerification(Base, TimestampMixin):
    """Verificación de una venta pagada por transferencia"""
    __tablename__ = "transfer_verifications"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("cash_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = Column(Integer, nullable=False, index=True)
    amount = Column(MoneyType, nullable=False)
    status = Column(
        Enum(TransferStatus, name="transfer_verification_status",
             values_callable=_enum_values, native_enum=False),
        nullable=False, default=TransferStatus.AWAITING
    )
    bank_reference = Column(String(100), nullable=True)
    bank_name = Column(String(100), nullable=True)

    session = relationship("CashSession", back_populates="transfers")

    __table_args__ = (
        UniqueConstraint("session_id", "sale_id", name="uq_transfer_verification_session_sale"),
    )

    @property
    def is_received(self) -> bool:
        return self.status == TransferStatus.RECEIVED


class CashCount(Base):
    """Arqueo por denominaciones aplicado a una sesión"""
    __tablename__ = "cash_counts"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("cash_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    denominations = Column(JSON, nullable=False)  # {"100.00": 1, "0.25": 4}
    total = Column(MoneyType, nullable=False)
    counted_by = Column(String(100), nullable=False)
    counted_at = Column(DateTime, nullable=False, default=utcnow)

    session = relationship("CashSession", back_populates="counts")
