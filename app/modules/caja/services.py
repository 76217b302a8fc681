"""
Servicios de negocio para la caja

CajaSessionManager es el único dueño del estado "hay una caja abierta":
- Apertura con monto inicial y validación de caja única
- Cierre con arqueo, verificación de transferencias y justificación de
  diferencias
- Expiración automática de sesiones abiertas demasiado tiempo
- Reinicio forzado administrativo
- Resumen de ventas por método de pago e historial de sesiones

Toda mutación del espacio de sesión abierta se ejecuta bajo `_slot_lock` y
vuelve a leer la fila con SELECT ... FOR UPDATE; el índice parcial único de
`cash_sessions` resuelve las carreras entre procesos.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import logging
import threading

from fastapi import HTTPException, status
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.money import Money, MoneyInput
from app.common.validators import is_blank, normalize_optional_text, utcnow
from app.core.config import settings
from app.modules.caja.denominations import DenominationBreakdown, DenominationCounter
from app.modules.caja.exceptions import (
    CashNotCounted, InvalidAmount, InvalidOpeningFloat, JustificationRequired,
    NoActiveSession, SessionAlreadyClosed, SessionAlreadyOpen, SessionNotFound,
    UnverifiedTransfers
)
from app.modules.caja.models import (
    CashCount, CashSession, CashSessionStatus, ClosureKind,
    ReconciliationResult, TransferStatus, TransferVerification
)
from app.modules.caja.transfers import TransferVerificationTracker
from app.modules.sales.ledger import SalesLedgerView
from app.modules.sales.models import PaymentMethod

logger = logging.getLogger(__name__)

# Serializa apertura, cierre, reinicio y expiración dentro del proceso
_slot_lock = threading.RLock()


@dataclass
class CajaState:
    open: bool
    session: Optional[CashSession]
    expired: bool = False


@dataclass
class MethodTotals:
    total: Money = field(default_factory=Money.zero)
    count: int = 0


@dataclass
class SalesSummary:
    session_id: int
    start: datetime
    end: datetime
    by_method: Dict[PaymentMethod, MethodTotals]

    @property
    def total(self) -> Money:
        return Money.sum(totals.total for totals in self.by_method.values())

    @property
    def count(self) -> int:
        return sum(totals.count for totals in self.by_method.values())


class CajaSessionManager:
    """Orquesta el ciclo de vida de la sesión de caja"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow,
                 max_session_age: Optional[timedelta] = None,
                 ledger: Optional[SalesLedgerView] = None,
                 counter: Optional[DenominationCounter] = None):
        self.db = db
        self.clock = clock
        self.max_session_age = max_session_age or timedelta(hours=settings.CAJA_MAX_SESSION_AGE_HOURS)
        self.ledger = ledger or SalesLedgerView(db)
        self.counter = counter or DenominationCounter()
        self.transfers = TransferVerificationTracker(db, self.ledger)

    # ===== ESTADO =====

    def get_open_session(self) -> Optional[CashSession]:
        return self.db.query(CashSession).filter(
            CashSession.status == CashSessionStatus.OPEN
        ).first()

    def current_state(self) -> CajaState:
        """
        Estado actual de la caja.

        Si la sesión abierta ya superó la antigüedad máxima se expira aquí
        mismo; `expired` indica que la última sesión terminó por expiración
        y hace falta una apertura nueva antes de vender.
        """
        session = self.get_open_session()
        if session is not None and self._is_stale(session, self.clock()):
            self.expire_stale_sessions()
            session = None

        if session is not None:
            return CajaState(open=True, session=session, expired=False)

        latest = self.db.query(CashSession).order_by(
            desc(CashSession.opened_at), desc(CashSession.id)
        ).first()
        if latest is not None and latest.status == CashSessionStatus.EXPIRED:
            return CajaState(open=False, session=latest, expired=True)
        return CajaState(open=False, session=None, expired=False)

    def get_session(self, session_id: int) -> CashSession:
        session = self.db.query(CashSession).filter(CashSession.id == session_id).first()
        if not session:
            raise SessionNotFound(session_id=session_id)
        return session

    def list_sessions(self, status: Optional[CashSessionStatus] = None,
                      limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        query = self.db.query(CashSession)
        if status:
            query = query.filter(CashSession.status == status)

        query = query.order_by(desc(CashSession.opened_at), desc(CashSession.id))
        total = query.count()
        sessions = query.offset(offset).limit(limit).all()

        return {
            "sessions": sessions,
            "total": total,
            "limit": limit,
            "offset": offset
        }

    # ===== APERTURA =====

    def open_session(self, opening_float: MoneyInput, opened_by: str) -> CashSession:
        """Abrir caja con el monto inicial indicado"""
        amount = self._parse_amount(opening_float, InvalidOpeningFloat)
        if amount.is_negative():
            raise InvalidOpeningFloat(opening_float=str(amount.to_decimal()))

        with _slot_lock:
            try:
                self._expire_if_stale(self.clock())

                if self._locked_open_session() is not None:
                    raise SessionAlreadyOpen()

                session = CashSession(
                    status=CashSessionStatus.OPEN,
                    opened_by=str(opened_by),
                    opened_at=self.clock(),
                    opening_float=amount,
                    auto_closed=False
                )
                self.db.add(session)
                self.db.commit()
                self.db.refresh(session)

                logger.info(f"Cash session {session.id} opened by {opened_by} with float {amount.format(settings.CURRENCY_SYMBOL)}")
                return session

            except HTTPException:
                self.db.rollback()
                raise
            except IntegrityError:
                # Otro proceso abrió la caja entre la consulta y el insert
                self.db.rollback()
                raise SessionAlreadyOpen()
            except SQLAlchemyError as e:
                self._database_error("abrir la caja", e)

    # ===== ARQUEO =====

    def preview_count(self, raw_counts: Mapping[Any, Any]) -> DenominationBreakdown:
        """Total en vivo del arqueo; no modifica nada"""
        return self.counter.parse(raw_counts)

    def apply_count(self, raw_counts: Mapping[Any, Any], counted_by: str) -> Tuple[CashCount, DenominationBreakdown]:
        """Registra el arqueo en la sesión abierta; el cierre debe coincidir con él"""
        breakdown = self.counter.parse(raw_counts)

        with _slot_lock:
            try:
                session = self._require_open_session()
                count = CashCount(
                    denominations=breakdown.as_dict(),
                    total=breakdown.total,
                    counted_by=str(counted_by),
                    counted_at=self.clock()
                )
                session.counts.append(count)
                self.db.commit()
                self.db.refresh(count)

                logger.info(f"Cash count {count.id} applied to session {session.id}: {breakdown.total.format(settings.CURRENCY_SYMBOL)}")
                return count, breakdown

            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self._database_error("registrar el arqueo", e)

    # ===== CIERRE =====

    def close_session(self, closed_by: str, closing_count: MoneyInput,
                      notes: Optional[str] = None, session_id: Optional[int] = None) -> CashSession:
        """
        Cerrar caja con arqueo.

        Precondiciones, en orden:
        1. Hay una sesión abierta (NoActiveSession)
        2. El monto de cierre proviene del último arqueo aplicado (CashNotCounted)
        3. Todas las transferencias están recibidas (UnverifiedTransfers)
        4. Si hay diferencia, las observaciones no están vacías (JustificationRequired)

        Si se indica `session_id` y esa sesión ya terminó (cerrada, expirada o
        reiniciada) se rechaza con SessionAlreadyClosed.

        Cualquier rechazo deja la sesión abierta y sin cambios.
        """
        counted = self._parse_amount(closing_count, InvalidAmount)

        with _slot_lock:
            try:
                now = self.clock()
                if session_id is not None:
                    self._expire_if_stale(now)
                    target = self.get_session(session_id)
                    if not target.is_open:
                        raise SessionAlreadyClosed(session_id=target.id, status=target.status.value)
                session = self._require_open_session(now)

                last_count = session.last_count
                if last_count is None:
                    raise CashNotCounted()
                if last_count.total != counted:
                    raise CashNotCounted(
                        "El monto de cierre no coincide con el último arqueo registrado.",
                        counted=str(last_count.total.to_decimal()),
                        closing_count=str(counted.to_decimal())
                    )

                verifications = self.transfers.list_for_session(session, until=now)
                transfer_totals = self.transfers.totals(verifications)
                if not transfer_totals.all_verified:
                    raise UnverifiedTransfers(sale_ids=transfer_totals.pending_sale_ids)

                result = self.reconcile(session, now, counted, transfer_totals.verified)
                if result.requires_justification and is_blank(notes):
                    raise JustificationRequired(difference=str(result.difference.to_decimal()))

                session.status = CashSessionStatus.CLOSED
                session.closure_kind = ClosureKind.MANUAL
                session.auto_closed = False
                session.closed_by = str(closed_by)
                session.closed_at = now
                session.notes = normalize_optional_text(notes)
                session.apply_reconciliation(result)
                self.transfers.discard(session)

                self.db.commit()
                self.db.refresh(session)

                logger.info(
                    f"Cash session {session.id} closed by {closed_by}: expected "
                    f"{result.expected_cash.format(settings.CURRENCY_SYMBOL)}, counted "
                    f"{counted.format(settings.CURRENCY_SYMBOL)}, difference "
                    f"{result.difference.format(settings.CURRENCY_SYMBOL)}"
                )
                return session

            except HTTPException as e:
                self.db.rollback()
                logger.info(f"Cash session close rejected: {e}")
                raise
            except SQLAlchemyError as e:
                self._database_error("cerrar la caja", e)

    def reconcile(self, session: CashSession, end: datetime,
                  counted: Optional[Money], verified_transfers: Money) -> ReconciliationResult:
        """Esperado en efectivo y transferencias para la ventana [opened_at, end)"""
        summary = self._summarize(session, end)
        cash_sales = summary.by_method[PaymentMethod.CASH].total
        return ReconciliationResult(
            expected_cash=session.opening_float + cash_sales,
            counted_cash=counted,
            expected_transfers=summary.by_method[PaymentMethod.TRANSFER].total,
            verified_transfers=verified_transfers
        )

    # ===== REINICIO FORZADO =====

    def force_reset(self, requested_by: str, reason: Optional[str] = None) -> Optional[CashSession]:
        """
        Cierra cualquier caja abierta sin precondiciones.

        Sin caja abierta no hace nada y devuelve None.
        """
        with _slot_lock:
            try:
                session = self._locked_open_session()
                if session is None:
                    logger.info(f"Forced reset requested by {requested_by} with no open cash session")
                    return None

                now = self.clock()
                verifications = self.transfers.list_for_session(session, until=now)
                verified = self.transfers.totals(verifications).verified
                result = self.reconcile(session, now, None, verified)

                session.status = CashSessionStatus.CLOSED
                session.closure_kind = ClosureKind.FORCED
                session.auto_closed = True
                session.closed_by = str(requested_by)
                session.closed_at = now
                session.notes = normalize_optional_text(reason) or "Reinicio forzado de caja"
                session.apply_reconciliation(result)
                self.transfers.discard(session)

                self.db.commit()
                self.db.refresh(session)

                logger.warning(f"FORCED RESET of cash session {session.id} by {requested_by} (opened by {session.opened_by} at {session.opened_at.isoformat()})")
                return session

            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self._database_error("reiniciar la caja", e)

    # ===== EXPIRACIÓN =====

    def expire_stale_sessions(self) -> List[CashSession]:
        """Barrido de expiración; idempotente"""
        with _slot_lock:
            try:
                expired = self._expire_if_stale(self.clock())
                return [expired] if expired is not None else []
            except SQLAlchemyError as e:
                self._database_error("expirar la caja", e)

    def expires_at(self, session: CashSession) -> datetime:
        return session.opened_at + self.max_session_age

    def _is_stale(self, session: CashSession, now: datetime) -> bool:
        return session.is_open and now >= self.expires_at(session)

    def _expire_if_stale(self, now: datetime) -> Optional[CashSession]:
        session = self._locked_open_session()
        if session is None or not self._is_stale(session, now):
            return None

        # No hay recuento físico posible: se cierra con lo esperado
        expires_at = self.expires_at(session)
        verifications = self.transfers.list_for_session(session, until=expires_at)
        verified = self.transfers.totals(verifications).verified
        expected = self.reconcile(session, expires_at, None, verified)
        result = ReconciliationResult(
            expected_cash=expected.expected_cash,
            counted_cash=expected.expected_cash,
            expected_transfers=expected.expected_transfers,
            verified_transfers=verified
        )

        session.status = CashSessionStatus.EXPIRED
        session.closure_kind = ClosureKind.EXPIRED
        session.auto_closed = True
        session.closed_by = session.opened_by
        session.closed_at = expires_at
        session.apply_reconciliation(result)
        self.transfers.discard(session)

        self.db.commit()
        self.db.refresh(session)

        logger.info(f"Cash session {session.id} expired after {self.max_session_age}; flagged for manual review")
        return session

    # ===== VENTAS Y TRANSFERENCIAS =====

    def sales_summary(self, session_id: int) -> SalesSummary:
        session = self.get_session(session_id)
        end = session.closed_at or self.clock()
        return self._summarize(session, end)

    def list_transfers(self, session_id: int) -> List[TransferVerification]:
        session = self.get_session(session_id)
        if not session.is_open:
            return self.transfers.list_for_session(session)

        with _slot_lock:
            try:
                verifications = self.transfers.list_for_session(session, until=self.clock())
                self.db.commit()
                return verifications
            except SQLAlchemyError as e:
                self._database_error("listar las transferencias", e)

    def set_transfer_status(self, sale_id: int, new_status: TransferStatus) -> TransferVerification:
        with _slot_lock:
            try:
                session = self._require_open_session()
                if new_status == TransferStatus.RECEIVED:
                    verification = self.transfers.mark_received(session, sale_id)
                else:
                    verification = self.transfers.mark_awaiting(session, sale_id)
                self.db.commit()
                self.db.refresh(verification)
                return verification
            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self._database_error("actualizar la transferencia", e)

    def update_transfer_reference(self, sale_id: int, bank_reference: Optional[str],
                                  bank_name: Optional[str]) -> TransferVerification:
        with _slot_lock:
            try:
                session = self._require_open_session()
                verification = self.transfers.update_reference(session, sale_id, bank_reference, bank_name)
                self.db.commit()
                self.db.refresh(verification)
                return verification
            except HTTPException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self._database_error("actualizar la referencia", e)

    # ===== AUXILIARES =====

    def _summarize(self, session: CashSession, end: datetime) -> SalesSummary:
        by_method = {method: MethodTotals() for method in PaymentMethod}
        for sale in self.ledger.sales_in_window(session.opened_at, end):
            totals = by_method[sale.payment_method]
            totals.total = totals.total + sale.amount
            totals.count += 1
        return SalesSummary(session_id=session.id, start=session.opened_at, end=end, by_method=by_method)

    def _locked_open_session(self) -> Optional[CashSession]:
        return self.db.query(CashSession).filter(
            CashSession.status == CashSessionStatus.OPEN
        ).with_for_update().populate_existing().first()

    def _require_open_session(self, now: Optional[datetime] = None) -> CashSession:
        now = now or self.clock()
        if self._expire_if_stale(now) is not None:
            raise NoActiveSession("La caja expiró; abre una nueva sesión.")
        session = self._locked_open_session()
        if session is None:
            raise NoActiveSession()
        return session

    @staticmethod
    def _parse_amount(value: MoneyInput, error_cls) -> Money:
        try:
            return Money.from_decimal(value)
        except (TypeError, ValueError) as e:
            raise error_cls(str(e))

    def _database_error(self, action: str, error: Exception):
        self.db.rollback()
        logger.error(f"Database error while trying to {action}: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error interno del servidor al {action}"
        )
