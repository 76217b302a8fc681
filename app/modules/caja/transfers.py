"""
Verificación de transferencias bancarias por sesión

Cada venta pagada por transferencia dentro de la ventana de la sesión tiene
un registro de verificación que solo cambia por una acción explícita del
operador (esperando -> recibido o al revés). Los registros se crean al pedir
la lista por primera vez y se descartan cuando la sesión termina.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.common.money import Money
from app.common.validators import normalize_optional_text
from app.modules.caja.exceptions import UnknownSale
from app.modules.caja.models import CashSession, TransferVerification, TransferStatus
from app.modules.sales.ledger import SalesLedgerView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferTotals:
    expected: Money
    verified: Money
    pending_sale_ids: List[int]

    @property
    def all_verified(self) -> bool:
        return not self.pending_sale_ids


class TransferVerificationTracker:
    """Estado de verificación de transferencias de una sesión"""

    def __init__(self, db: Session, ledger: Optional[SalesLedgerView] = None):
        self.db = db
        self.ledger = ledger or SalesLedgerView(db)

    def list_for_session(self, session: CashSession, until: Optional[datetime] = None) -> List[TransferVerification]:
        """
        Devuelve las verificaciones de la sesión, creando en estado
        `awaiting` las de ventas por transferencia que aún no tienen registro.

        Las sesiones terminadas no se materializan: solo se leen sus filas.
        """
        if not session.is_open:
            return list(session.transfers)

        existing = {verification.sale_id: verification for verification in session.transfers}
        created = 0
        for sale in self.ledger.transfers_in_window(session.opened_at, until):
            if sale.sale_id in existing:
                continue
            verification = TransferVerification(
                sale_id=sale.sale_id,
                amount=sale.amount,
                status=TransferStatus.AWAITING,
                bank_reference=sale.bank_reference,
                bank_name=sale.bank_name
            )
            session.transfers.append(verification)
            existing[sale.sale_id] = verification
            created += 1

        if created:
            self.db.flush()
            logger.debug(f"Materialized {created} transfer verifications for cash session {session.id}")

        return sorted(existing.values(), key=lambda verification: verification.sale_id)

    def mark_received(self, session: CashSession, sale_id: int) -> TransferVerification:
        return self._set_status(session, sale_id, TransferStatus.RECEIVED)

    def mark_awaiting(self, session: CashSession, sale_id: int) -> TransferVerification:
        return self._set_status(session, sale_id, TransferStatus.AWAITING)

    def update_reference(self, session: CashSession, sale_id: int,
                         bank_reference: Optional[str], bank_name: Optional[str]) -> TransferVerification:
        """Actualiza los datos del depósito sin tocar el estado"""
        verification = self.get(session, sale_id)
        verification.bank_reference = normalize_optional_text(bank_reference)
        verification.bank_name = normalize_optional_text(bank_name)
        self.db.flush()
        return verification

    def get(self, session: CashSession, sale_id: int) -> TransferVerification:
        for verification in self.list_for_session(session):
            if verification.sale_id == sale_id:
                return verification
        raise UnknownSale(
            f"La venta {sale_id} no es una transferencia de la sesión {session.id}",
            sale_id=sale_id
        )

    def totals(self, verifications: List[TransferVerification]) -> TransferTotals:
        expected = Money.sum(verification.amount for verification in verifications)
        verified = Money.sum(
            verification.amount for verification in verifications if verification.is_received
        )
        pending = [verification.sale_id for verification in verifications if not verification.is_received]
        return TransferTotals(expected=expected, verified=verified, pending_sale_ids=pending)

    def discard(self, session: CashSession) -> None:
        """Elimina las verificaciones cuando la sesión termina"""
        if session.transfers:
            logger.debug(f"Discarding {len(session.transfers)} transfer verifications of cash session {session.id}")
        session.transfers.clear()

    def _set_status(self, session: CashSession, sale_id: int, new_status: TransferStatus) -> TransferVerification:
        verification = self.get(session, sale_id)
        if verification.status == new_status:
            return verification
        verification.status = new_status
        self.db.flush()
        logger.info(f"Transfer of sale {sale_id} marked as {new_status.value} in cash session {session.id}")
        return verification
