"""
Routers FastAPI para la caja

Endpoints:
- Estado, apertura, cierre y reinicio forzado de la caja
- Arqueo por denominaciones (vista previa y aplicación)
- Historial y resumen de ventas por sesión
- Verificación de transferencias
"""

from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional

from app.dependencies.cajaDependencies import caja_manager_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.caja.denominations import DenominationBreakdown
from app.modules.caja.models import CashSessionStatus, TransferStatus
from app.modules.caja.schemas import (
    CajaStateOut, CashSessionOpen, CashSessionClose, CashSessionOut, CashSessionList,
    CashCountRequest, CashCountOut, DenominationLine, ForceResetRequest, ForceResetOut,
    SalesSummaryOut, MethodTotalsOut, TransferList, TransferVerificationOut,
    TransferStatusUpdate, TransferReferenceUpdate
)
from app.modules.sales.models import PaymentMethod
from app.core.config import settings


caja_router = APIRouter(prefix="/caja", tags=["Caja"])


def _count_out(breakdown: DenominationBreakdown, count_id: Optional[int] = None,
               session_id: Optional[int] = None) -> CashCountOut:
    return CashCountOut(
        id=count_id,
        session_id=session_id,
        lines=[
            DenominationLine(denomination=value.to_decimal(), count=count, subtotal=subtotal.to_decimal())
            for value, count, subtotal in breakdown.lines()
        ],
        total=breakdown.total.to_decimal(),
        formatted_total=breakdown.total.format(settings.CURRENCY_SYMBOL)
    )


# ===== ESTADO Y CICLO DE VIDA =====

@caja_router.get("/state", response_model=CajaStateOut)
async def get_caja_state(
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """
    Estado actual de la caja.

    - **open**: hay una sesión abierta
    - **expired**: la última sesión expiró y hay que abrir una nueva antes de vender
    """
    state = manager.current_state()
    return CajaStateOut(
        open=state.open,
        session=CashSessionOut.from_session(state.session) if state.session else None,
        expired=state.expired
    )


@caja_router.post("/open", response_model=CashSessionOut, status_code=status.HTTP_201_CREATED)
async def open_caja(
    open_data: CashSessionOpen,
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """
    Abrir caja con monto inicial.

    Validaciones:
    - Monto inicial mayor o igual a cero
    - Solo una caja abierta a la vez
    """
    session = manager.open_session(open_data.opening_float, opened_by=auth_context.user_id)
    return CashSessionOut.from_session(session)


@caja_router.post("/close", response_model=CashSessionOut)
async def close_caja(
    close_data: CashSessionClose,
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """
    Cerrar caja con arqueo.

    - **closing_count**: total del último arqueo aplicado
    - **notes**: observaciones, obligatorias si el contado difiere del esperado

    - **session_id**: opcional; si esa sesión ya terminó responde session_already_closed

    Rechazos (la caja sigue abierta): no_active_session, cash_not_counted,
    unverified_transfers (con sale_ids pendientes), justification_required.
    """
    session = manager.close_session(
        closed_by=auth_context.user_id,
        closing_count=close_data.closing_count,
        notes=close_data.notes,
        session_id=close_data.session_id
    )
    return CashSessionOut.from_session(session)


@caja_router.post("/force-reset", response_model=ForceResetOut)
async def force_reset_caja(
    manager: caja_manager_dependency,
    reset_data: Optional[ForceResetRequest] = None,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor())
):
    """
    Reinicio forzado: cierra cualquier caja abierta sin arqueo ni verificación.

    Sin caja abierta no hace nada.
    """
    session = manager.force_reset(
        requested_by=auth_context.user_id,
        reason=reset_data.reason if reset_data else None
    )
    return ForceResetOut(
        reset=session is not None,
        session=CashSessionOut.from_session(session) if session else None
    )


# ===== ARQUEO =====

@caja_router.post("/count/preview", response_model=CashCountOut)
async def preview_cash_count(
    count_data: CashCountRequest,
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Total en vivo del conteo de billetes y monedas; no registra nada."""
    return _count_out(manager.preview_count(count_data.denominations))


@caja_router.post("/count", response_model=CashCountOut, status_code=status.HTTP_201_CREATED)
async def apply_cash_count(
    count_data: CashCountRequest,
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Registra el arqueo en la caja abierta; el cierre debe usar este total."""
    count, breakdown = manager.apply_count(count_data.denominations, counted_by=auth_context.user_id)
    return _count_out(breakdown, count_id=count.id, session_id=count.session_id)


# ===== HISTORIAL =====

@caja_router.get("/sessions", response_model=CashSessionList)
async def list_sessions(
    manager: caja_manager_dependency,
    session_status: Optional[CashSessionStatus] = Query(None, alias="status", description="Filtrar por estado"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Límite de resultados"),
    offset: int = Query(0, ge=0, description="Offset para paginación"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Historial de sesiones, de la más reciente a la más antigua."""
    result = manager.list_sessions(status=session_status, limit=limit, offset=offset)
    return CashSessionList(
        sessions=[CashSessionOut.from_session(session) for session in result["sessions"]],
        total=result["total"],
        limit=result["limit"],
        offset=result["offset"]
    )


@caja_router.get("/sessions/{session_id}", response_model=CashSessionOut)
async def get_session(
    manager: caja_manager_dependency,
    session_id: int = Path(..., description="ID de la sesión"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    return CashSessionOut.from_session(manager.get_session(session_id))


@caja_router.get("/sessions/{session_id}/sales-summary", response_model=SalesSummaryOut)
async def get_sales_summary(
    manager: caja_manager_dependency,
    session_id: int = Path(..., description="ID de la sesión"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Totales por método de pago dentro de la ventana de la sesión."""
    summary = manager.sales_summary(session_id)

    def totals_out(method: PaymentMethod) -> MethodTotalsOut:
        totals = summary.by_method[method]
        return MethodTotalsOut(total=totals.total.to_decimal(), count=totals.count)

    return SalesSummaryOut(
        session_id=summary.session_id,
        start=summary.start,
        end=summary.end,
        cash=totals_out(PaymentMethod.CASH),
        transfer=totals_out(PaymentMethod.TRANSFER),
        card=totals_out(PaymentMethod.CARD),
        total=summary.total.to_decimal(),
        count=summary.count
    )


# ===== TRANSFERENCIAS =====

@caja_router.get("/sessions/{session_id}/transfers", response_model=TransferList)
async def list_transfers(
    manager: caja_manager_dependency,
    session_id: int = Path(..., description="ID de la sesión"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Transferencias de la sesión con su estado de verificación."""
    verifications = manager.list_transfers(session_id)
    totals = manager.transfers.totals(verifications)
    return TransferList(
        session_id=session_id,
        transfers=[TransferVerificationOut.from_verification(v) for v in verifications],
        expected_total=totals.expected.to_decimal(),
        verified_total=totals.verified.to_decimal(),
        pending_sale_ids=totals.pending_sale_ids
    )


@caja_router.post("/transfers/{sale_id}/status", response_model=TransferVerificationOut)
async def update_transfer_status(
    status_data: TransferStatusUpdate,
    manager: caja_manager_dependency,
    sale_id: int = Path(..., description="ID de la venta"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Marca la transferencia como recibida o en espera (idempotente)."""
    verification = manager.set_transfer_status(sale_id, TransferStatus(status_data.status))
    return TransferVerificationOut.from_verification(verification)


@caja_router.post("/transfers/{sale_id}/reference", response_model=TransferVerificationOut)
async def update_transfer_reference(
    reference_data: TransferReferenceUpdate,
    manager: caja_manager_dependency,
    sale_id: int = Path(..., description="ID de la venta"),
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """Actualiza referencia y banco sin cambiar el estado."""
    verification = manager.update_transfer_reference(
        sale_id, reference_data.bank_reference, reference_data.bank_name
    )
    return TransferVerificationOut.from_verification(verification)
