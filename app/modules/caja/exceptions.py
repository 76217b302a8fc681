"""
Errores de la caja

- Validación (422): datos de entrada inválidos, el estado no cambia.
- Invariante (409): la operación no aplica al estado actual de la caja.
- Precondiciones de cierre (409): la sesión sigue abierta y el operador
  sabe exactamente qué falta.
- Entidad desconocida (404).
"""
from fastapi import status

from app.common.exceptions import DomainError


# ===== VALIDACIÓN =====

class InvalidOpeningFloat(DomainError):
    status_code = 422
    code = "invalid_opening_float"
    message = "El monto inicial no puede ser negativo"


class InvalidDenomination(DomainError):
    status_code = 422
    code = "invalid_denomination"
    message = "Denominación no reconocida"


class InvalidDenominationCount(DomainError):
    status_code = 422
    code = "invalid_denomination_count"
    message = "La cantidad de billetes o monedas debe ser un entero no negativo"


class InvalidAmount(DomainError):
    status_code = 422
    code = "invalid_amount"
    message = "Monto inválido"


# ===== INVARIANTES =====

class SessionAlreadyOpen(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "session_already_open"
    message = "Ya existe una caja abierta actualmente."


class NoActiveSession(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "no_active_session"
    message = "No hay una caja abierta."


class SessionAlreadyClosed(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "session_already_closed"
    message = "La sesión de caja ya fue cerrada."


# ===== PRECONDICIONES DE CIERRE =====

class CashNotCounted(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "cash_not_counted"
    message = "Debes realizar el arqueo de billetes y monedas antes de cerrar la caja."


class UnverifiedTransfers(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "unverified_transfers"
    message = "Hay transferencias pendientes de verificar."


class JustificationRequired(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "justification_required"
    message = "Existe una diferencia en el arqueo; agrega una observación."


# ===== ENTIDADES =====

class UnknownSale(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "unknown_sale"
    message = "La venta no pertenece a las transferencias de la sesión."


class SessionNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "session_not_found"
    message = "Sesión de caja no encontrada."


# ===== VENTAS =====

class CajaClosedForSales(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "caja_closed"
    message = "Debes abrir la caja antes de registrar ventas."
