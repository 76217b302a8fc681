"""
Módulo Caja - sesión de caja y arqueo

ENTIDADES PRINCIPALES:
- CashSession: periodo de caja abierta con monto inicial, cierre y
  reconciliación embebida
- TransferVerification: verificación de ventas pagadas por transferencia
- CashCount: arqueo por denominaciones aplicado a la sesión

REGLAS DE NEGOCIO:
- Solo una caja abierta a la vez en todo el sistema
- Ventas en efectivo y por transferencia requieren caja abierta
- El cierre exige arqueo, transferencias verificadas y observaciones cuando
  el contado difiere del esperado
- Las sesiones abiertas más de CAJA_MAX_SESSION_AGE_HOURS expiran solas
- Reinicio forzado para supervisores, registrado aparte del cierre normal
"""
