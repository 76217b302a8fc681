from fastapi import APIRouter, Depends, status

from app.dependencies.cajaDependencies import caja_manager_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.sales.schemas import SaleCreate, SaleOut
from app.modules.sales.service import SaleService

sales_router = APIRouter(prefix="/sales", tags=["Sales"])


@sales_router.post("/", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
async def register_sale(
    sale_data: SaleCreate,
    manager: caja_manager_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_operator())
):
    """
    Registrar una venta confirmada.

    Toda venta requiere caja abierta (403 caja_closed), también las
    pagadas con tarjeta.
    """
    service = SaleService(manager.db, manager)
    sale = service.register_sale(sale_data, created_by=auth_context.user_id)
    return SaleOut.from_sale(sale)
