from typing import Annotated
from fastapi import Depends
from app.dependencies.dbDependecies import db_dependency
from app.modules.caja.services import CajaSessionManager


def get_caja_manager(db: db_dependency) -> CajaSessionManager:
    """CajaSessionManager ligado a la sesión de base de datos del request"""
    return CajaSessionManager(db)


caja_manager_dependency = Annotated[CajaSessionManager, Depends(get_caja_manager)]
