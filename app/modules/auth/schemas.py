from pydantic import BaseModel
from typing import Optional


class AuthContext(BaseModel):
    """Operador autenticado extraído del token"""
    user_id: str
    user_role: Optional[str] = None
