"""
Base de errores de negocio

Los servicios lanzan subclases de HTTPException para que FastAPI las
convierta en respuestas sin manejo adicional en los routers. Cada error
lleva un `code` estable para el cliente y un mensaje para el operador.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Error de negocio con código estable y detalle estructurado"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"
    message: str = "Operación no permitida"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(status_code=self.status_code, detail=self.to_detail())

    def to_detail(self) -> Dict[str, Any]:
        detail = {"code": self.code, "message": self.message}
        detail.update(self.extra)
        return detail

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"
