"""
Validadores y normalizadores de texto compartidos
"""
import re
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Hora UTC sin zona horaria, como se guarda en las columnas de caja."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def normalize_optional_text(value: Optional[str]) -> Optional[str]:
    """Recorta espacios y convierte cadenas vacías en None."""
    if value is None:
        return None
    cleaned = re.sub(r'\s+', ' ', value).strip()
    return cleaned or None


def validate_bank_reference(reference: str) -> bool:
    """
    Valida número de referencia bancaria.
    - Entre 4 y 40 caracteres
    - Letras, números y guiones
    """
    cleaned = re.sub(r'\s', '', reference)
    return re.match(r'^[A-Za-z0-9\-]{4,40}$', cleaned) is not None
