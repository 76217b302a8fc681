from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from app.core.config import settings

SECRET_KEY = settings.APP_SECRET_STRING
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

OPERATOR_ROLES = ("admin", "supervisor", "cashier")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token with an expiration time.
    If expires_delta is not provided, it defaults to ACCESS_TOKEN_EXPIRE_MINUTES.

    Tokens for operators are issued by the identity service; this helper is
    used by tooling and tests.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_operator_token(operator_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Token de un operador de caja (sub = id del operador, role = rol)."""
    if role not in OPERATOR_ROLES:
        raise ValueError(f"Rol desconocido: {role}")
    return create_access_token({"sub": str(operator_id), "role": role}, expires_delta)


def decode_access_token(token: str) -> dict:
    """Decode and validate an access token; other token types are rejected."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload
