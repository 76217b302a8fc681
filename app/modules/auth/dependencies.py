"""
Dependencias de autenticación para FastAPI.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import OPERATOR_ROLES, decode_access_token

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener el operador actual desde el token JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_access_token(credentials.credentials)
            user_id = payload.get("sub")
            if user_id is None:
                raise credentials_exception
        except jwt.PyJWTError:
            raise credentials_exception

        return AuthContext(user_id=str(user_id), user_role=payload.get("role"))

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_operator():
        """Cualquier operador de caja."""
        return AuthDependencies.require_role(list(OPERATOR_ROLES))

    @staticmethod
    def require_supervisor():
        """Dependencia para requerir rol de admin o supervisor."""
        return AuthDependencies.require_role(["admin", "supervisor"])
