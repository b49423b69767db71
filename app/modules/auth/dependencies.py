"""
Dependencias de autenticación para FastAPI.

La emisión de tokens y el CRUD de usuarios viven fuera de este servicio;
aquí solo se verifica el JWT y se expone el usuario y su rol.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import decode_token

# Security scheme
security = HTTPBearer()

ALL_ROLES = ["cashier", "admin", "spadmin"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        """
        Obtener contexto de autenticación desde el token JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not valid",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_token(credentials.credentials)
        except jwt.PyJWTError:
            raise credentials_exception

        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        return AuthContext(
            user_id=str(user_id),
            user_role=payload.get("role"),
            user_name=payload.get("name"),
        )

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
    def require_admin():
        return AuthDependencies.require_role(["admin", "spadmin"])

    @staticmethod
    def require_any_role():
        return AuthDependencies.require_role(ALL_ROLES)


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_admin = AuthDependencies.require_admin
require_any_role = AuthDependencies.require_any_role
