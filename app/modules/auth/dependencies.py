"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, selectinload
import jwt

from app.database.database import get_db
from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import AuthContext, UserCompanyOut, ROLES
from app.core.config import settings

security = HTTPBearer()

class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> User:
        """
        Obtener usuario actual desde token JWT.
        No requiere tenant_id (para endpoints generales).
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
        except jwt.PyJWTError:
            raise credentials_exception

        user_id = payload.get("sub")
        if user_id is None or payload.get("type", "access") != "access":
            raise credentials_exception

        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            raise credentials_exception

        user = db.query(User).options(
            selectinload(User.profile),
            selectinload(User.user_companies).selectinload(UserCompany.company)
        ).filter(User.id == user_uuid).first()

        if user is None or not user.is_active:
            raise credentials_exception

        return user

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Contexto de autenticación con tenant.
        El tenant sale del header X-Company-ID y el rol de la membresía activa.
        """
        user = AuthDependencies.get_current_user(credentials, db)
        tenant_id = None
        user_role = None

        raw_company = request.headers.get("X-Company-ID") or getattr(request.state, "tenant_id", None)
        if raw_company:
            try:
                tenant_id = UUID(str(raw_company))
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="ID de empresa inválido"
                )
            membership = next(
                (uc for uc in user.user_companies if uc.company_id == tenant_id and uc.is_active),
                None
            )
            if membership is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="No tienes acceso a esta empresa"
                )
            user_role = membership.role

        companies = [
            UserCompanyOut(
                id=uc.id,
                company_id=uc.company_id,
                role=uc.role,
                is_active=uc.is_active,
                joined_at=uc.joined_at,
                company_name=uc.company.name
            )
            for uc in user.user_companies if uc.is_active
        ]

        return AuthContext(
            user_id=user.id,
            tenant_id=tenant_id,
            user_role=user_role,
            companies=companies
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Se requiere seleccionar una empresa"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_owner_or_admin():
        """Dependencia para requerir rol de owner o admin."""
        return AuthDependencies.require_role(["owner", "admin"])

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol activo en una empresa."""
        return AuthDependencies.require_role(list(ROLES))

get_current_user = AuthDependencies.get_current_user
get_auth_context = AuthDependencies.get_auth_context
require_owner_or_admin = AuthDependencies.require_owner_or_admin
require_any_role = AuthDependencies.require_any_role
