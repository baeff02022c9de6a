import logging
from typing import List
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.modules.auth.models import User, Profile, UserCompany
from app.modules.auth.schemas import (
    UserCreate, SignupBranch, UserOut, UserCompanyOut, TokenResponse, SignupResponse,
    AccessTokenResponse, MeResponse,
)
from app.modules.auth.utils import (
    hash_password, verify_password, create_access_token,
    create_refresh_token, verify_token
)
from app.modules.branches.schemas import BranchCreate
from app.modules.branches.service import create_branch
from app.modules.company.models import Company
from app.modules.subscriptions import crud as subscriptions_crud
from app.modules.subscriptions.models import BillingCycle
from app.common.dates import utcnow
from app.core.config import settings

logger = logging.getLogger(__name__)


class AuthService:
    """
    Servicio de autenticación multi-tenant.
    """

    def __init__(self, db: Session):
        self.db = db

    def _load_user(self, **filters) -> User:
        return self.db.query(User).options(
            selectinload(User.profile),
            selectinload(User.user_companies).selectinload(UserCompany.company)
        ).filter_by(**filters).first()

    @staticmethod
    def _companies(user: User) -> List[UserCompanyOut]:
        return [
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

    @staticmethod
    def _access_token(user: User) -> str:
        return create_access_token({
            "sub": str(user.id),
            "email": user.email,
            "user_name": user.profile.full_name if user.profile else user.email
        })

    def _token_response(self, user: User) -> dict:
        return {
            "access_token": self._access_token(user),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "refresh_token": create_refresh_token(str(user.id)),
            "user": UserOut.model_validate(user),
            "companies": self._companies(user),
        }

    def register(self, user_data: UserCreate) -> SignupResponse:
        """
        Wizard de registro en una sola transacción:
        usuario + perfil + organización + membresía owner + sede principal + suscripción.
        Si algún paso falla no queda nada creado.
        """
        email = user_data.email.lower()
        org = user_data.organization

        if self.db.query(User).filter(User.email == email).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Este email ya está registrado")
        if self.db.query(Company).filter(Company.nit == org.nit).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya existe una organización con ese NIT")
        if org.subdomain and self.db.query(Company).filter(Company.subdomain == org.subdomain).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El subdominio ya está en uso")

        plan = subscriptions_crud.get_plan_by_code(self.db, user_data.plan_code)
        if not plan or not plan.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Plan '{user_data.plan_code}' no disponible")

        try:
            profile = Profile(
                first_name=user_data.profile.first_name,
                last_name=user_data.profile.last_name,
                phone_number=user_data.profile.phone_number
            )
            self.db.add(profile)
            self.db.flush()

            user = User(
                email=email,
                password=hash_password(user_data.password),
                profile_id=profile.id,
                is_active=True
            )
            company = Company(**org.model_dump())
            self.db.add_all([user, company])
            self.db.flush()

            self.db.add(UserCompany(user_id=user.id, company_id=company.id, role="owner", is_active=True))

            branch_data = (user_data.branch or SignupBranch()).model_dump()
            branch_data["city"] = branch_data.get("city") or org.city
            branch_data["address"] = branch_data.get("address") or org.address
            branch = create_branch(
                BranchCreate(**branch_data, is_main=True, phone_number=org.phone_number),
                self.db, company.id, commit=False
            )

            subscription = subscriptions_crud.create_subscription(
                self.db, company.id, plan, BillingCycle(user_data.billing_cycle), commit=False
            )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Signup failed for {email}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error al registrar la organización: {str(e)}"
            )

        logger.info(f"Organization {company.id} registered by {email} on plan {plan.code}")
        user = self._load_user(id=user.id)
        return SignupResponse(
            **self._token_response(user),
            organization_id=company.id,
            branch_id=branch.id,
            subscription_status=subscription.status
        )

    def login(self, email: str, password: str) -> TokenResponse:
        """
        Login de usuario con listado de empresas.
        """
        user = self._load_user(email=email.lower())

        if not user or not verify_password(password, user.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Credenciales incorrectas"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Cuenta inactiva"
            )

        user.last_login = utcnow()
        self.db.commit()

        return TokenResponse(**self._token_response(user))

    def refresh_access_token(self, refresh_token: str) -> AccessTokenResponse:
        """Generar un nuevo access token a partir de un refresh token válido."""
        payload = verify_token(refresh_token, expected_type="refresh")
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token inválido")

        user = self.db.query(User).options(selectinload(User.profile)).filter(User.id == _as_uuid(user_id)).first()
        if not user or not user.is_active:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario inválido")

        return AccessTokenResponse(
            access_token=self._access_token(user),
            token_type="bearer",
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )

    def me(self, user: User) -> MeResponse:
        return MeResponse(user=UserOut.model_validate(user), companies=self._companies(user))


def _as_uuid(value):
    try:
        return UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token inválido")
