from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.service import AuthService
from app.modules.auth.dependencies import get_current_user, get_auth_context
from app.modules.auth.models import User
from app.modules.auth.schemas import (
    UserCreate, TokenResponse, SignupResponse, AccessTokenResponse,
    MeResponse, AuthContext, RefreshTokenRequest,
)

auth_router = APIRouter(prefix="/auth", tags=["Auth"])

@auth_router.post("/register", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """
    Wizard de registro: crea usuario, organización, sede principal y suscripción.
    """
    return AuthService(db).register(user_data)

@auth_router.post("/login", response_model=TokenResponse)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    Login de usuario (username = email). Retorna tokens y lista de empresas.
    """
    return AuthService(db).login(form_data.username, form_data.password)

@auth_router.post("/refresh", response_model=AccessTokenResponse)
def refresh_token(body: RefreshTokenRequest, db: Session = Depends(get_db)):
    """
    Renovar token de acceso con refresh token.
    """
    return AuthService(db).refresh_access_token(body.refresh_token)

@auth_router.get("/me", response_model=MeResponse)
def get_current_user_info(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return AuthService(db).me(current_user)

@auth_router.get("/context", response_model=AuthContext)
def get_auth_context_info(auth_context: AuthContext = Depends(get_auth_context)):
    """Contexto resuelto a partir del token y X-Company-ID."""
    return auth_context

@auth_router.post("/logout")
def logout():
    """
    Logout (del lado cliente, invalidar token).
    """
    return {"message": "Logout exitoso"}
