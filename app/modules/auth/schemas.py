from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.validators import (
    validate_colombia_phone, format_colombia_phone,
    validate_colombia_nit, format_colombia_nit,
)

ROLES = ("owner", "admin", "accountant", "seller", "viewer")


def _phone(v: Optional[str]) -> Optional[str]:
    if v is None or v.strip() == "":
        return None
    if not validate_colombia_phone(v):
        raise ValueError(
            'Número de teléfono inválido. Use formato colombiano: '
            '+573XXXXXXXXX (móvil) o +571XXXXXXX (fijo), también acepta sin +57'
        )
    return format_colombia_phone(v)


class ProfileCreate(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=20)

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        return _phone(v)

class ProfileOut(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    full_name: str

    class Config:
        from_attributes = True

# Wizard de registro
class SignupOrganization(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    nit: str = Field(..., max_length=20)
    legal_name: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = None
    country: str = "CO"
    subdomain: Optional[str] = Field(None, pattern=r'^[a-z0-9][a-z0-9-]{1,62}$')

    @field_validator('nit')
    @classmethod
    def validate_nit(cls, v):
        if not validate_colombia_nit(v):
            raise ValueError('NIT inválido. Use 8 a 10 dígitos, opcionalmente con dígito de verificación (900123456-8)')
        return format_colombia_nit(v)

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        return _phone(v)

class SignupBranch(BaseModel):
    name: str = Field("Sede principal", min_length=2, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = None

class UserCreate(BaseModel):
    """Payload del wizard de registro: usuario, organización, sede y plan."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    profile: ProfileCreate
    organization: SignupOrganization
    branch: Optional[SignupBranch] = None
    plan_code: str = "FREE"
    billing_cycle: str = Field("monthly", pattern=r'^(monthly|yearly)$')

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    is_active: bool
    profile: Optional[ProfileOut] = None

    class Config:
        from_attributes = True

class UserCompanyOut(BaseModel):
    id: UUID
    company_id: UUID
    role: str
    is_active: bool
    joined_at: Optional[datetime] = None
    company_name: str

    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    user: UserOut
    companies: List[UserCompanyOut] = []

class SignupResponse(TokenResponse):
    organization_id: UUID
    branch_id: UUID
    subscription_status: str

class RefreshTokenRequest(BaseModel):
    refresh_token: str

class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

class MeResponse(BaseModel):
    user: UserOut
    companies: List[UserCompanyOut] = []

class AuthContext(BaseModel):
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
    companies: List[UserCompanyOut] = []
