from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.validators import (
    validate_colombia_phone, format_colombia_phone,
    validate_colombia_nit, format_colombia_nit,
)
from app.modules.auth.schemas import ROLES

ROLE_PATTERN = r'^(' + '|'.join(ROLES) + r')$'


class OrganizationOut(BaseModel):
    id: UUID
    name: str
    nit: str
    legal_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: str
    subdomain: Optional[str] = None
    primary_color: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    nit: Optional[str] = Field(None, max_length=20)
    legal_name: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    subdomain: Optional[str] = Field(None, pattern=r'^[a-z0-9][a-z0-9-]{1,62}$')
    primary_color: Optional[str] = Field(None, pattern=r'^#[0-9A-Fa-f]{6}$')

    @field_validator('nit')
    @classmethod
    def validate_nit(cls, v):
        if v is None:
            return v
        if not validate_colombia_nit(v):
            raise ValueError('NIT inválido. Use 8 a 10 dígitos, opcionalmente con dígito de verificación (900123456-8)')
        return format_colombia_nit(v)

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_colombia_phone(v):
            raise ValueError(
                'Número de teléfono inválido. Use formato colombiano: '
                '+573XXXXXXXXX (móvil) o +571XXXXXXX (fijo), también acepta sin +57'
            )
        return format_colombia_phone(v)


# Miembros

class MemberOut(BaseModel):
    id: UUID
    user_id: UUID
    email: str
    full_name: Optional[str] = None
    role: str
    is_active: bool
    joined_at: Optional[datetime] = None


class MemberList(BaseModel):
    items: List[MemberOut]
    total: int


class MemberRoleUpdate(BaseModel):
    role: str = Field(..., pattern=ROLE_PATTERN)


# Invitaciones

class InvitationCreate(BaseModel):
    email: EmailStr
    role: str = Field("viewer", pattern=ROLE_PATTERN)


class InvitationOut(BaseModel):
    id: UUID
    company_id: UUID
    invitee_email: str
    role: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    is_accepted: bool
    is_revoked: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=16)


class InvitationAcceptResult(BaseModel):
    message: str
    company_id: UUID
    company_name: str
    role: str
