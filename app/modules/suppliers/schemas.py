from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.validators import (
    validate_colombia_nit, format_colombia_nit,
    validate_colombia_phone, format_colombia_phone,
)


def _nit(v):
    if v is None or v.strip() == "":
        return None
    if not validate_colombia_nit(v):
        raise ValueError('NIT inválido')
    return format_colombia_nit(v)


def _phone(v):
    if v is None or v.strip() == "":
        return None
    if not validate_colombia_phone(v):
        raise ValueError('Teléfono inválido')
    return format_colombia_phone(v)


class SupplierBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=200, description="Nombre o razón social")
    nit: Optional[str] = Field(None, max_length=20, description="NIT del proveedor")
    contact_name: Optional[str] = Field(None, max_length=150)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    payment_terms_days: int = Field(30, ge=0, le=365, description="Días de plazo para pago")

    @field_validator('nit')
    @classmethod
    def validate_nit(cls, v):
        return _nit(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _phone(v)


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    nit: Optional[str] = Field(None, max_length=20)
    contact_name: Optional[str] = Field(None, max_length=150)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    payment_terms_days: Optional[int] = Field(None, ge=0, le=365)
    is_active: Optional[bool] = None

    @field_validator('nit')
    @classmethod
    def validate_nit(cls, v):
        return _nit(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _phone(v)


class SupplierOut(BaseModel):
    id: UUID
    name: str
    nit: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    payment_terms_days: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SupplierList(BaseModel):
    items: List[SupplierOut]
    total: int
    limit: int
    offset: int
