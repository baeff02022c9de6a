from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.common.validators import validate_colombia_phone, format_colombia_phone


def _phone(v):
    if v is None or v.strip() == "":
        return None
    if not validate_colombia_phone(v):
        raise ValueError(
            'Teléfono inválido. Use formato colombiano: '
            '+573XXXXXXXXX (móvil) o +571XXXXXXX (fijo)'
        )
    return format_colombia_phone(v)


class BranchCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, description="Nombre de la sede")
    code: Optional[str] = Field(None, max_length=20, description="Código interno de la sede")
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, description="Teléfono (formato colombiano)")
    email: Optional[EmailStr] = None
    is_main: bool = Field(default=False, description="Si es la sede principal")

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        return _phone(v)

class BranchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = None
    email: Optional[EmailStr] = None
    is_main: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        return _phone(v)

class BranchOut(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    is_main: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BranchList(BaseModel):
    items: list[BranchOut]
    total: int
    limit: int
    offset: int
