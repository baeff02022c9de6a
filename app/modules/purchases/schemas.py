from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.modules.purchases.models import PurchaseInvoiceStatus


class PurchaseInvoiceLineCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Porcentaje de impuesto (IVA)")


class PurchaseInvoiceLineOut(BaseModel):
    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    line_subtotal: Decimal
    line_tax: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class PurchaseInvoiceCreate(BaseModel):
    supplier_id: UUID
    branch_id: Optional[UUID] = None
    number_ext: str = Field(..., min_length=1, max_length=100, description="Número de la factura del proveedor")
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = Field(None, description="Si se omite se usa el plazo del proveedor")
    currency: str = Field("COP", min_length=3, max_length=3)
    notes: Optional[str] = None
    status: PurchaseInvoiceStatus = Field(
        PurchaseInvoiceStatus.DRAFT,
        description="draft u open (open contabiliza de inmediato)"
    )
    lines: List[PurchaseInvoiceLineCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates_and_status(self):
        if self.due_date and self.due_date < self.issue_date:
            raise ValueError("La fecha de vencimiento no puede ser anterior a la fecha de emisión")
        if self.status not in (PurchaseInvoiceStatus.DRAFT, PurchaseInvoiceStatus.OPEN):
            raise ValueError("Una factura solo puede crearse como draft u open")
        return self


class PurchaseInvoiceUpdate(BaseModel):
    supplier_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    number_ext: Optional[str] = Field(None, min_length=1, max_length=100)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    lines: Optional[List[PurchaseInvoiceLineCreate]] = Field(None, min_length=1)


class PurchaseInvoiceVoid(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class PurchaseInvoiceOut(BaseModel):
    id: UUID
    supplier_id: UUID
    branch_id: Optional[UUID] = None
    number_ext: str
    issue_date: date
    due_date: date
    status: PurchaseInvoiceStatus
    currency: str
    notes: Optional[str] = None
    subtotal: Decimal
    tax_total: Decimal
    total: Decimal
    balance: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PurchaseInvoiceDetail(PurchaseInvoiceOut):
    lines: List[PurchaseInvoiceLineOut] = []
    account_payable_id: Optional[UUID] = None


class PurchaseInvoiceList(BaseModel):
    items: List[PurchaseInvoiceOut]
    total: int
    limit: int
    offset: int
