from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.modules.payables.models import (
    PayableStatus, PaymentStatus, PaymentMethod, InstallmentStatus,
    BankFileFormat, BankFileStatus, BankFileItemStatus,
)


class EstadoFiltro(str, Enum):
    """Filtro de estado del listado de cuentas por pagar"""
    TODOS = "todos"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class VencimientoFiltro(str, Enum):
    VENCIDAS = "vencidas"
    PROXIMAS = "proximas"
    FUTURAS = "futuras"


# ===== CUENTAS =====

class AccountPayableOut(BaseModel):
    id: UUID
    supplier_id: UUID
    supplier_name: Optional[str] = None
    supplier_nit: Optional[str] = None
    invoice_id: Optional[UUID] = None
    invoice_number: Optional[str] = None
    branch_id: Optional[UUID] = None
    amount: Decimal
    balance: Decimal
    paid_amount: Decimal
    issue_date: date
    due_date: date
    currency: str
    status: PayableStatus
    days_overdue: int
    is_overdue: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class AccountPayableList(BaseModel):
    items: List[AccountPayableOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class PayablesSummary(BaseModel):
    total_pending: Decimal
    total_partial: Decimal
    total_overdue: Decimal
    overdue_count: int
    total_amount: Decimal
    suppliers_count: int
    next_due_amount: Decimal
    next_due_date: Optional[date] = None


class AgingBucket(BaseModel):
    total: Decimal
    count: int


class AgingReport(BaseModel):
    as_of: date
    buckets: dict[str, AgingBucket]
    total: Decimal


class AgingInfo(BaseModel):
    label: str
    severity: str


class AccountActions(BaseModel):
    can_register_payment: bool
    can_schedule_payment: bool
    can_mark_as_paid: bool
    can_edit: bool
    can_create_installments: bool


# ===== PAGOS =====

class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.TRANSFER
    reference: Optional[str] = Field(None, max_length=150)
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class MarkAsPaid(BaseModel):
    method: PaymentMethod = PaymentMethod.TRANSFER
    reference: Optional[str] = Field(None, max_length=150)


class PaymentSchedule(BaseModel):
    amount: Decimal = Field(..., gt=0)
    scheduled_date: date
    method: PaymentMethod = PaymentMethod.TRANSFER
    reference: Optional[str] = Field(None, max_length=150)
    notes: Optional[str] = None


class PaymentApprove(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class PaymentReject(BaseModel):
    comments: str = Field(..., min_length=1, max_length=1000)

    @field_validator("comments")
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("El comentario de rechazo es obligatorio")
        return v.strip()


class PaymentOut(BaseModel):
    id: UUID
    source: str
    source_id: UUID
    installment_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    method: PaymentMethod
    amount: Decimal
    currency: str
    reference: Optional[str] = None
    status: PaymentStatus
    payment_date: Optional[date] = None
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None
    review_comments: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduledPaymentOut(PaymentOut):
    supplier_name: Optional[str] = None
    invoice_number: Optional[str] = None
    account_balance: Optional[Decimal] = None


class PaymentResult(BaseModel):
    payment: PaymentOut
    account: AccountPayableOut


class InstallmentOut(BaseModel):
    id: UUID
    account_payable_id: UUID
    installment_number: int
    due_date: date
    principal: Decimal
    interest: Decimal
    amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: InstallmentStatus
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class AccountPayableDetail(AccountPayableOut):
    aging: AgingInfo
    actions: AccountActions
    payments: List[PaymentOut] = []
    installments: List[InstallmentOut] = []


class ReconcileResult(BaseModel):
    account_id: UUID
    previous_balance: Decimal
    balance: Decimal
    previous_status: PayableStatus
    status: PayableStatus
    paid_total: Decimal
    changed: bool


class SupplierBalance(BaseModel):
    supplier_id: UUID
    supplier_name: str
    supplier_nit: Optional[str] = None
    accounts_count: int
    total_balance: Decimal


# ===== CUOTAS =====

class InstallmentPlanCreate(BaseModel):
    number_of_installments: int = Field(..., ge=1, le=60)
    start_date: date
    interest_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Interés por cuota (%)")


class InstallmentUpdate(BaseModel):
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InstallmentPayment(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.TRANSFER
    reference: Optional[str] = Field(None, max_length=150)


class InstallmentPaymentResult(BaseModel):
    installment: InstallmentOut
    payment: PaymentOut
    account: AccountPayableOut


# ===== BANCA EN LÍNEA =====

class BankFileExportRequest(BaseModel):
    account_ids: List[UUID] = Field(..., min_length=1)
    file_format: BankFileFormat = BankFileFormat.GENERIC_CSV


class BankFileItemOut(BaseModel):
    id: UUID
    account_payable_id: UUID
    supplier_nit: Optional[str] = None
    supplier_name: str
    amount: Decimal
    reference: Optional[str] = None
    status: BankFileItemStatus
    payment_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class BankFileOut(BaseModel):
    id: UUID
    file_name: str
    file_format: BankFileFormat
    records_count: int
    processed_count: int
    total_amount: Decimal
    status: BankFileStatus
    created_at: Optional[datetime] = None
    items: List[BankFileItemOut] = []

    class Config:
        from_attributes = True


class BankFileExportOut(BankFileOut):
    content: str


class BankConfirmationRecord(BaseModel):
    reference: str
    description: str
    amount: Decimal


class BankReconciliationResult(BaseModel):
    file_id: UUID
    status: BankFileStatus
    processed_count: int
    records_count: int
    matched: List[BankFileItemOut]
    unmatched: List[BankConfirmationRecord]
