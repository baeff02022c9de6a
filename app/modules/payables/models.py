"""
Modelos de cuentas por pagar.

- AccountPayable: obligación con un proveedor (normalmente originada en una
  factura de compra). balance = amount - suma de pagos completados.
- Payment: registro genérico de pago (source/source_id). Los pagos programados
  quedan en pending hasta ser aprobados o rechazados.
- APInstallment: plan de cuotas sobre el saldo de una cuenta.
- BankFile / BankFileItem: archivos de pago masivo para banca en línea y su
  conciliación con el archivo de confirmación del banco.
"""
import enum
from datetime import date
from uuid import uuid4

from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey, Numeric, Text, Integer, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class PayableStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"        # Programado, sin aplicar
    COMPLETED = "completed"    # Aplicado al saldo
    CANCELLED = "cancelled"    # Rechazado o anulado


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    CHECK = "check"
    OTHER = "other"


class PaymentSource(str, enum.Enum):
    ACCOUNT_PAYABLE = "account_payable"


class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class BankFileFormat(str, enum.Enum):
    BANCOLOMBIA_TXT = "bancolombia_txt"
    DAVIVIENDA_CSV = "davivienda_csv"
    BBVA_CSV = "bbva_csv"
    GENERIC_CSV = "generic_csv"


class BankFileStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PROCESSED = "processed"


class BankFileItemStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    UNMATCHED = "unmatched"


# ===== MODELOS =====

class AccountPayable(Base, TenantMixin, TimestampMixin):
    __tablename__ = "accounts_payable"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=False, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("purchase_invoices.id"), nullable=True, unique=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    balance = Column(Numeric(15, 2), nullable=False)
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="COP")
    status = Column(String(20), nullable=False, default=PayableStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(UUID(as_uuid=True), nullable=True)

    supplier = relationship("Supplier", back_populates="accounts_payable")
    invoice = relationship("PurchaseInvoice", back_populates="account_payable")
    installments = relationship(
        "APInstallment",
        back_populates="account_payable",
        cascade="all, delete-orphan",
        order_by="APInstallment.installment_number"
    )


class Payment(Base, TenantMixin, TimestampMixin):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    source = Column(String(30), nullable=False, default=PaymentSource.ACCOUNT_PAYABLE.value, index=True)
    source_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    installment_id = Column(UUID(as_uuid=True), ForeignKey("ap_installments.id"), nullable=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=True)

    method = Column(String(20), nullable=False, default=PaymentMethod.TRANSFER.value)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    reference = Column(String(150), nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED.value, index=True)

    payment_date = Column(Date, nullable=True)
    scheduled_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    review_comments = Column(Text, nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(UUID(as_uuid=True), nullable=True)


class APInstallment(Base, TenantMixin, TimestampMixin):
    __tablename__ = "ap_installments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_payable_id = Column(UUID(as_uuid=True), ForeignKey("accounts_payable.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)

    principal = Column(Numeric(15, 2), nullable=False)
    interest = Column(Numeric(15, 2), nullable=False, default=0)
    amount = Column(Numeric(15, 2), nullable=False)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    balance = Column(Numeric(15, 2), nullable=False)
    status = Column(String(20), nullable=False, default=InstallmentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    account_payable = relationship("AccountPayable", back_populates="installments")

    __table_args__ = (
        UniqueConstraint("account_payable_id", "installment_number", name="uq_installment_number"),
    )


class BankFile(Base, TenantMixin, TimestampMixin):
    __tablename__ = "bank_files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    file_name = Column(String(100), nullable=False)
    file_format = Column(String(30), nullable=False)
    content = Column(Text, nullable=False)
    records_count = Column(Integer, nullable=False, default=0)
    processed_count = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=BankFileStatus.PENDING.value)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    items = relationship("BankFileItem", back_populates="bank_file", cascade="all, delete-orphan")


class BankFileItem(Base, TimestampMixin):
    __tablename__ = "bank_file_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    bank_file_id = Column(UUID(as_uuid=True), ForeignKey("bank_files.id"), nullable=False, index=True)
    account_payable_id = Column(UUID(as_uuid=True), ForeignKey("accounts_payable.id"), nullable=False)
    supplier_nit = Column(String(20), nullable=True)
    supplier_name = Column(String(200), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    reference = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=BankFileItemStatus.PENDING.value)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    bank_file = relationship("BankFile", back_populates="items")
    account_payable = relationship("AccountPayable")
