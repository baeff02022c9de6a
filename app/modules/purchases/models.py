"""
Modelos de facturas de compra (facturas de proveedor).

Una factura en borrador no genera obligación. Al contabilizarse (draft -> open)
se crea su cuenta por pagar y desde ese momento el saldo de la factura refleja
el saldo de la cuenta.
"""
import enum
from datetime import date
from uuid import uuid4

from sqlalchemy import Column, String, Date, ForeignKey, Numeric, Text, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


class PurchaseInvoiceStatus(str, enum.Enum):
    """Estados de facturas de compra"""
    DRAFT = "draft"       # Borrador, sin cuenta por pagar
    OPEN = "open"         # Contabilizada, pendiente de pago
    PARTIAL = "partial"   # Con abonos
    PAID = "paid"         # Pagada completamente
    VOID = "void"         # Anulada


class PurchaseInvoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "purchase_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branches.id"), nullable=True, index=True)

    number_ext = Column(String(100), nullable=False, index=True)  # Número de factura del proveedor
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=PurchaseInvoiceStatus.DRAFT.value, index=True)
    currency = Column(String(3), nullable=False, default="COP")
    notes = Column(Text, nullable=True)

    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_total = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    supplier = relationship("Supplier", back_populates="purchase_invoices")
    branch = relationship("Branch")
    lines = relationship(
        "PurchaseInvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PurchaseInvoiceLine.position"
    )
    account_payable = relationship("AccountPayable", back_populates="invoice", uselist=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "supplier_id", "number_ext", name="uq_purchase_invoice_supplier_number"),
    )

    @property
    def account_payable_id(self):
        return self.account_payable.id if self.account_payable else None


class PurchaseInvoiceLine(Base, TimestampMixin):
    __tablename__ = "purchase_invoice_lines"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # porcentaje

    line_subtotal = Column(Numeric(15, 2), nullable=False)
    line_tax = Column(Numeric(15, 2), nullable=False)
    line_total = Column(Numeric(15, 2), nullable=False)

    invoice = relationship("PurchaseInvoice", back_populates="lines")
