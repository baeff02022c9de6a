from app.database.database import Base
from sqlalchemy import Column, String, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin


class Supplier(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    """
    Proveedores de la organización.

    El NIT es único por empresa cuando se informa (validado en el servicio,
    los proveedores eliminados no cuentan). payment_terms_days define el
    vencimiento por defecto de sus facturas.
    """
    __tablename__ = "suppliers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    nit = Column(String(20), nullable=True, index=True)
    contact_name = Column(String(150), nullable=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    payment_terms_days = Column(Integer, nullable=False, default=30)

    purchase_invoices = relationship("PurchaseInvoice", back_populates="supplier")
    accounts_payable = relationship("AccountPayable", back_populates="supplier")
