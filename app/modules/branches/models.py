from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from sqlalchemy.orm import relationship
from app.common.mixins import TenantMixin, TimestampMixin

class Branch(Base, TenantMixin, TimestampMixin):
    __tablename__ = "branches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True)
    email = Column(String, nullable=True)
    is_main = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    company = relationship("Company", back_populates="branches")

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_branch_tenant_name"),
        UniqueConstraint("tenant_id", "code", name="uq_branch_tenant_code"),
    )
