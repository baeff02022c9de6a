from app.database.database import Base
from app.common.mixins import TimestampMixin
from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
import uuid

class Company(Base, TimestampMixin):
    """Organización (tenant). Su id es el tenant_id del resto de modelos."""
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False, index=True)
    nit = Column(String(20), unique=True, nullable=False)
    legal_name = Column(String(200), nullable=True)
    email = Column(String, nullable=True)
    phone_number = Column(String(20), nullable=True)
    address = Column(String, nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(2), nullable=False, default="CO")
    subdomain = Column(String(63), unique=True, nullable=True)
    primary_color = Column(String(7), nullable=True)
    is_active = Column(Boolean, default=True)

    user_companies = relationship("UserCompany", back_populates="company")
    branches = relationship("Branch", back_populates="company")
