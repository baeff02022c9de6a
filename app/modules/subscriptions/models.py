"""
Models for subscription management.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Text, Integer, Numeric, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin
from app.common.dates import utcnow, as_utc
import uuid
from enum import Enum


class SubscriptionStatus(str, Enum):
    """Estados de suscripción."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELED = "canceled"
    SUSPENDED = "suspended"
    EXPIRED = "expired"


class PlanType(str, Enum):
    """Tipos de planes."""
    FREE = "free"
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class BillingCycle(str, Enum):
    """Ciclos de facturación."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Plan(Base, TimestampMixin):
    """
    Planes del sistema con sus límites.
    Un límite en null significa ilimitado.
    """
    __tablename__ = "plans"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    type = Column(String(20), nullable=False, default=PlanType.FREE.value)
    description = Column(Text, nullable=True)

    monthly_price = Column(Numeric(10, 2), nullable=False, default=0)
    yearly_price = Column(Numeric(10, 2), nullable=False, default=0)

    max_users = Column(Integer, nullable=True)
    max_branches = Column(Integer, nullable=True)
    max_invoices_month = Column(Integer, nullable=True)

    has_advanced_reports = Column(Boolean, default=False)
    has_api_access = Column(Boolean, default=False)

    # Ids de precio en el proveedor de pagos
    provider_monthly_price_id = Column(String(100), nullable=True)
    provider_yearly_price_id = Column(String(100), nullable=True)

    is_active = Column(Boolean, default=True)
    is_popular = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)

    subscriptions = relationship("Subscription", back_populates="plan")

    def __str__(self):
        return f"{self.name} ({self.code})"


class Subscription(Base, TenantMixin, TimestampMixin):
    """
    Suscripciones de una organización. Se guarda el historial;
    solo una tiene is_current=True por tenant.
    """
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=SubscriptionStatus.TRIAL.value)
    billing_cycle = Column(String(20), nullable=False, default=BillingCycle.MONTHLY.value)

    start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = Column(DateTime(timezone=True), nullable=True)
    trial_end_date = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    canceled_reason = Column(String(500), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="COP")
    next_billing_date = Column(DateTime(timezone=True), nullable=True)

    auto_renew = Column(Boolean, default=True)
    is_current = Column(Boolean, default=True)
    cancel_at_period_end = Column(Boolean, default=False)

    provider_subscription_id = Column(String(100), nullable=True, index=True)
    provider_customer_id = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)

    plan = relationship("Plan", back_populates="subscriptions")

    def __str__(self):
        return f"Subscription {self.plan.name} - {self.status}"

    @property
    def is_active(self) -> bool:
        if self.status not in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value):
            return False
        end_date = as_utc(self.end_date)
        return not (end_date and utcnow() > end_date)

    @property
    def is_trial(self) -> bool:
        return self.status == SubscriptionStatus.TRIAL.value

    @property
    def days_remaining(self) -> int:
        """Días restantes; -1 cuando no tiene fecha de fin."""
        end_date = as_utc(self.end_date)
        if not end_date:
            return -1
        now = utcnow()
        if now > end_date:
            return 0
        return (end_date - now).days


class BillingEvent(Base):
    """Eventos de webhook ya procesados (idempotencia)."""
    __tablename__ = "billing_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_event_id = Column(String(100), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False)
    tenant_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    result = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
