"""
Esquemas Pydantic de planes y suscripciones.
"""
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from .models import SubscriptionStatus, PlanType, BillingCycle


# ===== PLAN SCHEMAS =====

class PlanOut(BaseModel):
    """Plan disponible con sus límites (null = ilimitado)."""
    id: UUID
    name: str
    code: str
    type: PlanType
    description: Optional[str] = None
    monthly_price: Decimal
    yearly_price: Decimal
    max_users: Optional[int] = None
    max_branches: Optional[int] = None
    max_invoices_month: Optional[int] = None
    has_advanced_reports: bool = False
    has_api_access: bool = False
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0

    class Config:
        from_attributes = True


# ===== SUBSCRIPTION SCHEMAS =====

class SubscriptionChangePlan(BaseModel):
    plan_code: str = Field(..., min_length=1, max_length=50)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class SubscriptionCancel(BaseModel):
    """Schema para cancelar suscripción."""
    reason: str = Field(..., min_length=1, max_length=500, description="Motivo de cancelación")
    cancel_immediately: bool = Field(default=False, description="Cancelar inmediatamente o al final del período")


class SubscriptionOut(BaseModel):
    id: UUID
    plan_id: UUID
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    start_date: datetime
    end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    canceled_reason: Optional[str] = None
    amount: Decimal
    currency: str
    next_billing_date: Optional[datetime] = None
    auto_renew: bool
    is_current: bool
    cancel_at_period_end: bool = False
    provider_subscription_id: Optional[str] = None

    is_active: bool = Field(..., description="Si la suscripción está activa")
    is_trial: bool = Field(..., description="Si está en período de prueba")
    days_remaining: int = Field(..., description="Días restantes (-1 si es indefinido)")

    class Config:
        from_attributes = True


class SubscriptionDetail(SubscriptionOut):
    plan: PlanOut


class SubscriptionStats(BaseModel):
    has_subscription: bool
    plan_name: str
    plan_code: Optional[str] = None
    status: str
    is_trial: bool
    days_remaining: int
    billing_cycle: Optional[BillingCycle] = None
    usage: dict
    limits: dict


class WebhookAck(BaseModel):
    received: bool = True
    event_id: str
    result: str
