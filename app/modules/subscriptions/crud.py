"""
CRUD operations for subscription management.
"""
import logging
from typing import List, Optional
from uuid import UUID
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy import asc, desc
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.common.dates import utcnow, as_utc
from .models import Plan, Subscription, SubscriptionStatus, PlanType, BillingCycle

logger = logging.getLogger(__name__)


# ===== PLAN CRUD =====

def get_plan(db: Session, plan_id: UUID) -> Optional[Plan]:
    """Obtener un plan activo por ID."""
    return db.query(Plan).filter(Plan.id == plan_id, Plan.is_active == True).first()


def get_plan_by_code(db: Session, code: str) -> Optional[Plan]:
    """Obtener un plan activo por código (FREE, BASIC, ...)."""
    return db.query(Plan).filter(Plan.code == code.upper(), Plan.is_active == True).first()


def get_plans(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    plan_type: Optional[PlanType] = None,
    active_only: bool = True
) -> List[Plan]:
    query = db.query(Plan)
    if active_only:
        query = query.filter(Plan.is_active == True)
    if plan_type:
        query = query.filter(Plan.type == plan_type.value)
    return query.order_by(asc(Plan.sort_order), asc(Plan.name)).offset(skip).limit(limit).all()


# ===== SUBSCRIPTION CRUD =====

def get_current_subscription(db: Session, tenant_id: UUID) -> Optional[Subscription]:
    """Suscripción vigente (is_current) de la organización."""
    return (
        db.query(Subscription)
        .options(joinedload(Subscription.plan))
        .filter(Subscription.tenant_id == tenant_id, Subscription.is_current == True)
        .first()
    )


def get_subscriptions(db: Session, tenant_id: UUID, skip: int = 0, limit: int = 20) -> List[Subscription]:
    """Historial de suscripciones de la organización."""
    return (
        db.query(Subscription)
        .options(joinedload(Subscription.plan))
        .filter(Subscription.tenant_id == tenant_id)
        .order_by(desc(Subscription.start_date))
        .offset(skip)
        .limit(limit)
        .all()
    )


def create_subscription(
    db: Session,
    tenant_id: UUID,
    plan: Plan,
    billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    with_trial: bool = True,
    commit: bool = True,
) -> Subscription:
    """
    Crea la suscripción y la marca como actual.

    - Planes pagos arrancan con TRIAL_DAYS de prueba (si with_trial).
    - end_date: +30 o +365 días según el ciclo; el plan gratuito no vence.
    - next_billing_date: fin del trial si aplica, si no end_date.
    Con commit=False solo hace flush (para usarlo dentro de otra transacción).
    """
    _deactivate_current_subscription(db, tenant_id)

    now = utcnow()
    billing_cycle = BillingCycle(billing_cycle)
    is_free = plan.type == PlanType.FREE.value

    trial_end_date = None
    if not is_free and with_trial and settings.TRIAL_DAYS > 0:
        trial_end_date = now + timedelta(days=settings.TRIAL_DAYS)

    if is_free:
        end_date = None
    elif billing_cycle == BillingCycle.YEARLY:
        end_date = now + timedelta(days=365)
    else:
        end_date = now + timedelta(days=30)

    amount = plan.yearly_price if billing_cycle == BillingCycle.YEARLY else plan.monthly_price

    next_billing_date = None
    if not is_free:
        next_billing_date = trial_end_date or end_date

    subscription = Subscription(
        tenant_id=tenant_id,
        plan_id=plan.id,
        status=(SubscriptionStatus.TRIAL if trial_end_date else SubscriptionStatus.ACTIVE).value,
        billing_cycle=billing_cycle.value,
        start_date=now,
        end_date=end_date,
        trial_end_date=trial_end_date,
        amount=amount,
        currency=settings.DEFAULT_CURRENCY,
        next_billing_date=next_billing_date,
        auto_renew=True,
        is_current=True,
    )
    db.add(subscription)

    if commit:
        db.commit()
        db.refresh(subscription)
    else:
        db.flush()

    logger.info(f"Subscription created for tenant {tenant_id}: plan={plan.code} status={subscription.status}")
    return subscription


def change_plan(db: Session, tenant_id: UUID, plan_code: str, billing_cycle: BillingCycle) -> Subscription:
    """Cambia de plan creando una nueva suscripción actual (sin nuevo trial)."""
    plan = get_plan_by_code(db, plan_code)
    if not plan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan no encontrado")

    current = get_current_subscription(db, tenant_id)
    if current and current.plan_id == plan.id and current.billing_cycle == BillingCycle(billing_cycle).value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La organización ya tiene este plan")

    return create_subscription(db, tenant_id, plan, billing_cycle, with_trial=False)


def cancel_subscription(db: Session, tenant_id: UUID, reason: str, cancel_immediately: bool = False) -> Subscription:
    """Cancelar suscripción actual. Sin cancel_immediately se conserva hasta end_date."""
    subscription = get_current_subscription(db, tenant_id)
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No hay suscripción activa")
    if subscription.status == SubscriptionStatus.CANCELED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La suscripción ya está cancelada")

    now = utcnow()
    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.canceled_at = now
    subscription.canceled_reason = reason
    subscription.auto_renew = False
    subscription.next_billing_date = None
    subscription.cancel_at_period_end = not cancel_immediately
    if cancel_immediately:
        subscription.end_date = now

    db.commit()
    db.refresh(subscription)
    logger.info(f"Subscription {subscription.id} canceled (immediately={cancel_immediately})")
    return subscription


def reactivate_subscription(db: Session, tenant_id: UUID) -> Subscription:
    """Reactivar la suscripción cancelada si aún no terminó su período."""
    subscription = get_current_subscription(db, tenant_id)
    if not subscription or subscription.status != SubscriptionStatus.CANCELED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No hay una suscripción cancelada para reactivar")

    end_date = as_utc(subscription.end_date)
    if end_date and end_date <= utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El período de la suscripción ya terminó")

    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.canceled_at = None
    subscription.canceled_reason = None
    subscription.cancel_at_period_end = False
    subscription.auto_renew = True
    subscription.next_billing_date = subscription.end_date

    db.commit()
    db.refresh(subscription)
    return subscription


# ===== LIMITS & STATS =====

def _usage(db: Session, tenant_id: UUID) -> dict:
    from app.modules.auth.models import UserCompany
    from app.modules.branches.models import Branch

    users = db.query(UserCompany).filter(
        UserCompany.company_id == tenant_id, UserCompany.is_active == True
    ).count()
    branches = db.query(Branch).filter(
        Branch.tenant_id == tenant_id, Branch.is_active == True
    ).count()
    return {"users": users, "branches": branches}


LIMIT_FIELDS = {"users": "max_users", "branches": "max_branches"}


def check_plan_limit(db: Session, tenant_id: UUID, resource: str, pending: int = 0) -> None:
    """
    Valida que la organización pueda crear un recurso más (users | branches).
    pending suma recursos aún no materializados (invitaciones pendientes).
    """
    subscription = get_current_subscription(db, tenant_id)
    if not subscription:
        return

    limit = getattr(subscription.plan, LIMIT_FIELDS[resource])
    if limit is None:
        return

    used = _usage(db, tenant_id)[resource] + pending
    if used >= limit:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Límite del plan alcanzado para {resource} ({limit}). Actualiza tu plan para continuar"
        )


def get_subscription_stats(db: Session, tenant_id: UUID) -> dict:
    """Obtener estadísticas de suscripción."""
    current_sub = get_current_subscription(db, tenant_id)

    if not current_sub:
        return {
            "has_subscription": False,
            "plan_name": "Sin Plan",
            "status": "no_subscription",
            "is_trial": False,
            "days_remaining": 0,
            "usage": _usage(db, tenant_id),
            "limits": {},
        }

    now = utcnow()
    trial_end = as_utc(current_sub.trial_end_date)
    end_date = as_utc(current_sub.end_date)
    is_trial = bool(trial_end and trial_end > now)

    if end_date:
        delta = (trial_end if is_trial else end_date) - now
        days_remaining = max(0, delta.days)
    else:
        days_remaining = -1

    plan = current_sub.plan
    return {
        "has_subscription": True,
        "plan_name": plan.name,
        "plan_code": plan.code,
        "status": current_sub.status,
        "is_trial": is_trial,
        "days_remaining": days_remaining,
        "billing_cycle": current_sub.billing_cycle,
        "usage": _usage(db, tenant_id),
        "limits": {
            "users": plan.max_users,
            "branches": plan.max_branches,
            "invoices_month": plan.max_invoices_month,
        },
    }


# ===== UTILITY FUNCTIONS =====

def _deactivate_current_subscription(db: Session, tenant_id: UUID):
    current = db.query(Subscription).filter(
        Subscription.tenant_id == tenant_id,
        Subscription.is_current == True
    ).all()
    for subscription in current:
        subscription.is_current = False
    db.flush()
