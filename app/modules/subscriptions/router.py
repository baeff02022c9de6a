"""
API Router for subscription management.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext

from . import crud, schemas
from .billing import BillingWebhookService
from .models import PlanType

router = APIRouter(
    prefix="/subscriptions",
    tags=["Subscriptions"],
    responses={404: {"description": "Not found"}}
)


# ===== PLAN ENDPOINTS =====

@router.get("/plans", response_model=List[schemas.PlanOut])
def get_plans(
    skip: int = Query(0, ge=0, description="Número de registros a omitir"),
    limit: int = Query(20, ge=1, le=100, description="Número máximo de registros"),
    plan_type: Optional[PlanType] = Query(None, description="Filtrar por tipo de plan"),
    db: Session = Depends(get_db)
):
    """
    Obtener lista de planes disponibles.

    Este endpoint es público y no requiere autenticación.
    """
    return crud.get_plans(db=db, skip=skip, limit=limit, plan_type=plan_type, active_only=True)


@router.get("/plans/{plan_id}", response_model=schemas.PlanOut)
def get_plan(plan_id: UUID, db: Session = Depends(get_db)):
    plan = crud.get_plan(db=db, plan_id=plan_id)
    if not plan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan no encontrado")
    return plan


# ===== SUBSCRIPTION ENDPOINTS =====

@router.get("/current", response_model=schemas.SubscriptionDetail)
def get_current_subscription(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Suscripción vigente de la organización con su plan."""
    subscription = crud.get_current_subscription(db, auth_context.tenant_id)
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="La organización no tiene suscripción")
    return subscription


@router.get("/", response_model=List[schemas.SubscriptionOut])
def get_subscriptions(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin()),
    db: Session = Depends(get_db)
):
    """Historial de suscripciones."""
    return crud.get_subscriptions(db, auth_context.tenant_id, skip, limit)


@router.get("/stats", response_model=schemas.SubscriptionStats)
def get_subscription_stats(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    db: Session = Depends(get_db)
):
    """Plan, estado, días restantes y uso frente a los límites del plan."""
    return crud.get_subscription_stats(db, auth_context.tenant_id)


@router.post("/change-plan", response_model=schemas.SubscriptionDetail)
def change_plan(
    payload: schemas.SubscriptionChangePlan,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner"])),
    db: Session = Depends(get_db)
):
    return crud.change_plan(db, auth_context.tenant_id, payload.plan_code, payload.billing_cycle)


@router.post("/cancel", response_model=schemas.SubscriptionDetail)
def cancel_subscription(
    payload: schemas.SubscriptionCancel,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner"])),
    db: Session = Depends(get_db)
):
    """
    Cancelar la suscripción actual.

    Sin **cancel_immediately** el acceso se mantiene hasta el fin del período.
    """
    return crud.cancel_subscription(db, auth_context.tenant_id, payload.reason, payload.cancel_immediately)


@router.post("/reactivate", response_model=schemas.SubscriptionDetail)
def reactivate_subscription(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner"])),
    db: Session = Depends(get_db)
):
    return crud.reactivate_subscription(db, auth_context.tenant_id)


# ===== WEBHOOKS =====

@router.post("/webhooks/billing", response_model=schemas.WebhookAck)
async def billing_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db)
):
    """
    Webhook del proveedor de pagos. Público; se autentica con la firma HMAC.
    """
    raw_body = await request.body()
    return BillingWebhookService(db).handle(raw_body, stripe_signature)
