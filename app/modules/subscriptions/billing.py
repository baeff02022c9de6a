"""
Webhook del proveedor de pagos (formato de firma tipo Stripe).

Header: Stripe-Signature: t=<timestamp>,v1=<hex>
Firma:  HMAC-SHA256(secret, f"{t}.{raw_body}")
"""
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.common.dates import utcnow
from . import crud
from .models import BillingEvent, BillingCycle, Plan, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

PROVIDER_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.SUSPENDED,
    "unpaid": SubscriptionStatus.SUSPENDED,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}

EVENT_TRIAL_WILL_END = "suscripcion.prueba_por_vencer"
EVENT_PAYMENT_FAILED = "suscripcion.pago_fallido"


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def parse_signature_header(header: Optional[str]) -> Dict[str, list]:
    parts: Dict[str, list] = {}
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts.setdefault(key, []).append(value)
    return parts


def verify_signature(
    raw_body: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[int] = None
) -> bool:
    parts = parse_signature_header(header)
    timestamps = parts.get("t") or []
    signatures = parts.get("v1") or []
    if not timestamps or not signatures:
        return False
    timestamp = timestamps[0]
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    now = int(time.time()) if now is None else now
    if tolerance and abs(now - ts) > tolerance:
        return False
    expected = compute_signature(secret, timestamp, raw_body)
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)


def _from_epoch(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value)) if value else None
    except ValueError:
        return None


class BillingWebhookService:
    """Procesa eventos del proveedor de pagos de forma idempotente"""

    def __init__(self, db: Session):
        self.db = db

    # ----- helpers -----

    def _find_subscription(self, provider_id: Optional[str], tenant_id: Optional[UUID]) -> Optional[Subscription]:
        if provider_id:
            subscription = self.db.query(Subscription).filter(
                Subscription.provider_subscription_id == provider_id,
                Subscription.is_current == True
            ).first()
            if subscription:
                return subscription
        if tenant_id:
            return crud.get_current_subscription(self.db, tenant_id)
        return None

    def _plan_for(self, metadata: dict, price_id: Optional[str]) -> Optional[Plan]:
        if metadata.get("planCode"):
            plan = crud.get_plan_by_code(self.db, metadata["planCode"])
            if plan:
                return plan
        if price_id:
            return self.db.query(Plan).filter(
                (Plan.provider_monthly_price_id == price_id) | (Plan.provider_yearly_price_id == price_id)
            ).first()
        return None

    @staticmethod
    def _price_id(obj: dict) -> Optional[str]:
        items = ((obj.get("items") or {}).get("data")) or []
        if items:
            return (items[0].get("price") or {}).get("id")
        return None

    def _emit(self, tenant_id: UUID, event_code: str, payload: dict):
        from app.modules.notifications.dispatcher import NotificationDispatcher
        try:
            NotificationDispatcher(self.db).emit(tenant_id, event_code, payload)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Notification dispatch failed for {event_code}: {str(e)}")

    @staticmethod
    def _event_payload(subscription: Subscription) -> dict:
        return {
            "subscription_id": str(subscription.id),
            "plan_code": subscription.plan.code if subscription.plan else None,
            "plan_name": subscription.plan.name if subscription.plan else None,
            "status": subscription.status,
            "trial_end_date": subscription.trial_end_date.date().isoformat() if subscription.trial_end_date else None,
        }

    # ----- handlers -----

    def _checkout_completed(self, obj: dict):
        if obj.get("mode") != "subscription":
            return "ignored", None
        metadata = obj.get("metadata") or {}
        tenant_id = _uuid(metadata.get("organizationId"))
        if not tenant_id:
            logger.warning("checkout.session.completed without organizationId metadata")
            return "ignored", None

        plan = self._plan_for(metadata, None)
        current = crud.get_current_subscription(self.db, tenant_id)
        if plan and (current is None or current.plan_id != plan.id):
            cycle = BillingCycle.YEARLY if metadata.get("billingCycle") == "yearly" else BillingCycle.MONTHLY
            current = crud.create_subscription(self.db, tenant_id, plan, cycle, with_trial=False, commit=False)
        if current is None:
            return "ignored", tenant_id

        current.status = SubscriptionStatus.ACTIVE.value
        current.provider_subscription_id = obj.get("subscription") or current.provider_subscription_id
        current.provider_customer_id = obj.get("customer") or current.provider_customer_id
        return "activated", tenant_id

    def _subscription_upsert(self, obj: dict):
        metadata = obj.get("metadata") or {}
        tenant_id = _uuid(metadata.get("organizationId"))
        subscription = self._find_subscription(obj.get("id"), tenant_id)
        plan = self._plan_for(metadata, self._price_id(obj))

        if subscription is None:
            if not (tenant_id and plan):
                logger.warning(f"Subscription {obj.get('id')} cannot be matched to an organization")
                return "ignored", tenant_id
            subscription = crud.create_subscription(self.db, tenant_id, plan, with_trial=False, commit=False)
        elif plan and subscription.plan_id != plan.id:
            subscription.plan_id = plan.id

        mapped = PROVIDER_STATUS_MAP.get(obj.get("status"))
        if mapped:
            subscription.status = mapped.value
        subscription.provider_subscription_id = obj.get("id") or subscription.provider_subscription_id
        subscription.provider_customer_id = obj.get("customer") or subscription.provider_customer_id
        subscription.cancel_at_period_end = bool(obj.get("cancel_at_period_end"))
        subscription.auto_renew = not subscription.cancel_at_period_end

        period_start = _from_epoch(obj.get("current_period_start"))
        period_end = _from_epoch(obj.get("current_period_end"))
        trial_end = _from_epoch(obj.get("trial_end"))
        if period_start:
            subscription.start_date = period_start
        if period_end:
            subscription.end_date = period_end
            subscription.next_billing_date = None if subscription.cancel_at_period_end else period_end
        if trial_end:
            subscription.trial_end_date = trial_end
        return "updated", subscription.tenant_id

    def _subscription_deleted(self, obj: dict):
        metadata = obj.get("metadata") or {}
        subscription = self._find_subscription(obj.get("id"), _uuid(metadata.get("organizationId")))
        if subscription is None:
            return "ignored", None
        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.canceled_at = _from_epoch(obj.get("canceled_at")) or utcnow()
        subscription.auto_renew = False
        subscription.next_billing_date = None
        return "canceled", subscription.tenant_id

    def _trial_will_end(self, obj: dict):
        metadata = obj.get("metadata") or {}
        subscription = self._find_subscription(obj.get("id"), _uuid(metadata.get("organizationId")))
        if subscription is None:
            return "ignored", None
        return "notified", subscription.tenant_id

    def _invoice_succeeded(self, obj: dict):
        subscription = self._find_subscription(obj.get("subscription"), None)
        if subscription is None:
            return "ignored", None
        subscription.status = SubscriptionStatus.ACTIVE.value
        lines = ((obj.get("lines") or {}).get("data")) or []
        period_end = _from_epoch(((lines[0].get("period") or {}).get("end")) if lines else obj.get("period_end"))
        if period_end:
            subscription.end_date = period_end
            subscription.next_billing_date = period_end
        return "activated", subscription.tenant_id

    def _invoice_failed(self, obj: dict):
        subscription = self._find_subscription(obj.get("subscription"), None)
        if subscription is None:
            return "ignored", None
        subscription.status = SubscriptionStatus.SUSPENDED.value
        return "suspended", subscription.tenant_id

    HANDLERS = {
        "checkout.session.completed": "_checkout_completed",
        "customer.subscription.created": "_subscription_upsert",
        "customer.subscription.updated": "_subscription_upsert",
        "customer.subscription.deleted": "_subscription_deleted",
        "customer.subscription.trial_will_end": "_trial_will_end",
        "invoice.payment_succeeded": "_invoice_succeeded",
        "invoice.payment_failed": "_invoice_failed",
    }

    # ----- entrada -----

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> dict:
        if not verify_signature(
            raw_body, signature_header,
            settings.BILLING_WEBHOOK_SECRET,
            settings.BILLING_WEBHOOK_TOLERANCE_SECONDS
        ):
            logger.warning("Billing webhook rejected: invalid signature")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Firma del webhook inválida")

        try:
            event: Dict[str, Any] = json.loads(raw_body.decode("utf-8"))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload inválido")

        event_id = event.get("id")
        event_type = event.get("type", "")
        if not event_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Evento sin id")

        processed = self.db.query(BillingEvent).filter(BillingEvent.provider_event_id == event_id).first()
        if processed:
            logger.info(f"Billing event {event_id} already processed ({processed.result})")
            return {"received": True, "event_id": event_id, "result": "duplicate"}

        obj = ((event.get("data") or {}).get("object")) or {}
        handler = self.HANDLERS.get(event_type)
        try:
            if handler is None:
                logger.info(f"Billing event {event_type} ignored")
                result, tenant_id = "ignored", None
            else:
                result, tenant_id = getattr(self, handler)(obj)

            self.db.add(BillingEvent(
                provider_event_id=event_id,
                event_type=event_type,
                tenant_id=tenant_id,
                result=result,
                payload=event
            ))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return {"received": True, "event_id": event_id, "result": "duplicate"}
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error processing billing event {event_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error procesando webhook: {str(e)}"
            )

        logger.info(f"Billing event {event_type} ({event_id}) processed: {result}")

        if tenant_id and result != "ignored":
            subscription = crud.get_current_subscription(self.db, tenant_id)
            if subscription is not None:
                if event_type == "customer.subscription.trial_will_end":
                    self._emit(tenant_id, EVENT_TRIAL_WILL_END, self._event_payload(subscription))
                elif event_type == "invoice.payment_failed":
                    payload = self._event_payload(subscription)
                    payload["amount_due"] = float(obj.get("amount_due") or 0) / 100
                    self._emit(tenant_id, EVENT_PAYMENT_FAILED, payload)

        return {"received": True, "event_id": event_id, "result": result}
