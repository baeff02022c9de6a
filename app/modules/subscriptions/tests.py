"""
Tests para suscripciones, límites de plan y webhook de facturación
"""

import json
import time

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.modules.notifications.models import Notification
from app.modules.notifications.schemas import EventTriggerCreate
from app.modules.notifications.service import EventTriggerService
from app.modules.subscriptions import crud
from app.modules.subscriptions.billing import BillingWebhookService, compute_signature, verify_signature
from app.modules.subscriptions.models import BillingCycle, BillingEvent, Plan, SubscriptionStatus
from app.modules.subscriptions.seed_plans import PLANS_DATA, seed_plans


def signed(event: dict, secret: str = None, timestamp: int = None):
    body = json.dumps(event).encode("utf-8")
    ts = str(timestamp if timestamp is not None else int(time.time()))
    signature = compute_signature(secret or settings.BILLING_WEBHOOK_SECRET, ts, body)
    return body, f"t={ts},v1={signature}"


def subscribe(db: Session, company, code: str, **kwargs):
    return crud.create_subscription(db, company.id, crud.get_plan_by_code(db, code), **kwargs)


class TestPlans:

    def test_seed_is_idempotent(self, db_session: Session):
        assert db_session.query(Plan).count() == len(PLANS_DATA)
        assert seed_plans(db_session) == 0
        assert db_session.query(Plan).count() == len(PLANS_DATA)

    def test_plans_ordered(self, db_session: Session):
        codes = [p.code for p in crud.get_plans(db_session)]
        assert codes == ["FREE", "BASIC", "PROFESSIONAL", "ENTERPRISE"]


class TestSubscriptionLifecycle:

    def test_paid_plan_starts_in_trial(self, db_session: Session, sample_company):
        subscription = subscribe(db_session, sample_company, "BASIC")
        assert subscription.status == SubscriptionStatus.TRIAL.value
        assert subscription.trial_end_date is not None
        assert subscription.next_billing_date == subscription.trial_end_date

    def test_free_plan_never_expires(self, db_session: Session, sample_company):
        subscription = subscribe(db_session, sample_company, "FREE")
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.end_date is None
        assert crud.get_subscription_stats(db_session, sample_company.id)["days_remaining"] == -1

    def test_yearly_amount(self, db_session: Session, sample_company):
        subscription = subscribe(db_session, sample_company, "PROFESSIONAL", billing_cycle=BillingCycle.YEARLY)
        assert subscription.amount == crud.get_plan_by_code(db_session, "PROFESSIONAL").yearly_price

    def test_only_one_current(self, db_session: Session, sample_company):
        first = subscribe(db_session, sample_company, "FREE")
        second = crud.change_plan(db_session, sample_company.id, "BASIC", BillingCycle.MONTHLY)

        db_session.refresh(first)
        assert first.is_current is False
        assert second.is_current is True
        assert second.status == SubscriptionStatus.ACTIVE.value
        assert len(crud.get_subscriptions(db_session, sample_company.id)) == 2

    def test_change_to_same_plan(self, db_session: Session, sample_company):
        subscribe(db_session, sample_company, "BASIC")
        with pytest.raises(HTTPException) as exc:
            crud.change_plan(db_session, sample_company.id, "basic", BillingCycle.MONTHLY)
        assert exc.value.status_code == 400

    def test_cancel_and_reactivate(self, db_session: Session, sample_company):
        subscribe(db_session, sample_company, "BASIC")
        canceled = crud.cancel_subscription(db_session, sample_company.id, "Cierre temporal")
        assert canceled.status == SubscriptionStatus.CANCELED.value
        assert canceled.cancel_at_period_end is True

        with pytest.raises(HTTPException):
            crud.cancel_subscription(db_session, sample_company.id, "Otra vez")

        reactivated = crud.reactivate_subscription(db_session, sample_company.id)
        assert reactivated.status == SubscriptionStatus.ACTIVE.value
        assert reactivated.auto_renew is True

    def test_cannot_reactivate_after_immediate_cancel(self, db_session: Session, sample_company):
        subscribe(db_session, sample_company, "BASIC")
        crud.cancel_subscription(db_session, sample_company.id, "Cierre", cancel_immediately=True)
        with pytest.raises(HTTPException) as exc:
            crud.reactivate_subscription(db_session, sample_company.id)
        assert exc.value.status_code == 400


class TestPlanLimits:

    def test_users_limit_counts_pending(self, db_session: Session, sample_company, sample_user):
        subscribe(db_session, sample_company, "FREE")
        crud.check_plan_limit(db_session, sample_company.id, "users")

        with pytest.raises(HTTPException) as exc:
            crud.check_plan_limit(db_session, sample_company.id, "users", pending=1)
        assert exc.value.status_code == 403

    def test_unlimited_plan(self, db_session: Session, sample_company, sample_user):
        subscribe(db_session, sample_company, "ENTERPRISE")
        crud.check_plan_limit(db_session, sample_company.id, "users", pending=500)

    def test_stats_usage(self, db_session: Session, sample_company, sample_user):
        subscribe(db_session, sample_company, "BASIC")
        stats = crud.get_subscription_stats(db_session, sample_company.id)
        assert stats["is_trial"] is True
        assert stats["usage"] == {"users": 1, "branches": 0}
        assert stats["limits"]["users"] == 5


class TestSignature:

    def test_valid_signature(self):
        body = b'{"id": "evt_1"}'
        signature = compute_signature("secreto", "1700000000", body)
        assert verify_signature(body, f"t=1700000000,v1={signature}", "secreto", now=1700000100)

    def test_tampered_body_or_secret(self):
        body = b'{"id": "evt_1"}'
        header = f"t=1700000000,v1={compute_signature('secreto', '1700000000', body)}"
        assert not verify_signature(b'{"id": "evt_2"}', header, "secreto", now=1700000000)
        assert not verify_signature(body, header, "otro", now=1700000000)

    def test_tolerance(self):
        body = b"{}"
        header = f"t=1700000000,v1={compute_signature('s', '1700000000', body)}"
        assert not verify_signature(body, header, "s", tolerance=300, now=1700000301)
        assert verify_signature(body, header, "s", tolerance=0, now=1800000000)

    def test_malformed_header(self):
        assert not verify_signature(b"{}", None, "s")
        assert not verify_signature(b"{}", "t=abc,v1=00", "s")
        assert not verify_signature(b"{}", "v1=00", "s")


class TestBillingWebhook:

    def test_invalid_signature_rejected(self, db_session: Session):
        body, _ = signed({"id": "evt_1", "type": "invoice.payment_failed"})
        with pytest.raises(HTTPException) as exc:
            BillingWebhookService(db_session).handle(body, "t=1,v1=bad")
        assert exc.value.status_code == 400

    def test_checkout_creates_active_subscription(self, db_session: Session, sample_company):
        body, header = signed({
            "id": "evt_checkout",
            "type": "checkout.session.completed",
            "data": {"object": {
                "mode": "subscription",
                "subscription": "sub_123",
                "customer": "cus_9",
                "metadata": {
                    "organizationId": str(sample_company.id),
                    "planCode": "PROFESSIONAL",
                    "billingCycle": "yearly",
                },
            }},
        })

        result = BillingWebhookService(db_session).handle(body, header)

        subscription = crud.get_current_subscription(db_session, sample_company.id)
        assert result["result"] == "activated"
        assert subscription.plan.code == "PROFESSIONAL"
        assert subscription.billing_cycle == "yearly"
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.provider_subscription_id == "sub_123"
        assert subscription.provider_customer_id == "cus_9"

    def test_duplicate_event_is_idempotent(self, db_session: Session, sample_company):
        subscription = subscribe(db_session, sample_company, "BASIC")
        subscription.provider_subscription_id = "sub_1"
        db_session.commit()
        body, header = signed({
            "id": "evt_dup",
            "type": "invoice.payment_failed",
            "data": {"object": {"subscription": "sub_1", "amount_due": 4990000}},
        })
        service = BillingWebhookService(db_session)

        assert service.handle(body, header)["result"] == "suspended"
        assert service.handle(body, header)["result"] == "duplicate"
        assert db_session.query(BillingEvent).count() == 1

    def test_subscription_updated_maps_status(self, db_session: Session, sample_company):
        subscription = subscribe(db_session, sample_company, "BASIC")
        subscription.provider_subscription_id = "sub_2"
        db_session.commit()
        body, header = signed({
            "id": "evt_upd",
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_2",
                "status": "past_due",
                "cancel_at_period_end": True,
                "current_period_end": 1767225600,
            }},
        })

        BillingWebhookService(db_session).handle(body, header)

        db_session.refresh(subscription)
        assert subscription.status == SubscriptionStatus.SUSPENDED.value
        assert subscription.auto_renew is False
        assert subscription.next_billing_date is None
        assert subscription.end_date is not None

    def test_unknown_event_type_recorded_as_ignored(self, db_session: Session):
        body, header = signed({"id": "evt_x", "type": "customer.created", "data": {"object": {}}})
        assert BillingWebhookService(db_session).handle(body, header)["result"] == "ignored"
        assert db_session.query(BillingEvent).one().result == "ignored"

    def test_payment_failed_emits_notification(self, db_session: Session, sample_company):
        EventTriggerService(db_session).create_trigger(EventTriggerCreate(
            name="Cobro fallido",
            event_code="suscripcion.pago_fallido",
            channels=["in_app"]
        ), sample_company.id)
        subscription = subscribe(db_session, sample_company, "BASIC")
        subscription.provider_subscription_id = "sub_3"
        db_session.commit()
        body, header = signed({
            "id": "evt_fail",
            "type": "invoice.payment_failed",
            "data": {"object": {"subscription": "sub_3", "amount_due": 4990000}},
        })

        BillingWebhookService(db_session).handle(body, header)

        notification = db_session.query(Notification).one()
        assert notification.event_code == "suscripcion.pago_fallido"
        assert notification.payload["amount_due"] == 49900.0
        assert notification.payload["plan_code"] == "BASIC"


class TestSubscriptionsAPI:

    def test_public_plans(self, client):
        response = client.get("/subscriptions/plans")
        assert response.status_code == 200
        assert len(response.json()) == len(PLANS_DATA)

    def test_current_and_stats(self, client, db_session, sample_company, auth_headers):
        assert client.get("/subscriptions/current", headers=auth_headers).status_code == 404
        subscribe(db_session, sample_company, "FREE")

        response = client.get("/subscriptions/current", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "active"

        response = client.get("/subscriptions/stats", headers=auth_headers)
        assert response.json()["plan_code"] == "FREE"

    def test_webhook_endpoint(self, client):
        body, header = signed({"id": "evt_api", "type": "ping", "data": {"object": {}}})
        response = client.post(
            "/subscriptions/webhooks/billing",
            content=body,
            headers={"Stripe-Signature": header, "Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json()["result"] == "ignored"

        response = client.post("/subscriptions/webhooks/billing", content=body)
        assert response.status_code == 400
