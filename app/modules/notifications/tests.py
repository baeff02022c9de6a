"""
Tests para el módulo de Notificaciones

Cubren:
- Evaluación de condiciones y ventana de silencio
- Despacho por canal y orden por prioridad
- Plantillas Jinja2 (validación y vista previa)
- Eventos personalizados y bandeja in-app
- Entrega por webhook
"""

import pytest
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.modules.notifications import tasks as notification_tasks
from app.modules.notifications.dispatcher import (
    NotificationDispatcher, conditions_match, resolve_path,
)
from app.modules.notifications.events import code_examples
from app.modules.notifications.models import EventTrigger, Notification, NotificationStatus
from app.modules.notifications.rendering import render, default_message, validate_template
from app.modules.notifications.schemas import (
    CustomEventCreate, EventTriggerCreate, EventTriggerUpdate, TemplateCreate,
)
from app.modules.notifications.service import (
    CustomEventService, EventTriggerService, InboxService, TemplateService,
)

PAID = "cuenta_pagar.pagada"


def add_trigger(db: Session, company, **fields) -> EventTrigger:
    values = {
        "name": "Aviso",
        "event_code": PAID,
        "channels": ["in_app"],
        "priority": 5,
    }
    values.update(fields)
    data = EventTriggerCreate(**values)
    return EventTriggerService(db).create_trigger(data, company.id)


# ===== CONDICIONES =====

class TestConditions:

    payload = {
        "amount": 1500000,
        "status": "paid",
        "supplier": {"name": "Distribuidora del Valle", "nit": "800197268"},
    }

    def test_dotted_paths(self):
        assert resolve_path(self.payload, "supplier.nit") == "800197268"
        assert conditions_match({"supplier.nit": "800197268"}, self.payload)
        assert not conditions_match({"supplier.city": "Cali"}, self.payload)

    def test_operators(self):
        assert conditions_match({"amount": {"gte": 1000000, "lt": 2000000}}, self.payload)
        assert not conditions_match({"amount": {"gt": 1500000}}, self.payload)
        assert conditions_match({"status": {"in": ["paid", "partial"]}}, self.payload)
        assert conditions_match({"supplier.name": {"contains": "Valle"}}, self.payload)
        assert conditions_match({"status": {"ne": "pending"}}, self.payload)

    def test_missing_field_and_type_mismatch(self):
        assert conditions_match({"missing": {"ne": 1}}, self.payload)
        assert not conditions_match({"missing": {"gt": 1}}, self.payload)
        assert not conditions_match({"status": {"gt": 10}}, self.payload)

    def test_empty_conditions_always_match(self):
        assert conditions_match({}, self.payload)
        assert conditions_match(None, {})


class TestRendering:

    def test_render_with_missing_variables(self):
        text = render("Pago a {{ supplier.name }} ({{ supplier.city.name }})", {"supplier": {"name": "Andina"}})
        assert text == "Pago a Andina ()"

    def test_payload_and_event_code_available(self):
        assert render("{{ event_code }} {{ payload.amount }}", {"amount": 10}, PAID) == f"{PAID} 10"

    def test_validate_template(self):
        assert validate_template("Hola {{ nombre }}") is None
        assert validate_template("{% if %}") is not None

    def test_default_message_skips_nested(self):
        title, content = default_message(PAID, "Cuenta pagada", {"amount": 5, "supplier": {"x": 1}})
        assert title == "Cuenta pagada"
        assert "amount: 5" in content
        assert "supplier" not in content


# ===== DESPACHO =====

class TestDispatcher:

    def test_no_triggers_no_notifications(self, db_session: Session, sample_company, queued_tasks):
        assert NotificationDispatcher(db_session).emit(sample_company.id, PAID, {}) == []
        assert queued_tasks == []

    def test_one_notification_per_channel(self, db_session: Session, sample_company, queued_tasks):
        add_trigger(
            db_session, sample_company,
            channels=["in_app", "email", "webhook"],
            recipients=["tesoreria@andina.co", "gerencia@andina.co"],
            webhook_url="https://hooks.andina.co/pagos"
        )

        created = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {"amount": 100})

        by_channel = {n.channel: n for n in created}
        assert set(by_channel) == {"in_app", "email", "webhook"}
        assert by_channel["email"].recipient == "tesoreria@andina.co,gerencia@andina.co"
        assert by_channel["webhook"].recipient == "https://hooks.andina.co/pagos"
        assert by_channel["in_app"].title == "Cuenta pagada"

        delivered = sorted(call[1][0] for call in queued_tasks if call[0] == "deliver_notification")
        assert delivered == sorted([str(by_channel["email"].id), str(by_channel["webhook"].id)])

    def test_email_without_recipients_is_skipped(self, db_session: Session, sample_company):
        add_trigger(db_session, sample_company, channels=["email", "in_app"])
        created = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {})
        assert [n.channel for n in created] == ["in_app"]

    def test_conditions_filter_triggers(self, db_session: Session, sample_company):
        add_trigger(db_session, sample_company, name="Grandes", conditions={"amount": {"gte": 1000000}})
        add_trigger(db_session, sample_company, name="Todos")

        created = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {"amount": 5000})
        assert len(created) == 1

    def test_priority_order(self, db_session: Session, sample_company):
        low = add_trigger(db_session, sample_company, name="Baja", priority=2)
        high = add_trigger(db_session, sample_company, name="Alta", priority=9)

        created = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {})
        assert [n.trigger_id for n in created] == [high.id, low.id]

    def test_silent_window(self, db_session: Session, sample_company):
        add_trigger(db_session, sample_company, silent_window_minutes=10)
        dispatcher = NotificationDispatcher(db_session)
        start = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

        assert len(dispatcher.emit(sample_company.id, PAID, {}, now=start)) == 1
        assert dispatcher.emit(sample_company.id, PAID, {}, now=start + timedelta(minutes=5)) == []
        assert len(dispatcher.emit(sample_company.id, PAID, {}, now=start + timedelta(minutes=11))) == 1

    def test_template_used_when_active(self, db_session: Session, sample_company):
        template = TemplateService(db_session).create_template(TemplateCreate(
            name="Pagada",
            subject="Cuenta de {{ supplier_name }} pagada",
            body="Monto: {{ amount }}"
        ), sample_company.id)
        add_trigger(db_session, sample_company, template_id=template.id)

        created = NotificationDispatcher(db_session).emit(
            sample_company.id, PAID, {"supplier_name": "Andina", "amount": 10}
        )
        assert created[0].title == "Cuenta de Andina pagada"
        assert created[0].content == "Monto: 10"

        template.is_active = False
        db_session.commit()
        created = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {"amount": 10})
        assert created[0].title == "Cuenta pagada"

    def test_inactive_trigger_ignored(self, db_session: Session, sample_company):
        trigger = add_trigger(db_session, sample_company)
        EventTriggerService(db_session).toggle_trigger(trigger.id, sample_company.id)
        assert NotificationDispatcher(db_session).emit(sample_company.id, PAID, {}) == []


# ===== TRIGGERS Y EVENTOS =====

class TestTriggerManagement:

    def test_webhook_requires_url(self):
        with pytest.raises(ValidationError):
            EventTriggerCreate(name="Hook", event_code=PAID, channels=["webhook"])

    def test_duplicate_channels_collapse(self):
        data = EventTriggerCreate(name="Aviso", event_code=PAID, channels=["in_app", "in_app"])
        assert data.channels == ["in_app"]

    def test_unknown_event_rejected(self, db_session: Session, sample_company):
        with pytest.raises(HTTPException) as exc:
            add_trigger(db_session, sample_company, event_code="crm.no_existe")
        assert exc.value.status_code == 400

    def test_update_enabling_webhook_requires_url(self, db_session: Session, sample_company):
        trigger = add_trigger(db_session, sample_company)
        with pytest.raises(HTTPException) as exc:
            EventTriggerService(db_session).update_trigger(
                trigger.id, EventTriggerUpdate(channels=["webhook"]), sample_company.id
            )
        assert exc.value.status_code == 400

    def test_dry_run_does_not_persist(self, db_session: Session, sample_company):
        trigger = add_trigger(db_session, sample_company, conditions={"status": "paid"})
        result = EventTriggerService(db_session).test_trigger(trigger.id, {}, sample_company.id)

        assert result["would_fire"] is True
        assert result["conditions_met"] is True
        assert db_session.query(Notification).count() == 0


class TestCustomEvents:

    def test_system_codes_reserved(self, db_session: Session, sample_company):
        with pytest.raises(HTTPException) as exc:
            CustomEventService(db_session).create_event(
                CustomEventCreate(code=PAID, name="Copia"), sample_company.id
            )
        assert exc.value.status_code == 409

    def test_duplicate_code(self, db_session: Session, sample_company):
        service = CustomEventService(db_session)
        service.create_event(CustomEventCreate(code="crm.lead_calificado", name="Lead", module="crm"), sample_company.id)
        with pytest.raises(HTTPException) as exc:
            service.create_event(CustomEventCreate(code="crm.lead_calificado", name="Lead"), sample_company.id)
        assert exc.value.status_code == 409

    def test_invalid_code_format(self):
        with pytest.raises(ValidationError):
            CustomEventCreate(code="Sin Punto", name="Malo")

    def test_emit_custom_event(self, db_session: Session, sample_company):
        service = CustomEventService(db_session)
        service.create_event(CustomEventCreate(code="crm.lead_calificado", name="Lead calificado"), sample_company.id)
        add_trigger(db_session, sample_company, event_code="crm.lead_calificado")

        created = service.emit_custom_event("crm.lead_calificado", {"lead_score": 90}, sample_company.id)
        assert created[0].title == "Lead calificado"

        with pytest.raises(HTTPException) as exc:
            service.emit_custom_event(PAID, {}, sample_company.id)
        assert exc.value.status_code == 400

    def test_delete_in_use(self, db_session: Session, sample_company):
        service = CustomEventService(db_session)
        event = service.create_event(CustomEventCreate(code="crm.lead_nuevo", name="Lead"), sample_company.id)
        add_trigger(db_session, sample_company, event_code="crm.lead_nuevo")

        with pytest.raises(HTTPException) as exc:
            service.delete_event(event.id, sample_company.id)
        assert exc.value.status_code == 409

    def test_available_events_include_system_and_custom(self, db_session: Session, sample_company):
        service = CustomEventService(db_session)
        service.create_event(CustomEventCreate(code="crm.lead_nuevo", name="Lead"), sample_company.id)
        codes = [e["code"] for e in service.available_events(sample_company.id)]
        assert PAID in codes
        assert "crm.lead_nuevo" in codes

    def test_code_examples(self):
        example = code_examples("cuentas_pagar")
        assert example["event_code"] == "cuentas_pagar.mi_evento"
        assert PAID in example["system_events"]
        assert "supplier_name" in example["sample_payload"]


# ===== BANDEJA =====

class TestInbox:

    def test_read_flow_and_stats(self, db_session: Session, sample_company):
        add_trigger(
            db_session, sample_company,
            channels=["in_app", "email"], recipients=["tesoreria@andina.co"]
        )
        dispatcher = NotificationDispatcher(db_session)
        first = dispatcher.emit(sample_company.id, PAID, {})
        dispatcher.emit(sample_company.id, PAID, {})
        inbox = InboxService(db_session)

        listing = inbox.list_notifications(sample_company.id)
        assert listing["total"] == 4
        assert listing["unread"] == 2

        in_app = next(n for n in first if n.channel == "in_app")
        read = inbox.mark_read(in_app.id, sample_company.id)
        assert read.status == NotificationStatus.READ.value
        assert inbox.list_notifications(sample_company.id, unread_only=True)["total"] == 1

        assert inbox.mark_all_read(sample_company.id)["updated"] == 1
        stats = inbox.stats(sample_company.id)
        assert stats["unread"] == 0
        assert stats["by_channel"] == {"in_app": 2, "email": 2}

    def test_mark_read_other_tenant(self, db_session: Session, sample_company):
        from uuid import uuid4

        with pytest.raises(HTTPException) as exc:
            InboxService(db_session).mark_read(uuid4(), sample_company.id)
        assert exc.value.status_code == 404


# ===== ENTREGA =====

class TestDelivery:

    def test_webhook_delivery_marks_sent(self, db_session: Session, sample_company, monkeypatch):
        add_trigger(db_session, sample_company, channels=["webhook"], webhook_url="https://hooks.andina.co/x")
        notification = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {"amount": 1})[0]
        sent = {}

        class FakeResponse:
            def raise_for_status(self):
                return None

        def fake_post(url, json=None, headers=None, timeout=None):
            sent.update(url=url, json=json, headers=headers)
            return FakeResponse()

        monkeypatch.setattr(notification_tasks.requests, "post", fake_post)
        result = notification_tasks.deliver_notification_task(str(notification.id))

        db_session.expire_all()
        assert result == {"status": "sent"}
        assert sent["url"] == "https://hooks.andina.co/x"
        assert sent["headers"] == {"X-Event-Code": PAID}
        assert sent["json"]["payload"] == {"amount": 1}
        assert db_session.get(Notification, notification.id).status == NotificationStatus.SENT.value

    def test_email_delivery_splits_recipients(self, db_session: Session, sample_company, monkeypatch):
        add_trigger(
            db_session, sample_company,
            channels=["email"], recipients=["a@andina.co", "b@andina.co"]
        )
        notification = NotificationDispatcher(db_session).emit(sample_company.id, PAID, {})[0]
        captured = {}

        def fake_send(to, subject, html_content=None, text_content=None):
            captured.update(to=to, subject=subject)
            return True

        monkeypatch.setattr(notification_tasks.email_service, "send_email", fake_send)
        notification_tasks.deliver_email(notification)
        assert captured == {"to": ["a@andina.co", "b@andina.co"], "subject": "Cuenta pagada"}


class TestNotificationsAPI:

    def test_trigger_and_inbox_endpoints(self, client, auth_headers):
        response = client.post("/notifications/triggers", json={
            "name": "Cuenta pagada",
            "event_code": PAID,
            "channels": ["in_app"],
        }, headers=auth_headers)
        assert response.status_code == 201
        trigger_id = response.json()["id"]

        response = client.post(f"/notifications/triggers/{trigger_id}/test", json={"payload": {}}, headers=auth_headers)
        assert response.json()["would_fire"] is True

        response = client.post("/notifications/events", json={
            "code": "crm.lead_nuevo", "name": "Lead nuevo", "module": "crm"
        }, headers=auth_headers)
        assert response.status_code == 201

        response = client.post("/notifications/emit", json={
            "event_code": "crm.lead_nuevo", "payload": {}
        }, headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == []

        response = client.get("/notifications/stats", headers=auth_headers)
        assert response.json()["total"] == 0

    def test_template_preview_endpoint(self, client, auth_headers):
        response = client.post("/notifications/templates", json={
            "name": "Saludo", "subject": "Hola {{ nombre }}", "body": "Total {{ total }}"
        }, headers=auth_headers)
        template_id = response.json()["id"]

        response = client.post(
            f"/notifications/templates/{template_id}/preview",
            json={"payload": {"nombre": "Laura", "total": 5}},
            headers=auth_headers
        )
        assert response.json() == {"subject": "Hola Laura", "body": "Total 5"}

        response = client.post("/notifications/templates", json={
            "name": "Rota", "subject": "{% if %}", "body": "x"
        }, headers=auth_headers)
        assert response.status_code == 400
