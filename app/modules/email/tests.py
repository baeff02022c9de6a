"""
Tests para el servicio de email y sus tareas de Celery
"""

import pytest

from app.modules.email import tasks as email_tasks
from app.modules.email.service import email_service
from app.modules.email.tasks import send_email_task, send_invitation_email_task


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(to_emails, subject, html_content=None, text_content=None):
        sent.append({"to": to_emails, "subject": subject, "html": html_content, "text": text_content})
        return True

    monkeypatch.setattr(email_tasks.email_service, "send_email", fake_send)
    return sent


class TestEmailService:

    def test_build_message(self):
        msg = email_service.build_message(["a@andina.co", "b@andina.co"], "Resumen", "<p>Hola</p>", "Hola")
        assert msg["To"] == "a@andina.co, b@andina.co"
        assert msg["Subject"] == "Resumen"
        assert len(msg.get_payload()) == 2

    def test_invitation_template_escapes_html(self):
        html = email_service.render_template("invitation_email.html", {
            "company_name": "<b>Andina</b>",
            "inviter_name": "Laura",
            "role": "Contador",
            "invitation_url": "https://app/accept",
            "support_email": "soporte@nexo.co",
        })
        assert "&lt;b&gt;Andina&lt;/b&gt;" in html
        assert "https://app/accept" in html


class TestEmailTasks:

    def test_send_email_task(self, outbox):
        result = send_email_task(["cartera@andina.co"], "Pago programado", "<p>Pago</p>")
        assert result["status"] == "success"
        assert outbox[0]["to"] == ["cartera@andina.co"]
        assert outbox[0]["html"] == "<p>Pago</p>"

    def test_send_email_task_failure_raises(self, monkeypatch):
        monkeypatch.setattr(email_tasks.email_service, "send_email", lambda *a, **k: False)
        with pytest.raises(RuntimeError):
            send_email_task(["cartera@andina.co"], "Pago programado", "<p>Pago</p>")

    def test_invitation_email(self, outbox):
        result = send_invitation_email_task(
            invitee_email="nueva@andina.co",
            inviter_name="Laura Gómez",
            company_name="Comercializadora Andina",
            invitation_token="tok123",
            role="accountant"
        )
        assert result["status"] == "success"
        assert outbox[0]["to"] == ["nueva@andina.co"]
        assert "Contador" in outbox[0]["html"]
        assert "accept-invitation?token=tok123" in outbox[0]["html"]
