"""
Tareas de Celery para el envío de correos.
"""
import logging
from typing import List, Optional

from app.core.celery import celery_app
from app.modules.email.service import email_service

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    "owner": "Propietario",
    "admin": "Administrador",
    "accountant": "Contador",
    "seller": "Vendedor",
    "viewer": "Consulta",
}


@celery_app.task(bind=True, max_retries=3)
def send_email_task(
    self,
    to_emails: List[str],
    subject: str,
    html_content: Optional[str] = None,
    text_content: Optional[str] = None
):
    try:
        if not email_service.send_email(to_emails, subject, html_content, text_content):
            raise RuntimeError("SMTP delivery failed")
        return {"status": "success", "recipients": to_emails}
    except Exception as exc:
        logger.error(f"Email task failed ({self.request.retries}/{self.max_retries}): {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "recipients": to_emails}


@celery_app.task(bind=True, max_retries=3)
def send_invitation_email_task(
    self,
    invitee_email: str,
    inviter_name: str,
    company_name: str,
    invitation_token: str,
    role: str
):
    """
    Enviar invitación a una organización.
    """
    try:
        context = {
            "inviter_name": inviter_name,
            "company_name": company_name,
            "role": ROLE_LABELS.get(role, role),
            "invitation_url": f"{email_service.frontend_url}/accept-invitation?token={invitation_token}",
            "support_email": email_service.from_email,
        }
        sent = email_service.send_template_email(
            to_emails=[invitee_email],
            subject=f"Te han invitado a {company_name} en {email_service.from_name}",
            template_name="invitation_email.html",
            context=context
        )
        if not sent:
            raise RuntimeError("SMTP delivery failed")
        return {"status": "success", "recipient": invitee_email}
    except Exception as exc:
        logger.error(f"Invitation email to {invitee_email} failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc)}
