"""
Entrega de notificaciones por email y webhook.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID

import requests

from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.email.service import email_service
from app.modules.notifications.models import Notification, NotificationChannel, NotificationStatus

logger = logging.getLogger(__name__)


def deliver_email(notification: Notification):
    recipients = [r.strip() for r in (notification.recipient or "").split(",") if r.strip()]
    if not recipients:
        raise ValueError("Notification has no email recipients")
    html = email_service.render_template("notification_email.html", {
        "title": notification.title,
        "content": notification.content,
        "event_code": notification.event_code,
    })
    if not email_service.send_email(recipients, notification.title, html_content=html, text_content=notification.content):
        raise RuntimeError("SMTP delivery failed")


def deliver_webhook(notification: Notification):
    body = {
        "id": str(notification.id),
        "event": notification.event_code,
        "organization_id": str(notification.tenant_id),
        "title": notification.title,
        "content": notification.content,
        "priority": notification.priority,
        "payload": notification.payload or {},
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
    response = requests.post(
        notification.recipient,
        json=body,
        headers={"X-Event-Code": notification.event_code},
        timeout=settings.NOTIFICATION_WEBHOOK_TIMEOUT
    )
    response.raise_for_status()


DELIVERERS = {
    NotificationChannel.EMAIL.value: deliver_email,
    NotificationChannel.WEBHOOK.value: deliver_webhook,
}


@celery_app.task(bind=True, max_retries=3)
def deliver_notification_task(self, notification_id: str):
    """
    Entregar una notificación. Tras el último reintento queda en failed con el error.
    """
    db = SessionLocal()
    try:
        notification = db.query(Notification).filter(Notification.id == UUID(notification_id)).first()
        if notification is None:
            logger.warning(f"Notification {notification_id} not found")
            return {"status": "missing"}
        if notification.status != NotificationStatus.PENDING.value:
            return {"status": notification.status}

        deliver = DELIVERERS.get(notification.channel)
        if deliver is None:
            return {"status": notification.status}

        try:
            deliver(notification)
        except Exception as exc:
            logger.error(f"Delivery of notification {notification_id} failed: {str(exc)}")
            if self.request.retries < self.max_retries:
                raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))
            notification.status = NotificationStatus.FAILED.value
            notification.error = str(exc)[:1000]
            db.commit()
            return {"status": "failed", "error": str(exc)}

        notification.status = NotificationStatus.SENT.value
        notification.sent_at = datetime.now(timezone.utc)
        notification.error = None
        db.commit()
        logger.info(f"Notification {notification_id} delivered via {notification.channel}")
        return {"status": "sent"}
    finally:
        db.close()
