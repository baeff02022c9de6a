"""
Despacho de eventos hacia notificaciones.

emit() evalúa los triggers activos del evento, crea una notificación por canal
y encola la entrega (email / webhook) después del commit.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from jinja2 import TemplateError
from sqlalchemy.orm import Session

from app.common.dates import as_utc
from app.modules.notifications.events import SYSTEM_EVENTS
from app.modules.notifications.models import (
    CustomEvent, EventTrigger, Notification, NotificationChannel, NotificationStatus,
)
from app.modules.notifications.rendering import render_message, default_message

logger = logging.getLogger(__name__)

_MISSING = object()


def resolve_path(payload: Dict[str, Any], path: str):
    """Obtiene un valor del payload por ruta con puntos (ej: supplier.nit)."""
    current = payload
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _compare(op, actual, expected) -> bool:
    if actual is _MISSING or actual is None:
        return False
    try:
        return op(actual, expected)
    except TypeError:
        return False


OPERATORS = {
    "eq": lambda a, e: a is not _MISSING and a == e,
    "ne": lambda a, e: a is _MISSING or a != e,
    "gt": lambda a, e: _compare(lambda x, y: x > y, a, e),
    "gte": lambda a, e: _compare(lambda x, y: x >= y, a, e),
    "lt": lambda a, e: _compare(lambda x, y: x < y, a, e),
    "lte": lambda a, e: _compare(lambda x, y: x <= y, a, e),
    "in": lambda a, e: a is not _MISSING and isinstance(e, (list, tuple)) and a in e,
    "contains": lambda a, e: _compare(lambda x, y: y in x, a, e),
}


def condition_holds(actual, expected) -> bool:
    if isinstance(expected, dict) and expected and set(expected) <= set(OPERATORS):
        return all(OPERATORS[op](actual, value) for op, value in expected.items())
    return actual is not _MISSING and actual == expected


def conditions_match(conditions: Optional[Dict[str, Any]], payload: Dict[str, Any]) -> bool:
    """Todas las condiciones deben cumplirse; sin condiciones siempre se cumple."""
    for path, expected in (conditions or {}).items():
        if not condition_holds(resolve_path(payload or {}, path), expected):
            return False
    return True


def in_silent_window(trigger: EventTrigger, now: datetime) -> bool:
    if not trigger.silent_window_minutes or not trigger.last_fired_at:
        return False
    return now - as_utc(trigger.last_fired_at) < timedelta(minutes=trigger.silent_window_minutes)


class NotificationDispatcher:
    """Evalúa triggers y genera notificaciones para un evento"""

    def __init__(self, db: Session):
        self.db = db

    def event_name(self, tenant_id: UUID, event_code: str) -> Optional[str]:
        if event_code in SYSTEM_EVENTS:
            return SYSTEM_EVENTS[event_code]["name"]
        event = self.db.query(CustomEvent).filter(
            CustomEvent.tenant_id == tenant_id,
            CustomEvent.code == event_code
        ).first()
        return event.name if event else None

    def build_message(self, trigger: EventTrigger, event_name: Optional[str], payload: Dict[str, Any]):
        template = trigger.template
        if template is not None and template.is_active:
            try:
                return render_message(template.subject, template.body, payload, trigger.event_code)
            except TemplateError as e:
                logger.warning(f"Template {template.id} failed to render for trigger {trigger.id}: {str(e)}")
        return default_message(trigger.event_code, event_name, payload)

    def emit(
        self,
        tenant_id: UUID,
        event_code: str,
        payload: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> List[Notification]:
        now = now or datetime.now(timezone.utc)
        triggers = (
            self.db.query(EventTrigger)
            .filter(
                EventTrigger.tenant_id == tenant_id,
                EventTrigger.event_code == event_code,
                EventTrigger.active == True
            )
            .order_by(EventTrigger.priority.desc(), EventTrigger.created_at.asc())
            .all()
        )
        if not triggers:
            return []

        name = self.event_name(tenant_id, event_code)
        created: List[Notification] = []
        for trigger in triggers:
            if not conditions_match(trigger.conditions, payload):
                logger.debug(f"Trigger {trigger.id} skipped: conditions not met")
                continue
            if in_silent_window(trigger, now):
                logger.debug(f"Trigger {trigger.id} skipped: silent window")
                continue

            title, content = self.build_message(trigger, name, payload)
            for channel in trigger.channels or []:
                recipient = None
                if channel == NotificationChannel.EMAIL.value:
                    if not trigger.recipients:
                        logger.warning(f"Trigger {trigger.id} has email channel without recipients")
                        continue
                    recipient = ",".join(trigger.recipients)
                elif channel == NotificationChannel.WEBHOOK.value:
                    recipient = trigger.webhook_url

                notification = Notification(
                    tenant_id=tenant_id,
                    trigger_id=trigger.id,
                    event_code=event_code,
                    channel=channel,
                    title=title[:255],
                    content=content,
                    payload=payload,
                    priority=trigger.priority,
                    recipient=recipient,
                    status=NotificationStatus.PENDING.value
                )
                self.db.add(notification)
                created.append(notification)
            trigger.last_fired_at = now

        self.db.commit()
        for notification in created:
            self.db.refresh(notification)

        deliverable = [n for n in created if n.channel != NotificationChannel.IN_APP.value]
        if deliverable:
            from app.modules.notifications.tasks import deliver_notification_task
            for notification in deliverable:
                deliver_notification_task.delay(str(notification.id))

        logger.info(f"Event {event_code} produced {len(created)} notifications for tenant {tenant_id}")
        return sorted(created, key=lambda n: n.priority, reverse=True)
