import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from jinja2 import TemplateError
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.modules.notifications.dispatcher import NotificationDispatcher, conditions_match, in_silent_window
from app.modules.notifications.events import SYSTEM_EVENTS, is_system_event
from app.modules.notifications.models import (
    CustomEvent, EventCategory, EventTrigger, Notification, NotificationChannel,
    NotificationStatus, NotificationTemplate,
)
from app.modules.notifications.rendering import render_message, validate_template
from app.modules.notifications.schemas import (
    CustomEventCreate, CustomEventUpdate, EventTriggerCreate, EventTriggerUpdate,
    TemplateCreate, TemplateUpdate,
)

logger = logging.getLogger(__name__)


def _not_found(detail: str):
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class CustomEventService:
    """Catálogo de eventos personalizados por organización"""

    def __init__(self, db: Session):
        self.db = db

    def get_event(self, event_id: UUID, tenant_id: UUID) -> CustomEvent:
        event = self.db.query(CustomEvent).filter(
            CustomEvent.id == event_id,
            CustomEvent.tenant_id == tenant_id
        ).first()
        if not event:
            raise _not_found("Evento personalizado no encontrado")
        return event

    def list_events(
        self,
        tenant_id: UUID,
        module: Optional[str] = None,
        category: Optional[EventCategory] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(CustomEvent).filter(CustomEvent.tenant_id == tenant_id)
        if module:
            query = query.filter(CustomEvent.module == module)
        if category:
            query = query.filter(CustomEvent.category == category.value)
        if is_active is not None:
            query = query.filter(CustomEvent.is_active == is_active)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                CustomEvent.name.ilike(pattern),
                CustomEvent.description.ilike(pattern),
                CustomEvent.code.ilike(pattern)
            ))
        total = query.count()
        items = query.order_by(CustomEvent.module, CustomEvent.code).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def create_event(self, data: CustomEventCreate, tenant_id: UUID, user_id: Optional[UUID] = None) -> CustomEvent:
        try:
            if is_system_event(data.code):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"El código {data.code} está reservado para un evento del sistema"
                )
            exists = self.db.query(CustomEvent).filter(
                CustomEvent.tenant_id == tenant_id,
                CustomEvent.code == data.code
            ).first()
            if exists:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Ya existe un evento con el código {data.code}"
                )
            values = data.model_dump()
            values["category"] = data.category.value
            event = CustomEvent(tenant_id=tenant_id, created_by=user_id, **values)
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
            return event
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando evento: {str(e)}"
            )

    def update_event(self, event_id: UUID, data: CustomEventUpdate, tenant_id: UUID) -> CustomEvent:
        event = self.get_event(event_id, tenant_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "category" and value is not None:
                value = value.value
            setattr(event, field, value)
        self.db.commit()
        self.db.refresh(event)
        return event

    def toggle_event(self, event_id: UUID, tenant_id: UUID) -> CustomEvent:
        event = self.get_event(event_id, tenant_id)
        event.is_active = not event.is_active
        self.db.commit()
        self.db.refresh(event)
        return event

    def delete_event(self, event_id: UUID, tenant_id: UUID) -> dict:
        event = self.get_event(event_id, tenant_id)
        in_use = self.db.query(EventTrigger).filter(
            EventTrigger.tenant_id == tenant_id,
            EventTrigger.event_code == event.code
        ).count()
        if in_use:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"El evento tiene {in_use} trigger(s) asociados"
            )
        self.db.delete(event)
        self.db.commit()
        return {"message": "Evento eliminado"}

    def available_events(self, tenant_id: UUID) -> List[dict]:
        events = [
            dict(meta, code=code, category=EventCategory.SYSTEM.value)
            for code, meta in SYSTEM_EVENTS.items()
        ]
        custom = self.db.query(CustomEvent).filter(
            CustomEvent.tenant_id == tenant_id,
            CustomEvent.is_active == True
        ).order_by(CustomEvent.code).all()
        events.extend({
            "code": e.code,
            "name": e.name,
            "module": e.module,
            "description": e.description,
            "category": e.category,
            "sample_payload": e.sample_payload,
        } for e in custom)
        return events

    def is_valid_code(self, code: str, tenant_id: UUID) -> bool:
        if is_system_event(code):
            return True
        return self.db.query(CustomEvent).filter(
            CustomEvent.tenant_id == tenant_id,
            CustomEvent.code == code,
            CustomEvent.is_active == True
        ).first() is not None

    def emit_custom_event(self, code: str, payload: dict, tenant_id: UUID) -> List[Notification]:
        """Permite a integraciones externas disparar un evento personalizado."""
        if is_system_event(code):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Los eventos del sistema solo se emiten internamente"
            )
        if not self.is_valid_code(code, tenant_id):
            raise _not_found(f"Evento {code} no existe o está inactivo")
        return NotificationDispatcher(self.db).emit(tenant_id, code, payload)


class TemplateService:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _validate(subject: Optional[str], body: Optional[str]):
        for source in (subject, body):
            if source is None:
                continue
            error = validate_template(source)
            if error:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Plantilla inválida: {error}"
                )

    def get_template(self, template_id: UUID, tenant_id: UUID) -> NotificationTemplate:
        template = self.db.query(NotificationTemplate).filter(
            NotificationTemplate.id == template_id,
            NotificationTemplate.tenant_id == tenant_id
        ).first()
        if not template:
            raise _not_found("Plantilla no encontrada")
        return template

    def list_templates(self, tenant_id: UUID, channel: Optional[NotificationChannel] = None) -> List[NotificationTemplate]:
        query = self.db.query(NotificationTemplate).filter(NotificationTemplate.tenant_id == tenant_id)
        if channel:
            query = query.filter(NotificationTemplate.channel == channel.value)
        return query.order_by(NotificationTemplate.name).all()

    def create_template(self, data: TemplateCreate, tenant_id: UUID) -> NotificationTemplate:
        self._validate(data.subject, data.body)
        template = NotificationTemplate(
            tenant_id=tenant_id,
            name=data.name,
            channel=data.channel.value,
            subject=data.subject,
            body=data.body,
            is_active=data.is_active
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template

    def update_template(self, template_id: UUID, data: TemplateUpdate, tenant_id: UUID) -> NotificationTemplate:
        template = self.get_template(template_id, tenant_id)
        self._validate(data.subject, data.body)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "channel" and value is not None:
                value = value.value
            setattr(template, field, value)
        self.db.commit()
        self.db.refresh(template)
        return template

    def delete_template(self, template_id: UUID, tenant_id: UUID) -> dict:
        template = self.get_template(template_id, tenant_id)
        self.db.query(EventTrigger).filter(
            EventTrigger.tenant_id == tenant_id,
            EventTrigger.template_id == template.id
        ).update({EventTrigger.template_id: None}, synchronize_session=False)
        self.db.delete(template)
        self.db.commit()
        return {"message": "Plantilla eliminada"}

    def preview(self, template_id: UUID, payload: dict, tenant_id: UUID) -> dict:
        template = self.get_template(template_id, tenant_id)
        try:
            subject, body = render_message(template.subject, template.body, payload)
        except TemplateError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Error renderizando plantilla: {str(e)}")
        return {"subject": subject, "body": body}


class EventTriggerService:
    def __init__(self, db: Session):
        self.db = db

    def get_trigger(self, trigger_id: UUID, tenant_id: UUID) -> EventTrigger:
        trigger = self.db.query(EventTrigger).filter(
            EventTrigger.id == trigger_id,
            EventTrigger.tenant_id == tenant_id
        ).first()
        if not trigger:
            raise _not_found("Trigger no encontrado")
        return trigger

    def _check_event(self, code: str, tenant_id: UUID):
        if not CustomEventService(self.db).is_valid_code(code, tenant_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"El evento {code} no existe o está inactivo"
            )

    def _check_template(self, template_id: Optional[UUID], tenant_id: UUID):
        if template_id is not None:
            TemplateService(self.db).get_template(template_id, tenant_id)

    def list_triggers(
        self,
        tenant_id: UUID,
        event_code: Optional[str] = None,
        active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(EventTrigger).filter(EventTrigger.tenant_id == tenant_id)
        if event_code:
            query = query.filter(EventTrigger.event_code == event_code)
        if active is not None:
            query = query.filter(EventTrigger.active == active)
        total = query.count()
        items = query.order_by(EventTrigger.priority.desc(), EventTrigger.name).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def create_trigger(self, data: EventTriggerCreate, tenant_id: UUID, user_id: Optional[UUID] = None) -> EventTrigger:
        self._check_event(data.event_code, tenant_id)
        self._check_template(data.template_id, tenant_id)
        trigger = EventTrigger(
            tenant_id=tenant_id,
            name=data.name,
            description=data.description,
            event_code=data.event_code,
            template_id=data.template_id,
            channels=[c.value for c in data.channels],
            priority=data.priority,
            silent_window_minutes=data.silent_window_minutes,
            active=data.active,
            webhook_url=str(data.webhook_url) if data.webhook_url else None,
            recipients=[str(r) for r in data.recipients],
            conditions=data.conditions,
            created_by=user_id
        )
        self.db.add(trigger)
        self.db.commit()
        self.db.refresh(trigger)
        logger.info(f"Trigger '{trigger.name}' created for event {trigger.event_code}")
        return trigger

    def update_trigger(self, trigger_id: UUID, data: EventTriggerUpdate, tenant_id: UUID) -> EventTrigger:
        trigger = self.get_trigger(trigger_id, tenant_id)
        update = data.model_dump(exclude_unset=True)
        if update.get("event_code"):
            self._check_event(update["event_code"], tenant_id)
        if "template_id" in update:
            self._check_template(update["template_id"], tenant_id)
        if "channels" in update and update["channels"] is not None:
            update["channels"] = [c.value for c in data.channels]
        if "webhook_url" in update:
            update["webhook_url"] = str(data.webhook_url) if data.webhook_url else None
        if "recipients" in update and update["recipients"] is not None:
            update["recipients"] = [str(r) for r in data.recipients]

        channels = update.get("channels") or trigger.channels or []
        webhook_url = update["webhook_url"] if "webhook_url" in update else trigger.webhook_url
        if NotificationChannel.WEBHOOK.value in channels and not webhook_url:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="webhook_url es obligatorio cuando el canal webhook está activo"
            )

        for field, value in update.items():
            if value is None and field in ("name", "event_code", "channels", "priority", "silent_window_minutes", "active"):
                continue
            setattr(trigger, field, value)
        self.db.commit()
        self.db.refresh(trigger)
        return trigger

    def toggle_trigger(self, trigger_id: UUID, tenant_id: UUID) -> EventTrigger:
        trigger = self.get_trigger(trigger_id, tenant_id)
        trigger.active = not trigger.active
        self.db.commit()
        self.db.refresh(trigger)
        return trigger

    def delete_trigger(self, trigger_id: UUID, tenant_id: UUID) -> dict:
        trigger = self.get_trigger(trigger_id, tenant_id)
        self.db.query(Notification).filter(Notification.trigger_id == trigger.id) \
            .update({Notification.trigger_id: None}, synchronize_session=False)
        self.db.delete(trigger)
        self.db.commit()
        return {"message": "Trigger eliminado"}

    def test_trigger(self, trigger_id: UUID, payload: dict, tenant_id: UUID) -> dict:
        """Evalúa el trigger contra un payload de prueba sin persistir nada."""
        trigger = self.get_trigger(trigger_id, tenant_id)
        dispatcher = NotificationDispatcher(self.db)
        if not payload:
            payload = (SYSTEM_EVENTS.get(trigger.event_code) or {}).get("sample_payload") or {}
        title, content = dispatcher.build_message(trigger, dispatcher.event_name(tenant_id, trigger.event_code), payload)
        matched = conditions_match(trigger.conditions, payload)
        silent = in_silent_window(trigger, datetime.now(timezone.utc))
        return {
            "would_fire": bool(trigger.active and matched and not silent),
            "conditions_met": matched,
            "in_silent_window": silent,
            "channels": trigger.channels or [],
            "title": title,
            "content": content,
        }


class InboxService:
    """Bandeja de notificaciones de la organización"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, tenant_id: UUID):
        return self.db.query(Notification).filter(Notification.tenant_id == tenant_id)

    def _unread(self, tenant_id: UUID):
        return self._query(tenant_id).filter(
            Notification.channel == NotificationChannel.IN_APP.value,
            Notification.read_at.is_(None)
        )

    def list_notifications(
        self,
        tenant_id: UUID,
        status_filter: Optional[NotificationStatus] = None,
        channel: Optional[NotificationChannel] = None,
        event_code: Optional[str] = None,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> dict:
        query = self._unread(tenant_id) if unread_only else self._query(tenant_id)
        if status_filter:
            query = query.filter(Notification.status == status_filter.value)
        if channel:
            query = query.filter(Notification.channel == channel.value)
        if event_code:
            query = query.filter(Notification.event_code == event_code)
        total = query.count()
        items = query.order_by(Notification.created_at.desc(), Notification.priority.desc()) \
            .offset(offset).limit(limit).all()
        return {
            "items": items,
            "total": total,
            "unread": self._unread(tenant_id).count(),
            "limit": limit,
            "offset": offset,
        }

    def mark_read(self, notification_id: UUID, tenant_id: UUID) -> Notification:
        notification = self._query(tenant_id).filter(Notification.id == notification_id).first()
        if not notification:
            raise _not_found("Notificación no encontrada")
        if notification.read_at is None:
            notification.read_at = datetime.now(timezone.utc)
            notification.status = NotificationStatus.READ.value
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, tenant_id: UUID) -> dict:
        updated = self._unread(tenant_id).update(
            {Notification.read_at: datetime.now(timezone.utc), Notification.status: NotificationStatus.READ.value},
            synchronize_session=False
        )
        self.db.commit()
        return {"updated": updated}

    def stats(self, tenant_id: UUID) -> dict:
        by_status = dict(
            self._query(tenant_id).with_entities(Notification.status, func.count(Notification.id))
            .group_by(Notification.status).all()
        )
        by_channel = dict(
            self._query(tenant_id).with_entities(Notification.channel, func.count(Notification.id))
            .group_by(Notification.channel).all()
        )
        return {
            "total": sum(by_status.values()),
            "unread": self._unread(tenant_id).count(),
            "by_status": by_status,
            "by_channel": by_channel,
        }
