from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.notifications.events import code_examples
from app.modules.notifications.models import EventCategory, NotificationChannel, NotificationStatus
from app.modules.notifications.schemas import (
    CustomEventCreate, CustomEventUpdate, CustomEventOut, CustomEventList, AvailableEvent, EmitEventRequest,
    TemplateCreate, TemplateUpdate, TemplateOut, PreviewRequest, PreviewOut,
    EventTriggerCreate, EventTriggerUpdate, EventTriggerOut, EventTriggerList,
    TriggerTestRequest, TriggerTestResult,
    NotificationOut, NotificationList, NotificationStats,
)
from app.modules.notifications.service import (
    CustomEventService, TemplateService, EventTriggerService, InboxService,
)

notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])

MANAGE_ROLES = ["owner", "admin"]


# ===== EVENTOS =====

@notifications_router.get("/events/available", response_model=List[AvailableEvent])
def available_events(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Eventos del sistema y eventos personalizados activos."""
    return CustomEventService(db).available_events(auth_context.tenant_id)


@notifications_router.get("/events/examples/{module}")
def event_code_examples(
    module: str,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return code_examples(module)


@notifications_router.get("/events", response_model=CustomEventList)
def list_custom_events(
    module: Optional[str] = Query(None),
    category: Optional[EventCategory] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return CustomEventService(db).list_events(
        auth_context.tenant_id, module, category, is_active, search, limit, offset
    )


@notifications_router.post("/events", response_model=CustomEventOut, status_code=status.HTTP_201_CREATED)
def create_custom_event(
    payload: CustomEventCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return CustomEventService(db).create_event(payload, auth_context.tenant_id, auth_context.user_id)


@notifications_router.patch("/events/{event_id}", response_model=CustomEventOut)
def update_custom_event(
    event_id: UUID,
    payload: CustomEventUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return CustomEventService(db).update_event(event_id, payload, auth_context.tenant_id)


@notifications_router.post("/events/{event_id}/toggle", response_model=CustomEventOut)
def toggle_custom_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return CustomEventService(db).toggle_event(event_id, auth_context.tenant_id)


@notifications_router.delete("/events/{event_id}")
def delete_custom_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return CustomEventService(db).delete_event(event_id, auth_context.tenant_id)


@notifications_router.post("/emit", response_model=List[NotificationOut])
def emit_custom_event(
    payload: EmitEventRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    """Disparar un evento personalizado (integraciones)."""
    return CustomEventService(db).emit_custom_event(payload.event_code, payload.payload, auth_context.tenant_id)


# ===== PLANTILLAS =====

@notifications_router.get("/templates", response_model=List[TemplateOut])
def list_templates(
    channel: Optional[NotificationChannel] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return TemplateService(db).list_templates(auth_context.tenant_id, channel)


@notifications_router.post("/templates", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(
    payload: TemplateCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return TemplateService(db).create_template(payload, auth_context.tenant_id)


@notifications_router.patch("/templates/{template_id}", response_model=TemplateOut)
def update_template(
    template_id: UUID,
    payload: TemplateUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return TemplateService(db).update_template(template_id, payload, auth_context.tenant_id)


@notifications_router.delete("/templates/{template_id}")
def delete_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return TemplateService(db).delete_template(template_id, auth_context.tenant_id)


@notifications_router.post("/templates/{template_id}/preview", response_model=PreviewOut)
def preview_template(
    template_id: UUID,
    payload: PreviewRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return TemplateService(db).preview(template_id, payload.payload, auth_context.tenant_id)


# ===== TRIGGERS =====

@notifications_router.get("/triggers", response_model=EventTriggerList)
def list_triggers(
    event_code: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return EventTriggerService(db).list_triggers(auth_context.tenant_id, event_code, active, limit, offset)


@notifications_router.post("/triggers", response_model=EventTriggerOut, status_code=status.HTTP_201_CREATED)
def create_trigger(
    payload: EventTriggerCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return EventTriggerService(db).create_trigger(payload, auth_context.tenant_id, auth_context.user_id)


@notifications_router.get("/triggers/{trigger_id}", response_model=EventTriggerOut)
def get_trigger(
    trigger_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return EventTriggerService(db).get_trigger(trigger_id, auth_context.tenant_id)


@notifications_router.patch("/triggers/{trigger_id}", response_model=EventTriggerOut)
def update_trigger(
    trigger_id: UUID,
    payload: EventTriggerUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return EventTriggerService(db).update_trigger(trigger_id, payload, auth_context.tenant_id)


@notifications_router.post("/triggers/{trigger_id}/toggle", response_model=EventTriggerOut)
def toggle_trigger(
    trigger_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return EventTriggerService(db).toggle_trigger(trigger_id, auth_context.tenant_id)


@notifications_router.delete("/triggers/{trigger_id}")
def delete_trigger(
    trigger_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    return EventTriggerService(db).delete_trigger(trigger_id, auth_context.tenant_id)


@notifications_router.post("/triggers/{trigger_id}/test", response_model=TriggerTestResult)
def test_trigger(
    trigger_id: UUID,
    payload: TriggerTestRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(MANAGE_ROLES))
):
    """Probar el trigger con un payload; no crea notificaciones."""
    return EventTriggerService(db).test_trigger(trigger_id, payload.payload, auth_context.tenant_id)


# ===== BANDEJA =====

@notifications_router.get("/", response_model=NotificationList)
def list_notifications(
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    channel: Optional[NotificationChannel] = Query(None),
    event_code: Optional[str] = Query(None),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InboxService(db).list_notifications(
        auth_context.tenant_id, status_filter, channel, event_code, unread_only, limit, offset
    )


@notifications_router.get("/stats", response_model=NotificationStats)
def notification_stats(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InboxService(db).stats(auth_context.tenant_id)


@notifications_router.post("/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InboxService(db).mark_all_read(auth_context.tenant_id)


@notifications_router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InboxService(db).mark_read(notification_id, auth_context.tenant_id)
