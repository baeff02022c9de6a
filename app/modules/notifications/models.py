"""
Modelos de notificaciones.

- CustomEvent: catálogo de eventos definidos por la organización.
- NotificationTemplate: plantilla Jinja2 (asunto y cuerpo).
- EventTrigger: regla que dispara notificaciones cuando ocurre un evento.
- Notification: notificación generada (bandeja in-app o entrega email/webhook).
"""
import enum
from uuid import uuid4

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


class EventCategory(str, enum.Enum):
    SYSTEM = "system"
    BUSINESS = "business"
    CUSTOM = "custom"


class NotificationChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    WEBHOOK = "webhook"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    READ = "read"


class CustomEvent(Base, TenantMixin, TimestampMixin):
    __tablename__ = "custom_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(100), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    module = Column(String(50), nullable=False, default="custom")
    category = Column(String(20), nullable=False, default=EventCategory.CUSTOM.value)
    sample_payload = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_custom_event_code"),
    )


class NotificationTemplate(Base, TenantMixin, TimestampMixin):
    __tablename__ = "notification_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    channel = Column(String(20), nullable=False, default=NotificationChannel.IN_APP.value)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class EventTrigger(Base, TenantMixin, TimestampMixin):
    __tablename__ = "event_triggers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    event_code = Column(String(100), nullable=False, index=True)
    template_id = Column(UUID(as_uuid=True), ForeignKey("notification_templates.id"), nullable=True)

    channels = Column(JSON, nullable=False, default=list)
    priority = Column(Integer, nullable=False, default=5)
    silent_window_minutes = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    webhook_url = Column(String(500), nullable=True)
    recipients = Column(JSON, nullable=True)
    conditions = Column(JSON, nullable=True)
    last_fired_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    template = relationship("NotificationTemplate")


class Notification(Base, TenantMixin, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    trigger_id = Column(UUID(as_uuid=True), ForeignKey("event_triggers.id", ondelete="SET NULL"), nullable=True)
    event_code = Column(String(100), nullable=False, index=True)
    channel = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    priority = Column(Integer, nullable=False, default=5)
    recipient = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=NotificationStatus.PENDING.value, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
