from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, HttpUrl, field_validator, model_validator

from app.modules.notifications.models import EventCategory, NotificationChannel, NotificationStatus

EVENT_CODE_PATTERN = r"^[a-z][a-z0-9_]*\.[a-z][a-z0-9_]*$"


# ===== EVENTOS PERSONALIZADOS =====

class CustomEventCreate(BaseModel):
    code: str = Field(..., max_length=100, pattern=EVENT_CODE_PATTERN, description="modulo.evento, ej: crm.lead_calificado")
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    module: str = Field("custom", min_length=1, max_length=50)
    category: EventCategory = EventCategory.CUSTOM
    sample_payload: Optional[Dict[str, Any]] = None
    is_active: bool = True


class CustomEventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    module: Optional[str] = Field(None, min_length=1, max_length=50)
    category: Optional[EventCategory] = None
    sample_payload: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class CustomEventOut(BaseModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    module: str
    category: EventCategory
    sample_payload: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomEventList(BaseModel):
    items: List[CustomEventOut]
    total: int
    limit: int
    offset: int


class AvailableEvent(BaseModel):
    code: str
    name: str
    module: str
    description: Optional[str] = None
    category: EventCategory
    sample_payload: Optional[Dict[str, Any]] = None


class EmitEventRequest(BaseModel):
    event_code: str = Field(..., pattern=EVENT_CODE_PATTERN)
    payload: Dict[str, Any] = {}


# ===== PLANTILLAS =====

class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    channel: NotificationChannel = NotificationChannel.IN_APP
    subject: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    channel: Optional[NotificationChannel] = None
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None


class TemplateOut(BaseModel):
    id: UUID
    name: str
    channel: NotificationChannel
    subject: str
    body: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreviewRequest(BaseModel):
    payload: Dict[str, Any] = {}


class PreviewOut(BaseModel):
    subject: str
    body: str


# ===== TRIGGERS =====

def _channels(v):
    if v is None:
        return v
    unique = list(dict.fromkeys(v))
    if not unique:
        raise ValueError("Debe seleccionar al menos un canal")
    return unique


class EventTriggerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    event_code: str = Field(..., max_length=100, pattern=EVENT_CODE_PATTERN)
    template_id: Optional[UUID] = None
    channels: List[NotificationChannel] = Field(..., min_length=1)
    priority: int = Field(5, ge=1, le=10)
    silent_window_minutes: int = Field(0, ge=0, le=1440)
    active: bool = True
    webhook_url: Optional[HttpUrl] = None
    recipients: List[EmailStr] = []
    conditions: Dict[str, Any] = {}

    @field_validator("channels")
    @classmethod
    def unique_channels(cls, v):
        return _channels(v)

    @model_validator(mode="after")
    def webhook_requires_url(self):
        if NotificationChannel.WEBHOOK in self.channels and not self.webhook_url:
            raise ValueError("webhook_url es obligatorio cuando el canal webhook está activo")
        return self


class EventTriggerCreate(EventTriggerBase):
    pass


class EventTriggerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    event_code: Optional[str] = Field(None, max_length=100, pattern=EVENT_CODE_PATTERN)
    template_id: Optional[UUID] = None
    channels: Optional[List[NotificationChannel]] = Field(None, min_length=1)
    priority: Optional[int] = Field(None, ge=1, le=10)
    silent_window_minutes: Optional[int] = Field(None, ge=0, le=1440)
    active: Optional[bool] = None
    webhook_url: Optional[HttpUrl] = None
    recipients: Optional[List[EmailStr]] = None
    conditions: Optional[Dict[str, Any]] = None

    @field_validator("channels")
    @classmethod
    def unique_channels(cls, v):
        return _channels(v)


class EventTriggerOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    event_code: str
    template_id: Optional[UUID] = None
    channels: List[NotificationChannel]
    priority: int
    silent_window_minutes: int
    active: bool
    webhook_url: Optional[str] = None
    recipients: Optional[List[str]] = None
    conditions: Optional[Dict[str, Any]] = None
    last_fired_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventTriggerList(BaseModel):
    items: List[EventTriggerOut]
    total: int
    limit: int
    offset: int


class TriggerTestRequest(BaseModel):
    payload: Dict[str, Any] = {}


class TriggerTestResult(BaseModel):
    would_fire: bool
    conditions_met: bool
    in_silent_window: bool
    channels: List[NotificationChannel]
    title: str
    content: str


# ===== BANDEJA =====

class NotificationOut(BaseModel):
    id: UUID
    trigger_id: Optional[UUID] = None
    event_code: str
    channel: NotificationChannel
    title: str
    content: str
    payload: Optional[Dict[str, Any]] = None
    priority: int
    recipient: Optional[str] = None
    status: NotificationStatus
    read_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    items: List[NotificationOut]
    total: int
    unread: int
    limit: int
    offset: int


class NotificationStats(BaseModel):
    total: int
    unread: int
    by_status: Dict[str, int]
    by_channel: Dict[str, int]
