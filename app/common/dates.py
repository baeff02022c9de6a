"""
Helpers de fechas compartidos por los módulos.
"""
from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normaliza datetimes sin zona (sqlite los devuelve así) a UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_overdue(due_date: date, as_of: Optional[date] = None) -> int:
    """Días transcurridos desde el vencimiento. Negativo si aún no vence."""
    as_of = as_of or date.today()
    return (as_of - due_date).days


def format_date_co(value: Optional[date]) -> str:
    """dd/mm/yyyy"""
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")
