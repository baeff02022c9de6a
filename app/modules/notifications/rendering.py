import logging
from typing import Any, Dict, Optional, Tuple

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

# Variables no definidas se renderizan vacías, también en accesos encadenados (a.b.c)
_env = SandboxedEnvironment(undefined=ChainableUndefined, autoescape=False)


def validate_template(source: str) -> Optional[str]:
    """Retorna el mensaje de error de sintaxis, o None si la plantilla es válida."""
    try:
        _env.parse(source)
        return None
    except TemplateError as e:
        return str(e)


def render(source: str, payload: Dict[str, Any], event_code: Optional[str] = None) -> str:
    context = dict(payload or {})
    context.setdefault("payload", payload or {})
    if event_code:
        context.setdefault("event_code", event_code)
    return _env.from_string(source).render(**context)


def render_message(subject: str, body: str, payload: Dict[str, Any], event_code: Optional[str] = None) -> Tuple[str, str]:
    return render(subject, payload, event_code), render(body, payload, event_code)


def default_message(event_code: str, event_name: Optional[str], payload: Dict[str, Any]) -> Tuple[str, str]:
    title = event_name or event_code
    lines = [f"Evento {event_code}"]
    for key, value in (payload or {}).items():
        if isinstance(value, (dict, list)):
            continue
        lines.append(f"{key}: {value}")
    return title, "\n".join(lines)
