"""
Catálogo de eventos del sistema.

Los módulos emiten estos códigos a través de NotificationDispatcher; las
organizaciones pueden además registrar sus propios eventos (CustomEvent).
"""
from typing import Dict

_ACCOUNT_SAMPLE = {
    "account_id": "6f1c2a5e-0000-4000-8000-000000000001",
    "supplier_id": "6f1c2a5e-0000-4000-8000-000000000002",
    "supplier_name": "Distribuidora Andina S.A.S.",
    "invoice_number": "FV-1001",
    "amount": 1500000.0,
    "balance": 500000.0,
    "status": "partial",
    "due_date": "2025-03-31",
}

_PAYMENT_SAMPLE = dict(
    _ACCOUNT_SAMPLE,
    payment_id="6f1c2a5e-0000-4000-8000-000000000003",
    payment_amount=1000000.0,
    payment_method="transfer",
    payment_status="completed",
    reference="TRX-778812",
)

_SUBSCRIPTION_SAMPLE = {
    "subscription_id": "6f1c2a5e-0000-4000-8000-000000000004",
    "plan_code": "PROFESSIONAL",
    "plan_name": "Profesional",
    "status": "trial",
    "trial_end_date": "2025-04-15",
}

SYSTEM_EVENTS: Dict[str, dict] = {
    "cuenta_pagar.pago_registrado": {
        "name": "Pago registrado",
        "module": "cuentas_pagar",
        "description": "Se registró un pago sobre una cuenta por pagar.",
        "sample_payload": _PAYMENT_SAMPLE,
    },
    "cuenta_pagar.pago_programado": {
        "name": "Pago programado",
        "module": "cuentas_pagar",
        "description": "Se programó un pago pendiente de aprobación.",
        "sample_payload": dict(_PAYMENT_SAMPLE, payment_status="pending", scheduled_date="2025-03-25"),
    },
    "cuenta_pagar.pago_aprobado": {
        "name": "Pago aprobado",
        "module": "cuentas_pagar",
        "description": "Un pago programado fue aprobado y aplicado al saldo.",
        "sample_payload": _PAYMENT_SAMPLE,
    },
    "cuenta_pagar.pago_rechazado": {
        "name": "Pago rechazado",
        "module": "cuentas_pagar",
        "description": "Un pago programado fue rechazado.",
        "sample_payload": dict(_PAYMENT_SAMPLE, payment_status="cancelled", comments="Fondos insuficientes"),
    },
    "cuenta_pagar.pagada": {
        "name": "Cuenta pagada",
        "module": "cuentas_pagar",
        "description": "El saldo de la cuenta por pagar llegó a cero.",
        "sample_payload": dict(_PAYMENT_SAMPLE, balance=0.0, status="paid"),
    },
    "suscripcion.prueba_por_vencer": {
        "name": "Prueba por vencer",
        "module": "suscripciones",
        "description": "El periodo de prueba termina en los próximos días.",
        "sample_payload": _SUBSCRIPTION_SAMPLE,
    },
    "suscripcion.pago_fallido": {
        "name": "Pago de suscripción fallido",
        "module": "suscripciones",
        "description": "El proveedor de pagos no pudo cobrar la suscripción.",
        "sample_payload": dict(_SUBSCRIPTION_SAMPLE, status="suspended", amount_due=99000.0),
    },
}

COMMON_FIELDS = {
    "evento_id": "Identificador único del evento (UUID)",
    "timestamp": "Fecha y hora del evento (ISO 8601)",
    "organization_id": "ID de la organización donde ocurrió el evento",
    "user_id": "ID del usuario que disparó el evento (opcional)",
    "module": "Módulo donde se originó el evento",
}

MODULE_FIELDS = {
    "crm": {"customer_id": "c-123", "customer_name": "Juan Pérez", "customer_email": "juan@email.com", "lead_score": 85},
    "ventas": {"invoice_id": "FACT-0001", "amount": 250000, "currency": "COP", "payment_method": "cash"},
    "inventario": {"product_id": "p-001", "product_name": "Arroz 500g", "stock": 4, "min_stock": 10},
    "cuentas_pagar": {k: v for k, v in _PAYMENT_SAMPLE.items() if k in ("supplier_name", "amount", "balance", "due_date")},
}


def is_system_event(code: str) -> bool:
    return code in SYSTEM_EVENTS


def code_examples(module: str) -> dict:
    """Ejemplo de payload y de uso para crear un evento personalizado en un módulo."""
    payload = {
        "evento_id": "6f1c2a5e-0000-4000-8000-00000000abcd",
        "timestamp": "2025-01-31T10:30:00Z",
        "organization_id": "<organization-id>",
        "user_id": "<user-id>",
        "module": module,
    }
    payload.update(MODULE_FIELDS.get(module, {"detalle": "valor"}))
    code = f"{module}.mi_evento"
    return {
        "module": module,
        "event_code": code,
        "common_fields": COMMON_FIELDS,
        "sample_payload": payload,
        "system_events": [c for c, e in SYSTEM_EVENTS.items() if e["module"] == module],
        "template_example": "{{ module }}: evento {{ evento_id }} registrado el {{ timestamp }}",
        "condition_example": {"module": module, "amount": {"gte": 100000}},
        "emit_example": {
            "method": "POST",
            "path": "/notifications/emit",
            "body": {"event_code": code, "payload": payload},
        },
    }
