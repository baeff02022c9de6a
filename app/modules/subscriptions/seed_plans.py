"""
Planes de suscripción por defecto.

Uso: python -m app.modules.subscriptions.seed_plans
"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.database.database import SessionLocal
from app.modules.subscriptions.models import Plan, PlanType

logger = logging.getLogger(__name__)

PLANS_DATA = [
    {
        "name": "Plan Gratuito",
        "code": "FREE",
        "type": PlanType.FREE.value,
        "description": "Plan gratuito para empezar",
        "monthly_price": Decimal("0"),
        "yearly_price": Decimal("0"),
        "max_users": 2,
        "max_branches": 1,
        "max_invoices_month": 30,
        "has_advanced_reports": False,
        "has_api_access": False,
        "is_popular": False,
        "sort_order": 1,
    },
    {
        "name": "Plan Básico",
        "code": "BASIC",
        "type": PlanType.BASIC.value,
        "description": "Ideal para pequeñas empresas",
        "monthly_price": Decimal("49900"),
        "yearly_price": Decimal("499000"),  # 10 meses
        "max_users": 5,
        "max_branches": 2,
        "max_invoices_month": 300,
        "has_advanced_reports": True,
        "has_api_access": False,
        "is_popular": True,
        "sort_order": 2,
    },
    {
        "name": "Plan Profesional",
        "code": "PROFESSIONAL",
        "type": PlanType.PROFESSIONAL.value,
        "description": "Para empresas en crecimiento con varias sedes",
        "monthly_price": Decimal("99900"),
        "yearly_price": Decimal("999000"),
        "max_users": 15,
        "max_branches": 5,
        "max_invoices_month": 2000,
        "has_advanced_reports": True,
        "has_api_access": True,
        "is_popular": False,
        "sort_order": 3,
    },
    {
        "name": "Plan Empresarial",
        "code": "ENTERPRISE",
        "type": PlanType.ENTERPRISE.value,
        "description": "Sin límites de usuarios ni sedes",
        "monthly_price": Decimal("199900"),
        "yearly_price": Decimal("1999000"),
        "max_users": None,  # Ilimitado
        "max_branches": None,
        "max_invoices_month": None,
        "has_advanced_reports": True,
        "has_api_access": True,
        "is_popular": False,
        "sort_order": 4,
    },
]


def seed_plans(db: Session) -> int:
    """Crea o actualiza los planes por código. Retorna cuántos se crearon."""
    created = 0
    for plan_data in PLANS_DATA:
        existing = db.query(Plan).filter(Plan.code == plan_data["code"]).first()
        if existing:
            for key, value in plan_data.items():
                if key != "code":
                    setattr(existing, key, value)
        else:
            db.add(Plan(**plan_data))
            created += 1
    db.commit()
    logger.info(f"Plans seeded ({created} created, {len(PLANS_DATA) - created} updated)")
    return created


def main():
    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        seed_plans(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error seeding plans: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
