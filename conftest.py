"""
Fixtures compartidos por los tests de los módulos.

La base de datos es sqlite en memoria; las tablas se crean y eliminan por test.
Las tareas de Celery no se ejecutan: .delay queda registrado en queued_tasks.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, SessionLocal, sync_engine, get_db
from app.modules.auth.models import User, Profile, UserCompany
from app.modules.auth.utils import hash_password, create_access_token
from app.modules.company.models import Company
from app.modules.email.tasks import send_email_task, send_invitation_email_task
from app.modules.notifications.tasks import deliver_notification_task
from app.modules.subscriptions.seed_plans import seed_plans
from app.modules.suppliers.models import Supplier


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    seed_plans(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def queued_tasks(monkeypatch):
    """Reemplaza .delay de las tareas por un registro en memoria."""
    calls = []

    def recorder(name):
        def delay(*args, **kwargs):
            calls.append((name, args, kwargs))
        return delay

    monkeypatch.setattr(send_email_task, "delay", recorder("send_email"))
    monkeypatch.setattr(send_invitation_email_task, "delay", recorder("send_invitation_email"))
    monkeypatch.setattr(deliver_notification_task, "delay", recorder("deliver_notification"))
    return calls


@pytest.fixture
def sample_company(db_session):
    company = Company(
        name="Comercializadora Andina",
        nit="900123456",
        email="contacto@andina.co",
        city="Bogotá",
        country="CO"
    )
    db_session.add(company)
    db_session.commit()
    db_session.refresh(company)
    return company


def make_user(db_session, company, email, role="owner", password="Secreto123"):
    profile = Profile(first_name="Laura", last_name="Gómez")
    db_session.add(profile)
    db_session.flush()
    user = User(email=email, password=hash_password(password), profile_id=profile.id, is_active=True)
    db_session.add(user)
    db_session.flush()
    if company is not None:
        db_session.add(UserCompany(user_id=user.id, company_id=company.id, role=role, is_active=True))
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def sample_user(db_session, sample_company):
    """Usuario owner de sample_company."""
    return make_user(db_session, sample_company, "owner@andina.co")


def headers_for(user, company):
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}", "X-Company-ID": str(company.id)}


@pytest.fixture
def auth_headers(sample_user, sample_company):
    return headers_for(sample_user, sample_company)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_supplier(db_session, sample_company):
    supplier = Supplier(
        tenant_id=sample_company.id,
        name="Distribuidora del Valle",
        nit="800197268",
        email="cartera@delvalle.co",
        payment_terms_days=30
    )
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture
def make_account(db_session, sample_company, sample_supplier):
    """Crea cuentas por pagar sin factura asociada."""
    from datetime import date, timedelta
    from app.modules.payables.models import AccountPayable

    def factory(amount="1000000.00", due_in_days=30, supplier=None, **extra):
        amount = Decimal(str(amount))
        account = AccountPayable(
            tenant_id=sample_company.id,
            supplier_id=(supplier or sample_supplier).id,
            amount=amount,
            balance=extra.pop("balance", amount),
            due_date=date.today() + timedelta(days=due_in_days),
            status=extra.pop("status", "pending"),
            **extra
        )
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return factory
