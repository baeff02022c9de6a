"""
Tests para registro (wizard), login y tokens
"""

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import UserCreate
from app.modules.auth.service import AuthService
from app.modules.auth.utils import create_refresh_token, create_access_token, verify_token
from app.modules.branches.models import Branch
from app.modules.company.models import Company
from app.modules.subscriptions.crud import get_current_subscription


def signup_payload(**overrides):
    payload = {
        "email": "gerencia@cafeteria.co",
        "password": "ClaveSegura1",
        "profile": {"first_name": "Camilo", "last_name": "Ríos", "phone_number": "3104567890"},
        "organization": {
            "name": "Cafetería La 10",
            "nit": "901456789",
            "city": "Medellín",
            "phone_number": "3004445566",
            "subdomain": "cafeteria-la-10",
        },
        "plan_code": "BASIC",
    }
    payload.update(overrides)
    return payload


class TestRegister:

    def test_wizard_creates_everything(self, db_session: Session):
        result = AuthService(db_session).register(UserCreate(**signup_payload()))

        user = db_session.query(User).filter(User.email == "gerencia@cafeteria.co").one()
        company = db_session.get(Company, result.organization_id)
        branch = db_session.get(Branch, result.branch_id)
        membership = db_session.query(UserCompany).filter(UserCompany.user_id == user.id).one()
        subscription = get_current_subscription(db_session, company.id)

        assert company.nit == "901456789"
        assert membership.role == "owner"
        assert branch.is_main is True
        assert branch.name == "Sede principal"
        assert branch.city == "Medellín"
        assert subscription.plan.code == "BASIC"
        assert result.subscription_status == "trial"
        assert result.companies[0].company_name == "Cafetería La 10"
        assert verify_token(result.refresh_token, expected_type="refresh")["sub"] == str(user.id)

    def test_custom_branch(self, db_session: Session):
        result = AuthService(db_session).register(UserCreate(**signup_payload(
            branch={"name": "Local Laureles", "address": "Cra 70 # 40-12"}
        )))
        branch = db_session.get(Branch, result.branch_id)
        assert branch.name == "Local Laureles"
        assert branch.address == "Cra 70 # 40-12"

    def test_duplicate_email_and_nit(self, db_session: Session):
        service = AuthService(db_session)
        service.register(UserCreate(**signup_payload()))

        with pytest.raises(HTTPException) as exc:
            service.register(UserCreate(**signup_payload(
                organization={"name": "Otra", "nit": "901999888"}
            )))
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            service.register(UserCreate(**signup_payload(
                email="otro@cafeteria.co",
                organization={"name": "Otra", "nit": "901456789"}
            )))
        assert exc.value.status_code == 400

    def test_unknown_plan_leaves_nothing_behind(self, db_session: Session):
        with pytest.raises(HTTPException) as exc:
            AuthService(db_session).register(UserCreate(**signup_payload(plan_code="GOLD")))
        assert exc.value.status_code == 400
        assert db_session.query(User).count() == 0
        assert db_session.query(Company).count() == 0

    def test_schema_validation(self):
        with pytest.raises(ValidationError):
            UserCreate(**signup_payload(password="corta"))
        with pytest.raises(ValidationError):
            UserCreate(**signup_payload(billing_cycle="weekly"))
        with pytest.raises(ValidationError):
            UserCreate(**signup_payload(organization={"name": "Mala", "nit": "12"}))


class TestLoginAndTokens:

    def test_login(self, db_session: Session, sample_user):
        result = AuthService(db_session).login("owner@andina.co", "Secreto123")
        assert result.user.email == "owner@andina.co"
        assert result.companies[0].role == "owner"
        db_session.refresh(sample_user)
        assert sample_user.last_login is not None

    def test_bad_credentials(self, db_session: Session, sample_user):
        with pytest.raises(HTTPException) as exc:
            AuthService(db_session).login("owner@andina.co", "incorrecta")
        assert exc.value.status_code == 401

    def test_inactive_user(self, db_session: Session, sample_user):
        sample_user.is_active = False
        db_session.commit()
        with pytest.raises(HTTPException) as exc:
            AuthService(db_session).login("owner@andina.co", "Secreto123")
        assert exc.value.status_code == 401

    def test_refresh(self, db_session: Session, sample_user):
        result = AuthService(db_session).refresh_access_token(create_refresh_token(str(sample_user.id)))
        assert verify_token(result.access_token, expected_type="access")["sub"] == str(sample_user.id)

    def test_access_token_is_not_a_refresh_token(self, db_session: Session, sample_user):
        token = create_access_token({"sub": str(sample_user.id)})
        with pytest.raises(HTTPException) as exc:
            AuthService(db_session).refresh_access_token(token)
        assert exc.value.status_code == 401


class TestAuthAPI:

    def test_register_then_login(self, client):
        response = client.post("/auth/register", json=signup_payload(plan_code="FREE"))
        assert response.status_code == 201
        assert response.json()["subscription_status"] == "active"

        response = client.post("/auth/login", data={
            "username": "gerencia@cafeteria.co", "password": "ClaveSegura1"
        })
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.json()["user"]["profile"]["full_name"] == "Camilo Ríos"

    def test_context_requires_membership(self, client, db_session, sample_company, auth_headers):
        from conftest import make_user, headers_for

        response = client.get("/auth/context", headers=auth_headers)
        assert response.json()["user_role"] == "owner"

        outsider = make_user(db_session, None, "externo@otra.co")
        response = client.get("/auth/context", headers=headers_for(outsider, sample_company))
        assert response.status_code == 403

    def test_invalid_token(self, client, sample_company):
        response = client.get("/auth/me", headers={"Authorization": "Bearer no-es-un-jwt"})
        assert response.status_code == 401
