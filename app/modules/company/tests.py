"""
Tests para organización, miembros e invitaciones
"""

import pytest
from datetime import timedelta

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.common.dates import utcnow
from app.modules.auth.models import UserCompany, CompanyInvitation
from app.modules.company import service
from app.modules.company.models import Company
from app.modules.company.schemas import InvitationCreate, OrganizationUpdate
from app.modules.subscriptions import crud as subscriptions_crud
from conftest import make_user, headers_for


def invite(db: Session, company, inviter, email: str, role: str = "viewer") -> CompanyInvitation:
    return service.create_invitation(db, company.id, inviter.id, InvitationCreate(email=email, role=role))


class TestOrganization:

    def test_update_profile(self, db_session: Session, sample_company):
        updated = service.update_organization(db_session, sample_company.id, OrganizationUpdate(
            legal_name="Comercializadora Andina S.A.S.",
            subdomain="andina",
            primary_color="#1A73E8"
        ))
        assert updated.legal_name == "Comercializadora Andina S.A.S."
        assert updated.subdomain == "andina"

    def test_nit_and_subdomain_unique(self, db_session: Session, sample_company):
        other = Company(name="Otra", nit="901000111", subdomain="otra")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(HTTPException) as exc:
            service.update_organization(db_session, sample_company.id, OrganizationUpdate(nit="901000111"))
        assert exc.value.status_code == 409

        with pytest.raises(HTTPException) as exc:
            service.update_organization(db_session, sample_company.id, OrganizationUpdate(subdomain="otra"))
        assert exc.value.status_code == 409


class TestMembers:

    def test_last_owner_is_protected(self, db_session: Session, sample_company, sample_user):
        with pytest.raises(HTTPException) as exc:
            service.update_member_role(db_session, sample_company.id, sample_user.id, "admin", "owner")
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            service.remove_member(db_session, sample_company.id, sample_user.id, "owner")
        assert exc.value.status_code == 400

    def test_owner_can_step_down_when_another_exists(self, db_session: Session, sample_company, sample_user):
        make_user(db_session, sample_company, "socio@andina.co", role="owner")
        member = service.update_member_role(db_session, sample_company.id, sample_user.id, "admin", "owner")
        assert member["role"] == "admin"

    def test_admin_cannot_grant_owner(self, db_session: Session, sample_company, sample_user):
        seller = make_user(db_session, sample_company, "ventas@andina.co", role="seller")
        with pytest.raises(HTTPException) as exc:
            service.update_member_role(db_session, sample_company.id, seller.id, "owner", "admin")
        assert exc.value.status_code == 403

    def test_remove_member(self, db_session: Session, sample_company, sample_user):
        seller = make_user(db_session, sample_company, "ventas@andina.co", role="seller")
        service.remove_member(db_session, sample_company.id, seller.id, "admin")

        assert service.list_members(db_session, sample_company.id)["total"] == 1
        assert service.list_members(db_session, sample_company.id, include_inactive=True)["total"] == 2


class TestInvitations:

    def test_invitation_queues_email(self, db_session: Session, sample_company, sample_user, queued_tasks):
        invitation = invite(db_session, sample_company, sample_user, "Nueva@Andina.co", role="accountant")

        assert invitation.invitee_email == "nueva@andina.co"
        assert len(invitation.token) >= 32
        name, _, kwargs = queued_tasks[-1]
        assert name == "send_invitation_email"
        assert kwargs["invitee_email"] == "nueva@andina.co"
        assert kwargs["company_name"] == "Comercializadora Andina"
        assert kwargs["inviter_name"] == "Laura Gómez"
        assert kwargs["role"] == "accountant"

    def test_member_or_pending_cannot_be_invited(self, db_session: Session, sample_company, sample_user):
        with pytest.raises(HTTPException) as exc:
            invite(db_session, sample_company, sample_user, "owner@andina.co")
        assert exc.value.status_code == 400

        invite(db_session, sample_company, sample_user, "nueva@andina.co")
        with pytest.raises(HTTPException) as exc:
            invite(db_session, sample_company, sample_user, "nueva@andina.co")
        assert exc.value.status_code == 400

    def test_pending_invitations_count_against_plan(self, db_session: Session, sample_company, sample_user):
        plan = subscriptions_crud.get_plan_by_code(db_session, "FREE")
        subscriptions_crud.create_subscription(db_session, sample_company.id, plan)

        invite(db_session, sample_company, sample_user, "uno@andina.co")
        with pytest.raises(HTTPException) as exc:
            invite(db_session, sample_company, sample_user, "dos@andina.co")
        assert exc.value.status_code == 403

    def test_accept_creates_membership(self, db_session: Session, sample_company, sample_user):
        invitation = invite(db_session, sample_company, sample_user, "nueva@andina.co", role="accountant")
        newcomer = make_user(db_session, None, "nueva@andina.co")

        result = service.accept_invitation(db_session, invitation.token, newcomer)

        membership = db_session.query(UserCompany).filter(UserCompany.user_id == newcomer.id).one()
        assert result["company_id"] == sample_company.id
        assert membership.role == "accountant"
        db_session.refresh(invitation)
        assert invitation.is_accepted is True

        with pytest.raises(HTTPException) as exc:
            service.accept_invitation(db_session, invitation.token, newcomer)
        assert exc.value.status_code == 400

    def test_accept_reactivates_former_member(self, db_session: Session, sample_company, sample_user):
        former = make_user(db_session, sample_company, "antiguo@andina.co", role="seller")
        service.remove_member(db_session, sample_company.id, former.id, "owner")
        invitation = invite(db_session, sample_company, sample_user, "antiguo@andina.co", role="admin")

        service.accept_invitation(db_session, invitation.token, former)

        membership = db_session.query(UserCompany).filter(UserCompany.user_id == former.id).one()
        assert membership.is_active is True
        assert membership.role == "admin"

    def test_accept_with_other_email(self, db_session: Session, sample_company, sample_user):
        invitation = invite(db_session, sample_company, sample_user, "nueva@andina.co")
        intruder = make_user(db_session, None, "intruso@correo.co")

        with pytest.raises(HTTPException) as exc:
            service.accept_invitation(db_session, invitation.token, intruder)
        assert exc.value.status_code == 403

    def test_expired_and_revoked(self, db_session: Session, sample_company, sample_user):
        newcomer = make_user(db_session, None, "nueva@andina.co")
        invitation = invite(db_session, sample_company, sample_user, "nueva@andina.co")
        invitation.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(HTTPException) as exc:
            service.accept_invitation(db_session, invitation.token, newcomer)
        assert exc.value.status_code == 400

        service.revoke_invitation(db_session, sample_company.id, invitation.id)
        with pytest.raises(HTTPException) as exc:
            service.accept_invitation(db_session, invitation.token, newcomer)
        assert exc.value.status_code == 404


class TestOrganizationsAPI:

    def test_profile_and_members(self, client, auth_headers):
        response = client.get("/organizations/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["nit"] == "900123456"

        response = client.patch("/organizations/me", json={"city": "Cali"}, headers=auth_headers)
        assert response.json()["city"] == "Cali"

        response = client.get("/organizations/members", headers=auth_headers)
        assert response.json()["total"] == 1

    def test_viewer_cannot_invite(self, client, db_session, sample_company, sample_user):
        viewer = make_user(db_session, sample_company, "lector@andina.co", role="viewer")
        response = client.post(
            "/organizations/invitations",
            json={"email": "x@andina.co"},
            headers=headers_for(viewer, sample_company)
        )
        assert response.status_code == 403

    def test_invite_and_accept(self, client, db_session, sample_company, auth_headers, queued_tasks):
        response = client.post(
            "/organizations/invitations",
            json={"email": "contador@andina.co", "role": "accountant"},
            headers=auth_headers
        )
        assert response.status_code == 201
        token = queued_tasks[-1][2]["invitation_token"]

        newcomer = make_user(db_session, None, "contador@andina.co")
        response = client.post(
            "/organizations/invitations/accept",
            json={"token": token},
            headers={"Authorization": headers_for(newcomer, sample_company)["Authorization"]}
        )
        assert response.status_code == 200
        assert response.json()["role"] == "accountant"
