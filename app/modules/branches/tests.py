"""
Tests para el módulo de Sedes
"""

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.modules.branches.models import Branch
from app.modules.branches.schemas import BranchCreate, BranchUpdate
from app.modules.branches.service import create_branch, update_branch, delete_branch, get_all_branches
from app.modules.purchases.models import PurchaseInvoice
from app.modules.subscriptions import crud as subscriptions_crud


def subscribe(db: Session, company, code: str):
    plan = subscriptions_crud.get_plan_by_code(db, code)
    return subscriptions_crud.create_subscription(db, company.id, plan)


class TestMainBranch:

    def test_first_branch_is_main(self, db_session: Session, sample_company):
        branch = create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        assert branch.is_main is True

    def test_new_main_replaces_previous(self, db_session: Session, sample_company):
        first = create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        second = create_branch(BranchCreate(name="Norte", is_main=True), db_session, sample_company.id)

        db_session.refresh(first)
        assert second.is_main is True
        assert first.is_main is False

    def test_main_cannot_be_unset_or_deactivated(self, db_session: Session, sample_company):
        main = create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)

        with pytest.raises(HTTPException) as exc:
            update_branch(main.id, BranchUpdate(is_main=False), db_session, sample_company.id)
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            update_branch(main.id, BranchUpdate(is_active=False), db_session, sample_company.id)
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            delete_branch(main.id, db_session, sample_company.id)
        assert exc.value.status_code == 400

    def test_duplicate_name(self, db_session: Session, sample_company):
        create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        with pytest.raises(HTTPException) as exc:
            create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        assert exc.value.status_code == 409


class TestBranchLimits:

    def test_free_plan_allows_one_branch(self, db_session: Session, sample_company):
        subscribe(db_session, sample_company, "FREE")
        create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)

        with pytest.raises(HTTPException) as exc:
            create_branch(BranchCreate(name="Norte"), db_session, sample_company.id)
        assert exc.value.status_code == 403

    def test_reactivation_counts_against_limit(self, db_session: Session, sample_company):
        create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        norte = create_branch(BranchCreate(name="Norte"), db_session, sample_company.id)
        update_branch(norte.id, BranchUpdate(is_active=False), db_session, sample_company.id)
        subscribe(db_session, sample_company, "FREE")

        with pytest.raises(HTTPException) as exc:
            update_branch(norte.id, BranchUpdate(is_active=True), db_session, sample_company.id)
        assert exc.value.status_code == 403

    def test_no_subscription_means_no_limit(self, db_session: Session, sample_company):
        for name in ("Centro", "Norte", "Sur"):
            create_branch(BranchCreate(name=name), db_session, sample_company.id)
        assert get_all_branches(db_session, sample_company.id)["total"] == 3


class TestDeleteBranch:

    def test_delete_unused_branch(self, db_session: Session, sample_company):
        create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        norte = create_branch(BranchCreate(name="Norte"), db_session, sample_company.id)

        result = delete_branch(norte.id, db_session, sample_company.id)
        assert result["deactivated"] is False
        assert db_session.get(Branch, norte.id) is None

    def test_branch_with_invoices_is_deactivated(self, db_session: Session, sample_company, sample_supplier):
        from datetime import date

        create_branch(BranchCreate(name="Centro"), db_session, sample_company.id)
        norte = create_branch(BranchCreate(name="Norte"), db_session, sample_company.id)
        db_session.add(PurchaseInvoice(
            tenant_id=sample_company.id,
            supplier_id=sample_supplier.id,
            branch_id=norte.id,
            number_ext="FV-9",
            due_date=date.today()
        ))
        db_session.commit()

        result = delete_branch(norte.id, db_session, sample_company.id)
        db_session.refresh(norte)
        assert result["deactivated"] is True
        assert norte.is_active is False


class TestBranchesAPI:

    def test_create_and_list(self, client, auth_headers):
        response = client.post("/branches/", json={
            "name": "Sede Chapinero",
            "city": "Bogotá",
            "phone_number": "3001234567",
        }, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["phone_number"] == "+573001234567"
        assert response.json()["is_main"] is True

        response = client.get("/branches/", headers=auth_headers)
        assert response.json()["total"] == 1
