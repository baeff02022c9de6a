"""
Tests para el módulo de Proveedores
"""

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.modules.suppliers.models import Supplier
from app.modules.suppliers.schemas import SupplierCreate, SupplierUpdate
from app.modules.suppliers.service import SupplierService


class TestSupplierSchemas:

    def test_nit_is_validated_and_formatted(self):
        supplier = SupplierCreate(name="Papelería Central", nit="800.197.268-4")
        assert supplier.nit == "800197268-4"

    def test_invalid_nit(self):
        with pytest.raises(ValidationError):
            SupplierCreate(name="Papelería Central", nit="ABC")

    def test_blank_optional_fields(self):
        supplier = SupplierCreate(name="Papelería Central", nit="  ", phone="")
        assert supplier.nit is None
        assert supplier.phone is None
        assert supplier.payment_terms_days == 30


class TestSupplierService:

    def test_create_and_duplicate_nit(self, db_session: Session, sample_company):
        service = SupplierService(db_session)
        service.create_supplier(SupplierCreate(name="Papelería Central", nit="900555111"), sample_company.id)

        with pytest.raises(HTTPException) as exc:
            service.create_supplier(SupplierCreate(name="Otra", nit="900555111"), sample_company.id)
        assert exc.value.status_code == 409

    def test_same_nit_in_other_tenant(self, db_session: Session, sample_company):
        from app.modules.company.models import Company

        other = Company(name="Otra Empresa", nit="901000111", email="otra@empresa.co")
        db_session.add(other)
        db_session.commit()

        service = SupplierService(db_session)
        service.create_supplier(SupplierCreate(name="Papelería", nit="900555111"), sample_company.id)
        created = service.create_supplier(SupplierCreate(name="Papelería", nit="900555111"), other.id)
        assert created.tenant_id == other.id

    def test_search_and_filter(self, db_session: Session, sample_company, sample_supplier):
        service = SupplierService(db_session)
        service.create_supplier(SupplierCreate(name="Aceros Medellín", nit="890900123"), sample_company.id)

        by_name = service.list_suppliers(sample_company.id, search="aceros")
        assert by_name["total"] == 1
        assert by_name["items"][0].name == "Aceros Medellín"

        by_nit = service.list_suppliers(sample_company.id, search="800197")
        assert [s.id for s in by_nit["items"]] == [sample_supplier.id]

        everything = service.list_suppliers(sample_company.id, is_active=True)
        assert everything["total"] == 2

    def test_update(self, db_session: Session, sample_company, sample_supplier):
        updated = SupplierService(db_session).update_supplier(
            sample_supplier.id, SupplierUpdate(payment_terms_days=45, is_active=False), sample_company.id
        )
        assert updated.payment_terms_days == 45
        assert updated.is_active is False

    def test_soft_delete_hides_supplier(self, db_session: Session, sample_company, sample_supplier):
        service = SupplierService(db_session)
        service.delete_supplier(sample_supplier.id, sample_company.id)

        assert db_session.get(Supplier, sample_supplier.id).deleted_at is not None
        with pytest.raises(HTTPException) as exc:
            service.get_supplier(sample_supplier.id, sample_company.id)
        assert exc.value.status_code == 404
        assert service.list_suppliers(sample_company.id)["total"] == 0


class TestSuppliersAPI:

    def test_crud(self, client, auth_headers):
        response = client.post("/suppliers/", json={
            "name": "Transportes del Norte",
            "nit": "830042244",
            "email": "pagos@tnorte.co",
            "payment_terms_days": 60,
        }, headers=auth_headers)
        assert response.status_code == 201
        supplier_id = response.json()["id"]

        response = client.get("/suppliers/?search=norte", headers=auth_headers)
        assert response.json()["total"] == 1

        response = client.patch(f"/suppliers/{supplier_id}", json={"contact_name": "Andrés"}, headers=auth_headers)
        assert response.json()["contact_name"] == "Andrés"

        response = client.delete(f"/suppliers/{supplier_id}", headers=auth_headers)
        assert response.status_code == 200
        assert client.get(f"/suppliers/{supplier_id}", headers=auth_headers).status_code == 404
