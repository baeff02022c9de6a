from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.suppliers.service import SupplierService
from app.modules.suppliers.schemas import SupplierCreate, SupplierUpdate, SupplierOut, SupplierList

suppliers_router = APIRouter(prefix="/suppliers", tags=["Suppliers"])

WRITE_ROLES = ["owner", "admin", "accountant"]
READ_ROLES = ["owner", "admin", "accountant", "seller", "viewer"]


@suppliers_router.post("/", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
def create_supplier(
    supplier: SupplierCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return SupplierService(db).create_supplier(supplier, auth_context.tenant_id)


@suppliers_router.get("/", response_model=SupplierList)
def list_suppliers(
    search: Optional[str] = Query(None, description="Buscar por nombre o NIT"),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return SupplierService(db).list_suppliers(auth_context.tenant_id, search, is_active, limit, offset)


@suppliers_router.get("/{supplier_id}", response_model=SupplierOut)
def get_supplier(
    supplier_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return SupplierService(db).get_supplier(supplier_id, auth_context.tenant_id)


@suppliers_router.patch("/{supplier_id}", response_model=SupplierOut)
def update_supplier(
    supplier_id: UUID,
    supplier: SupplierUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return SupplierService(db).update_supplier(supplier_id, supplier, auth_context.tenant_id)


@suppliers_router.delete("/{supplier_id}")
def delete_supplier(
    supplier_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    return SupplierService(db).delete_supplier(supplier_id, auth_context.tenant_id)
