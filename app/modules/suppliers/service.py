import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.modules.suppliers.models import Supplier
from app.modules.suppliers.schemas import SupplierCreate, SupplierUpdate

logger = logging.getLogger(__name__)


class SupplierService:
    """Servicio para gestión de proveedores"""

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self, tenant_id: UUID):
        return self.db.query(Supplier).filter(
            Supplier.tenant_id == tenant_id,
            Supplier.deleted_at.is_(None)
        )

    def _ensure_unique_nit(self, tenant_id: UUID, nit: Optional[str], exclude_id: Optional[UUID] = None):
        if not nit:
            return
        query = self._base_query(tenant_id).filter(Supplier.nit == nit)
        if exclude_id:
            query = query.filter(Supplier.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe un proveedor con NIT {nit}"
            )

    def get_supplier(self, supplier_id: UUID, tenant_id: UUID) -> Supplier:
        supplier = self._base_query(tenant_id).filter(Supplier.id == supplier_id).first()
        if not supplier:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proveedor no encontrado")
        return supplier

    def create_supplier(self, data: SupplierCreate, tenant_id: UUID) -> Supplier:
        try:
            self._ensure_unique_nit(tenant_id, data.nit)
            supplier = Supplier(**data.model_dump(), tenant_id=tenant_id)
            self.db.add(supplier)
            self.db.commit()
            self.db.refresh(supplier)
            return supplier
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando proveedor: {str(e)}"
            )

    def list_suppliers(
        self,
        tenant_id: UUID,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self._base_query(tenant_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Supplier.name.ilike(pattern), Supplier.nit.ilike(pattern)))
        if is_active is not None:
            query = query.filter(Supplier.is_active == is_active)

        total = query.count()
        items = query.order_by(Supplier.name).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def update_supplier(self, supplier_id: UUID, data: SupplierUpdate, tenant_id: UUID) -> Supplier:
        try:
            supplier = self.get_supplier(supplier_id, tenant_id)
            update_data = data.model_dump(exclude_unset=True)
            if "nit" in update_data:
                self._ensure_unique_nit(tenant_id, update_data["nit"], exclude_id=supplier.id)
            for field, value in update_data.items():
                setattr(supplier, field, value)
            self.db.commit()
            self.db.refresh(supplier)
            return supplier
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando proveedor: {str(e)}"
            )

    def delete_supplier(self, supplier_id: UUID, tenant_id: UUID) -> dict:
        """Eliminación lógica; las cuentas por pagar existentes se conservan."""
        supplier = self.get_supplier(supplier_id, tenant_id)
        supplier.soft_delete()
        self.db.commit()
        logger.info(f"Supplier {supplier_id} soft-deleted for tenant {tenant_id}")
        return {"message": "Proveedor eliminado"}
