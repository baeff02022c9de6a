from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.branches import service
from app.modules.branches.schemas import BranchCreate, BranchUpdate, BranchOut, BranchList

branch_router = APIRouter(prefix="/branches", tags=["Branches"])

@branch_router.post("/", response_model=BranchOut, status_code=status.HTTP_201_CREATED)
def create_branch(
    branch: BranchCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Crear nueva sede.

    Solo owner o admin. Se valida el límite de sedes del plan actual.
    """
    return service.create_branch(branch, db, auth_context.tenant_id)

@branch_router.get("/", response_model=BranchList)
def get_all_branches(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    return service.get_all_branches(db, auth_context.tenant_id, limit, offset, active_only)

@branch_router.get("/{branch_id}", response_model=BranchOut)
def get_branch_by_id(
    branch_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_any_role())
):
    return service.get_branch_by_id(branch_id, db, auth_context.tenant_id)

@branch_router.patch("/{branch_id}", response_model=BranchOut)
def update_branch(
    branch_id: UUID,
    branch_update: BranchUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Actualizar sede.

    - Marcar is_main desmarca la sede principal anterior.
    - La sede principal no se puede desactivar.
    """
    return service.update_branch(branch_id, branch_update, db, auth_context.tenant_id)

@branch_router.delete("/{branch_id}")
def delete_branch(
    branch_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Eliminar sede. Si tiene facturas de compra asociadas queda desactivada.
    """
    return service.delete_branch(branch_id, db, auth_context.tenant_id)
