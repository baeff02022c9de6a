import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.branches.models import Branch
from app.modules.branches.schemas import BranchCreate, BranchUpdate
from app.modules.purchases.models import PurchaseInvoice
from app.modules.subscriptions.crud import check_plan_limit

logger = logging.getLogger(__name__)


def _get_branch(db: Session, branch_id: UUID, tenant_id: UUID) -> Branch:
    branch = db.query(Branch).filter(Branch.id == branch_id, Branch.tenant_id == tenant_id).first()
    if not branch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sede no encontrada")
    return branch


def _check_unique(db: Session, tenant_id: UUID, name: str = None, code: str = None, exclude_id: UUID = None):
    if name:
        query = db.query(Branch).filter(Branch.tenant_id == tenant_id, Branch.name == name)
        if exclude_id:
            query = query.filter(Branch.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe una sede con el nombre '{name}' en esta empresa"
            )
    if code:
        query = db.query(Branch).filter(Branch.tenant_id == tenant_id, Branch.code == code)
        if exclude_id:
            query = query.filter(Branch.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe una sede con el código '{code}'"
            )


def _clear_main(db: Session, tenant_id: UUID, keep_id: UUID = None):
    query = db.query(Branch).filter(Branch.tenant_id == tenant_id, Branch.is_main == True)
    if keep_id:
        query = query.filter(Branch.id != keep_id)
    for other in query.all():
        other.is_main = False


def create_branch(branch: BranchCreate, db: Session, tenant_id: UUID, commit: bool = True) -> Branch:
    """Crea una sede respetando el límite max_branches del plan."""
    check_plan_limit(db, tenant_id, "branches")
    _check_unique(db, tenant_id, branch.name, branch.code)

    has_main = db.query(Branch).filter(Branch.tenant_id == tenant_id, Branch.is_main == True).first()
    new_branch = Branch(**branch.model_dump(), tenant_id=tenant_id)
    if not has_main:
        new_branch.is_main = True
    elif new_branch.is_main:
        _clear_main(db, tenant_id)

    db.add(new_branch)
    if commit:
        db.commit()
        db.refresh(new_branch)
    else:
        db.flush()
    logger.info(f"Branch '{new_branch.name}' created for tenant {tenant_id}")
    return new_branch


def get_all_branches(db: Session, tenant_id: UUID, limit: int = 100, offset: int = 0, active_only: bool = False):
    query = db.query(Branch).filter(Branch.tenant_id == tenant_id)
    if active_only:
        query = query.filter(Branch.is_active == True)
    total = query.count()
    items = query.order_by(Branch.is_main.desc(), Branch.name).offset(offset).limit(limit).all()
    return {"items": items, "total": total, "limit": limit, "offset": offset}


def get_branch_by_id(branch_id: UUID, db: Session, tenant_id: UUID) -> Branch:
    return _get_branch(db, branch_id, tenant_id)


def update_branch(branch_id: UUID, branch_update: BranchUpdate, db: Session, tenant_id: UUID) -> Branch:
    branch = _get_branch(db, branch_id, tenant_id)
    data = branch_update.model_dump(exclude_unset=True)

    _check_unique(db, tenant_id, data.get("name"), data.get("code"), exclude_id=branch.id)

    if data.get("is_main") is False and branch.is_main:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Marca otra sede como principal en lugar de desmarcar esta"
        )
    if data.get("is_active") is False and (branch.is_main or data.get("is_main")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No se puede desactivar la sede principal"
        )
    if data.get("is_active") and not branch.is_active:
        check_plan_limit(db, tenant_id, "branches")
    if data.get("is_main"):
        _clear_main(db, tenant_id, keep_id=branch.id)

    for key, value in data.items():
        setattr(branch, key, value)

    db.commit()
    db.refresh(branch)
    return branch


def delete_branch(branch_id: UUID, db: Session, tenant_id: UUID) -> dict:
    """
    Elimina una sede. La principal no se puede eliminar; si la sede tiene
    facturas de compra asociadas solo se desactiva.
    """
    branch = _get_branch(db, branch_id, tenant_id)
    if branch.is_main:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No se puede eliminar la sede principal"
        )

    in_use = db.query(PurchaseInvoice.id).filter(
        PurchaseInvoice.tenant_id == tenant_id,
        PurchaseInvoice.branch_id == branch.id
    ).first()

    if in_use:
        branch.is_active = False
        db.commit()
        return {"message": "La sede tiene documentos asociados y fue desactivada", "deactivated": True}

    db.delete(branch)
    db.commit()
    return {"message": "Sede eliminada", "deactivated": False}
