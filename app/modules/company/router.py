from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.models import User
from app.modules.auth.schemas import AuthContext
from app.modules.company import service
from app.modules.company.schemas import (
    OrganizationOut, OrganizationUpdate, MemberOut, MemberList, MemberRoleUpdate,
    InvitationCreate, InvitationOut, InvitationAccept, InvitationAcceptResult,
)

company_router = APIRouter(prefix="/organizations", tags=["Organizations"])


@company_router.get("/me", response_model=OrganizationOut)
def get_my_organization(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Organización seleccionada con el header X-Company-ID."""
    return service.get_organization(db, auth_context.tenant_id)


@company_router.patch("/me", response_model=OrganizationOut)
def update_my_organization(
    update_data: OrganizationUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return service.update_organization(db, auth_context.tenant_id, update_data)


# ===== MIEMBROS =====

@company_router.get("/members", response_model=MemberList)
def list_members(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.list_members(db, auth_context.tenant_id, include_inactive)


@company_router.patch("/members/{user_id}", response_model=MemberOut)
def update_member_role(
    user_id: UUID,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Cambia el rol de un miembro. La organización nunca se queda sin propietario.
    """
    return service.update_member_role(db, auth_context.tenant_id, user_id, payload.role, auth_context.user_role)


@company_router.delete("/members/{user_id}")
def remove_member(
    user_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return service.remove_member(db, auth_context.tenant_id, user_id, auth_context.user_role)


# ===== INVITACIONES =====

@company_router.post("/invitations", response_model=InvitationOut, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Invitar un usuario por email.

    La invitación vence a los 7 días y cuenta contra el límite de usuarios del plan.
    """
    return service.create_invitation(db, auth_context.tenant_id, auth_context.user_id, payload)


@company_router.get("/invitations", response_model=List[InvitationOut])
def list_invitations(
    pending_only: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return service.list_invitations(db, auth_context.tenant_id, pending_only)


@company_router.post("/invitations/accept", response_model=InvitationAcceptResult)
def accept_invitation(
    payload: InvitationAccept,
    db: Session = Depends(get_db),
    current_user: User = Depends(AuthDependencies.get_current_user)
):
    """Aceptar una invitación. No requiere X-Company-ID."""
    return service.accept_invitation(db, payload.token, current_user)


@company_router.delete("/invitations/{invitation_id}", response_model=InvitationOut)
def revoke_invitation(
    invitation_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return service.revoke_invitation(db, auth_context.tenant_id, invitation_id)
