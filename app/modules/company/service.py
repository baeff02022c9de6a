import logging
import secrets
from datetime import timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.common.dates import utcnow, as_utc
from app.modules.auth.models import User, UserCompany, CompanyInvitation
from app.modules.company.models import Company
from app.modules.company.schemas import OrganizationUpdate, InvitationCreate
from app.modules.subscriptions.crud import check_plan_limit

logger = logging.getLogger(__name__)


def get_organization(db: Session, tenant_id: UUID) -> Company:
    company = db.query(Company).filter(Company.id == tenant_id).first()
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organización no encontrada")
    return company


def update_organization(db: Session, tenant_id: UUID, update_data: OrganizationUpdate) -> Company:
    """
    Actualiza los datos de la organización.
    NIT y subdominio deben seguir siendo únicos entre organizaciones.
    """
    company = get_organization(db, tenant_id)
    data = update_data.model_dump(exclude_unset=True)

    if data.get("nit") and data["nit"] != company.nit:
        if db.query(Company).filter(Company.nit == data["nit"], Company.id != tenant_id).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe una organización con ese NIT")
    if data.get("subdomain") and data["subdomain"] != company.subdomain:
        if db.query(Company).filter(Company.subdomain == data["subdomain"], Company.id != tenant_id).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="El subdominio ya está en uso")

    try:
        for field, value in data.items():
            setattr(company, field, value)
        db.commit()
        db.refresh(company)
        return company
    except Exception as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al actualizar la organización: {str(e)}"
        )


# ===== MIEMBROS =====

def _member_dict(membership: UserCompany) -> dict:
    user = membership.user
    return {
        "id": membership.id,
        "user_id": membership.user_id,
        "email": user.email,
        "full_name": user.profile.full_name if user.profile else None,
        "role": membership.role,
        "is_active": membership.is_active,
        "joined_at": membership.joined_at,
    }


def _get_membership(db: Session, tenant_id: UUID, user_id: UUID) -> UserCompany:
    membership = db.query(UserCompany).filter(
        UserCompany.company_id == tenant_id,
        UserCompany.user_id == user_id
    ).first()
    if not membership:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Miembro no encontrado")
    return membership


def _active_owners(db: Session, tenant_id: UUID) -> int:
    return db.query(UserCompany).filter(
        UserCompany.company_id == tenant_id,
        UserCompany.role == "owner",
        UserCompany.is_active == True
    ).count()


def _ensure_not_last_owner(db: Session, membership: UserCompany):
    if membership.role == "owner" and membership.is_active and _active_owners(db, membership.company_id) <= 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="La organización debe conservar al menos un propietario activo"
        )


def list_members(db: Session, tenant_id: UUID, include_inactive: bool = False) -> dict:
    query = db.query(UserCompany).options(
        joinedload(UserCompany.user).joinedload(User.profile)
    ).filter(UserCompany.company_id == tenant_id)
    if not include_inactive:
        query = query.filter(UserCompany.is_active == True)
    members = query.order_by(UserCompany.joined_at).all()
    return {"items": [_member_dict(m) for m in members], "total": len(members)}


def update_member_role(db: Session, tenant_id: UUID, user_id: UUID, role: str, acting_role: str) -> dict:
    membership = _get_membership(db, tenant_id, user_id)

    # Solo un propietario asigna o retira el rol owner
    if "owner" in (role, membership.role) and acting_role != "owner":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo un propietario puede asignar o retirar el rol de propietario"
        )
    if membership.role == "owner" and role != "owner":
        _ensure_not_last_owner(db, membership)

    membership.role = role
    db.commit()
    db.refresh(membership)
    logger.info(f"Member {user_id} of tenant {tenant_id} is now {role}")
    return _member_dict(membership)


def remove_member(db: Session, tenant_id: UUID, user_id: UUID, acting_role: str) -> dict:
    membership = _get_membership(db, tenant_id, user_id)
    if not membership.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El miembro ya está inactivo")
    if membership.role == "owner" and acting_role != "owner":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo un propietario puede retirar a otro propietario"
        )
    _ensure_not_last_owner(db, membership)

    membership.is_active = False
    db.commit()
    logger.info(f"Member {user_id} removed from tenant {tenant_id}")
    return {"message": "Miembro retirado de la organización", "user_id": str(user_id)}


# ===== INVITACIONES =====

def _pending_invitations(db: Session, tenant_id: UUID):
    return db.query(CompanyInvitation).filter(
        CompanyInvitation.company_id == tenant_id,
        CompanyInvitation.is_accepted == False,
        CompanyInvitation.is_revoked == False,
        CompanyInvitation.expires_at > utcnow()
    )


def create_invitation(db: Session, tenant_id: UUID, inviter_id: UUID, data: InvitationCreate) -> CompanyInvitation:
    """
    Invita a un usuario por email. El correo sale en segundo plano (Celery).
    """
    from app.modules.email.tasks import send_invitation_email_task

    email = data.email.lower()
    company = get_organization(db, tenant_id)

    member = db.query(UserCompany).join(User).filter(
        UserCompany.company_id == tenant_id,
        UserCompany.is_active == True,
        User.email == email
    ).first()
    if member:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El usuario ya es miembro de la organización")

    if _pending_invitations(db, tenant_id).filter(CompanyInvitation.invitee_email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ya existe una invitación pendiente para este correo"
        )

    check_plan_limit(db, tenant_id, "users", pending=_pending_invitations(db, tenant_id).count())

    inviter = db.query(User).options(joinedload(User.profile)).filter(User.id == inviter_id).first()

    try:
        invitation = CompanyInvitation(
            company_id=tenant_id,
            invited_by_id=inviter_id,
            invitee_email=email,
            role=data.role,
            token=secrets.token_urlsafe(32),
            expires_at=utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS)
        )
        db.add(invitation)
        db.commit()
        db.refresh(invitation)
    except Exception as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al crear la invitación: {str(e)}"
        )

    inviter_name = inviter.profile.full_name if inviter and inviter.profile else (inviter.email if inviter else "")
    send_invitation_email_task.delay(
        invitee_email=email,
        inviter_name=inviter_name,
        company_name=company.name,
        invitation_token=invitation.token,
        role=data.role
    )
    logger.info(f"Invitation sent to {email} for tenant {tenant_id}")
    return invitation


def list_invitations(db: Session, tenant_id: UUID, pending_only: bool = False):
    if pending_only:
        query = _pending_invitations(db, tenant_id)
    else:
        query = db.query(CompanyInvitation).filter(CompanyInvitation.company_id == tenant_id)
    return query.order_by(CompanyInvitation.created_at.desc()).all()


def revoke_invitation(db: Session, tenant_id: UUID, invitation_id: UUID) -> CompanyInvitation:
    invitation = db.query(CompanyInvitation).filter(
        CompanyInvitation.id == invitation_id,
        CompanyInvitation.company_id == tenant_id
    ).first()
    if not invitation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitación no encontrada")
    if invitation.is_accepted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La invitación ya fue aceptada")

    invitation.is_revoked = True
    db.commit()
    db.refresh(invitation)
    return invitation


def accept_invitation(db: Session, token: str, user: User) -> dict:
    """
    El usuario autenticado acepta una invitación dirigida a su email.
    Si ya tuvo una membresía inactiva en la organización, se reactiva.
    """
    invitation = db.query(CompanyInvitation).options(
        joinedload(CompanyInvitation.company)
    ).filter(CompanyInvitation.token == token).first()

    if not invitation or invitation.is_revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitación no encontrada")
    if invitation.is_accepted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La invitación ya fue aceptada")
    if as_utc(invitation.expires_at) <= utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La invitación ha expirado")
    if invitation.invitee_email.lower() != user.email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Esta invitación fue enviada a otro correo"
        )

    try:
        membership = db.query(UserCompany).filter(
            UserCompany.company_id == invitation.company_id,
            UserCompany.user_id == user.id
        ).first()
        if membership and membership.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya eres miembro de esta organización")

        if membership:
            membership.is_active = True
            membership.role = invitation.role
            membership.joined_at = utcnow()
        else:
            db.add(UserCompany(
                user_id=user.id,
                company_id=invitation.company_id,
                role=invitation.role,
                is_active=True
            ))

        invitation.is_accepted = True
        invitation.accepted_at = utcnow()
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al aceptar la invitación: {str(e)}"
        )

    logger.info(f"User {user.id} joined tenant {invitation.company_id} as {invitation.role}")
    return {
        "message": "Invitación aceptada",
        "company_id": invitation.company_id,
        "company_name": invitation.company.name,
        "role": invitation.role,
    }
