from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from controle_pt.core.security import get_user_roles, require_action
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.services.audit import record_audit
from controle_pt.workflow.constants import ROLE_ADMIN, ROLES
from controle_pt.workflow.delay import as_utc
from controle_pt.workflow.permissions import Actor

router = APIRouter(tags=["Usuarios"])


class RolesUpdate(BaseModel):
    roles: List[str] = Field(default_factory=list)


class UserUpdate(BaseModel):
    nome: Optional[str] = Field(None, min_length=2)
    ativo: Optional[bool] = None


def _serialize_user(db: Session, user: models.Profile) -> dict:
    return {
        "id": user.id,
        "nome": user.nome,
        "email": user.email,
        "ativo": user.ativo,
        "roles": get_user_roles(db, user.id),
        "criado_em": as_utc(user.criado_em),
    }


def _get_user_or_404(db: Session, user_id: str) -> models.Profile:
    user = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="Usuario nao encontrado")
    return user


@router.get("/users")
def list_users(
    page: int = 1,
    page_size: int = 20,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("users.manage")),
):
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)
    query = db.query(models.Profile)
    if q:
        like = f"%{q.lower()}%"
        query = query.filter(or_(models.Profile.nome.ilike(like), models.Profile.email.ilike(like)))
    total = query.count()
    items = (
        query.order_by(models.Profile.nome.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [_serialize_user(db, user) for user in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.put("/users/{user_id}/roles")
def set_user_roles(
    user_id: str,
    payload: RolesUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("users.manage")),
):
    user = _get_user_or_404(db, user_id)
    invalid = [role for role in payload.roles if role not in ROLES]
    if invalid:
        raise HTTPException(status_code=422, detail=f"Papel invalido: {', '.join(invalid)}")
    roles = set(payload.roles)
    if user.id == actor.user_id and ROLE_ADMIN not in roles:
        raise HTTPException(status_code=400, detail="Nao e possivel remover o proprio papel de administrador")

    previous = get_user_roles(db, user.id)
    db.query(models.UserRole).filter(models.UserRole.user_id == user.id).delete(synchronize_session=False)
    for role in sorted(roles):
        db.add(models.UserRole(user_id=user.id, role=role))
    record_audit(
        db,
        request,
        actor.user_id,
        "users.roles",
        "USER",
        user.id,
        {"antes": previous, "depois": sorted(roles)},
    )
    db.commit()
    db.expire(user)
    return _serialize_user(db, user)


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("users.manage")),
):
    user = _get_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("ativo") is False and user.id == actor.user_id:
        raise HTTPException(status_code=400, detail="Nao e possivel desativar o proprio usuario")
    if changes.get("nome") is not None:
        user.nome = changes["nome"].strip()
    if changes.get("ativo") is not None:
        user.ativo = changes["ativo"]
    record_audit(db, request, actor.user_id, "users.update", "USER", user.id, changes)
    db.commit()
    db.refresh(user)
    return _serialize_user(db, user)


@router.get("/audit-logs")
def list_audit_logs(
    page: int = 1,
    page_size: int = 50,
    resource_type: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("users.manage")),
):
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)
    query = db.query(models.AuditLog)
    if resource_type:
        query = query.filter(models.AuditLog.resource_type == resource_type)
    total = query.count()
    items = (
        query.order_by(models.AuditLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [
            {
                "id": log.id,
                "user_id": log.user_id,
                "action": log.action,
                "resource_type": log.resource_type,
                "resource_id": log.resource_id,
                "payload_resumo": log.payload_resumo,
                "created_at": as_utc(log.created_at),
            }
            for log in items
        ],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
