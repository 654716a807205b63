from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from controle_pt.core.security import get_current_profile, get_user_roles
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.workflow.permissions import capabilities

router = APIRouter(tags=["Usuario"])


@router.get("/me")
def get_me(
    current_user: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    roles = get_user_roles(db, current_user.id)
    return {
        "user": {
            "id": current_user.id,
            "nome": current_user.nome,
            "email": current_user.email,
            "ativo": current_user.ativo,
            "roles": roles,
        },
        "permissions": capabilities(roles),
    }
