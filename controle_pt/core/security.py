from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from controle_pt.core.config import settings
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.workflow.permissions import Actor, can

# Tokens sao emitidos pelo provedor de identidade; aqui apenas validamos.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=True)


def get_user_roles(db: Session, user_id: str) -> list[str]:
    rows = db.query(models.UserRole.role).filter(models.UserRole.user_id == user_id).all()
    return sorted({role for (role,) in rows})


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=8))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_current_profile(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> models.Profile:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciais invalidas",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if not profile:
        raise credentials_exception
    if not profile.ativo:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return profile


def get_current_actor(
    profile: models.Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> Actor:
    return Actor.from_roles(profile.id, get_user_roles(db, profile.id))


def require_action(action: str):
    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not can(actor.roles, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
        return actor

    return _dependency
