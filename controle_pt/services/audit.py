from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from controle_pt.db import models


def record_audit(
    db: Session,
    request: Request,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    payload: dict,
) -> None:
    """Adiciona o registro de auditoria na sessao; o commit e de quem chama."""
    db.add(
        models.AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            payload_resumo=payload,
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )
