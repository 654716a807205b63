import logging
from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from controle_pt.core.security import get_current_actor, require_action
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.services.audit import record_audit
from controle_pt.workflow.delay import load_sla
from controle_pt.workflow.permissions import Actor

router = APIRouter(tags=["SLA"])

logger = logging.getLogger("controle_pt.sla")


class SLAUpdate(BaseModel):
    hora_limite_solicitacao: time
    hora_limite_liberacao: time
    timezone: str = "America/Sao_Paulo"


@router.get("/sla-config")
def get_sla_config(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    sla = load_sla(db)
    return {
        "hora_limite_solicitacao": sla.hora_limite_solicitacao.strftime("%H:%M:%S"),
        "hora_limite_liberacao": sla.hora_limite_liberacao.strftime("%H:%M:%S"),
        "timezone": sla.timezone,
        "padrao": sla.fallback,
    }


@router.put("/sla-config")
def update_sla_config(
    payload: SLAUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("sla.manage")),
):
    try:
        ZoneInfo(payload.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=422, detail="Timezone invalido")
    for hora in (payload.hora_limite_solicitacao, payload.hora_limite_liberacao):
        if hora.tzinfo is not None:
            raise HTTPException(status_code=422, detail="Horario limite nao deve ter fuso; use o campo timezone")

    db.query(models.SLAConfig).filter(models.SLAConfig.ativo.is_(True)).update(
        {models.SLAConfig.ativo: False}, synchronize_session=False
    )
    row = models.SLAConfig(
        hora_limite_solicitacao=payload.hora_limite_solicitacao,
        hora_limite_liberacao=payload.hora_limite_liberacao,
        timezone=payload.timezone,
        ativo=True,
        criado_por=actor.user_id,
    )
    db.add(row)
    db.flush()
    record_audit(
        db,
        request,
        actor.user_id,
        "sla.update",
        "SLA_CONFIG",
        row.id,
        {
            "hora_limite_solicitacao": payload.hora_limite_solicitacao.isoformat(),
            "hora_limite_liberacao": payload.hora_limite_liberacao.isoformat(),
            "timezone": payload.timezone,
        },
    )
    db.commit()
    logger.info(
        "sla atualizado solicitacao=%s liberacao=%s timezone=%s user_id=%s",
        payload.hora_limite_solicitacao,
        payload.hora_limite_liberacao,
        payload.timezone,
        actor.user_id,
    )
    return {
        "id": row.id,
        "hora_limite_solicitacao": row.hora_limite_solicitacao.strftime("%H:%M:%S"),
        "hora_limite_liberacao": row.hora_limite_liberacao.strftime("%H:%M:%S"),
        "timezone": row.timezone,
        "padrao": False,
    }
