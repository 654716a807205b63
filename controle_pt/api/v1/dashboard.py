from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from controle_pt.core.security import require_action
from controle_pt.db.session import get_db
from controle_pt.services.reports import status_summary
from controle_pt.workflow.delay import as_utc
from controle_pt.workflow.permissions import Actor, can

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard/resumo")
def dashboard_resumo(
    data: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("pt.view")),
):
    resumo = status_summary(db, data or date.today())
    ver_atraso = can(actor.roles, "atraso.view")
    response = {
        "data_servico": resumo["data_servico"],
        "total": resumo["total"],
        "por_status": resumo["por_status"],
        "recentes": [
            {
                "id": pt.id,
                "numero_pt": pt.numero_pt,
                "tipo_pt": pt.tipo_pt,
                "status": pt.status,
                "frentes": [frente.nome for frente in pt.frentes],
                "responsavel_atraso": pt.responsavel_atraso if ver_atraso else None,
                "criado_em": as_utc(pt.criado_em),
            }
            for pt in resumo["recentes"]
        ],
    }
    if ver_atraso:
        response["atrasos_etm"] = resumo["atrasos_etm"]
        response["atrasos_petrobras"] = resumo["atrasos_petrobras"]
    return response
