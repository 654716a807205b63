import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from controle_pt.core.config import settings
from controle_pt.core.security import require_action
from controle_pt.db.session import get_db
from controle_pt.services.export import build_report_workbook
from controle_pt.services.reports import PTFilters, build_report, default_period
from controle_pt.workflow.constants import RESPONSAVEIS, STATUSES
from controle_pt.workflow.delay import load_sla
from controle_pt.workflow.permissions import Actor

router = APIRouter(tags=["Relatorios"])

logger = logging.getLogger("controle_pt.reports")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _report_filters(
    data_inicio: Optional[date] = None,
    data_fim: Optional[date] = None,
    status_pt: Optional[str] = Query(None, alias="status"),
    responsavel: Optional[str] = None,
    frente_id: Optional[str] = None,
    disciplina_id: Optional[str] = None,
    q: Optional[str] = None,
) -> PTFilters:
    if status_pt and status_pt not in STATUSES:
        raise HTTPException(status_code=422, detail="Status invalido")
    if responsavel and responsavel not in RESPONSAVEIS:
        raise HTTPException(status_code=422, detail="Responsavel invalido")
    inicio, fim = default_period(data_inicio, data_fim)
    if inicio > fim:
        raise HTTPException(status_code=422, detail="Periodo invalido")
    return PTFilters(
        data_inicio=inicio,
        data_fim=fim,
        status=status_pt,
        responsavel=responsavel,
        frente_id=frente_id,
        disciplina_id=disciplina_id,
        q=q,
    )


@router.get("/relatorios/pts")
def relatorio_pts(
    filters: PTFilters = Depends(_report_filters),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("reports.view")),
):
    report = build_report(db, filters)
    return {
        "periodo": {"data_inicio": filters.data_inicio, "data_fim": filters.data_fim},
        **report,
    }


@router.get("/relatorios/pts/excel")
def relatorio_pts_excel(
    filters: PTFilters = Depends(_report_filters),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("reports.view")),
):
    report = build_report(db, filters)
    content, filename, truncated = build_report_workbook(
        report["items"],
        settings.EXPORT_MAX_ROWS,
        zone=load_sla(db).zone(),
    )
    if truncated:
        logger.warning(
            "exportacao truncada total=%s limite=%s user_id=%s",
            len(report["items"]),
            settings.EXPORT_MAX_ROWS,
            actor.user_id,
        )
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Export-Truncated": "true" if truncated else "false",
        },
    )
