import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Query, Session, selectinload

from controle_pt.db import models
from controle_pt.workflow.constants import (
    EVENTO_CHEGADA,
    EVENTO_LIBERACAO,
    EVENTO_SOLICITACAO,
    RESPONSAVEL_ETM,
    RESPONSAVEL_PETROBRAS,
    STATUS_IMPEDIDA,
    STATUS_LIBERADA,
    STATUSES,
)
from controle_pt.workflow.delay import as_utc, hh_improdutivo

logger = logging.getLogger("controle_pt.reports")


@dataclass
class PTFilters:
    data_servico: Optional[date] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None
    status: Optional[str] = None
    responsavel: Optional[str] = None
    frente_id: Optional[str] = None
    disciplina_id: Optional[str] = None
    q: Optional[str] = None


def apply_filters(query: Query, filters: PTFilters) -> Query:
    if filters.data_servico:
        query = query.filter(models.PT.data_servico == filters.data_servico)
    if filters.data_inicio:
        query = query.filter(models.PT.data_servico >= filters.data_inicio)
    if filters.data_fim:
        query = query.filter(models.PT.data_servico <= filters.data_fim)
    if filters.status:
        query = query.filter(models.PT.status == filters.status)
    if filters.responsavel:
        query = query.filter(models.PT.responsavel_atraso == filters.responsavel)
    if filters.frente_id:
        query = query.filter(models.PT.frentes.any(models.Frente.id == filters.frente_id))
    if filters.disciplina_id:
        query = query.filter(models.PT.disciplinas.any(models.Disciplina.id == filters.disciplina_id))
    if filters.q:
        query = query.filter(models.PT.numero_pt.ilike(f"%{filters.q.strip()}%"))
    return query


def default_period(data_inicio: Optional[date], data_fim: Optional[date]) -> tuple[date, date]:
    fim = data_fim or date.today()
    inicio = data_inicio or (fim - timedelta(days=7))
    return inicio, fim


def _event_times(db: Session, pt_ids: list[str]) -> dict[str, dict[str, datetime]]:
    times: dict[str, dict[str, datetime]] = {pt_id: {} for pt_id in pt_ids}
    if not pt_ids:
        return times
    rows = (
        db.query(models.Evento.pt_id, models.Evento.tipo_evento, models.Evento.criado_em)
        .filter(models.Evento.pt_id.in_(pt_ids))
        .all()
    )
    for pt_id, tipo_evento, criado_em in rows:
        times[pt_id][tipo_evento] = as_utc(criado_em)
    return times


def build_report(db: Session, filters: PTFilters) -> dict:
    query = db.query(models.PT).options(
        selectinload(models.PT.frentes),
        selectinload(models.PT.disciplinas),
    )
    pts = apply_filters(query, filters).order_by(models.PT.data_servico.desc(), models.PT.criado_em.desc()).all()
    times = _event_times(db, [pt.id for pt in pts])

    rows = []
    for pt in pts:
        eventos = times.get(pt.id, {})
        rows.append(
            {
                "id": pt.id,
                "numero_pt": pt.numero_pt,
                "tipo_pt": pt.tipo_pt,
                "data_servico": pt.data_servico,
                "status": pt.status,
                "responsavel_atraso": pt.responsavel_atraso,
                "frentes": [frente.nome for frente in pt.frentes],
                "disciplinas": [disciplina.nome for disciplina in pt.disciplinas],
                "encarregado_nome": pt.encarregado_nome,
                "encarregado_matricula": pt.encarregado_matricula,
                "efetivo_qtd": pt.efetivo_qtd or 1,
                "descricao_operacao": pt.descricao_operacao,
                "hora_solicitacao": eventos.get(EVENTO_SOLICITACAO),
                "hora_chegada": eventos.get(EVENTO_CHEGADA),
                "hora_liberacao": eventos.get(EVENTO_LIBERACAO),
                "atraso_etm": pt.atraso_etm or 0,
                "atraso_petrobras": pt.atraso_petrobras or 0,
                "hh_improdutivo": hh_improdutivo(pt.efetivo_qtd, pt.atraso_etm, pt.atraso_petrobras),
                "causa_atraso": pt.causa_atraso,
            }
        )

    stats = {
        "total": len(rows),
        "liberadas": sum(1 for row in rows if row["status"] == STATUS_LIBERADA),
        "impedidas": sum(1 for row in rows if row["status"] == STATUS_IMPEDIDA),
        "atrasos_etm": sum(1 for row in rows if row["responsavel_atraso"] == RESPONSAVEL_ETM),
        "atrasos_petrobras": sum(1 for row in rows if row["responsavel_atraso"] == RESPONSAVEL_PETROBRAS),
        "total_hh_improdutivo": sum(row["hh_improdutivo"] for row in rows),
    }
    logger.info("relatorio gerado total=%s hh_improdutivo=%s", stats["total"], stats["total_hh_improdutivo"])
    return {"items": rows, "stats": stats}


def status_summary(db: Session, data_servico: date) -> dict:
    pts = (
        db.query(models.PT)
        .options(selectinload(models.PT.frentes), selectinload(models.PT.disciplinas))
        .filter(models.PT.data_servico == data_servico)
        .order_by(models.PT.criado_em.desc())
        .all()
    )
    por_status = {status: 0 for status in STATUSES}
    for pt in pts:
        por_status[pt.status] = por_status.get(pt.status, 0) + 1
    return {
        "data_servico": data_servico,
        "total": len(pts),
        "por_status": por_status,
        "atrasos_etm": sum(1 for pt in pts if pt.responsavel_atraso == RESPONSAVEL_ETM),
        "atrasos_petrobras": sum(1 for pt in pts if pt.responsavel_atraso == RESPONSAVEL_PETROBRAS),
        "recentes": pts[:5],
    }
