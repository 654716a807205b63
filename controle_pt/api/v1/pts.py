from datetime import date, datetime
from io import BytesIO
from typing import List, Optional

import qrcode
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from controle_pt.core.config import settings
from controle_pt.core.security import get_current_actor, require_action
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.services.audit import record_audit
from controle_pt.services.reports import PTFilters, apply_filters
from controle_pt.workflow.constants import EVENT_LABELS, EVENT_TYPES, RESPONSAVEIS, STATUSES, TIPOS_PT
from controle_pt.workflow.delay import as_utc, hh_improdutivo
from controle_pt.workflow.event_log import EventLog
from controle_pt.workflow.permissions import Actor, can
from controle_pt.workflow.state_machine import PermitWorkflow, TransitionPayload, available_transitions

router = APIRouter(tags=["PTs"])


class PTCreate(BaseModel):
    numero_pt: str = Field(..., min_length=1, max_length=50)
    tipo_pt: str = "pt"
    data_servico: date
    efetivo_qtd: int = Field(1, ge=1)
    descricao_operacao: Optional[str] = None
    encarregado_nome: Optional[str] = None
    encarregado_matricula: Optional[str] = None
    equipe: Optional[str] = None
    frente_ids: List[str] = Field(..., min_length=1)
    disciplina_ids: List[str] = Field(..., min_length=1)


class EventoCreate(BaseModel):
    tipo_evento: str
    observacao: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    accuracy: Optional[float] = None
    impedimento_id: Optional[str] = None
    detalhe_impedimento: Optional[str] = None
    causa_atraso: Optional[str] = None


class ReferenceItem(BaseModel):
    id: str
    nome: str

    class Config:
        from_attributes = True


class PTResponse(BaseModel):
    id: str
    numero_pt: str
    tipo_pt: str
    data_servico: date
    status: str
    efetivo_qtd: int
    descricao_operacao: Optional[str] = None
    encarregado_nome: Optional[str] = None
    encarregado_matricula: Optional[str] = None
    equipe: Optional[str] = None
    frentes: List[ReferenceItem] = Field(default_factory=list)
    disciplinas: List[ReferenceItem] = Field(default_factory=list)
    criado_em: Optional[datetime] = None
    atualizado_em: Optional[datetime] = None
    # Visiveis apenas para quem pode ver atrasos
    responsavel_atraso: Optional[str] = None
    atraso_etm: Optional[int] = None
    atraso_petrobras: Optional[int] = None
    hh_improdutivo: Optional[int] = None
    causa_atraso: Optional[str] = None


class EventoResponse(BaseModel):
    id: str
    tipo_evento: str
    label: str
    criado_em: datetime
    criado_por: str
    autor_nome: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    accuracy: Optional[float] = None
    observacao: Optional[str] = None
    confirmacao_status: str
    impedimento_id: Optional[str] = None
    impedimento_nome: Optional[str] = None
    detalhe_impedimento: Optional[str] = None


class PTDetailResponse(PTResponse):
    eventos: List[EventoResponse] = Field(default_factory=list)
    acoes_disponiveis: List[str] = Field(default_factory=list)


def _to_response(pt: models.PT, actor: Actor) -> PTResponse:
    data = PTResponse(
        id=pt.id,
        numero_pt=pt.numero_pt,
        tipo_pt=pt.tipo_pt,
        data_servico=pt.data_servico,
        status=pt.status,
        efetivo_qtd=pt.efetivo_qtd,
        descricao_operacao=pt.descricao_operacao,
        encarregado_nome=pt.encarregado_nome,
        encarregado_matricula=pt.encarregado_matricula,
        equipe=pt.equipe,
        frentes=[ReferenceItem.model_validate(frente) for frente in pt.frentes],
        disciplinas=[ReferenceItem.model_validate(disciplina) for disciplina in pt.disciplinas],
        criado_em=as_utc(pt.criado_em),
        atualizado_em=as_utc(pt.atualizado_em),
    )
    if can(actor.roles, "atraso.view"):
        data.responsavel_atraso = pt.responsavel_atraso
        data.atraso_etm = pt.atraso_etm
        data.atraso_petrobras = pt.atraso_petrobras
        data.hh_improdutivo = hh_improdutivo(pt.efetivo_qtd, pt.atraso_etm, pt.atraso_petrobras)
        data.causa_atraso = pt.causa_atraso
    return data


def _evento_response(evento: models.Evento) -> EventoResponse:
    return EventoResponse(
        id=evento.id,
        tipo_evento=evento.tipo_evento,
        label=EVENT_LABELS.get(evento.tipo_evento, evento.tipo_evento),
        criado_em=as_utc(evento.criado_em),
        criado_por=evento.criado_por,
        autor_nome=evento.autor.nome if evento.autor else None,
        lat=evento.lat,
        lon=evento.lon,
        accuracy=evento.accuracy,
        observacao=evento.observacao,
        confirmacao_status=evento.confirmacao_status,
        impedimento_id=evento.impedimento_id,
        impedimento_nome=evento.impedimento.nome if evento.impedimento else None,
        detalhe_impedimento=evento.detalhe_impedimento,
    )


def _load_active(db: Session, model, ids: List[str], label: str) -> list:
    unique_ids = list(dict.fromkeys(ids))
    items = db.query(model).filter(model.id.in_(unique_ids), model.ativo.is_(True)).all()
    if len(items) != len(unique_ids):
        raise HTTPException(status_code=422, detail=f"{label} invalida ou inativa")
    return items


def _get_pt_or_404(db: Session, pt_id: str) -> models.PT:
    pt = (
        db.query(models.PT)
        .options(selectinload(models.PT.frentes), selectinload(models.PT.disciplinas))
        .filter(models.PT.id == pt_id)
        .first()
    )
    if not pt:
        raise HTTPException(status_code=404, detail="PT nao encontrada")
    return pt


@router.post("/pts", response_model=PTResponse, status_code=status.HTTP_201_CREATED)
def create_pt(
    payload: PTCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("pt.create")),
):
    numero = payload.numero_pt.strip()
    if not numero:
        raise HTTPException(status_code=422, detail="Numero da PT obrigatorio")
    if payload.tipo_pt not in TIPOS_PT:
        raise HTTPException(status_code=422, detail="Tipo de PT invalido")
    if db.query(models.PT.id).filter(models.PT.numero_pt == numero).first():
        raise HTTPException(status_code=409, detail="Ja existe uma PT com este numero")

    frentes = _load_active(db, models.Frente, payload.frente_ids, "Frente")
    disciplinas = _load_active(db, models.Disciplina, payload.disciplina_ids, "Disciplina")

    pt = models.PT(
        numero_pt=numero,
        tipo_pt=payload.tipo_pt,
        data_servico=payload.data_servico,
        efetivo_qtd=payload.efetivo_qtd,
        descricao_operacao=payload.descricao_operacao,
        encarregado_nome=payload.encarregado_nome,
        encarregado_matricula=payload.encarregado_matricula,
        equipe=payload.equipe,
        criado_por=actor.user_id,
    )
    pt.frentes = frentes
    pt.disciplinas = disciplinas
    db.add(pt)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ja existe uma PT com este numero")
    record_audit(db, request, actor.user_id, "pt.create", "PT", pt.id, {"numero_pt": numero})
    db.commit()
    db.refresh(pt)
    return _to_response(pt, actor)


@router.get("/pts")
def list_pts(
    data_servico: Optional[date] = None,
    data_inicio: Optional[date] = None,
    data_fim: Optional[date] = None,
    status_pt: Optional[str] = Query(None, alias="status"),
    responsavel: Optional[str] = None,
    frente_id: Optional[str] = None,
    disciplina_id: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("pt.view")),
):
    if status_pt and status_pt not in STATUSES:
        raise HTTPException(status_code=422, detail="Status invalido")
    if responsavel and responsavel not in RESPONSAVEIS:
        raise HTTPException(status_code=422, detail="Responsavel invalido")
    if responsavel and not can(actor.roles, "atraso.view"):
        raise HTTPException(status_code=403, detail="Permissao negada")
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)

    filters = PTFilters(
        data_servico=data_servico,
        data_inicio=data_inicio,
        data_fim=data_fim,
        status=status_pt,
        responsavel=responsavel,
        frente_id=frente_id,
        disciplina_id=disciplina_id,
        q=q,
    )
    query = apply_filters(db.query(models.PT), filters)
    total = query.count()
    items = (
        query.options(selectinload(models.PT.frentes), selectinload(models.PT.disciplinas))
        .order_by(models.PT.data_servico.desc(), models.PT.criado_em.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [_to_response(pt, actor) for pt in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/pts/{pt_id}", response_model=PTDetailResponse)
def get_pt(
    pt_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("pt.view")),
):
    pt = _get_pt_or_404(db, pt_id)
    eventos = list(EventLog(db).events_for(pt_id))
    base = _to_response(pt, actor)
    return PTDetailResponse(
        **base.model_dump(),
        eventos=[_evento_response(evento) for evento in eventos],
        acoes_disponiveis=available_transitions(actor, pt.status, [ev.tipo_evento for ev in eventos]),
    )


@router.post("/pts/{pt_id}/eventos")
def register_evento(
    pt_id: str,
    payload: EventoCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if payload.tipo_evento not in EVENT_TYPES:
        raise HTTPException(status_code=422, detail="Tipo de evento invalido")
    result = PermitWorkflow(db).transition(
        actor,
        pt_id,
        payload.tipo_evento,
        TransitionPayload(
            observacao=payload.observacao,
            lat=payload.lat,
            lon=payload.lon,
            accuracy=payload.accuracy,
            impedimento_id=payload.impedimento_id,
            detalhe_impedimento=payload.detalhe_impedimento,
            causa_atraso=payload.causa_atraso,
            user_agent=request.headers.get("user-agent"),
            ip=request.client.host if request.client else None,
        ),
    )
    return result.to_dict()


@router.get("/pts/{pt_id}/atraso-previsto")
def preview_atraso(
    pt_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("liberacao")),
):
    atribuicao = PermitWorkflow(db).preview_delay(pt_id)
    return {
        "pt_id": pt_id,
        "responsavel_atraso": atribuicao.responsavel_atraso,
        "atraso_etm": atribuicao.atraso_etm,
        "atraso_petrobras": atribuicao.atraso_petrobras,
        "total": atribuicao.total,
        "causa_obrigatoria": atribuicao.tem_atraso,
        "hora_solicitacao": atribuicao.hora_solicitacao.strftime("%H:%M:%S") if atribuicao.hora_solicitacao else None,
        "hora_liberacao": atribuicao.hora_liberacao.strftime("%H:%M:%S") if atribuicao.hora_liberacao else None,
    }


@router.get("/pts/{pt_id}/qrcode")
def pt_qrcode(
    pt_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action("pt.view")),
):
    _get_pt_or_404(db, pt_id)
    qr = qrcode.make(f"{settings.PUBLIC_APP_BASE_URL}/pt/{pt_id}")
    buf = BytesIO()
    qr.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")
