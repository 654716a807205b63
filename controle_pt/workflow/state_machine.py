from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from controle_pt.db import models
from controle_pt.workflow import delay
from controle_pt.workflow.constants import (
    CONFIRMACAO_CONFIRMADO,
    CONFIRMACAO_PENDENTE,
    EVENT_TYPES,
    EVENTO_CHEGADA,
    EVENTO_IMPEDIMENTO,
    EVENTO_LIBERACAO,
    EVENTO_SOLICITACAO,
    ROLE_OPERADOR,
    STATUS_CHEGADA,
    STATUS_IMPEDIDA,
    STATUS_LIBERADA,
    STATUS_PENDENTE,
    STATUS_SOLICITADA,
)
from controle_pt.workflow.errors import GuardViolation, NotFound, PermissionDenied, PersistenceFailure
from controle_pt.workflow.event_log import EventLog
from controle_pt.workflow.permissions import Actor, can, require

logger = logging.getLogger("controle_pt.workflow")

NEXT_STATUS = {
    EVENTO_SOLICITACAO: STATUS_SOLICITADA,
    EVENTO_CHEGADA: STATUS_CHEGADA,
    EVENTO_LIBERACAO: STATUS_LIBERADA,
    EVENTO_IMPEDIMENTO: STATUS_IMPEDIDA,
}


@dataclass
class TransitionPayload:
    observacao: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    accuracy: Optional[float] = None
    impedimento_id: Optional[str] = None
    detalhe_impedimento: Optional[str] = None
    causa_atraso: Optional[str] = None
    user_agent: Optional[str] = None
    ip: Optional[str] = None


@dataclass(frozen=True)
class TransitionResult:
    pt_id: str
    new_status: str
    evento_id: str
    responsavel_atraso: Optional[str]
    atraso_etm: int
    atraso_petrobras: int

    def to_dict(self) -> dict:
        return {"success": True, **asdict(self)}


def check_guard(tipo_evento: str, status: str, tipos_registrados: Iterable[str]) -> None:
    """Valida a transicao contra o status atual e os eventos ja gravados."""
    tipos = set(tipos_registrados)
    if tipo_evento == EVENTO_SOLICITACAO:
        if EVENTO_SOLICITACAO in tipos:
            raise GuardViolation("solicitacao_ja_registrada", "Solicitacao ja registrada para esta PT.")
        if status != STATUS_PENDENTE:
            raise GuardViolation("status_nao_pendente", "A PT precisa estar pendente para ser solicitada.")
    elif tipo_evento == EVENTO_CHEGADA:
        if EVENTO_SOLICITACAO not in tipos:
            raise GuardViolation("solicitacao_ausente", "Nenhuma solicitacao registrada para esta PT.")
        if EVENTO_CHEGADA in tipos:
            raise GuardViolation("chegada_ja_registrada", "Chegada ja registrada para esta PT.")
    elif tipo_evento in (EVENTO_LIBERACAO, EVENTO_IMPEDIMENTO):
        if EVENTO_LIBERACAO in tipos or EVENTO_IMPEDIMENTO in tipos:
            raise GuardViolation("pt_finalizada", "PT ja foi liberada ou impedida.")
        if EVENTO_CHEGADA not in tipos:
            raise GuardViolation("chegada_ausente", "A chegada precisa ser registrada antes.")
    else:
        raise ValueError(f"Tipo de evento invalido: {tipo_evento}")


def available_transitions(actor: Actor, status: str, tipos_registrados: Iterable[str]) -> list[str]:
    tipos = set(tipos_registrados)
    disponiveis = []
    for tipo_evento in EVENT_TYPES:
        if not can(actor.roles, tipo_evento):
            continue
        try:
            check_guard(tipo_evento, status, tipos)
        except GuardViolation:
            continue
        disponiveis.append(tipo_evento)
    return disponiveis


class PermitWorkflow:
    """Executa as transicoes de status de uma PT.

    Cada transicao e uma unidade atomica: guarda, evento e atualizacao da PT
    sao gravados no mesmo commit. A atualizacao da PT e condicionada ao status
    lido, de modo que duas transicoes concorrentes nao vencem juntas.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.log = EventLog(db)

    def _get_pt(self, pt_id: str, lock: bool = False) -> models.PT:
        query = self.db.query(models.PT).filter(models.PT.id == pt_id)
        if lock:
            query = query.with_for_update()
        pt = query.first()
        if not pt:
            raise NotFound("PT", pt_id)
        return pt

    def _impedimento_valido(self, impedimento_id: Optional[str]) -> None:
        if not impedimento_id:
            raise GuardViolation("impedimento_obrigatorio", "Selecione o motivo do impedimento.")
        motivo = (
            self.db.query(models.Impedimento)
            .filter(models.Impedimento.id == impedimento_id, models.Impedimento.ativo.is_(True))
            .first()
        )
        if not motivo:
            raise GuardViolation("impedimento_invalido", "Motivo de impedimento invalido ou inativo.")

    def preview_delay(self, pt_id: str, agora: Optional[datetime] = None) -> delay.DelayAttribution:
        self._get_pt(pt_id)
        sla = delay.load_sla(self.db)
        return delay.calculate(self.log.events_for(pt_id), agora or datetime.utcnow(), sla)

    def transition(
        self,
        actor: Actor,
        pt_id: str,
        tipo_evento: str,
        payload: Optional[TransitionPayload] = None,
        agora: Optional[datetime] = None,
    ) -> TransitionResult:
        if tipo_evento not in NEXT_STATUS:
            raise ValueError(f"Tipo de evento invalido: {tipo_evento}")
        payload = payload or TransitionPayload()
        agora = agora or datetime.utcnow()

        try:
            require(actor, tipo_evento)
        except PermissionDenied:
            logger.warning(
                "transicao negada user_id=%s pt_id=%s tipo=%s roles=%s",
                actor.user_id,
                pt_id,
                tipo_evento,
                sorted(actor.roles),
            )
            raise

        sla = delay.load_sla(self.db) if tipo_evento == EVENTO_LIBERACAO else None

        try:
            return self._apply(actor, pt_id, tipo_evento, payload, agora, sla)
        except GuardViolation as exc:
            self.db.rollback()
            logger.info(
                "transicao rejeitada pt_id=%s tipo=%s guard=%s user_id=%s",
                pt_id,
                tipo_evento,
                exc.guard,
                actor.user_id,
            )
            raise
        except NotFound:
            self.db.rollback()
            raise
        except IntegrityError:
            self.db.rollback()
            logger.info("transicao concorrente pt_id=%s tipo=%s", pt_id, tipo_evento)
            raise GuardViolation(
                "transicao_concorrente",
                "A PT foi alterada por outra operacao. Atualize e tente novamente.",
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("falha ao gravar transicao pt_id=%s tipo=%s", pt_id, tipo_evento)
            raise PersistenceFailure()

    def _apply(
        self,
        actor: Actor,
        pt_id: str,
        tipo_evento: str,
        payload: TransitionPayload,
        agora: datetime,
        sla: Optional[delay.SLA],
    ) -> TransitionResult:
        pt = self._get_pt(pt_id, lock=True)
        status_atual = pt.status
        check_guard(tipo_evento, status_atual, self.log.types_for(pt_id))

        novo_status = NEXT_STATUS[tipo_evento]
        values: dict = {"status": novo_status, "atualizado_em": agora}
        metadata = {
            "lat": payload.lat,
            "lon": payload.lon,
            "accuracy": payload.accuracy,
            "observacao": payload.observacao,
            "user_agent": payload.user_agent,
            "ip": payload.ip,
            "confirmacao_status": CONFIRMACAO_CONFIRMADO,
        }
        atribuicao: Optional[delay.DelayAttribution] = None

        if tipo_evento == EVENTO_CHEGADA:
            if not actor.has_role(ROLE_OPERADOR):
                metadata["confirmacao_status"] = CONFIRMACAO_PENDENTE
        elif tipo_evento == EVENTO_IMPEDIMENTO:
            self._impedimento_valido(payload.impedimento_id)
            metadata["impedimento_id"] = payload.impedimento_id
            metadata["detalhe_impedimento"] = payload.detalhe_impedimento
            atribuicao = delay.for_impedimento()
        elif tipo_evento == EVENTO_LIBERACAO:
            atribuicao = delay.calculate(self.log.events_for(pt_id), agora, sla or delay.load_sla(self.db))
            causa = (payload.causa_atraso or pt.causa_atraso or "").strip()
            if atribuicao.tem_atraso and not causa:
                raise GuardViolation(
                    "causa_atraso_obrigatoria",
                    f"Atraso de {atribuicao.total} min detectado. Informe a causa do atraso.",
                )
            if causa:
                values["causa_atraso"] = causa

        if atribuicao is not None:
            values["responsavel_atraso"] = atribuicao.responsavel_atraso
            values["atraso_etm"] = atribuicao.atraso_etm
            values["atraso_petrobras"] = atribuicao.atraso_petrobras

        result = self.db.execute(
            update(models.PT)
            .where(models.PT.id == pt_id, models.PT.status == status_atual)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise GuardViolation(
                "transicao_concorrente",
                "A PT foi alterada por outra operacao. Atualize e tente novamente.",
            )

        evento = self.log.record(pt_id, tipo_evento, actor, metadata, criado_em=agora)
        evento_id = evento.id
        self.db.commit()

        logger.info(
            "transicao pt_id=%s tipo=%s status=%s->%s user_id=%s responsavel=%s",
            pt_id,
            tipo_evento,
            status_atual,
            novo_status,
            actor.user_id,
            atribuicao.responsavel_atraso if atribuicao else None,
        )
        return TransitionResult(
            pt_id=pt_id,
            new_status=novo_status,
            evento_id=evento_id,
            responsavel_atraso=atribuicao.responsavel_atraso if atribuicao else None,
            atraso_etm=atribuicao.atraso_etm if atribuicao else 0,
            atraso_petrobras=atribuicao.atraso_petrobras if atribuicao else 0,
        )
