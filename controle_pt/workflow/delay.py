"""Atribuicao de atraso (ETM x Petrobras) a partir do historico de eventos.

Os horarios dos eventos sao gravados em UTC (naive). A comparacao com os
limites do SLA e feita no fuso configurado no proprio SLA.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from controle_pt.core.config import settings
from controle_pt.db import models
from controle_pt.workflow.constants import (
    EVENTO_SOLICITACAO,
    RESPONSAVEL_ETM,
    RESPONSAVEL_IMPEDIMENTO,
    RESPONSAVEL_PETROBRAS,
    RESPONSAVEL_SEM_ATRASO,
)

logger = logging.getLogger("controle_pt.sla")

DEFAULT_HORA_LIMITE_SOLICITACAO = time(7, 30, 0)
DEFAULT_HORA_LIMITE_LIBERACAO = time(8, 15, 0)


@dataclass(frozen=True)
class SLA:
    hora_limite_solicitacao: time
    hora_limite_liberacao: time
    timezone: str
    fallback: bool = False

    def zone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("timezone do SLA invalido timezone=%s; usando UTC", self.timezone)
            return ZoneInfo("UTC")


@dataclass(frozen=True)
class DelayAttribution:
    responsavel_atraso: str
    atraso_etm: int = 0
    atraso_petrobras: int = 0
    hora_solicitacao: Optional[time] = None
    hora_liberacao: Optional[time] = None

    @property
    def total(self) -> int:
        return self.atraso_etm + self.atraso_petrobras

    @property
    def tem_atraso(self) -> bool:
        return self.total > 0


def _parse_time(value: str, default: time) -> time:
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning("horario limite invalido na configuracao value=%s", value)
        return default


def default_sla() -> SLA:
    return SLA(
        hora_limite_solicitacao=_parse_time(settings.SLA_HORA_LIMITE_SOLICITACAO, DEFAULT_HORA_LIMITE_SOLICITACAO),
        hora_limite_liberacao=_parse_time(settings.SLA_HORA_LIMITE_LIBERACAO, DEFAULT_HORA_LIMITE_LIBERACAO),
        timezone=settings.SLA_TIMEZONE,
        fallback=True,
    )


def load_sla(db: Session) -> SLA:
    """Le a configuracao ativa. Nunca falha: sem linha ativa, usa os padroes.

    Em erro de banco a sessao sofre rollback, por isso deve ser chamada antes
    de qualquer escrita pendente.
    """
    try:
        row = (
            db.query(models.SLAConfig)
            .filter(models.SLAConfig.ativo.is_(True))
            .order_by(models.SLAConfig.criado_em.desc())
            .first()
        )
    except SQLAlchemyError:
        logger.warning("falha ao carregar sla_config; usando valores padrao", exc_info=True)
        db.rollback()
        return default_sla()
    if not row:
        logger.warning("nenhuma sla_config ativa; usando valores padrao")
        return default_sla()
    return SLA(
        hora_limite_solicitacao=row.hora_limite_solicitacao,
        hora_limite_liberacao=row.hora_limite_liberacao,
        timezone=row.timezone or settings.SLA_TIMEZONE,
    )


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Marca como UTC um horario gravado sem fuso."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def local_time(moment: datetime, sla: SLA) -> time:
    return as_utc(moment).astimezone(sla.zone()).time()


def _minutes_late(actual: time, limit: time) -> int:
    delta = datetime.combine(date.min, actual) - datetime.combine(date.min, limit)
    return math.ceil(delta.total_seconds() / 60)


def calculate(eventos: Iterable[models.Evento], momento_liberacao: datetime, sla: SLA) -> DelayAttribution:
    solicitacao = next((ev for ev in eventos if ev.tipo_evento == EVENTO_SOLICITACAO), None)
    hora_liberacao = local_time(momento_liberacao, sla)
    if solicitacao is None:
        return DelayAttribution(RESPONSAVEL_SEM_ATRASO, hora_liberacao=hora_liberacao)

    hora_solicitacao = local_time(solicitacao.criado_em, sla)
    if hora_solicitacao > sla.hora_limite_solicitacao:
        return DelayAttribution(
            RESPONSAVEL_ETM,
            atraso_etm=_minutes_late(hora_solicitacao, sla.hora_limite_solicitacao),
            hora_solicitacao=hora_solicitacao,
            hora_liberacao=hora_liberacao,
        )
    if hora_liberacao > sla.hora_limite_liberacao:
        return DelayAttribution(
            RESPONSAVEL_PETROBRAS,
            atraso_petrobras=_minutes_late(hora_liberacao, sla.hora_limite_liberacao),
            hora_solicitacao=hora_solicitacao,
            hora_liberacao=hora_liberacao,
        )
    return DelayAttribution(
        RESPONSAVEL_SEM_ATRASO,
        hora_solicitacao=hora_solicitacao,
        hora_liberacao=hora_liberacao,
    )


def for_impedimento() -> DelayAttribution:
    return DelayAttribution(RESPONSAVEL_IMPEDIMENTO)


def hh_improdutivo(efetivo_qtd: Optional[int], atraso_etm: Optional[int], atraso_petrobras: Optional[int]) -> int:
    return (efetivo_qtd or 1) * ((atraso_etm or 0) + (atraso_petrobras or 0))
