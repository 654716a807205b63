from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from controle_pt.db import models
from controle_pt.workflow.constants import CONFIRMACAO_CONFIRMADO, EVENT_TYPES
from controle_pt.workflow.errors import NotFound
from controle_pt.workflow.permissions import Actor

METADATA_FIELDS = (
    "lat",
    "lon",
    "accuracy",
    "observacao",
    "confirmacao_status",
    "impedimento_id",
    "detalhe_impedimento",
    "user_agent",
    "ip",
)


class EventLog:
    """Historico append-only de eventos das PTs.

    Nao valida o workflow: quem chama (a maquina de estados) ja verificou as
    guardas. ``record`` apenas adiciona o evento na sessao corrente; o commit
    fica com o chamador para que evento e PT sejam gravados juntos.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def record(
        self,
        pt_id: str,
        tipo_evento: str,
        actor: Actor,
        metadata: Optional[dict] = None,
        criado_em: Optional[datetime] = None,
    ) -> models.Evento:
        if tipo_evento not in EVENT_TYPES:
            raise ValueError(f"Tipo de evento invalido: {tipo_evento}")
        exists = self.db.query(models.PT.id).filter(models.PT.id == pt_id).first()
        if not exists:
            raise NotFound("PT", pt_id)

        data = {key: value for key, value in (metadata or {}).items() if key in METADATA_FIELDS}
        data.setdefault("confirmacao_status", CONFIRMACAO_CONFIRMADO)
        next_seq = (
            self.db.query(func.coalesce(func.max(models.Evento.seq), 0))
            .filter(models.Evento.pt_id == pt_id)
            .scalar()
        ) + 1
        evento = models.Evento(
            pt_id=pt_id,
            tipo_evento=tipo_evento,
            criado_por=actor.user_id,
            criado_em=criado_em or datetime.utcnow(),
            seq=next_seq,
            **data,
        )
        self.db.add(evento)
        self.db.flush()
        return evento

    def has_event(self, pt_id: str, tipo_evento: str) -> bool:
        return (
            self.db.query(models.Evento.id)
            .filter(models.Evento.pt_id == pt_id, models.Evento.tipo_evento == tipo_evento)
            .first()
            is not None
        )

    def events_for(self, pt_id: str) -> Iterator[models.Evento]:
        snapshot = (
            self.db.query(models.Evento)
            .filter(models.Evento.pt_id == pt_id)
            .order_by(models.Evento.criado_em.asc(), models.Evento.seq.asc())
            .all()
        )
        return iter(snapshot)

    def types_for(self, pt_id: str) -> set[str]:
        rows = self.db.query(models.Evento.tipo_evento).filter(models.Evento.pt_id == pt_id).all()
        return {tipo for (tipo,) in rows}
