import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Table,
    Time,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

from controle_pt.workflow.errors import ImmutableEvent

Base = declarative_base()


pt_frentes = Table(
    "pt_frentes",
    Base.metadata,
    Column("pt_id", String, ForeignKey("pts.id"), primary_key=True),
    Column("frente_id", String, ForeignKey("frentes.id"), primary_key=True),
)

pt_disciplinas = Table(
    "pt_disciplinas",
    Base.metadata,
    Column("pt_id", String, ForeignKey("pts.id"), primary_key=True),
    Column("disciplina_id", String, ForeignKey("disciplinas.id"), primary_key=True),
)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    nome = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)

    roles = relationship("UserRole", back_populates="profile", cascade="all, delete-orphan")


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    role = Column(String, nullable=False)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)

    profile = relationship("Profile", back_populates="roles")


class Frente(Base):
    __tablename__ = "frentes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    nome = Column(String, nullable=False)
    area = Column(String, nullable=True)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=True)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)


class Disciplina(Base):
    __tablename__ = "disciplinas"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    nome = Column(String, nullable=False)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=True)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)


class Impedimento(Base):
    __tablename__ = "impedimentos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    nome = Column(String, nullable=False)
    ativo = Column(Boolean, nullable=False, default=True)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=True)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)


class SLAConfig(Base):
    __tablename__ = "sla_config"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    hora_limite_solicitacao = Column(Time, nullable=False)
    hora_limite_liberacao = Column(Time, nullable=False)
    timezone = Column(String, nullable=False, default="America/Sao_Paulo")
    ativo = Column(Boolean, nullable=False, default=True)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=True)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)


class PT(Base):
    __tablename__ = "pts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    numero_pt = Column(String, nullable=False, unique=True)
    tipo_pt = Column(String, nullable=False, default="pt")
    data_servico = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="pendente")
    responsavel_atraso = Column(String, nullable=True)
    efetivo_qtd = Column(Integer, nullable=False, default=1)
    descricao_operacao = Column(String, nullable=True)
    causa_atraso = Column(String, nullable=True)
    atraso_etm = Column(Integer, nullable=False, default=0)
    atraso_petrobras = Column(Integer, nullable=False, default=0)
    encarregado_nome = Column(String, nullable=True)
    encarregado_matricula = Column(String, nullable=True)
    equipe = Column(String, nullable=True)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=False)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)
    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    frentes = relationship("Frente", secondary=pt_frentes, order_by="Frente.nome")
    disciplinas = relationship("Disciplina", secondary=pt_disciplinas, order_by="Disciplina.nome")
    criador = relationship("Profile", foreign_keys=[criado_por])
    eventos = relationship("Evento", back_populates="pt", order_by="Evento.criado_em")


class Evento(Base):
    __tablename__ = "eventos"
    __table_args__ = (UniqueConstraint("pt_id", "tipo_evento", name="uq_evento_pt_tipo"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    seq = Column(Integer, nullable=False, default=0)
    pt_id = Column(String, ForeignKey("pts.id"), nullable=False, index=True)
    tipo_evento = Column(String, nullable=False)
    criado_por = Column(String, ForeignKey("profiles.id"), nullable=False)
    criado_em = Column(DateTime, default=datetime.utcnow, nullable=False)
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)
    observacao = Column(String, nullable=True)
    confirmacao_status = Column(String, nullable=False, default="confirmado")
    impedimento_id = Column(String, ForeignKey("impedimentos.id"), nullable=True)
    detalhe_impedimento = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    ip = Column(String, nullable=True)

    pt = relationship("PT", back_populates="eventos")
    autor = relationship("Profile", foreign_keys=[criado_por])
    impedimento = relationship("Impedimento")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    action = Column(String, nullable=False)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    payload_resumo = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)


@event.listens_for(Evento, "before_update")
def _block_evento_update(mapper, connection, target):
    raise ImmutableEvent(target.id)


@event.listens_for(Evento, "before_delete")
def _block_evento_delete(mapper, connection, target):
    raise ImmutableEvent(target.id)
