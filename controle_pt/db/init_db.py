import logging
from typing import List, Optional, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from controle_pt.db import models
from controle_pt.db.session import SessionLocal
from controle_pt.workflow.constants import ROLE_ADMIN
from controle_pt.workflow.delay import default_sla

logger = logging.getLogger("controle_pt")

DEFAULT_IMPEDIMENTOS = [
    "Condicoes climaticas",
    "Falta de documentacao",
    "Area nao liberada pela operacao",
    "Falta de equipamento de seguranca",
    "Teste de gas reprovado",
]


def _pending_columns(engine) -> List[Tuple[str, str, str]]:
    """Colunas do modelo ausentes em tabelas ja existentes (tabela, coluna, tipo)."""
    inspector = inspect(engine)
    pending = []
    for table_name in inspector.get_table_names():
        table = models.Base.metadata.tables.get(table_name)
        if table is None:
            continue
        present = {col["name"] for col in inspector.get_columns(table_name)}
        pending.extend(
            (table_name, column.name, column.type.compile(dialect=engine.dialect))
            for column in table.columns
            if column.name not in present
        )
    return pending


def upgrade_schema(engine) -> List[str]:
    """Atualiza bancos SQLite de desenvolvimento criados por versoes anteriores.

    Tabelas novas ficam com create_all; aqui so entram colunas faltantes, todas
    na mesma transacao. Retorna as colunas adicionadas como ``tabela.coluna``.
    """
    if engine.dialect.name != "sqlite":
        return []
    pending = _pending_columns(engine)
    if not pending:
        return []
    quote = engine.dialect.identifier_preparer.quote
    with engine.begin() as connection:
        for table_name, column_name, col_type in pending:
            connection.execute(text(f"ALTER TABLE {quote(table_name)} ADD COLUMN {quote(column_name)} {col_type}"))
    added = [f"{table_name}.{column_name}" for table_name, column_name, _ in pending]
    logger.info("schema atualizado colunas=%s", ",".join(added))
    return added


def ensure_sla_default(db: Session) -> None:
    active = db.query(models.SLAConfig).filter(models.SLAConfig.ativo.is_(True)).first()
    if active:
        return
    sla = default_sla()
    db.add(
        models.SLAConfig(
            hora_limite_solicitacao=sla.hora_limite_solicitacao,
            hora_limite_liberacao=sla.hora_limite_liberacao,
            timezone=sla.timezone,
            ativo=True,
        )
    )
    db.commit()


def ensure_impedimentos_default(db: Session) -> None:
    if db.query(models.Impedimento).count():
        return
    for nome in DEFAULT_IMPEDIMENTOS:
        db.add(models.Impedimento(nome=nome, ativo=True))
    db.commit()


def seed_initial_data() -> None:
    db: Session = SessionLocal()
    try:
        ensure_sla_default(db)
        ensure_impedimentos_default(db)
    finally:
        db.close()


def ensure_admin(db: Session, email: str, nome: str, user_id: Optional[str] = None) -> models.Profile:
    email = email.strip().lower()
    profile = db.query(models.Profile).filter(models.Profile.email == email).first()
    if not profile:
        profile = models.Profile(email=email, nome=nome, ativo=True)
        if user_id:
            profile.id = user_id
        db.add(profile)
        db.flush()
    else:
        profile.ativo = True
    has_admin = (
        db.query(models.UserRole.id)
        .filter(models.UserRole.user_id == profile.id, models.UserRole.role == ROLE_ADMIN)
        .first()
    )
    if not has_admin:
        db.add(models.UserRole(user_id=profile.id, role=ROLE_ADMIN))
    db.commit()
    logger.info("admin garantido email=%s user_id=%s", email, profile.id)
    return profile
