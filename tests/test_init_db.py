from sqlalchemy import create_engine, inspect, text

from controle_pt.db import models
from controle_pt.db.init_db import (
    DEFAULT_IMPEDIMENTOS,
    ensure_admin,
    ensure_impedimentos_default,
    ensure_sla_default,
    upgrade_schema,
)


def test_seed_is_idempotent(db_session):
    ensure_sla_default(db_session)
    ensure_sla_default(db_session)
    ensure_impedimentos_default(db_session)
    ensure_impedimentos_default(db_session)

    assert db_session.query(models.SLAConfig).count() == 1
    assert db_session.query(models.Impedimento).count() == len(DEFAULT_IMPEDIMENTOS)


def test_missing_columns_are_added(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'legado.db'}")
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE frentes (id VARCHAR PRIMARY KEY, nome VARCHAR NOT NULL)"))

    added = upgrade_schema(engine)

    columns = {col["name"] for col in inspect(engine).get_columns("frentes")}
    assert {"area", "ativo", "criado_por", "criado_em"} <= columns
    assert "frentes.area" in added
    assert all(name.startswith("frentes.") for name in added)
    assert upgrade_schema(engine) == []
    engine.dispose()


def test_ensure_admin_creates_and_reactivates(db_session):
    profile = ensure_admin(db_session, " Chefe@Obra.com ", "Chefe", user_id="idp-123")
    assert profile.id == "idp-123"
    assert profile.email == "chefe@obra.com"

    profile.ativo = False
    db_session.commit()
    again = ensure_admin(db_session, "chefe@obra.com", "Chefe")
    assert again.id == "idp-123"
    assert again.ativo is True
    roles = db_session.query(models.UserRole).filter(models.UserRole.user_id == "idp-123").all()
    assert [role.role for role in roles] == ["admin"]
