from datetime import date, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from controle_pt.core.security import create_access_token
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.main import app
from controle_pt.workflow.constants import ROLE_ADMIN, ROLE_ENCARREGADO, ROLE_OPERADOR, ROLE_VISUALIZADOR
from controle_pt.workflow.permissions import Actor

USERS = {
    "admin": [ROLE_ADMIN],
    "encarregado": [ROLE_ENCARREGADO],
    "operador": [ROLE_OPERADOR],
    "visualizador": [ROLE_VISUALIZADOR],
    "supervisor": [ROLE_ENCARREGADO, ROLE_OPERADOR],
    "sem_papel": [],
}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture()
def users(db_session):
    profiles = {}
    for key, roles in USERS.items():
        profile = models.Profile(nome=key.title(), email=f"{key}@controle-pt.local", ativo=True)
        db_session.add(profile)
        db_session.flush()
        for role in roles:
            db_session.add(models.UserRole(user_id=profile.id, role=role))
        profiles[key] = profile
    db_session.commit()
    return profiles


@pytest.fixture()
def actors(users):
    return {key: Actor.from_roles(users[key].id, roles) for key, roles in USERS.items()}


@pytest.fixture()
def cadastros(db_session, users):
    frente = models.Frente(nome="Frente Norte", area="Area 1", ativo=True)
    disciplina = models.Disciplina(nome="Mecanica", ativo=True)
    chuva = models.Impedimento(nome="Chuva", ativo=True)
    antigo = models.Impedimento(nome="Motivo antigo", ativo=False)
    db_session.add_all([frente, disciplina, chuva, antigo])
    db_session.commit()
    return {
        "frente": frente,
        "disciplina": disciplina,
        "impedimento": chuva,
        "impedimento_inativo": antigo,
    }


@pytest.fixture()
def sla_utc(db_session):
    row = models.SLAConfig(
        hora_limite_solicitacao=time(7, 30),
        hora_limite_liberacao=time(8, 15),
        timezone="UTC",
        ativo=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture()
def make_pt(db_session, users, cadastros):
    counter = {"n": 0}

    def _make(numero_pt=None, data_servico=None, efetivo_qtd=5, tipo_pt="pt", **fields):
        counter["n"] += 1
        pt = models.PT(
            numero_pt=numero_pt or f"PT-{counter['n']:04d}",
            tipo_pt=tipo_pt,
            data_servico=data_servico or date(2025, 1, 10),
            efetivo_qtd=efetivo_qtd,
            criado_por=users["admin"].id,
            **fields,
        )
        pt.frentes = [cadastros["frente"]]
        pt.disciplinas = [cadastros["disciplina"]]
        db_session.add(pt)
        db_session.commit()
        return pt

    return _make


@pytest.fixture()
def client(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(users):
    def _headers(key: str) -> dict:
        token = create_access_token({"sub": users[key].id})
        return {"Authorization": f"Bearer {token}"}

    return _headers
