from datetime import date, datetime, timedelta

import pytest

from controle_pt.db import models


@pytest.fixture()
def pt_payload(cadastros):
    return {
        "numero_pt": "PT-2025-001",
        "tipo_pt": "ptt",
        "data_servico": "2025-01-10",
        "efetivo_qtd": 8,
        "descricao_operacao": "Troca de valvula",
        "encarregado_nome": "Joao",
        "frente_ids": [cadastros["frente"].id],
        "disciplina_ids": [cadastros["disciplina"].id],
    }


def _post_evento(client, headers, pt_id, tipo, **extra):
    return client.post(f"/api/pts/{pt_id}/eventos", json={"tipo_evento": tipo, **extra}, headers=headers)


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_requires_token(client):
    assert client.get("/api/pts").status_code == 401


def test_inactive_user_is_rejected(client, db_session, users, auth_headers):
    users["encarregado"].ativo = False
    db_session.commit()
    res = client.get("/api/pts", headers=auth_headers("encarregado"))
    assert res.status_code == 403


def test_admin_creates_pt(client, auth_headers, pt_payload, db_session):
    res = client.post("/api/pts", json=pt_payload, headers=auth_headers("admin"))
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "pendente"
    assert body["tipo_pt"] == "ptt"
    assert [frente["nome"] for frente in body["frentes"]] == ["Frente Norte"]

    db_session.expire_all()
    audit = db_session.query(models.AuditLog).filter(models.AuditLog.action == "pt.create").one()
    assert audit.resource_id == body["id"]


def test_only_admin_creates_pt(client, auth_headers, pt_payload):
    res = client.post("/api/pts", json=pt_payload, headers=auth_headers("encarregado"))
    assert res.status_code == 403


def test_duplicate_numero_pt(client, auth_headers, pt_payload):
    assert client.post("/api/pts", json=pt_payload, headers=auth_headers("admin")).status_code == 201
    res = client.post("/api/pts", json=pt_payload, headers=auth_headers("admin"))
    assert res.status_code == 409


def test_create_pt_validates_references(client, auth_headers, pt_payload):
    pt_payload["frente_ids"] = ["nao-existe"]
    assert client.post("/api/pts", json=pt_payload, headers=auth_headers("admin")).status_code == 422

    pt_payload["frente_ids"] = []
    assert client.post("/api/pts", json=pt_payload, headers=auth_headers("admin")).status_code == 422


def test_create_pt_rejects_unknown_type(client, auth_headers, pt_payload):
    pt_payload["tipo_pt"] = "pte"
    assert client.post("/api/pts", json=pt_payload, headers=auth_headers("admin")).status_code == 422


def test_list_filters(client, auth_headers, make_pt):
    make_pt(numero_pt="PT-100", data_servico=date(2025, 1, 10))
    make_pt(numero_pt="PT-200", data_servico=date(2025, 1, 11), status="liberada")

    res = client.get("/api/pts", params={"data_servico": "2025-01-10"}, headers=auth_headers("visualizador"))
    assert res.status_code == 200
    assert [item["numero_pt"] for item in res.json()["items"]] == ["PT-100"]

    res = client.get("/api/pts", params={"status": "liberada"}, headers=auth_headers("visualizador"))
    assert [item["numero_pt"] for item in res.json()["items"]] == ["PT-200"]

    res = client.get("/api/pts", params={"q": "200"}, headers=auth_headers("visualizador"))
    assert res.json()["total"] == 1

    res = client.get("/api/pts", params={"status": "cancelada"}, headers=auth_headers("visualizador"))
    assert res.status_code == 422


def test_delay_fields_only_for_admin(client, auth_headers, make_pt):
    pt = make_pt(status="liberada", responsavel_atraso="etm", atraso_etm=15, causa_atraso="atraso", efetivo_qtd=4)

    res = client.get(f"/api/pts/{pt.id}", headers=auth_headers("encarregado"))
    assert res.status_code == 200
    assert res.json()["responsavel_atraso"] is None
    assert res.json()["atraso_etm"] is None

    res = client.get(f"/api/pts/{pt.id}", headers=auth_headers("admin"))
    body = res.json()
    assert body["responsavel_atraso"] == "etm"
    assert body["atraso_etm"] == 15
    assert body["hh_improdutivo"] == 60

    res = client.get("/api/pts", params={"responsavel": "etm"}, headers=auth_headers("operador"))
    assert res.status_code == 403


def test_detail_lists_available_actions(client, auth_headers, make_pt):
    pt = make_pt()
    res = client.get(f"/api/pts/{pt.id}", headers=auth_headers("encarregado"))
    assert res.json()["acoes_disponiveis"] == ["solicitacao"]
    res = client.get(f"/api/pts/{pt.id}", headers=auth_headers("operador"))
    assert res.json()["acoes_disponiveis"] == []


def test_detail_not_found(client, auth_headers, users):
    assert client.get("/api/pts/nao-existe", headers=auth_headers("admin")).status_code == 404


def test_event_flow_through_api(client, auth_headers, make_pt, sla_utc):
    pt = make_pt()
    enc = auth_headers("encarregado")
    op = auth_headers("operador")

    res = _post_evento(client, enc, pt.id, "solicitacao", lat=-22.9, lon=-43.2, accuracy=5)
    assert res.status_code == 200
    assert res.json()["new_status"] == "solicitada"
    assert res.json()["success"] is True

    assert _post_evento(client, enc, pt.id, "chegada").json()["new_status"] == "chegada"

    res = _post_evento(client, op, pt.id, "liberacao", causa_atraso="Aguardando teste de gas")
    assert res.status_code == 200
    assert res.json()["new_status"] == "liberada"

    detail = client.get(f"/api/pts/{pt.id}", headers=auth_headers("admin")).json()
    assert detail["status"] == "liberada"
    assert [evento["tipo_evento"] for evento in detail["eventos"]] == ["solicitacao", "chegada", "liberacao"]
    assert detail["eventos"][0]["autor_nome"] == "Encarregado"
    assert detail["eventos"][1]["confirmacao_status"] == "pendente"
    assert detail["acoes_disponiveis"] == []


def test_guard_violation_is_409_with_guard_name(client, auth_headers, make_pt, sla_utc):
    pt = make_pt()
    enc = auth_headers("encarregado")
    assert _post_evento(client, enc, pt.id, "solicitacao").status_code == 200
    res = _post_evento(client, enc, pt.id, "solicitacao")
    assert res.status_code == 409
    assert res.json()["guard"] == "solicitacao_ja_registrada"


def test_wrong_role_is_403(client, auth_headers, make_pt):
    pt = make_pt()
    res = _post_evento(client, auth_headers("operador"), pt.id, "solicitacao")
    assert res.status_code == 403
    assert res.json()["action"] == "solicitacao"


def test_unknown_event_type_is_422(client, auth_headers, make_pt):
    pt = make_pt()
    assert _post_evento(client, auth_headers("admin"), pt.id, "cancelamento").status_code == 422


def test_event_on_missing_pt_is_404(client, auth_headers, users):
    assert _post_evento(client, auth_headers("admin"), "nao-existe", "solicitacao").status_code == 404


def test_impedimento_through_api(client, auth_headers, make_pt, cadastros, sla_utc):
    pt = make_pt()
    enc = auth_headers("encarregado")
    _post_evento(client, enc, pt.id, "solicitacao")
    _post_evento(client, enc, pt.id, "chegada")

    res = _post_evento(client, auth_headers("operador"), pt.id, "impedimento")
    assert res.status_code == 409
    assert res.json()["guard"] == "impedimento_obrigatorio"

    res = _post_evento(
        client,
        auth_headers("operador"),
        pt.id,
        "impedimento",
        impedimento_id=cadastros["impedimento"].id,
    )
    assert res.status_code == 200
    assert res.json()["responsavel_atraso"] == "impedimento"

    detail = client.get(f"/api/pts/{pt.id}", headers=auth_headers("admin")).json()
    assert detail["eventos"][-1]["impedimento_nome"] == "Chuva"


def test_delay_preview(client, auth_headers, make_pt, sla_utc):
    pt = make_pt()
    _post_evento(client, auth_headers("encarregado"), pt.id, "solicitacao")

    res = client.get(f"/api/pts/{pt.id}/atraso-previsto", headers=auth_headers("operador"))
    assert res.status_code == 200
    body = res.json()
    assert body["responsavel_atraso"] in {"etm", "petrobras", "sem_atraso"}
    assert body["causa_obrigatoria"] is (body["total"] > 0)

    res = client.get(f"/api/pts/{pt.id}/atraso-previsto", headers=auth_headers("encarregado"))
    assert res.status_code == 403


def test_qrcode_png(client, auth_headers, make_pt):
    pt = make_pt()
    res = client.get(f"/api/pts/{pt.id}/qrcode", headers=auth_headers("visualizador"))
    assert res.status_code == 200
    assert res.headers["content-type"] == "image/png"
    assert res.content.startswith(b"\x89PNG")


def test_dashboard_resumo(client, auth_headers, make_pt):
    make_pt(data_servico=date(2025, 1, 10), status="liberada", responsavel_atraso="etm")
    make_pt(data_servico=date(2025, 1, 10))
    make_pt(data_servico=date(2025, 1, 11))

    res = client.get("/api/dashboard/resumo", params={"data": "2025-01-10"}, headers=auth_headers("admin"))
    body = res.json()
    assert body["total"] == 2
    assert body["por_status"]["liberada"] == 1
    assert body["por_status"]["pendente"] == 1
    assert body["atrasos_etm"] == 1
    assert len(body["recentes"]) == 2

    res = client.get("/api/dashboard/resumo", params={"data": "2025-01-10"}, headers=auth_headers("visualizador"))
    assert "atrasos_etm" not in res.json()


def test_timestamps_are_serialized_as_utc(client, auth_headers, make_pt, sla_utc):
    pt = make_pt()
    _post_evento(client, auth_headers("encarregado"), pt.id, "solicitacao")

    detail = client.get(f"/api/pts/{pt.id}", headers=auth_headers("admin")).json()
    for value in (detail["criado_em"], detail["atualizado_em"], detail["eventos"][0]["criado_em"]):
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        assert moment.utcoffset() == timedelta(0)
