from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from controle_pt.core.security import get_current_actor, require_action
from controle_pt.db import models
from controle_pt.db.session import get_db
from controle_pt.services.audit import record_audit
from controle_pt.workflow.delay import as_utc
from controle_pt.workflow.permissions import Actor, can

router = APIRouter(tags=["Cadastros"])

# rota -> (modelo, rotulo para auditoria)
RESOURCES = {
    "frentes": (models.Frente, "FRENTE"),
    "disciplinas": (models.Disciplina, "DISCIPLINA"),
    "impedimentos": (models.Impedimento, "IMPEDIMENTO"),
}


class CadastroCreate(BaseModel):
    nome: str = Field(..., min_length=1, max_length=120)
    area: Optional[str] = None


class CadastroUpdate(BaseModel):
    nome: Optional[str] = Field(None, min_length=1, max_length=120)
    area: Optional[str] = None
    ativo: Optional[bool] = None


def _serialize(item) -> dict:
    data = {"id": item.id, "nome": item.nome, "ativo": item.ativo, "criado_em": as_utc(item.criado_em)}
    if hasattr(item, "area"):
        data["area"] = item.area
    return data


def _register(recurso: str, model, label: str) -> None:
    def list_items(
        incluir_inativos: bool = False,
        db: Session = Depends(get_db),
        actor: Actor = Depends(get_current_actor),
    ):
        query = db.query(model)
        # Inativos so aparecem para quem administra os cadastros
        if not (incluir_inativos and can(actor.roles, "cadastros.manage")):
            query = query.filter(model.ativo.is_(True))
        return [_serialize(item) for item in query.order_by(model.nome.asc()).all()]

    def create_item(
        payload: CadastroCreate,
        request: Request,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_action("cadastros.manage")),
    ):
        nome = payload.nome.strip()
        if not nome:
            raise HTTPException(status_code=422, detail="Nome obrigatorio")
        if db.query(model.id).filter(model.nome == nome).first():
            raise HTTPException(status_code=409, detail="Cadastro ja existe")
        item = model(nome=nome, ativo=True, criado_por=actor.user_id)
        if hasattr(model, "area"):
            item.area = payload.area
        db.add(item)
        db.flush()
        record_audit(db, request, actor.user_id, f"{recurso}.create", label, item.id, {"nome": nome})
        db.commit()
        db.refresh(item)
        return _serialize(item)

    def update_item(
        item_id: str,
        payload: CadastroUpdate,
        request: Request,
        db: Session = Depends(get_db),
        actor: Actor = Depends(require_action("cadastros.manage")),
    ):
        item = db.query(model).filter(model.id == item_id).first()
        if not item:
            raise HTTPException(status_code=404, detail="Cadastro nao encontrado")
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("nome") is not None:
            nome = changes["nome"].strip()
            if not nome:
                raise HTTPException(status_code=422, detail="Nome obrigatorio")
            duplicate = db.query(model.id).filter(model.nome == nome, model.id != item.id).first()
            if duplicate:
                raise HTTPException(status_code=409, detail="Cadastro ja existe")
            item.nome = nome
        if "area" in changes and hasattr(item, "area"):
            item.area = changes["area"]
        if changes.get("ativo") is not None:
            item.ativo = changes["ativo"]
        record_audit(db, request, actor.user_id, f"{recurso}.update", label, item.id, changes)
        db.commit()
        db.refresh(item)
        return _serialize(item)

    router.add_api_route(f"/{recurso}", list_items, methods=["GET"], name=f"list_{recurso}")
    router.add_api_route(
        f"/{recurso}",
        create_item,
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        name=f"create_{recurso}",
    )
    router.add_api_route(f"/{recurso}/{{item_id}}", update_item, methods=["PUT"], name=f"update_{recurso}")


for _recurso, (_model, _label) in RESOURCES.items():
    _register(_recurso, _model, _label)
