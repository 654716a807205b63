from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from controle_pt.workflow.constants import (
    EVENTO_CHEGADA,
    EVENTO_IMPEDIMENTO,
    EVENTO_LIBERACAO,
    EVENTO_SOLICITACAO,
    ROLE_ADMIN,
    ROLE_ENCARREGADO,
    ROLE_OPERADOR,
    ROLE_VISUALIZADOR,
    ROLES,
)
from controle_pt.workflow.errors import PermissionDenied

# Papeis minimos por acao; admin pode tudo.
ACTION_ROLES: dict[str, frozenset[str]] = {
    EVENTO_SOLICITACAO: frozenset({ROLE_ENCARREGADO}),
    EVENTO_CHEGADA: frozenset({ROLE_ENCARREGADO}),
    EVENTO_LIBERACAO: frozenset({ROLE_OPERADOR}),
    EVENTO_IMPEDIMENTO: frozenset({ROLE_OPERADOR}),
    "pt.view": frozenset({ROLE_ENCARREGADO, ROLE_OPERADOR, ROLE_VISUALIZADOR}),
    "pt.create": frozenset(),
    "atraso.view": frozenset(),
    "reports.view": frozenset(),
    "cadastros.manage": frozenset(),
    "sla.manage": frozenset(),
    "users.manage": frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """Quem esta chamando: id do usuario e papeis vindos do provedor de identidade."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_roles(cls, user_id: str, roles: Iterable[str]) -> "Actor":
        return cls(user_id=user_id, roles=frozenset(role for role in roles if role in ROLES))

    def has_role(self, role: str) -> bool:
        return role in self.roles


def can(roles: Iterable[str], action: str) -> bool:
    role_set = set(roles)
    if ROLE_ADMIN in role_set:
        return action in ACTION_ROLES
    allowed = ACTION_ROLES.get(action)
    if allowed is None:
        return False
    return bool(role_set & allowed)


def require(actor: Actor, action: str) -> None:
    if not can(actor.roles, action):
        raise PermissionDenied(action)


def capabilities(roles: Iterable[str]) -> dict[str, bool]:
    role_set = set(roles)
    return {action: can(role_set, action) for action in ACTION_ROLES}
