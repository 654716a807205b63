class WorkflowError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class GuardViolation(WorkflowError):
    """Transicao pedida nao e valida para o historico atual da PT."""

    status_code = 409

    def __init__(self, guard: str, message: str) -> None:
        super().__init__(message)
        self.guard = guard

    def to_dict(self) -> dict:
        return {"detail": self.message, "guard": self.guard}


class PermissionDenied(WorkflowError):
    status_code = 403

    def __init__(self, action: str, message: str | None = None) -> None:
        super().__init__(message or f"Perfil sem permissao para '{action}'.")
        self.action = action

    def to_dict(self) -> dict:
        return {"detail": self.message, "action": self.action}


class NotFound(WorkflowError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} nao encontrada")
        self.resource = resource
        self.resource_id = resource_id


class PersistenceFailure(WorkflowError):
    """Falha ao gravar a transicao. O chamador pode repetir a operacao inteira."""

    status_code = 503

    def __init__(self, message: str = "Nao foi possivel gravar a transicao. Tente novamente.") -> None:
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "retryable": True}


class ImmutableEvent(WorkflowError):
    status_code = 409

    def __init__(self, evento_id: str | None) -> None:
        super().__init__(f"Evento {evento_id} e imutavel e nao pode ser alterado ou removido.")
        self.evento_id = evento_id
