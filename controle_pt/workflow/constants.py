ROLE_ADMIN = "admin"
ROLE_ENCARREGADO = "encarregado"
ROLE_OPERADOR = "operador"
ROLE_VISUALIZADOR = "visualizador"
ROLES = (ROLE_ADMIN, ROLE_ENCARREGADO, ROLE_OPERADOR, ROLE_VISUALIZADOR)

STATUS_PENDENTE = "pendente"
STATUS_SOLICITADA = "solicitada"
STATUS_CHEGADA = "chegada"
STATUS_LIBERADA = "liberada"
STATUS_IMPEDIDA = "impedida"
STATUSES = (STATUS_PENDENTE, STATUS_SOLICITADA, STATUS_CHEGADA, STATUS_LIBERADA, STATUS_IMPEDIDA)
TERMINAL_STATUSES = frozenset({STATUS_LIBERADA, STATUS_IMPEDIDA})

EVENTO_SOLICITACAO = "solicitacao"
EVENTO_CHEGADA = "chegada"
EVENTO_LIBERACAO = "liberacao"
EVENTO_IMPEDIMENTO = "impedimento"
EVENT_TYPES = (EVENTO_SOLICITACAO, EVENTO_CHEGADA, EVENTO_LIBERACAO, EVENTO_IMPEDIMENTO)

RESPONSAVEL_ETM = "etm"
RESPONSAVEL_PETROBRAS = "petrobras"
RESPONSAVEL_SEM_ATRASO = "sem_atraso"
RESPONSAVEL_IMPEDIMENTO = "impedimento"
RESPONSAVEIS = (RESPONSAVEL_ETM, RESPONSAVEL_PETROBRAS, RESPONSAVEL_SEM_ATRASO, RESPONSAVEL_IMPEDIMENTO)

CONFIRMACAO_CONFIRMADO = "confirmado"
CONFIRMACAO_PENDENTE = "pendente"

TIPOS_PT = ("pt", "ptt")

EVENT_LABELS = {
    EVENTO_SOLICITACAO: "Solicitacao",
    EVENTO_CHEGADA: "Chegada",
    EVENTO_LIBERACAO: "Liberacao",
    EVENTO_IMPEDIMENTO: "Impedimento",
}

ROLE_LABELS = {
    ROLE_ADMIN: "Administrador",
    ROLE_ENCARREGADO: "Encarregado",
    ROLE_OPERADOR: "Operador",
    ROLE_VISUALIZADOR: "Visualizador",
}
