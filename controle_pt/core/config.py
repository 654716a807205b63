import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent

LOCAL_FRONTENDS = [f"http://{host}{port}" for host in ("localhost", "127.0.0.1") for port in ("", ":3000", ":5173", ":8080")]


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    def __init__(self) -> None:
        self.APP_NAME: str = os.getenv("APP_NAME", "Controle de PTs")
        self.ENV: str = os.getenv("ENV", "development")

        # Token e banco
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(BASE_DIR / 'controle_pt.db').as_posix()}",
        )

        # Links do QR code e limite da planilha
        self.PUBLIC_APP_BASE_URL: str = os.getenv("PUBLIC_APP_BASE_URL", "http://localhost:5173").rstrip("/")
        self.EXPORT_MAX_ROWS: int = int(os.getenv("EXPORT_MAX_ROWS", "10000"))

        # Valores usados quando nao ha sla_config ativa no banco
        self.SLA_HORA_LIMITE_SOLICITACAO: str = os.getenv("SLA_HORA_LIMITE_SOLICITACAO", "07:30:00")
        self.SLA_HORA_LIMITE_LIBERACAO: str = os.getenv("SLA_HORA_LIMITE_LIBERACAO", "08:15:00")
        self.SLA_TIMEZONE: str = os.getenv("SLA_TIMEZONE", "America/Sao_Paulo")

        self.BACKEND_CORS_ORIGINS: List[str] = _env_list("BACKEND_CORS_ORIGINS", LOCAL_FRONTENDS)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
