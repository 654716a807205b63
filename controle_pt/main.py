import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from controle_pt.api.v1.cadastros import router as cadastros_router
from controle_pt.api.v1.dashboard import router as dashboard_router
from controle_pt.api.v1.me import router as me_router
from controle_pt.api.v1.pts import router as pts_router
from controle_pt.api.v1.relatorios import router as relatorios_router
from controle_pt.api.v1.sla import router as sla_router
from controle_pt.api.v1.users import router as users_router
from controle_pt.core.config import settings
from controle_pt.db import models
from controle_pt.db.init_db import seed_initial_data, upgrade_schema
from controle_pt.db.session import engine
from controle_pt.workflow.errors import WorkflowError

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("controle_pt")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Controle de Permissoes de Trabalho - solicitacao, chegada, liberacao e atrasos",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Truncated"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    upgrade_schema(engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(me_router, prefix="/api")
app.include_router(pts_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")
app.include_router(relatorios_router, prefix="/api")
app.include_router(cadastros_router, prefix="/api")
app.include_router(sla_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
