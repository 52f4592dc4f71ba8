import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from order_engine.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from order_engine.core.database import engine
from order_engine.core.errors import register_error_handlers
from order_engine.core.logging_setup import configure_logging
from order_engine.core.startup_checks import ensure_migrations_applied, validate_database_environment
from order_engine.middleware.observability import ObservabilityMiddleware
import order_engine.models  # garante que os models são registrados no Base

from order_engine.routers.coupons import router as coupons_router
from order_engine.routers.inventory import router as inventory_router
from order_engine.routers.orders import router as orders_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


def _startup_tasks() -> None:
    logger.info("Starting order engine env=%s database=%s", ENV, DATABASE_URL.split(":", 1)[0])
    validate_database_environment()
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Order Engine API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
register_error_handlers(app)

app.include_router(orders_router)
app.include_router(coupons_router)
app.include_router(inventory_router)


@app.get("/")
def root():
    return {"status": "ok"}
