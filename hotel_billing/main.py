import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hotel_billing.core.config import CORS_ORIGINS, DATABASE_URL
from hotel_billing.core.database import Base, engine
from hotel_billing.core.errors import ConflictError, NotFoundError, PersistenceError
from hotel_billing.core.logging_setup import configure_logging
from hotel_billing.core.startup_checks import ensure_migrations_applied, validate_environment
from hotel_billing.middleware.observability import ObservabilityMiddleware
import hotel_billing.models  # registers the models before create_all

from hotel_billing.routers.billing import router as billing_router
from hotel_billing.routers.internal_metrics import router as internal_metrics_router
from hotel_billing.routers.orders import router as orders_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


def _startup_tasks() -> None:
    try:
        validate_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("startup failed")
        raise


app = FastAPI(
    title="Hotel Billing API",
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


@app.exception_handler(ConflictError)
async def conflict_handler(_: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": exc.message, **jsonable_encoder(exc.details)})


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(_: Request, exc: PersistenceError):
    logger.error("persistence failure: %s", exc)
    return JSONResponse(status_code=500, content={"detail": "Could not save the invoice, please retry"})


@app.exception_handler(ValueError)
async def value_error_handler(_: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# Routers
app.include_router(orders_router)
app.include_router(billing_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}
