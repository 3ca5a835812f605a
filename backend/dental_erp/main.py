from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dental_erp.api.api_v1.api import api_router
from dental_erp.core.config import settings
from dental_erp.core.exceptions import LabError, lab_error_handler, unhandled_error_handler
from dental_erp.core.logging_config import setup_logging, get_logger
from dental_erp.db import session as db_session
from dental_erp.db.init_db import ensure_tables_exist, seed_pricing_rules
from dental_erp.services.scheduler import init_scheduler, shutdown_scheduler, get_scheduler_status

setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown"""
    logger.info("Starting up...")

    await ensure_tables_exist()
    logger.info("Database tables ready")

    if settings.SEED_PRICING_RULES:
        async with db_session.SessionLocal() as db:
            await seed_pricing_rules(db)

    init_scheduler()
    yield
    logger.info("Shutting down...")
    shutdown_scheduler()

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    description="Dental lab production workflow and billing ledger",
    lifespan=lifespan
)

# CORS
if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"CORS origins: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(LabError, lab_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

logger.info(f"Registering API v1 routes at {settings.API_V1_STR}")
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME}


@app.get("/health")
async def health():
    return {"status": "ok", "scheduler": get_scheduler_status()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="info")
