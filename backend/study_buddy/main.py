import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from . import telemetry_pipeline
from .chat_routes import router as chat_router
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import create_schema, dispose_engine, get_engine
from .logging_config import configure_logging
from .profile_routes import router as profile_router


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.persistence_mode == "database":
        if (settings.database_url or "").startswith("sqlite"):
            # Local SQLite databases are not migrated; create the tables in place.
            create_schema()
        telemetry_pipeline.install()
    try:
        yield
    finally:
        telemetry_pipeline.uninstall()
        dispose_engine()


app = FastAPI(title="Study Buddy Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(chat_router)
app.include_router(profile_router)

settings_snapshot = get_settings()
logger.info("Backend starting with persistence mode: %s", settings_snapshot.persistence_mode)
logger.info("OpenAI API key configured: %s", bool(settings_snapshot.openai_api_key))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "persistence_mode": settings.persistence_mode,
        "pool": get_pool_snapshot(engine),
    }
