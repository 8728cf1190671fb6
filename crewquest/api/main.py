"""
crewquest.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn crewquest.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from crewquest.api.deps import get_engine  # noqa: E402
from crewquest.api.routes.admin import router as admin_router  # noqa: E402
from crewquest.api.routes.game import router as game_router  # noqa: E402
from crewquest.database.engine import init_db  # noqa: E402
from crewquest.errors import ConflictRetryExhausted, PersistenceError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and seed defaults."""
    engine = get_engine()
    init_db(engine)
    logger.info("CrewQuest API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("CrewQuest API shutting down")


app = FastAPI(
    title="CrewQuest Game API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(game_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    code = 409 if isinstance(exc, ConflictRetryExhausted) else 503
    return JSONResponse(status_code=code, content=exc.to_dict())


@app.get("/api/health")
def health():
    return {"status": "ok"}
