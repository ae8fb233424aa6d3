"""
prodigyhub.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn prodigyhub.api.main:app --reload --port 8000

Tests build their own app with :func:`create_app`, injecting an engine,
config and channel adapter.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

load_dotenv()

from prodigyhub.api.routes.admin import router as admin_router  # noqa: E402
from prodigyhub.api.routes.notifications import router as notifications_router  # noqa: E402
from prodigyhub.api.routes.projects import router as projects_router  # noqa: E402
from prodigyhub.api.routes.public import router as public_router  # noqa: E402
from prodigyhub.config import ProdigyConfig, default_config, load_config  # noqa: E402
from prodigyhub.database.engine import create_db_engine, init_db  # noqa: E402
from prodigyhub.errors import ProdigyError  # noqa: E402
from prodigyhub.services.channel_adapter import ChannelAdapter  # noqa: E402
from prodigyhub.services.channel_service import build_channel_adapter  # noqa: E402
from prodigyhub.services.completion_service import CompletionOrchestrator  # noqa: E402
from prodigyhub.services.project_service import ProjectService  # noqa: E402
from prodigyhub.services.xp_service import XPLedger  # noqa: E402

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


def _load_config() -> ProdigyConfig:
    path = os.getenv("PRODIGY_CONFIG", "config.yaml")
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.warning("No config file at %s; using built-in defaults", path)
        return default_config()


def create_app(
    engine: Engine | None = None,
    config: ProdigyConfig | None = None,
    adapter: ChannelAdapter | None = None,
) -> FastAPI:
    """Build the API.

    Anything not injected is created at startup: the engine from
    ``DATABASE_URL``, the config from ``config.yaml``, and the channel
    adapter from the environment.  Only objects created here are disposed
    at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_engine = engine is None
        db = engine or create_db_engine()
        if owns_engine:
            init_db(db)
        cfg = config or _load_config()
        channel = adapter or build_channel_adapter(db, cfg)
        ledger = XPLedger(db)

        app.state.engine = db
        app.state.config = cfg
        app.state.adapter = channel
        app.state.ledger = ledger
        app.state.projects = ProjectService(db, ledger=ledger, adapter=channel, config=cfg)
        app.state.completion = CompletionOrchestrator(
            db, ledger=ledger, adapter=channel, config=cfg
        )
        logger.info("ProdigyHub API started — engine ready (%s)", db.url.database)
        yield
        logger.info("ProdigyHub API shutting down")
        if adapter is None and hasattr(channel, "close"):
            channel.close()
        if owns_engine:
            db.dispose()

    app = FastAPI(
        title="ProdigyHub API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProdigyError)
    async def _prodigy_error_handler(request: Request, exc: ProdigyError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    app.include_router(projects_router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")
    app.include_router(public_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


# ---------------------------------------------------------------------------
# Logging: no-op when the host (uvicorn, pytest) already configured it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)

app = create_app()
