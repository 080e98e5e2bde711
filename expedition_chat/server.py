"""FastAPI server for the CuratedAscents Expedition Architect.

Run with:
    uvicorn expedition_chat.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from expedition_chat.agent import ChatOrchestrator
from expedition_chat.api.routes import router
from expedition_chat.background import BackgroundTaskRunner
from expedition_chat.config import load_settings
from expedition_chat.memory import InMemoryClientStore
from expedition_chat.scoring import LeadScorer
from expedition_chat.tools.backend import InMemoryTravelBackend
from expedition_chat.tools.registry import build_tool_registry

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings = load_settings()


# ── Lifespan ─────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the orchestrator and its stores once and keep them in app state."""
    background = BackgroundTaskRunner()
    client_store = InMemoryClientStore()
    backend = InMemoryTravelBackend.with_demo_data()

    application.state.client_store = client_store
    application.state.orchestrator = ChatOrchestrator(
        settings,
        build_tool_registry(backend),
        client_store=client_store,
        lead_scorer=LeadScorer(),
        background=background,
    )
    logger.info(
        "Orchestrator ready (model=%s, ai_configured=%s)",
        settings.deepseek_model, settings.ai_configured,
    )
    yield
    application.state.orchestrator = None
    logger.info("Draining background tasks…")
    background.shutdown(wait=True)


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="CuratedAscents Expedition Architect",
    description=(
        "Chat quoting agent for luxury adventure travel in Nepal, Tibet, "
        "Bhutan and India."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID for log correlation and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "CuratedAscents Expedition Architect",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting Expedition Chat API on %s:%d", settings.server_host, settings.server_port)
    uvicorn.run(
        "expedition_chat.server:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=True,
    )
