"""FastAPI main application for Taleweave."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taleweave import __version__
from taleweave.config import Config
from taleweave.db.session import init_db
from taleweave.logging_config import setup_logging

from .routes import game, packages

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    setup_logging(Config.LOG_LEVEL)
    init_db()
    for issue in Config.validate():
        logger.warning(f"Config: {issue}")
    logger.info("Taleweave starting up")
    yield
    # Shutdown: release orchestrator resources
    game.reset_orchestrator()
    logger.info("Taleweave shut down cleanly")


app = FastAPI(
    title="Taleweave API",
    description="Session-based interactive narrative turn engine",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for the visual-novel client
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(game.router, prefix="/api/game", tags=["Game"])
app.include_router(packages.router, prefix="/api/packages", tags=["Packages"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@app.get("/api/providers")
async def list_providers():
    """List LLM providers with configured keys."""
    available = Config.get_available_providers()
    primary = None
    if available:
        from taleweave.llm import get_llm_manager
        primary = get_llm_manager().primary_provider
    return {"available": available, "primary": primary}
