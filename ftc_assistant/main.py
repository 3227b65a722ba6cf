from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ftc_assistant import __version__
from ftc_assistant.api.chat import router as chat_router
from ftc_assistant.api.health import router as health_router
from ftc_assistant.core.config import settings
from ftc_assistant.core.context import build_app_context
from ftc_assistant.utils.logging import get_logger, setup_logging

setup_logging(settings.log_level.upper())
logger = get_logger("ftc_assistant.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the shared application context on startup and release it on
    shutdown.  Providers inside the context are created on first use.
    """
    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)
    app.state.context = build_app_context(settings)
    try:
        yield
    finally:
        await app.state.context.aclose()
        logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="FTC Assistant Backend API - planner-routed RAG answers with cited sources",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router, prefix="/api")     # /api/chat
app.include_router(health_router, prefix="/api")   # /api/health
