"""
Health check endpoint for monitoring.

Reports which backends the process is configured for without touching
them: no token is minted and the vector store is not opened.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ftc_assistant import __version__
from ftc_assistant.api.chat import get_app_context
from ftc_assistant.core.config import Settings
from ftc_assistant.core.context import AppContext

router = APIRouter(tags=["Health"])

SERVICE_NAME = "ftc-assistant"


def generation_auth_mode(settings: Settings) -> str:
    """Which credential ``resolve_auth`` would try first, or "unconfigured"."""
    if settings.google_credentials or (settings.vertex_access_token and settings.vertex_project_id):
        return "vertex"
    if settings.gemini_api_key:
        return "api_key"
    return "unconfigured"


@router.get("/health")
async def health_check(app_ctx: AppContext = Depends(get_app_context)):
    settings = app_ctx.settings
    auth_mode = generation_auth_mode(settings)
    return {
        "status": "ok" if auth_mode != "unconfigured" else "degraded",
        "service": SERVICE_NAME,
        "version": __version__,
        "environment": settings.environment,
        "generation_auth": auth_mode,
        "embedding_provider": settings.embedding_provider,
        "vector_store": settings.vector_store_backend,
    }
