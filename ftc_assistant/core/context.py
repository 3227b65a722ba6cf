"""
Application context: the only state shared across requests.

Holds read-only settings, the shared HTTP client, and the access-token
cache.  Providers are built lazily so that a missing credential surfaces
as a ConfigurationError on the request that needs it, not at startup.
Tests construct an AppContext directly with fake providers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from ftc_assistant.core.auth import AuthStrategy, TokenCache, resolve_auth
from ftc_assistant.core.config import Settings
from ftc_assistant.services.embedding import Embedder, build_embedder
from ftc_assistant.services.llm import GeminiClient, GenerationClient
from ftc_assistant.services.vector_store import VectorStore, build_vector_store


@dataclass
class AppContext:
    settings: Settings
    http_client: httpx.AsyncClient
    token_cache: TokenCache | None = None
    embedder: Embedder | None = None
    vector_store: VectorStore | None = None
    llm: GenerationClient | None = None
    owns_http_client: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if self.token_cache is None:
            self.token_cache = TokenCache(
                refresh_margin_seconds=self.settings.token_refresh_margin_seconds,
            )

    def get_llm(self) -> GenerationClient:
        if self.llm is None:
            self.llm = GeminiClient(
                self.http_client, timeout=self.settings.generation_timeout_seconds,
            )
        return self.llm

    def get_embedder(self) -> Embedder:
        if self.embedder is None:
            self.embedder = build_embedder(self.settings)
        return self.embedder

    def get_vector_store(self) -> VectorStore:
        if self.vector_store is None:
            self.vector_store = build_vector_store(self.settings, self.http_client)
        return self.vector_store

    async def resolve_auth(self) -> AuthStrategy:
        return await resolve_auth(self.settings, self.token_cache)

    async def aclose(self) -> None:
        if self.owns_http_client:
            await self.http_client.aclose()


def build_app_context(settings: Settings) -> AppContext:
    return AppContext(
        settings=settings,
        http_client=httpx.AsyncClient(timeout=settings.generation_timeout_seconds),
        owns_http_client=True,
    )
