"""
Shared fixtures and hand-written fakes for provider boundaries.

Fakes record every call so tests can assert on what the pipeline asked
for, not just on what it returned.
"""

from __future__ import annotations

from typing import Callable, Sequence, Union

import httpx
import pytest

from ftc_assistant.core.auth import ApiKeyAuth
from ftc_assistant.core.config import Settings
from ftc_assistant.core.context import AppContext
from ftc_assistant.schemas.chunk import DocumentChunk, RetrievedChunk
from ftc_assistant.services.llm import GenerationRequest, GenerationResult

Reply = Union[GenerationResult, Exception, str]


class FakeLLM:
    """Replays scripted replies in order; a string is shorthand for a STOP result."""

    def __init__(self, replies: Sequence[Reply] = ()):
        self.replies = list(replies)
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest, auth) -> GenerationResult:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"Unexpected generation call for model {request.model}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return GenerationResult(text=reply, finish_reason="STOP")
        return reply


class FakeEmbedder:
    """Maps each distinct text to a one-component vector holding its id."""

    def __init__(self, fail_on: Callable[[str], Exception | None] | None = None):
        self.vocabulary: dict[str, int] = {}
        self.calls: list[list[str]] = []
        self.fail_on = fail_on

    def vector_for(self, text: str) -> list[float]:
        return [float(self.vocabulary.setdefault(text, len(self.vocabulary)))]

    def text_for(self, vector: Sequence[float]) -> str:
        wanted = int(vector[0])
        return next(text for text, idx in self.vocabulary.items() if idx == wanted)

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on is not None:
            for text in texts:
                error = self.fail_on(text)
                if error is not None:
                    raise error
        return [self.vector_for(text) for text in texts]


class FakeVectorStore:
    """Answers ``match`` from a query-text -> chunks table via the FakeEmbedder."""

    def __init__(self, embedder: FakeEmbedder, results: dict[str, list[RetrievedChunk]] | None = None):
        self.embedder = embedder
        self.results = results or {}
        self.matched: list[str] = []
        self.replaced: dict[str, list[DocumentChunk]] = {}

    async def match(self, embedding: Sequence[float], match_count: int) -> list[RetrievedChunk]:
        query = self.embedder.text_for(embedding)
        self.matched.append(query)
        return list(self.results.get(query, []))[:match_count]

    async def replace_source(self, source: str, chunks: Sequence[DocumentChunk]) -> None:
        self.replaced[source] = list(chunks)


def make_chunk(source: str, index: int | None, content: str = "", **metadata) -> RetrievedChunk:
    return RetrievedChunk(
        id=None,
        source=source,
        chunk_index=index,
        content=content or f"{source} chunk {index}",
        metadata={"source": source, "chunk_index": index, **metadata},
        similarity=0.9,
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        gemini_api_key="test-key",
        vertex_access_token=None,
        vertex_project_id=None,
        google_credentials=None,
        openai_api_key=None,
        stream_pacing_seconds=0.0,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def auth() -> ApiKeyAuth:
    return ApiKeyAuth(api_key="test-key")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def vector_store(embedder: FakeEmbedder) -> FakeVectorStore:
    return FakeVectorStore(embedder)


@pytest.fixture
def app_context_factory(settings: Settings):
    """Build an AppContext wired to fakes; the HTTP client never reaches the network."""

    def factory(llm: FakeLLM, embedder: FakeEmbedder, vector_store: FakeVectorStore, **overrides) -> AppContext:
        ctx_settings = make_settings(**overrides) if overrides else settings
        transport = httpx.MockTransport(lambda request: httpx.Response(599))
        return AppContext(
            settings=ctx_settings,
            http_client=httpx.AsyncClient(transport=transport),
            llm=llm,
            embedder=embedder,
            vector_store=vector_store,
        )

    return factory
