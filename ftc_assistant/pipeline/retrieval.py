"""
Pipeline Stage 2: Retrieval.

Builds the query set (question, domain-prefixed question, planner queries,
vocabulary substitutions), embeds and searches each query concurrently,
then merges the results keeping the first occurrence of every chunk.

Per-query failures are tolerated: a query that fails to embed or search
contributes nothing and the others still count.  Configuration errors
(missing credentials, embedding dimension mismatch) are not retrieval
failures and propagate.
"""

from __future__ import annotations

import asyncio
import re
from typing import Sequence

from ftc_assistant.core.errors import ConfigurationError
from ftc_assistant.schemas.chunk import RetrievedChunk
from ftc_assistant.services.embedding import Embedder
from ftc_assistant.services.vector_store import VectorStore
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.pipeline.retrieval")

DEFAULT_DOMAIN_PREFIX = "FTC DECODE season question:"

# Colloquial terms users type vs. the vocabulary the season documents use
VOCABULARY_SUBSTITUTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bballs?\b", re.IGNORECASE), "ARTIFACTS"),
]


def build_retrieval_queries(
    question: str,
    planner_queries: Sequence[str] = (),
    domain_prefix: str = DEFAULT_DOMAIN_PREFIX,
) -> list[str]:
    """
    Ordered, de-duplicated query set.  Blank entries are dropped.

    >>> build_retrieval_queries("How many balls?", [])
    ['How many balls?', 'FTC DECODE season question: How many balls?', 'How many ARTIFACTS?']
    """
    queries: dict[str, None] = {}

    def add(query: str) -> None:
        query = query.strip()
        if query:
            queries.setdefault(query, None)

    normalized = question.strip()
    if normalized:
        add(normalized)
        add(f"{domain_prefix} {normalized}")

    for query in planner_queries:
        add(query)

    for pattern, canonical in VOCABULARY_SUBSTITUTIONS:
        if normalized and pattern.search(normalized):
            add(pattern.sub(canonical, normalized))

    return list(queries)


def _chunk_index_key(chunk: RetrievedChunk) -> str:
    value = chunk.chunk_index
    if value is None:
        value = (chunk.metadata or {}).get("chunk_index")
    if isinstance(value, bool):
        return "na"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str) and value.strip().isdigit():
        return value.strip()
    return "na"


def chunk_identity(chunk: RetrievedChunk) -> str:
    """Chunk id when present, otherwise ``source:chunk_index`` (``na`` if unknown)."""
    if chunk.id:
        return str(chunk.id)
    return f"{chunk.source}:{_chunk_index_key(chunk)}"


def dedupe_chunks(chunks: Sequence[RetrievedChunk]) -> list[RetrievedChunk]:
    """Keep the first occurrence of every chunk identity, preserving order."""
    seen: set[str] = set()
    unique: list[RetrievedChunk] = []
    for chunk in chunks:
        key = chunk_identity(chunk)
        if key in seen:
            continue
        seen.add(key)
        unique.append(chunk)
    return unique


async def _search_query(
    query: str,
    embedder: Embedder,
    vector_store: VectorStore,
    match_count: int,
) -> list[RetrievedChunk]:
    vectors = await embedder.embed([query])
    if not vectors or not vectors[0]:
        return []
    return await vector_store.match(vectors[0], match_count)


async def search_queries(
    queries: Sequence[str],
    *,
    embedder: Embedder,
    vector_store: VectorStore,
    match_count: int,
) -> list[RetrievedChunk]:
    """Run every query concurrently and merge in query order."""
    if not queries:
        return []

    results = await asyncio.gather(
        *(_search_query(q, embedder, vector_store, match_count) for q in queries),
        return_exceptions=True,
    )

    merged: list[RetrievedChunk] = []
    failed = 0
    for query, result in zip(queries, results):
        if isinstance(result, ConfigurationError):
            raise result
        if isinstance(result, Exception):
            failed += 1
            logger.warning("[RETRIEVAL] Query failed (%r): %s", query, result)
            continue
        if isinstance(result, BaseException):
            raise result
        merged.extend(result)

    if failed:
        logger.warning("[RETRIEVAL] %d/%d queries failed", failed, len(queries))
    return dedupe_chunks(merged)


async def retrieve_chunks(
    question: str,
    planner_queries: Sequence[str],
    *,
    embedder: Embedder,
    vector_store: VectorStore,
    match_count: int = 6,
    domain_prefix: str = DEFAULT_DOMAIN_PREFIX,
) -> list[RetrievedChunk]:
    queries = build_retrieval_queries(question, planner_queries, domain_prefix)
    logger.info("[RETRIEVAL] %d queries: %s", len(queries), queries)

    chunks = await search_queries(
        queries, embedder=embedder, vector_store=vector_store, match_count=match_count,
    )
    logger.info("[RETRIEVAL] %d unique chunks", len(chunks))
    return chunks
