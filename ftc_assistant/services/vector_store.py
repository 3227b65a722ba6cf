"""
Vector store backends.

Both backends implement the same two operations:

- ``match(embedding, match_count)``: nearest neighbours by cosine
  distance, ordered by descending similarity, at most ``match_count`` rows.
- ``replace_source(source, chunks)``: delete every row of ``source`` and
  insert the new chunks.  Rows are never updated in place, which keeps
  ``(source, chunk_index)`` unique.

``ChromaVectorStore`` is the default (local persistent HNSW index with
cosine space).  ``SupabaseVectorStore`` talks to a pgvector table and its
``match_documents`` RPC through PostgREST; see ``sql/rag_setup.sql``.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any, Protocol, Sequence

import chromadb
import httpx

from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import ConfigurationError, VectorStoreError
from ftc_assistant.schemas.chunk import DocumentChunk, RetrievedChunk
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.services.vector_store")


class VectorStore(Protocol):
    async def match(self, embedding: Sequence[float], match_count: int) -> list[RetrievedChunk]:
        ...

    async def replace_source(self, source: str, chunks: Sequence[DocumentChunk]) -> None:
        ...


def _check_unique_indexes(source: str, chunks: Sequence[DocumentChunk]) -> None:
    seen: set[int] = set()
    for chunk in chunks:
        if chunk.source != source:
            raise ValueError(f"Chunk source '{chunk.source}' does not match '{source}'")
        if chunk.chunk_index in seen:
            raise ValueError(f"Duplicate chunk_index {chunk.chunk_index} for source '{source}'")
        seen.add(chunk.chunk_index)


# ── ChromaDB ────────────────────────────────────────────────────────
def _get_persist_directory(persist_directory: str | None = None) -> str:
    """
    Resolve the directory where ChromaDB data is stored.
    Defaults to ftc_assistant/vector_db/chroma_db.
    """
    if persist_directory:
        return persist_directory
    base_dir = Path(__file__).resolve().parents[1]
    return str(base_dir / "vector_db" / "chroma_db")


class ChromaVectorStore:
    """Persistent ChromaDB collection configured for cosine distance."""

    def __init__(
        self,
        collection_name: str = "documents",
        persist_directory: str | None = None,
        client: Any | None = None,
    ):
        self.collection_name = collection_name
        if client is None:
            client = chromadb.PersistentClient(
                path=_get_persist_directory(persist_directory),
                settings=chromadb.Settings(anonymized_telemetry=False),
            )
        self._client = client
        self._collection: Any | None = None
        self._lock = threading.Lock()

    def _get_collection(self) -> Any:
        if self._collection is None:
            with self._lock:
                if self._collection is None:
                    self._collection = self._client.get_or_create_collection(
                        name=self.collection_name,
                        metadata={"hnsw:space": "cosine"},
                    )
        return self._collection

    def _match_sync(self, embedding: Sequence[float], match_count: int) -> list[RetrievedChunk]:
        collection = self._get_collection()
        available = collection.count()
        if available == 0 or match_count <= 0:
            return []

        result = collection.query(
            query_embeddings=[list(embedding)],
            n_results=min(match_count, available),
            include=["documents", "metadatas", "distances"],
        )
        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        rows: list[RetrievedChunk] = []
        for i, chunk_id in enumerate(ids):
            metadata = dict(metadatas[i] or {}) if i < len(metadatas) else {}
            chunk_index = metadata.get("chunk_index")
            distance = float(distances[i]) if i < len(distances) else 1.0
            rows.append(RetrievedChunk(
                id=chunk_id,
                source=str(metadata.get("source", "")),
                chunk_index=chunk_index if isinstance(chunk_index, int) else None,
                content=(documents[i] or "") if i < len(documents) else "",
                metadata=metadata,
                similarity=1.0 - distance,
            ))
        return rows

    def _replace_source_sync(self, source: str, chunks: Sequence[DocumentChunk]) -> None:
        collection = self._get_collection()
        collection.delete(where={"source": source})
        if not chunks:
            return

        metadatas: list[dict[str, Any]] = []
        for chunk in chunks:
            metadata = {
                **chunk.metadata,
                "source": chunk.source,
                "chunk_index": chunk.chunk_index,
                "created_at": chunk.created_at.isoformat(),
                "updated_at": chunk.updated_at.isoformat(),
            }
            # ChromaDB rejects None metadata values
            metadatas.append({k: v for k, v in metadata.items() if v is not None})

        collection.add(
            ids=[chunk.id for chunk in chunks],
            documents=[chunk.content for chunk in chunks],
            embeddings=[list(chunk.embedding) for chunk in chunks],
            metadatas=metadatas,
        )

    async def match(self, embedding: Sequence[float], match_count: int) -> list[RetrievedChunk]:
        try:
            return await asyncio.to_thread(self._match_sync, embedding, match_count)
        except Exception as exc:
            raise VectorStoreError(f"ChromaDB query failed: {exc}") from exc

    async def replace_source(self, source: str, chunks: Sequence[DocumentChunk]) -> None:
        _check_unique_indexes(source, chunks)
        try:
            await asyncio.to_thread(self._replace_source_sync, source, chunks)
        except Exception as exc:
            raise VectorStoreError(f"ChromaDB write failed for '{source}': {exc}") from exc
        logger.info("Stored %d chunks for '%s' in '%s'", len(chunks), source, self.collection_name)


# ── Supabase / pgvector ─────────────────────────────────────────────
class SupabaseVectorStore:
    """pgvector table behind PostgREST, queried through the match RPC."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str | None,
        service_role_key: str | None,
        match_function: str = "match_documents",
        table: str = "documents",
    ):
        if not url or not service_role_key:
            raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        self._http = http_client
        self._base = url.rstrip("/") + "/rest/v1"
        self._match_function = match_function
        self._table = table
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
            "Content-Type": "application/json",
        }

    async def match(self, embedding: Sequence[float], match_count: int) -> list[RetrievedChunk]:
        try:
            response = await self._http.post(
                f"{self._base}/rpc/{self._match_function}",
                headers=self._headers,
                json={"query_embedding": list(embedding), "match_count": match_count},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise VectorStoreError(f"Supabase RPC {self._match_function} failed: {exc}") from exc

        rows = response.json() or []
        return [RetrievedChunk.model_validate(row) for row in rows]

    async def replace_source(self, source: str, chunks: Sequence[DocumentChunk]) -> None:
        _check_unique_indexes(source, chunks)
        try:
            deleted = await self._http.delete(
                f"{self._base}/{self._table}",
                headers=self._headers,
                params={"source": f"eq.{source}"},
            )
            deleted.raise_for_status()
            if chunks:
                inserted = await self._http.post(
                    f"{self._base}/{self._table}",
                    headers={**self._headers, "Prefer": "return=minimal"},
                    json=[chunk.model_dump(mode="json") for chunk in chunks],
                )
                inserted.raise_for_status()
        except httpx.HTTPError as exc:
            raise VectorStoreError(f"Supabase write failed for '{source}': {exc}") from exc
        logger.info("Stored %d chunks for '%s' in '%s'", len(chunks), source, self._table)


def build_vector_store(settings: Settings, http_client: httpx.AsyncClient) -> VectorStore:
    backend = settings.vector_store_backend.lower()
    if backend == "chroma":
        return ChromaVectorStore(
            collection_name=settings.chromadb_collection,
            persist_directory=settings.chromadb_persist_directory,
        )
    if backend == "supabase":
        return SupabaseVectorStore(
            http_client,
            settings.supabase_url,
            settings.supabase_service_role_key,
            match_function=settings.supabase_match_function,
            table=settings.supabase_table,
        )
    raise ConfigurationError(
        f"Unknown VECTOR_STORE_BACKEND '{settings.vector_store_backend}'. Use 'chroma' or 'supabase'."
    )
