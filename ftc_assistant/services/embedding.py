"""
Embedding providers and dimension normalization.

Every vector that reaches the vector store goes through
``normalize_embedding`` with the same target dimensionality, at ingestion
time and at query time alike.  The store's column is dimension-fixed, so a
mismatch between the two paths would silently corrupt similarity search.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Iterator, Protocol, Sequence

import numpy as np
from openai import AsyncOpenAI

from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import ConfigurationError, EmbeddingDimensionError
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.services.embedding")


def normalize_embedding(vector: Sequence[float], target_dim: int) -> list[float]:
    """
    Map a provider vector onto exactly ``target_dim`` components.

    1. Same length: unchanged.
    2. Longer and an integer multiple: mean of each contiguous bucket.
    3. Longer otherwise: truncated.
    4. Shorter: right-padded with zeros.

    Case 3 is lossy in a different way from case 2; a provider whose native
    length stops being a multiple of the target silently switches from
    bucketing to truncation.
    """
    if target_dim <= 0:
        raise ValueError(f"target_dim must be positive, got {target_dim}")

    source_dim = len(vector)
    if source_dim == target_dim:
        return list(vector)

    if source_dim > target_dim and source_dim % target_dim == 0:
        ratio = source_dim // target_dim
        buckets = np.asarray(vector, dtype=float).reshape(target_dim, ratio)
        return buckets.mean(axis=1).tolist()

    if source_dim > target_dim:
        return list(vector[:target_dim])

    return list(vector) + [0.0] * (target_dim - source_dim)


def iter_embedding_batches(
    texts: Sequence[str],
    batch_size: int,
    max_chars: int,
) -> Iterator[list[str]]:
    """
    Greedy batches bounded by item count and total characters.

    A single text longer than ``max_chars`` still goes out alone, so the
    iterator always makes progress.
    """
    batch: list[str] = []
    batch_chars = 0
    for text in texts:
        if batch and (len(batch) >= batch_size or batch_chars + len(text) > max_chars):
            yield batch
            batch, batch_chars = [], 0
        batch.append(text)
        batch_chars += len(text)
    if batch:
        yield batch


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class OpenAIEmbedder:
    """OpenAI embeddings, checked against the configured expectation and normalized."""

    def __init__(self, settings: Settings, client: Any | None = None):
        if client is None:
            if not settings.openai_api_key:
                raise ConfigurationError("Missing OPENAI_API_KEY")
            client = AsyncOpenAI(api_key=settings.openai_api_key)
        self._client = client
        self.model = settings.openai_embedding_model
        self.expected_dimensions = settings.openai_embedding_dimensions
        self.target_dimensions = settings.openai_embedding_target_dimensions

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        kwargs: dict[str, Any] = {"model": self.model, "input": list(texts)}
        if self.expected_dimensions:
            kwargs["dimensions"] = self.expected_dimensions

        response = await self._client.embeddings.create(**kwargs)
        rows = sorted(response.data, key=lambda row: row.index)
        vectors = [row.embedding for row in rows]

        if vectors and not self.expected_dimensions:
            logger.debug(
                "Embedding dimension detected: %d (model=%s)", len(vectors[0]), self.model,
            )
        for vector in vectors:
            if self.expected_dimensions and len(vector) != self.expected_dimensions:
                raise EmbeddingDimensionError(self.expected_dimensions, len(vector), self.model)

        return [normalize_embedding(v, self.target_dimensions) for v in vectors]


class SentenceTransformerEmbedder:
    """Local sentence-transformers model; encodes in a worker thread."""

    def __init__(self, settings: Settings):
        self.model_name = settings.local_embedding_model
        self.target_dimensions = settings.openai_embedding_target_dimensions
        self._model: Any | None = None
        self._lock = threading.Lock()

    def _get_model(self) -> Any:
        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                self._model = SentenceTransformer(self.model_name)
                logger.info("SentenceTransformer model loaded: %s", self.model_name)
        return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        # show_progress_bar=False keeps tqdm off stderr
        return self._get_model().encode(texts, show_progress_bar=False).tolist()

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self._encode, list(texts))
        return [normalize_embedding(v, self.target_dimensions) for v in vectors]


def build_embedder(settings: Settings) -> Embedder:
    provider = settings.embedding_provider.lower()
    if provider == "openai":
        return OpenAIEmbedder(settings)
    if provider == "sentence_transformers":
        return SentenceTransformerEmbedder(settings)
    raise ConfigurationError(
        f"Unknown EMBEDDING_PROVIDER '{settings.embedding_provider}'. "
        "Use 'openai' or 'sentence_transformers'."
    )
