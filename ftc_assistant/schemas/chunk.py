"""
Schemas for stored and retrieved document chunks.

DocumentChunk is what ingestion writes; RetrievedChunk is what a vector
store lookup returns for one query.  Retrieved rows are never written back.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentChunk(BaseModel):
    """One embedded window of a source document. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: str
    chunk_index: int = Field(ge=0)
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float]
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class RetrievedChunk(BaseModel):
    """A DocumentChunk row as returned by a nearest-neighbour lookup."""

    id: str | None = None
    source: str
    chunk_index: int | None = None
    content: str
    metadata: dict[str, Any] | None = None
    similarity: float = 0.0

    def metadata_string(self, key: str) -> str | None:
        """Return a trimmed, non-empty string metadata value or None."""
        if not self.metadata:
            return None
        value = self.metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @property
    def source_title(self) -> str:
        return self.metadata_string("source_title") or self.source

    @property
    def source_url(self) -> str | None:
        return self.metadata_string("source_url")
