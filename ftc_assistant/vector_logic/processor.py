"""
Document ingestion: data directory -> chunks -> embeddings -> vector store.

Every file under the data directory is identified by its POSIX path
relative to that directory.  ``sources.json`` in the same directory maps
those paths to a canonical ``{url, title}``; the title and URL travel with
every chunk so answers can cite them.

Each source is replaced wholesale (delete, then insert) so re-ingesting a
changed file never leaves stale chunks behind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import IngestionError
from ftc_assistant.schemas.chunk import DocumentChunk
from ftc_assistant.services.embedding import Embedder, iter_embedding_batches
from ftc_assistant.services.vector_store import VectorStore
from ftc_assistant.utils.logging import get_logger
from ftc_assistant.utils.timing import timed
from ftc_assistant.vector_logic.chunking import build_chunks
from ftc_assistant.vector_logic.extraction import (
    PDF_EXTENSIONS,
    SUPPORTED_EXTENSIONS,
    TextExtractor,
    UnsupportedFormatError,
    extract_text,
)

logger = get_logger("ftc_assistant.vector_logic.processor")

MANIFEST_FILENAME = "sources.json"


@dataclass(frozen=True)
class SourceInfo:
    url: str | None
    title: str


@dataclass
class IngestionSummary:
    files: int = 0
    chunks: int = 0
    skipped: list[str] = field(default_factory=list)


# ── Manifest ────────────────────────────────────────────────────────
def load_sources_manifest(manifest_path: Path, require_source_url: bool = True) -> dict[str, Any]:
    """
    Load ``sources.json``: an object keyed by relative POSIX path.

    A missing manifest is only acceptable when source URLs are optional.
    """
    if not manifest_path.exists():
        if require_source_url:
            raise IngestionError(
                f"Missing {manifest_path}. Create it to map each file to a canonical URL."
            )
        return {}

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise IngestionError(f"{manifest_path} is not valid JSON: {e}") from e

    if not isinstance(manifest, dict):
        raise IngestionError(f"{MANIFEST_FILENAME} must be a JSON object keyed by relative file path.")
    return manifest


def get_source_info(
    relative_path: str,
    manifest: dict[str, Any],
    require_source_url: bool = True,
) -> SourceInfo:
    entry = manifest.get(relative_path)
    if not isinstance(entry, dict):
        if require_source_url:
            raise IngestionError(f'Missing source entry for "{relative_path}" in {MANIFEST_FILENAME}.')
        return SourceInfo(url=None, title=relative_path)

    url = entry.get("url").strip() if isinstance(entry.get("url"), str) else ""
    title = entry.get("title").strip() if isinstance(entry.get("title"), str) else ""

    if not url and require_source_url:
        raise IngestionError(f'Missing URL for "{relative_path}" in {MANIFEST_FILENAME}.')
    return SourceInfo(url=url or None, title=title or relative_path)


# ── Embedding ───────────────────────────────────────────────────────
async def embed_texts(
    texts: Sequence[str],
    embedder: Embedder,
    batch_size: int = 20,
    max_chars: int = 24000,
) -> list[list[float]]:
    """Embed in batches bounded by item count and total characters, preserving order."""
    embeddings: list[list[float]] = []
    for batch in iter_embedding_batches(texts, batch_size, max_chars):
        embeddings.extend(await embedder.embed(batch))
    if len(embeddings) != len(texts):
        raise IngestionError(f"Embedder returned {len(embeddings)} vectors for {len(texts)} texts")
    return embeddings


# ── Files ───────────────────────────────────────────────────────────
def _chunk_file(file_path: Path, extractor: TextExtractor, settings: Settings) -> list[str]:
    chunks = build_chunks(extractor(file_path), settings.rag_chunk_size, settings.rag_chunk_overlap)
    if chunks or file_path.suffix.lower() not in PDF_EXTENSIONS:
        return chunks

    # Scanned PDFs often ship with an HTML rendering next to them
    for sibling in (file_path.with_suffix(".htm"), file_path.with_suffix(".html")):
        if not sibling.exists():
            continue
        chunks = build_chunks(extractor(sibling), settings.rag_chunk_size, settings.rag_chunk_overlap)
        if chunks:
            logger.info("PDF extraction empty for %s; using fallback %s", file_path.name, sibling.name)
            return chunks
    return []


@timed("ingest_file")
async def ingest_file(
    file_path: Path,
    data_dir: Path,
    manifest: dict[str, Any],
    *,
    embedder: Embedder,
    vector_store: VectorStore,
    settings: Settings,
    extractor: TextExtractor = extract_text,
) -> int:
    """
    Ingest one file and return the number of chunks stored.

    Source info is validated before any embedding call, so a file missing
    from the manifest fails without spending provider quota.
    """
    relative_path = file_path.relative_to(data_dir).as_posix()
    source_info = get_source_info(relative_path, manifest, settings.rag_require_source_url)

    texts = _chunk_file(file_path, extractor, settings)
    if not texts:
        logger.info("Skipping %s (no content)", relative_path)
        return 0

    embeddings = await embed_texts(
        texts, embedder, settings.rag_embed_batch_size, settings.rag_embed_max_chars,
    )
    chunks = [
        DocumentChunk(
            source=relative_path,
            chunk_index=index,
            content=text,
            metadata={
                "source": relative_path,
                "source_url": source_info.url,
                "source_title": source_info.title,
                "chunk_index": index,
            },
            embedding=embedding,
        )
        for index, (text, embedding) in enumerate(zip(texts, embeddings))
    ]

    await vector_store.replace_source(relative_path, chunks)
    logger.info(
        "Ingested %s (%d chunks) -> %s", relative_path, len(chunks), source_info.url or "no-url",
    )
    return len(chunks)


def list_source_files(data_dir: Path) -> list[Path]:
    """Supported files under ``data_dir`` (recursive, sorted), excluding the manifest."""
    manifest_path = (data_dir / MANIFEST_FILENAME).resolve()
    return sorted(
        path for path in data_dir.rglob("*")
        if path.is_file()
        and path.suffix.lower() in SUPPORTED_EXTENSIONS
        and path.resolve() != manifest_path
    )


async def ingest_directory(
    data_dir: Path,
    *,
    embedder: Embedder,
    vector_store: VectorStore,
    settings: Settings,
    extractor: TextExtractor = extract_text,
) -> IngestionSummary:
    summary = IngestionSummary()
    if not data_dir.is_dir():
        logger.warning("No data directory found at %s. Create it and add docs first.", data_dir)
        return summary

    manifest = load_sources_manifest(data_dir / MANIFEST_FILENAME, settings.rag_require_source_url)
    files = list_source_files(data_dir)
    if not files:
        logger.warning("No supported files found in %s", data_dir)
        return summary

    for file_path in files:
        try:
            chunk_count = await ingest_file(
                file_path,
                data_dir,
                manifest,
                embedder=embedder,
                vector_store=vector_store,
                settings=settings,
                extractor=extractor,
            )
        except UnsupportedFormatError as e:
            logger.warning("Skipping %s: %s", file_path.name, e)
            summary.skipped.append(file_path.relative_to(data_dir).as_posix())
            continue
        summary.files += 1
        summary.chunks += chunk_count

    logger.info("Done. Ingested %d files and %d chunks.", summary.files, summary.chunks)
    return summary
