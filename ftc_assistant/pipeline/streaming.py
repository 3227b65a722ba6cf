"""
Chat response stream encoding.

The body is plain text: visible answer segments first, then exactly one
metadata block ``<<RAG_CONTEXT_JSON>>{"sourceFragments": [...]}<<END_RAG_CONTEXT_JSON>>``.
Clients split on the first start sentinel; if the end sentinel never
arrives (stream cut short) the metadata is dropped and the visible text
before the start sentinel is still usable.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Sequence

from ftc_assistant.schemas.response import SourceFragment
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.pipeline.streaming")

METADATA_START = "<<RAG_CONTEXT_JSON>>"
METADATA_END = "<<END_RAG_CONTEXT_JSON>>"

DEFAULT_SEGMENT_CHARS = 120

_NEWLINE_RUNS = re.compile(r"(\n+)")


def split_for_stream(text: str, max_chars: int = DEFAULT_SEGMENT_CHARS) -> list[str]:
    """
    Newline runs become their own segments; other runs are cut into pieces
    of at most ``max_chars``.  ``"".join(result) == text`` always holds.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    segments: list[str] = []
    for part in _NEWLINE_RUNS.split(text):
        if not part:
            continue
        if part.startswith("\n"):
            segments.append(part)
            continue
        segments.extend(part[i:i + max_chars] for i in range(0, len(part), max_chars))
    return segments


def encode_metadata_block(fragments: Sequence[SourceFragment]) -> str:
    payload = {"sourceFragments": [fragment.model_dump() for fragment in fragments]}
    return f"{METADATA_START}{json.dumps(payload, ensure_ascii=False)}{METADATA_END}"


def iter_stream_segments(
    text: str,
    fragments: Sequence[SourceFragment],
    segment_chars: int = DEFAULT_SEGMENT_CHARS,
) -> Iterator[str]:
    """Every segment of the body in order, metadata block last."""
    yield from split_for_stream(text, segment_chars)
    yield encode_metadata_block(fragments)


async def stream_answer(
    text: str,
    fragments: Sequence[SourceFragment],
    *,
    segment_chars: int = DEFAULT_SEGMENT_CHARS,
    pacing_seconds: float = 0.008,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """
    Paced async version of ``iter_stream_segments`` for StreamingResponse.

    Stops early, without the metadata block, once ``is_disconnected``
    reports the client has gone away.
    """
    segments = split_for_stream(text, segment_chars)
    for sent, segment in enumerate(segments):
        if is_disconnected is not None and await is_disconnected():
            logger.info("[STREAM] Client disconnected after %d/%d segments", sent, len(segments))
            return
        yield segment
        if pacing_seconds > 0:
            await asyncio.sleep(pacing_seconds)
    yield encode_metadata_block(fragments)


@dataclass(frozen=True)
class DecodedStream:
    visible: str
    metadata: dict[str, Any] | None = None

    @property
    def source_fragments(self) -> list[SourceFragment]:
        if not self.metadata:
            return []
        return [SourceFragment.model_validate(f) for f in self.metadata.get("sourceFragments") or []]


def decode_stream(body: str) -> DecodedStream:
    """Client-side split of a complete (or cut-short) response body."""
    start = body.find(METADATA_START)
    if start < 0:
        return DecodedStream(visible=body)

    visible = body[:start]
    rest = body[start + len(METADATA_START):]
    end = rest.find(METADATA_END)
    if end < 0:
        return DecodedStream(visible=visible)

    try:
        metadata = json.loads(rest[:end])
    except json.JSONDecodeError:
        return DecodedStream(visible=visible)
    if not isinstance(metadata, dict):
        return DecodedStream(visible=visible)
    return DecodedStream(visible=visible, metadata=metadata)
