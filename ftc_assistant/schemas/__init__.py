"""
Pydantic schemas for every pipeline boundary.
Each module covers one pipeline stage or cross-cutting concern.
"""

from ftc_assistant.schemas.chunk import DocumentChunk, RetrievedChunk
from ftc_assistant.schemas.plan import Plan
from ftc_assistant.schemas.response import (
    ChatMessage,
    ChatRequest,
    FinalOutput,
    ParsedFinalOutput,
    PipelineResult,
    SourceFragment,
)
from ftc_assistant.schemas.pipeline import PipelineContext

__all__ = [
    # Chunks
    "DocumentChunk",
    "RetrievedChunk",
    # Planner
    "Plan",
    # Response
    "FinalOutput",
    "ParsedFinalOutput",
    "SourceFragment",
    "PipelineResult",
    "ChatMessage",
    "ChatRequest",
    # Pipeline
    "PipelineContext",
]
