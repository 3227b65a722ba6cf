"""
Schemas for the generation stage and the chat API layer.

FinalOutput is the JSON contract the answer model must return.
PipelineResult is what the orchestrator hands to the HTTP layer.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Generation output ───────────────────────────────────────────────
class FinalOutput(BaseModel):
    """
    ``{answer, usedSourceNumbers}`` as produced by the answer model.

    ``used_source_numbers`` holds 1-based positions into the chunk list
    that was sent to the model.
    """

    model_config = ConfigDict(populate_by_name=True, strict=True, extra="ignore")

    answer: str
    used_source_numbers: list[int] = Field(default_factory=list, alias="usedSourceNumbers")

    @field_validator("used_source_numbers", mode="before")
    @classmethod
    def _integral_floats_to_int(cls, value: Any) -> Any:
        # JSON numbers like 2.0 are valid citations; 1.5 still fails strict int
        if isinstance(value, list):
            return [
                int(n) if isinstance(n, float) and n.is_integer() else n
                for n in value
            ]
        return value


class ParsedFinalOutput(FinalOutput):
    """FinalOutput plus whether the parse produced a usable (non-empty) answer."""

    ok: bool = False


class SourceFragment(BaseModel):
    """One cited excerpt, sent to the client in the trailing metadata block."""

    title: str
    url: str | None = None
    excerpt: str


class PipelineResult(BaseModel):
    """
    Complete pipeline output.  Guaranteed shape regardless of which
    code path (short-circuit, full RAG, degraded) produced it.
    """

    answer: str
    source_fragments: list[SourceFragment] = Field(default_factory=list)
    short_circuit: bool = False
    model_used: str | None = None
    processing_time_seconds: float = 0.0


# ── External API schemas ────────────────────────────────────────────
class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)

    def latest_user_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return None
