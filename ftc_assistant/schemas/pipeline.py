"""
PipelineContext carries per-request state between pipeline stages.

Created once per chat request and progressively enriched by each stage.
Nothing in here is shared across requests.
"""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

from ftc_assistant.schemas.chunk import RetrievedChunk
from ftc_assistant.schemas.plan import Plan
from ftc_assistant.schemas.response import FinalOutput


class PipelineContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # ── Inputs ───────────────────────────────────────────────────────
    question: str
    conversation_transcript: str = ""

    # ── Stage outputs (populated progressively) ─────────────────────
    plan: Plan | None = None
    selected_model: str | None = None
    context_chunks: list[RetrievedChunk] = Field(default_factory=list)
    final_output: FinalOutput | None = None

    # ── Timing ──────────────────────────────────────────────────────
    start_time: float = Field(default_factory=time.time)
    stage_timings: dict[str, float] = Field(default_factory=dict)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time
