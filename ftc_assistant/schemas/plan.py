"""
Schema for the planner's output.

The planner model is asked for exactly this JSON shape.  Validation is
strict: a missing or mistyped field rejects the whole object and the
caller falls back to ``Plan.conservative()`` instead of mixing parsed and
default values.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Plan(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True, extra="ignore")

    needs_code: bool = Field(alias="needsCode")
    is_hard: bool = Field(alias="isHard")
    needs_conversation_context: bool = Field(alias="needsConversationContext")
    rag_queries: list[str] = Field(alias="ragQueries")
    should_short_circuit: bool = Field(alias="shouldShortCircuit")
    direct_response: str = Field(alias="directResponse")

    @classmethod
    def conservative(cls, question: str) -> "Plan":
        """Most expensive, most context-aware plan. Used whenever parsing fails."""
        return cls(
            needs_code=True,
            is_hard=True,
            needs_conversation_context=True,
            rag_queries=[question],
            should_short_circuit=False,
            direct_response="",
        )

    @property
    def short_circuit_response(self) -> str | None:
        if self.should_short_circuit and self.direct_response:
            return self.direct_response
        return None
