"""
Prompt templates for answer generation and JSON repair.

Reference notes are numbered from 1 in the order the chunks are sent;
the model cites them back through ``usedSourceNumbers``.
"""

from __future__ import annotations

from typing import Sequence

from ftc_assistant.prompts.constants import (
    ASSISTANT_NAME,
    FINAL_OUTPUT_SCHEMA,
    SEASON_DEFAULT_RULES,
    TRUNCATION_RETRY_NOTE,
)
from ftc_assistant.schemas.chunk import RetrievedChunk


def build_reference_notes(chunks: Sequence[RetrievedChunk]) -> str:
    """Render chunks as ``[n] Source: <title>`` blocks with optional URL lines."""
    blocks = []
    for i, chunk in enumerate(chunks, start=1):
        header = [f"[{i}] Source: {chunk.source_title}"]
        if chunk.source_url:
            header.append(f"URL: {chunk.source_url}")
        blocks.append("\n".join(header) + "\n" + chunk.content)
    return "\n\n---\n\n".join(blocks)


def build_context_block(chunks: Sequence[RetrievedChunk]) -> str:
    """Grounding block appended to the answer system instruction."""
    if not chunks:
        return "\n".join([
            f"You are {ASSISTANT_NAME}.",
            "No external context was retrieved. Answer carefully and state uncertainty when needed.",
        ])

    return "\n".join([
        f"You are {ASSISTANT_NAME}. Use the retrieved context below when relevant.",
        "Read every reference note closely before deciding your answer.",
        "Each reference note is a retrieved chunk and may be incomplete or cut mid-sentence/mid-code.",
        "Treat missing lines before/after a chunk as unknown; do not assume omitted content.",
        "If a code sample appears truncated, you may complete it with a best-effort reconstruction.",
        "When you reconstruct missing code, explicitly label what is inferred vs what is directly "
        "supported by notes.",
        "Prefer conservative, compilable completions and call out assumptions that affect behavior.",
        "Base conclusions on note evidence, not prior assumptions.",
        "If context is insufficient, say what is missing instead of guessing.",
        "Use these reference notes silently to improve factual accuracy.",
        "Do not mention that these notes exist.",
        "",
        "Reference notes:",
        build_reference_notes(chunks),
    ])


def build_answer_system_instruction(chunks: Sequence[RetrievedChunk]) -> str:
    return "\n\n".join([
        f"You are {ASSISTANT_NAME}.",
        *SEASON_DEFAULT_RULES,
        "Read all reference notes closely before answering.",
        "Reason from the provided evidence first; do not rely on preconceived assumptions or prior bias.",
        "If notes conflict, resolve explicitly and prefer the most direct rule text.",
        "Act as a single direct assistant. Do not mention internal pipeline steps, retrieval, "
        "provided context, or that you were given documents.",
        "Never say phrases like 'based on the provided information' or 'according to the "
        "retrieved context'.",
        "Never refer to excerpts, context blocks, source fragments, retrieved notes, or documents "
        "in your visible answer.",
        "Return ONLY JSON with this exact schema:",
        FINAL_OUTPUT_SCHEMA,
        "usedSourceNumbers must contain only the numeric context labels you actually relied on "
        "(e.g., [1], [3]).",
        "If no context was used, return an empty array.",
        "Do not include citations, source labels, or a Sources section inside the answer field.",
        "Include concise, actionable answers and answer in a smooth, natural tone.",
        "If unsure, state uncertainty directly without mentioning hidden context/retrieval.",
        build_context_block(chunks),
    ])


def build_truncation_retry_instruction(system_instruction: str) -> str:
    return f"{system_instruction}\n\n{TRUNCATION_RETRY_NOTE}"


def build_answer_user_prompt(question: str, conversation_transcript: str | None = None) -> str:
    contextual_block = (
        f"Conversation context:\n{conversation_transcript}\n\n" if conversation_transcript else ""
    )
    return f"{contextual_block}User question:\n{question}"


def build_repair_prompt(malformed: str) -> tuple[str, str]:
    """
    Strict reformatting prompt for malformed answer output.

    Returns:
        (system_instruction, user_prompt)
    """
    system_instruction = "\n".join([
        "You are a strict JSON formatter.",
        "Given malformed model output, return only valid JSON with this exact schema:",
        FINAL_OUTPUT_SCHEMA,
        "Do not add commentary.",
    ])
    return system_instruction, f"Malformed output:\n{malformed}"
