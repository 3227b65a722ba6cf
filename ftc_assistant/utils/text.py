"""
Text utilities shared by the planner and the answer generator:
  - JSON object extraction from free-form model output
  - Escaped-newline repair for visible answers
  - Conversation transcript rendering

All functions are pure (no I/O, no LLM).
"""

from __future__ import annotations

import re
from typing import Iterable, Protocol

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)

TRANSCRIPT_MAX_MESSAGES = 12


class _MessageLike(Protocol):
    role: str
    content: str


def extract_json_object(text: str) -> str | None:
    """
    Locate a JSON object inside raw model text.

    A fenced ```json block wins; otherwise the span from the first ``{`` to
    the last ``}``.  Returns None when neither is present.
    """
    fenced = _FENCED_JSON.search(text)
    if fenced and fenced.group(1):
        return fenced.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start:end + 1]
    return None


def normalize_assistant_markdown(text: str) -> str:
    """
    Normalize line endings and undo double-escaped newlines.

    Models occasionally return ``\\n`` literals instead of newlines.  They are
    unescaped only when they dominate: there are no real newlines, or there
    are at least twice as many escaped ones.
    """
    normalized = text.replace("\r\n", "\n")
    escaped_newlines = normalized.count("\\n")
    real_newlines = normalized.count("\n")

    if escaped_newlines > 0 and (real_newlines == 0 or escaped_newlines >= real_newlines * 2):
        return normalized.replace("\\n", "\n").replace("\\t", "\t")
    return normalized


def build_conversation_transcript(
    messages: Iterable[_MessageLike],
    max_messages: int = TRANSCRIPT_MAX_MESSAGES,
) -> str:
    """Render the most recent messages as ``ROLE: content`` lines."""
    recent = list(messages)[-max_messages:]
    return "\n".join(f"{m.role.upper()}: {m.content}" for m in recent)
