"""
Centralized constants for prompts, JSON schemas, and fixed user-facing strings.
"""

from __future__ import annotations


ASSISTANT_NAME = "FTC Assistant"

# ── Season defaults ─────────────────────────────────────────────────
SEASON_DEFAULT_RULES: list[str] = [
    "Default season assumption: if the user does not specify a season/year, "
    "assume they mean the current FTC season, DECODE.",
    "If user/context clearly indicates another season, use that instead.",
]

# ── JSON schemas quoted inside prompts ──────────────────────────────
PLANNER_SCHEMA = "\n".join([
    "{",
    '  "needsCode": boolean,',
    '  "isHard": boolean,',
    '  "needsConversationContext": boolean,',
    '  "ragQueries": string[],',
    '  "shouldShortCircuit": boolean,',
    '  "directResponse": string',
    "}",
])

FINAL_OUTPUT_SCHEMA = '{ "answer": string, "usedSourceNumbers": number[] }'

JSON_MIME_TYPE = "application/json"

# ── Fixed user-facing strings ───────────────────────────────────────
APOLOGY_ANSWER = "I’m sorry, I couldn’t generate a complete answer."

TRUNCATION_RETRY_NOTE = (
    "Your previous attempt was cut off. Return a complete JSON object in one response."
)
