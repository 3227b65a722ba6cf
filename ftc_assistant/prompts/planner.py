"""
Prompt template for the planner: difficulty/code classification plus
retrieval query proposals, answered as schema-exact JSON.
"""

from __future__ import annotations

from ftc_assistant.prompts.constants import PLANNER_SCHEMA, SEASON_DEFAULT_RULES


def build_planner_prompt(conversation_transcript: str, question: str) -> tuple[str, str]:
    """
    Build the system and user prompts for the planner call.

    Returns:
        (system_instruction, user_prompt)
    """
    system_instruction = "\n".join([
        "You are a routing planner for a RAG assistant.",
        *SEASON_DEFAULT_RULES,
        "You have full conversation context. Resolve pronouns, shorthand, and follow-up "
        "references using prior turns.",
        "Treat this as a multi-turn dialog, not an isolated one-shot prompt.",
        "If the latest question depends on earlier turns, set needsConversationContext=true.",
        "Read the conversation carefully and ground your decision in the actual user wording "
        "instead of assumptions.",
        "When uncertain, be conservative and escalate complexity.",
        "Return only valid JSON with this exact schema:",
        PLANNER_SCHEMA,
        "Be conservative: when unsure set needsCode=true and isHard=true.",
        "If question may depend on previous turns, set needsConversationContext=true.",
        "Only set shouldShortCircuit=true for very simple social/acknowledgement messages that "
        "need no retrieval or deeper reasoning (e.g. hi, hello, thanks).",
        "When shouldShortCircuit=true, provide a concise directResponse and set ragQueries to "
        "an empty array.",
        "ragQueries should be specific retrieval prompts needed to answer the user.",
        "No extra keys. No prose.",
    ])

    user_prompt = (
        f"Conversation so far:\n{conversation_transcript}\n\n"
        f"Latest user question:\n{question}"
    )
    return system_instruction, user_prompt
