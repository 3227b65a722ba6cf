"""
Pipeline Stage 1: Planning.

A lightweight model call classifies the question (code? hard? needs prior
turns?) and proposes retrieval queries.  Output is validated against the
``Plan`` schema; anything that does not validate, and any upstream failure
of the planner call, yields the conservative plan instead.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from ftc_assistant.core.auth import AuthStrategy
from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import GenerationError
from ftc_assistant.prompts.constants import JSON_MIME_TYPE
from ftc_assistant.prompts.planner import build_planner_prompt
from ftc_assistant.schemas.plan import Plan
from ftc_assistant.services.llm import GenerationClient, GenerationRequest
from ftc_assistant.utils.logging import get_logger
from ftc_assistant.utils.text import extract_json_object

logger = get_logger("ftc_assistant.pipeline.planner")


def parse_planner_output(raw: str, fallback_question: str) -> Plan:
    """
    Parse raw planner text into a Plan.

    Empty or missing ragQueries fall back to the original question, so
    retrieval always has at least one query to run.
    """
    json_text = extract_json_object(raw)
    if not json_text:
        logger.warning("[PLANNER] No JSON object in planner output. Using conservative plan.")
        return Plan.conservative(fallback_question)

    try:
        plan = Plan.model_validate(json.loads(json_text))
    except json.JSONDecodeError as e:
        logger.warning("[PLANNER] Invalid JSON: %s. Using conservative plan.", e)
        return Plan.conservative(fallback_question)
    except ValidationError as e:
        logger.warning(
            "[PLANNER] Plan failed schema validation (%d error(s)). Using conservative plan.",
            e.error_count(),
        )
        return Plan.conservative(fallback_question)

    rag_queries = [q.strip() for q in plan.rag_queries if q.strip()]
    return plan.model_copy(update={
        "rag_queries": rag_queries or [fallback_question],
        "direct_response": plan.direct_response.strip(),
    })


async def plan_question(
    conversation_transcript: str,
    question: str,
    *,
    llm: GenerationClient,
    auth: AuthStrategy,
    settings: Settings,
) -> Plan:
    """Run the planner model and return a validated (or conservative) plan."""
    system_instruction, user_prompt = build_planner_prompt(conversation_transcript, question)
    request = GenerationRequest(
        model=settings.planner_model,
        system_instruction=system_instruction,
        user_prompt=user_prompt,
        temperature=settings.planner_temperature,
        max_output_tokens=settings.planner_max_output_tokens,
        response_mime_type=JSON_MIME_TYPE,
    )

    try:
        result = await llm.generate(request, auth)
    except GenerationError as e:
        logger.warning(
            "[PLANNER] Planner call failed (model=%s): %s. Using conservative plan.",
            settings.planner_model, e,
        )
        return Plan.conservative(question)

    plan = parse_planner_output(result.text, question)
    logger.info(
        "[PLANNER] code=%s | hard=%s | conversation=%s | queries=%d | short_circuit=%s",
        plan.needs_code, plan.is_hard, plan.needs_conversation_context,
        len(plan.rag_queries), plan.should_short_circuit,
    )
    return plan
