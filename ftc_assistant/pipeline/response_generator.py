"""
Pipeline Stage 3: Answer generation.

Stage transitions for one request:

    DRAFTING -> PARSING -> DONE
    DRAFTING -> TRUNCATED -> RETRYING -> PARSING -> ...
    PARSING -> MALFORMED -> REPAIRING -> DONE

There is at most one truncation retry and at most one repair call.  When
neither produces a parseable answer, the visible text is salvaged from the
raw output, and only when nothing is salvageable does the user get the
fixed apology.  Source numbers are trusted only from a successful parse.
"""

from __future__ import annotations

import json
import re
from dataclasses import replace
from enum import Enum
from typing import Iterable, Sequence

from pydantic import ValidationError

from ftc_assistant.core.auth import AuthStrategy
from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import GenerationError
from ftc_assistant.prompts.answer_generator import (
    build_answer_system_instruction,
    build_answer_user_prompt,
    build_repair_prompt,
    build_truncation_retry_instruction,
)
from ftc_assistant.prompts.constants import APOLOGY_ANSWER, JSON_MIME_TYPE
from ftc_assistant.schemas.chunk import RetrievedChunk
from ftc_assistant.schemas.plan import Plan
from ftc_assistant.schemas.response import FinalOutput, ParsedFinalOutput, SourceFragment
from ftc_assistant.services.llm import GenerationClient, GenerationRequest, GenerationResult
from ftc_assistant.utils.logging import get_logger
from ftc_assistant.utils.text import extract_json_object, normalize_assistant_markdown

logger = get_logger("ftc_assistant.pipeline.response_generator")

RETRY_BUDGET_INCREMENT = 1024

_ANSWER_FIELD = re.compile(r'"answer"\s*:\s*"([\s\S]*?)"(?:\s*,|\s*})')
_LEADING_ANSWER_KEY = re.compile(r'^[\s`]*\{?[\s\S]*?"answer"\s*:\s*', re.IGNORECASE)
_TRAILING_SOURCES_KEY = re.compile(r'"usedSourceNumbers"[\s\S]*$', re.IGNORECASE)
_JSON_PUNCTUATION = re.compile(r'[{}\[\]"]')
_JSON_ESCAPE = re.compile(r'\\(["\\/nt])')
_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "n": "\n", "t": "\t"}


class GenerationStage(str, Enum):
    DRAFTING = "drafting"
    TRUNCATED = "truncated"
    RETRYING = "retrying"
    PARSING = "parsing"
    MALFORMED = "malformed"
    REPAIRING = "repairing"
    DONE = "done"


# ── Parsing ─────────────────────────────────────────────────────────
def parse_final_output(raw: str) -> ParsedFinalOutput:
    """Strictly parse ``{answer, usedSourceNumbers}``; ok only with a non-empty answer."""
    json_text = extract_json_object(raw)
    if not json_text:
        return ParsedFinalOutput(answer="", ok=False)

    try:
        output = FinalOutput.model_validate(json.loads(json_text))
    except (json.JSONDecodeError, ValidationError):
        return ParsedFinalOutput(answer="", ok=False)

    answer = output.answer.strip()
    return ParsedFinalOutput(
        answer=answer,
        used_source_numbers=output.used_source_numbers,
        ok=bool(answer),
    )


def extract_answer_fallback_text(raw: str) -> str:
    """
    Salvage visible text from output that did not parse.

    First tries the quoted value of an ``answer`` field; otherwise strips the
    JSON scaffolding around it.  Returns "" when nothing remains.
    """
    match = _ANSWER_FIELD.search(raw)
    if match and match.group(1):
        return _JSON_ESCAPE.sub(lambda m: _ESCAPES[m.group(1)], match.group(1)).strip()

    stripped = _LEADING_ANSWER_KEY.sub("", raw, count=1)
    stripped = _TRAILING_SOURCES_KEY.sub("", stripped)
    return _JSON_PUNCTUATION.sub("", stripped).strip()


def valid_source_numbers(numbers: Iterable[int], chunk_count: int) -> list[int]:
    """Unique 1-based positions that exist in a list of ``chunk_count`` chunks, ascending."""
    return sorted({
        n for n in numbers
        if isinstance(n, int) and not isinstance(n, bool) and 1 <= n <= chunk_count
    })


def build_source_fragments(
    chunks: Sequence[RetrievedChunk],
    used_source_numbers: Iterable[int],
) -> list[SourceFragment]:
    fragments = []
    for number in valid_source_numbers(used_source_numbers, len(chunks)):
        chunk = chunks[number - 1]
        fragments.append(SourceFragment(
            title=f"[{number}] {chunk.source_title}",
            url=chunk.source_url,
            excerpt=chunk.content.strip(),
        ))
    return fragments


def retry_budget(budget: int, floor: int) -> int:
    """Output-token budget for the truncation retry; always larger than ``budget``."""
    return max(floor, budget + RETRY_BUDGET_INCREMENT)


# ── Generation ──────────────────────────────────────────────────────
def _enter(stage: GenerationStage) -> GenerationStage:
    logger.debug("[GENERATOR] stage -> %s", stage.value)
    return stage


async def _repair(
    malformed: str,
    *,
    llm: GenerationClient,
    auth: AuthStrategy,
    model: str,
    settings: Settings,
) -> ParsedFinalOutput:
    system_instruction, user_prompt = build_repair_prompt(malformed)
    request = GenerationRequest(
        model=model,
        system_instruction=system_instruction,
        user_prompt=user_prompt,
        temperature=0.0,
        max_output_tokens=settings.repair_max_output_tokens,
        response_mime_type=JSON_MIME_TYPE,
    )
    try:
        result = await llm.generate(request, auth)
    except GenerationError as e:
        logger.warning("[GENERATOR] Repair call failed: %s", e)
        return ParsedFinalOutput(answer="", ok=False)
    return parse_final_output(result.text)


async def generate_answer(
    question: str,
    plan: Plan,
    chunks: Sequence[RetrievedChunk],
    model: str,
    *,
    llm: GenerationClient,
    auth: AuthStrategy,
    settings: Settings,
    conversation_transcript: str = "",
) -> FinalOutput:
    """
    Produce the visible answer and the source numbers it relied on.

    Always returns a FinalOutput with a non-empty answer; upstream failures
    of the primary call degrade to the apology with no sources.
    """
    system_instruction = build_answer_system_instruction(chunks)
    user_prompt = build_answer_user_prompt(
        question,
        conversation_transcript if plan.needs_conversation_context else None,
    )
    budget = settings.final_model_max_output_tokens
    request = GenerationRequest(
        model=model,
        system_instruction=system_instruction,
        user_prompt=user_prompt,
        temperature=settings.final_model_temperature,
        max_output_tokens=budget,
        response_mime_type=JSON_MIME_TYPE,
    )

    stage = _enter(GenerationStage.DRAFTING)
    try:
        result: GenerationResult = await llm.generate(request, auth)
    except GenerationError as e:
        logger.error("[GENERATOR] %s failed (model=%s): %s", stage.value, model, e)
        return FinalOutput(answer=APOLOGY_ANSWER, used_source_numbers=[])

    if result.truncated:
        _enter(GenerationStage.TRUNCATED)
        retry_tokens = retry_budget(budget, settings.final_model_retry_min_output_tokens)
        logger.warning(
            "[GENERATOR] Output hit MAX_TOKENS at %d tokens; retrying with %d",
            budget, retry_tokens,
        )
        _enter(GenerationStage.RETRYING)
        retry_request = replace(
            request,
            system_instruction=build_truncation_retry_instruction(system_instruction),
            max_output_tokens=retry_tokens,
        )
        try:
            result = await llm.generate(retry_request, auth)
        except GenerationError as e:
            logger.warning("[GENERATOR] Retry failed, keeping first attempt: %s", e)

    _enter(GenerationStage.PARSING)
    raw = result.text
    parsed = parse_final_output(raw)

    if not parsed.ok:
        _enter(GenerationStage.MALFORMED)
        logger.warning("[GENERATOR] Answer output is not valid JSON; requesting repair")
        _enter(GenerationStage.REPAIRING)
        parsed = await _repair(raw, llm=llm, auth=auth, model=model, settings=settings)

    if parsed.ok:
        visible = parsed.answer
        used = valid_source_numbers(parsed.used_source_numbers, len(chunks))
    else:
        visible = extract_answer_fallback_text(raw) or APOLOGY_ANSWER
        used = []
        logger.warning("[GENERATOR] Repair did not yield JSON; using salvaged text")

    stage = _enter(GenerationStage.DONE)
    logger.info(
        "[GENERATOR] %s | model=%s | chars=%d | sources=%s", stage.value, model, len(visible), used,
    )
    return FinalOutput(answer=normalize_assistant_markdown(visible), used_source_numbers=used)
