"""
Pipeline Orchestrator: top-level entry point.

Resolves credentials and providers, then runs planner -> router ->
retrieval -> answer generation, with a short-circuit exit after the
planner for small talk.  Each stage is independently callable.
"""

from __future__ import annotations

from typing import Sequence

from ftc_assistant.core.context import AppContext
from ftc_assistant.core.errors import ConfigurationError
from ftc_assistant.pipeline.model_selector import select_model
from ftc_assistant.pipeline.planner import plan_question
from ftc_assistant.pipeline.response_generator import build_source_fragments, generate_answer
from ftc_assistant.pipeline.retrieval import retrieve_chunks
from ftc_assistant.schemas.pipeline import PipelineContext
from ftc_assistant.schemas.response import ChatMessage, PipelineResult
from ftc_assistant.utils.logging import get_logger
from ftc_assistant.utils.text import build_conversation_transcript
from ftc_assistant.utils.timing import Timer

logger = get_logger("ftc_assistant.pipeline.orchestrator")


def latest_user_question(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content.strip()
    return ""


async def run_pipeline(messages: Sequence[ChatMessage], app_ctx: AppContext) -> PipelineResult:
    """
    Answer the latest user message of a conversation.

    Raises:
        ValueError: there is no non-empty user message.
        ConfigurationError: credentials or provider configuration are
            missing or invalid.  Raised before any retrieval call.
    """
    question = latest_user_question(messages)
    if not question:
        raise ValueError("Missing user question.")

    settings = app_ctx.settings
    ctx = PipelineContext(
        question=question,
        conversation_transcript=build_conversation_transcript(messages),
    )
    logger.info("[PIPELINE] Started | question: %s", question[:80])

    # Fail fast on configuration before spending any backend call
    auth = await app_ctx.resolve_auth()
    llm = app_ctx.get_llm()
    embedder = app_ctx.get_embedder()
    vector_store = app_ctx.get_vector_store()

    # ── Stage 1: Planning ───────────────────────────────────────────
    with Timer("stage_1_planner") as t1:
        plan = await plan_question(
            ctx.conversation_transcript, question, llm=llm, auth=auth, settings=settings,
        )
    ctx.plan = plan
    ctx.stage_timings["stage_1"] = t1.elapsed_s

    short_circuit = plan.short_circuit_response
    if short_circuit:
        logger.info("[PIPELINE] Short-circuit: direct response (no retrieval)")
        return PipelineResult(
            answer=short_circuit,
            short_circuit=True,
            model_used=settings.planner_model,
            processing_time_seconds=ctx.elapsed_seconds,
        )

    selection = select_model(plan, settings)
    ctx.selected_model = selection.model

    # ── Stage 2: Retrieval ──────────────────────────────────────────
    with Timer("stage_2_retrieval") as t2:
        try:
            ctx.context_chunks = await retrieve_chunks(
                question,
                plan.rag_queries,
                embedder=embedder,
                vector_store=vector_store,
                match_count=settings.rag_match_count,
                domain_prefix=settings.rag_domain_prefix,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("[PIPELINE] Retrieval failed, continuing without context: %s", e)
            ctx.context_chunks = []
    ctx.stage_timings["stage_2"] = t2.elapsed_s
    logger.info(
        "[PIPELINE] Stage 2 done (%.2fs) | chunks=%d", t2.elapsed_s, len(ctx.context_chunks),
    )

    # ── Stage 3: Answer ─────────────────────────────────────────────
    with Timer("stage_3_answer") as t3:
        ctx.final_output = await generate_answer(
            question,
            plan,
            ctx.context_chunks,
            selection.model,
            llm=llm,
            auth=auth,
            settings=settings,
            conversation_transcript=ctx.conversation_transcript,
        )
    ctx.stage_timings["stage_3"] = t3.elapsed_s

    fragments = build_source_fragments(ctx.context_chunks, ctx.final_output.used_source_numbers)
    logger.info(
        "[PIPELINE] Done (%.2fs) | model=%s | sources=%d",
        ctx.elapsed_seconds, selection.model, len(fragments),
    )
    return PipelineResult(
        answer=ctx.final_output.answer,
        source_fragments=fragments,
        model_used=selection.model,
        processing_time_seconds=ctx.elapsed_seconds,
    )
