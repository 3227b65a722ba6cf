"""
Thin API route for the /chat endpoint.

No business logic: validates the request, calls
orchestrator.run_pipeline(), and streams the result.  All heavy lifting
lives in the pipeline modules.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, StreamingResponse

from ftc_assistant.core.context import AppContext
from ftc_assistant.core.errors import ConfigurationError
from ftc_assistant.pipeline.orchestrator import latest_user_question, run_pipeline
from ftc_assistant.pipeline.streaming import stream_answer
from ftc_assistant.prompts.constants import APOLOGY_ANSWER
from ftc_assistant.schemas.response import ChatRequest, PipelineResult
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.api.chat")

router = APIRouter(tags=["Chat"])

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


def get_app_context(request: Request) -> AppContext:
    """Process-wide context built in the application lifespan."""
    return request.app.state.context


@router.post("/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    app_ctx: AppContext = Depends(get_app_context),
):
    """
    Answer the latest user message.

    The body is streamed as plain text: answer segments, then one
    metadata block carrying the cited source fragments.  Short-circuit
    replies are returned whole, without a metadata block.
    """
    question = latest_user_question(body.messages)
    if not question:
        return PlainTextResponse("Missing user question.", status_code=status.HTTP_400_BAD_REQUEST)

    logger.info("[CHAT] New question: %s%s", question[:80], "..." if len(question) > 80 else "")

    try:
        result = await run_pipeline(body.messages, app_ctx)
    except ConfigurationError as e:
        logger.error("[CHAT] Configuration error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
    except Exception as e:
        logger.error("[CHAT] Pipeline failed: %s", e, exc_info=True)
        result = PipelineResult(answer=APOLOGY_ANSWER)

    logger.info(
        "[CHAT] Pipeline done in %.2fs | model=%s | short_circuit=%s",
        result.processing_time_seconds, result.model_used or "-", result.short_circuit,
    )

    if result.short_circuit:
        return PlainTextResponse(result.answer, media_type=STREAM_MEDIA_TYPE)

    settings = app_ctx.settings
    return StreamingResponse(
        stream_answer(
            result.answer,
            result.source_fragments,
            segment_chars=settings.stream_segment_chars,
            pacing_seconds=settings.stream_pacing_seconds,
            is_disconnected=request.is_disconnected,
        ),
        media_type=STREAM_MEDIA_TYPE,
    )
