"""
Gemini generateContent client.

One shared ``httpx.AsyncClient`` per process; authentication is supplied
per call as an ``AuthStrategy`` so the same client serves both the Gemini
API (key) and Vertex AI (bearer token).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ftc_assistant.core.auth import AuthStrategy
from ftc_assistant.core.errors import GenerationError
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.services.llm")


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    system_instruction: str
    user_prompt: str
    temperature: float = 0.2
    max_output_tokens: int = 2048
    response_mime_type: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    text: str
    finish_reason: str | None = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "MAX_TOKENS"


class GenerationClient(Protocol):
    async def generate(self, request: GenerationRequest, auth: AuthStrategy) -> GenerationResult:
        ...


def build_payload(request: GenerationRequest) -> dict[str, Any]:
    """Translate a GenerationRequest into the generateContent request body."""
    generation_config: dict[str, Any] = {
        "temperature": request.temperature,
        "maxOutputTokens": request.max_output_tokens,
    }
    if request.response_mime_type:
        generation_config["responseMimeType"] = request.response_mime_type

    return {
        "systemInstruction": {"parts": [{"text": request.system_instruction}]},
        "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
        "generationConfig": generation_config,
    }


def _error_message(data: dict[str, Any], status_code: int) -> str:
    error = data.get("error") if isinstance(data, dict) else None
    message = (error or {}).get("message") if isinstance(error, dict) else None
    message = message or f"Gemini request failed: {status_code}"
    if "API keys are not supported by this API" in message:
        message = (
            f"{message}. If using Vertex AI, set VERTEX_ACCESS_TOKEN + VERTEX_PROJECT_ID "
            "(+ optional VERTEX_LOCATION). If using API key auth, use GEMINI_API_KEY/GOOGLE_API_KEY."
        )
    return message


class GeminiClient:
    """Thin async wrapper around the generateContent endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 120.0):
        self._http = http_client
        self._timeout = timeout

    async def generate(self, request: GenerationRequest, auth: AuthStrategy) -> GenerationResult:
        try:
            response = await self._http.post(
                auth.endpoint(request.model),
                headers={"Content-Type": "application/json", **auth.headers},
                json=build_payload(request),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise GenerationError(
                f"Gemini request failed: {exc.__class__.__name__}: {exc}", model=request.model,
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.is_success:
            raise GenerationError(
                _error_message(data, response.status_code),
                model=request.model,
                status_code=response.status_code,
            )

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise GenerationError(f"Gemini blocked prompt: {block_reason}", model=request.model)

        candidates = data.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text") or "" for part in parts).strip()
        if not text:
            raise GenerationError("Gemini returned empty text.", model=request.model)

        finish_reason = candidate.get("finishReason")
        logger.debug(
            "Gemini %s returned %d chars (finish=%s)", request.model, len(text), finish_reason,
        )
        return GenerationResult(text=text, finish_reason=finish_reason)
