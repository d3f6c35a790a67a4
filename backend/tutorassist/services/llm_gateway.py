"""LLM Gateway — shared Anthropic and embedding clients plus a single-turn completion helper.

Invariants:
    - One ResilientAnthropicClient and one EmbeddingClient per process
    - complete() always returns token counts and wall-clock duration so callers
      can log AI usage without touching the raw response
    - user_content may be a plain string or a list of content blocks (vision input)
    - tracked_completion logs one ai_usage_log row per call, success or failure

Design Decisions:
    - Module-level singletons built lazily from settings: clients are stateless and
      connection-pool-safe, tests swap the module attribute with a fake
      (ADR: no DI container)
"""

import time
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from tutorassist.config import get_settings
from tutorassist.core.errors import ErrorContext, TutorAssistError
from tutorassist.infrastructure.anthropic_client import (
    ResilientAnthropicClient, response_text,
)
from tutorassist.infrastructure.embedding_client import EmbeddingClient
from tutorassist.services.ai_usage import log_ai_usage

logger = logging.getLogger(__name__)

_anthropic_client: ResilientAnthropicClient | None = None
_embedding_client: EmbeddingClient | None = None


def get_anthropic_client() -> ResilientAnthropicClient:
    global _anthropic_client
    if _anthropic_client is None:
        settings = get_settings()
        _anthropic_client = ResilientAnthropicClient(
            api_key=settings.anthropic_api_key,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
    return _anthropic_client


def get_embedding_client() -> EmbeddingClient:
    global _embedding_client
    if _embedding_client is None:
        settings = get_settings()
        _embedding_client = EmbeddingClient(
            api_key=settings.openai_api_key, model=settings.embedding_model,
        )
    return _embedding_client


@dataclass
class LLMCompletion:
    text: str
    model: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


async def complete(
    system: str,
    user_content: str | list[dict[str, Any]],
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float | None = None,
    context: ErrorContext | None = None,
) -> LLMCompletion:
    """Run one system + user turn and return the concatenated text."""
    model = model or get_settings().llm_model
    started = time.monotonic()
    response = await get_anthropic_client().create_message(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_content}],
        temperature=temperature,
        context=context,
    )
    duration_ms = int((time.monotonic() - started) * 1000)
    usage = response.usage
    return LLMCompletion(
        text=response_text(response),
        model=model,
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
        duration_ms=duration_ms,
    )


async def tracked_completion(
    operation_type: str,
    system: str,
    user_content: str | list[dict[str, Any]],
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float | None = None,
    workspace_id: UUID | None = None,
    user_id: UUID | None = None,
    job_id: UUID | None = None,
    metadata: dict | None = None,
) -> LLMCompletion:
    """complete() plus an ai_usage_log row for both success and failure."""
    model = model or get_settings().llm_model
    context = ErrorContext(
        workspace_id=str(workspace_id) if workspace_id else None,
        user_id=str(user_id) if user_id else None,
        job_id=str(job_id) if job_id else None,
    )
    try:
        result = await complete(
            system, user_content, model=model, max_tokens=max_tokens,
            temperature=temperature, context=context,
        )
    except TutorAssistError as e:
        await log_ai_usage(
            operation_type, model, success=False, error_message=e.message,
            workspace_id=workspace_id, user_id=user_id, job_id=job_id, metadata=metadata,
        )
        raise
    await log_ai_usage(
        operation_type, model,
        tokens_input=result.input_tokens,
        tokens_output=result.output_tokens,
        duration_ms=result.duration_ms,
        workspace_id=workspace_id, user_id=user_id, job_id=job_id, metadata=metadata,
    )
    return result
