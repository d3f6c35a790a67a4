"""Anthropic client — single-turn Messages API calls with retry and error mapping.

Invariants:
    - 429 and 529/5xx/connection failures are retried up to max_retries times
    - A Retry-After header (seconds) overrides the computed backoff for 429s
    - Timeouts and other 4xx responses fail on the first attempt
    - Every failure leaves this module as AnthropicAPIError
    - Message Batch calls (create, status, results) are attempted once

Design Decisions:
    - SDK-level retries disabled (max_retries=0): one retry policy, owned here,
      shared by question generation, material extraction and flag review
    - Backoff is 2^attempt * base, capped, with ±25% jitter so concurrent
      cron-driven jobs do not retry in lockstep
"""

import asyncio
import logging
import random
from dataclasses import dataclass

import anthropic

from tutorassist.core.errors import AnthropicAPIError, ErrorContext

logger = logging.getLogger(__name__)

_OVERLOADED = 529


@dataclass(frozen=True)
class _Failure:
    kind: str
    retryable: bool
    retry_after_ms: int | None = None


def _retry_after_ms(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    raw = response.headers.get("retry-after") if response is not None else None
    if not raw:
        return None
    try:
        return int(float(raw) * 1000)
    except ValueError:
        return None


def _classify(exc: Exception) -> _Failure:
    # APITimeoutError subclasses APIConnectionError, so it is checked first
    if isinstance(exc, anthropic.APITimeoutError):
        return _Failure("timeout", retryable=False)
    if isinstance(exc, anthropic.RateLimitError):
        return _Failure("rate_limit", retryable=True, retry_after_ms=_retry_after_ms(exc))
    if isinstance(exc, anthropic.APIConnectionError):
        return _Failure("connection_error", retryable=True)
    if isinstance(exc, anthropic.APIStatusError):
        if exc.status_code == _OVERLOADED or exc.status_code >= 500:
            return _Failure("overloaded" if exc.status_code == _OVERLOADED else "server_error",
                            retryable=True)
        return _Failure("client_error", retryable=False)
    return _Failure("unknown", retryable=False)


@dataclass
class BatchResult:
    """One entry of a finished message batch."""
    custom_id: str
    succeeded: bool
    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    error: str | None = None


def response_text(response) -> str:
    """Concatenate the text blocks of a Messages API response."""
    parts = []
    for block in response.content:
        if getattr(block, "type", "text") == "text":
            parts.append(getattr(block, "text", ""))
    return "".join(parts)


class ResilientAnthropicClient:
    def __init__(
        self,
        api_key: str,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
        timeout_seconds: int = 120,
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout_seconds, max_retries=0,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    def backoff_ms(self, attempt: int) -> int:
        ceiling = min(self.max_delay_ms, self.base_delay_ms * 2 ** attempt)
        return int(ceiling * random.uniform(0.75, 1.25))  # nosec B311

    async def create_message(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list,
        temperature: float | None = None,
        context: ErrorContext | None = None,
    ):
        request = {"model": model, "max_tokens": max_tokens, "system": system, "messages": messages}
        if temperature is not None:
            request["temperature"] = temperature
        job_id = context.job_id if context else None

        attempt = 0
        while True:
            try:
                response = await self.client.messages.create(**request)
            except Exception as e:
                failure = _classify(e)
                if failure.kind == "unknown":
                    logger.error(f"Unexpected error calling {model}: {e}", exc_info=True)
                if not failure.retryable or attempt >= self.max_retries:
                    suffix = f" after {attempt} retries" if failure.retryable else ""
                    raise AnthropicAPIError(
                        f"{e}{suffix}", failure.kind,
                        retry_after_ms=failure.retry_after_ms, context=context,
                    ) from e
                delay = failure.retry_after_ms or self.backoff_ms(attempt)
                logger.warning(
                    f"{model} {failure.kind}, retrying in {delay}ms",
                    extra={"attempt": attempt + 1, "job_id": job_id},
                )
                await asyncio.sleep(delay / 1000)
                attempt += 1
                continue

            logger.info(
                f"{model} completed",
                extra={
                    "attempt": attempt + 1,
                    "job_id": job_id,
                    "input_tokens": response.usage.input_tokens,
                    "output_tokens": response.usage.output_tokens,
                },
            )
            return response

    # ─── Message Batches ───────────────────────────────────────────
    # One attempt per call: the job queue owns retries for batch work.

    async def _batch_call(self, operation: str, call, context: ErrorContext | None):
        try:
            return await call()
        except Exception as e:
            failure = _classify(e)
            logger.warning(
                f"Batch {operation} failed: {failure.kind}",
                extra={"job_id": context.job_id if context else None},
            )
            raise AnthropicAPIError(
                str(e), failure.kind, retry_after_ms=failure.retry_after_ms, context=context,
            ) from e

    async def create_batch(
        self, requests: list[dict], context: ErrorContext | None = None,
    ) -> str:
        """Submit {custom_id, params} requests; returns the batch id."""
        batch = await self._batch_call(
            "create", lambda: self.client.messages.batches.create(requests=requests), context,
        )
        logger.info(
            f"Submitted message batch {batch.id} with {len(requests)} requests",
            extra={"job_id": context.job_id if context else None},
        )
        return batch.id

    async def batch_status(self, batch_id: str, context: ErrorContext | None = None) -> str:
        """processing_status: in_progress, canceling or ended."""
        batch = await self._batch_call(
            "retrieve", lambda: self.client.messages.batches.retrieve(batch_id), context,
        )
        return batch.processing_status

    async def batch_results(
        self, batch_id: str, context: ErrorContext | None = None,
    ) -> list[BatchResult]:
        async def collect():
            results = []
            async for entry in await self.client.messages.batches.results(batch_id):
                outcome = entry.result
                if outcome.type == "succeeded":
                    usage = outcome.message.usage
                    results.append(BatchResult(
                        custom_id=entry.custom_id,
                        succeeded=True,
                        text=response_text(outcome.message),
                        input_tokens=usage.input_tokens,
                        output_tokens=usage.output_tokens,
                    ))
                else:
                    results.append(BatchResult(
                        custom_id=entry.custom_id, succeeded=False, error=outcome.type,
                    ))
            return results

        return await self._batch_call("results", collect, context)
