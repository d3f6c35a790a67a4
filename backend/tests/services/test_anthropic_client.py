"""Anthropic client retry policy — which SDK failures are retried and how they surface.

Invariants:
    - 429, 529 and connection failures retry until max_retries, then raise
    - Retry-After (seconds) sets the sleep for a 429
    - 400s and timeouts raise on the first attempt
    - Raised errors are AnthropicAPIError carrying the failure kind
"""

import anthropic
import httpx
import pytest

from tutorassist.core.errors import AnthropicAPIError, ErrorContext
from tutorassist.infrastructure import anthropic_client
from tutorassist.infrastructure.anthropic_client import ResilientAnthropicClient, response_text

from tests.services.mock_anthropic import _Message

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status(status_code: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code, request=_REQUEST, headers=headers or {})


class _ScriptedMessages:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    recorded: list[float] = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(anthropic_client.asyncio, "sleep", fake_sleep)
    return recorded


def _client(*outcomes, max_retries=2):
    client = ResilientAnthropicClient(api_key="sk-ant-test", max_retries=max_retries, base_delay_ms=100)
    scripted = _ScriptedMessages(outcomes)
    client.client = type("FakeSDK", (), {"messages": scripted})()
    return client, scripted


async def _call(client, context=None):
    return await client.create_message(
        model="claude-test", max_tokens=100, system="sys",
        messages=[{"role": "user", "content": "hi"}], context=context,
    )


# --- retried failures ---


async def test_rate_limit_then_success_uses_retry_after(sleeps):
    limited = anthropic.RateLimitError("slow down", response=_status(429, {"retry-after": "2"}), body=None)
    client, scripted = _client(limited, _Message("ok"))

    response = await _call(client)

    assert response_text(response) == "ok"
    assert scripted.calls == 2
    assert sleeps == [2.0]


async def test_overloaded_retries_until_exhausted(sleeps):
    overloaded = [
        anthropic.APIStatusError("overloaded", response=_status(529), body=None) for _ in range(3)
    ]
    client, scripted = _client(*overloaded, max_retries=2)

    with pytest.raises(AnthropicAPIError) as exc_info:
        await _call(client)

    assert exc_info.value.api_error_type == "overloaded"
    assert scripted.calls == 3
    assert len(sleeps) == 2


async def test_connection_error_is_retried(sleeps):
    client, scripted = _client(anthropic.APIConnectionError(request=_REQUEST), _Message("back"))
    response = await _call(client)
    assert response_text(response) == "back"
    assert scripted.calls == 2


async def test_backoff_stays_within_jitter_bounds():
    client, _ = _client()
    for attempt in range(4):
        delay = client.backoff_ms(attempt)
        nominal = 100 * 2 ** attempt
        assert nominal * 0.75 <= delay <= nominal * 1.25


# --- immediate failures ---


async def test_bad_request_is_not_retried(sleeps):
    bad = anthropic.BadRequestError("bad prompt", response=_status(400), body=None)
    client, scripted = _client(bad, _Message("never"))

    with pytest.raises(AnthropicAPIError) as exc_info:
        await _call(client, context=ErrorContext(job_id="job-1"))

    assert exc_info.value.api_error_type == "client_error"
    assert exc_info.value.context.job_id == "job-1"
    assert scripted.calls == 1
    assert sleeps == []


async def test_timeout_is_not_retried(sleeps):
    client, scripted = _client(anthropic.APITimeoutError(request=_REQUEST))
    with pytest.raises(AnthropicAPIError) as exc_info:
        await _call(client)
    assert exc_info.value.api_error_type == "timeout"
    assert scripted.calls == 1


# --- response_text ---


def test_response_text_skips_non_text_blocks():
    message = _Message("first")
    message.content.append(type("ToolBlock", (), {"type": "tool_use"})())
    assert response_text(message) == "first"
