import pytest
import respx
from aiolimiter import AsyncLimiter
from httpx import ConnectError, Response

from paperfeed.constants import LLM_API_URL
from paperfeed.llm import AnthropicClient, LLMError, RateLimitError, _parse_retry_after


def _client(**kwargs):
    return AnthropicClient(
        api_key="test-key",
        model="test-model",
        limiter=AsyncLimiter(1000, 1),
        wait=lambda rs: 0,
        **kwargs,
    )


def _ok(text):
    return Response(200, json={"content": [{"type": "text", "text": text}]})


@pytest.mark.asyncio
@respx.mock
async def test_complete_success():
    route = respx.post(LLM_API_URL).mock(return_value=_ok("hello"))

    assert await _client().complete("Hi", 50) == "hello"

    request = route.calls.last.request
    assert request.headers["x-api-key"] == "test-key"
    assert b'"max_tokens":50' in request.content.replace(b" ", b"")


@pytest.mark.asyncio
@respx.mock
async def test_rate_limit_retried_then_succeeds():
    route = respx.post(LLM_API_URL).mock(
        side_effect=[
            Response(429, json={"error": {"message": "slow down"}}),
            _ok("done"),
        ]
    )

    assert await _client()("Hi", 50) == "done"
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_rate_limit_exhausted_reraises():
    route = respx.post(LLM_API_URL).mock(return_value=Response(429, text="busy"))

    with pytest.raises(RateLimitError):
        await _client(max_retries=3).complete("Hi", 50)
    assert route.call_count == 3


@pytest.mark.asyncio
@respx.mock
async def test_other_errors_not_retried():
    route = respx.post(LLM_API_URL).mock(
        return_value=Response(500, json={"error": {"message": "overloaded"}})
    )

    with pytest.raises(LLMError, match="overloaded"):
        await _client().complete("Hi", 50)
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_transport_error_wrapped():
    respx.post(LLM_API_URL).mock(side_effect=ConnectError("refused"))

    with pytest.raises(LLMError):
        await _client().complete("Hi", 50)


@pytest.mark.asyncio
async def test_missing_key():
    client = AnthropicClient(api_key=None)
    with pytest.raises(LLMError, match="ANTHROPIC_API_KEY"):
        await client.complete("Hi", 50)


def test_parse_retry_after():
    assert _parse_retry_after("3") == 3.0
    assert _parse_retry_after("-1") == 0.0
    assert _parse_retry_after("") is None
    assert _parse_retry_after("soon") is None
