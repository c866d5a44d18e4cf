"""Text-completion client for the Anthropic Messages API."""

from __future__ import annotations

import logging
from email.utils import parsedate_to_datetime
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from paperfeed.constants import (
    LLM_429_BACKOFF_BASE,
    LLM_429_BACKOFF_MAX,
    LLM_API_URL,
    LLM_API_VERSION,
    LLM_DEFAULT_MODEL,
    LLM_HTTP_CONNECT_TIMEOUT,
    LLM_HTTP_POOL_TIMEOUT,
    LLM_HTTP_READ_TIMEOUT,
    LLM_HTTP_WRITE_TIMEOUT,
    LLM_MAX_RETRIES,
    LLM_REQUESTS_PER_MINUTE,
)
from paperfeed.llm_utils import build_payload, extract_text

logger = logging.getLogger(__name__)

# prompt, max_tokens -> completion text
TextCompleter = Callable[[str, int], Awaitable[str]]


class LLMError(RuntimeError):
    """Raised when a completion request fails."""


class RateLimitError(LLMError):
    """Raised on HTTP 429. The only error that is retried."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def _parse_retry_after(value: str) -> float | None:
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt is None:
        return None
    now = datetime.now(dt.tzinfo)
    return max(0.0, (dt - now).total_seconds())


def _extract_error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except Exception:
        return resp.text.strip()
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str):
                return msg.strip()
    return resp.text.strip()


_BACKOFF_WAIT = wait_exponential(
    multiplier=LLM_429_BACKOFF_BASE, min=LLM_429_BACKOFF_BASE, max=LLM_429_BACKOFF_MAX
)


def _retry_wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        return min(exc.retry_after, LLM_429_BACKOFF_MAX)
    return _BACKOFF_WAIT(retry_state)


class AnthropicClient:
    """Minimal Messages API client.

    Requests are paced by a shared limiter. Rate-limit responses are retried
    with exponential backoff up to ``max_retries`` attempts; every other
    failure raises ``LLMError`` immediately.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = LLM_DEFAULT_MODEL,
        max_retries: int = LLM_MAX_RETRIES,
        limiter: Optional[AsyncLimiter] = None,
        wait: Callable[[RetryCallState], float] = _retry_wait,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self.limiter = limiter or AsyncLimiter(LLM_REQUESTS_PER_MINUTE, 60)
        self._wait = wait
        self.timeout = httpx.Timeout(
            connect=LLM_HTTP_CONNECT_TIMEOUT,
            read=LLM_HTTP_READ_TIMEOUT,
            write=LLM_HTTP_WRITE_TIMEOUT,
            pool=LLM_HTTP_POOL_TIMEOUT,
        )

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, object]) -> str:
        try:
            async with self.limiter:
                resp = await client.post(
                    LLM_API_URL,
                    headers={
                        "x-api-key": self.api_key or "",
                        "anthropic-version": LLM_API_VERSION,
                        "content-type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise LLMError(f"Request failed: {e}") from e

        if resp.status_code == 200:
            return extract_text(resp.json())

        error_msg = _extract_error_message(resp)
        if resp.status_code == 429:
            header = resp.headers.get("retry-after")
            raise RateLimitError(
                error_msg or "Rate limited",
                retry_after=_parse_retry_after(header) if header else None,
            )
        raise LLMError(f"API error {resp.status_code}: {error_msg}")

    async def complete(self, prompt: str, max_tokens: int) -> str:
        if not self.api_key:
            raise LLMError("ANTHROPIC_API_KEY not set")

        payload = build_payload(model=self.model, contents=prompt, max_tokens=max_tokens)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                retry=retry_if_exception_type(RateLimitError),
                wait=self._wait,
                before_sleep=lambda rs: logger.info(
                    f"Rate limited, retry {rs.attempt_number}/{self.max_retries}"
                ),
                reraise=True,
            ):
                with attempt:
                    return await self._post(client, payload)
        raise LLMError("Retry loop exited without a result")

    __call__ = complete
