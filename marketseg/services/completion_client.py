"""Single entry point for Claude completions.

Every call goes through the shared rate limiter, records token usage in the
cost tracker, and has its SDK exceptions mapped onto the pipeline's error
taxonomy. Overload responses are retried here with exponential backoff.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any

import anthropic
from loguru import logger

from marketseg import llm_client
from marketseg.config import settings
from marketseg.errors import (
    ConfigError,
    OverloadedError,
    ProviderError,
    RateLimitError,
    RequestError,
    SegmentationError,
)
from marketseg.services import logger as log_service
from marketseg.services.cost_tracker import CostTracker, cost_tracker as default_cost_tracker
from marketseg.services.rate_limiter import RateLimiter, rate_limiter as default_rate_limiter

PROVIDER = "claude"
OVERLOAD_BACKOFF_BASE_SECONDS = 5.0
OVERLOAD_BACKOFF_CAP_SECONDS = 30.0
OVERLOAD_MAX_RETRIES = 3
AVAILABILITY_PROMPT = 'Return the word "OK"'


def _is_overloaded(error: anthropic.APIStatusError) -> bool:
    if error.status_code == 529:
        return True
    body = error.body if isinstance(error.body, dict) else {}
    inner = body.get("error") if isinstance(body.get("error"), dict) else body
    return inner.get("type") == "overloaded_error"


def map_provider_error(error: Exception) -> SegmentationError:
    """Translate an SDK exception into the pipeline's error taxonomy."""
    if isinstance(error, SegmentationError):
        return error
    if isinstance(error, anthropic.APIStatusError):
        if error.status_code == 401:
            return ConfigError("Invalid ANTHROPIC_API_KEY - please check your API key")
        if error.status_code == 429:
            return RateLimitError("Claude API rate limit exceeded - please try again later")
        if _is_overloaded(error):
            return OverloadedError("Claude API overloaded (529)")
        if error.status_code == 413:
            return RequestError("Invalid request to Claude API - request too large")
        if error.status_code == 400:
            return RequestError("Invalid request to Claude API - check model name or parameters")
        return ProviderError(f"Claude API error: {error.message or 'Unknown error'}")
    if isinstance(error, anthropic.APITimeoutError):
        return ProviderError("Claude API request timeout")
    if isinstance(error, anthropic.APIConnectionError):
        return ProviderError(f"Claude API error: {error.message or 'connection failed'}")
    return ProviderError(f"Claude API error: {error or 'Unknown error'}")


class CompletionClient:
    def __init__(
        self,
        client: Any | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        cost_tracker: CostTracker | None = None,
        model: str | None = None,
        temperature: float | None = None,
        overload_retries: int = OVERLOAD_MAX_RETRIES,
    ):
        self._client = client
        self.rate_limiter = rate_limiter or default_rate_limiter
        self.cost_tracker = cost_tracker or default_cost_tracker
        self.model = model or llm_client.get_model()
        self.temperature = settings.claude_temperature if temperature is None else temperature
        self.overload_retries = overload_retries

    @property
    def client(self) -> Any:
        return self._client or llm_client.client()

    def ensure_configured(self) -> None:
        if self._client is None and not settings.anthropic_api_key:
            raise ConfigError("ANTHROPIC_API_KEY is not configured")

    async def _create(self, prompt: str, max_tokens: int, operation: str) -> str:
        t0 = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            mapped = map_provider_error(e)
            log_service.log_llm_call(
                model=self.model,
                caller=operation,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            if mapped is e:
                raise
            raise mapped from e

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        self.cost_tracker.add_claude_cost(operation, input_tokens, output_tokens)
        log_service.log_llm_call(
            model=self.model,
            caller=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

        content = response.content[0] if response.content else None
        if content is None or getattr(content, "type", None) != "text":
            raise ProviderError("Unexpected response type from Claude")
        return content.text

    async def generate_completion(
        self,
        prompt: str,
        max_tokens: int = 4000,
        operation: str = "Unknown",
    ) -> str:
        """Return the text of one completion, retrying overloads with backoff."""
        for attempt in range(self.overload_retries + 1):
            try:
                return await self.rate_limiter.execute(
                    PROVIDER, lambda: self._create(prompt, max_tokens, operation)
                )
            except OverloadedError:
                if attempt >= self.overload_retries:
                    break
                wait = min(
                    OVERLOAD_BACKOFF_CAP_SECONDS,
                    OVERLOAD_BACKOFF_BASE_SECONDS * (2**attempt),
                )
                logger.warning(
                    f"[Claude] Server overloaded (529), retrying in {wait:.0f}s... "
                    f"(attempt {attempt + 1}/{self.overload_retries})"
                )
                await asyncio.sleep(wait)

        raise OverloadedError(
            "Claude servers are currently overloaded. Please try again in a few minutes."
        )

    async def check_availability(self) -> bool:
        """Pre-flight probe. Any failure counts as unavailable."""
        logger.info("[Claude] Checking API availability...")
        try:
            response = await self.generate_completion(AVAILABILITY_PROMPT, 10, "Availability Check")
        except Exception as e:
            logger.error(f"[Claude] Availability check failed: {e}")
            return False
        return "OK" in response
