from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx
from loguru import logger

from marketseg.config import settings
from marketseg.errors import ConfigError, RateLimitError, SearchFailure, SegmentationError
from marketseg.models.research import SearchResult
from marketseg.services import logger as log_service
from marketseg.services.cost_tracker import CostTracker, cost_tracker as default_cost_tracker
from marketseg.services.rate_limiter import RateLimiter, rate_limiter as default_rate_limiter

PROVIDER = "serper"
GENERIC_PLATFORM = "generic"

# Domains recognised in a ``site:`` qualifier, in lookup order.
KNOWN_PLATFORMS: tuple[str, ...] = (
    "reddit.com",
    "linkedin.com",
    "github.com",
    "stackoverflow.com",
    "quora.com",
    "medium.com",
    "news.ycombinator.com",
    "producthunt.com",
    "trustradius.com",
    "g2.com",
    "capterra.com",
    "twitter.com",
    "youtube.com",
)

_SITE_QUALIFIER = re.compile(r"site:(\S+)")


def get_platform_from_query(query: str) -> str:
    """Infer the target platform from a ``site:<domain>`` qualifier."""
    match = _SITE_QUALIFIER.search(query)
    if match:
        domain = match.group(1).lower()
        for platform in KNOWN_PLATFORMS:
            if platform in domain:
                return platform
    return GENERIC_PLATFORM


class SerperClient:
    """Serper web search with pacing, retries and cost accounting.

    ``search_with_retry`` never raises: a query that keeps failing comes back
    as a SearchResult with no hits and an ``error`` message.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        rate_limiter: RateLimiter | None = None,
        cost_tracker: CostTracker | None = None,
        max_retries: int | None = None,
        retry_delay_seconds: float | None = None,
        timeout_seconds: float | None = None,
    ):
        self.api_key = settings.serper_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.serper_base_url).rstrip("/")
        self.rate_limiter = rate_limiter or default_rate_limiter
        self.cost_tracker = cost_tracker or default_cost_tracker
        self.max_retries = settings.search_max_retries if max_retries is None else max_retries
        self.retry_delay_seconds = (
            settings.search_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self.timeout_seconds = timeout_seconds or settings.serper_timeout_seconds

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigError("SERPER_API_KEY is not configured")

    async def _post(self, query: str, num: int) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(
                f"{self.base_url}/search",
                json={
                    "q": query,
                    "gl": settings.serper_country,
                    "hl": settings.serper_language,
                    "num": num,
                },
                headers={
                    "X-API-KEY": self.api_key,
                    "Content-Type": "application/json",
                },
            )
            if response.status_code == 429:
                raise RateLimitError("Serper API rate limit exceeded")
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, dict) or not isinstance(payload.get("organic"), list):
            raise SearchFailure("Invalid response structure from Serper API")
        return payload

    async def search_with_retry(self, query: str, num: int = 30) -> SearchResult:
        results_per_query = settings.quick_mode_results_per_query if settings.quick_mode else num
        platform = get_platform_from_query(query)
        attempts = self.max_retries + 1
        last_error = "Unknown error"

        for attempt in range(1, attempts + 1):
            try:
                payload = await self.rate_limiter.execute(
                    PROVIDER, lambda: self._post(query, results_per_query)
                )
            except (httpx.HTTPError, SegmentationError, ValueError) as e:
                last_error = str(e) or e.__class__.__name__
                self.cost_tracker.add_serper_cost(f"Search: {query[:50]}...", 1)
                log_service.log_search_call(
                    query, platform, "error", attempt=attempt, error=last_error
                )
                if attempt < attempts:
                    delay = self.retry_delay_seconds * attempt
                    logger.info(
                        f"[Serper] Retrying in {delay:.1f}s... (attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                continue

            self.cost_tracker.add_serper_cost(f"Search: {query[:50]}...", 1)
            organic = payload.get("organic") or []
            log_service.log_search_call(
                query, platform, "success", result_count=len(organic), attempt=attempt
            )
            extra = {k: v for k, v in payload.items() if k != "organic"}
            return SearchResult(query=query, platform=platform, organic=organic, extra=extra)

        logger.error(f'[Serper] Failed after {self.max_retries} retries for: "{query}"')
        return SearchResult(query=query, platform=platform, organic=[], error=last_error)
