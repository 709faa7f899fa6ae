"""Adaptive market research: strategy, queries, paced searches, synthesis."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from marketseg.agents.fallbacks import default_platform_strategy
from marketseg.agents.market_analysis import MarketAnalysisStage
from marketseg.agents.platform_strategy import PlatformContext, PlatformStrategyStage
from marketseg.agents.query_generator import QueryGenerationStage
from marketseg.config import settings
from marketseg.errors import (
    ConfigError,
    OverloadedError,
    RateLimitError,
    RequestError,
    SegmentationError,
    StageError,
)
from marketseg.models.events import SearchPhase, SearchProgress
from marketseg.models.research import PlatformStrategy, SearchMetadata, SearchResult
from marketseg.models.schemas import ProductInput
from marketseg.services.completion_client import CompletionClient
from marketseg.tools.serper_search import GENERIC_PLATFORM, SerperClient, get_platform_from_query

ProgressCallback = Callable[[SearchProgress], None]

QUICK_MODE_MESSAGE = (
    "Running in quick mode due to platform limitations. Analysis will complete in 2-3 minutes "
    "with reduced data coverage."
)


@dataclass(frozen=True, slots=True)
class PlatformLimits:
    batch_size: int
    delay_seconds: float
    priority: int


# Hand-tuned per-platform pacing. Lower priority runs first.
PLATFORM_LIMITS: dict[str, PlatformLimits] = {
    "reddit.com": PlatformLimits(5, 3.0, 1),
    "linkedin.com": PlatformLimits(3, 2.5, 2),
    "github.com": PlatformLimits(8, 1.5, 3),
    "stackoverflow.com": PlatformLimits(6, 2.0, 3),
    "quora.com": PlatformLimits(5, 2.0, 2),
    "medium.com": PlatformLimits(6, 1.5, 2),
    "news.ycombinator.com": PlatformLimits(5, 2.0, 2),
    "producthunt.com": PlatformLimits(4, 2.0, 3),
    "trustradius.com": PlatformLimits(4, 2.5, 2),
    "g2.com": PlatformLimits(4, 2.5, 2),
    "capterra.com": PlatformLimits(4, 2.5, 2),
    "twitter.com": PlatformLimits(6, 2.0, 2),
    "youtube.com": PlatformLimits(5, 1.5, 3),
    GENERIC_PLATFORM: PlatformLimits(6, 2.0, 1),
}


def limits_for(platform: str) -> PlatformLimits:
    if settings.quick_mode:
        return PlatformLimits(
            settings.quick_mode_batch_size,
            settings.quick_mode_batch_delay_seconds,
            PLATFORM_LIMITS.get(platform, PLATFORM_LIMITS[GENERIC_PLATFORM]).priority,
        )
    return PLATFORM_LIMITS.get(platform, PLATFORM_LIMITS[GENERIC_PLATFORM])


def organize_queries_by_platform(queries: list[str]) -> dict[str, list[str]]:
    """Group queries by inferred platform: dedicated platforms by priority, generic last."""
    groups: dict[str, list[str]] = {}
    for query in queries:
        groups.setdefault(get_platform_from_query(query), []).append(query)

    first_seen = {platform: i for i, platform in enumerate(groups)}

    def sort_key(platform: str) -> tuple[bool, int, int]:
        priority = PLATFORM_LIMITS.get(platform, PLATFORM_LIMITS[GENERIC_PLATFORM]).priority
        return (platform == GENERIC_PLATFORM, priority, first_seen[platform])

    return {platform: groups[platform] for platform in sorted(groups, key=sort_key)}


def create_batches(items: list[str], batch_size: int) -> list[list[str]]:
    size = max(1, batch_size)
    return [items[i : i + size] for i in range(0, len(items), size)]


def estimate_time_remaining(completed: int, total: int, elapsed_seconds: float) -> int:
    """Minutes left at the throughput observed so far."""
    if completed <= 0 or elapsed_seconds <= 0:
        return 0
    rate = completed / elapsed_seconds
    return round((total - completed) / rate / 60)


class AdaptiveMarketResearcher:
    def __init__(
        self,
        completion: CompletionClient | None = None,
        search_client: SerperClient | None = None,
        *,
        platform_stage: PlatformStrategyStage | None = None,
        query_stage: QueryGenerationStage | None = None,
        analysis_stage: MarketAnalysisStage | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.completion = completion or CompletionClient()
        self.search_client = search_client or SerperClient()
        self.platform_stage = platform_stage or PlatformStrategyStage(self.completion)
        self.query_stage = query_stage or QueryGenerationStage(self.completion)
        self.analysis_stage = analysis_stage or MarketAnalysisStage(self.completion)
        self._clock = clock
        self._on_progress: ProgressCallback | None = None

    def _emit(self, progress: SearchProgress) -> None:
        if progress.phase == SearchPhase.SEARCHING and progress.total:
            pct = round(progress.completed / progress.total * 100)
            logger.info(
                f"[Research] Progress: {progress.completed}/{progress.total} queries ({pct}%) "
                f"- Current: {progress.current_platform}"
            )
        else:
            logger.info(f"[Research] {progress.phase.value}: {progress.current_platform}")
        if self._on_progress is not None:
            self._on_progress(progress)

    async def _platform_strategy(self, product_input: ProductInput) -> PlatformStrategy:
        message = "Analyzing best platforms for your market..."
        self._emit(SearchProgress(SearchPhase.PLATFORM_ANALYSIS, 0, 1, message))
        try:
            strategy = await self.platform_stage.suggest_search_platforms(
                PlatformContext.from_product_input(product_input)
            )
        except ConfigError:
            raise
        except SegmentationError as e:
            logger.error(f"[Research] Error in platform analysis, continuing with defaults: {e}")
            strategy = default_platform_strategy(settings.default_query_volume)
        self._emit(SearchProgress(SearchPhase.PLATFORM_ANALYSIS, 1, 1, message))

        if settings.quick_mode and len(strategy.platforms) > settings.quick_mode_platform_limit:
            strategy.platforms = strategy.platforms[: settings.quick_mode_platform_limit]
        return strategy

    async def _queries(self, product_input: ProductInput, strategy: PlatformStrategy) -> list[str]:
        message = "Generating intelligent search queries..."
        self._emit(SearchProgress(SearchPhase.QUERY_GENERATION, 0, 1, message))
        requested = strategy.query_volume or settings.default_query_volume
        if settings.quick_mode:
            target = settings.quick_mode_search_limit
        else:
            target = min(requested, settings.max_search_queries)
        try:
            queries = await self.query_stage.generate_search_queries(product_input, strategy, target)
        except (ConfigError, RateLimitError, OverloadedError):
            raise
        except SegmentationError as e:
            raise StageError("query-generation", f"Query generation failed: {e}") from e
        self._emit(SearchProgress(SearchPhase.QUERY_GENERATION, 1, 1, message))
        return queries

    async def _search_all(self, queries: list[str], started: float) -> tuple[list[SearchResult], list[str]]:
        groups = organize_queries_by_platform(queries)
        platforms = list(groups)
        total = len(queries)
        completed = 0
        results: list[SearchResult] = []

        for index, platform in enumerate(platforms):
            limits = limits_for(platform)
            batches = create_batches(groups[platform], limits.batch_size)
            logger.info(
                f"[Research] Processing {len(groups[platform])} queries for {platform} in {len(batches)} batches"
            )
            for batch_index, batch in enumerate(batches):
                self._emit(
                    SearchProgress(
                        SearchPhase.SEARCHING,
                        completed,
                        total,
                        platform,
                        estimate_time_remaining(completed, total, self._clock() - started),
                    )
                )
                batch_results = await asyncio.gather(
                    *(self.search_client.search_with_retry(q, settings.serper_results_per_query) for q in batch)
                )
                results.extend(batch_results)
                completed += len(batch)
                if batch_index < len(batches) - 1:
                    await asyncio.sleep(limits.delay_seconds)

            if index < len(platforms) - 1:
                await asyncio.sleep(settings.platform_switch_delay_seconds)

        return results, platforms

    async def _synthesize(self, results: list[SearchResult], product_input: ProductInput) -> Any:
        self._emit(SearchProgress(SearchPhase.ANALYSIS, 0, 1, "Analyzing market intelligence with AI..."))
        logger.info(f"[Research] Sending {len(results)} search results for analysis")
        try:
            return await self.analysis_stage.analyze_raw_search_data(results, product_input)
        except RequestError as e:
            logger.warning(f"[Research] Retrying with reduced data set due to request size: {e}")
            try:
                return await self.analysis_stage.analyze_raw_search_data(
                    results[: settings.synthesis_reduced_results],
                    product_input,
                    limit=settings.synthesis_reduced_results,
                )
            except (ConfigError, RateLimitError, OverloadedError):
                raise
            except SegmentationError as retry_error:
                raise StageError(
                    "analysis",
                    f"Failed to analyze search data even with reduced set: {retry_error}",
                ) from retry_error
        except (ConfigError, RateLimitError, OverloadedError):
            raise
        except SegmentationError as e:
            raise StageError("analysis", f"Failed to analyze search data: {e}") from e

    async def conduct_adaptive_market_research(
        self,
        product_input: ProductInput,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        self._on_progress = on_progress
        started = self._clock()
        logger.info("[Research] Starting adaptive market research...")
        if settings.quick_mode:
            logger.info(f"[Research] {QUICK_MODE_MESSAGE}")

        if not await self.completion.check_availability():
            raise OverloadedError(
                "Claude API is currently unavailable or overloaded. Please try again in a few minutes."
            )

        strategy = await self._platform_strategy(product_input)
        queries = await self._queries(product_input, strategy)
        results, platforms = await self._search_all(queries, started)

        duration_minutes = (self._clock() - started) / 60
        metadata = SearchMetadata(
            total_queries=len(queries),
            successful_searches=sum(1 for r in results if r.ok),
            total_results_found=sum(len(r.organic) for r in results),
            search_duration=duration_minutes,
            platforms_covered=platforms,
        )
        logger.info(
            f"[Research] Completed in {duration_minutes:.1f} minutes: "
            f"{metadata.successful_searches}/{metadata.total_queries} successful, "
            f"{metadata.total_results_found} results, {len(platforms)} platforms"
        )

        intelligence = await self._synthesize(results, product_input)
        if not isinstance(intelligence, dict):
            intelligence = {"analysis": intelligence}
        return {**intelligence, "searchMetadata": metadata.to_dict()}
