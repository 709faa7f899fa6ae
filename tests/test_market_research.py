from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest
from conftest import QUERIES, FakeSearchClient, ScriptedCompletion, happy_responses

from marketseg.agents.market_research import (
    PLATFORM_LIMITS,
    AdaptiveMarketResearcher,
    PlatformLimits,
    create_batches,
    estimate_time_remaining,
    limits_for,
    organize_queries_by_platform,
)
from marketseg.config import settings
from marketseg.errors import OverloadedError, ProviderError, RequestError, StageError
from marketseg.models.events import SearchPhase


def test_queries_grouped_by_priority_with_generic_last():
    groups = organize_queries_by_platform(QUERIES)
    assert list(groups) == ["reddit.com", "linkedin.com", "g2.com", "capterra.com", "generic"]
    assert sum(len(v) for v in groups.values()) == len(QUERIES)
    assert groups["reddit.com"] == QUERIES[:2]


def test_create_batches():
    assert create_batches(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]
    assert create_batches([], 3) == []


def test_estimate_time_remaining():
    assert estimate_time_remaining(10, 40, 60.0) == 3
    assert estimate_time_remaining(0, 40, 60.0) == 0


@pytest.mark.asyncio
async def test_every_query_searched_once_with_progress(product_input, no_sleep):
    completion = ScriptedCompletion(happy_responses())
    search = FakeSearchClient(failing={QUERIES[-1]})
    researcher = AdaptiveMarketResearcher(completion, search)
    events = []

    intelligence = await researcher.conduct_adaptive_market_research(product_input, on_progress=events.append)

    assert sorted(search.queries) == sorted(QUERIES)
    metadata = intelligence["searchMetadata"]
    assert metadata["totalQueries"] == len(QUERIES)
    assert metadata["successfulSearches"] == len(QUERIES) - 1
    assert metadata["totalResultsFound"] == 3 * (len(QUERIES) - 1)
    assert metadata["platformsCovered"][-1] == "generic"
    assert intelligence["marketInsights"] == {"themes": ["manual work"]}

    phases = [e.phase for e in events]
    assert phases[:4] == [SearchPhase.PLATFORM_ANALYSIS] * 2 + [SearchPhase.QUERY_GENERATION] * 2
    assert phases[-1] == SearchPhase.ANALYSIS
    searching = [e for e in events if e.phase == SearchPhase.SEARCHING]
    assert [e.completed for e in searching] == sorted(e.completed for e in searching)
    assert all(e.total == len(QUERIES) for e in searching)

    # one platform-switch pause between each of the five groups
    assert no_sleep == [1.0] * 4


@pytest.mark.asyncio
async def test_unavailable_provider_aborts_before_searching(product_input, no_sleep):
    completion = ScriptedCompletion(happy_responses(), available=False)
    search = FakeSearchClient()

    with pytest.raises(OverloadedError, match="unavailable or overloaded"):
        await AdaptiveMarketResearcher(completion, search).conduct_adaptive_market_research(product_input)
    assert search.queries == []
    assert completion.calls == []


@pytest.mark.asyncio
async def test_platform_failure_continues_with_default_strategy(product_input, no_sleep):
    responses = happy_responses()
    responses["Platform Strategy Selection"] = ProviderError("Claude API error: upstream")
    completion = ScriptedCompletion(responses)

    await AdaptiveMarketResearcher(completion, FakeSearchClient()).conduct_adaptive_market_research(product_input)

    prompt = completion.calls_for("Query Generation")[0][1]
    assert "Using default platform strategy" in prompt
    assert "Generate 150 search queries" in prompt


@pytest.mark.asyncio
async def test_query_generation_failure_aborts(product_input, no_sleep):
    responses = happy_responses()
    responses["Query Generation"] = "I'd suggest searching Reddit."
    search = FakeSearchClient()

    with pytest.raises(StageError, match="Query generation failed") as excinfo:
        await AdaptiveMarketResearcher(ScriptedCompletion(responses), search).conduct_adaptive_market_research(
            product_input
        )
    assert excinfo.value.stage == "query-generation"
    assert search.queries == []


@pytest.mark.asyncio
async def test_oversized_synthesis_retries_with_reduced_results(product_input, no_sleep):
    queries = [f"workflow automation question {i}" for i in range(60)]
    responses = happy_responses(query_volume=60, queries=queries)
    responses["Raw Search Data Analysis"] = [RequestError("request too large"), json.dumps({"reduced": True})]
    completion = ScriptedCompletion(responses)

    intelligence = await AdaptiveMarketResearcher(completion, FakeSearchClient()).conduct_adaptive_market_research(
        product_input
    )

    calls = completion.calls_for("Raw Search Data Analysis")
    assert len(calls) == 2
    assert "Analyzed 60 searches" in calls[0][1]
    assert "Analyzed 50 searches" in calls[1][1]
    assert intelligence["reduced"] is True
    # ten generic batches of six, paced two seconds apart
    assert no_sleep == [2.0] * 9


@pytest.mark.asyncio
async def test_synthesis_failure_is_a_stage_error(product_input, no_sleep):
    responses = happy_responses()
    responses["Raw Search Data Analysis"] = "analysis unavailable"

    with pytest.raises(StageError, match="Failed to analyze search data") as excinfo:
        await AdaptiveMarketResearcher(ScriptedCompletion(responses), FakeSearchClient()).conduct_adaptive_market_research(
            product_input
        )
    assert excinfo.value.stage == "analysis"


REDDIT_QUERIES = [f"ops team automation question {i} site:reddit.com" for i in range(12)]


@pytest.fixture
def sleep_marks(monkeypatch):
    """Record each asyncio.sleep delay with the number of searches issued before it."""
    marks: list[tuple[float, int]] = []
    real_sleep = asyncio.sleep
    searched: list[list[str]] = []

    async def fake_sleep(delay, *args, **kwargs):
        marks.append((delay, len(searched[0]) if searched else 0))
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    def watch(search: FakeSearchClient) -> list[tuple[float, int]]:
        searched.append(search.queries)
        return marks

    return watch


def batch_sizes(marks: list[tuple[float, int]], total: int) -> list[int]:
    bounds = [count for _, count in marks] + [total]
    return [b - a for a, b in zip([0] + bounds[:-1], bounds)]


@pytest.mark.asyncio
async def test_platform_queries_are_batched_with_platform_delay(product_input, sleep_marks):
    completion = ScriptedCompletion(happy_responses(query_volume=12, queries=REDDIT_QUERIES))
    search = FakeSearchClient()
    marks = sleep_marks(search)

    await AdaptiveMarketResearcher(completion, search).conduct_adaptive_market_research(product_input)

    assert search.queries == REDDIT_QUERIES
    assert [delay for delay, _ in marks] == [3.0, 3.0]
    assert batch_sizes(marks, len(REDDIT_QUERIES)) == [5, 5, 2]


@pytest.mark.asyncio
async def test_quick_mode_uses_uniform_batches_and_search_cap(product_input, sleep_marks):
    completion = ScriptedCompletion(happy_responses(query_volume=400, queries=REDDIT_QUERIES))
    search = FakeSearchClient()
    marks = sleep_marks(search)

    with patch.multiple(
        settings,
        quick_mode=True,
        quick_mode_search_limit=10,
        quick_mode_batch_size=4,
        quick_mode_batch_delay_seconds=0.25,
    ):
        await AdaptiveMarketResearcher(completion, search).conduct_adaptive_market_research(product_input)

    prompt = completion.calls_for("Query Generation")[0][1]
    assert "Generate 10 search queries" in prompt
    assert search.queries == REDDIT_QUERIES[:10]
    assert [delay for delay, _ in marks] == [0.25, 0.25]
    assert batch_sizes(marks, 10) == [4, 4, 2]


def test_limits_for_quick_mode_keeps_platform_priority():
    assert limits_for("reddit.com") == PlatformLimits(5, 3.0, 1)
    assert limits_for("unknown.example") == PLATFORM_LIMITS["generic"]

    with patch.multiple(settings, quick_mode=True, quick_mode_batch_size=10, quick_mode_batch_delay_seconds=0.5):
        assert limits_for("reddit.com") == PlatformLimits(10, 0.5, 1)
        assert limits_for("linkedin.com") == PlatformLimits(10, 0.5, 2)
