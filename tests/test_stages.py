from __future__ import annotations

import json

import pytest
from conftest import ScriptedCompletion, personas_for, segments_json

from marketseg.agents.market_analysis import MarketAnalysisStage, research_summary, summarize_search_results
from marketseg.agents.personas import PersonaStage
from marketseg.agents.platform_strategy import PlatformContext, PlatformStrategyStage
from marketseg.agents.query_generator import QueryGenerationStage, parse_query_list
from marketseg.agents.roadmap import RoadmapStage
from marketseg.agents.segmentation import SegmentationStage, parse_segments
from marketseg.errors import ConfigError, ParseError, ProviderError, StageError
from marketseg.models.research import PlatformChoice, PlatformStrategy, SearchResult


def strategy(volume: int = 50) -> PlatformStrategy:
    return PlatformStrategy(platforms=[PlatformChoice("reddit", 50)], query_volume=volume)


# --- Platform strategy ---


@pytest.mark.asyncio
async def test_platform_strategy_parses_model_output(product_input):
    completion = ScriptedCompletion(
        {
            "Platform Strategy Selection": json.dumps(
                {
                    "platforms": [{"name": "reddit", "weight": 60, "subreddits": ["r/devops"]}, "g2"],
                    "queryVolume": 120,
                    "reasoning": "communities",
                }
            )
        }
    )
    result = await PlatformStrategyStage(completion).suggest_search_platforms(
        PlatformContext.from_product_input(product_input)
    )

    assert not result.is_fallback
    assert result.query_volume == 120
    assert [p.name for p in result.platforms] == ["reddit", "g2"]
    assert result.platforms[0].sections == ["r/devops"]
    assert "SaaS" in completion.calls[0][1]


@pytest.mark.asyncio
async def test_platform_strategy_falls_back_on_unparsable_output(product_input):
    completion = ScriptedCompletion({"Platform Strategy Selection": "I recommend Reddit and LinkedIn."})
    result = await PlatformStrategyStage(completion).suggest_search_platforms(
        PlatformContext.from_product_input(product_input)
    )

    assert result.is_fallback
    assert len(result.platforms) == 8


# --- Query generation ---


def test_parse_query_list_accepts_object_envelope():
    assert parse_query_list('{"queries": ["a", " b ", "", 3]}') == ["a", "b"]


def test_parse_query_list_rejects_non_array():
    with pytest.raises(ParseError):
        parse_query_list('{"note": "no queries"}')


@pytest.mark.asyncio
async def test_query_generation_caps_requested_volume(product_input):
    completion = ScriptedCompletion({"Query Generation": json.dumps([f"q{i}" for i in range(200)])})
    stage = QueryGenerationStage(completion, max_queries=150)

    queries = await stage.generate_search_queries(product_input, strategy(400), 400)

    assert len(queries) == 150
    assert "Generate 150 search queries" in completion.calls[0][1]


@pytest.mark.asyncio
async def test_query_generation_has_no_fallback(product_input):
    completion = ScriptedCompletion({"Query Generation": "Sorry, I cannot help with that."})
    with pytest.raises(ParseError):
        await QueryGenerationStage(completion).generate_search_queries(product_input, strategy(), 20)


# --- Market analysis ---


def test_summarize_search_results_truncates():
    result = SearchResult(
        query="q",
        platform="generic",
        organic=[{"title": "t" * 300, "snippet": "s" * 500, "link": "l"} for _ in range(5)],
    )
    summary = summarize_search_results([result] * 3, limit=2)
    assert len(summary) == 2
    assert len(summary[0]["topResults"]) == 3
    assert len(summary[0]["topResults"][0]["title"]) == 100
    assert len(summary[0]["topResults"][0]["snippet"]) == 200


def test_research_summary_uses_metadata():
    text = research_summary(
        {"searchMetadata": {"totalResultsFound": 90, "totalQueries": 30, "platformsCovered": ["a", "b"]}}
    )
    assert text == "Adaptive market research with 90 data points from 30 queries across 2 platforms"
    assert research_summary({}) == "Market research data from multiple searches"


@pytest.mark.asyncio
async def test_market_analysis_falls_back_per_half(product_input):
    completion = ScriptedCompletion(
        {
            "Market Analysis - Core": '{"tam": {"currentValue": "large"}}',
            "Market Analysis - Competitors": json.dumps({"competitors": [{"name": "Zapier"}]}),
        }
    )
    analysis = await MarketAnalysisStage(completion).analyze_market(product_input, {})

    assert analysis["isFallback"] is True
    assert analysis["tam"]["currentValue"] == 5_000_000_000
    assert analysis["competitors"] == [{"name": "Zapier"}]


@pytest.mark.asyncio
async def test_market_analysis_competitor_fallback(product_input):
    completion = ScriptedCompletion(
        {
            "Market Analysis - Core": '{"tam": {"currentValue": 7000000000}, "cagr": 11}',
            "Market Analysis - Competitors": "no idea",
        }
    )
    analysis = await MarketAnalysisStage(completion).analyze_market(product_input, {})

    assert "isFallback" not in analysis
    assert analysis["cagr"] == 11
    assert all(c["isFallback"] for c in analysis["competitors"])


@pytest.mark.asyncio
async def test_market_analysis_propagates_provider_errors(product_input):
    completion = ScriptedCompletion({"Market Analysis - Core": ProviderError("Claude API error: boom")})
    with pytest.raises(ProviderError):
        await MarketAnalysisStage(completion).analyze_market(product_input, {})


# --- Segments ---


def test_parse_segments_accepts_bare_array():
    assert parse_segments('[{"id": "SEG_001"}]') == [{"id": "SEG_001"}]


def test_parse_segments_rejects_empty():
    with pytest.raises(ParseError):
        parse_segments('{"segments": []}')


@pytest.mark.asyncio
async def test_segments_retry_then_succeed(product_input, no_sleep):
    completion = ScriptedCompletion({"Segment Identification": ["not json", segments_json(6)]})
    stage = SegmentationStage(completion, max_retries=3, retry_delay_seconds=3.0)

    segments = await stage.identify_segments(product_input, {"tam": {"currentValue": 2e9}})

    assert len(segments) == 6
    assert len(completion.calls) == 2
    assert no_sleep == [3.0]
    assert "2.0B" in completion.calls[0][1]


@pytest.mark.asyncio
async def test_segments_fall_back_after_all_attempts(product_input, no_sleep):
    completion = ScriptedCompletion({"Segment Identification": "still not json"})
    stage = SegmentationStage(completion, max_retries=3, retry_delay_seconds=3.0)

    segments = await stage.identify_segments(product_input, {"tam": {"currentValue": 1e9}})

    assert len(completion.calls) == 4
    assert no_sleep == [3.0, 6.0, 9.0]
    assert len(segments) == 6
    assert all(s["isFallback"] for s in segments)
    assert sum(s["size"]["percentage"] for s in segments) == 100
    assert segments[0]["size"]["value"] == pytest.approx(0.25e9)


@pytest.mark.asyncio
async def test_segments_do_not_retry_provider_errors(product_input, no_sleep):
    completion = ScriptedCompletion({"Segment Identification": ProviderError("Claude API error: boom")})
    with pytest.raises(ProviderError):
        await SegmentationStage(completion).identify_segments(product_input, {})
    assert len(completion.calls) == 1


# --- Personas ---


def seven_segments() -> list[dict]:
    return json.loads(segments_json(7))["segments"]


@pytest.mark.asyncio
async def test_personas_are_requested_in_batches(product_input, no_sleep):
    completion = ScriptedCompletion({"Personas for segments": personas_for})
    stage = PersonaStage(completion, batch_size=3, max_attempts=3, batch_delay_seconds=1.0)

    personas = await stage.develop_personas(seven_segments(), product_input)

    assert [c[0] for c in completion.calls] == [
        "Personas for segments SEG_001, SEG_002, SEG_003",
        "Personas for segments SEG_004, SEG_005, SEG_006",
        "Personas for segments SEG_007",
    ]
    assert len(personas) == 7
    assert no_sleep == [1.0, 1.0]


@pytest.mark.asyncio
async def test_failed_persona_batch_falls_back_only_for_that_batch(product_input, no_sleep):
    def respond(prompt, max_tokens, operation):
        if "SEG_004" in operation:
            return "garbage"
        return personas_for(prompt, max_tokens, operation)

    completion = ScriptedCompletion({"Personas for segments": respond})
    stage = PersonaStage(completion, batch_size=3, max_attempts=3, batch_delay_seconds=1.0)

    personas = await stage.develop_personas(seven_segments(), product_input)

    fallback = [p for p in personas if p.get("isFallback")]
    assert [p["segmentId"] for p in fallback] == ["SEG_004", "SEG_005", "SEG_006"]
    assert len(personas) == 7
    assert len(completion.calls_for("Personas for segments SEG_004")) == 3
    assert no_sleep == [1.0, 3.0, 6.0, 1.0]


@pytest.mark.asyncio
async def test_persona_config_error_is_fatal(product_input, no_sleep):
    completion = ScriptedCompletion({"Personas for segments": ConfigError("ANTHROPIC_API_KEY is not configured")})
    with pytest.raises(ConfigError):
        await PersonaStage(completion).develop_personas(seven_segments(), product_input)
    assert len(completion.calls) == 1


# --- Roadmap ---


@pytest.mark.asyncio
async def test_roadmap_returns_object():
    completion = ScriptedCompletion({"Implementation Roadmap": '{"phases": [{"name": "Launch"}]}'})
    roadmap = await RoadmapStage(completion).generate_implementation_roadmap(seven_segments(), [])
    assert roadmap == {"phases": [{"name": "Launch"}]}
    assert "7 customer segments" in completion.calls[0][1]


@pytest.mark.asyncio
async def test_roadmap_parse_failure_is_fatal():
    completion = ScriptedCompletion({"Implementation Roadmap": "Phase 1: launch. Phase 2: grow."})
    with pytest.raises(StageError, match="Failed to parse roadmap response") as excinfo:
        await RoadmapStage(completion).generate_implementation_roadmap(seven_segments(), [])
    assert excinfo.value.stage == "roadmap"
