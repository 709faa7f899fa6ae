from __future__ import annotations

import json
from typing import Any, Iterable

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.agents.fallbacks import fallback_competitors, fallback_core_analysis
from marketseg.config import settings
from marketseg.errors import ParseError
from marketseg.models.research import SearchResult
from marketseg.models.schemas import ProductInput
from marketseg.services.json_extractor import extract_and_parse_json


def summarize_search_results(
    results: Iterable[SearchResult | dict[str, Any]],
    limit: int,
    hits_per_result: int = 3,
) -> list[dict[str, Any]]:
    """Trim raw search results to bound the synthesis prompt."""
    summary: list[dict[str, Any]] = []
    for result in list(results)[:limit]:
        data = result.to_dict() if isinstance(result, SearchResult) else result
        organic = (data.get("results") or {}).get("organic") or []
        summary.append(
            {
                "query": data.get("query"),
                "platform": data.get("platform"),
                "topResults": [
                    {
                        "title": (item.get("title") or "")[:100],
                        "snippet": (item.get("snippet") or "")[:200],
                        "link": item.get("link"),
                    }
                    for item in organic[:hits_per_result]
                ],
            }
        )
    return summary


def research_summary(market_research: dict[str, Any]) -> str:
    metadata = market_research.get("searchMetadata") if isinstance(market_research, dict) else None
    if not isinstance(metadata, dict):
        return "Market research data from multiple searches"
    return (
        f"Adaptive market research with {metadata.get('totalResultsFound', 0)} data points "
        f"from {metadata.get('totalQueries', 0)} queries across "
        f"{len(metadata.get('platformsCovered') or [])} platforms"
    )


class MarketAnalysisStage(BaseStage):
    """Raw-data synthesis plus the two-part market analysis.

    The core-metrics half and the competitor half each fall back to static
    data only after their own parse failure.
    """

    name = "market_analysis"

    async def analyze_raw_search_data(
        self,
        search_results: list[SearchResult] | list[dict[str, Any]],
        product_input: ProductInput,
        *,
        limit: int | None = None,
    ) -> Any:
        processed = summarize_search_results(search_results, limit or settings.synthesis_max_results)
        logger.info(f"[{self.name}] Synthesising {len(processed)} of {len(search_results)} search results")
        return await self.complete_json(
            "analysis.raw_search_data",
            max_tokens=4000,
            operation="Raw Search Data Analysis",
            product=product_input.product_overview[:200],
            industry=product_input.industry,
            business_type=product_input.business_type,
            search_count=len(search_results),
            results=json.dumps(processed, indent=2),
        )

    async def _core_analysis(self, product_input: ProductInput, summary: str) -> dict[str, Any]:
        response = await self.complete(
            "analysis.core_market",
            max_tokens=2000,
            operation="Market Analysis - Core",
            product=product_input.product_overview[:200],
            industry=product_input.industry,
            business_type=product_input.business_type,
            research_summary=summary,
        )
        try:
            parsed = extract_and_parse_json(response)
            tam = parsed.get("tam") if isinstance(parsed, dict) else None
            if not isinstance(tam, dict) or not isinstance(tam.get("currentValue"), (int, float)):
                raise ParseError("core analysis is missing tam.currentValue", preview=response[:200])
        except ParseError as e:
            logger.error(f"[{self.name}] Failed to parse core analysis: {e}")
            return fallback_core_analysis()
        return parsed

    async def _competitors(self, product_input: ProductInput) -> list[dict[str, Any]]:
        response = await self.complete(
            "analysis.competitors",
            max_tokens=2000,
            operation="Market Analysis - Competitors",
            product=product_input.product_overview[:100],
        )
        try:
            parsed = extract_and_parse_json(response)
            if isinstance(parsed, dict) and isinstance(parsed.get("competitors"), list):
                parsed = parsed["competitors"]
            if not isinstance(parsed, list):
                raise ParseError("competitor list is not a JSON array", preview=response[:200])
        except ParseError as e:
            logger.error(f"[{self.name}] Failed to parse competitors: {e}")
            return fallback_competitors()
        return [c for c in parsed if isinstance(c, dict)]

    async def analyze_market(self, product_input: ProductInput, market_research: dict[str, Any]) -> dict[str, Any]:
        summary = research_summary(market_research)
        core = await self._core_analysis(product_input, summary)
        competitors = await self._competitors(product_input)
        return {**core, "competitors": competitors}
