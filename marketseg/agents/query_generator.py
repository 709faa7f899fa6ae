from __future__ import annotations

import json

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.config import settings
from marketseg.errors import ParseError
from marketseg.models.research import PlatformStrategy
from marketseg.models.schemas import ProductInput
from marketseg.services.json_extractor import extract_and_parse_json


def parse_query_list(response: str) -> list[str]:
    """Parse the model's query list. Raises ParseError when nothing usable comes back."""
    parsed = None
    trimmed = response.strip()
    if trimmed.startswith("[") and trimmed.endswith("]"):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as e:
            logger.warning(f"[query_generation] Direct array parsing failed: {e}")
    if parsed is None:
        parsed = extract_and_parse_json(response)

    if isinstance(parsed, dict) and isinstance(parsed.get("queries"), list):
        parsed = parsed["queries"]
    if not isinstance(parsed, list):
        raise ParseError("Query generation did not return a JSON array", preview=response[:200])

    queries = [q.strip() for q in parsed if isinstance(q, str) and q.strip()]
    if not queries:
        raise ParseError("Query generation returned no queries", preview=response[:200])
    return queries


class QueryGenerationStage(BaseStage):
    """Generate the search batch. No fallback: failures abort the run."""

    name = "query_generation"

    def __init__(self, completion=None, *, max_queries: int | None = None):
        super().__init__(completion)
        self.max_queries = max_queries or settings.max_search_queries

    async def generate_search_queries(
        self,
        product_input: ProductInput,
        platform_strategy: PlatformStrategy,
        target_queries: int,
    ) -> list[str]:
        target = max(1, min(int(target_queries), self.max_queries))
        if target < target_queries:
            logger.info(f"[{self.name}] Limiting queries from {target_queries} to {target}")

        response = await self.complete(
            "queries.generate",
            max_tokens=8000,
            operation="Query Generation",
            target_queries=target,
            industry=product_input.industry,
            product=product_input.product_overview,
            target_audience=product_input.job_titles or "consumers",
            business_type=product_input.business_type,
            platform_strategy=json.dumps(platform_strategy.to_dict(), indent=2),
        )
        logger.debug(f"[{self.name}] Response preview: {response[:200]}")

        queries = parse_query_list(response)
        if len(queries) > target:
            queries = queries[:target]
        logger.info(f"[{self.name}] Generated {len(queries)} search queries")
        return queries
