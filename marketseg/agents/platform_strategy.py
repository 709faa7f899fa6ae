from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.agents.fallbacks import default_platform_strategy
from marketseg.config import settings
from marketseg.errors import ParseError
from marketseg.models.research import PlatformStrategy
from marketseg.models.schemas import ProductInput
from marketseg.services.json_extractor import extract_and_parse_json


@dataclass(frozen=True, slots=True)
class PlatformContext:
    industry: str
    product_type: str
    business_type: str
    target_audience: str

    @classmethod
    def from_product_input(cls, product_input: ProductInput) -> "PlatformContext":
        return cls(
            industry=product_input.industry,
            product_type=product_input.product_overview,
            business_type=product_input.business_type,
            target_audience=product_input.target_audience,
        )


class PlatformStrategyStage(BaseStage):
    """Ask the model where to search. Degrades to a default list on bad output."""

    name = "platform_strategy"

    async def suggest_search_platforms(self, context: PlatformContext) -> PlatformStrategy:
        logger.info(f"[{self.name}] Suggesting platforms for industry={context.industry!r}")
        response = await self.complete(
            "platform_strategy.suggest",
            max_tokens=4000,
            operation="Platform Strategy Selection",
            industry=context.industry,
            product_type=context.product_type,
            business_type=context.business_type,
            target_audience=context.target_audience,
        )

        try:
            strategy = self._parse(response)
        except ParseError as e:
            logger.error(f"[{self.name}] Failed to parse platform strategy response: {e}")
            logger.debug(f"[{self.name}] Response preview: {response[:500]}")
            logger.info(f"[{self.name}] Using fallback platform strategy")
            return default_platform_strategy(settings.default_query_volume)
        return strategy

    @staticmethod
    def _parse(response: str) -> PlatformStrategy:
        parsed = extract_and_parse_json(response)
        try:
            return PlatformStrategy.from_payload(parsed, settings.default_query_volume)
        except ValueError as e:
            raise ParseError(str(e), preview=response[:200]) from e
