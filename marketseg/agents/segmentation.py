from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.agents.fallbacks import fallback_segments
from marketseg.config import settings
from marketseg.errors import ParseError
from marketseg.models.schemas import ProductInput
from marketseg.services.json_extractor import extract_and_parse_json

DEFAULT_TAM = 5_000_000_000


def tam_current_value(market_analysis: dict[str, Any]) -> float:
    tam = market_analysis.get("tam") if isinstance(market_analysis, dict) else None
    value = tam.get("currentValue") if isinstance(tam, dict) else None
    return float(value) if isinstance(value, (int, float)) else float(DEFAULT_TAM)


def segment_percentage(segment: dict[str, Any]) -> Any:
    """``size.percentage`` of a segment, or ``"?"`` when the model returned another shape."""
    size = segment.get("size")
    return size.get("percentage", "?") if isinstance(size, dict) else "?"


def parse_segments(response: str) -> list[dict[str, Any]]:
    """Accept a bare array or ``{"segments": [...]}``."""
    parsed = extract_and_parse_json(response)
    if isinstance(parsed, dict):
        if isinstance(parsed.get("marketComplexity"), dict):
            logger.info(f"[segmentation] Market complexity: {parsed['marketComplexity']}")
        parsed = parsed.get("segments")
    if not isinstance(parsed, list):
        raise ParseError("Invalid response: missing segments array", preview=response[:200])
    segments = [s for s in parsed if isinstance(s, dict)]
    if not segments:
        raise ParseError("Invalid response: empty segments array", preview=response[:200])
    return segments


class SegmentationStage(BaseStage):
    """Request 6-8 segments; retry the whole call on parse failure, then fall back."""

    name = "segmentation"

    def __init__(
        self,
        completion=None,
        *,
        max_retries: int | None = None,
        retry_delay_seconds: float | None = None,
    ):
        super().__init__(completion)
        self.max_retries = settings.segment_max_retries if max_retries is None else max_retries
        self.retry_delay_seconds = (
            settings.segment_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )

    async def identify_segments(
        self, product_input: ProductInput, market_analysis: dict[str, Any]
    ) -> list[dict[str, Any]]:
        tam = tam_current_value(market_analysis)
        maturity = market_analysis.get("marketMaturity") or {}
        values = {
            "product": product_input.product_overview[:200],
            "business_type": product_input.business_type,
            "target": product_input.segment_target,
            "tam_billions": f"{tam / 1_000_000_000:.1f}",
            "cagr": market_analysis.get("cagr", "unknown"),
            "competitor_count": len(market_analysis.get("competitors") or []) or 10,
            "maturity_stage": maturity.get("stage", "growth") if isinstance(maturity, dict) else "growth",
        }

        for attempt in range(self.max_retries + 1):
            response = await self.complete(
                "segments.identify",
                max_tokens=3000,
                operation="Segment Identification",
                **values,
            )
            try:
                segments = parse_segments(response)
            except ParseError as e:
                logger.error(f"[{self.name}] Failed to parse segments: {e}")
                if attempt < self.max_retries:
                    delay = self.retry_delay_seconds * (attempt + 1)
                    logger.info(
                        f"[{self.name}] Retrying segment identification in {delay:.0f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})..."
                    )
                    await asyncio.sleep(delay)
                continue
            logger.info(f"[{self.name}] Identified {len(segments)} segments")
            return segments

        logger.error(f"[{self.name}] All segment identification attempts failed. Using emergency fallback.")
        return fallback_segments(product_input.business_type, tam)
