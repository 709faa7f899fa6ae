from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from marketseg.agents.base import BaseStage
from marketseg.agents.fallbacks import fallback_persona
from marketseg.agents.segmentation import segment_percentage
from marketseg.config import settings
from marketseg.errors import ConfigError, ParseError, SegmentationError
from marketseg.models.schemas import ProductInput
from marketseg.services.json_extractor import extract_and_parse_json

PERSONA_RETRY_DELAY_SECONDS = 3.0


def parse_personas(response: str) -> list[dict[str, Any]]:
    parsed = extract_and_parse_json(response)
    if isinstance(parsed, dict):
        parsed = parsed.get("personas")
    if not isinstance(parsed, list):
        raise ParseError("Invalid response: missing personas array", preview=response[:200])
    return [p for p in parsed if isinstance(p, dict)]


class PersonaStage(BaseStage):
    """Personas in fixed-size segment batches, each batch retried then substituted."""

    name = "personas"

    def __init__(
        self,
        completion=None,
        *,
        batch_size: int | None = None,
        max_attempts: int | None = None,
        retry_delay_seconds: float = PERSONA_RETRY_DELAY_SECONDS,
        batch_delay_seconds: float | None = None,
    ):
        super().__init__(completion)
        self.batch_size = max(1, batch_size or settings.persona_batch_size)
        self.max_attempts = max(1, max_attempts or settings.persona_max_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self.batch_delay_seconds = (
            settings.persona_batch_delay_seconds if batch_delay_seconds is None else batch_delay_seconds
        )

    async def _batch(self, batch: list[dict[str, Any]], product_input: ProductInput) -> list[dict[str, Any]]:
        segment_ids = ", ".join(str(s.get("id")) for s in batch)
        segment_lines = "\n".join(
            f"- {s.get('name')} ({s.get('id')}): {segment_percentage(s)}% of market"
            for s in batch
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.complete(
                    "personas.develop",
                    max_tokens=2000,
                    operation=f"Personas for segments {segment_ids}",
                    segment_count=len(batch),
                    segment_lines=segment_lines,
                    product=product_input.product_overview[:150],
                    business_type=product_input.business_type,
                )
                return parse_personas(response)
            except ConfigError:
                raise
            except SegmentationError as e:
                logger.warning(f"[{self.name}] Batch {segment_ids} failed (attempt {attempt}/{self.max_attempts}): {e}")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        logger.error(f"[{self.name}] All persona generation attempts failed for {segment_ids}. Using emergency fallback.")
        return [fallback_persona(str(s.get("id")), product_input.business_type) for s in batch]

    async def develop_personas(
        self, segments: list[dict[str, Any]], product_input: ProductInput
    ) -> list[dict[str, Any]]:
        personas: list[dict[str, Any]] = []
        for start in range(0, len(segments), self.batch_size):
            batch = segments[start : start + self.batch_size]
            personas.extend(await self._batch(batch, product_input))
            if start + self.batch_size < len(segments):
                await asyncio.sleep(self.batch_delay_seconds)
        logger.info(f"[{self.name}] Developed {len(personas)} personas for {len(segments)} segments")
        return personas
